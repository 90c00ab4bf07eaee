import json
import logging
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core import config
from app.core.auth_dependency import (
    AuthIdentity,
    get_current_identity,
    get_db,
    get_notifier,
    get_oauth_client,
)
from app.core.errors import AppError, NotConfigured
from app.schemas.auth import (
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    VerifyResponse,
)
from app.services.auth_service import AuthService, public_user
from app.services.email_service import EmailNotifier
from app.services.oauth_service import GoogleOAuthClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def get_auth_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> AuthService:
    return AuthService(db, notifier=notifier, dispatch=background_tasks.add_task)


# ✅ EMAIL / PASSWORD
@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    result = service.register(
        email=body.email,
        password=body.password,
        user_type=body.user_type,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return {"user": public_user(result.user), "access": result.access, "refresh": result.refresh}


@router.post("/login", response_model=AuthResponse)
def login(body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    result = service.login(body.email, body.password)
    return {"user": public_user(result.user), "access": result.access, "refresh": result.refresh}


# ✅ TOKENS
@router.post("/refresh", response_model=TokenPairResponse)
def refresh(body: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    result = service.refresh(body.refresh)
    return {"access": result.access, "refresh": result.refresh}


@router.get("/verify", response_model=VerifyResponse)
def verify(
    identity: AuthIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    user = service.get_profile(identity.user_id)
    return {"user": public_user(user)}


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    identity: AuthIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    service.logout(body.refresh if body else None)
    logger.info(f"User logged out: user_id={identity.user_id}")
    return {"message": "Logged out successfully"}


@router.delete("/account", response_model=MessageResponse)
def delete_account(
    identity: AuthIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    service.delete_account(identity.user_id)
    return {"message": "Account deleted permanently"}


# ✅ GOOGLE OAUTH
@router.get("/google")
def google_auth(
    userType: Optional[str] = None,
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
):
    """Start the Google OAuth flow; userType is carried through the state parameter."""
    if not oauth.enabled:
        raise NotConfigured("Google OAuth is not configured on this server.")
    return RedirectResponse(oauth.authorization_url(userType), status_code=status.HTTP_302_FOUND)


def _oauth_error_redirect(message: str) -> RedirectResponse:
    return RedirectResponse(
        f"{config.CLIENT_URL}/login?oauth_error={quote(message)}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/google/callback")
def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
    service: AuthService = Depends(get_auth_service),
):
    """Google redirects here. Issues tokens and hands them to the frontend."""
    if not oauth.enabled:
        return _oauth_error_redirect("not_configured")
    if error or not code:
        return _oauth_error_redirect(error or "Google authentication failed")

    try:
        profile = oauth.fetch_profile(code)
        result = service.complete_oauth(profile, state)
    except AppError as e:
        logger.warning(f"Google OAuth failed: {e.message}")
        return _oauth_error_redirect(e.message)

    params = urlencode({
        "token": result.access,
        "refresh": result.refresh,
        "user": json.dumps(public_user(result.user)),
    })
    return RedirectResponse(f"{config.CLIENT_URL}/oauth-callback?{params}", status_code=status.HTTP_302_FOUND)
