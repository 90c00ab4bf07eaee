from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.errors import Forbidden, TokenInvalid, Unauthorized
from app.core.security import verify_access_token
from app.db.session import SessionLocal
from app.services.email_service import EmailNotifier
from app.services.oauth_service import GoogleOAuthClient
from app.services.stripe_service import StripeGateway

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthIdentity:
    """Caller identity decoded once from the bearer access token."""
    user_id: str
    email: str
    user_type: str
    plan: str
    username: str = ""


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# External collaborators, overridable through app.dependency_overrides
def get_gateway() -> StripeGateway:
    return StripeGateway()


def get_notifier() -> EmailNotifier:
    return EmailNotifier()


def get_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient()


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthIdentity:
    """Validate the bearer access token and return the caller's identity."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Authentication required")

    try:
        claims = verify_access_token(credentials.credentials)
    except TokenInvalid:
        raise Unauthorized("Invalid or expired token")

    return AuthIdentity(
        user_id=str(claims["userId"]),
        email=claims.get("email", ""),
        user_type=claims.get("userType", ""),
        plan=claims.get("plan", "free"),
        username=claims.get("username", ""),
    )


def require_role(role: str, message: Optional[str] = None):
    """Dependency factory that only admits callers of the given user type."""
    def checker(identity: AuthIdentity = Depends(get_current_identity)) -> AuthIdentity:
        if identity.user_type != role:
            raise Forbidden(message or f"{role.capitalize()} account required")
        return identity

    return checker
