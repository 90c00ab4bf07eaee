"""
Authentication service.

Registration, password login, refresh-token rotation, logout, account
deletion and Google account resolution. Every successful sign-in issues an
access token plus a refresh token that is persisted so it can be revoked.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AccountDeactivated,
    Conflict,
    NotFound,
    RefreshInvalid,
    TokenInvalid,
    Unauthorized,
)
from app.core.security import (
    hash_password,
    issue_access_token,
    issue_refresh_token,
    refresh_token_lifetime,
    verify_password,
    verify_refresh_token,
)
from app.db.models.user import User, generate_user_id
from app.db.models.subscription import Subscription
from app.db.models.refresh_token import RefreshToken
from app.services.email_service import EmailNotifier
from app.services.oauth_service import OAuthProfile, role_from_state
from app.services.visibility import parse_membership_config

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def generate_username(first_name: Optional[str], last_name: Optional[str], user_id: str) -> str:
    """URL-safe username from name parts plus the first 6 hex chars of the id."""
    def clean(value: Optional[str]) -> str:
        return re.sub(r"[^a-z0-9]", "", (value or "").lower())

    first = clean(first_name)
    last = clean(last_name)
    suffix = user_id.replace("-", "")[:6]
    if first and last:
        return f"{first}-{last}-{suffix}"
    if first or last:
        return f"{first or last}-{suffix}"
    return f"user-{suffix}"


def public_user(user: User) -> Dict[str, Any]:
    """User as returned by the API."""
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name or "",
        "last_name": user.last_name or "",
        "user_type": user.user_type,
        "username": user.username or "",
        "membership_config": parse_membership_config(user.membership_config),
        "has_purchased_visibility": bool(user.has_purchased_visibility),
        "plan": user.plan,
    }


@dataclass
class AuthResult:
    user: User
    access: str
    refresh: str

    @property
    def plan(self) -> str:
        return self.user.plan


# Outcomes of resolving an external identity to a local account
@dataclass
class LinkedExisting:
    """An account was already linked to this provider id."""
    user: User


@dataclass
class LinkedByEmail:
    """An existing account with the same email got the provider id attached."""
    user: User


@dataclass
class Created:
    """A brand-new account was created for this identity."""
    user: User


OAuthResolution = Union[LinkedExisting, LinkedByEmail, Created]


class AuthService:
    def __init__(
        self,
        db: Session,
        notifier: Optional[EmailNotifier] = None,
        dispatch: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            db: Request-scoped database session
            notifier: Email sender for welcome messages
            dispatch: Schedules fire-and-forget work, e.g. BackgroundTasks.add_task.
                Without one, notifications run inline (they never raise).
        """
        self.db = db
        self.notifier = notifier
        self.dispatch = dispatch

    # ----------------------------------------------------------------
    # helpers
    # ----------------------------------------------------------------

    def _notify(self, fn: Callable[..., Any], *args) -> None:
        if self.dispatch is not None:
            self.dispatch(fn, *args)
            return
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"Notification failed: {e}", exc_info=True)

    def _issue_tokens(self, user: User) -> AuthResult:
        """Sign a token pair and persist the refresh token as active. Caller commits."""
        access = issue_access_token({
            "userId": user.id,
            "email": user.email,
            "userType": user.user_type,
            "plan": user.plan,
            "username": user.username or "",
        })
        refresh = issue_refresh_token(user.id)
        self.db.add(RefreshToken(
            token=refresh,
            user_id=user.id,
            expires_at=utcnow() + refresh_token_lifetime(),
            revoked=False,
        ))
        return AuthResult(user=user, access=access, refresh=refresh)

    def _revoke_if_active(self, token_id: int) -> bool:
        """Conditionally revoke one token; True only for the caller that flipped it."""
        updated = self.db.query(RefreshToken).filter(
            RefreshToken.id == token_id,
            RefreshToken.revoked.is_(False),
        ).update({RefreshToken.revoked: True}, synchronize_session=False)
        return updated == 1

    def _get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    # ----------------------------------------------------------------
    # email / password
    # ----------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        user_type: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthResult:
        email = normalize_email(email)
        if self.db.query(User).filter(User.email == email).first():
            raise Conflict("Email already registered")

        user_id = generate_user_id()
        user = User(
            id=user_id,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            user_type=user_type,
            username=generate_username(first_name, last_name, user_id),
            is_active=True,
            has_purchased_visibility=False,
        )
        user.subscription = Subscription(plan_type="free", status="active")
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost a race against a concurrent registration for the same email
            self.db.rollback()
            raise Conflict("Email already registered")

        result = self._issue_tokens(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User registered: user_id={user.id}, user_type={user.user_type}")
        if self.notifier is not None:
            self._notify(self.notifier.send_welcome, user.email, user.first_name or "there", user.user_type)
        return result

    def login(self, email: str, password: str) -> AuthResult:
        user = self.db.query(User).filter(User.email == normalize_email(email)).first()
        if not user or not user.is_active:
            raise Unauthorized(INVALID_CREDENTIALS)

        if not user.password_hash:
            raise Unauthorized(
                "This account uses Google sign-in. Please click 'Continue with Google' to log in."
            )

        if not verify_password(password, user.password_hash):
            logger.info(f"Failed login attempt: user_id={user.id}")
            raise Unauthorized(INVALID_CREDENTIALS)

        result = self._issue_tokens(user)
        self.db.commit()
        logger.info(f"User logged in: user_id={user.id}")
        return result

    # ----------------------------------------------------------------
    # refresh tokens
    # ----------------------------------------------------------------

    def refresh(self, token: str) -> AuthResult:
        """
        Rotate a refresh token: revoke the presented one and issue a new pair.

        A token yields at most one new pair. Of two concurrent presentations
        only the one whose conditional revoke updates the row succeeds.
        """
        try:
            claims = verify_refresh_token(token)
        except TokenInvalid:
            raise RefreshInvalid("Invalid refresh token")

        stored = self.db.query(RefreshToken).filter(RefreshToken.token == token).first()
        if (
            not stored
            or stored.revoked
            or _as_utc(stored.expires_at) <= utcnow()
            or stored.user_id != claims["userId"]
        ):
            raise RefreshInvalid()

        if not self._revoke_if_active(stored.id):
            self.db.rollback()
            logger.warning(f"Refresh token reuse detected: user_id={stored.user_id}")
            raise RefreshInvalid()

        user = self._get_user(stored.user_id)
        if not user or not user.is_active:
            self.db.commit()
            raise Unauthorized("User not found or inactive")

        result = self._issue_tokens(user)
        self.db.commit()
        logger.debug(f"Refresh token rotated: user_id={user.id}")
        return result

    def logout(self, token: Optional[str]) -> None:
        """Revoke a refresh token if it is still active; otherwise do nothing."""
        if not token:
            return
        self.db.query(RefreshToken).filter(
            RefreshToken.token == token,
            RefreshToken.revoked.is_(False),
        ).update({RefreshToken.revoked: True}, synchronize_session=False)
        self.db.commit()

    # ----------------------------------------------------------------
    # account
    # ----------------------------------------------------------------

    def get_profile(self, user_id: str) -> User:
        user = self._get_user(user_id)
        if not user or not user.is_active:
            raise Unauthorized("User not found")
        return user

    def delete_account(self, user_id: str) -> None:
        """Delete the user together with subscription, refresh tokens and payments."""
        user = self._get_user(user_id)
        if not user:
            raise NotFound("User not found")
        self.db.delete(user)
        self.db.commit()
        logger.info(f"Account deleted: user_id={user_id}")

    # ----------------------------------------------------------------
    # OAuth
    # ----------------------------------------------------------------

    def resolve_oauth_account(self, profile: OAuthProfile, state: Optional[str]) -> OAuthResolution:
        """
        Map a Google identity to a local account, in this order:
        1. account already linked to the provider id
        2. account with the same email, which gets the provider id attached
        3. new account, role taken from the OAuth state
        """
        if not profile.email:
            raise Unauthorized("Google account has no associated email address.")
        email = normalize_email(profile.email)

        linked = self.db.query(User).filter(User.google_id == profile.provider_id).first()
        if linked:
            return LinkedExisting(linked)

        by_email = self.db.query(User).filter(User.email == email).first()
        if by_email:
            if not by_email.is_active:
                raise AccountDeactivated()
            by_email.google_id = profile.provider_id
            self.db.flush()
            logger.info(f"Linked Google account: user_id={by_email.id}")
            return LinkedByEmail(by_email)

        user_id = generate_user_id()
        user = User(
            id=user_id,
            email=email,
            google_id=profile.provider_id,
            password_hash=None,
            first_name=profile.first_name,
            last_name=profile.last_name,
            user_type=role_from_state(state),
            username=generate_username(profile.first_name, profile.last_name, user_id),
            is_active=True,
            has_purchased_visibility=False,
        )
        user.subscription = Subscription(plan_type="free", status="active")
        self.db.add(user)
        self.db.flush()
        logger.info(f"User created via Google: user_id={user.id}, user_type={user.user_type}")
        return Created(user)

    def complete_oauth(self, profile: OAuthProfile, state: Optional[str]) -> AuthResult:
        resolution = self.resolve_oauth_account(profile, state)
        if not resolution.user.is_active:
            raise AccountDeactivated()
        result = self._issue_tokens(resolution.user)
        self.db.commit()
        self.db.refresh(resolution.user)
        if isinstance(resolution, Created) and self.notifier is not None:
            user = resolution.user
            self._notify(self.notifier.send_welcome, user.email, user.first_name or "there", user.user_type)
        return result
