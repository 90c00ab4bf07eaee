import logging
import uuid
import bcrypt
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from jose import jwt, JWTError

from app.core import config
from app.core.errors import TokenInvalid

logger = logging.getLogger(__name__)

# passlib is kept only to verify hashes produced by older deployments;
# new hashes are produced with bcrypt directly.
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    """Encode a password and cut it to bcrypt's 72-byte limit on a character boundary."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) <= BCRYPT_MAX_BYTES:
        return password_bytes
    logger.warning("Password exceeds 72 bytes, truncating before hashing (validation should have caught this)")
    truncated = password_bytes[:BCRYPT_MAX_BYTES]
    # Drop a partial trailing UTF-8 sequence, if any
    return truncated.decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password (max 72 bytes in UTF-8)

    Returns:
        Hashed password string (bcrypt format compatible with passlib)

    Raises:
        ValueError: If password cannot be hashed
    """
    try:
        return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error(f"Password hashing failed: {e}")
        raise ValueError("Invalid password") from e


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    Returns False for accounts without a password (OAuth-only) and for
    unreadable hashes instead of raising.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        # Not a bcrypt-native hash; fall back to passlib for legacy formats
        try:
            return pwd_context.verify(password, hashed)
        except (ValueError, TypeError) as e:
            logger.error(f"Password verification failed: {e}")
            return False


# ============================================
# ✅ TOKEN SERVICE
# ============================================

def _encode(claims: Dict[str, Any], key: str, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + expires_delta})
    return jwt.encode(to_encode, key, algorithm=config.JWT_ALGORITHM)


def issue_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a short-lived access token.

    Args:
        claims: Identity claims: userId, email, userType, plan and optionally username
        expires_delta: Lifetime override (defaults to JWT_ACCESS_EXPIRES_MINUTES)
    """
    payload = {
        "userId": claims["userId"],
        "email": claims["email"],
        "userType": claims["userType"],
        "plan": claims.get("plan") or "free",
    }
    if claims.get("username"):
        payload["username"] = claims["username"]
    return _encode(
        payload,
        config.JWT_SECRET,
        expires_delta or timedelta(minutes=config.JWT_ACCESS_EXPIRES_MINUTES),
    )


def issue_refresh_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a refresh token carrying the user id and a fresh unique token id."""
    return _encode(
        {"userId": user_id, "tokenId": str(uuid.uuid4())},
        config.JWT_REFRESH_SECRET,
        expires_delta or timedelta(days=config.JWT_REFRESH_EXPIRES_DAYS),
    )


def refresh_token_lifetime() -> timedelta:
    return timedelta(days=config.JWT_REFRESH_EXPIRES_DAYS)


def verify_token(token: str, key: str) -> Dict[str, Any]:
    """
    Decode and validate a signed token.

    Raises:
        TokenInvalid: for expired, malformed or badly signed tokens alike
    """
    if not token:
        raise TokenInvalid()
    try:
        return jwt.decode(token, key, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise TokenInvalid()


def verify_access_token(token: str) -> Dict[str, Any]:
    claims = verify_token(token, config.JWT_SECRET)
    if not claims.get("userId"):
        raise TokenInvalid()
    return claims


def verify_refresh_token(token: str) -> Dict[str, Any]:
    claims = verify_token(token, config.JWT_REFRESH_SECRET)
    if not claims.get("userId") or not claims.get("tokenId"):
        raise TokenInvalid()
    return claims
