import os
from typing import Optional

# ✅ Environment
APP_ENV = os.getenv("APP_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"


def require_secret(name: str, app_env: str, dev_default: Optional[str] = None) -> str:
    """Read a signing secret; only APP_ENV=development may fall back to dev_default."""
    value = os.getenv(name)
    if value:
        return value
    if app_env == "development" and dev_default:
        return dev_default
    raise RuntimeError(f"{name} must be set when APP_ENV={app_env}")


# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./matchdb.db")

# ✅ JWT
JWT_SECRET = require_secret("JWT_SECRET", APP_ENV, dev_default="dev-access-secret")
JWT_REFRESH_SECRET = require_secret("JWT_REFRESH_SECRET", APP_ENV, dev_default="dev-refresh-secret")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_EXPIRES_MINUTES = int(os.getenv("JWT_ACCESS_EXPIRES_MINUTES", "60"))
JWT_REFRESH_EXPIRES_DAYS = int(os.getenv("JWT_REFRESH_EXPIRES_DAYS", "7"))

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")

# Vendor recurring plans
STRIPE_PRICE_BASIC = os.getenv("STRIPE_PRICE_BASIC", "")
STRIPE_PRICE_PRO = os.getenv("STRIPE_PRICE_PRO", "")
STRIPE_PRICE_PRO_PLUS = os.getenv("STRIPE_PRICE_PRO_PLUS", "")

# Candidate one-time visibility packages
STRIPE_PRICE_CANDIDATE_BASE = os.getenv("STRIPE_PRICE_CANDIDATE_BASE", "")
STRIPE_PRICE_CANDIDATE_ADDON = os.getenv("STRIPE_PRICE_CANDIDATE_ADDON", "")
STRIPE_PRICE_CANDIDATE_SINGLE_DOMAIN = os.getenv("STRIPE_PRICE_CANDIDATE_SINGLE_DOMAIN", "")
STRIPE_PRICE_CANDIDATE_FULL_BUNDLE = os.getenv("STRIPE_PRICE_CANDIDATE_FULL_BUNDLE", "")

# ✅ SendGrid
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "noreply@matchdb.io")
SENDGRID_FROM_NAME = os.getenv("SENDGRID_FROM_NAME", "MatchDB")

# ✅ Google OAuth
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_CALLBACK_URL = os.getenv("GOOGLE_CALLBACK_URL", "http://localhost:8000/api/auth/google/callback")

# ✅ Frontend
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:4000").split(",")
    if origin.strip()
]
