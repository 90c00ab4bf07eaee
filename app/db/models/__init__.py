"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from app.db.models.user import User
from app.db.models.subscription import Subscription
from app.db.models.refresh_token import RefreshToken
from app.db.models.candidate_payment import CandidatePayment

__all__ = [
    "User",
    "Subscription",
    "RefreshToken",
    "CandidatePayment",
]
