import uuid
from sqlalchemy import Column, String, Boolean, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


def generate_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Marketplace account (candidate or vendor).

    membership_config holds the serialized visibility map computed from the
    user's completed candidate payments, e.g. {"contract": ["c2c", "w2"]}.
    It is always recomputed in full, never patched.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_user_id)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=True)  # null for Google-only accounts
    google_id = Column(String, unique=True, index=True, nullable=True)

    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    username = Column(String, unique=True, index=True, nullable=True)
    user_type = Column(String, nullable=False, default="candidate")  # candidate | vendor
    is_active = Column(Boolean, nullable=False, default=True)

    has_purchased_visibility = Column(Boolean, nullable=False, default=False)
    membership_config = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Dependents are removed in the same transaction as the user
    subscription = relationship(
        "Subscription", back_populates="user", uselist=False,
        cascade="all, delete-orphan",
    )
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user",
        cascade="all, delete-orphan",
    )
    candidate_payments = relationship(
        "CandidatePayment", back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def plan(self) -> str:
        if self.subscription and self.subscription.plan_type:
            return self.subscription.plan_type
        return "free"

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', user_type='{self.user_type}')>"
