from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class CandidatePayment(Base):
    """
    One completed one-time visibility purchase.

    stripe_session_id is the idempotency key for webhook deliveries.
    Rows are never updated after insertion.
    """
    __tablename__ = "candidate_payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_session_id = Column(String, unique=True, nullable=False)
    stripe_payment_intent_id = Column(String, nullable=True)

    package_type = Column(String, nullable=False)  # base | subdomain_addon | single_domain_bundle | full_bundle
    domain = Column(String, nullable=True)  # contract | full_time
    subdomains = Column(Text, nullable=False, default="[]")  # JSON list of subdomain strings
    amount_cents = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="completed")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="candidate_payments")

    __table_args__ = (
        Index("idx_candidate_payments_user_status", "user_id", "status"),
    )
