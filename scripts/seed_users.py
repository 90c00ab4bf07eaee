"""
Script to reset the users table to a fixed set of demo accounts.
Run: python -m scripts.seed_users
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.session import SessionLocal
from app.db.models.user import User, generate_user_id
from app.db.models.subscription import Subscription
from app.core.security import hash_password
from app.services.auth_service import generate_username
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED_PASSWORD = "Password1!"

SEED_USERS = [
    {"email": "alice@example.com", "first_name": "Alice", "last_name": "Johnson", "user_type": "candidate", "plan": "free"},
    {"email": "bob@example.com", "first_name": "Bob", "last_name": "Smith", "user_type": "candidate", "plan": "free"},
    {"email": "carol@example.com", "first_name": "Carol", "last_name": "Davis", "user_type": "candidate", "plan": "free"},
    {"email": "dan@techcorp.com", "first_name": "Dan", "last_name": "Brown", "user_type": "vendor", "plan": "pro"},
    {"email": "eve@startup.io", "first_name": "Eve", "last_name": "Wilson", "user_type": "vendor", "plan": "pro_plus"},
    {"email": "frank@agency.com", "first_name": "Frank", "last_name": "Miller", "user_type": "vendor", "plan": "free"},
]


def seed_users(db) -> int:
    """Delete every user (dependents cascade) and insert the demo accounts."""
    for existing in db.query(User).all():
        db.delete(existing)
    db.flush()

    password_hash = hash_password(SEED_PASSWORD)
    for entry in SEED_USERS:
        user_id = generate_user_id()
        user = User(
            id=user_id,
            email=entry["email"],
            password_hash=password_hash,
            first_name=entry["first_name"],
            last_name=entry["last_name"],
            user_type=entry["user_type"],
            username=generate_username(entry["first_name"], entry["last_name"], user_id),
            is_active=True,
        )
        user.subscription = Subscription(
            plan_type=entry["plan"],
            status="inactive" if entry["plan"] == "free" else "active",
        )
        db.add(user)
        logger.info(f"Created {entry['user_type']}: {entry['email']} [{entry['plan']}] -> id: {user_id}")

    db.commit()
    return len(SEED_USERS)


if __name__ == "__main__":
    db = SessionLocal()
    try:
        count = seed_users(db)
    except Exception:
        db.rollback()
        logger.error("Seeding failed", exc_info=True)
        sys.exit(1)
    finally:
        db.close()
    print(f"\n[SUCCESS] Seeded {count} users. All users password: {SEED_PASSWORD}")
