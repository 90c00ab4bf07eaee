"""
Candidate visibility aggregation.

Folds a candidate's completed one-time purchases into the membership config:
a map from job domain to the subdomains the candidate is discoverable under.
Visibility only ever grows, and the result depends on the set of payments
alone (not on their order or on what was stored before).
"""
import json
import logging
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from app.core.plans import DOMAIN_SUBDOMAINS
from app.core.errors import NotFound
from app.db.models.user import User
from app.db.models.candidate_payment import CandidatePayment

logger = logging.getLogger(__name__)

MembershipConfig = Dict[str, List[str]]


def parse_subdomains(raw) -> List[str]:
    """Decode a stored subdomain list; anything malformed reads as empty."""
    if isinstance(raw, list):
        values = raw
    else:
        try:
            values = json.loads(raw) if raw else []
        except (TypeError, ValueError):
            return []
    if not isinstance(values, list):
        return []
    return [v for v in values if isinstance(v, str) and v]


def parse_membership_config(raw: Optional[str]) -> Optional[MembershipConfig]:
    """Decode User.membership_config; malformed JSON reads as no config."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed membership_config")
        return None
    if not isinstance(data, dict):
        return None
    return {domain: parse_subdomains(subs) for domain, subs in data.items()}


def serialize_membership_config(membership: MembershipConfig) -> str:
    return json.dumps(membership, sort_keys=True, separators=(",", ":"))


def compute_membership_config(payments: Iterable[CandidatePayment]) -> MembershipConfig:
    """
    Merge completed payments into a single visibility map.

    - full_bundle: both domains get every subdomain
    - single_domain_bundle: the payment's domain gets every subdomain
    - base / subdomain_addon: the payment's subdomains are added to its domain
    Rows without a domain or subdomains contribute nothing.

    Subdomain lists are returned sorted so equal payment sets give equal output.
    """
    merged: Dict[str, Set[str]] = {}

    for payment in payments:
        package_type = payment.package_type
        domain = payment.domain or None

        if package_type == "full_bundle":
            for name, subdomains in DOMAIN_SUBDOMAINS.items():
                merged.setdefault(name, set()).update(subdomains)
        elif package_type == "single_domain_bundle" and domain:
            full_set = DOMAIN_SUBDOMAINS.get(domain)
            if full_set is None:
                logger.warning(f"Skipping payment with unknown domain: {domain}")
                continue
            merged.setdefault(domain, set()).update(full_set)
        elif domain:
            subdomains = parse_subdomains(payment.subdomains)
            if subdomains:
                merged.setdefault(domain, set()).update(subdomains)

    return {domain: sorted(subs) for domain, subs in sorted(merged.items())}


def locked_user_query(db: Session, user_id: str):
    """SELECT ... FOR UPDATE on the user row; a no-op lock on SQLite."""
    return db.query(User).filter(User.id == user_id).with_for_update()


def refresh_user_visibility(db: Session, user_id: str) -> MembershipConfig:
    """
    Recompute and store a user's membership config from all completed payments.

    The user row is locked first, so concurrent recomputes for one user run
    one after the other and the later one reads every committed payment.
    The caller owns the transaction; this only flushes.
    """
    user = locked_user_query(db, user_id).first()
    if not user:
        raise NotFound(f"User not found: {user_id}")

    payments = db.query(CandidatePayment).filter(
        CandidatePayment.user_id == user_id,
        CandidatePayment.status == "completed",
    ).all()

    membership = compute_membership_config(payments)
    user.membership_config = serialize_membership_config(membership)
    user.has_purchased_visibility = True
    db.flush()

    logger.info(f"Candidate visibility updated: user_id={user_id}, config={membership}")
    return membership
