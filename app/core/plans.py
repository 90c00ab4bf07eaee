"""
Vendor plans, candidate visibility packages and the job-domain vocabulary.

Single source of truth for what can be bought and which Stripe price backs it.
"""
from typing import Dict, List, Optional

from app.core import config

# Job domains and the subdomains a candidate can be visible under
CONTRACT_SUBDOMAINS: List[str] = ["c2c", "c2h", "w2", "1099"]
FULLTIME_SUBDOMAINS: List[str] = ["c2h", "w2", "direct_hire", "salary"]

DOMAIN_SUBDOMAINS: Dict[str, List[str]] = {
    "contract": CONTRACT_SUBDOMAINS,
    "full_time": FULLTIME_SUBDOMAINS,
}

PACKAGE_TYPES: List[str] = ["base", "subdomain_addon", "single_domain_bundle", "full_bundle"]

VENDOR_PLAN_DEFINITIONS: List[Dict] = [
    {
        "id": "free",
        "name": "Vendor Free",
        "price": 0,
        "interval": None,
        "features": ["1 active job posting", "Top 3 candidate matches", "Basic analytics"],
        "stripe_price_id": "",
    },
    {
        "id": "basic",
        "name": "Vendor Basic",
        "price": 29,
        "interval": "month",
        "features": ["5 active job postings", "Top 25 candidate matches", "Basic analytics"],
        "stripe_price_id": config.STRIPE_PRICE_BASIC,
    },
    {
        "id": "pro",
        "name": "Vendor Pro",
        "price": 49,
        "interval": "month",
        "features": ["10 active job postings", "Unlimited candidate matches", "Advanced analytics", "Priority support"],
        "stripe_price_id": config.STRIPE_PRICE_PRO,
        "highlighted": True,
    },
    {
        "id": "pro_plus",
        "name": "Vendor Pro Plus",
        "price": 149,
        "interval": "month",
        "features": ["Unlimited job postings", "Unlimited matches", "Dedicated account manager", "API access"],
        "stripe_price_id": config.STRIPE_PRICE_PRO_PLUS,
    },
]

CANDIDATE_PACKAGES: List[Dict] = [
    {
        "id": "base",
        "name": "Base Visibility",
        "price": 5,
        "description": "Be visible in one subdomain of one job domain",
        "stripe_price_id": config.STRIPE_PRICE_CANDIDATE_BASE,
    },
    {
        "id": "subdomain_addon",
        "name": "Subdomain Add-on",
        "price": 2,
        "description": "Each additional subdomain within a domain",
        "stripe_price_id": config.STRIPE_PRICE_CANDIDATE_ADDON,
    },
    {
        "id": "single_domain_bundle",
        "name": "Single Domain Bundle",
        "price": 10,
        "description": "Every subdomain of one job domain",
        "stripe_price_id": config.STRIPE_PRICE_CANDIDATE_SINGLE_DOMAIN,
    },
    {
        "id": "full_bundle",
        "name": "Full Bundle",
        "price": 18,
        "description": "Every subdomain of both contract and full-time",
        "stripe_price_id": config.STRIPE_PRICE_CANDIDATE_FULL_BUNDLE,
    },
]


def get_vendor_plan(plan_id: Optional[str]) -> Optional[Dict]:
    return next((p for p in VENDOR_PLAN_DEFINITIONS if p["id"] == plan_id), None)


def get_candidate_package(package_id: Optional[str]) -> Optional[Dict]:
    return next((p for p in CANDIDATE_PACKAGES if p["id"] == package_id), None)


def get_plan_from_price_id(price_id: Optional[str]) -> str:
    """Map a Stripe price id to a vendor plan tier; unknown prices fall back to free."""
    if not price_id:
        return "free"
    for plan in VENDOR_PLAN_DEFINITIONS:
        if plan["stripe_price_id"] and plan["stripe_price_id"] == price_id:
            return plan["id"]
    return "free"


def public_plans(definitions: List[Dict]) -> List[Dict]:
    """Catalog entries as returned to clients (price ids are internal)."""
    return [{k: v for k, v in d.items() if k != "stripe_price_id"} for d in definitions]
