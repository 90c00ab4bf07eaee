"""
Pydantic schemas for billing endpoints.
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class VendorCheckoutRequest(BaseModel):
    """Request schema for a vendor subscription checkout."""
    plan_id: str = Field(..., alias="planId", description="Plan: 'basic', 'pro' or 'pro_plus'")

    model_config = ConfigDict(populate_by_name=True, json_schema_extra={
        "example": {"planId": "pro"}
    })


class CandidateCheckoutRequest(BaseModel):
    """Request schema for a one-time candidate visibility purchase."""
    package_id: Optional[str] = Field(
        default=None,
        alias="packageId",
        description="base | subdomain_addon | single_domain_bundle | full_bundle",
    )
    domain: Optional[Literal["contract", "full_time"]] = Field(default=None)
    subdomains: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, json_schema_extra={
        "example": {
            "packageId": "base",
            "domain": "contract",
            "subdomains": ["c2c"]
        }
    })


class CheckoutResponse(BaseModel):
    """Response schema for checkout and portal session creation."""
    url: str = Field(..., description="Stripe hosted page URL")

    model_config = ConfigDict(json_schema_extra={
        "example": {"url": "https://checkout.stripe.com/c/pay/cs_test_..."}
    })


class BillingErrorResponse(BaseModel):
    """Error response schema for billing operations."""
    error: str = Field(..., description="Error message")
    details: Optional[list] = Field(None, description="Additional error details")
