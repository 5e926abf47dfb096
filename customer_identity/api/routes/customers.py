"""
Customer Identity API Routes

Endpoints for identity matching, unified customer profiles and partner
customer detail with refreshed booking stats.
"""

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from customer_identity.customers.aggregator import (
    CustomerProfileAggregator,
    get_customer_profile_aggregator,
)
from customer_identity.customers.matcher import CustomerMatcher, get_customer_matcher
from customer_identity.customers.partner_stats import (
    PartnerCustomerStatsService,
    get_partner_customer_stats_service,
)
from customer_identity.customers.types import (
    CustomerIdentifier,
    CustomerMatch,
    PartnerCustomerDetail,
    UnifiedCustomer,
)
from customer_identity.errors import NotFoundError, ValidationError

logger = structlog.get_logger()

router = APIRouter(tags=["Customers"])


class CustomerMatchesResponse(BaseModel):
    """Ranked candidate identities."""

    matches: list[CustomerMatch]
    total: int


def _require_identifier(identifier: CustomerIdentifier) -> None:
    if identifier.is_empty():
        raise ValidationError(
            message="At least one of email, phone or name is required",
            code="customer.identifier_required",
        )


@router.post("/customers/matches", response_model=CustomerMatchesResponse)
async def find_matches(
    identifier: CustomerIdentifier,
    matcher: CustomerMatcher = Depends(get_customer_matcher),
):
    """
    Find candidate identities for an email, phone and/or name.
    """
    _require_identifier(identifier)
    logger.info("Finding customer matches", **identifier.log_context())

    matches = await matcher.find_customer_matches(identifier)
    return CustomerMatchesResponse(matches=matches, total=len(matches))


@router.post("/customers/unified", response_model=UnifiedCustomer)
async def unified_customer(
    identifier: CustomerIdentifier,
    aggregator: CustomerProfileAggregator = Depends(get_customer_profile_aggregator),
):
    """
    Build the unified profile of the best-matching customer.

    Returns 404 both when nothing matched and when the lookup failed.
    """
    _require_identifier(identifier)

    profile = await aggregator.get_unified_customer(identifier)
    if profile is None:
        raise NotFoundError(message="Customer not found", code="customer.not_found")
    return profile


@router.get(
    "/partners/{partner_id}/customers/{customer_id}",
    response_model=PartnerCustomerDetail,
)
async def partner_customer_detail(
    partner_id: str,
    customer_id: str,
    service: PartnerCustomerStatsService = Depends(get_partner_customer_stats_service),
):
    """
    Get a partner customer with its bookings, refreshing cached booking stats.
    """
    detail = await service.refresh_partner_customer_stats(partner_id, customer_id)
    if detail is None:
        raise NotFoundError(message="Customer not found", code="customer.not_found")
    return detail
