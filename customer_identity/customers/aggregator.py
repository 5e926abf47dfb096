"""
Customer Profile Aggregator

Builds a unified customer profile from the matcher's top candidate:
related partner customer records, booking history and simple booking
statistics. Profiles are assembled per request and never stored.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from customer_identity.config import Settings, get_settings
from customer_identity.customers.matcher import CustomerMatcher
from customer_identity.customers.normalization import (
    normalize_email,
    normalize_name,
    normalize_phone,
)
from customer_identity.customers.store import CustomerStore, get_customer_store
from customer_identity.customers.types import (
    BookingRecord,
    CoreIdentity,
    CustomerIdentifier,
    CustomerMatch,
    CustomerStats,
    MatchConfidence,
    MatchSource,
    PartnerCustomerRecord,
    UnifiedCustomer,
)
from customer_identity.monitoring import get_metrics

logger = structlog.get_logger()


def compute_booking_stats(bookings: Sequence[BookingRecord]) -> CustomerStats:
    """Count, total, latest trip and average value. Leaves `bookings` untouched."""
    total_bookings = len(bookings)
    total_spent = sum(b.total_amount or 0.0 for b in bookings)
    trip_dates = [b.trip_date for b in bookings if b.trip_date is not None]

    return CustomerStats(
        total_bookings=total_bookings,
        total_spent=total_spent,
        last_trip_date=max(trip_dates) if trip_dates else None,
        average_booking_value=total_spent / total_bookings if total_bookings else 0.0,
    )


def expansion_ids(matches: Sequence[CustomerMatch]) -> list[str]:
    """Primary id followed by every partner-sourced candidate id, unique, in order."""
    ids = [matches[0].customer_id]
    for match in matches:
        if match.source == MatchSource.PARTNER and match.customer_id not in ids:
            ids.append(match.customer_id)
    return ids


def conflicting_high_matches(matches: Sequence[CustomerMatch]) -> list[CustomerMatch]:
    """High-confidence candidates whose contact fields disagree with the primary."""
    primary = matches[0]
    if primary.confidence != MatchConfidence.HIGH:
        return []

    def core(m: CustomerMatch) -> tuple[str | None, str | None, str | None]:
        return (
            normalize_name(m.name),
            normalize_email(m.email),
            normalize_phone(m.phone),
        )

    return [
        m
        for m in matches[1:]
        if m.confidence == MatchConfidence.HIGH and core(m) != core(primary)
    ]


class CustomerProfileAggregator:
    """Assembles `UnifiedCustomer` profiles from matcher output."""

    def __init__(
        self,
        store: CustomerStore | None = None,
        matcher: CustomerMatcher | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._store = store or get_customer_store()
        self._matcher = matcher or CustomerMatcher(store=self._store, settings=self._settings)

    async def get_unified_customer(
        self, identifier: CustomerIdentifier
    ) -> UnifiedCustomer | None:
        """
        Resolve an identifier to a unified customer profile.

        Args:
            identifier: Any combination of email, phone and name

        Returns:
            UnifiedCustomer built from the top match, or None when nothing
            matched or the lookup failed
        """
        with get_metrics().time_aggregation() as timing:
            try:
                profile = await self._build_profile(identifier)
            except Exception as e:
                logger.error(
                    "Failed to build unified customer",
                    error=str(e),
                    **identifier.log_context(),
                )
                return None

            timing["outcome"] = "found" if profile else "not_found"
            return profile

    async def _build_profile(
        self, identifier: CustomerIdentifier
    ) -> UnifiedCustomer | None:
        matches = await self._matcher.find_customer_matches(identifier)
        if not matches:
            logger.info("No customer matches", **identifier.log_context())
            return None

        primary = matches[0]
        conflicts = conflicting_high_matches(matches)
        if conflicts:
            logger.warning(
                "Ambiguous customer identity, using top-ranked match",
                primary_id=primary.customer_id,
                conflicting_ids=[m.customer_id for m in conflicts],
            )

        partner_customers: list[PartnerCustomerRecord] = []
        for customer_id in expansion_ids(matches):
            partner_customers.extend(
                await self._store.partner_customers_by_id(
                    customer_id, self._settings.partner_customer_fetch_limit
                )
            )

        bookings = await self._store.booking_history(
            customer_id=primary.customer_id,
            email=primary.email,
            phone=primary.phone,
            limit=self._settings.booking_history_limit,
        )

        stats = compute_booking_stats(bookings)

        logger.info(
            "Unified customer built",
            customer_id=primary.customer_id,
            confidence=primary.confidence.value,
            partner_customers=len(partner_customers),
            bookings=stats.total_bookings,
        )

        return UnifiedCustomer(
            id=primary.customer_id,
            core=CoreIdentity(
                name=primary.name,
                email=primary.email,
                phone=primary.phone,
            ),
            partner_customers=partner_customers,
            bookings=bookings,
            stats=stats,
        )


# Singleton instance
_aggregator: CustomerProfileAggregator | None = None


def get_customer_profile_aggregator() -> CustomerProfileAggregator:
    """Get or create the customer profile aggregator."""
    global _aggregator
    if _aggregator is None:
        _aggregator = CustomerProfileAggregator()
    return _aggregator


async def get_unified_customer(identifier: CustomerIdentifier) -> UnifiedCustomer | None:
    """Resolve a unified customer using the shared aggregator."""
    return await get_customer_profile_aggregator().get_unified_customer(identifier)
