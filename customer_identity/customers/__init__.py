"""
Customer Identity Module

Matches partial customer identifiers against partner customer records and
bookings, and builds unified customer profiles from the best match.
"""

from .aggregator import (
    CustomerProfileAggregator,
    compute_booking_stats,
    get_customer_profile_aggregator,
    get_unified_customer,
)
from .matcher import CustomerMatcher, find_customer_matches, get_customer_matcher
from .normalization import confidence_rank, normalize_email, normalize_phone
from .partner_stats import PartnerCustomerStatsService, get_partner_customer_stats_service
from .store import CustomerStore, SqlCustomerStore, get_customer_store
from .types import (
    BookingRecord,
    CoreIdentity,
    CustomerIdentifier,
    CustomerMatch,
    CustomerStats,
    MatchConfidence,
    MatchField,
    MatchSource,
    PartnerCustomerDetail,
    PartnerCustomerRecord,
    UnifiedCustomer,
)

__all__ = [
    "CustomerProfileAggregator",
    "compute_booking_stats",
    "get_customer_profile_aggregator",
    "get_unified_customer",
    "CustomerMatcher",
    "find_customer_matches",
    "get_customer_matcher",
    "confidence_rank",
    "normalize_email",
    "normalize_phone",
    "PartnerCustomerStatsService",
    "get_partner_customer_stats_service",
    "CustomerStore",
    "SqlCustomerStore",
    "get_customer_store",
    "BookingRecord",
    "CoreIdentity",
    "CustomerIdentifier",
    "CustomerMatch",
    "CustomerStats",
    "MatchConfidence",
    "MatchField",
    "MatchSource",
    "PartnerCustomerDetail",
    "PartnerCustomerRecord",
    "UnifiedCustomer",
]
