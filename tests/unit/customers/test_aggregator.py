from datetime import date, datetime, timezone

import pytest

from customer_identity.customers.aggregator import (
    CustomerProfileAggregator,
    compute_booking_stats,
    conflicting_high_matches,
    expansion_ids,
)
from customer_identity.customers.types import (
    BookingRecord,
    CustomerIdentifier,
    CustomerMatch,
    MatchConfidence,
    MatchSource,
)


def _match(customer_id, source=MatchSource.PARTNER, confidence=MatchConfidence.HIGH, **fields):
    return CustomerMatch(
        customer_id=customer_id,
        source=source,
        confidence=confidence,
        match_reason="Email match in partner customers",
        **fields,
    )


def _at(day: int) -> datetime:
    return datetime(2024, 1, day, tzinfo=timezone.utc)


class TestComputeBookingStats:
    def test_stats_for_bookings(self):
        bookings = [
            BookingRecord(id="B1", total_amount=300.0, trip_date=date(2024, 3, 1)),
            BookingRecord(id="B2", total_amount=100.0, trip_date=date(2024, 5, 10)),
            BookingRecord(id="B3", total_amount=None, trip_date=None),
        ]

        stats = compute_booking_stats(bookings)

        assert stats.total_bookings == 3
        assert stats.total_spent == 400.0
        assert stats.last_trip_date == date(2024, 5, 10)
        assert stats.average_booking_value == pytest.approx(400.0 / 3)

    def test_does_not_reorder_input(self):
        bookings = [
            BookingRecord(id="B1", trip_date=date(2024, 1, 1)),
            BookingRecord(id="B2", trip_date=date(2024, 6, 1)),
        ]

        compute_booking_stats(bookings)

        assert [b.id for b in bookings] == ["B1", "B2"]

    def test_no_bookings_has_zero_average(self):
        stats = compute_booking_stats([])

        assert stats.total_bookings == 0
        assert stats.total_spent == 0.0
        assert stats.last_trip_date is None
        assert stats.average_booking_value == 0.0


class TestExpansionIds:
    def test_primary_then_partner_ids(self):
        matches = [
            _match("C1", source=MatchSource.BOOKING),
            _match("P1"),
            _match("C2", source=MatchSource.BOOKING),
            _match("P2", confidence=MatchConfidence.LOW),
        ]

        assert expansion_ids(matches) == ["C1", "P1", "P2"]

    def test_primary_partner_is_not_repeated(self):
        assert expansion_ids([_match("P1"), _match("P2")]) == ["P1", "P2"]


class TestConflictingHighMatches:
    def test_disagreeing_high_candidates_are_reported(self):
        matches = [
            _match("P1", name="Andi", email="a@b.com"),
            _match("C1", source=MatchSource.BOOKING, name="Andi Wijaya", email="a@b.com"),
            _match("P2", confidence=MatchConfidence.MEDIUM, name="Someone"),
        ]

        assert [m.customer_id for m in conflicting_high_matches(matches)] == ["C1"]

    def test_same_identity_is_not_a_conflict(self):
        matches = [
            _match("P1", name="Andi", email="a@b.com"),
            _match("C1", source=MatchSource.BOOKING, name="andi", email="A@B.com"),
        ]

        assert conflicting_high_matches(matches) == []

    def test_phone_formats_of_the_same_number_agree(self):
        matches = [
            _match("P1", name="Andi", email="a@b.com", phone="0812345678"),
            _match("C1", source=MatchSource.BOOKING, name="Andi", email="a@b.com", phone="+62 812-345-678"),
        ]

        assert conflicting_high_matches(matches) == []

    def test_non_high_primary_is_never_ambiguous(self):
        matches = [
            _match("P1", confidence=MatchConfidence.MEDIUM, name="A"),
            _match("P2", confidence=MatchConfidence.MEDIUM, name="B"),
        ]

        assert conflicting_high_matches(matches) == []


class TestGetUnifiedCustomer:
    @pytest.mark.asyncio
    async def test_no_matches_returns_none(self, store, settings):
        aggregator = CustomerProfileAggregator(store=store, settings=settings)

        result = await aggregator.get_unified_customer(CustomerIdentifier(email="nobody@x.com"))

        assert result is None
        assert not store.called("booking_history")

    @pytest.mark.asyncio
    async def test_profile_from_top_match(self, store, settings):
        store.add_partner_customer(
            id="P1", partner_id="mitra-1", name="Sari", email="sari@example.com", phone="0811"
        )
        store.add_booking(
            id="B1", customer_id="P1", total_amount=200.0, trip_date=date(2024, 2, 1), created_at=_at(1)
        )
        store.add_booking(
            id="B2", customer_id="P1", total_amount=100.0, trip_date=date(2024, 1, 15), created_at=_at(5)
        )
        store.add_booking(id="B3", customer_id="OTHER", total_amount=999.0, created_at=_at(9))

        aggregator = CustomerProfileAggregator(store=store, settings=settings)
        profile = await aggregator.get_unified_customer(CustomerIdentifier(email="sari@example.com"))

        assert profile is not None
        assert profile.id == "P1"
        assert profile.core.name == "Sari"
        assert profile.core.email == "sari@example.com"
        assert [pc.id for pc in profile.partner_customers] == ["P1"]
        # Most recently created first; order kept after computing stats
        assert [b.id for b in profile.bookings] == ["B2", "B1"]
        assert profile.stats.total_bookings == 2
        assert profile.stats.total_spent == 300.0
        assert profile.stats.last_trip_date == date(2024, 2, 1)
        assert profile.stats.average_booking_value == 150.0

    @pytest.mark.asyncio
    async def test_history_uses_limits_and_primary_identity(self, store, settings):
        store.add_partner_customer(id="P1", name="Sari", email="sari@example.com", phone="0811")

        aggregator = CustomerProfileAggregator(store=store, settings=settings)
        await aggregator.get_unified_customer(CustomerIdentifier(email="sari@example.com"))

        assert ("partner_customers_by_id", {"customer_id": "P1", "limit": 10}) in store.calls
        assert (
            "booking_history",
            {"customer_id": "P1", "email": "sari@example.com", "phone": "0811", "limit": 50},
        ) in store.calls

    @pytest.mark.asyncio
    async def test_booking_sourced_primary_without_history(self, store, settings):
        store.add_booking(id="B1", customer_id="C1", customer_name="Guest", customer_email="g@x.com")

        aggregator = CustomerProfileAggregator(store=store, settings=settings)
        profile = await aggregator.get_unified_customer(CustomerIdentifier(email="g@x.com"))

        assert profile is not None
        assert profile.id == "C1"
        assert profile.partner_customers == []
        assert profile.stats.total_bookings == 1

    @pytest.mark.asyncio
    async def test_profile_with_no_bookings_has_zero_stats(self, store, settings):
        store.add_partner_customer(id="P1", name="Sari", email="sari@example.com")

        aggregator = CustomerProfileAggregator(store=store, settings=settings)
        profile = await aggregator.get_unified_customer(CustomerIdentifier(email="sari@example.com"))

        assert profile.bookings == []
        assert profile.stats.total_bookings == 0
        assert profile.stats.average_booking_value == 0.0

    @pytest.mark.asyncio
    async def test_store_failure_returns_none(self, store, settings):
        store.add_partner_customer(id="P1", name="Sari", email="sari@example.com")
        store.failing.add("booking_history")

        aggregator = CustomerProfileAggregator(store=store, settings=settings)
        result = await aggregator.get_unified_customer(CustomerIdentifier(email="sari@example.com"))

        assert result is None
