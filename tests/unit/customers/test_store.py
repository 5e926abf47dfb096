from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest
from sqlalchemy.exc import OperationalError

from customer_identity.customers.store import SqlCustomerStore, escape_like
from customer_identity.errors import CustomerStoreError


def _session_returning(rows):
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    session = AsyncMock()
    session.execute.return_value = result
    return session


def _fake_session_factory(session):
    @asynccontextmanager
    async def fake_session():
        yield session

    return fake_session


def _executed(session):
    call = session.execute.call_args
    statement, params = call.args
    return str(statement), params


def test_escape_like_escapes_wildcards():
    assert escape_like("a_b") == "a\\_b"
    assert escape_like("100%") == "100\\%"
    assert escape_like("back\\slash") == "back\\\\slash"


@pytest.mark.asyncio
async def test_rows_are_mapped_to_records():
    customer_uuid = UUID("11111111-2222-3333-4444-555555555555")
    session = _session_returning(
        [
            {
                "id": customer_uuid,
                "partner_id": UUID("99999999-2222-3333-4444-555555555555"),
                "name": "Sari",
                "email": "sari@example.com",
                "phone": "0811",
                "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
                "booking_count": 2,
                "total_spent": 300,
                "last_trip_date": date(2024, 2, 1),
            }
        ]
    )

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        records = await SqlCustomerStore().partner_customers_by_email("sari@example.com", 10)

    assert len(records) == 1
    assert records[0].id == str(customer_uuid)
    assert records[0].total_spent == 300.0
    sql, params = _executed(session)
    assert "WHERE email = :email" in sql
    assert params == {"email": "sari@example.com", "limit": 10}


@pytest.mark.asyncio
async def test_malformed_rows_are_skipped():
    session = _session_returning(
        [
            {"id": "B1", "customer_id": "C1", "total_amount": 10.0},
            {"id": "B2", "customer_id": "C1", "total_amount": "not-a-number"},
        ]
    )

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        records = await SqlCustomerStore().bookings_by_email("a@b.com", 10)

    assert [r.id for r in records] == ["B1"]


@pytest.mark.asyncio
async def test_database_errors_raise_store_error():
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        with pytest.raises(CustomerStoreError) as exc_info:
            await SqlCustomerStore().scan_partner_customers(100)

    assert exc_info.value.meta["operation"] == "scan_partner_customers"
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_scan_is_ordered_and_bounded():
    session = _session_returning([])

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        await SqlCustomerStore().scan_bookings(100)

    sql, params = _executed(session)
    assert "ORDER BY created_at DESC NULLS LAST, id" in sql
    assert params == {"limit": 100}


@pytest.mark.asyncio
async def test_name_search_escapes_pattern():
    session = _session_returning([])

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        await SqlCustomerStore().partner_customers_by_name("a_b", 20)

    sql, params = _executed(session)
    assert "name ILIKE :pattern" in sql
    assert params == {"pattern": "%a\\_b%", "limit": 20}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "criteria,column,value",
    [
        ({"customer_id": "C1", "email": "a@b.com", "phone": "0811"}, "customer_id", "C1"),
        ({"customer_id": None, "email": "a@b.com", "phone": "0811"}, "customer_email", "a@b.com"),
        ({"customer_id": None, "email": None, "phone": "0811"}, "customer_phone", "0811"),
    ],
)
async def test_booking_history_filters_on_first_available_field(criteria, column, value):
    session = _session_returning([])

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        await SqlCustomerStore().booking_history(**criteria, limit=50)

    sql, params = _executed(session)
    assert f"WHERE {column} = :value" in sql
    assert "ORDER BY created_at DESC" in sql
    assert params == {"value": value, "limit": 50}


@pytest.mark.asyncio
async def test_booking_history_without_criteria_skips_query():
    session = _session_returning([])

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        records = await SqlCustomerStore().booking_history(limit=50)

    assert records == []
    session.execute.assert_not_called()


@pytest.mark.asyncio
async def test_partner_bookings_match_email_or_phone():
    session = _session_returning([])

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        await SqlCustomerStore().partner_bookings_by_contact(
            "mitra-1", email="a@b.com", phone="0811", limit=50
        )

    sql, params = _executed(session)
    assert "mitra_id = :partner_id" in sql
    assert "(customer_email = :email OR customer_phone = :phone)" in sql
    assert "ORDER BY trip_date DESC" in sql
    assert params == {"partner_id": "mitra-1", "email": "a@b.com", "phone": "0811", "limit": 50}


@pytest.mark.asyncio
async def test_get_partner_customer_excludes_deleted():
    session = _session_returning([])

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        record = await SqlCustomerStore().get_partner_customer("mitra-1", "P1")

    assert record is None
    sql, _ = _executed(session)
    assert "deleted_at IS NULL" in sql


@pytest.mark.asyncio
async def test_update_stats_writes_cached_columns():
    session = AsyncMock()

    with patch("customer_identity.customers.store.get_db_session", _fake_session_factory(session)):
        await SqlCustomerStore().update_partner_customer_stats(
            "P1", booking_count=2, total_spent=200.0, last_trip_date=date(2024, 4, 2)
        )

    sql, params = _executed(session)
    assert "UPDATE partner_customers" in sql
    assert params == {
        "customer_id": "P1",
        "booking_count": 2,
        "total_spent": 200.0,
        "last_trip_date": date(2024, 4, 2),
    }
