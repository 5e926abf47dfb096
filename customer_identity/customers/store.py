"""
Customer Data Access

Reads partner customer records and bookings for identity matching and
profile aggregation. Queries are plain parameterized SQL over the
`partner_customers` and `bookings` tables; rows are mapped to explicit
record types here so nothing downstream handles raw database rows.

Every failed query raises `CustomerStoreError`. Deciding whether a failure
should surface or be absorbed is left to the caller.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Protocol, TypeVar

import structlog
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from customer_identity.customers.types import BookingRecord, PartnerCustomerRecord
from customer_identity.db.client import get_db_session
from customer_identity.errors import CustomerStoreError

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=BaseModel)

PARTNER_CUSTOMER_COLUMNS = """
    id, partner_id, name, email, phone, created_at,
    booking_count, total_spent, last_trip_date
"""

BOOKING_COLUMNS = """
    id, customer_id, customer_name, customer_email, customer_phone,
    total_amount, trip_date, created_at, status, booking_code, mitra_id
"""


class CustomerStore(Protocol):
    """Read/write surface the matcher and aggregator depend on."""

    async def partner_customers_by_email(self, email: str, limit: int) -> list[PartnerCustomerRecord]:
        ...

    async def bookings_by_email(self, email: str, limit: int) -> list[BookingRecord]:
        ...

    async def scan_partner_customers(self, limit: int) -> list[PartnerCustomerRecord]:
        ...

    async def scan_bookings(self, limit: int) -> list[BookingRecord]:
        ...

    async def partner_customers_by_name(self, name: str, limit: int) -> list[PartnerCustomerRecord]:
        ...

    async def bookings_by_customer_name(self, name: str, limit: int) -> list[BookingRecord]:
        ...

    async def partner_customers_by_id(self, customer_id: str, limit: int) -> list[PartnerCustomerRecord]:
        ...

    async def booking_history(
        self,
        *,
        customer_id: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        limit: int,
    ) -> list[BookingRecord]:
        ...

    async def get_partner_customer(self, partner_id: str, customer_id: str) -> PartnerCustomerRecord | None:
        ...

    async def partner_bookings_by_contact(
        self,
        partner_id: str,
        *,
        email: str | None,
        phone: str | None,
        limit: int,
    ) -> list[BookingRecord]:
        ...

    async def update_partner_customer_stats(
        self,
        customer_id: str,
        *,
        booking_count: int,
        total_spent: float,
        last_trip_date: date | None,
    ) -> None:
        ...


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _map_rows(rows: Iterable[Any], model: type[RecordT], table: str) -> list[RecordT]:
    records: list[RecordT] = []
    for row in rows:
        data = dict(row)
        try:
            records.append(model.model_validate(data))
        except PydanticValidationError as e:
            logger.warning(
                "Skipping malformed row",
                table=table,
                row_id=data.get("id"),
                error=str(e),
            )
    return records


class SqlCustomerStore:
    """`CustomerStore` backed by the shared async SQLAlchemy session."""

    async def _fetch(
        self,
        operation: str,
        sql: str,
        params: dict[str, Any],
    ) -> list[Any]:
        try:
            async with get_db_session() as session:
                result = await session.execute(text(sql), params)
                return list(result.mappings().all())
        except SQLAlchemyError as e:
            logger.warning("Customer store query failed", operation=operation, error=str(e))
            raise CustomerStoreError(operation=operation) from e

    async def _partner_customers(
        self, operation: str, sql: str, params: dict[str, Any]
    ) -> list[PartnerCustomerRecord]:
        rows = await self._fetch(operation, sql, params)
        return _map_rows(rows, PartnerCustomerRecord, "partner_customers")

    async def _bookings(
        self, operation: str, sql: str, params: dict[str, Any]
    ) -> list[BookingRecord]:
        rows = await self._fetch(operation, sql, params)
        return _map_rows(rows, BookingRecord, "bookings")

    # ------------------------------------------------------------------
    # Matching lookups
    # ------------------------------------------------------------------

    async def partner_customers_by_email(self, email: str, limit: int) -> list[PartnerCustomerRecord]:
        return await self._partner_customers(
            "partner_customers_by_email",
            f"""
            SELECT {PARTNER_CUSTOMER_COLUMNS}
            FROM partner_customers
            WHERE email = :email
            LIMIT :limit
            """,
            {"email": email, "limit": limit},
        )

    async def bookings_by_email(self, email: str, limit: int) -> list[BookingRecord]:
        return await self._bookings(
            "bookings_by_email",
            f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            WHERE customer_email = :email
            LIMIT :limit
            """,
            {"email": email, "limit": limit},
        )

    async def scan_partner_customers(self, limit: int) -> list[PartnerCustomerRecord]:
        return await self._partner_customers(
            "scan_partner_customers",
            f"""
            SELECT {PARTNER_CUSTOMER_COLUMNS}
            FROM partner_customers
            ORDER BY created_at DESC NULLS LAST, id
            LIMIT :limit
            """,
            {"limit": limit},
        )

    async def scan_bookings(self, limit: int) -> list[BookingRecord]:
        return await self._bookings(
            "scan_bookings",
            f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            ORDER BY created_at DESC NULLS LAST, id
            LIMIT :limit
            """,
            {"limit": limit},
        )

    async def partner_customers_by_name(self, name: str, limit: int) -> list[PartnerCustomerRecord]:
        return await self._partner_customers(
            "partner_customers_by_name",
            f"""
            SELECT {PARTNER_CUSTOMER_COLUMNS}
            FROM partner_customers
            WHERE name ILIKE :pattern
            LIMIT :limit
            """,
            {"pattern": f"%{escape_like(name)}%", "limit": limit},
        )

    async def bookings_by_customer_name(self, name: str, limit: int) -> list[BookingRecord]:
        return await self._bookings(
            "bookings_by_customer_name",
            f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            WHERE customer_name ILIKE :pattern
            LIMIT :limit
            """,
            {"pattern": f"%{escape_like(name)}%", "limit": limit},
        )

    # ------------------------------------------------------------------
    # Profile lookups
    # ------------------------------------------------------------------

    async def partner_customers_by_id(self, customer_id: str, limit: int) -> list[PartnerCustomerRecord]:
        return await self._partner_customers(
            "partner_customers_by_id",
            f"""
            SELECT {PARTNER_CUSTOMER_COLUMNS}
            FROM partner_customers
            WHERE id = :customer_id
            LIMIT :limit
            """,
            {"customer_id": customer_id, "limit": limit},
        )

    async def booking_history(
        self,
        *,
        customer_id: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        limit: int,
    ) -> list[BookingRecord]:
        """Bookings filtered by the first available of id, email, phone."""
        if customer_id:
            column, value = "customer_id", customer_id
        elif email:
            column, value = "customer_email", email
        elif phone:
            column, value = "customer_phone", phone
        else:
            return []

        return await self._bookings(
            "booking_history",
            f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            WHERE {column} = :value
            ORDER BY created_at DESC
            LIMIT :limit
            """,
            {"value": value, "limit": limit},
        )

    async def get_partner_customer(self, partner_id: str, customer_id: str) -> PartnerCustomerRecord | None:
        records = await self._partner_customers(
            "get_partner_customer",
            f"""
            SELECT {PARTNER_CUSTOMER_COLUMNS}
            FROM partner_customers
            WHERE id = :customer_id
              AND partner_id = :partner_id
              AND deleted_at IS NULL
            LIMIT 1
            """,
            {"customer_id": customer_id, "partner_id": partner_id},
        )
        return records[0] if records else None

    async def partner_bookings_by_contact(
        self,
        partner_id: str,
        *,
        email: str | None,
        phone: str | None,
        limit: int,
    ) -> list[BookingRecord]:
        conditions: list[str] = []
        params: dict[str, Any] = {"partner_id": partner_id, "limit": limit}
        if email:
            conditions.append("customer_email = :email")
            params["email"] = email
        if phone:
            conditions.append("customer_phone = :phone")
            params["phone"] = phone
        if not conditions:
            return []

        return await self._bookings(
            "partner_bookings_by_contact",
            f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            WHERE mitra_id = :partner_id
              AND ({" OR ".join(conditions)})
            ORDER BY trip_date DESC
            LIMIT :limit
            """,
            params,
        )

    async def update_partner_customer_stats(
        self,
        customer_id: str,
        *,
        booking_count: int,
        total_spent: float,
        last_trip_date: date | None,
    ) -> None:
        operation = "update_partner_customer_stats"
        try:
            async with get_db_session() as session:
                await session.execute(
                    text(
                        """
                        UPDATE partner_customers
                        SET booking_count = :booking_count,
                            total_spent = :total_spent,
                            last_trip_date = :last_trip_date,
                            updated_at = NOW()
                        WHERE id = :customer_id
                        """
                    ),
                    {
                        "customer_id": customer_id,
                        "booking_count": booking_count,
                        "total_spent": total_spent,
                        "last_trip_date": last_trip_date,
                    },
                )
        except SQLAlchemyError as e:
            logger.warning("Customer store query failed", operation=operation, error=str(e))
            raise CustomerStoreError(operation=operation) from e


_store: SqlCustomerStore | None = None


def get_customer_store() -> SqlCustomerStore:
    """Get or create the shared SQL-backed store."""
    global _store
    if _store is None:
        _store = SqlCustomerStore()
    return _store
