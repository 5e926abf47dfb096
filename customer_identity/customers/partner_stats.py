"""Booking stats cached on partner customer records."""

from __future__ import annotations

import structlog

from customer_identity.config import Settings, get_settings
from customer_identity.customers.store import CustomerStore, get_customer_store
from customer_identity.customers.types import BookingRecord, PartnerCustomerDetail
from customer_identity.monitoring import get_metrics

logger = structlog.get_logger()


class PartnerCustomerStatsService:
    """Recomputes `booking_count`, `total_spent` and `last_trip_date` for a partner customer."""

    def __init__(
        self,
        store: CustomerStore | None = None,
        settings: Settings | None = None,
    ):
        self._store = store or get_customer_store()
        self._settings = settings or get_settings()

    async def refresh_partner_customer_stats(
        self,
        partner_id: str,
        customer_id: str,
    ) -> PartnerCustomerDetail | None:
        """
        Load a partner customer with its bookings and refresh its cached stats.

        Bookings are those of the same partner whose contact email or phone
        equals the customer's, most recent trip first. The cached columns are
        only written when they changed.

        Returns:
            The customer with up-to-date stats and its bookings, or None if
            the customer does not exist for this partner
        """
        customer = await self._store.get_partner_customer(partner_id, customer_id)
        if customer is None:
            get_metrics().track_stats_refresh("not_found")
            return None

        bookings: list[BookingRecord] = []
        try:
            bookings = await self._store.partner_bookings_by_contact(
                partner_id,
                email=customer.email,
                phone=customer.phone,
                limit=self._settings.booking_history_limit,
            )
        except Exception as e:
            logger.warning(
                "Failed to fetch customer bookings",
                customer_id=customer_id,
                partner_id=partner_id,
                error=str(e),
            )

        booking_count = len(bookings)
        total_spent = sum(b.total_amount or 0.0 for b in bookings)
        last_trip_date = bookings[0].trip_date if bookings else customer.last_trip_date

        changed = (
            booking_count != customer.booking_count
            or total_spent != (customer.total_spent or 0.0)
            or last_trip_date != customer.last_trip_date
        )
        outcome = "unchanged"
        if changed:
            try:
                await self._store.update_partner_customer_stats(
                    customer_id,
                    booking_count=booking_count,
                    total_spent=total_spent,
                    last_trip_date=last_trip_date,
                )
                outcome = "updated"
                logger.info(
                    "Partner customer stats refreshed",
                    customer_id=customer_id,
                    booking_count=booking_count,
                )
            except Exception as e:
                # The computed stats are still returned to the caller.
                outcome = "update_failed"
                logger.warning(
                    "Failed to update customer stats",
                    customer_id=customer_id,
                    error=str(e),
                )

        get_metrics().track_stats_refresh(outcome)

        return PartnerCustomerDetail(
            customer=customer.model_copy(
                update={
                    "booking_count": booking_count,
                    "total_spent": total_spent,
                    "last_trip_date": last_trip_date,
                }
            ),
            bookings=bookings,
        )


_service: PartnerCustomerStatsService | None = None


def get_partner_customer_stats_service() -> PartnerCustomerStatsService:
    global _service
    if _service is None:
        _service = PartnerCustomerStatsService()
    return _service
