"""
Customer Identity Matcher

Finds candidate customer identities for a partial identifier by searching
partner customer records and bookings.

Three independent passes run in order, each only when its inputs are present:
1. Email: exact lookup on the normalized email
2. Phone: bounded scan compared on the normalized phone in Python
3. Name: case-insensitive substring search, only alongside an email or phone

Results are merged in pass order, de-duplicated by customer id and ranked by
confidence. A failing pass is logged and contributes nothing; the matcher
never raises.
"""

from __future__ import annotations

from typing import Literal

import structlog

from customer_identity.config import Settings, get_settings
from customer_identity.customers.normalization import (
    confidence_rank,
    normalize_email,
    normalize_name,
    normalize_phone,
)
from customer_identity.customers.store import CustomerStore, get_customer_store
from customer_identity.customers.types import (
    BookingRecord,
    CustomerIdentifier,
    CustomerMatch,
    MatchConfidence,
    MatchField,
    MatchSource,
    PartnerCustomerRecord,
)
from customer_identity.monitoring import get_metrics

logger = structlog.get_logger()

MatchPass = Literal["email", "phone", "name"]

_SOURCE_LABELS = {
    MatchSource.PARTNER: "partner customers",
    MatchSource.BOOKING: "bookings",
}

# Display order for match reasons: "Name + email match in bookings"
_REASON_ORDER = (MatchField.NAME, MatchField.EMAIL, MatchField.PHONE)


def agreeing_fields(
    identifier: CustomerIdentifier,
    *,
    email: str | None,
    phone: str | None,
    name: str | None,
) -> list[MatchField]:
    """Identifier fields that agree with a stored row's contact fields."""
    fields: list[MatchField] = []

    wanted_email = normalize_email(identifier.email)
    if wanted_email and wanted_email == normalize_email(email):
        fields.append(MatchField.EMAIL)

    wanted_phone = normalize_phone(identifier.phone)
    if wanted_phone and wanted_phone == normalize_phone(phone):
        fields.append(MatchField.PHONE)

    wanted_name = normalize_name(identifier.name)
    stored_name = normalize_name(name)
    if wanted_name and stored_name and wanted_name in stored_name:
        fields.append(MatchField.NAME)

    return fields


def confidence_from_fields(fields: list[MatchField]) -> MatchConfidence:
    """Confidence as a pure function of which fields agree."""
    if MatchField.EMAIL in fields:
        return MatchConfidence.HIGH
    if MatchField.PHONE in fields:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW


def confidence_for_pass(match_pass: MatchPass, fields: list[MatchField]) -> MatchConfidence:
    """Pass-based labelling: email and phone hits are always high."""
    if match_pass in ("email", "phone"):
        return MatchConfidence.HIGH
    confidence = MatchConfidence.LOW
    if MatchField.EMAIL in fields:
        confidence = MatchConfidence.HIGH
    if MatchField.PHONE in fields and confidence != MatchConfidence.HIGH:
        confidence = MatchConfidence.MEDIUM
    return confidence


def match_reason(fields: list[MatchField], source: MatchSource) -> str:
    ordered = [f.value for f in _REASON_ORDER if f in fields]
    if not ordered:
        return f"Match in {_SOURCE_LABELS[source]}"
    label = " + ".join(ordered)
    return f"{label[0].upper()}{label[1:]} match in {_SOURCE_LABELS[source]}"


def _rank_key(match: CustomerMatch) -> tuple[int, int, int]:
    return (
        -confidence_rank(match.confidence),
        -len(match.matched_fields),
        0 if match.source == MatchSource.PARTNER else 1,
    )


class CustomerMatcher:
    """Resolves a partial identifier to ranked candidate identities."""

    def __init__(
        self,
        store: CustomerStore | None = None,
        settings: Settings | None = None,
    ):
        self._store = store or get_customer_store()
        self._settings = settings or get_settings()

    async def find_customer_matches(
        self, identifier: CustomerIdentifier
    ) -> list[CustomerMatch]:
        """
        Find all candidate identities for an identifier.

        Args:
            identifier: Any combination of email, phone and name

        Returns:
            Candidates de-duplicated by customer id, highest confidence first
        """
        matches: list[CustomerMatch] = []
        seen_ids: set[str] = set()

        try:
            passes: list[list[CustomerMatch]] = []
            if identifier.email:
                passes.append(await self._match_by_email(identifier))
            if identifier.phone:
                passes.append(await self._match_by_phone(identifier))
            if identifier.name and (identifier.email or identifier.phone):
                passes.append(await self._match_by_name_and_contact(identifier))

            for pass_matches in passes:
                for match in pass_matches:
                    if match.customer_id in seen_ids:
                        continue
                    seen_ids.add(match.customer_id)
                    matches.append(match)

            matches.sort(key=_rank_key)
        except Exception as e:
            logger.error(
                "Customer matching failed",
                error=str(e),
                **identifier.log_context(),
            )
            return []

        get_metrics().observe_candidates(len(matches))
        logger.debug(
            "Customer matches found",
            count=len(matches),
            top_confidence=matches[0].confidence.value if matches else None,
        )
        return matches

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def _match_by_email(self, identifier: CustomerIdentifier) -> list[CustomerMatch]:
        email = normalize_email(identifier.email)
        if not email:
            return []

        limit = self._settings.email_lookup_limit
        try:
            partner_rows = await self._store.partner_customers_by_email(email, limit)
            booking_rows = await self._store.bookings_by_email(email, limit)
        except Exception as e:
            return self._pass_failed("email", identifier, e)

        get_metrics().track_match_pass("email", "success")
        return self._build_matches("email", identifier, partner_rows, booking_rows)

    async def _match_by_phone(self, identifier: CustomerIdentifier) -> list[CustomerMatch]:
        phone = normalize_phone(identifier.phone)
        if not phone:
            return []

        # Rows beyond the scan window are never compared.
        limit = self._settings.phone_scan_limit
        try:
            partner_rows = await self._store.scan_partner_customers(limit)
            booking_rows = await self._store.scan_bookings(limit)
        except Exception as e:
            return self._pass_failed("phone", identifier, e)

        get_metrics().track_match_pass("phone", "success")
        return self._build_matches(
            "phone",
            identifier,
            [r for r in partner_rows if normalize_phone(r.phone) == phone],
            [r for r in booking_rows if normalize_phone(r.customer_phone) == phone],
        )

    async def _match_by_name_and_contact(
        self, identifier: CustomerIdentifier
    ) -> list[CustomerMatch]:
        name = normalize_name(identifier.name)
        if not name:
            return []

        limit = self._settings.name_search_limit
        try:
            partner_rows = await self._store.partner_customers_by_name(name, limit)
            booking_rows = await self._store.bookings_by_customer_name(name, limit)
        except Exception as e:
            return self._pass_failed("name", identifier, e)

        get_metrics().track_match_pass("name", "success")
        return self._build_matches("name", identifier, partner_rows, booking_rows)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _pass_failed(
        self,
        match_pass: MatchPass,
        identifier: CustomerIdentifier,
        error: Exception,
    ) -> list[CustomerMatch]:
        logger.error(
            "Customer match pass failed",
            match_pass=match_pass,
            error=str(error),
            **identifier.log_context(),
        )
        get_metrics().track_match_pass(match_pass, "error")
        return []

    def _score(
        self, match_pass: MatchPass, fields: list[MatchField]
    ) -> MatchConfidence:
        if self._settings.confidence_mode == "per_pass":
            return confidence_for_pass(match_pass, fields)
        return confidence_from_fields(fields)

    def _build_matches(
        self,
        match_pass: MatchPass,
        identifier: CustomerIdentifier,
        partner_rows: list[PartnerCustomerRecord],
        booking_rows: list[BookingRecord],
    ) -> list[CustomerMatch]:
        matches: list[CustomerMatch] = []

        for pc in partner_rows:
            fields = agreeing_fields(
                identifier, email=pc.email, phone=pc.phone, name=pc.name
            )
            matches.append(
                CustomerMatch(
                    customer_id=pc.id,
                    source=MatchSource.PARTNER,
                    email=pc.email,
                    phone=pc.phone,
                    name=pc.name or "Unknown",
                    confidence=self._score(match_pass, fields),
                    match_reason=match_reason(fields, MatchSource.PARTNER),
                    matched_fields=fields,
                )
            )

        for booking in booking_rows:
            # Bookings without a linked identity cannot be resolved to a customer.
            if not booking.customer_id:
                continue
            fields = agreeing_fields(
                identifier,
                email=booking.customer_email,
                phone=booking.customer_phone,
                name=booking.customer_name,
            )
            matches.append(
                CustomerMatch(
                    customer_id=booking.customer_id,
                    source=MatchSource.BOOKING,
                    email=booking.customer_email,
                    phone=booking.customer_phone,
                    name=booking.customer_name or "Unknown",
                    confidence=self._score(match_pass, fields),
                    match_reason=match_reason(fields, MatchSource.BOOKING),
                    matched_fields=fields,
                )
            )

        return matches


# Singleton instance
_matcher: CustomerMatcher | None = None


def get_customer_matcher() -> CustomerMatcher:
    """Get or create the customer matcher."""
    global _matcher
    if _matcher is None:
        _matcher = CustomerMatcher()
    return _matcher


async def find_customer_matches(identifier: CustomerIdentifier) -> list[CustomerMatch]:
    """Find candidate identities using the shared matcher."""
    return await get_customer_matcher().find_customer_matches(identifier)
