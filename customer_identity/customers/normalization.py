"""Canonical forms of contact fields used when comparing identities."""

from __future__ import annotations

import re

from customer_identity.customers.types import MatchConfidence

_NON_DIGITS = re.compile(r"\D")

# Indonesian country calling code
COUNTRY_CODE = "62"

CONFIDENCE_RANK = {
    MatchConfidence.HIGH: 3,
    MatchConfidence.MEDIUM: 2,
    MatchConfidence.LOW: 1,
}


def normalize_email(value: str | None) -> str | None:
    """Lowercase and trim an email address."""
    if not value:
        return None
    normalized = value.strip().lower()
    return normalized or None


def normalize_phone(value: str | None) -> str | None:
    """Reduce a phone number to its local subscriber digits.

    Non-digits are stripped, then a leading country code ``62`` or, failing
    that, a leading trunk ``0`` is dropped:

        >>> normalize_phone("0812-345-678")
        '812345678'
        >>> normalize_phone("+62 812 345 678")
        '812345678'
    """
    if not value:
        return None
    digits = _NON_DIGITS.sub("", value)
    if not digits:
        return None
    if digits.startswith(COUNTRY_CODE):
        digits = digits[len(COUNTRY_CODE):]
    elif digits.startswith("0"):
        digits = digits[1:]
    return digits or None


def normalize_name(value: str | None) -> str | None:
    if not value:
        return None
    normalized = value.strip().lower()
    return normalized or None


def confidence_rank(confidence: MatchConfidence | str) -> int:
    return CONFIDENCE_RANK[MatchConfidence(confidence)]
