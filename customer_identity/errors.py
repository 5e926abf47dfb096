from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class CustomerIdentityError(Exception):
    """Base typed error for the customer identity service.

    Carries a stable dot-separated `code` for clients, a human-readable
    `message`, and an optional `meta` payload that is safe to expose.
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 500,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self, *, request_id: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
        }
        if request_id:
            payload["request_id"] = request_id
        if self.meta:
            payload["meta"] = self.meta
        return payload


class NotFoundError(CustomerIdentityError):
    def __init__(self, *, message: str = "Not found", code: str = "resource.not_found", meta: dict[str, Any] | None = None):
        super().__init__(code=code, message=message, status_code=404, meta=meta)


class ValidationError(CustomerIdentityError):
    def __init__(
        self,
        *,
        message: str = "Validation error",
        code: str = "request.validation_error",
        meta: dict[str, Any] | None = None,
        status_code: int = 400,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)


class CustomerStoreError(CustomerIdentityError):
    """A query against the customer/booking tables failed."""

    def __init__(
        self,
        *,
        operation: str,
        message: str = "Customer data access failed",
        code: str = "store.query_failed",
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=503,
            meta={"operation": operation},
        )
        self.operation = operation
