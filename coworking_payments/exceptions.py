"""Exceptions raised by coworking-payments."""

from __future__ import annotations

from typing import Any


class CoworkingError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(CoworkingError):
    """The request body is missing fields or carries invalid values.

    Raised before any external call is made; rendered as HTTP 400.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class GatewayError(CoworkingError):
    """The payment gateway answered with a non-2xx response or was unreachable.

    Attributes:
        message: The gateway's own error message when it sent one.
        status_code: HTTP status returned by the gateway (``None`` on
            network failures).
        details: Decoded error body, when available.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class EmailError(CoworkingError):
    """The transactional-email provider rejected or failed to send a message."""


class LedgerError(CoworkingError):
    """The spreadsheet ledger could not be read or written."""
