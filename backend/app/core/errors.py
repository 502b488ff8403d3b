r"""backend\app\core\errors.py

Exceptions raised by the analytics and reporting services.

Routes translate these into ``HTTPException`` payloads; services never build
HTTP responses themselves.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReportingError(Exception):
    """Base class for errors raised while composing a report."""

    code: str = "reporting_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(ReportingError, LookupError):
    """A sector, user or product id does not exist in the store."""

    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        self.code = f"{resource.lower()}_not_found"
        super().__init__(
            f"{resource.capitalize()} '{identifier}' was not found.",
            details={"id": identifier},
        )


class InvalidPeriodError(ReportingError, ValueError):
    """A cadence or month string cannot be mapped to a reporting period."""

    code = "invalid_period"


class DataUnavailableError(ReportingError):
    """A store read failed or timed out before the report could be built."""

    code = "data_unavailable"
