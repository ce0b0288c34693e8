"""
PURPOSE: Exception taxonomy for TV Scanner.

    - AuthorizationError:   bad or missing webhook secret (HTTP 403)
    - AlertValidationError: normalized alert is missing a required field (HTTP 400)
    - PersistenceError:     alert document could not be written (logged, swallowed)
    - ProviderError:        market data fetch failed for one ticker (logged, isolated)
    - InternalError:        any other request failure (HTTP 500, generic body)

Anything else raised while handling a request is reported as a generic
HTTP 500 by the application-level exception handler.
"""

from typing import Iterable, Optional


class ScannerError(Exception):
    """Base class for all TV Scanner errors. status_code is the HTTP mapping."""

    status_code: int = 500
    public_message: str = "Internal error"


class AuthorizationError(ScannerError):
    """Webhook caller did not present the configured shared secret."""

    status_code = 403
    public_message = "Forbidden"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class AlertValidationError(ScannerError):
    """
    PURPOSE: Raised when a normalized alert lacks a required field.

    Attributes:
        missing: Names of the empty fields (ticker, timeframe, direction, time).
    """

    status_code = 400
    public_message = "Invalid alert format"

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Invalid alert format: missing {', '.join(self.missing)}")


class PersistenceError(ScannerError):
    """Durable write of an alert document failed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause}")


class ProviderError(ScannerError):
    """Market data provider call failed for a single ticker."""

    def __init__(self, ticker: str, operation: str, cause: Optional[BaseException] = None) -> None:
        self.ticker = ticker
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed for {ticker}: {cause}")


class InternalError(ScannerError):
    """Unexpected failure while handling a request; details stay in the log."""

    def __init__(self, action: str, cause: Optional[BaseException] = None) -> None:
        self.action = action
        self.cause = cause
        super().__init__(f"Failed to {action}")
