"""
Error taxonomy for the marketplace API.

Every class carries the HTTP status it is reported with; ``main`` installs
one handler that renders them as ``{"success": false, "message": ...}``.
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class Unauthenticated(MarketplaceError):
    status_code = 401


class Forbidden(MarketplaceError):
    status_code = 403


class FraudBlocked(MarketplaceError):
    """The account is flagged as fraud."""
    status_code = 403


class NotFound(MarketplaceError):
    status_code = 404


class InvalidArgument(MarketplaceError):
    status_code = 400


class PaymentIncomplete(MarketplaceError):
    """The processor does not report the checkout as paid."""
    status_code = 400


class AlreadyFlagged(MarketplaceError):
    status_code = 409


class GrantNotApplied(MarketplaceError):
    """The account update behind a role grant modified nothing."""
    status_code = 409


class ExternalServiceError(MarketplaceError):
    status_code = 502
