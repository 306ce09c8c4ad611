"""
Musga - Domain Errors

Services raise these; the exception handler in main.py maps each one to a
structured JSON response with its status code.
"""
from typing import Dict, Optional


class MarketplaceError(Exception):
    """Base class for every error that surfaces to the API caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def error_name(self) -> str:
        return type(self).__name__

    def headers(self) -> Optional[Dict[str, str]]:
        return None


class InvalidArgument(MarketplaceError):
    """Malformed or missing input."""
    status_code = 400


class Unauthorized(MarketplaceError):
    """Missing, invalid or expired credential."""
    status_code = 401

    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class Forbidden(MarketplaceError):
    """Authenticated but not entitled."""
    status_code = 403


class NotFound(MarketplaceError):
    status_code = 404


class Conflict(MarketplaceError):
    """Uniqueness or state clash (duplicate email, exclusive track already sold)."""
    status_code = 409


class InvalidState(MarketplaceError):
    """Operation not valid for the record's current lifecycle state."""
    status_code = 400


class ProcessingFailed(MarketplaceError):
    """An external audio tool failed, timed out or produced unusable output."""
    status_code = 422
