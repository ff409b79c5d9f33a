"""
Service Errors

Exceptions raised by the sample service and the database helpers.
The HTTP layer in main.py maps each of them to a status code:

    ValidationError          -> 400
    DuplicateRecordError     -> 400 (users / posts)
    DuplicateIdentifierError -> 409 (sample id race, client may resubmit)
    EncodingError            -> 500
    StoreError               -> 500
"""

from typing import Any, Dict, Optional


class SampleServiceError(Exception):
    """Base class for all service errors.

    Args:
        message: Human readable reason, safe to return to the client
        context: Extra details for debugging (not returned to the client)
    """

    def __init__(self, message: str = "Unexpected error", context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ValidationError(SampleServiceError):
    """A required field is missing or invalid."""


class DuplicateRecordError(SampleServiceError):
    """Insert rejected by a unique index."""


class DuplicateIdentifierError(DuplicateRecordError):
    """Two requests computed the same sample id; the insert lost the race."""


class EncodingError(SampleServiceError):
    """QR label could not be generated."""


class StoreError(SampleServiceError):
    """Database unavailable or the driver reported a failure."""
