# core/exceptions.py
from typing import Optional


class CRMError(Exception):
    """Raised when the CRM rejects or cannot serve a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CRMConfigurationError(CRMError):
    """CRM credentials (API key / location) are not configured."""


class DuplicateContactError(CRMError):
    """CRM reported the contact already exists (HTTP 422)."""


class LeadPersistenceError(Exception):
    """Local lead storage failed; durability of the submission cannot be guaranteed."""


class InvalidTransitionError(ValueError):
    """Illegal lifecycle transition (lead status, alert status)."""


class ImportAlreadyFinalizedError(ValueError):
    """An import attempt can only be finalized once."""
