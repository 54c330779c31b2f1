from __future__ import annotations


class BusinessValidationError(Exception):
    """Raised when a domain/business rule is violated."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConsultationError(Exception):
    """
    Base class for consultation pipeline failures.

    `message` is the only text that may reach API callers. Root causes are chained
    (`raise ... from exc`) and logged server-side before re-raising.
    """

    message = "Consultation request failed"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ConsultationProcessingError(ConsultationError):
    message = "Medical consultation processing failed"


class ConsultationStorageError(ConsultationError):
    message = "Failed to securely store consultation"


class ConsultationRetrievalError(ConsultationError):
    message = "Failed to retrieve consultation"


class ConsultationNotFoundError(ConsultationRetrievalError):
    """No record exists for the storage handle."""


class ConsultationAccessDeniedError(ConsultationError):
    """The decrypted record belongs to a different user."""

    message = "Unauthorized access to consultation"
