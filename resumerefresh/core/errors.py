"""
Error taxonomy for the dispatch and submission pipeline.
"""
from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    """Classified cause of a failed send"""
    TIMEOUT = "timeout"
    AUTH = "auth"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class ResumeRefreshError(Exception):
    pass


class ConfigurationError(ResumeRefreshError):
    """Required configuration is missing or invalid."""


class CompositionError(ResumeRefreshError):
    """Recipient data cannot be turned into an email."""


class TransmissionFailure(ResumeRefreshError):
    """The mail channel did not accept a message."""

    transient = False

    def __init__(self, message: str, reason: FailureReason = FailureReason.UNKNOWN):
        super().__init__(message)
        self.reason = reason


class TransientTransmissionFailure(TransmissionFailure):
    transient = True

    def __init__(self, message: str, reason: FailureReason = FailureReason.TIMEOUT):
        super().__init__(message, reason)


class PermanentTransmissionFailure(TransmissionFailure):
    transient = False


class OriginRejected(ResumeRefreshError):
    """An interactive-channel request failed the cross-origin trust check."""

    def __init__(self, message: str, source_origin: Optional[str] = None):
        super().__init__(message)
        self.source_origin = source_origin


class ValidationFailed(ResumeRefreshError):
    """A submission payload violates the form contract."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}" if field else message)
        self.field = field
        self.message = message

    @property
    def reason(self) -> str:
        return str(self)


class PersistenceFailure(ResumeRefreshError):
    """The submission store could not complete a read or write."""
