"""
Core models package
"""

from resumerefresh.core.errors import (
    FailureReason,
    ResumeRefreshError,
    ConfigurationError,
    CompositionError,
    TransmissionFailure,
    TransientTransmissionFailure,
    PermanentTransmissionFailure,
    OriginRejected,
    ValidationFailed,
    PersistenceFailure,
)
from resumerefresh.core.recipient import (
    CapabilityTag,
    RecipientProfile,
    ComposedMessage,
    DispatchRequest,
    DispatchResult,
)
from resumerefresh.core.submission import (
    FORM_CONTRACT,
    FormContract,
    FormFields,
    SameCompany,
    SubmissionSource,
    SubmissionStatus,
    ValidatedSubmission,
    SubmissionMetadata,
    SubmissionRecord,
    validate_submission,
)

__all__ = [
    "FailureReason",
    "ResumeRefreshError",
    "ConfigurationError",
    "CompositionError",
    "TransmissionFailure",
    "TransientTransmissionFailure",
    "PermanentTransmissionFailure",
    "OriginRejected",
    "ValidationFailed",
    "PersistenceFailure",
    "CapabilityTag",
    "RecipientProfile",
    "ComposedMessage",
    "DispatchRequest",
    "DispatchResult",
    "FORM_CONTRACT",
    "FormContract",
    "FormFields",
    "SameCompany",
    "SubmissionSource",
    "SubmissionStatus",
    "ValidatedSubmission",
    "SubmissionMetadata",
    "SubmissionRecord",
    "validate_submission",
]
