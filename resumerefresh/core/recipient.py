from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from resumerefresh.core.errors import FailureReason


class CapabilityTag(str, Enum):
    INTERACTIVE = "interactive"
    STATIC_ONLY = "static_only"


class RecipientProfile(BaseModel):
    email: str = Field(...)
    applicant_name: str = Field(default="Applicant")
    job_title: str = Field(default="Position")
    company_name: str = Field(default="Hirefy")

    @property
    def domain(self) -> str:
        return self.email.rsplit("@", 1)[-1].lower() if "@" in self.email else ""

    def __str__(self) -> str:
        return f"{self.applicant_name} <{self.email}> ({self.job_title} at {self.company_name})"


class ComposedMessage(BaseModel):
    subject: str = Field(...)
    static_html: str = Field(..., min_length=1)
    text_body: str = Field(default="")
    interactive_document: Optional[str] = Field(default=None)

    @property
    def has_interactive(self) -> bool:
        return self.interactive_document is not None


class DispatchRequest(BaseModel):
    """Outbound trigger input: one recipient plus the public base URL of this service."""
    recipient: str = Field(...)
    applicant_name: str = Field(default="Applicant")
    job_title: str = Field(default="Position")
    company_name: Optional[str] = Field(default=None)
    submission_endpoint_base: Optional[str] = Field(default=None)

    def to_profile(self, default_company: str) -> RecipientProfile:
        return RecipientProfile(
            email=self.recipient.strip(),
            applicant_name=self.applicant_name or "Applicant",
            job_title=self.job_title or "Position",
            company_name=self.company_name or default_company,
        )


class DispatchResult(BaseModel):
    success: bool
    recipient: str
    attempts: int = Field(..., ge=0)
    interactive_used: bool
    message_id: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None

    class Config:
        use_enum_values = True

    @classmethod
    def succeeded(cls, recipient: str, attempts: int, interactive_used: bool, message_id: str) -> "DispatchResult":
        return cls(
            success=True,
            recipient=recipient,
            attempts=attempts,
            interactive_used=interactive_used,
            message_id=message_id,
            sent_at=datetime.now(),
        )

    @classmethod
    def failed(
        cls,
        recipient: str,
        attempts: int,
        interactive_used: bool,
        reason: FailureReason,
        error_message: str = "",
    ) -> "DispatchResult":
        return cls(
            success=False,
            recipient=recipient,
            attempts=attempts,
            interactive_used=interactive_used,
            failure_reason=reason,
            error_message=error_message or None,
        )
