"""
Submission models and the form contract shared by every channel.

The AMP document, the hosted fallback form and the validator all read
FORM_CONTRACT; field names, allowed values and bounds live nowhere else.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from resumerefresh.core.errors import ValidationFailed


class FormFields:
    EMAIL = "email"
    APPLICANT_NAME = "applicantName"
    JOB_TITLE = "jobTitle"
    COMPANY_NAME = "companyName"
    SAME_COMPANY = "sameCompany"
    SKILLS = "skills"
    CURRENT_ROLE = "currentRole"
    YEARS_OF_EXPERIENCE = "yearsOfExperience"
    RELEVANT_INFO = "relevantInfo"


@dataclass(frozen=True)
class FormContract:
    skills: tuple[str, ...]
    same_company_choices: tuple[str, ...] = ("yes", "no")
    name_max_length: int = 100
    context_max_length: int = 200
    role_max_length: int = 200
    years_min: int = 0
    years_max: int = 50
    relevant_info_max_length: int = 1200
    fields: type = field(default=FormFields)

    def skill_id(self, skill: str) -> str:
        """Stable HTML id for a skill checkbox."""
        return "skill-" + re.sub(r"[^a-z0-9]+", "-", skill.lower()).strip("-")


FORM_CONTRACT = FormContract(
    skills=(
        "React",
        "Node.js",
        "MongoDB",
        "Big Data",
        "Docker",
        "Kubernetes",
        "Python",
        "Data Engineering",
    ),
)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
WHOLE_NUMBER_PATTERN = re.compile(r"^-?\d+$")


class SameCompany(str, Enum):
    YES = "yes"
    NO = "no"


class SubmissionSource(str, Enum):
    INTERACTIVE_EMAIL = "interactive_email"
    WEB_FORM = "web_form"


class SubmissionStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    REVIEWED = "reviewed"


class ValidatedSubmission(BaseModel):
    email: str = Field(..., alias=FormFields.EMAIL)
    applicant_name: str = Field(
        default="", alias=FormFields.APPLICANT_NAME, max_length=FORM_CONTRACT.name_max_length
    )
    job_title: str = Field(
        default="", alias=FormFields.JOB_TITLE, max_length=FORM_CONTRACT.context_max_length
    )
    company_name: str = Field(
        default="", alias=FormFields.COMPANY_NAME, max_length=FORM_CONTRACT.context_max_length
    )
    same_company: SameCompany = Field(..., alias=FormFields.SAME_COMPANY)
    skills: list[str] = Field(default_factory=list, alias=FormFields.SKILLS)
    current_role: str = Field(
        ..., alias=FormFields.CURRENT_ROLE, min_length=1, max_length=FORM_CONTRACT.role_max_length
    )
    years_of_experience: int = Field(
        ...,
        alias=FormFields.YEARS_OF_EXPERIENCE,
        ge=FORM_CONTRACT.years_min,
        le=FORM_CONTRACT.years_max,
    )
    relevant_info: str = Field(
        default="", alias=FormFields.RELEVANT_INFO, max_length=FORM_CONTRACT.relevant_info_max_length
    )

    class Config:
        populate_by_name = True
        str_strip_whitespace = True
        extra = "ignore"
        use_enum_values = True

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("must be a valid email address")
        return value.lower()

    @field_validator("applicant_name", "job_title", "company_name", "relevant_info", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("skills", mode="before")
    @classmethod
    def _normalize_skills(cls, value: Any) -> Any:
        # A single checked box arrives as a bare string from form posts
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("years_of_experience", mode="before")
    @classmethod
    def _whole_years(cls, value: Any) -> Any:
        # Form posts send digits as text; JSON sends ints. Nothing else counts.
        if isinstance(value, bool):
            raise ValueError("must be a whole number")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and WHOLE_NUMBER_PATTERN.match(value.strip()):
            return int(value.strip())
        raise ValueError("must be a whole number")

    @field_validator("skills")
    @classmethod
    def _check_skills(cls, value: list[str]) -> list[str]:
        unique = []
        for skill in value:
            if skill not in FORM_CONTRACT.skills:
                raise ValueError(f"'{skill}' is not an allowed skill")
            if skill not in unique:
                unique.append(skill)
        return unique

    def to_fields(self) -> dict:
        return self.model_dump(by_alias=False)


def validate_submission(payload: Mapping[str, Any]) -> ValidatedSubmission:
    """
    Validate a raw payload against FORM_CONTRACT.
    Raises ValidationFailed naming the first failing field.
    """
    try:
        return ValidatedSubmission.model_validate(dict(payload))
    except ValidationError as e:
        first = e.errors()[0]
        loc = first.get("loc") or ()
        field_name = str(loc[0]) if loc else ""
        message = first.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        raise ValidationFailed(field_name, message) from e


class SubmissionMetadata(BaseModel):
    user_agent: str = Field(default="")
    ip_address: str = Field(default="")
    source: SubmissionSource = Field(default=SubmissionSource.INTERACTIVE_EMAIL)
    referrer: Optional[str] = Field(default=None)
    submitted_at: datetime = Field(default_factory=datetime.now)

    class Config:
        use_enum_values = True


class SubmissionRecord(BaseModel):
    id: str = Field(...)
    email: str = Field(...)
    applicant_name: str = Field(default="")
    job_title: str = Field(default="")
    company_name: str = Field(default="")
    same_company: SameCompany = Field(...)
    skills: list[str] = Field(default_factory=list)
    current_role: str = Field(...)
    years_of_experience: int = Field(..., ge=0, le=50)
    relevant_info: str = Field(default="")
    submission_metadata: SubmissionMetadata = Field(default_factory=SubmissionMetadata)
    status: SubmissionStatus = Field(default=SubmissionStatus.PENDING_REVIEW)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    class Config:
        use_enum_values = True

    def __repr__(self) -> str:
        return f"SubmissionRecord(id='{self.id}', email='{self.email}', role='{self.current_role}')"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "applicantName": self.applicant_name,
            "jobTitle": self.job_title,
            "companyName": self.company_name,
            "sameCompany": self.same_company,
            "skills": self.skills,
            "currentRole": self.current_role,
            "yearsOfExperience": self.years_of_experience,
            "relevantInfo": self.relevant_info,
            "source": self.submission_metadata.source,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
