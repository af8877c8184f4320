"""
Email Templates - Builds the AMP document and static HTML fallback for a recipient.
Both variants are rendered from one RecipientProfile and the shared form contract.
"""
from typing import Optional
from urllib.parse import urlencode, urlparse

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from resumerefresh.core.errors import CompositionError
from resumerefresh.core.recipient import CapabilityTag, ComposedMessage, RecipientProfile
from resumerefresh.core.submission import FORM_CONTRACT, FormContract
from resumerefresh.utils.logger import get_logger

logger = get_logger("composer")

AMP_SUBMIT_PATH = "/api/amp/submit"
FORM_PATH = "/api/form/resume-form"

# Query parameter names the hosted form reads its pre-fill values from
FORM_QUERY_PARAMS = {
    "email": "email",
    "applicant_name": "name",
    "job_title": "job",
    "company_name": "company",
}


def create_template_environment() -> Environment:
    return Environment(
        loader=PackageLoader("resumerefresh", "email/templates"),
        autoescape=select_autoescape(["html"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def build_submit_url(endpoint_base: str) -> str:
    return endpoint_base.rstrip("/") + AMP_SUBMIT_PATH


def build_form_url(profile: RecipientProfile, endpoint_base: str) -> str:
    query = urlencode({
        FORM_QUERY_PARAMS["email"]: profile.email,
        FORM_QUERY_PARAMS["applicant_name"]: profile.applicant_name,
        FORM_QUERY_PARAMS["job_title"]: profile.job_title,
        FORM_QUERY_PARAMS["company_name"]: profile.company_name,
    })
    return f"{endpoint_base.rstrip('/')}{FORM_PATH}?{query}"


class ContentComposer:
    """Renders both email variants from the same data"""

    AMP_TEMPLATE = "amp_email.html"
    STATIC_TEMPLATE = "static_email.html"
    TEXT_TEMPLATE = "email.txt"

    def __init__(
        self,
        subject: str = "Update Your Resume Information",
        contract: FormContract = FORM_CONTRACT,
        environment: Optional[Environment] = None,
    ):
        self.subject = subject
        self.contract = contract
        self.env = environment or create_template_environment()

    def compose(
        self,
        profile: RecipientProfile,
        submission_endpoint: str,
        tag: CapabilityTag = CapabilityTag.INTERACTIVE,
    ) -> ComposedMessage:
        """
        Build the static HTML (always) and the AMP document (interactive tag only).
        Raises CompositionError for malformed recipient data or endpoint.
        """
        self._check_inputs(profile, submission_endpoint)

        context = self._build_context(profile, submission_endpoint)

        static_html = self.env.get_template(self.STATIC_TEMPLATE).render(**context)
        text_body = self.env.get_template(self.TEXT_TEMPLATE).render(**context)

        interactive_document = None
        if tag == CapabilityTag.INTERACTIVE:
            interactive_document = self.env.get_template(self.AMP_TEMPLATE).render(**context)

        return ComposedMessage(
            subject=self.subject,
            static_html=static_html,
            text_body=text_body,
            interactive_document=interactive_document,
        )

    def _build_context(self, profile: RecipientProfile, submission_endpoint: str) -> dict:
        return {
            "profile": profile,
            "contract": self.contract,
            "fields": self.contract.fields,
            "submit_url": build_submit_url(submission_endpoint),
            "form_url": build_form_url(profile, submission_endpoint),
            "subject": self.subject,
        }

    def _check_inputs(self, profile: RecipientProfile, submission_endpoint: str) -> None:
        email = (profile.email or "").strip()
        local, _, domain = email.rpartition("@")
        if not local or not domain:
            raise CompositionError(f"Recipient address is not usable: {email!r}")

        if not submission_endpoint:
            raise CompositionError("Submission endpoint base URL is required")

        parsed = urlparse(submission_endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise CompositionError(f"Submission endpoint must be an absolute http(s) URL: {submission_endpoint!r}")

        if parsed.scheme != "https":
            logger.warning("   ⚠️ AMP hosts only submit to https endpoints; interactive form will not post")


_composer: Optional[ContentComposer] = None


def get_composer() -> ContentComposer:
    global _composer
    if _composer is None:
        from resumerefresh.utils.config import get_settings
        _composer = ContentComposer(subject=get_settings().email_subject)
    return _composer
