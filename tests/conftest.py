"""
Shared test fixtures for Resume Refresh tests.

Settings are built directly (no .env / YAML), the submission store lives in a
tmp SQLite file, and the mail channel is an in-memory fake that replays a
scripted sequence of outcomes.
"""
import pytest

from resumerefresh.core.errors import TransmissionFailure
from resumerefresh.core.recipient import RecipientProfile
from resumerefresh.core.submission import FORM_CONTRACT
from resumerefresh.email.mail_channel import OutboundMessage
from resumerefresh.utils.config import (
    DatabaseConfig,
    LoggingConfig,
    RetryConfig,
    Settings,
)
from resumerefresh.utils.database import Database


# ============================================================
# Fakes
# ============================================================


class FakeMailChannel:
    """Mail channel double: records every transmit and raises scripted failures.

    `outcomes` is consumed one entry per transmit call; an exception instance
    is raised, anything else means success. Once exhausted, every call succeeds.
    """

    def __init__(self, outcomes=None, verify_error: TransmissionFailure = None):
        self.outcomes = list(outcomes or [])
        self.verify_error = verify_error
        self.sent: list[OutboundMessage] = []
        self.attempts = 0
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        self.opened = True

    async def verify(self) -> None:
        if self.verify_error:
            raise self.verify_error

    async def transmit(self, message: OutboundMessage) -> str:
        self.attempts += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
        self.sent.append(message)
        return f"<msg-{self.attempts}@test.local>"

    async def close(self) -> None:
        self.closed = True


class CountingStore:
    """Wraps a Database and counts upsert calls."""

    def __init__(self, db: Database, fail_with: Exception = None):
        self.db = db
        self.fail_with = fail_with
        self.writes = 0

    def upsert_latest(self, email, fields, metadata):
        self.writes += 1
        if self.fail_with:
            raise self.fail_with
        return self.db.upsert_latest(email, fields, metadata)


# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="development",
        server_url="https://refresh.example.com",
        smtp_user="hr@hirefy.com",
        smtp_password="secret",
        bulk_delay_seconds=0,
        retry=RetryConfig(max_attempts=3, base_delay=0),
        database=DatabaseConfig(path=str(tmp_path / "submissions.db")),
        logging=LoggingConfig(file=str(tmp_path / "activity.log")),
    )


@pytest.fixture
def db(tmp_path):
    return Database(db_path=str(tmp_path / "submissions.db"))


@pytest.fixture
def counting_store(db):
    return CountingStore(db)


@pytest.fixture
def profile():
    return RecipientProfile(
        email="jane.doe@gmail.com",
        applicant_name="Jane Doe",
        job_title="Data Engineer",
        company_name="Hirefy",
    )


@pytest.fixture
def valid_payload():
    return {
        "email": "jane.doe@gmail.com",
        "applicantName": "Jane Doe",
        "jobTitle": "Data Engineer",
        "companyName": "Hirefy",
        "sameCompany": "yes",
        "skills": ["Python", "Docker"],
        "currentRole": "Senior Data Engineer",
        "yearsOfExperience": 6,
        "relevantInfo": "Led the migration to Kubernetes.",
    }


@pytest.fixture
def contract():
    return FORM_CONTRACT
