"""
Submission Gateway - Accepts resume updates from AMP emails and the hosted form.

Interactive requests go through AMP CORS negotiation first:
    received → origin_checked → payload_validated → persisted → responded
Any rejection short-circuits before the store is touched.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import urlparse

from resumerefresh.core.errors import OriginRejected, PersistenceFailure, ValidationFailed
from resumerefresh.core.submission import (
    SubmissionMetadata,
    SubmissionRecord,
    SubmissionSource,
    ValidatedSubmission,
    validate_submission,
)
from resumerefresh.utils.logger import get_logger

logger = get_logger("gateway")

SOURCE_ORIGIN_PARAM = "__amp_source_origin"
SOURCE_ORIGIN_HEADER = "AMP-Access-Control-Allow-Source-Origin"
SUCCESS_MESSAGE = "Resume information updated successfully!"

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


class SubmissionStage(str, Enum):
    RECEIVED = "received"
    ORIGIN_CHECKED = "origin_checked"
    PAYLOAD_VALIDATED = "payload_validated"
    PERSISTED = "persisted"
    RESPONDED = "responded"
    ORIGIN_REJECTED = "origin_rejected"
    VALIDATION_REJECTED = "validation_rejected"
    PERSIST_FAILED = "persist_failed"


class SubmissionStore(Protocol):
    def upsert_latest(self, email: str, fields: dict, metadata: SubmissionMetadata) -> SubmissionRecord: ...


@dataclass
class InboundRequest:
    method: str = "POST"
    origin: Optional[str] = None
    source_origin: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    user_agent: str = ""
    ip_address: str = ""
    referrer: Optional[str] = None


@dataclass
class GatewayResponse:
    status_code: int
    body: Optional[dict] = None
    headers: dict[str, str] = field(default_factory=dict)
    stage: SubmissionStage = SubmissionStage.RESPONDED


def is_loopback_origin(origin: str) -> bool:
    try:
        host = urlparse(origin).hostname
    except ValueError:
        return False
    return host in LOOPBACK_HOSTS


class SubmissionGateway:
    """AMP CORS negotiation, contract validation and per-email upsert"""

    def __init__(
        self,
        store: SubmissionStore,
        trusted_origins: list[str],
        development: bool = False,
        expose_errors: Optional[bool] = None,
    ):
        self.store = store
        self.trusted_origins = frozenset(o.rstrip("/") for o in trusted_origins)
        self.development = development
        self.expose_errors = development if expose_errors is None else expose_errors

    @classmethod
    def from_settings(cls, settings, store: SubmissionStore) -> "SubmissionGateway":
        return cls(
            store=store,
            trusted_origins=settings.amp.trusted_origins,
            development=settings.is_development,
        )

    # ============ Origin negotiation ============

    def is_trusted(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        if origin.rstrip("/") in self.trusted_origins:
            return True
        return self.development and is_loopback_origin(origin)

    def authorize_origin(self, origin: Optional[str], source_origin: Optional[str]) -> dict[str, str]:
        """
        Return the CORS headers for an allowed request.
        Raises OriginRejected for an untrusted origin or a missing source origin.
        """
        if not self.is_trusted(origin):
            raise OriginRejected(f"Untrusted origin: {origin or 'none'}", source_origin)
        if not source_origin:
            raise OriginRejected(f"Missing {SOURCE_ORIGIN_PARAM} parameter", source_origin)

        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            SOURCE_ORIGIN_HEADER: source_origin,
            "Access-Control-Expose-Headers": SOURCE_ORIGIN_HEADER,
        }

    def rejection_headers(self, origin: Optional[str], source_origin: Optional[str]) -> dict[str, str]:
        """
        Headers for a 400 origin rejection. A trusted origin still gets
        Allow-Origin so the client can render its error template; the
        source origin is echoed only when the request supplied one.
        """
        headers = {}
        if self.is_trusted(origin):
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Credentials"] = "true"
            headers["Access-Control-Expose-Headers"] = SOURCE_ORIGIN_HEADER
        if source_origin:
            headers[SOURCE_ORIGIN_HEADER] = source_origin
        return headers

    @staticmethod
    def preflight_headers() -> dict[str, str]:
        return {
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    # ============ Validation / persistence ============

    def validate(self, payload: Mapping[str, Any]) -> ValidatedSubmission:
        return validate_submission(payload)

    async def upsert(self, validated: ValidatedSubmission, metadata: SubmissionMetadata) -> SubmissionRecord:
        try:
            return await asyncio.to_thread(
                self.store.upsert_latest, validated.email, validated.to_fields(), metadata
            )
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(str(e)) from e

    async def accept(self, payload: Mapping[str, Any], metadata: SubmissionMetadata) -> SubmissionRecord:
        """Validate and store without origin negotiation (hosted web form channel)."""
        validated = self.validate(payload)
        return await self.upsert(validated, metadata)

    # ============ Interactive channel ============

    async def handle(self, request: InboundRequest) -> GatewayResponse:
        """Run one AMP request through every stage and build the HTTP response."""
        try:
            headers = self.authorize_origin(request.origin, request.source_origin)
        except OriginRejected as e:
            logger.warning(f"   ❌ AMP CORS rejected: {e}")
            return GatewayResponse(
                status_code=400,
                body={"error": "Origin rejected", "message": str(e)},
                headers=self.rejection_headers(request.origin, e.source_origin),
                stage=SubmissionStage.ORIGIN_REJECTED,
            )

        if request.method.upper() == "OPTIONS":
            headers.update(self.preflight_headers())
            return GatewayResponse(status_code=204, headers=headers)

        logger.debug(f"   {SubmissionStage.ORIGIN_CHECKED.value}: {request.origin}")

        try:
            validated = self.validate(request.payload)
        except ValidationFailed as e:
            logger.warning(f"   ❌ Validation error: {e}")
            return GatewayResponse(
                status_code=400,
                body={"error": "Validation failed", "message": str(e)},
                headers=headers,
                stage=SubmissionStage.VALIDATION_REJECTED,
            )

        metadata = SubmissionMetadata(
            user_agent=request.user_agent,
            ip_address=request.ip_address,
            source=SubmissionSource.INTERACTIVE_EMAIL,
            referrer=request.referrer,
        )

        try:
            record = await self.upsert(validated, metadata)
        except PersistenceFailure as e:
            logger.error(f"   ❌ Error storing AMP submission: {e}")
            body = {
                "error": "Failed to process submission",
                "message": "An internal server error occurred. Please try again.",
            }
            if self.expose_errors:
                body["details"] = str(e)
            return GatewayResponse(
                status_code=500,
                body=body,
                headers=headers,
                stage=SubmissionStage.PERSIST_FAILED,
            )

        logger.info(f"   📝 Stored resume update {record.id} via AMP email")
        return GatewayResponse(
            status_code=200,
            body={
                "message": SUCCESS_MESSAGE,
                "submissionId": record.id,
                "applicantName": record.applicant_name,
            },
            headers=headers,
        )
