"""
Refresh Service - Main orchestrator for resume refresh emails.
Ties together capability detection, composition and dispatch.
"""
import asyncio
from typing import Optional

from resumerefresh.classifiers.capability import CapabilityClassifier
from resumerefresh.core.errors import CompositionError
from resumerefresh.core.recipient import DispatchRequest, DispatchResult
from resumerefresh.email.email_sender import EmailDispatcher
from resumerefresh.email.email_templates import ContentComposer
from resumerefresh.email.mail_channel import MailChannel
from resumerefresh.email.retry import RetryPolicy
from resumerefresh.utils.logger import get_logger

logger = get_logger("refresh")


class ResumeRefreshService:
    """Classify → compose → dispatch for one or many applicants"""

    def __init__(
        self,
        classifier: CapabilityClassifier,
        composer: ContentComposer,
        dispatcher: EmailDispatcher,
        default_company: str = "Hirefy",
        default_endpoint_base: Optional[str] = None,
    ):
        self.classifier = classifier
        self.composer = composer
        self.dispatcher = dispatcher
        self.default_company = default_company
        self.default_endpoint_base = default_endpoint_base

    async def send_refresh_email(self, request: DispatchRequest) -> DispatchResult:
        """
        Send one resume refresh email.
        Raises CompositionError when the recipient data cannot produce an email;
        transmission problems come back as a failed DispatchResult.
        """
        profile = request.to_profile(self.default_company)
        endpoint_base = request.submission_endpoint_base or self.default_endpoint_base or ""

        tag = self.classifier.classify(profile.email)
        composed = self.composer.compose(profile, endpoint_base, tag)

        return await self.dispatcher.send(profile, composed, tag)

    async def send_batch(
        self,
        requests: list[DispatchRequest],
        delay_seconds: float = 1.0,
    ) -> dict:
        """
        Send to each applicant in turn, pausing between sends.
        One bad recipient never stops the rest of the batch.
        """
        stats = {
            "total": len(requests),
            "sent": 0,
            "failed": 0,
            "results": [],
        }

        logger.info(f"   📬 Processing {len(requests)} refresh emails...")

        for index, request in enumerate(requests):
            entry = {"email": request.recipient}
            try:
                result = await self.send_refresh_email(request)
            except CompositionError as e:
                logger.warning(f"   ⚠️ Skipping {request.recipient}: {e}")
                entry.update(success=False, error=str(e))
            else:
                entry.update(
                    success=result.success,
                    attempts=result.attempts,
                    interactive=result.interactive_used,
                )
                if result.success:
                    entry["messageId"] = result.message_id
                else:
                    entry["error"] = result.error_message
                    entry["reason"] = result.failure_reason

            stats["sent" if entry["success"] else "failed"] += 1
            stats["results"].append(entry)

            if delay_seconds and index < len(requests) - 1:
                await asyncio.sleep(delay_seconds)

        logger.info(f"   ✅ Batch complete: {stats['sent']} sent, {stats['failed']} failed")
        return stats


def create_refresh_service(settings, channel: MailChannel) -> ResumeRefreshService:
    dispatcher = EmailDispatcher(
        channel=channel,
        retry_policy=RetryPolicy.from_settings(settings),
        sender_email=settings.smtp_user,
        sender_name=settings.sender_name,
    )
    return ResumeRefreshService(
        classifier=CapabilityClassifier(settings.amp.supported_domains),
        composer=ContentComposer(subject=settings.email_subject),
        dispatcher=dispatcher,
        default_company=settings.default_company,
        default_endpoint_base=settings.server_url,
    )
