"""
Email Sender - Delivers composed resume refresh emails through the mail channel.
Handles bounded retry on transient failures and never raises to its caller.
"""
import asyncio
from email.utils import formataddr
from typing import Awaitable, Callable, Optional

from resumerefresh.core.errors import FailureReason, TransmissionFailure
from resumerefresh.core.recipient import (
    CapabilityTag,
    ComposedMessage,
    DispatchResult,
    RecipientProfile,
)
from resumerefresh.email.mail_channel import MailChannel, OutboundMessage
from resumerefresh.email.retry import RetryPolicy
from resumerefresh.utils.logger import get_logger

logger = get_logger("dispatcher")

EMAIL_TYPE_HEADER = "Resume-Refreshment-Request"


class EmailDispatcher:
    """Sends one composed message per recipient with retry"""

    def __init__(
        self,
        channel: MailChannel,
        retry_policy: Optional[RetryPolicy] = None,
        sender_email: str = "",
        sender_name: str = "",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.channel = channel
        self.retry_policy = retry_policy or RetryPolicy()
        self.sender_email = sender_email
        self.sender_name = sender_name
        self._sleep = sleep

    async def send(
        self,
        recipient: RecipientProfile,
        composed: ComposedMessage,
        tag: CapabilityTag,
    ) -> DispatchResult:
        """
        Send the message, retrying transient failures up to the policy limit.
        Always returns a DispatchResult; failures are reported, not raised.
        """
        interactive = tag == CapabilityTag.INTERACTIVE and composed.has_interactive
        message = self._build_message(recipient, composed, interactive)

        attempt = 0
        while True:
            attempt += 1
            try:
                message_id = await self.channel.transmit(message)
            except TransmissionFailure as e:
                if self.retry_policy.should_retry(e, attempt):
                    delay = self.retry_policy.delay_for(attempt)
                    logger.warning(
                        f"   🔄 Attempt {attempt}/{self.retry_policy.max_attempts} to {recipient.email} "
                        f"failed ({e.reason.value}), retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue

                logger.error(f"   ❌ Failed to send to {recipient.email} after {attempt} attempt(s): {e}")
                return DispatchResult.failed(
                    recipient=recipient.email,
                    attempts=attempt,
                    interactive_used=interactive,
                    reason=e.reason,
                    error_message=str(e),
                )
            except Exception as e:
                logger.exception(f"   ❌ Unexpected error sending to {recipient.email}")
                return DispatchResult.failed(
                    recipient=recipient.email,
                    attempts=attempt,
                    interactive_used=interactive,
                    reason=FailureReason.UNKNOWN,
                    error_message=str(e),
                )

            variant = "AMP" if interactive else "HTML"
            logger.info(f"   ✉️ Sent {variant} email to {recipient.email} ({message_id})")
            return DispatchResult.succeeded(
                recipient=recipient.email,
                attempts=attempt,
                interactive_used=interactive,
                message_id=message_id,
            )

    def _build_message(
        self,
        recipient: RecipientProfile,
        composed: ComposedMessage,
        interactive: bool,
    ) -> OutboundMessage:
        display_name = self.sender_name or f"{recipient.company_name} - Resume Update"

        return OutboundMessage(
            to=formataddr((recipient.applicant_name, recipient.email)),
            from_addr=formataddr((display_name, self.sender_email)),
            subject=composed.subject,
            html_body=composed.static_html,
            text_body=composed.text_body,
            amp_body=composed.interactive_document if interactive else None,
            reply_to=self.sender_email or None,
            headers={
                "X-Email-Type": EMAIL_TYPE_HEADER,
                "X-Company": recipient.company_name,
                "X-Position": recipient.job_title,
                "X-AMP-Supported": "true" if interactive else "false",
            },
        )

    async def test_connection(self) -> dict:
        """Verify the mail server accepts our credentials"""
        try:
            await self.channel.verify()
        except TransmissionFailure as e:
            return {"success": False, "message": str(e), "reason": e.reason.value}
        return {"success": True, "message": "SMTP connection is working"}
