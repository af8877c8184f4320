"""
Email Package - Composition, transport and dispatch of resume refresh emails
"""

from resumerefresh.email.email_templates import ContentComposer, get_composer
from resumerefresh.email.email_sender import EmailDispatcher
from resumerefresh.email.mail_channel import (
    MailChannel,
    OutboundMessage,
    SMTPConnectionPool,
    classify_smtp_error,
)
from resumerefresh.email.refresh_service import ResumeRefreshService, create_refresh_service
from resumerefresh.email.retry import RetryPolicy

__all__ = [
    "ContentComposer",
    "get_composer",
    "EmailDispatcher",
    "MailChannel",
    "OutboundMessage",
    "SMTPConnectionPool",
    "classify_smtp_error",
    "ResumeRefreshService",
    "create_refresh_service",
    "RetryPolicy",
]
