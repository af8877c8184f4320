"""
Submissions Package - Inbound resume updates from AMP emails and the web form
"""

from resumerefresh.submissions.gateway import (
    GatewayResponse,
    InboundRequest,
    SubmissionGateway,
    SubmissionStage,
)

__all__ = [
    "GatewayResponse",
    "InboundRequest",
    "SubmissionGateway",
    "SubmissionStage",
]
