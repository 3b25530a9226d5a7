"""Inbound release webhooks."""

from relhook.webhooks.handlers import (
    compute_signature,
    parse_release_payload,
    verify_signature,
)
from relhook.webhooks.models import PayloadResult
from relhook.webhooks.server import WebhookServer

__all__ = [
    "PayloadResult",
    "WebhookServer",
    "compute_signature",
    "parse_release_payload",
    "verify_signature",
]
