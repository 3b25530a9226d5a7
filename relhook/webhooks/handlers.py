"""Webhook signature validation and release payload parsing."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

from relhook.webhooks.models import PayloadResult


# ---------------------------------------------------------------------------
# Signature validation
# ---------------------------------------------------------------------------

def compute_signature(body: bytes, secret: str, algorithm: str = "sha1") -> str:
    """Return the header value a sender would attach, e.g. ``sha1=<hex>``."""
    digest = hmac.new(secret.encode(), body, getattr(hashlib, algorithm)).hexdigest()
    return f"{algorithm}={digest}"


def verify_signature(
    body: bytes, signature: str, secret: str, algorithm: str = "sha1"
) -> bool:
    """Validate an HMAC signature over the complete raw request body.

    Returns False if no secret is configured (rejects unauthenticated requests).
    """
    if not secret:
        return False
    if not signature:
        return False
    expected = compute_signature(body, secret, algorithm)
    return hmac.compare_digest(expected.encode(), signature.strip().encode())


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def parse_release_payload(body: bytes) -> PayloadResult:
    """Extract ``release.tag_name`` from a webhook body.

    A payload without a release object is not an error, it simply isn't a
    release event.
    """
    try:
        payload: Any = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return PayloadResult(error="payload is not valid UTF-8")
    except json.JSONDecodeError as e:
        return PayloadResult(error=f"payload is not valid JSON: {e}")

    if not isinstance(payload, dict):
        return PayloadResult(error="payload is not a JSON object")

    release = payload.get("release")
    if not isinstance(release, dict):
        return PayloadResult()

    tag = release.get("tag_name")
    if tag is None:
        return PayloadResult()
    if not isinstance(tag, str):
        return PayloadResult(error=f"release.tag_name is not a string: {tag!r}")

    return PayloadResult(tag=tag or None)
