"""Webhook payload models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PayloadResult:
    """Outcome of parsing a webhook body.

    ``tag`` is None when the payload is not a release event. ``error`` is set
    when the body could not be interpreted at all.
    """

    tag: str | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def is_release(self) -> bool:
        return self.ok and bool(self.tag)
