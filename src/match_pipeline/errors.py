"""Error taxonomy for the consent and notification pipeline.

Duplicate suppression is not an error: idempotent
re-materialization and re-resolution report ``created=False`` on their
result objects instead of raising.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors surfaced to callers."""


class InvalidSignal(PipelineError, ValueError):
    """A signal was rejected before it reached the ledger."""


class QuotaExceeded(PipelineError):
    """The user's tier does not allow another positive signal today."""

    def __init__(self, user_id: str, tier: str, limit: int, used: int) -> None:
        self.user_id = user_id
        self.tier = tier
        self.limit = limit
        self.used = used
        super().__init__(
            f"Daily limit of {limit} positive signals reached for tier '{tier}'"
        )


class InvalidTransition(PipelineError):
    """An operation was attempted from a state that does not allow it."""


class NotFound(PipelineError):
    """A referenced record does not exist."""


class GuardianMismatch(PipelineError):
    """The acting guardian is not the guardian assigned to the request."""


class DeliveryFailure(PipelineError):
    """The external delivery channel failed to accept a message."""


class UnknownNotificationType(PipelineError, ValueError):
    """A notification event named a type the batcher does not know."""
