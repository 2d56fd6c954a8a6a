"""
Qubit Message Service - Error Types

Validation errors are shown to API callers. Store, delivery and dispatch
errors stay inside the process and end up in the logs.
"""

from typing import Optional


class QubitError(Exception):
    """Base class for service errors."""


class ValidationFailed(QubitError):
    """A message was rejected before any write.

    Attributes:
        field: API field name that failed (phoneNumber or content).
        constraint: Machine-readable name of the violated rule.
    """

    def __init__(self, field: str, constraint: str, message: str):
        self.field = field
        self.constraint = constraint
        super().__init__(message)


class StoreError(QubitError):
    """The message store could not complete an operation."""


class WriteFailed(StoreError):
    """A write to the message store failed."""


class ItemNotFound(StoreError):
    """An outcome was recorded for a message that is missing or completed."""

    def __init__(self, message_id: int):
        self.message_id = message_id
        super().__init__(f"message with id {message_id} not found")


class DeliveryError(QubitError):
    """A single delivery attempt did not succeed."""


class TransportFailed(DeliveryError):
    """The recipient rejected the message or could not be reached."""


class DeliveryCancelled(DeliveryError):
    """The governing task context was cancelled or timed out."""


class DispatchError(QubitError):
    """A dispatch cycle was aborted.

    Attributes:
        original: The store error that caused the abort, if any.
    """

    def __init__(self, message: str, original: Optional[Exception] = None):
        self.original = original
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.original is not None:
            return f"{base}: {self.original}"
        return base


class BeginFailed(DispatchError):
    """The atomic scope could not be opened."""


class ClaimFailed(DispatchError):
    """Pending messages could not be claimed."""


class CommitFailed(DispatchError):
    """The scope could not be committed; the whole batch stays pending."""
