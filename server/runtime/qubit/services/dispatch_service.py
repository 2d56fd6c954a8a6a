"""
Qubit Message Service - Message Dispatch Service

Business logic for claiming pending messages from the store and
delivering them to the recipient webhook.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from qubit.errors import (
    BeginFailed,
    ClaimFailed,
    CommitFailed,
    DeliveryError,
    ItemNotFound,
    StoreError,
    WriteFailed,
)
from qubit.models.message import Message
from qubit.scheduler.context import TaskContext
from qubit.services.delivery import DeliveryTransport
from qubit.store.base import MessageStore, Scope

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Counts from one dispatch cycle."""

    claimed: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class DispatchService:
    """
    Service for dispatching pending messages.

    One cycle claims a batch inside a single store scope, attempts delivery
    of each message, records the successes and commits. A failed delivery
    leaves its message pending without affecting the rest of the batch.
    Cycles within one service instance never overlap.
    """

    def __init__(self, store: MessageStore, transport: DeliveryTransport):
        self.store = store
        self.transport = transport
        self._lock = threading.Lock()

    def run(self, batch_size: int, context: Optional[TaskContext] = None) -> DispatchResult:
        """
        Dispatch one batch of pending messages.

        Args:
            batch_size: Maximum number of messages to claim
            context: Cancellation context for the delivery attempts

        Returns:
            DispatchResult with the counts for this cycle

        Raises:
            BeginFailed, ClaimFailed, CommitFailed: the store failed and
                every claimed message is pending again
            ItemNotFound, WriteFailed: an outcome could not be recorded;
                the cycle was rolled back
        """
        context = context or TaskContext.background()
        with self._lock:
            return self._run_locked(batch_size, context)

    def _run_locked(self, batch_size: int, context: TaskContext) -> DispatchResult:
        try:
            scope = self.store.begin()
        except StoreError as exc:
            raise BeginFailed("failed to begin transaction", exc) from exc

        try:
            try:
                messages = self.store.claim_pending_batch(scope, batch_size)
            except StoreError as exc:
                self._rollback(scope)
                raise ClaimFailed("failed to fetch and lock unsent messages", exc) from exc

            result = DispatchResult(claimed=len(messages))

            if not messages:
                self._commit(scope)
                logger.info("No unsent messages to process")
                return result

            logger.info(f"Processing {len(messages)} unsent messages (locked for this instance)")

            for message in messages:
                if context.cancelled:
                    result.skipped += 1
                    continue
                try:
                    delivery_ref = self._send(message, context)
                except DeliveryError as exc:
                    logger.error(f"Error sending message {message.id}: {exc}")
                    result.failed += 1
                    continue
                except Exception as exc:
                    # Log error but continue with the rest of the batch
                    logger.exception(f"Unexpected error sending message {message.id}: {exc}")
                    result.failed += 1
                    continue

                try:
                    self._record(scope, message, delivery_ref)
                except (ItemNotFound, WriteFailed) as exc:
                    logger.error(f"Aborting batch, could not record message {message.id}: {exc}")
                    self._rollback(scope)
                    raise
                result.delivered += 1

            if result.skipped:
                logger.warning(
                    f"Dispatch cancelled, {result.skipped} messages left pending for a later cycle"
                )

            self._commit(scope)
        finally:
            scope.close()

        logger.info(
            f"Batch processing complete, transaction committed "
            f"(delivered: {result.delivered}, failed: {result.failed})"
        )
        return result

    def _send(self, message: Message, context: TaskContext) -> str:
        logger.info(f"Sending message {message.id} to {message.phone_number}")
        return self.transport.send(message.phone_number, message.content, context)

    def _record(self, scope: Scope, message: Message, delivery_ref: str) -> None:
        self.store.record_outcome(scope, message.id, delivery_ref, datetime.utcnow())
        logger.info(f"Message {message.id} sent successfully (messageId: {delivery_ref})")

    def _commit(self, scope: Scope) -> None:
        try:
            scope.commit()
        except StoreError as exc:
            self._rollback(scope)
            raise CommitFailed("failed to commit transaction", exc) from exc

    def _rollback(self, scope: Scope) -> None:
        try:
            scope.rollback()
        except StoreError as exc:
            logger.warning(f"Failed to rollback transaction: {exc}")
