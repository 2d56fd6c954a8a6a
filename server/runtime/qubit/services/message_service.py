"""
Qubit Message Service - Message Service

Application facade used by the HTTP routes: message creation and listing,
plus control of the background dispatch scheduler.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from qubit.models.message import Message
from qubit.scheduler.context import TaskContext
from qubit.scheduler.rwlock import ReadWriteLock
from qubit.scheduler.scheduler import Scheduler, SchedulerStatus
from qubit.services.dispatch_service import DispatchResult, DispatchService
from qubit.store.base import MessageStore

logger = logging.getLogger(__name__)


@dataclass
class DispatchSettings:
    interval_minutes: int
    batch_size: int


class MessageService:
    """Handles message operations and the automatic dispatch loop."""

    def __init__(
        self,
        store: MessageStore,
        dispatcher: DispatchService,
        scheduler: Scheduler,
        interval_minutes: int,
        batch_size: int,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self._settings = DispatchSettings(interval_minutes, batch_size)
        self._settings_lock = ReadWriteLock()
        # Serializes start/stop; the dispatch task never takes it
        self._control_lock = threading.Lock()

    @property
    def dispatch_settings(self) -> DispatchSettings:
        with self._settings_lock.read():
            return DispatchSettings(
                self._settings.interval_minutes, self._settings.batch_size
            )

    def create_message(self, phone_number: str, content: str) -> Message:
        """Validate and store a new pending message.

        Raises:
            ValidationFailed: before anything is written
            WriteFailed: if the store rejects the insert
        """
        message = Message(
            phone_number=phone_number,
            content=content,
            created_at=datetime.utcnow(),
        )
        self.store.insert(message)
        logger.info(f"Message {message.id} queued for {phone_number}")
        return message

    def get_sent_messages(self, limit: int = 0) -> List[Message]:
        return self.store.list_completed(limit)

    def count_pending(self) -> int:
        return self.store.count_pending()

    def process_unsent_messages(
        self, context: Optional[TaskContext] = None
    ) -> DispatchResult:
        """Run one dispatch cycle with the current batch size."""
        batch_size = self.dispatch_settings.batch_size
        return self.dispatcher.run(batch_size, context)

    def start_scheduler(
        self,
        interval_minutes: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        """(Re)start automatic dispatch, optionally with new parameters."""
        with self._control_lock:
            self._restart_scheduler(interval_minutes, batch_size)

    def _restart_scheduler(
        self, interval_minutes: Optional[int], batch_size: Optional[int]
    ) -> None:
        with self._settings_lock.write():
            if interval_minutes is None:
                interval_minutes = self._settings.interval_minutes
            if batch_size is None:
                batch_size = self._settings.batch_size
            if interval_minutes <= 0:
                raise ValueError("intervalMinutes must be greater than 0")
            if batch_size <= 0:
                raise ValueError("batchSize must be greater than 0")

            self._settings = DispatchSettings(interval_minutes, batch_size)

        self.scheduler.start(self.process_unsent_messages, interval_minutes * 60)
        logger.info(
            f"Scheduler started (interval: {interval_minutes} minutes, batch size: {batch_size})"
        )

    def stop_scheduler(self) -> None:
        with self._control_lock:
            self.scheduler.stop()

    def scheduler_status(self) -> SchedulerStatus:
        return self.scheduler.status()
