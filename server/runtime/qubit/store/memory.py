"""In-memory message store with skip-on-contention claims.

Suitable for development and tests. Nothing survives the process. Claims
are per-message reservations taken under one lock, which gives the same
disjointness as SKIP LOCKED: a reserved message is invisible to every other
scope until the reserving scope commits or rolls back.
"""

import itertools
import threading
from datetime import datetime
from typing import Dict, List, Set, Tuple

from qubit.errors import ItemNotFound, StoreError
from qubit.models.message import Message
from qubit.services.validation import validate_message


def _copy(message: Message) -> Message:
    return Message(
        id=message.id,
        phone_number=message.phone_number,
        content=message.content,
        created_at=message.created_at,
        message_id=message.message_id,
        processed_at=message.processed_at,
    )


class InMemoryScope:
    """Reservations and staged outcomes for one unit of work."""

    def __init__(self, store: "InMemoryMessageStore"):
        self._store = store
        self.claimed: Set[int] = set()
        self.outcomes: Dict[int, Tuple[str, datetime]] = {}
        self.finished = False

    def _check_open(self) -> None:
        if self.finished:
            raise StoreError("scope already finished")

    def commit(self) -> None:
        self._check_open()
        self._store._finish(self, apply=True)

    def rollback(self) -> None:
        self._check_open()
        self._store._finish(self, apply=False)

    def close(self) -> None:
        if not self.finished:
            self._store._finish(self, apply=False)


class InMemoryMessageStore:
    """Process-local message store.

    Messages handed out are copies; only commit changes stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: Dict[int, Message] = {}
        self._reserved: Set[int] = set()
        self._ids = itertools.count(1)

    def insert(self, message: Message) -> int:
        validate_message(message.phone_number, message.content)
        with self._lock:
            message.id = next(self._ids)
            if message.created_at is None:
                message.created_at = datetime.utcnow()
            self._messages[message.id] = _copy(message)
            return message.id

    def get(self, message_id: int) -> Message:
        with self._lock:
            if message_id not in self._messages:
                raise ItemNotFound(message_id)
            return _copy(self._messages[message_id])

    def list_completed(self, limit: int = 0) -> List[Message]:
        with self._lock:
            completed = self._ordered(m for m in self._messages.values() if not m.is_pending)
        if limit > 0:
            completed = completed[:limit]
        return [_copy(m) for m in completed]

    def count_pending(self) -> int:
        with self._lock:
            return sum(1 for m in self._messages.values() if m.is_pending)

    def begin(self) -> InMemoryScope:
        return InMemoryScope(self)

    def claim_pending_batch(self, scope: InMemoryScope, limit: int) -> List[Message]:
        scope._check_open()
        with self._lock:
            available = self._ordered(
                m
                for m in self._messages.values()
                if m.is_pending and m.id not in self._reserved
            )[:limit]
            for message in available:
                self._reserved.add(message.id)
                scope.claimed.add(message.id)
            return [_copy(m) for m in available]

    def record_outcome(
        self,
        scope: InMemoryScope,
        message_id: int,
        delivery_ref: str,
        processed_at: datetime,
    ) -> None:
        scope._check_open()
        # Only rows this scope holds can be completed through it
        if message_id not in scope.claimed:
            raise ItemNotFound(message_id)
        with self._lock:
            message = self._messages.get(message_id)
            if message is None or not message.is_pending:
                raise ItemNotFound(message_id)
        scope.outcomes[message_id] = (delivery_ref, processed_at)

    def _finish(self, scope: InMemoryScope, apply: bool) -> None:
        with self._lock:
            if apply:
                for message_id, (delivery_ref, processed_at) in scope.outcomes.items():
                    message = self._messages[message_id]
                    # Completion is written once and never reverts
                    if message.is_pending:
                        message.message_id = delivery_ref
                        message.processed_at = processed_at
            self._reserved.difference_update(scope.claimed)
            scope.finished = True

    @staticmethod
    def _ordered(messages) -> List[Message]:
        return sorted(messages, key=lambda m: (m.created_at, m.id))
