"""Store protocol for queued messages.

All claim and outcome bookkeeping lives in the store. The dispatch cycle
only opens a scope, claims through it, records through it and ends it.
"""

from datetime import datetime
from typing import List, Protocol

from qubit.models.message import Message


class Scope(Protocol):
    """An atomic unit of work against a store.

    Claims taken through a scope last until commit or rollback. Outcomes
    recorded through it become visible together on commit and are
    discarded on rollback.
    """

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None:
        """Release the scope, rolling back anything not yet committed."""
        ...


class MessageStore(Protocol):
    """Protocol defining the interface for message stores."""

    def insert(self, message: Message) -> int:
        """Persist a new pending message and return its id.

        Raises:
            ValidationFailed: If the message breaks a field rule; nothing
                is written.
            WriteFailed: If the message could not be written.
        """
        ...

    def list_completed(self, limit: int = 0) -> List[Message]:
        """Return completed messages oldest-first. A limit of 0 means all."""
        ...

    def count_pending(self) -> int: ...

    def begin(self) -> Scope:
        """Open a scope.

        Raises:
            StoreError: If the store cannot start a unit of work.
        """
        ...

    def claim_pending_batch(self, scope: Scope, limit: int) -> List[Message]:
        """Reserve up to limit pending messages, oldest-first, for this scope.

        Messages reserved by another live scope are skipped, not waited on.
        An empty list means nothing was available.

        Raises:
            StoreError: If the claim query fails.
        """
        ...

    def record_outcome(
        self,
        scope: Scope,
        message_id: int,
        delivery_ref: str,
        processed_at: datetime,
    ) -> None:
        """Mark one message as delivered inside scope.

        Raises:
            ItemNotFound: If no pending message with this id is claimed
                by scope.
            WriteFailed: If the update fails.
        """
        ...
