"""
Qubit Message Service - SQL Message Store

SQLAlchemy-backed store. Claims use SELECT ... FOR UPDATE SKIP LOCKED so
several service instances can share one table without a lock service:
each transaction sees a disjoint slice of the pending rows.
"""

import logging
from datetime import datetime
from typing import List

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import Select

from qubit.errors import ItemNotFound, StoreError, WriteFailed
from qubit.models.message import Message
from qubit.services.validation import validate_message

logger = logging.getLogger(__name__)


def pending_batch_query(limit: int) -> Select:
    """Oldest pending messages, locked and skipping rows other scopes hold."""
    return (
        select(Message)
        .where(Message.processed_at.is_(None))
        .order_by(Message.created_at.asc(), Message.id.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )


class SqlScope:
    """A database transaction used as a dispatch scope."""

    def __init__(self, session: Session):
        self.session = session

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to commit transaction: {exc}") from exc

    def rollback(self) -> None:
        # Rollback expires loaded rows; detach them first so claimed
        # messages stay readable after the scope ends
        self.session.expunge_all()
        try:
            self.session.rollback()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to rollback transaction: {exc}") from exc

    def close(self) -> None:
        self.session.expunge_all()
        self.session.close()


class SqlMessageStore:
    """
    Message store over a SQLAlchemy session factory.

    Every public call outside a scope uses its own short-lived session.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def insert(self, message: Message) -> int:
        validate_message(message.phone_number, message.content)
        if message.created_at is None:
            message.created_at = datetime.utcnow()

        session = self.session_factory()
        try:
            session.add(message)
            session.commit()
            return message.id
        except SQLAlchemyError as exc:
            session.rollback()
            raise WriteFailed(f"failed to create message: {exc}") from exc
        finally:
            session.close()

    def list_completed(self, limit: int = 0) -> List[Message]:
        query = (
            select(Message)
            .where(Message.processed_at.is_not(None))
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        if limit > 0:
            query = query.limit(limit)

        try:
            with self.session_factory() as session:
                return list(session.scalars(query).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to query messages: {exc}") from exc

    def count_pending(self) -> int:
        query = select(func.count()).select_from(Message).where(
            Message.processed_at.is_(None)
        )
        try:
            with self.session_factory() as session:
                return session.scalar(query) or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to count pending messages: {exc}") from exc

    def begin(self) -> SqlScope:
        session = self.session_factory()
        try:
            # Check out a connection now so a dead database fails here
            session.connection()
        except SQLAlchemyError as exc:
            session.close()
            raise StoreError(f"failed to begin transaction: {exc}") from exc
        return SqlScope(session)

    def claim_pending_batch(self, scope: SqlScope, limit: int) -> List[Message]:
        try:
            return list(scope.session.scalars(pending_batch_query(limit)).all())
        except SQLAlchemyError as exc:
            raise StoreError(
                f"failed to query and lock unsent messages: {exc}"
            ) from exc

    def record_outcome(
        self,
        scope: SqlScope,
        message_id: int,
        delivery_ref: str,
        processed_at: datetime,
    ) -> None:
        statement = (
            update(Message)
            .where(Message.id == message_id, Message.processed_at.is_(None))
            .values(message_id=delivery_ref, processed_at=processed_at)
            .execution_options(synchronize_session=False)
        )
        try:
            result = scope.session.execute(statement)
        except SQLAlchemyError as exc:
            raise WriteFailed(f"failed to update message: {exc}") from exc

        if result.rowcount == 0:
            raise ItemNotFound(message_id)
