"""
Qubit Message Service - Message Model

SQLAlchemy model for the messages table.
Represents text messages queued for delivery to the recipient webhook.
"""

from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Index, text
from sqlalchemy.sql import func
from qubit.database import Base

MAX_CONTENT_LENGTH = 500


class Message(Base):
    """
    Message table model.

    A message is pending while processed_at is NULL and completed once the
    dispatch cycle records a successful delivery. message_id holds the
    correlation id returned by the recipient and is only set together with
    processed_at.
    """
    __tablename__ = "messages"

    # SQLite only autoincrements INTEGER primary keys
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    phone_number = Column(String(20), nullable=False)
    content = Column(String(MAX_CONTENT_LENGTH), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    message_id = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # Pending lookups; partial on PostgreSQL
        Index(
            "idx_messages_processed_at",
            "processed_at",
            postgresql_where=text("processed_at IS NULL"),
        ),
        Index("idx_messages_created_at", "created_at"),
    )

    @property
    def is_pending(self) -> bool:
        return self.processed_at is None

    def __repr__(self) -> str:
        return f"<Message id={self.id} to={self.phone_number} pending={self.is_pending}>"
