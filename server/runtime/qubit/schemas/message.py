"""
Qubit Message Service - API Schemas

Request and response shapes for the message and scheduler routes.
Field names follow the public JSON contract (camelCase).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from qubit.models.message import Message
from qubit.scheduler.scheduler import SchedulerStatus


class CreateMessageRequest(BaseModel):
    phoneNumber: str
    content: str


class StartSchedulerRequest(BaseModel):
    intervalMinutes: Optional[int] = None
    batchSize: Optional[int] = None


class MessageResponse(BaseModel):
    id: int
    phoneNumber: str
    content: str
    createdAt: datetime
    messageId: Optional[str] = None
    processedAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            phoneNumber=message.phone_number,
            content=message.content,
            createdAt=message.created_at,
            messageId=message.message_id,
            processedAt=message.processed_at,
        )


class MessageListResponse(BaseModel):
    success: bool = True
    count: int
    messages: List[MessageResponse]


class SchedulerStatusResponse(BaseModel):
    running: bool
    interval: Optional[str] = None
    intervalMinutes: Optional[float] = None
    batchSize: int
    pendingMessages: int
    runs: int
    skippedTicks: int
    lastRunStartedAt: Optional[datetime] = None
    lastError: Optional[str] = None

    @classmethod
    def from_status(
        cls, status: SchedulerStatus, batch_size: int, pending: int
    ) -> "SchedulerStatusResponse":
        interval_minutes = None
        interval = None
        if status.interval_seconds is not None:
            interval_minutes = status.interval_seconds / 60
            interval = f"{status.interval_seconds:g}s"
        return cls(
            running=status.running,
            interval=interval,
            intervalMinutes=interval_minutes,
            batchSize=batch_size,
            pendingMessages=pending,
            runs=status.runs,
            skippedTicks=status.skipped_ticks,
            lastRunStartedAt=status.last_run_started_at,
            lastError=status.last_error,
        )
