"""
Qubit Message Service - Service Wiring

Builds the message service from settings and exposes it to the routes.
"""

from fastapi import HTTPException, Request
from sqlalchemy.orm import sessionmaker

from qubit.config import Settings
from qubit.scheduler.scheduler import Scheduler
from qubit.services.delivery import DeliveryTransport, SimulatedTransport, WebhookTransport
from qubit.services.dispatch_service import DispatchService
from qubit.services.message_service import MessageService
from qubit.store.sql import SqlMessageStore


def build_transport(settings: Settings) -> DeliveryTransport:
    if settings.DELIVERY_MODE == "webhook":
        if not settings.WEBHOOK_URL:
            raise ValueError("WEBHOOK_URL is required when DELIVERY_MODE is 'webhook'")
        if not settings.WEBHOOK_AUTH_KEY:
            raise ValueError("WEBHOOK_AUTH_KEY is required when DELIVERY_MODE is 'webhook'")
        return WebhookTransport(
            settings.WEBHOOK_URL,
            settings.WEBHOOK_AUTH_KEY,
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
        )
    return SimulatedTransport(
        max_delay=settings.SIMULATED_MAX_DELAY_SECONDS,
        failure_rate=settings.SIMULATED_FAILURE_RATE,
    )


def build_message_service(settings: Settings, session_factory: sessionmaker) -> MessageService:
    store = SqlMessageStore(session_factory)
    dispatcher = DispatchService(store, build_transport(settings))
    scheduler = Scheduler(task_timeout=settings.TASK_TIMEOUT_SECONDS, name="dispatch-scheduler")
    return MessageService(
        store,
        dispatcher,
        scheduler,
        interval_minutes=settings.SCHEDULER_INTERVAL_MINUTES,
        batch_size=settings.MESSAGE_BATCH_SIZE,
    )


def get_message_service(request: Request) -> MessageService:
    """Dependency returning the service created at startup"""
    service = getattr(request.app.state, "message_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service is not initialized")
    return service
