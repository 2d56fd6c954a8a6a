"""
Qubit Message Service - Delivery Transports

A transport hands one message to the recipient and returns the recipient's
correlation id. Transports never retry; a failed message simply stays
pending for the next dispatch cycle.
"""

import logging
import random
import uuid
from typing import Optional, Protocol

import httpx

from qubit.errors import DeliveryCancelled, TransportFailed
from qubit.scheduler.context import TaskContext

logger = logging.getLogger(__name__)


class DeliveryTransport(Protocol):
    """Sends a single message; raises TransportFailed or DeliveryCancelled."""

    def send(self, phone_number: str, content: str, context: TaskContext) -> str: ...

    def close(self) -> None: ...


class WebhookTransport:
    """
    Delivers messages by POSTing them to the recipient webhook.

    The request timeout is capped by the time left on the task context, so
    a cycle that is about to expire does not start a request it cannot
    finish.
    """

    def __init__(
        self,
        webhook_url: str,
        auth_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.webhook_url = webhook_url
        self.auth_key = auth_key
        self.timeout = timeout
        self._client = client or httpx.Client()

    def send(self, phone_number: str, content: str, context: TaskContext) -> str:
        if context.cancelled:
            raise DeliveryCancelled("webhook call cancelled before sending")

        timeout = self.timeout
        remaining = context.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        try:
            response = self._client.post(
                self.webhook_url,
                json={"to": phone_number, "content": content},
                headers={
                    "x-ins-auth-key": self.auth_key,
                    "Content-Type": "application/json",
                },
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            if context.cancelled:
                raise DeliveryCancelled(f"webhook call cancelled: {exc}") from exc
            raise TransportFailed(f"webhook call timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportFailed(f"webhook call failed: {exc}") from exc

        if not response.is_success:
            raise TransportFailed(
                f"webhook returned status {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportFailed("webhook returned a non-JSON body") from exc

        message_id = body.get("messageId") if isinstance(body, dict) else None
        if not message_id:
            raise TransportFailed("webhook response did not include a messageId")
        return str(message_id)

    def close(self) -> None:
        self._client.close()


class SimulatedTransport:
    """
    Stand-in recipient for development.

    Waits a random 0..max_delay seconds, fails with probability
    failure_rate, and otherwise returns a fresh UUID as the message id.
    """

    def __init__(
        self,
        max_delay: float = 5.0,
        failure_rate: float = 0.2,
        rng: Optional[random.Random] = None,
    ):
        self.max_delay = max_delay
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    def send(self, phone_number: str, content: str, context: TaskContext) -> str:
        delay = self._rng.uniform(0, self.max_delay) if self.max_delay > 0 else 0.0
        if context.wait(delay):
            raise DeliveryCancelled("webhook call cancelled")

        if self._rng.random() < self.failure_rate:
            raise TransportFailed("webhook call failed: random failure occurred")

        return str(uuid.uuid4())

    def close(self) -> None:
        pass
