"""Best-effort observer notifications for the dashboard."""

import inspect
from typing import Any, Callable, List, Optional

import httpx

from norboy_bot.logging_config import get_logger

logger = get_logger("events")

NEW_MESSAGE = "new_message"
ESCALATION_DETECTED = "escalation_detected"
SPAM_BLOCKED = "spam_blocked"

Observer = Callable[[str, dict], Any]


class EventBus:
    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers: List[Observer] = list(observers or [])

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    async def publish(self, event: str, payload: dict) -> None:
        """Deliver to every observer; a failing observer never stops the others."""
        for observer in list(self._observers):
            try:
                result = observer(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    f"Observer failed for {event}: {e}",
                    extra={"context": {"participant_id": payload.get("participant_id")}},
                )


class HttpEventObserver:
    """POSTs ``{"event", "data"}`` to the dashboard."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def __call__(self, event: str, payload: dict) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json={"event": event, "data": payload})
            response.raise_for_status()
