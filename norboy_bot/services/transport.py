"""Outbound delivery to the messaging gateway."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from norboy_bot.config import settings
from norboy_bot.logging_config import get_logger
from norboy_bot.services.alert_service import alert_critical

logger = get_logger("transport")


class Transport(ABC):
    @abstractmethod
    async def send(self, participant_id: str, text: str) -> bool:
        """Deliver ``text``; True when the gateway accepted it."""


class HttpTransport(Transport):
    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.url = url or settings.transport_url
        self.token = token if token is not None else settings.transport_token
        self.timeout = timeout or settings.transport_timeout_seconds

    async def send(self, participant_id: str, text: str) -> bool:
        if not participant_id or not text:
            logger.warning(f"send: missing participant_id={participant_id!r} or text")
            return False

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    json={"to": participant_id, "text": text},
                    headers=headers,
                )
            logger.info(
                f"Gateway response: status={response.status_code}",
                extra={"context": {"participant_id": participant_id, "body": response.text[:200]}},
            )
            return 200 <= response.status_code < 300
        except httpx.HTTPError as e:
            logger.error(f"Error sending message: {e}", extra={"context": {"participant_id": participant_id}})
            alert_critical("Message send failed", {"participant_id": participant_id, "error": str(e)})
            return False
