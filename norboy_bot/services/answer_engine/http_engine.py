from typing import Optional

import httpx

from norboy_bot.config import settings
from norboy_bot.logging_config import get_logger
from norboy_bot.services.answer_engine.base import AnswerEngine, AnswerEngineError, AnswerResult, EscalationSignal

logger = get_logger("answer_engine")


class HttpAnswerEngine(AnswerEngine):
    """Client for the retrieval service.

    Expected response body::

        {"text": "...", "escalate": {"reason": "low_confidence", "priority": "medium"},
         "source": "faq", "confidence": 0.82}
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or settings.answer_engine_url
        self.timeout = timeout or settings.answer_engine_timeout_seconds

    async def answer(self, participant_id: str, text: str) -> Optional[AnswerResult]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json={"participant_id": participant_id, "text": text})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise AnswerEngineError(f"Answer engine request failed: {e}") from e
        except ValueError as e:
            raise AnswerEngineError(f"Answer engine returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise AnswerEngineError(f"Unexpected answer engine payload: {type(data).__name__}")

        escalate = None
        raw_escalate = data.get("escalate")
        if isinstance(raw_escalate, dict):
            escalate = EscalationSignal(
                reason=str(raw_escalate.get("reason") or "low_confidence"),
                priority=str(raw_escalate.get("priority") or "medium"),
            )
        elif raw_escalate:
            escalate = EscalationSignal(reason="low_confidence")

        logger.debug(
            "Answer engine responded",
            extra={"context": {"participant_id": participant_id, "escalate": bool(escalate)}},
        )
        return AnswerResult(
            text=data.get("text"),
            escalate=escalate,
            source=data.get("source"),
            confidence=data.get("confidence"),
        )
