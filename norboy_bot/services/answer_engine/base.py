from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class AnswerEngineError(Exception):
    pass


@dataclass(frozen=True)
class EscalationSignal:
    reason: str
    priority: str = "medium"


@dataclass(frozen=True)
class AnswerResult:
    text: Optional[str]
    escalate: Optional[EscalationSignal] = None
    source: Optional[str] = None
    confidence: Optional[float] = None


class AnswerEngine(ABC):
    """Retrieval + generation service that drafts replies."""

    @abstractmethod
    async def answer(self, participant_id: str, text: str) -> Optional[AnswerResult]:
        """Return a reply, an escalation signal, or None when nothing was found."""
        pass
