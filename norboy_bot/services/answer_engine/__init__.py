from norboy_bot.services.answer_engine.base import AnswerEngine, AnswerEngineError, AnswerResult, EscalationSignal
from norboy_bot.services.answer_engine.http_engine import HttpAnswerEngine

__all__ = [
    "AnswerEngine",
    "AnswerEngineError",
    "AnswerResult",
    "EscalationSignal",
    "HttpAnswerEngine",
]
