"""Welcome menu: pick a topic, answer the data-processing consent, then ask.

Steps: ``welcome`` (menu choice) -> ``consent`` -> ``process`` (the question
itself, which is handed to the answer engine).
"""

import re
from typing import Optional

from norboy_bot.services import messages
from norboy_bot.services.flows.base import (
    EscalationRequest,
    FlowDefinition,
    FlowStep,
    GuidedFlow,
    StepResult,
)
from norboy_bot.services.text_utils import normalize_text

FLOW_TYPE = "norboy_menu"

MENU_OPTIONS = {
    "1": "elegimos_juntos",
    "2": "credito",
    "3": "ahorro",
    "4": "otras_consultas",
}

# Topics an advisor handles directly; the bot only answers the election process.
ADVISOR_TOPICS = frozenset({"credito", "ahorro", "otras_consultas"})

_WORD_OPTIONS = {"uno": "1", "dos": "2", "tres": "3", "cuatro": "4"}

_KEYWORD_OPTIONS = (
    (("elegimos", "juntos", "eleccion", "elecciones", "delegado"), "1"),
    (("credito",), "2"),
    (("ahorro",), "3"),
    (("otras", "consulta"), "4"),
)

_ACCEPT_WORDS = frozenset({"si", "1", "acepto", "aceptar", "de acuerdo", "claro", "ok", "vale"})
_REJECT_WORDS = frozenset({"no", "2", "no acepto", "rechazo"})

_QUESTION_OPENERS = re.compile(
    r"^(que|como|cuando|donde|cual|cuales|quien|quienes|por que|cuanto|cuantos|puedo|hay|necesito saber)\b"
)
_FREE_FORM_MIN_WORDS = 4


def parse_menu_option(text: str) -> Optional[str]:
    normalized = normalize_text(text)
    if not normalized:
        return None
    first = normalized.split()[0]
    if first in MENU_OPTIONS and len(normalized.split()) <= 2:
        return first
    if normalized in _WORD_OPTIONS:
        return _WORD_OPTIONS[normalized]
    if len(normalized.split()) <= 3:
        for keywords, option in _KEYWORD_OPTIONS:
            if any(keyword in normalized for keyword in keywords):
                return option
    return None


def parse_consent(text: str) -> Optional[str]:
    """Return ``accepted``, ``noted`` (declined) or None when unclear."""
    normalized = normalize_text(text)
    if not normalized:
        return None
    if normalized in _REJECT_WORDS or normalized.startswith("no ") or "rechaz" in normalized:
        return "noted"
    if normalized in _ACCEPT_WORDS or normalized.startswith("si ") or "acept" in normalized:
        return "accepted"
    return None


def looks_like_question(text: str) -> bool:
    """A free-form question rather than a menu answer."""
    if "?" in text or "¿" in text:
        return True
    normalized = normalize_text(text)
    if _QUESTION_OPENERS.match(normalized):
        return True
    return len(normalized.split()) >= _FREE_FORM_MIN_WORDS


def _start(flow: GuidedFlow) -> str:
    return f"{messages.GREETING}\n\n{messages.MENU}"


def _welcome(flow: GuidedFlow, text: str) -> StepResult:
    option = parse_menu_option(text)
    if option is not None:
        return StepResult.advance("consent", messages.CONSENT_PROMPT, option=option, topic=MENU_OPTIONS[option])
    if looks_like_question(text):
        return StepResult.hand_off()
    return StepResult.reprompt(f"{messages.MENU_INVALID_OPTION}\n\n{messages.MENU}")


def _consent(flow: GuidedFlow, text: str) -> StepResult:
    consent = parse_consent(text)
    if consent is None:
        if looks_like_question(text):
            return StepResult.hand_off()
        return StepResult.reprompt(messages.CONSENT_INVALID_ANSWER)

    topic = flow.data.get("topic")
    if topic in ADVISOR_TOPICS:
        return StepResult(
            message=messages.ADVISOR_HANDOFF,
            collected={"consent": consent},
            escalate=EscalationRequest(reason=f"menu_{topic}", priority="medium", message=messages.ADVISOR_HANDOFF),
        )
    return StepResult.advance("process", messages.HOW_CAN_WE_HELP, consent=consent)


def _process(flow: GuidedFlow, text: str) -> StepResult:
    return StepResult.hand_off(question=text)


def build_definition() -> FlowDefinition:
    return FlowDefinition(
        FLOW_TYPE,
        [
            FlowStep("welcome", _welcome),
            FlowStep("consent", _consent),
            FlowStep("process", _process),
        ],
        start_message=_start,
    )
