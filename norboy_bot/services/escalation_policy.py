"""Decides from the message text whether a human advisor must take over.

Rules run in priority order and the first match wins:

1. explicit request for a person (exact phrases, or an intent verb combined
   with an advisor noun such as "necesito un asesor");
2. complex or sensitive topics (complaints, errors, urgencies);
3. the participant says they do not understand.

A conversation freshly handed back by an advisor carries a single-use bypass
that mutes rules 2 and 3 for exactly one evaluation. Explicit requests always
escalate.
"""

import re
from dataclasses import dataclass
from typing import Optional

from norboy_bot.logging_config import get_logger
from norboy_bot.services.text_utils import normalize_text

logger = get_logger("escalation_policy")

REASON_USER_REQUESTED = "user_requested"
REASON_COMPLEX_TOPIC = "complex_topic"
REASON_USER_CONFUSED = "user_confused"

PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"

# Compared after normalize_text (no accents, no punctuation).
EXPLICIT_REQUEST_PHRASES = (
    "quiero hablar con asesor",
    "quiero hablar con un asesor",
    "necesito asesor",
    "necesito un asesor",
    "hablar con humano",
    "hablar con un humano",
    "hablar con persona",
    "hablar con una persona",
    "atencion personal",
    "atencion personalizada",
    "quiero hablar con alguien",
    "transferirme a asesor",
    "pasarme con asesor",
    "como puedo hablar con un asesor",
    "deseo hablar con asesor",
    "deseo hablar con un asesor",
    "comunicarme con un asesor",
    "me comunica con un asesor",
)

_ROLE_NOUNS = r"(asesor|asesora|asesores|agente|humano|operador|operadora)"
_INTENT_VERBS = (
    r"(quiero|quisiera|necesito|deseo|requiero|me gustaria|"
    r"comunicame|comunicarme|comuniqueme|pasame|pasarme|paseme|transfiereme|transferirme|"
    r"conectame|conectarme|conecteme|hablar|llamar)"
)

HUMAN_REQUEST_PATTERNS = (
    re.compile(rf"\b{_INTENT_VERBS}\b(\s+\w+){{0,3}}\s+(con\s+)?(un|una|el|la|algun|alguna)?\s*{_ROLE_NOUNS}\b"),
    re.compile(rf"\b{_ROLE_NOUNS}\s+(humano|real|por favor)\b"),
)

COMPLEX_TOPIC_KEYWORDS = (
    "queja",
    "reclamo",
    "problema",
    "error",
    "no funciona",
    "insatisfecho",
    "descontento",
    "mal servicio",
    "demorado",
    "urgente",
    "emergencia",
    "denuncia",
    "fraude",
)

CONFUSION_PHRASES = (
    "no entiendo",
    "no entendi",
    "no comprendo",
    "explica mejor",
    "explicame mejor",
    "expliqueme mejor",
    "no me queda claro",
    "no tiene sentido",
    "no es lo que pregunte",
)


@dataclass(frozen=True)
class EscalationDecision:
    needs_human: bool
    reason: Optional[str] = None
    priority: Optional[str] = None
    matched: Optional[str] = None
    bypass_used: bool = False

    @classmethod
    def none(cls, bypass_used: bool = False) -> "EscalationDecision":
        return cls(needs_human=False, bypass_used=bypass_used)


def _contains_phrase(normalized: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", normalized) is not None


def match_explicit_request(normalized: str) -> Optional[str]:
    for phrase in EXPLICIT_REQUEST_PHRASES:
        if _contains_phrase(normalized, phrase):
            return phrase
    for pattern in HUMAN_REQUEST_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return match.group(0)
    return None


def match_complex_topic(normalized: str) -> Optional[str]:
    for keyword in COMPLEX_TOPIC_KEYWORDS:
        if _contains_phrase(normalized, keyword):
            return keyword
    return None


def match_confusion(normalized: str) -> Optional[str]:
    for phrase in CONFUSION_PHRASES:
        if _contains_phrase(normalized, phrase):
            return phrase
    return None


class EscalationPolicy:
    def evaluate(
        self,
        participant_id: str,
        text: str,
        interaction_count: int,
        manually_reactivated: bool = False,
    ) -> EscalationDecision:
        normalized = normalize_text(text)
        if not normalized:
            return EscalationDecision.none(bypass_used=manually_reactivated)

        context = {"participant_id": participant_id, "interaction_count": interaction_count}

        explicit = match_explicit_request(normalized)
        if explicit:
            logger.info(f"Explicit advisor request: '{explicit}'", extra={"context": context})
            return EscalationDecision(
                needs_human=True,
                reason=REASON_USER_REQUESTED,
                priority=PRIORITY_HIGH,
                matched=explicit,
                bypass_used=manually_reactivated,
            )

        if manually_reactivated:
            logger.info("Escalation bypass consumed after reactivation", extra={"context": context})
            return EscalationDecision.none(bypass_used=True)

        topic = match_complex_topic(normalized)
        if topic:
            return EscalationDecision(
                needs_human=True, reason=REASON_COMPLEX_TOPIC, priority=PRIORITY_MEDIUM, matched=topic
            )

        confusion = match_confusion(normalized)
        if confusion:
            return EscalationDecision(
                needs_human=True, reason=REASON_USER_CONFUSED, priority=PRIORITY_MEDIUM, matched=confusion
            )

        return EscalationDecision.none()
