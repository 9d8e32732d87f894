from norboy_bot.services.escalation_policy import EscalationPolicy, match_explicit_request
from norboy_bot.services.text_utils import normalize_text

policy = EscalationPolicy()


def _evaluate(text, manually_reactivated=False):
    return policy.evaluate("573001234567@c.us", text, interaction_count=3, manually_reactivated=manually_reactivated)


class TestExplicitRequest:
    def test_exact_phrase(self):
        decision = _evaluate("Quiero hablar con un asesor")
        assert decision.needs_human is True
        assert decision.reason == "user_requested"
        assert decision.priority == "high"

    def test_phrase_with_accents(self):
        assert _evaluate("Necesito atención personalizada").reason == "user_requested"

    def test_verb_plus_role_noun(self):
        assert _evaluate("me gustaría que me comuniquen con un agente").reason == "user_requested"
        assert _evaluate("quisiera hablar con una asesora").reason == "user_requested"
        assert _evaluate("pásame con el operador").reason == "user_requested"

    def test_role_noun_plus_qualifier(self):
        assert match_explicit_request(normalize_text("Asesor humano")) is not None

    def test_voting_for_a_person_is_not_a_request(self):
        assert _evaluate("¿Puedo votar por una persona de otra zona?").needs_human is False


class TestTopicRules:
    def test_complex_topic(self):
        decision = _evaluate("Tengo una queja sobre la inscripción")
        assert decision.reason == "complex_topic"
        assert decision.priority == "medium"

    def test_keyword_must_be_a_whole_word(self):
        assert _evaluate("¿Cuáles son los errores comunes al votar?").needs_human is False

    def test_confusion(self):
        assert _evaluate("No entiendo lo que me dice").reason == "user_confused"

    def test_plain_question(self):
        assert _evaluate("¿Cuándo son las elecciones?").needs_human is False

    def test_empty_text(self):
        assert _evaluate("").needs_human is False


class TestReactivationBypass:
    def test_bypass_mutes_topic_rules(self):
        decision = _evaluate("Tengo un problema", manually_reactivated=True)
        assert decision.needs_human is False
        assert decision.bypass_used is True

    def test_bypass_does_not_mute_explicit_request(self):
        decision = _evaluate("necesito un asesor", manually_reactivated=True)
        assert decision.reason == "user_requested"
