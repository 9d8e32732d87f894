import re
import unicodedata

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    if not text:
        return ""
    normalized = strip_accents(text.strip().casefold())
    normalized = _PUNCTUATION.sub("", normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    return normalized.strip()


def bigrams(text: str) -> set[str]:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def dice_similarity(first: str, second: str) -> float:
    """Dice coefficient over character bigram sets: 2*|A∩B| / (|A|+|B|)."""
    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    first_bigrams = bigrams(first)
    second_bigrams = bigrams(second)
    intersection = len(first_bigrams & second_bigrams)
    return (2.0 * intersection) / (len(first_bigrams) + len(second_bigrams))
