import re
import unicodedata

_WORD = re.compile(r"[^\W\d_]+", re.UNICODE)

# frequent function words of languages users mix with English
_FOREIGN_STOPWORDS = {
    "el", "los", "las", "que", "por", "para", "donde", "quiero", "tiempo",
    "le", "les", "des", "est", "une", "avec", "pour", "ou", "quel", "quelle",
    "der", "die", "das", "und", "nicht", "ich", "wie", "wo", "ist",
    "kya", "hai", "mein", "kaise", "kaha", "chahiye", "nahi",
    "che", "della", "sono", "dove",
}
_ENGLISH_HINTS = {
    "the", "what", "where", "when", "is", "in", "to", "should", "i", "weather",
    "pack", "trip", "travel", "visit", "how", "and", "for",
}


def _is_latin(word: str) -> bool:
    for ch in word:
        if ch.isalpha() and "LATIN" not in unicodedata.name(ch, ""):
            return False
    return True


def is_mixed_language(text: str) -> bool:
    """
    True when English is mixed with another script or with enough
    non-English function words. Pure non-English input also counts.
    """
    words = _WORD.findall(text or "")
    if not words:
        return False
    latin = [w for w in words if _is_latin(w)]
    if len(latin) != len(words):
        return True
    lowered = [w.lower() for w in latin]
    foreign = sum(1 for w in lowered if w in _FOREIGN_STOPWORDS)
    english = sum(1 for w in lowered if w in _ENGLISH_HINTS)
    return foreign >= 2 or (foreign >= 1 and english == 0 and len(lowered) > 2)
