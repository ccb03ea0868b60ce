"""
Classification cascade: local model -> LLM -> rules.

Each tier returns Ok(result) or Err(reason). The first Ok at or above the
tier's own confidence bar wins; errors, timeouts and low-confidence answers
fall through to the next tier. Deterministic entity extraction is merged
under whatever the winning tier produced.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from wayfarer.memory.slot_memory import CITY_KEYS, is_month_word, is_placeholder
from wayfarer.nlp.language import is_mixed_language
from wayfarer.nlp.result import ClassificationResult, Err, Ok, Result
from wayfarer.nlp.rules import extract_slots, mentions_now, month_name
from wayfarer.utils.cache import TTLCache

log = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.1


class Tier(Protocol):
    name: str
    min_confidence: float
    timeout_s: float

    async def classify(self, text: str, context: Dict[str, Any]) -> Result[ClassificationResult]: ...


def fallback_result() -> ClassificationResult:
    return ClassificationResult(intent="unknown", confidence=FALLBACK_CONFIDENCE, tier="fallback")


class ClassificationCascade:
    def __init__(
        self,
        tiers: Sequence[Tier],
        cache: Optional[TTLCache] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.tiers = list(tiers)
        self.cache = cache if cache is not None else TTLCache(maxsize=256, ttl_s=300.0)
        self._now = now

    async def _run_tier(self, tier: Tier, text: str, context: Dict[str, Any]) -> Result[ClassificationResult]:
        try:
            return await asyncio.wait_for(tier.classify(text, context), timeout=tier.timeout_s)
        except asyncio.TimeoutError:
            return Err("timeout", f"{tier.timeout_s}s")
        except Exception as e:
            log.warning("tier_failed", extra={"tier": tier.name, "error": repr(e)})
            return Err("exception", repr(e))

    async def _cascade(self, text: str, context: Dict[str, Any]) -> ClassificationResult:
        for tier in self.tiers:
            res = await self._run_tier(tier, text, context)
            if isinstance(res, Err):
                log.info("tier_fallthrough", extra={"tier": tier.name, "reason": res.reason})
                continue
            if res.value.confidence < tier.min_confidence:
                log.info(
                    "tier_below_bar",
                    extra={"tier": tier.name, "confidence": res.value.confidence, "bar": tier.min_confidence},
                )
                continue
            return res.value
        return fallback_result()

    async def classify(self, text: str, context: Optional[Dict[str, Any]] = None) -> ClassificationResult:
        context = context or {}
        key = " ".join((text or "").lower().split())
        cached = self.cache.get(key)
        if cached is not None:
            result = cached.model_copy(deep=True)
        else:
            result = self._with_entities(text, await self._cascade(text, context))
            self.cache.set(key, result.model_copy(deep=True))

        self._resolve_now(text, result)
        log.debug(
            "classified",
            extra={"tier": result.tier, "intent": result.intent, "confidence": result.confidence},
        )
        return result

    def _with_entities(self, text: str, result: ClassificationResult) -> ClassificationResult:
        slots, cities, seasons = extract_slots(text)
        for k, v in result.slots.items():
            if not is_placeholder(k, v):
                slots[k] = v

        # a bare month is never a city
        for k in CITY_KEYS:
            if k in slots and is_month_word(str(slots[k])):
                month = month_name(str(slots.pop(k)))
                if month and "month" not in slots:
                    slots["month"] = month

        flags: List[str] = list(result.flags)
        if is_mixed_language(text):
            flags.append("mixed_language")
        if result.content_type == "budget":
            flags.append("budget")

        return result.model_copy(update={"slots": slots, "cities": cities, "seasons": seasons, "flags": flags})

    def _resolve_now(self, text: str, result: ClassificationResult) -> None:
        if not mentions_now(text):
            return
        # a month named in this message wins over "now"
        if "month" not in result.slots:
            result.slots["month"] = self._now().strftime("%B")
        if "immediate" not in result.flags:
            result.flags.append("immediate")
