"""
Self-check pass over a composed reply. Any failure (LLM down, malformed
JSON, schema mismatch) means "no verification available", never an error.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wayfarer.compose.receipts import Fact, Verdict
from wayfarer.llm.dialogue_manager import VERIFY_PROMPT, safe_json_parse

log = logging.getLogger(__name__)

FACT_DEPENDENT_INTENTS = {"flights", "destinations"}


class VerificationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verdict: Verdict
    notes: List[str] = Field(default_factory=list)
    revised_answer: Optional[str] = Field(default=None, alias="revisedAnswer")
    scores: Optional[Dict[str, float]] = None
    confidence: Optional[float] = None


class Verifier:
    def __init__(self, llm, memory, poll_attempts: int = 3, poll_delay_s: float = 0.25, sleep=asyncio.sleep):
        self.llm = llm
        self.memory = memory
        self.poll_attempts = poll_attempts
        self.poll_delay_s = poll_delay_s
        self._sleep = sleep

    async def verify(
        self,
        reply: str,
        facts: List[Fact],
        recent_user_turns: List[str],
        slots_before: Dict[str, Any],
        last_intent: Optional[str],
    ) -> Optional[VerificationResult]:
        ctx = {
            "latest_user_message": recent_user_turns[-1] if recent_user_turns else "",
            "previous_user_messages": recent_user_turns[:-1][-2:],
            "assistant_reply": reply,
            "slots_summary": slots_before,
            "last_intent": last_intent or "",
            "evidence_facts": [{"key": f.key, "value": f.value, "source": f.source} for f in facts],
        }
        try:
            raw = await self.llm.call(
                f"Return STRICT JSON only.\n\nINPUT:\n{json.dumps(ctx, ensure_ascii=False, default=str)}",
                response_format="json",
                system=VERIFY_PROMPT,
            )
            return VerificationResult.model_validate(safe_json_parse(raw))
        except ValidationError:
            log.info("verify_unparseable")
            return None
        except Exception:
            log.warning("verify_failed", exc_info=True)
            return None

    async def gather_facts(
        self, thread_id: str, facts: List[Fact], intent: Optional[str], citations: List[str]
    ) -> List[Fact]:
        """
        Facts can land in receipts slightly after the reply; fact-dependent
        intents get a short grace poll, then citations stand in as evidence.
        """
        if facts:
            return facts
        if intent in FACT_DEPENDENT_INTENTS:
            for _ in range(self.poll_attempts):
                await self._sleep(self.poll_delay_s)
                stored = await self.memory.get_receipts(thread_id) or {}
                if stored.get("facts"):
                    return [Fact.model_validate(f) for f in stored["facts"]]
        return [Fact(source=str(c), key=f"citation_{i}", value="source_only") for i, c in enumerate(citations)]

    async def run(
        self,
        thread_id: str,
        reply: str,
        facts: List[Fact],
        citations: List[str],
        intent: Optional[str],
        slots_before: Dict[str, Any],
        last_intent: Optional[str] = None,
    ) -> Optional[VerificationResult]:
        facts = await self.gather_facts(thread_id, facts, intent, citations)
        users = await self.memory.recent_user_turns(thread_id, 3)
        result = await self.verify(reply, facts, users, slots_before, last_intent)
        if result is None:
            # an earlier verdict must not describe this reply
            await self.memory.set_verification(thread_id, None)
            return None
        await self.memory.set_verification(thread_id, result.model_dump(by_alias=True))
        log.debug("verified", extra={"thread_id": thread_id, "verdict": result.verdict})
        return result
