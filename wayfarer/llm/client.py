"""
LLM collaborator. Every call goes through the shared Resilience registry
under the "llm" target; any provider failure degrades to a deterministic
stub answer instead of raising.
"""
import logging
from typing import Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from wayfarer.config import Settings
from wayfarer.errors import WayfarerError
from wayfarer.resilience import Resilience

log = logging.getLogger(__name__)

STUB_TEXT = ""
STUB_JSON = "{}"


def stub_response(response_format: str) -> str:
    return STUB_JSON if response_format == "json" else STUB_TEXT


class LLMClient:
    def __init__(self, settings: Settings, resilience: Optional[Resilience] = None, chat_model=None):
        self.resilience = resilience
        self.model = chat_model
        if self.model is None and settings.openai_api_key:
            self.model = ChatOpenAI(
                model=settings.openai_model,
                temperature=0,
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_s,
            )

    @property
    def available(self) -> bool:
        return self.model is not None

    async def call(self, prompt: str, response_format: str = "text", system: Optional[str] = None) -> str:
        if self.model is None:
            return stub_response(response_format)

        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        model = self.model
        if response_format == "json":
            model = model.bind(response_format={"type": "json_object"})

        try:
            if self.resilience is not None:
                resp = await self.resilience.execute("llm", lambda: model.ainvoke(messages))
            else:
                resp = await model.ainvoke(messages)
        except WayfarerError as e:
            log.warning("llm_unavailable", extra={"error": str(e)})
            return stub_response(response_format)
        except Exception:
            log.exception("llm_call_failed")
            return stub_response(response_format)

        content = resp.content if hasattr(resp, "content") else resp
        if isinstance(content, list):
            content = "".join(c.get("text", "") if isinstance(c, dict) else str(c) for c in content)
        return str(content or "")
