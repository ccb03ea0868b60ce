from dataclasses import dataclass
from typing import Any, Dict, Generic, List, TypeVar, Union

from pydantic import BaseModel, Field

T = TypeVar("T")

INTENTS = ("weather", "packing", "attractions", "destinations", "flights", "web_search", "system", "unknown")
CONTENT_TYPES = ("travel", "budget", "system", "unrelated")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str
    detail: str = ""


Result = Union[Ok[T], Err]


class ClassificationResult(BaseModel):
    content_type: str = "travel"
    intent: str = "unknown"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    slots: Dict[str, Any] = Field(default_factory=dict)
    tier: str = "none"
    flags: List[str] = Field(default_factory=list)

    # competing candidates seen in the text, used for disambiguation
    cities: List[str] = Field(default_factory=list)
    seasons: List[str] = Field(default_factory=list)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags
