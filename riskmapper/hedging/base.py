"""Hedger capability: turns high-priority risks into narrative hedges."""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from riskmapper.scoring import ScoredRisk


@dataclass
class HedgeResult:
    """Structured output of one hedging call.

    hedges maps question_id to an AI-written hedge narrative. The summary and
    top-priority fragment may be empty strings.
    """

    hedges: dict[str, str] = field(default_factory=dict)
    executive_summary: str = ""
    top_priority_html: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.hedges or self.executive_summary or self.top_priority_html)


@runtime_checkable
class Hedger(Protocol):
    """Protocol every hedging provider satisfies.

    Implementations must be safe for concurrent use and must return an empty
    HedgeResult without any network call when ``risks`` is empty. Any failure
    is raised as HedgingError.
    """

    name: str

    async def generate_hedges(self, risks: list[ScoredRisk]) -> HedgeResult:
        ...
