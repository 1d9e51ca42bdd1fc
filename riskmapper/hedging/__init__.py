"""AI hedge narrative generation with provider failover."""

from riskmapper.hedging.anthropic_hedger import AnthropicHedger
from riskmapper.hedging.base import HedgeResult, Hedger
from riskmapper.hedging.deepseek_hedger import DeepSeekHedger
from riskmapper.hedging.fallback import FallbackHedger, build_hedger

__all__ = [
    "AnthropicHedger",
    "DeepSeekHedger",
    "FallbackHedger",
    "HedgeResult",
    "Hedger",
    "build_hedger",
]
