"""FallbackHedger — primary provider with an optional secondary as safety net."""

import structlog

from riskmapper.core.config import Settings
from riskmapper.core.exceptions import HedgingError
from riskmapper.hedging.anthropic_hedger import AnthropicHedger
from riskmapper.hedging.base import HedgeResult, Hedger
from riskmapper.hedging.deepseek_hedger import DeepSeekHedger
from riskmapper.scoring import ScoredRisk

logger = structlog.get_logger(__name__)


class FallbackHedger:
    """Decorator over two Hedgers.

    - primary succeeds: its result is returned, secondary is never called
    - primary fails, secondary set: secondary's result (or error) is returned
    - primary fails, no secondary: HedgingError chained to the primary's error
    - no primary: secondary is called directly
    """

    name = "fallback"

    def __init__(self, primary: Hedger | None, secondary: Hedger | None = None):
        if primary is None and secondary is None:
            raise ValueError("FallbackHedger needs at least one hedger")
        self.primary = primary
        self.secondary = secondary

    async def generate_hedges(self, risks: list[ScoredRisk]) -> HedgeResult:
        if not risks:
            return HedgeResult()

        if self.primary is not None:
            try:
                return await self.primary.generate_hedges(risks)
            except Exception as exc:
                logger.warning(
                    "primary_hedger_failed",
                    hedger=self.primary.name,
                    has_secondary=self.secondary is not None,
                    risk_count=len(risks),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if self.secondary is None:
                    raise HedgingError(f"Primary hedger failed and no secondary configured: {exc}") from exc

        return await self.secondary.generate_hedges(risks)


def build_hedger(settings: Settings) -> FallbackHedger | None:
    """Anthropic first, DeepSeek as fallback; either may be absent.

    Returns None when no AI key is configured, in which case reports keep
    their static hedges.
    """
    primary = None
    secondary = None
    if settings.anthropic_api_key:
        primary = AnthropicHedger(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.hedge_max_tokens,
            timeout=settings.hedge_timeout_seconds,
        )
    if settings.deepseek_api_key:
        secondary = DeepSeekHedger(
            api_key=settings.deepseek_api_key,
            model=settings.deepseek_model,
            base_url=settings.deepseek_base_url,
            max_tokens=settings.hedge_max_tokens,
            timeout=settings.hedge_timeout_seconds,
        )
    if primary is None and secondary is None:
        logger.warning("no_hedger_configured")
        return None
    return FallbackHedger(primary, secondary)
