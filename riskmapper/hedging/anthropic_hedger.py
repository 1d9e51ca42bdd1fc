"""AnthropicHedger — primary hedging provider on the Anthropic Messages API."""

import anthropic
import structlog
from anthropic._exceptions import OverloadedError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from riskmapper.core.exceptions import HedgingError
from riskmapper.hedging.base import HedgeResult
from riskmapper.hedging.prompts import SYSTEM_PROMPT, build_prompt, parse_hedge_response
from riskmapper.scoring import ScoredRisk

logger = structlog.get_logger(__name__)

DEFAULT_MODEL: str = "claude-opus-4-6"
DEFAULT_MAX_TOKENS: int = 2048
DEFAULT_TIMEOUT_SECONDS: float = 90.0


class AnthropicHedger:
    """Calls ``messages.create`` once per report, retrying only on 529 overload."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def generate_hedges(self, risks: list[ScoredRisk]) -> HedgeResult:
        if not risks:
            return HedgeResult()

        try:
            raw = await self._invoke_with_retry(build_prompt(risks))
        except anthropic.APIError as exc:
            raise HedgingError(f"Anthropic request failed: {exc}") from exc

        result = parse_hedge_response(raw)
        logger.info("anthropic_hedges_generated", model=self.model, risk_count=len(risks), hedge_count=len(result.hedges))
        return result

    @retry(
        retry=retry_if_exception_type(OverloadedError),
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        reraise=True,
        before_sleep=lambda rs: logger.warning(
            "claude_overloaded_retrying",
            attempt=rs.attempt_number,
            sleep_seconds=rs.next_action.sleep,
        ),
    )
    async def _invoke_with_retry(self, prompt: str) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        for block in response.content:
            if block.type == "text":
                return block.text
        raise HedgingError("Anthropic response contained no text block")
