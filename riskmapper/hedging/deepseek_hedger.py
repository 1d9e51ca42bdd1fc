"""DeepSeekHedger — secondary hedging provider on DeepSeek's OpenAI-compatible API."""

import httpx
import structlog

from riskmapper.core.exceptions import HedgingError
from riskmapper.hedging.base import HedgeResult
from riskmapper.hedging.prompts import SYSTEM_PROMPT, build_prompt, parse_hedge_response
from riskmapper.scoring import ScoredRisk

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL: str = "https://api.deepseek.com/v1"
DEFAULT_MODEL: str = "deepseek-chat"
DEFAULT_MAX_TOKENS: int = 2048
DEFAULT_TIMEOUT_SECONDS: float = 90.0


class DeepSeekHedger:
    """POSTs one chat completion in JSON mode per report."""

    name = "deepseek"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def generate_hedges(self, risks: list[ScoredRisk]) -> HedgeResult:
        if not risks:
            return HedgeResult()

        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(risks)},
            ],
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise HedgingError(
                f"DeepSeek returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise HedgingError(f"DeepSeek request failed: {exc}") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise HedgingError("DeepSeek response missing choices[0].message.content") from exc
        if not content:
            raise HedgingError("DeepSeek response content was empty")

        result = parse_hedge_response(content)
        logger.info("deepseek_hedges_generated", model=self.model, risk_count=len(risks), hedge_count=len(result.hedges))
        return result
