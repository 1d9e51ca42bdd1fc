"""Tests for AnthropicHedger with a mocked AsyncAnthropic client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from riskmapper.core.exceptions import HedgingError
from riskmapper.hedging import AnthropicHedger

pytestmark = pytest.mark.unit


def _client(text: str | None = None, side_effect=None) -> MagicMock:
    client = MagicMock()
    if side_effect is not None:
        client.messages.create = AsyncMock(side_effect=side_effect)
    else:
        response = SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])
        client.messages.create = AsyncMock(return_value=response)
    return client


@pytest.mark.asyncio
async def test_empty_risks_makes_no_call():
    client = _client("{}")
    hedger = AnthropicHedger(client=client)

    result = await hedger.generate_hedges([])

    assert result.is_empty
    client.messages.create.assert_not_called()


@pytest.mark.asyncio
async def test_generate_hedges_parses_reply(risks):
    client = _client('{"executive_summary": "Summary", "hedges": {"fin_runway": "AI hedge"}}')
    hedger = AnthropicHedger(model="claude-test", max_tokens=512, client=client)

    result = await hedger.generate_hedges(risks)

    assert result.hedges == {"fin_runway": "AI hedge"}
    assert result.executive_summary == "Summary"
    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert kwargs["max_tokens"] == 512
    assert "fin_runway" in kwargs["messages"][0]["content"]


@pytest.mark.asyncio
async def test_api_error_wrapped_in_hedging_error(risks):
    error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
    hedger = AnthropicHedger(client=_client(side_effect=error))

    with pytest.raises(HedgingError, match="Anthropic request failed"):
        await hedger.generate_hedges(risks)


@pytest.mark.asyncio
async def test_reply_without_text_block_raises(risks):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[SimpleNamespace(type="tool_use")]))
    hedger = AnthropicHedger(client=client)

    with pytest.raises(HedgingError, match="no text block"):
        await hedger.generate_hedges(risks)


@pytest.mark.asyncio
async def test_unparseable_reply_raises(risks):
    hedger = AnthropicHedger(client=_client("not json"))

    with pytest.raises(HedgingError):
        await hedger.generate_hedges(risks)
