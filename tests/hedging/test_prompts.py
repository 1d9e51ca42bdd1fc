"""Tests for hedge prompt construction and response parsing."""

import pytest

from riskmapper.core.exceptions import HedgingError
from riskmapper.hedging.prompts import build_prompt, parse_hedge_response, strip_json_fences

pytestmark = pytest.mark.unit


def test_build_prompt_lists_every_risk(risks):
    prompt = build_prompt(risks)

    assert "question_id: fin_runway" in prompt
    assert "question_id: ops_key_person" in prompt
    assert "probability: 9/10, impact: 10/10, score: 90, tier: watch" in prompt
    assert "static_hedge: Train a deputy" in prompt


def test_strip_json_fences_with_language_tag():
    assert strip_json_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_json_fences_leaves_plain_json():
    assert strip_json_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_hedge_response_full_payload():
    raw = '{"executive_summary": "Tight cash.", "top_priority_html": "<strong>Fix runway</strong>", "hedges": {"fin_runway": "Open a credit line."}}'

    result = parse_hedge_response(raw)

    assert result.executive_summary == "Tight cash."
    assert result.top_priority_html == "<strong>Fix runway</strong>"
    assert result.hedges == {"fin_runway": "Open a credit line."}
    assert not result.is_empty


def test_parse_hedge_response_drops_empty_hedges():
    result = parse_hedge_response('{"hedges": {"a": "", "b": "Do b."}}')
    assert result.hedges == {"b": "Do b."}


def test_parse_hedge_response_handles_fences():
    result = parse_hedge_response('```\n{"executive_summary": "ok"}\n```')
    assert result.executive_summary == "ok"
    assert result.hedges == {}


def test_parse_hedge_response_rejects_non_json():
    with pytest.raises(HedgingError, match="Unparseable hedge response"):
        parse_hedge_response("Sure! Here are your hedges:")


def test_parse_hedge_response_rejects_wrong_shape():
    with pytest.raises(HedgingError):
        parse_hedge_response('{"hedges": ["not", "a", "map"]}')
