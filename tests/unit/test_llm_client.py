"""Tests for the text-understanding client and parse quality scoring."""

import asyncio
import json

import pytest

from receipt_pipeline.agents import TextUnderstandingClient, assess_parse_quality, strip_code_fences
from receipt_pipeline.agents.llm_client import parse_structured_json
from receipt_pipeline.models.receipt import ExtractedReceiptData, LineItem
from receipt_pipeline.utils.exceptions import MalformedResponse


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_structured_json_requires_object():
    assert parse_structured_json('{"vendor": "Shop"}', "stub") == {"vendor": "Shop"}
    with pytest.raises(MalformedResponse):
        parse_structured_json('[1, 2]', "stub")
    with pytest.raises(MalformedResponse):
        parse_structured_json('not json', "stub")


def test_complete_success(llm_client_factory):
    client = llm_client_factory({"vendor": "Shop", "totalAmount": 4.5})
    result = asyncio.run(client.complete("prompt"))

    assert result.success
    assert result.structured_json["vendor"] == "Shop"
    assert result.provider == "stub"
    assert result.cost == pytest.approx(0.002)
    assert result.usage == {'inputTokens': 1000, 'outputTokens': 500}


def test_fenced_response_parsed(llm_client_factory):
    fenced = "```json\n" + json.dumps({"vendor": "Shop"}) + "\n```"
    result = asyncio.run(llm_client_factory(raw_text=fenced).complete("prompt"))
    assert result.structured_json == {"vendor": "Shop"}


def test_no_credentials(offline_llm_client):
    result = asyncio.run(offline_llm_client.complete("prompt"))

    assert not result.success
    assert result.error_type == "ProviderUnavailable"
    assert not offline_llm_client.is_available()


def test_timeout(llm_client_factory):
    client = llm_client_factory({"vendor": "Shop"}, timeout_s=0.01, delay=0.5)
    result = asyncio.run(client.complete("prompt"))

    assert not result.success
    assert result.error_type == "ProviderTimeout"


def test_unexpected_provider_exception_becomes_provider_error(llm_provider_factory):
    provider = llm_provider_factory(name="stub")

    async def empty_choices(prompt, image):
        return [][0]

    provider.call = empty_choices
    result = asyncio.run(TextUnderstandingClient({"stub": provider}, primary="stub").complete("prompt"))

    assert not result.success
    assert result.error_type == "ProviderError"
    assert result.provider == "stub"
    assert "IndexError" in result.error


def test_falls_back_to_provider_with_credentials(llm_provider_factory):
    offline = llm_provider_factory({"vendor": "A"}, name="primary", available=False)
    online = llm_provider_factory({"vendor": "B"}, name="secondary")
    client = TextUnderstandingClient({"primary": offline, "secondary": online}, primary="primary")

    result = asyncio.run(client.complete("prompt"))

    assert result.provider == "secondary"
    assert offline.calls == []


def test_estimated_cost(llm_provider_factory):
    provider = llm_provider_factory(name="stub")
    client = TextUnderstandingClient({"stub": provider}, primary="stub")
    # 4000 chars -> 1000 input tokens, 500 output tokens
    assert client.estimated_cost(4000) == pytest.approx(0.002)
    assert TextUnderstandingClient({}, primary="openai").estimated_cost(4000) == 0.0


def test_status_reports_availability(llm_provider_factory):
    client = TextUnderstandingClient({"stub": llm_provider_factory(available=False)}, primary="stub")
    assert client.get_status() == {"stub": {'available': False, 'model': "stub-model", 'primary': True}}


class TestParseQuality:
    """Quality scoring."""

    def test_consistent_record_scores_full(self):
        data = ExtractedReceiptData(
            vendor="Shop", total_amount=10.80, subtotal=10.00, tax=0.80,
            line_items=[LineItem("item-0", "Widget", 1, 10.00, 10.00)], confidence=90,
        )
        quality = assess_parse_quality(data, 1.0)

        assert quality.overall_score == 100.0
        assert quality.missing_fields == []
        assert quality.suspicious_patterns == []

    def test_math_error_penalized(self):
        data = ExtractedReceiptData(vendor="Shop", total_amount=20.00, subtotal=10.00, tax=0.80, confidence=90)
        quality = assess_parse_quality(data, 0.5)

        assert quality.math_consistency == 0.0
        assert quality.line_item_accuracy == 50.0
        assert quality.vendor_format_match == 50.0
        assert 'Math inconsistency detected' in quality.suspicious_patterns
        assert 'No line items found' in quality.suspicious_patterns

    def test_placeholder_items_lower_accuracy(self):
        data = ExtractedReceiptData(
            vendor="Shop", total_amount=5.00, subtotal=5.00,
            line_items=[
                LineItem("item-0", "Widget", 1, 5.00, 5.00),
                LineItem("item-1", "Unknown Item", 1, 0.0, 0.0),
            ],
            confidence=90,
        )
        assert assess_parse_quality(data, 1.0).line_item_accuracy == 50.0
