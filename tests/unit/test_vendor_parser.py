"""Tests for the LLM-backed vendor parsing agent."""

import asyncio

import pytest

from receipt_pipeline.agents import VendorParsingAgent
from receipt_pipeline.models.vendor import VendorDetectionResult, VendorType
from receipt_pipeline.vendors.registry import get_vendor_pattern


@pytest.fixture
def walmart_detection():
    return VendorDetectionResult(
        vendor_type=VendorType.WALMART,
        confidence=1.0,
        evidence=["Name match: WALMART SUPERCENTER"],
        fallback_to_generic=False,
    )


@pytest.fixture
def generic_detection():
    return VendorDetectionResult(vendor_type=VendorType.GENERIC, confidence=0.2)


def test_bulk_line_merged_into_previous_item(llm_client_factory, walmart_json, walmart_text, walmart_detection):
    agent = VendorParsingAgent(llm_client_factory(walmart_json))
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert result.success
    data = result.data.extracted_data
    assert [item.description for item in data.line_items] == ["GV MILK 1GAL", "BANANAS", "EGGS LARGE 12CT"]
    bananas = data.line_items[1]
    assert bananas.quantity == 6
    assert bananas.total_price == 0.78
    assert bananas.unit_price == pytest.approx(0.13)
    assert bananas.vendor_specific_data['bulkPricing'] is True
    assert bananas.vendor_specific_data['originalDescription'] == "6 AT 1 FOR 0.78"
    assert result.data.vendor_specific_fields['bulkItemsCount'] == 1


def test_successful_parse_metadata(llm_client_factory, walmart_json, walmart_text, walmart_detection):
    agent = VendorParsingAgent(llm_client_factory(walmart_json))
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert result.cost == pytest.approx(0.002)
    assert result.metadata == {'vendorType': 'walmart', 'parsingStrategy': 'vendor_specific', 'llmProvider': 'stub'}
    assert result.data.parse_quality.math_consistency == 100.0
    assert result.confidence == result.data.parse_quality.overall_score


def test_vendor_template_used(llm_client_factory, walmart_json, walmart_text, walmart_detection):
    client = llm_client_factory(walmart_json)
    asyncio.run(VendorParsingAgent(client).parse(walmart_text, walmart_detection))

    prompt = client.providers["stub"].calls[0]
    assert "Walmart receipts" in prompt
    assert "WALMART SUPERCENTER" in prompt


def test_generic_prompt_without_template(llm_client_factory, walmart_json, market_text, generic_detection):
    agent = VendorParsingAgent(llm_client_factory(walmart_json))
    result = asyncio.run(agent.parse(market_text, generic_detection))

    assert result.metadata['parsingStrategy'] == 'generic_enhanced'


def test_offline_client_returns_unavailable(offline_llm_client, walmart_text, walmart_detection):
    result = asyncio.run(VendorParsingAgent(offline_llm_client).parse(walmart_text, walmart_detection))

    assert not result.success
    assert result.error_type == "ProviderUnavailable"
    assert result.confidence == 0.0
    assert result.cost == 0.0


def test_malformed_response_keeps_cost(llm_client_factory, walmart_text, walmart_detection):
    agent = VendorParsingAgent(llm_client_factory(raw_text="Sorry, I cannot read that."))
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert not result.success
    assert result.error_type == "MalformedResponse"
    assert result.cost == pytest.approx(0.002)


def test_missing_vendor_and_total_fails_validation(llm_client_factory, walmart_text, walmart_detection):
    agent = VendorParsingAgent(llm_client_factory({"vendor": "", "totalAmount": 0, "lineItems": []}))
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert not result.success
    assert result.error_type == "ValidationFailure"


def test_timeout_reported(llm_client_factory, walmart_json, walmart_text, walmart_detection):
    agent = VendorParsingAgent(llm_client_factory(walmart_json, timeout_s=0.01, delay=0.5))
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert not result.success
    assert result.error_type == "ProviderTimeout"


def test_coerce_applies_defaults(offline_llm_client):
    agent = VendorParsingAgent(offline_llm_client)
    data = agent.coerce({"vendor": "Shop", "totalAmount": "12.50", "confidence": None}, [])

    assert data.total_amount == 12.5
    assert data.currency == "USD"
    assert data.category == "Other"
    assert data.confidence == 75.0


def test_sku_extracted_from_description(offline_llm_client):
    items = VendorParsingAgent(offline_llm_client).apply_item_rules(
        [{"description": "2x4 STUD SKU #1000012", "totalPrice": 3.98}, "not an item"],
        get_vendor_pattern(VendorType.HOME_DEPOT),
    )

    assert len(items) == 1
    assert items[0]['sku'] == "1000012"
    assert items[0]['vendorSpecificData']['hasSkuCode'] is True


def test_item_rules_skipped_without_vendor_record(offline_llm_client):
    raw = [
        {"description": "BANANAS", "totalPrice": 0.78},
        {"description": "6 AT 1 FOR 0.78", "totalPrice": 0.78},
        {"description": "2x4 STUD SKU #1000012", "totalPrice": 3.98},
    ]
    items = VendorParsingAgent(offline_llm_client).apply_item_rules(raw)

    assert [item['description'] for item in items] == ["BANANAS", "6 AT 1 FOR 0.78", "2x4 STUD SKU #1000012"]
    assert not any('sku' in item or 'vendorSpecificData' in item for item in items)


def test_bulk_pricing_only_for_vendors_that_use_it(offline_llm_client):
    raw = [{"description": "BANANAS", "totalPrice": 0.78}, {"description": "6 AT 1 FOR 0.78", "totalPrice": 0.78}]
    agent = VendorParsingAgent(offline_llm_client)

    assert len(agent.apply_item_rules(raw, get_vendor_pattern(VendorType.WALMART))) == 1
    assert len(agent.apply_item_rules(raw, get_vendor_pattern(VendorType.HOME_DEPOT))) == 2


def test_non_dict_vendor_data_tolerated(llm_client_factory, walmart_text, walmart_detection):
    response = {
        "vendor": "Shop",
        "totalAmount": 12.5,
        "lineItems": [
            {"description": "Milk", "totalPrice": 12.5, "vendorSpecificData": "n/a"},
            {"description": "BANANAS", "totalPrice": 0.78, "vendorSpecificData": ["x"]},
            {"description": "6 AT 1 FOR 0.78", "vendorSpecificData": None},
        ],
    }
    agent = VendorParsingAgent(llm_client_factory(response))
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert result.success
    milk, bananas = result.data.extracted_data.line_items
    assert milk.vendor_specific_data == {}
    assert bananas.quantity == 6
    assert bananas.vendor_specific_data['bulkPricing'] is True


def test_unexpected_coercion_error_becomes_malformed_response(llm_client_factory, walmart_text, walmart_detection,
                                                              monkeypatch):
    agent = VendorParsingAgent(llm_client_factory({"vendor": "Shop", "totalAmount": 12.5, "lineItems": []}))

    def broken_coerce(raw, items):
        raise IndexError("list index out of range")

    monkeypatch.setattr(agent, "coerce", broken_coerce)
    result = asyncio.run(agent.parse(walmart_text, walmart_detection))

    assert not result.success
    assert result.error_type == "MalformedResponse"
    assert "IndexError" in result.error
    assert result.cost > 0
