"""End-to-end tests for the receipt orchestrator with stub collaborators."""

import asyncio
from dataclasses import replace

import pytest

from receipt_pipeline.agents import TextUnderstandingClient
from receipt_pipeline.orchestrator import PipelineConfig, ReceiptOrchestrator, ResultCache
from receipt_pipeline.utils.exceptions import ConfigurationError


@pytest.fixture
def stub_adapter(adapter_factory, recognition_provider_factory, walmart_text):
    return adapter_factory(recognition_provider_factory(text=walmart_text, confidence=90))


@pytest.fixture
def build(stub_adapter, offline_llm_client):
    """Orchestrator factory with stub recognition and an offline LLM by default."""
    def factory(config=None, llm_client=None, adapter=None, cache=None):
        return ReceiptOrchestrator(
            config or PipelineConfig.from_config(),
            adapter=adapter or stub_adapter,
            llm_client=llm_client or offline_llm_client,
            cache=cache,
        )
    return factory


class TestProcessText:
    """Text entry point."""

    def test_testing_mode_uses_heuristic_parse(self, build, walmart_text):
        orchestrator = build(PipelineConfig.for_mode("testing"))
        result = asyncio.run(orchestrator.process_text(walmart_text))

        assert result.success
        assert result.data.vendor == "Walmart"
        assert result.data.total_amount == 7.95
        assert len(result.data.line_items) == 3
        assert result.trace.agents_used == ['baseline_parse', 'vendor_detection']
        assert result.trace.fallbacks_triggered == []
        assert result.trace.total_cost == 0.0

    def test_specialized_parse(self, build, llm_client_factory, walmart_json, walmart_text):
        orchestrator = build(llm_client=llm_client_factory(walmart_json))
        result = asyncio.run(orchestrator.process_text(walmart_text, source="walmart.txt"))

        assert result.success
        assert result.source == "walmart.txt"
        assert [item.quantity for item in result.data.line_items] == [1, 6, 1]
        assert result.trace.stages['vendor_detection'].confidence == 100.0
        assert result.trace.stages['vendor_parsing'].success
        assert result.trace.total_cost == pytest.approx(0.002)
        assert result.trace.cost_breakdown['vendor_parsing'] == pytest.approx(0.002)
        assert 'fallback' not in result.trace.stages

    def test_offline_parse_recovers_by_pattern_extraction(self, build, market_text):
        result = asyncio.run(build().process_text(market_text))

        assert result.success
        assert result.trace.stages['vendor_parsing'].error_type == 'ProviderUnavailable'
        assert result.trace.fallbacks_triggered == ['enhanced_generic_parsing_failed', 'pattern_based_extraction']
        assert result.trace.stages['fallback'].metadata['strategy'] == 'pattern_based_extraction'
        assert result.data.vendor == "CORNER MARKET"
        assert result.data.total_amount == 16.48
        assert result.data.confidence == 50

    def test_improvement_over_baseline(self, build, llm_client_factory, walmart_json, walmart_text):
        orchestrator = build(llm_client=llm_client_factory(walmart_json))
        result = asyncio.run(orchestrator.process_text(walmart_text, ocr_confidence=60, compare_baseline=True))

        assert 'baseline_parse' in result.trace.agents_used
        assert result.trace.stages['baseline_parse'].confidence == 60
        assert result.trace.improvement_over_baseline == pytest.approx(40.0)

    def test_deadline_exceeded(self, build, walmart_text):
        result = asyncio.run(build().process_text(walmart_text, deadline=-1))

        assert not result.success
        assert result.error_type == 'DeadlineExceeded'
        assert result.data is None
        assert 'vendor_parsing' in result.trace.stages

    def test_over_budget_warns_but_completes(self, build, llm_client_factory, walmart_json, walmart_text):
        client = llm_client_factory(walmart_json, input_cost_per_1k=0.1, output_cost_per_1k=0.1)
        result = asyncio.run(build(llm_client=client).process_text(walmart_text))

        assert result.success
        assert result.trace.total_cost == pytest.approx(0.15)
        assert result.trace.budget_warnings
        assert 'vendor_parsing' in result.trace.budget_warnings[0]

    def test_timeouts_retried_then_recovered(self, build, llm_client_factory, walmart_json, walmart_text):
        client = llm_client_factory(walmart_json, timeout_s=0.01, delay=0.5)
        result = asyncio.run(build(llm_client=client).process_text(walmart_text))

        # three parse attempts plus the enhanced generic fallback
        assert len(client.providers["stub"].calls) == 4
        assert result.trace.stages['vendor_parsing'].error_type == 'ProviderTimeout'
        assert result.success
        assert result.trace.fallbacks_triggered[-1] == 'pattern_based_extraction'
        assert result.data.total_amount == 7.95

    def test_non_retryable_parse_failure_not_retried(self, build, llm_client_factory, walmart_text):
        client = llm_client_factory(raw_text="Sorry, I cannot read that.")
        result = asyncio.run(build(llm_client=client).process_text(walmart_text))

        # one parse attempt plus the enhanced generic fallback
        assert len(client.providers["stub"].calls) == 2
        assert result.trace.stages['vendor_parsing'].error_type == 'MalformedResponse'
        assert result.success

    def test_raising_provider_recovers_through_fallback(self, build, llm_provider_factory, walmart_text):
        provider = llm_provider_factory(name="stub")

        async def empty_choices(prompt, image):
            provider.calls.append(prompt)
            return [][0]

        provider.call = empty_choices
        client = TextUnderstandingClient({"stub": provider}, primary="stub")
        result = asyncio.run(build(llm_client=client).process_text(walmart_text))

        assert result.success
        assert result.trace.stages['vendor_parsing'].error_type == 'ProviderError'
        assert len(provider.calls) == 2
        assert result.trace.fallbacks_triggered[-1] == 'pattern_based_extraction'
        assert result.data.total_amount == 7.95

    def test_non_dict_vendor_data_from_model(self, build, llm_client_factory, walmart_json, walmart_text):
        walmart_json['lineItems'][0]['vendorSpecificData'] = "n/a"
        walmart_json['lineItems'][1]['vendorSpecificData'] = "n/a"
        result = asyncio.run(build(llm_client=llm_client_factory(walmart_json)).process_text(walmart_text))

        assert result.success
        assert result.trace.stages['vendor_parsing'].success
        milk, bananas = result.data.line_items[:2]
        assert milk.vendor_specific_data == {}
        assert bananas.vendor_specific_data['bulkPricing'] is True

    def test_forced_vendor(self, build, llm_client_factory, walmart_json, cafe_text):
        client = llm_client_factory(walmart_json)
        result = asyncio.run(build(llm_client=client).process_text(cafe_text, force_vendor="walmart"))

        assert result.trace.stages['vendor_detection'].confidence == 100.0
        assert "Walmart receipts" in client.providers["stub"].calls[0]

    def test_unknown_forced_vendor_rejected(self, build, walmart_text):
        with pytest.raises(ConfigurationError):
            asyncio.run(build().process_text(walmart_text, force_vendor="nope"))

    def test_fallbacks_disabled_without_parse(self, build, walmart_text):
        config = replace(PipelineConfig.from_config(), enable_fallbacks=False)
        result = asyncio.run(build(config).process_text(walmart_text))

        assert not result.success
        assert result.error_type == 'AllStrategiesExhausted'

    def test_results_are_reconciled(self, build, llm_client_factory, walmart_json, walmart_text):
        walmart_json['subtotal'] = 0
        result = asyncio.run(build(llm_client=llm_client_factory(walmart_json)).process_text(walmart_text))

        data = result.data
        assert abs(data.subtotal + data.tax - data.total_amount) <= data.tolerance


class TestProcessReceipt:
    """Image entry points."""

    def test_image_then_cache_hit(self, build, llm_client_factory, walmart_json, receipt_image):
        client = llm_client_factory(walmart_json)
        cache = ResultCache(max_entries=10)
        orchestrator = build(llm_client=client, cache=cache)

        first = asyncio.run(orchestrator.process_receipt(receipt_image))
        second = asyncio.run(orchestrator.process_receipt(receipt_image))

        assert first.success
        assert first.trace.agents_used[:2] == ['scanner', 'recognition']
        assert first.trace.scan is not None
        assert not first.trace.cached
        assert second.trace.cached
        assert second.data.total_amount == first.data.total_amount
        assert len(client.providers["stub"].calls) == 1
        assert len(cache) == 1

    def test_cached_copy_is_independent(self, build, llm_client_factory, walmart_json, receipt_image):
        orchestrator = build(llm_client=llm_client_factory(walmart_json), cache=ResultCache(max_entries=10))

        first = asyncio.run(orchestrator.process_receipt(receipt_image))
        first.data.vendor = "Changed"
        second = asyncio.run(orchestrator.process_receipt(receipt_image))

        assert second.data.vendor == "Walmart"

    def test_recognition_failure_is_terminal(self, build, adapter_factory, recognition_provider_factory,
                                             receipt_image):
        adapter = adapter_factory(recognition_provider_factory(available=False))
        cache = ResultCache(max_entries=10)
        result = asyncio.run(build(adapter=adapter, cache=cache).process_receipt(receipt_image))

        assert not result.success
        assert result.error_type == 'AllStrategiesExhausted'
        assert result.trace.stages['recognition'].error_type == 'ProviderUnavailable'
        assert len(cache) == 0

    def test_missing_file(self, build, tmp_path):
        missing = tmp_path / "nope.png"
        result = asyncio.run(build().process_file(missing))

        assert not result.success
        assert result.error_type == 'InputError'
        assert result.source == str(missing)

    def test_batch_keeps_input_order(self, build, llm_client_factory, walmart_json, receipt_image, tmp_path):
        orchestrator = build(llm_client=llm_client_factory(walmart_json))
        results = asyncio.run(orchestrator.process_batch([tmp_path / "nope.png", receipt_image]))

        assert [r.success for r in results] == [False, True]


class TestHelpers:
    """Cost estimate and status."""

    def test_estimate_cost(self, build, llm_client_factory):
        estimate = build(llm_client=llm_client_factory()).estimate_cost(1000)

        assert estimate['recognition'] == 0.0
        # (1000 + 1500) chars / 4 = 625 input tokens, 500 output tokens
        assert estimate['parsing'] == pytest.approx(0.001625)
        assert estimate['worstCase'] == pytest.approx(0.101625)
        assert estimate['withinBudget']

    def test_status(self, build):
        status = build().get_agent_status()

        assert status['recognition']['stub']['available']
        assert status['textUnderstanding'] == {}
        assert 'walmart' in status['vendorDetection']['registeredVendors']
        assert status['fallback']['strategies'] == [
            'baseline_ocr_fallback', 'enhanced_generic_parsing',
            'pattern_based_extraction', 'partial_data_recovery',
        ]
        assert status['config']['qualityThreshold'] == 0.7
