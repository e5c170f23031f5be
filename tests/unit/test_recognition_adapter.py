"""Tests for the recognition adapter."""

import asyncio

import pytest
from PIL import Image

from receipt_pipeline.utils.exceptions import ProviderUnavailable


@pytest.fixture
def page():
    return Image.new('L', (100, 150), 255)


@pytest.fixture
def enhanced_page():
    return Image.new('L', (90, 140), 255)


def test_recognize(adapter_factory, recognition_provider_factory, page):
    adapter = adapter_factory(recognition_provider_factory(text="TOTAL 4.50", confidence=88, cost=0.001))
    result = asyncio.run(adapter.recognize(page))

    assert result.success
    assert result.data.text == "TOTAL 4.50"
    assert result.confidence == 88
    assert result.cost == 0.001
    assert result.metadata['provider'] == "stub"


def test_unavailable_primary_skipped(adapter_factory, recognition_provider_factory, page):
    offline = recognition_provider_factory(name="primary", available=False)
    online = recognition_provider_factory(text="TOTAL 4.50", name="secondary")
    result = asyncio.run(adapter_factory(offline, online, primary="primary").recognize(page))

    assert result.success
    assert result.data.provider == "secondary"
    assert offline.seen == []


def test_no_available_provider(adapter_factory, recognition_provider_factory, page):
    adapter = adapter_factory(recognition_provider_factory(available=False))

    with pytest.raises(ProviderUnavailable):
        adapter.select_provider()

    result = asyncio.run(adapter.recognize(page))
    assert not result.success
    assert result.error_type == "ProviderUnavailable"


def test_timeout(adapter_factory, recognition_provider_factory, page):
    adapter = adapter_factory(recognition_provider_factory(delay=0.5), timeout_s=0.01)
    result = asyncio.run(adapter.recognize(page))

    assert not result.success
    assert result.error_type == "ProviderTimeout"


def test_provider_exception_wrapped(adapter_factory, recognition_provider_factory, page):
    adapter = adapter_factory(recognition_provider_factory(error=RuntimeError("engine crashed")))
    result = asyncio.run(adapter.recognize(page))

    assert not result.success
    assert result.error_type == "ProviderError"


def test_low_confidence_retried_on_enhanced_page(adapter_factory, recognition_provider_factory,
                                                 page, enhanced_page):
    provider = recognition_provider_factory(by_size={
        page.size: ("T0TAL 4.5O", 20),
        enhanced_page.size: ("TOTAL 4.50", 85),
    }, cost=0.001)
    result = asyncio.run(adapter_factory(provider).recognize(page, enhanced=enhanced_page))

    assert provider.seen == [page.size, enhanced_page.size]
    assert result.data.text == "TOTAL 4.50"
    assert result.data.metadata['retried'] is True
    assert result.cost == pytest.approx(0.002)


def test_worse_retry_keeps_first_result(adapter_factory, recognition_provider_factory, page, enhanced_page):
    provider = recognition_provider_factory(by_size={
        page.size: ("TOTAL 4.50", 30),
        enhanced_page.size: ("", 10),
    })
    result = asyncio.run(adapter_factory(provider).recognize(page, enhanced=enhanced_page))

    assert result.data.text == "TOTAL 4.50"
    assert result.data.metadata['retryConfidence'] == 10


def test_confident_result_not_retried(adapter_factory, recognition_provider_factory, page, enhanced_page):
    provider = recognition_provider_factory(text="TOTAL 4.50", confidence=90)
    asyncio.run(adapter_factory(provider).recognize(page, enhanced=enhanced_page))

    assert provider.seen == [page.size]


def test_status(adapter_factory, recognition_provider_factory):
    adapter = adapter_factory(recognition_provider_factory(cost=0.002))
    assert adapter.get_status() == {'stub': {'available': True, 'cost': 0.002, 'accuracy': 0.9, 'primary': True}}
