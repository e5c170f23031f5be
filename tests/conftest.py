"""Pytest configuration and shared fixtures for the receipt pipeline tests.

- Fresh configuration singleton per test
- Sample receipt texts
- Stub recognition providers and text-understanding providers (no network)
- Synthetic receipt images
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pytest
from PIL import Image, ImageDraw

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import ConfigurationManager
from receipt_pipeline.agents.llm_client import LLMProvider, TextUnderstandingClient
from receipt_pipeline.ocr_engine.adapter import RecognitionAdapter, RecognitionProvider
from receipt_pipeline.ocr_engine.recognition_result import RecognitionResult


WALMART_TEXT = """WALMART SUPERCENTER
Save money. Live better.
ST# 1234 OP# 00001 TE# 12 TR# 03456
GV MILK 1GAL 007874201234 3.48 N
BANANAS 000000004011 0.78 N
6 AT 1 FOR 0.78
EGGS LARGE 12CT 3.56 N
SUBTOTAL 7.82
TAX 0.13
TOTAL 7.95
VISA TEND 7.95
09/15/24 14:32:10
"""

CAFE_TEXT = """CORNER CAFE
Coffee and pastry
$42.50
"""

MARKET_TEXT = """CORNER MARKET
Coffee beans $12.99
Milk $3.49
Total $16.48
"""

WALMART_JSON = {
    "vendor": "Walmart",
    "date": "2024-09-15",
    "totalAmount": 7.95,
    "subtotal": 7.82,
    "tax": 0.13,
    "currency": "USD",
    "lineItems": [
        {"description": "GV MILK 1GAL", "quantity": 1, "unitPrice": 3.48, "totalPrice": 3.48},
        {"description": "BANANAS", "quantity": 1, "unitPrice": 0.78, "totalPrice": 0.78},
        {"description": "6 AT 1 FOR 0.78", "quantity": 1, "unitPrice": 0.78, "totalPrice": 0.78},
        {"description": "EGGS LARGE 12CT", "quantity": 1, "unitPrice": 3.56, "totalPrice": 3.56},
    ],
    "category": "Groceries",
    "confidence": 92,
}


@pytest.fixture(autouse=True)
def fresh_config():
    """Load settings.yaml from scratch for every test."""
    ConfigurationManager.reset()
    ConfigurationManager()
    yield
    ConfigurationManager.reset()


@pytest.fixture
def walmart_text() -> str:
    return WALMART_TEXT


@pytest.fixture
def cafe_text() -> str:
    return CAFE_TEXT


@pytest.fixture
def market_text() -> str:
    return MARKET_TEXT


@pytest.fixture
def walmart_json() -> Dict[str, Any]:
    return json.loads(json.dumps(WALMART_JSON))


def stub_llm_provider(
    response: Any = None,
    raw_text: Optional[str] = None,
    delay: float = 0.0,
    name: str = "stub",
    input_cost_per_1k: float = 0.001,
    output_cost_per_1k: float = 0.002,
    available: bool = True
) -> LLMProvider:
    """LLMProvider record answering every prompt with a fixed response."""
    calls = []

    async def call(prompt, image):
        calls.append(prompt)
        if delay:
            await asyncio.sleep(delay)
        text = raw_text if raw_text is not None else json.dumps(response)
        return text, 1000, 500

    provider = LLMProvider(
        name=name,
        model="stub-model",
        input_cost_per_1k=input_cost_per_1k,
        output_cost_per_1k=output_cost_per_1k,
        available=lambda: available,
        call=call,
    )
    provider.calls = calls
    return provider


@pytest.fixture
def llm_client_factory():
    """Build a TextUnderstandingClient over one stub provider."""
    def factory(response: Any = None, timeout_s: float = 5.0, **kwargs) -> TextUnderstandingClient:
        provider = stub_llm_provider(response, **kwargs)
        return TextUnderstandingClient(providers={provider.name: provider}, primary=provider.name,
                                       timeout_s=timeout_s)
    return factory


@pytest.fixture
def offline_llm_client() -> TextUnderstandingClient:
    """Client with no credentials configured for any provider."""
    return TextUnderstandingClient(providers={}, primary="openai")


def stub_recognition_provider(
    text: str = "",
    confidence: float = 90.0,
    name: str = "stub",
    available: bool = True,
    delay: float = 0.0,
    cost: float = 0.0,
    error: Optional[Exception] = None,
    by_size: Optional[Dict[tuple, tuple]] = None
) -> RecognitionProvider:
    """
    RecognitionProvider record returning fixed text.

    `by_size` maps an image size to (text, confidence) for tests that
    tell the corrected page from the enhanced page.
    """
    seen = []

    async def recognize(image):
        seen.append(image.size)
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        result_text, result_confidence = (by_size or {}).get(image.size, (text, confidence))
        return RecognitionResult(text=result_text, confidence=result_confidence, provider=name)

    provider = RecognitionProvider(
        name=name,
        cost=cost,
        accuracy=0.9,
        available=lambda: available,
        recognize=recognize,
    )
    provider.seen = seen
    return provider


@pytest.fixture
def adapter_factory():
    """Build a RecognitionAdapter over stub providers."""
    def factory(*providers: RecognitionProvider, primary: Optional[str] = None,
                timeout_s: float = 5.0) -> RecognitionAdapter:
        registry = {p.name: p for p in providers}
        return RecognitionAdapter(registry, primary=primary or providers[0].name, timeout_s=timeout_s)
    return factory


@pytest.fixture
def recognition_provider_factory():
    return stub_recognition_provider


@pytest.fixture
def receipt_image() -> Image.Image:
    """Light page with dark text-like bars on a dark background."""
    canvas = np.full((560, 400), 40, dtype=np.uint8)
    image = Image.fromarray(canvas)
    draw = ImageDraw.Draw(image)
    draw.polygon([(110, 70), (300, 90), (290, 370), (95, 350)], fill=235)
    for row in range(120, 330, 24):
        draw.rectangle([(130, row), (260, row + 6)], fill=20)
    return image.convert('RGB')


@pytest.fixture
def full_frame_image() -> Image.Image:
    """Page whose outline covers about 95% of the frame."""
    canvas = np.full((560, 400), 30, dtype=np.uint8)
    canvas[7:553, 5:395] = 230
    canvas[100:106, 60:300] = 20
    canvas[200:206, 60:340] = 20
    return Image.fromarray(canvas).convert('RGB')


@pytest.fixture
def llm_provider_factory():
    return stub_llm_provider
