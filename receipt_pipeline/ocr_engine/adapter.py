"""
Recognition Adapter Module.

This module provides the RecognitionAdapter class, the pipeline's only
contact with OCR services. Providers are plain capability records held
in a registry dict; the adapter picks the configured primary, moves on
when a provider is unavailable, and returns every outcome as an
AgentResult.

Usage:
    from receipt_pipeline.ocr_engine import RecognitionAdapter

    adapter = RecognitionAdapter()
    result = await adapter.recognize(image)
    if result.success:
        print(result.data.text)

Author: ML Engineering Team
"""

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from PIL import Image

from config import get_config
from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.utils.exceptions import ProviderError, ProviderUnavailable
from receipt_pipeline.utils.helpers import call_with_timeout
from receipt_pipeline.utils.logger import get_logger

from .recognition_result import RecognitionResult
from .tesseract_backend import TesseractBackend

# Initialize module logger
logger = get_logger(__name__)

AGENT_NAME = "recognition"


@dataclass
class RecognitionProvider:
    """
    Capability record for one recognition service.

    Attributes:
        name: Registry key
        cost: Cost per call in USD
        accuracy: Expected accuracy (0-1), informational
        available: Returns whether the provider can be called
        recognize: Async callable from image to RecognitionResult
    """
    name: str
    cost: float
    accuracy: float
    available: Callable[[], bool]
    recognize: Callable[[Image.Image], Awaitable[RecognitionResult]]


def tesseract_provider() -> RecognitionProvider:
    """Build the registry record for the Tesseract backend."""
    backend = TesseractBackend()
    return RecognitionProvider(
        name=backend.name,
        cost=get_config("ocr.tesseract.cost", 0.0),
        accuracy=get_config("ocr.tesseract.accuracy", 0.85),
        available=backend.is_available,
        recognize=backend.recognize,
    )


class RecognitionAdapter:
    """
    Async front for recognition providers.

    Attributes:
        providers: Registry of provider records by name
        primary: Name of the preferred provider
        fallback_order: Names tried, in order, when the primary is unavailable
        timeout_s: Per-call timeout
        retry_confidence: Confidence below which one retry runs on the enhanced page

    Example:
        >>> adapter = RecognitionAdapter()
        >>> result = asyncio.run(adapter.recognize(page))
        >>> result.confidence
        87.3
    """

    def __init__(
        self,
        providers: Optional[Dict[str, RecognitionProvider]] = None,
        primary: Optional[str] = None,
        timeout_s: Optional[float] = None
    ) -> None:
        """
        Initialize the adapter.

        Args:
            providers: Provider registry. Defaults to Tesseract only.
            primary: Preferred provider. Defaults to ocr.engine.
            timeout_s: Per-call timeout. Defaults to ocr.timeout_s.
        """
        if providers is None:
            providers = {"tesseract": tesseract_provider()}
        self.providers: Dict[str, RecognitionProvider] = dict(providers)
        self.primary = primary or get_config("ocr.engine", "tesseract")
        self.fallback_order: List[str] = list(get_config("ocr.fallback_engines", []))
        self.timeout_s = timeout_s if timeout_s is not None else get_config("ocr.timeout_s", 15)
        self.retry_confidence = get_config("ocr.retry_confidence", 40)

        logger.debug(f"RecognitionAdapter initialized (primary={self.primary}, providers={list(self.providers)})")

    def register(self, provider: RecognitionProvider) -> None:
        """Add or replace a provider record."""
        self.providers[provider.name] = provider

    def _provider_order(self) -> List[str]:
        order = [self.primary] + self.fallback_order + sorted(self.providers)
        seen = set()
        return [name for name in order if name in self.providers and not (name in seen or seen.add(name))]

    def select_provider(self) -> RecognitionProvider:
        """
        Pick the first available provider, primary first.

        Raises:
            ProviderUnavailable: If no provider is available.
        """
        unavailable = []
        for name in self._provider_order():
            provider = self.providers[name]
            if provider.available():
                if name != self.primary:
                    logger.warning(f"Primary recognizer '{self.primary}' unavailable, using '{name}'")
                return provider
            unavailable.append(name)

        raise ProviderUnavailable("recognition", f"no available provider (tried {unavailable})")

    async def recognize(
        self,
        image: Image.Image,
        enhanced: Optional[Image.Image] = None
    ) -> AgentResult[RecognitionResult]:
        """
        Recognize text in a receipt image.

        Args:
            image: Page to recognize first.
            enhanced: Enhanced page retried once when confidence is low.

        Returns:
            AgentResult wrapping a RecognitionResult. Failures
            (ProviderUnavailable, ProviderTimeout, ProviderError) are
            returned with success=False, never raised.
        """
        start_time = time.time()
        cost = 0.0

        try:
            provider = self.select_provider()
            result = await call_with_timeout(
                provider.recognize(image), self.timeout_s, f"{provider.name} recognition"
            )
            cost += provider.cost

            if result.confidence < self.retry_confidence and enhanced is not None:
                logger.info(
                    f"Low recognition confidence ({result.confidence:.1f}), retrying on enhanced page"
                )
                retried = await self._retry(provider, enhanced)
                if retried is not None:
                    cost += provider.cost
                    result.metadata['retryConfidence'] = retried.confidence
                    if retried.confidence > result.confidence:
                        retried.metadata['retried'] = True
                        result = retried

        except ProviderError as e:
            logger.warning(f"Recognition failed: {e}")
            return AgentResult.failure(AGENT_NAME, e, start_time, cost=cost)
        except Exception as e:
            logger.warning(f"Recognition provider raised: {e}")
            error = ProviderError(f"Recognition failed: {e}", {"reason": type(e).__name__})
            return AgentResult.failure(AGENT_NAME, error, start_time, cost=cost)

        if result.is_empty:
            logger.warning("Recognition returned no text")

        return AgentResult.ok(
            AGENT_NAME,
            result,
            confidence=result.confidence,
            started=start_time,
            cost=cost,
            metadata={'provider': result.provider},
        )

    async def _retry(self, provider: RecognitionProvider, image: Image.Image) -> Optional[RecognitionResult]:
        try:
            return await call_with_timeout(
                provider.recognize(image), self.timeout_s, f"{provider.name} recognition retry"
            )
        except ProviderError as e:
            logger.warning(f"Recognition retry failed, keeping first result: {e}")
            return None

    def get_status(self) -> Dict[str, Dict[str, object]]:
        """Availability, cost and accuracy of every registered provider."""
        return {
            name: {
                'available': provider.available(),
                'cost': provider.cost,
                'accuracy': provider.accuracy,
                'primary': name == self.primary,
            }
            for name, provider in self.providers.items()
        }
