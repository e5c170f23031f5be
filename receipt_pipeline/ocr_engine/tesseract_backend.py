"""
Tesseract OCR Backend.

This module provides recognition using Tesseract through pytesseract.
The blocking `image_to_data` call runs on a worker thread so the event
loop stays free.

Requirements:
    - Tesseract OCR installed on the system
    - pytesseract Python package

Author: ML Engineering Team
"""

import asyncio
import time
from typing import Dict, List, Optional

import pytesseract
from PIL import Image

from config import get_config
from receipt_pipeline.utils.exceptions import ProviderError, ProviderUnavailable
from receipt_pipeline.utils.logger import get_logger

from .recognition_result import OCRWord, RecognitionResult

# Initialize module logger
logger = get_logger(__name__)


class TesseractBackend:
    """
    Tesseract recognition backend.

    Attributes:
        language: Tesseract language code (e.g., "eng")
        psm: Page Segmentation Mode (1-13)
        oem: OCR Engine Mode (0-3)
        extra_config: Additional Tesseract configuration

    Example:
        >>> backend = TesseractBackend()
        >>> if backend.is_available():
        ...     result = backend.extract(image)
    """

    name = "tesseract"

    def __init__(self) -> None:
        """Initialize the Tesseract backend with configuration."""
        self.language = get_config("ocr.tesseract.lang", "eng")
        self.psm = get_config("ocr.tesseract.psm", 6)
        self.oem = get_config("ocr.tesseract.oem", 3)
        self.extra_config = get_config("ocr.tesseract.config", "")
        self._version: Optional[str] = None

        logger.debug(
            f"TesseractBackend initialized (lang={self.language}, "
            f"psm={self.psm}, oem={self.oem})"
        )

    def is_available(self) -> bool:
        """Whether the tesseract binary can be found."""
        if self._version is not None:
            return True
        try:
            self._version = str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            logger.debug(f"Tesseract not available: {e}")
            return False
        logger.info(f"Tesseract version: {self._version}")
        return True

    def _build_config(self) -> str:
        config_parts = [f"--psm {self.psm}", f"--oem {self.oem}"]
        if self.extra_config:
            config_parts.append(self.extra_config)
        return ' '.join(config_parts)

    def extract(self, image: Image.Image) -> RecognitionResult:
        """
        Recognize text in an image (blocking).

        Args:
            image: PIL Image to process.

        Returns:
            RecognitionResult with line-ordered text and mean word confidence.

        Raises:
            ProviderUnavailable: If Tesseract is not installed.
            ProviderError: If Tesseract fails on the image.
        """
        start_time = time.time()

        if image.mode not in ('RGB', 'L'):
            image = image.convert('RGB')

        config = self._build_config()
        logger.debug(f"Running Tesseract OCR (config: {config})")

        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.language,
                config=config,
                output_type=pytesseract.Output.DICT
            )
        except pytesseract.TesseractNotFoundError as e:
            raise ProviderUnavailable(self.name, str(e))
        except (pytesseract.TesseractError, RuntimeError) as e:
            raise ProviderError(f"Tesseract failed: {e}", {"provider": self.name})

        words = self._parse_tesseract_output(data)
        result = RecognitionResult.from_words(
            words,
            provider=self.name,
            processing_time=time.time() - start_time,
            metadata={'psm': self.psm, 'oem': self.oem, 'language': self.language},
        )

        logger.info(
            f"OCR completed: {len(words)} words, {result.line_count} lines, "
            f"avg confidence: {result.confidence:.1f}% ({result.processing_time:.2f}s)"
        )
        return result

    async def recognize(self, image: Image.Image) -> RecognitionResult:
        """Run `extract` in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract, image)

    def _parse_tesseract_output(self, data: Dict[str, List]) -> List[OCRWord]:
        """
        Parse Tesseract output into OCRWord objects.

        Args:
            data: Dictionary output from image_to_data.

        Returns:
            Words with non-empty text and positive box size.
        """
        words = []
        for i, text in enumerate(data['text']):
            if not text or not text.strip():
                continue

            width, height = data['width'][i], data['height'][i]
            if width <= 0 or height <= 0:
                continue

            # Tesseract returns -1 for non-word elements
            confidence = max(0.0, float(data['conf'][i]))
            left, top = data['left'][i], data['top'][i]

            words.append(OCRWord(
                text=text.strip(),
                bbox=(left, top, left + width, top + height),
                confidence=confidence,
                line_key=(data['block_num'][i], data['par_num'][i], data['line_num'][i]),
            ))
        return words
