"""
Recognition Module for the Receipt Pipeline.

This module provides functionality for:
    - Text recognition through registered providers (Tesseract built in)
    - Provider selection with fallback on unavailability
    - Timeouts and low-confidence retry

Author: ML Engineering Team
"""

from .adapter import RecognitionAdapter, RecognitionProvider, tesseract_provider
from .recognition_result import OCRWord, RecognitionResult
from .tesseract_backend import TesseractBackend

__all__ = [
    'RecognitionAdapter',
    'RecognitionProvider',
    'tesseract_provider',
    'RecognitionResult',
    'OCRWord',
    'TesseractBackend',
]
