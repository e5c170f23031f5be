"""
Input Handler Module for the Receipt Pipeline.

This module provides functionality for:
    - Loading receipt images (JPG, PNG, TIFF, BMP, WEBP)
    - Rasterizing the first page of PDF receipts
    - Decoding in-memory uploads
    - File validation

Author: ML Engineering Team
"""

from .handler import InputHandler, InputResult
from .image_loader import ImageLoader
from .pdf_processor import PDFProcessor

__all__ = ['InputHandler', 'InputResult', 'ImageLoader', 'PDFProcessor']
