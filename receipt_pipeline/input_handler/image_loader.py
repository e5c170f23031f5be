"""
Image Loader Module.

This module decodes receipt photos and scans into PIL images:
    - EXIF orientation correction
    - Alpha flattening onto white
    - Downscaling above the configured maximum size

Supports: JPG, JPEG, PNG, TIFF, BMP, WEBP

Author: ML Engineering Team
"""

import io
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from config import get_config
from receipt_pipeline.utils.exceptions import ImageDecodeFailure
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class ImageLoader:
    """
    Loader for raster receipt images.

    Attributes:
        max_width: Maximum image width in pixels
        max_height: Maximum image height in pixels
        auto_orient: Whether to apply EXIF orientation

    Example:
        >>> loader = ImageLoader()
        >>> image, metadata = loader.load("receipt.jpg")
        >>> metadata['original_width']
        3024
    """

    def __init__(self) -> None:
        """Initialize the image loader with configuration."""
        self.max_width = get_config("input.image.max_width", 4000)
        self.max_height = get_config("input.image.max_height", 6000)
        self.auto_orient = get_config("input.image.auto_orient", True)

        logger.debug(f"ImageLoader initialized (max_size={self.max_width}x{self.max_height})")

    def load(self, filepath: Union[str, Path]) -> Tuple[Image.Image, Dict[str, Any]]:
        """
        Decode an image file.

        Args:
            filepath: Path to the image file.

        Returns:
            Tuple of (decoded RGB image, metadata dictionary).

        Raises:
            ImageDecodeFailure: If the file cannot be decoded.
        """
        filepath = Path(filepath)
        logger.debug(f"Decoding image: {filepath.name}")

        try:
            with Image.open(filepath) as opened:
                opened.load()
                image, metadata = self._prepare(opened)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.error(f"Failed to decode image {filepath}: {e}")
            raise ImageDecodeFailure(str(filepath), str(e))

        metadata['original_filename'] = filepath.name
        metadata['file_size_bytes'] = filepath.stat().st_size
        return image, metadata

    def load_bytes(self, data: bytes, source: str = "<bytes>") -> Tuple[Image.Image, Dict[str, Any]]:
        """
        Decode an in-memory image upload.

        Args:
            data: Encoded image bytes.
            source: Name used in errors and metadata.

        Raises:
            ImageDecodeFailure: If the bytes cannot be decoded.
        """
        if not data:
            raise ImageDecodeFailure(source, "Empty image data")
        try:
            with Image.open(io.BytesIO(data)) as opened:
                opened.load()
                image, metadata = self._prepare(opened)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.error(f"Failed to decode image bytes from {source}: {e}")
            raise ImageDecodeFailure(source, str(e))

        metadata['original_filename'] = source
        metadata['file_size_bytes'] = len(data)
        return image, metadata

    def _prepare(self, image: Image.Image) -> Tuple[Image.Image, Dict[str, Any]]:
        """
        Apply the loading pipeline to a decoded image.

        Processing steps:
            1. Fix orientation from EXIF
            2. Convert to RGB
            3. Resize if too large
        """
        metadata = {
            'file_type': 'image',
            'format': image.format,
            'original_width': image.width,
            'original_height': image.height,
            'original_mode': image.mode,
            'page_count': 1,
        }

        # Step 1: Fix orientation from EXIF
        if self.auto_orient:
            image = ImageOps.exif_transpose(image)

        # Step 2: Convert to RGB
        image = self._convert_to_rgb(image)

        # Step 3: Resize if too large
        image = self._resize_if_needed(image)

        metadata['processed_width'] = image.width
        metadata['processed_height'] = image.height
        return image, metadata

    def _convert_to_rgb(self, image: Image.Image) -> Image.Image:
        """
        Convert image to RGB mode, flattening transparency onto white.
        """
        if image.mode == 'RGB':
            return image.copy()

        if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
            rgba = image.convert('RGBA')
            background = Image.new('RGB', rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[3])
            return background

        return image.convert('RGB')

    def _resize_if_needed(self, image: Image.Image) -> Image.Image:
        """Downscale with LANCZOS, keeping aspect ratio."""
        width, height = image.size
        if width <= self.max_width and height <= self.max_height:
            return image

        ratio = min(self.max_width / width, self.max_height / height)
        new_size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
        image = image.resize(new_size, Image.LANCZOS)

        logger.debug(f"Resized image from {width}x{height} to {new_size[0]}x{new_size[1]}")
        return image
