"""
PDF Processor Module.

Rasterizes the first page of a PDF receipt with PyMuPDF. Multi-page
documents are not split; later pages are ignored.

Author: ML Engineering Team
"""

import io
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import fitz  # PyMuPDF
from PIL import Image

from config import get_config
from receipt_pipeline.utils.exceptions import ImageDecodeFailure
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

# PDF user space is 72 units per inch
PDF_BASE_DPI = 72.0


class PDFProcessor:
    """
    Processor for PDF receipts.

    Attributes:
        dpi: Render resolution (144 gives a 2.0 scale)

    Example:
        >>> processor = PDFProcessor()
        >>> image, metadata = processor.process("receipt.pdf")
        >>> metadata['total_pages']
        1
    """

    def __init__(self) -> None:
        """Initialize the PDF processor with configuration."""
        self.dpi = get_config("input.pdf.dpi", 144)
        logger.debug(f"PDFProcessor initialized (DPI={self.dpi})")

    def process(self, filepath: Union[str, Path]) -> Tuple[Image.Image, Dict[str, Any]]:
        """
        Render the first page of a PDF file.

        Args:
            filepath: Path to the PDF file.

        Returns:
            Tuple of (RGB page image, metadata dictionary).

        Raises:
            ImageDecodeFailure: If the PDF cannot be opened or has no pages.
        """
        filepath = Path(filepath)
        logger.info(f"Processing PDF: {filepath.name}")

        try:
            with fitz.open(filepath) as doc:
                return self._render_first_page(doc, filepath.name, filepath.stat().st_size)
        except ImageDecodeFailure:
            raise
        except Exception as e:
            logger.error(f"PyMuPDF conversion failed: {e}")
            raise ImageDecodeFailure(str(filepath), str(e))

    def process_bytes(self, data: bytes, source: str = "<bytes>") -> Tuple[Image.Image, Dict[str, Any]]:
        """Render the first page of an in-memory PDF."""
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                return self._render_first_page(doc, source, len(data))
        except ImageDecodeFailure:
            raise
        except Exception as e:
            logger.error(f"PyMuPDF conversion failed for {source}: {e}")
            raise ImageDecodeFailure(source, str(e))

    def _render_first_page(
        self,
        doc: "fitz.Document",
        name: str,
        size_bytes: int
    ) -> Tuple[Image.Image, Dict[str, Any]]:
        if doc.page_count == 0:
            raise ImageDecodeFailure(name, "PDF has no pages")

        # Calculate zoom factor based on DPI
        zoom = self.dpi / PDF_BASE_DPI
        matrix = fitz.Matrix(zoom, zoom)

        page = doc.load_page(0)
        pix = page.get_pixmap(matrix=matrix)
        image = Image.open(io.BytesIO(pix.tobytes("png")))
        if image.mode != 'RGB':
            image = image.convert('RGB')

        if doc.page_count > 1:
            logger.info(f"PDF {name} has {doc.page_count} pages, using the first only")

        metadata = {
            'original_filename': name,
            'file_size_bytes': size_bytes,
            'file_type': 'pdf',
            'source_dpi': self.dpi,
            'total_pages': doc.page_count,
            'page_count': 1,
            'processed_width': image.width,
            'processed_height': image.height,
        }
        return image, metadata
