"""
Main Input Handler Module.

This module provides the InputHandler class, the single entry point for
turning a receipt file or upload into a decoded image. It validates the
path and extension and delegates to the image loader or PDF processor.

Usage:
    from receipt_pipeline.input_handler import InputHandler

    handler = InputHandler()
    result = handler.load("receipt.jpg")

    # Collect a directory
    paths = handler.collect("./receipts/")

Classes:
    InputResult: Decoded image plus file metadata
    InputHandler: Main class for file input handling
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from PIL import Image

from config import get_config
from receipt_pipeline.utils.exceptions import ImageDecodeFailure, InputError, UnsupportedFileTypeError
from receipt_pipeline.utils.helpers import get_file_extension
from receipt_pipeline.utils.logger import get_logger

from .image_loader import ImageLoader
from .pdf_processor import PDFProcessor

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class InputResult:
    """
    Data class representing one loaded receipt.

    Attributes:
        source: Original file path or upload name
        file_type: 'pdf' or 'image'
        image: Decoded RGB image (first page for PDFs)
        metadata: File and decoding metadata
    """
    source: str
    file_type: str
    image: Image.Image
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return Path(self.source).name

    def __repr__(self) -> str:
        return (
            f"InputResult(filename='{self.filename}', type='{self.file_type}', "
            f"size={self.image.width}x{self.image.height})"
        )


class InputHandler:
    """
    Main input handler for receipt files.

    Attributes:
        supported_extensions: Set of supported file extensions
        pdf_processor: PDFProcessor instance for PDF files
        image_loader: ImageLoader instance for raster files

    Example:
        >>> handler = InputHandler()
        >>> result = handler.load("receipt.pdf")
        >>> result.image.size
        (1224, 1584)
    """

    PDF_EXTENSIONS = {'.pdf'}
    IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.tiff', '.tif', '.bmp', '.webp'}

    # PDF signature for uploads without a filename
    PDF_MAGIC = b'%PDF'

    def __init__(self) -> None:
        """Initialize the InputHandler from configuration."""
        self.supported_extensions = {
            ext.lower() for ext in get_config(
                "input.supported_extensions",
                list(self.PDF_EXTENSIONS | self.IMAGE_EXTENSIONS)
            )
        }

        self.pdf_processor = PDFProcessor()
        self.image_loader = ImageLoader()

        logger.debug(f"InputHandler initialized with extensions: {sorted(self.supported_extensions)}")

    def detect_file_type(self, filepath: Union[str, Path]) -> str:
        """
        Detect the type of input file.

        Returns:
            'pdf' or 'image'.

        Raises:
            UnsupportedFileTypeError: If the extension is not supported.
        """
        extension = get_file_extension(filepath)

        if extension not in self.supported_extensions:
            raise UnsupportedFileTypeError(extension, sorted(self.supported_extensions))
        if extension in self.PDF_EXTENSIONS:
            return 'pdf'
        if extension in self.IMAGE_EXTENSIONS:
            return 'image'
        raise UnsupportedFileTypeError(extension, sorted(self.supported_extensions))

    def validate_file(self, filepath: Union[str, Path]) -> Path:
        """
        Validate that a file exists, is supported and is not empty.

        Raises:
            InputError: If the path is missing or not a file.
            UnsupportedFileTypeError: If the extension is not supported.
            ImageDecodeFailure: If the file is empty.
        """
        path = Path(filepath)

        if not path.exists():
            raise InputError(f"File not found: {filepath}", {"path": str(filepath)})
        if not path.is_file():
            raise InputError(f"Path is not a file: {filepath}", {"path": str(filepath)})

        self.detect_file_type(path)

        if path.stat().st_size == 0:
            raise ImageDecodeFailure(str(filepath), "File is empty")

        logger.debug(f"File validated: {filepath}")
        return path

    def load(self, filepath: Union[str, Path]) -> InputResult:
        """
        Load a receipt file as a single RGB image.

        Args:
            filepath: Path to the receipt file.

        Returns:
            InputResult with the decoded image.

        Raises:
            InputError: For missing or unsupported files.
            ImageDecodeFailure: If the file cannot be decoded.

        Example:
            >>> result = handler.load("receipt.jpg")
            >>> scanner.scan(result.image)
        """
        logger.info(f"Loading file: {filepath}")

        path = self.validate_file(filepath)
        file_type = self.detect_file_type(path)

        if file_type == 'pdf':
            image, metadata = self.pdf_processor.process(path)
        else:
            image, metadata = self.image_loader.load(path)

        logger.info(f"Loaded {path.name} ({image.width}x{image.height})")
        return InputResult(source=str(filepath), file_type=file_type, image=image, metadata=metadata)

    def load_bytes(self, data: bytes, filename: str = "upload") -> InputResult:
        """
        Decode an in-memory upload.

        The PDF signature decides the decoder; the filename is used for
        errors and metadata only.

        Raises:
            ImageDecodeFailure: If the bytes cannot be decoded.
        """
        if not data:
            raise ImageDecodeFailure(filename, "Empty upload")

        if data[:4] == self.PDF_MAGIC:
            image, metadata = self.pdf_processor.process_bytes(data, filename)
            file_type = 'pdf'
        else:
            image, metadata = self.image_loader.load_bytes(data, filename)
            file_type = 'image'

        return InputResult(source=filename, file_type=file_type, image=image, metadata=metadata)

    def collect(self, directory: Union[str, Path], recursive: bool = False) -> List[Path]:
        """
        List all supported files in a directory.

        Args:
            directory: Directory containing receipt files.
            recursive: Whether to search subdirectories.

        Returns:
            Sorted list of file paths.

        Raises:
            InputError: If the directory does not exist.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise InputError(f"Path is not a directory: {directory}", {"path": str(directory)})

        pattern = "**/*" if recursive else "*"
        files = sorted(
            path for path in directory.glob(pattern)
            if path.is_file() and get_file_extension(path) in self.supported_extensions
        )

        logger.info(f"Found {len(files)} receipt files in {directory}")
        return files
