"""
Helper Utilities Module.

This module provides common utility functions used throughout the
receipt pipeline. Functions here should be generic and reusable
across different modules.

Functions:
    - ensure_directory: Create directory if it doesn't exist
    - get_file_extension: Extract file extension safely
    - generate_timestamp: Generate formatted timestamps
    - round_money: Round a value to cents
    - safe_float: Coerce loosely-typed numbers
    - image_fingerprint: Content hash of an image for caching
    - call_with_timeout: Await with a uniform timeout-as-failure policy
"""

import asyncio
import hashlib
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Optional, TypeVar, Union

from PIL import Image

from receipt_pipeline.utils.exceptions import ProviderTimeout

T = TypeVar("T")


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object pointing to the directory.

    Example:
        >>> ensure_directory("outputs/receipts")
        PosixPath('outputs/receipts')
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def get_file_extension(filepath: Union[str, Path]) -> str:
    """
    Extract the lowercase file extension, including the dot.

    Example:
        >>> get_file_extension("receipt.JPG")
        ".jpg"
    """
    return Path(filepath).suffix.lower()


def generate_timestamp(format_str: str = "%Y%m%d_%H%M%S") -> str:
    """
    Generate a formatted timestamp string.

    Args:
        format_str: strftime format string.

    Returns:
        Formatted timestamp string.
    """
    return datetime.now().strftime(format_str)


def round_money(value: float) -> float:
    """Round to cents, normalizing -0.0 to 0.0."""
    rounded = round(float(value), 2)
    return rounded if rounded != 0 else 0.0


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Coerce numbers, numeric strings and currency strings to float.

    Args:
        value: Raw value (int, float, "12.50", "$1,234.00", None).
        default: Value returned when coercion fails.

    Returns:
        Parsed float or default.

    Example:
        >>> safe_float("$1,234.50")
        1234.5
        >>> safe_float(None, 0.0)
        0.0
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r'[^\d.\-]', '', str(value))
    try:
        return float(cleaned)
    except ValueError:
        return default


def image_fingerprint(image: Union[Image.Image, bytes]) -> str:
    """
    Compute a content hash identifying an image.

    PIL images are hashed over mode, size and raw pixel bytes so that
    the same pixels loaded from different containers share a key.

    Args:
        image: PIL Image or raw encoded bytes.

    Returns:
        Hex sha256 digest.
    """
    digest = hashlib.sha256()
    if isinstance(image, Image.Image):
        digest.update(f"{image.mode}:{image.width}x{image.height}".encode('utf-8'))
        digest.update(image.tobytes())
    else:
        digest.update(image)
    return digest.hexdigest()


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout_s: Optional[float],
    operation: str
) -> T:
    """
    Await a collaborator call, converting a timeout into ProviderTimeout.

    Args:
        awaitable: Coroutine or future to await.
        timeout_s: Timeout in seconds. None disables the limit.
        operation: Name used in the error message.

    Returns:
        The awaited result.

    Raises:
        ProviderTimeout: If the call does not complete in time.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError:
        raise ProviderTimeout(operation, timeout_s or 0.0)
