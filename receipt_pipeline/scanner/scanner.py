"""
Document Scanner Module.

This module provides the DocumentScanner class that turns a receipt
photo into a clean, flat, binarized page.

Processing steps:
    1. Grayscale and Gaussian blur
    2. Canny edge detection on a downscaled working copy
    3. Contour tracing
    4. Quadrilateral approximation
    5. Candidate scoring (or margin / full-frame fallback)
    6. Corner ordering
    7. Homography and inverse warp
    8. Multi-scale Retinex
    9. Sauvola binarization and finishing

Author: ML Engineering Team
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from config import get_config
from receipt_pipeline.scanner.contours import (
    approximate_quad,
    convex_hull,
    polygon_area,
    trace_components,
)
from receipt_pipeline.scanner.edges import canny, dilate, gaussian_blur
from receipt_pipeline.scanner.enhancement import (
    basic_enhance,
    finish_binarized,
    multi_scale_retinex,
    sauvola_binarize,
)
from receipt_pipeline.scanner.geometry import order_corners, target_size, warp_perspective
from receipt_pipeline.scanner.quality import analyze_quality
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

SCAN_METHODS = ('perspective', 'margin_crop', 'full_frame', 'downscaled', 'basic')


@dataclass
class ScanResult:
    """
    Result of scanning one receipt image.

    Attributes:
        image: Final enhanced page ('L')
        corrected: Geometry-corrected grayscale page before illumination
            normalization and binarization
        cropped: Whether the page was cropped or rectified
        method: One of SCAN_METHODS
        corners: TL, TR, BR, BL source corners when a crop was applied
        warnings: Degradations encountered during the scan
        processing_time: Seconds spent scanning
        metadata: Quality metrics and scan parameters
    """
    image: Image.Image
    corrected: Image.Image
    cropped: bool
    method: str
    corners: Optional[List[Tuple[float, float]]] = None
    warnings: List[str] = field(default_factory=list)
    processing_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, describing images by their size."""
        return {
            'cropped': self.cropped,
            'method': self.method,
            'corners': self.corners,
            'size': list(self.image.size),
            'warnings': list(self.warnings),
            'processingTime': round(self.processing_time, 4),
            'metadata': self.metadata,
        }

    def __repr__(self) -> str:
        return (
            f"ScanResult(method='{self.method}', cropped={self.cropped}, "
            f"size={self.image.width}x{self.image.height})"
        )


class DocumentScanner:
    """
    Classical document scanner for receipt photos.

    A scan never raises for a decodable image: detection failures
    degrade to an uncropped page and enhancement failures degrade to the
    basic contrast/sharpness path, each recorded in `warnings`.

    Attributes:
        enhanced: Whether the full pipeline runs (otherwise 'basic')
        sigma: Gaussian sigma for edge detection
        edge_max_dim: Longest side of the edge-detection working copy
        max_megapixels: Above this, detection is skipped and the image downscaled

    Example:
        >>> scanner = DocumentScanner()
        >>> result = scanner.scan(Image.open("receipt.jpg"))
        >>> result.method
        'perspective'
    """

    def __init__(self, enhanced: Optional[bool] = None) -> None:
        """
        Initialize the scanner from configuration.

        Args:
            enhanced: Override for pipeline.enable_enhanced_preprocessing.
        """
        if enhanced is None:
            enhanced = get_config("pipeline.enable_enhanced_preprocessing", True)
        self.enhanced = bool(enhanced)

        self.sigma = get_config("scanner.gaussian_sigma", 1.4)
        self.edge_max_dim = get_config("scanner.edge_max_dim", 640)
        self.high_ratio = get_config("scanner.canny.high_ratio", 0.2)
        self.low_ratio = get_config("scanner.canny.low_ratio", 0.4)
        self.min_contour_length = get_config("scanner.min_contour_length", 40)
        self.min_edge_density = get_config("scanner.min_edge_density", 0.002)
        self.epsilon_ratio = get_config("scanner.dp_epsilon_ratio", 0.02)
        self.min_area_ratio = get_config("scanner.min_area_ratio", 0.1)
        self.max_area_ratio = get_config("scanner.max_area_ratio", 0.9)
        self.target_aspect = get_config("scanner.target_aspect_ratio", 1.414)
        self.margin_ratio = get_config("scanner.margin_ratio", 0.05)
        self.max_megapixels = get_config("scanner.max_megapixels", 2.0)
        self.chunk_rows = get_config("scanner.chunk_rows", 256)
        self.retinex_scales = get_config("scanner.retinex.scales", [15, 80, 250])
        self.sauvola = {
            'window': get_config("scanner.sauvola.window", 25),
            'k': get_config("scanner.sauvola.k", 0.2),
            'r': get_config("scanner.sauvola.r", 128),
            'low_contrast_std': get_config("scanner.sauvola.low_contrast_std", 8.0),
            'low_contrast_factor': get_config("scanner.sauvola.low_contrast_factor", 0.85),
        }
        self.contrast_factor = get_config("scanner.contrast_factor", 1.2)
        self.sharpness_factor = get_config("scanner.sharpness_factor", 1.1)

    def scan(self, image: Image.Image) -> ScanResult:
        """
        Scan a receipt image.

        Args:
            image: Decoded receipt image (RGB, RGBA or L). Not modified.

        Returns:
            ScanResult with the enhanced page.
        """
        start_time = time.time()
        warnings: List[str] = []
        metrics = analyze_quality(image)
        metadata: Dict[str, Any] = {
            'originalSize': list(image.size),
            'quality': metrics.to_dict(),
        }

        logger.info(
            f"Scanning {image.width}x{image.height} image "
            f"(quality={metrics.overall_score:.1f}, route={metrics.processing_route})"
        )

        if not self.enhanced:
            page = basic_enhance(image, self.contrast_factor, self.sharpness_factor)
            return self._result(page, image.convert('L'), False, 'basic', None,
                                warnings, metadata, start_time)

        gray = image.convert('L')
        corners = None
        cropped = False

        # Step 1: Performance guard
        megapixels = gray.width * gray.height / 1e6
        if megapixels > self.max_megapixels:
            scale = math.sqrt(self.max_megapixels / megapixels)
            new_size = (max(1, int(gray.width * scale)), max(1, int(gray.height * scale)))
            gray = gray.resize(new_size, Image.LANCZOS)
            method = 'downscaled'
            logger.info(f"Image is {megapixels:.1f} MP, downscaled to {new_size[0]}x{new_size[1]}")
        else:
            # Step 2: Locate and rectify the document
            try:
                method, corners = self.detect_document(gray)
                if method == 'perspective':
                    ordered = np.asarray(corners, dtype=np.float64)
                    size = target_size(ordered)
                    warped = warp_perspective(np.asarray(gray), ordered, size, self.chunk_rows)
                    gray = Image.fromarray(warped)
                    cropped = True
                elif method == 'margin_crop':
                    (left, top), _, (right, bottom), _ = corners
                    gray = gray.crop((int(left), int(top), int(right), int(bottom)))
                    cropped = True
            except Exception as e:
                logger.warning(f"Document detection failed, using full frame: {e}")
                warnings.append(f"Document detection failed: {e}")
                method, corners, cropped = 'full_frame', None, False
                gray = image.convert('L')

        corrected = gray

        # Step 3: Illumination and binarization
        try:
            page = self.enhance(gray)
        except Exception as e:
            logger.warning(f"Enhancement failed, using basic path: {e}")
            warnings.append(f"Enhancement failed: {e}")
            page = basic_enhance(gray, self.contrast_factor, self.sharpness_factor)

        return self._result(page, corrected, cropped, method, corners, warnings, metadata, start_time)

    async def scan_async(self, image: Image.Image) -> ScanResult:
        """Run `scan` on a worker thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.scan, image)

    def detect_document(self, gray: Image.Image) -> Tuple[str, Optional[List[Tuple[float, float]]]]:
        """
        Find the receipt outline.

        Args:
            gray: Grayscale image.

        Returns:
            Tuple of (method, corners). Method is 'perspective' with the
            ordered quad, 'margin_crop' with the inset rectangle, or
            'full_frame' with None.
        """
        # Work on a downscaled copy
        scale = min(1.0, self.edge_max_dim / max(gray.size))
        work = gray
        if scale < 1.0:
            work = gray.resize(
                (max(1, int(gray.width * scale)), max(1, int(gray.height * scale))),
                Image.BILINEAR
            )
        scale_x = gray.width / work.width
        scale_y = gray.height / work.height

        blurred = gaussian_blur(np.asarray(work, dtype=np.float64), self.sigma)
        edges = canny(blurred, self.high_ratio, self.low_ratio)

        density = float(edges.mean())
        if density < self.min_edge_density:
            logger.debug(f"Edge density {density:.4f} below minimum, keeping full frame")
            return 'full_frame', None

        frame_area = float(work.width * work.height)
        best_score = 0.0
        best_quad = None
        covers_frame = False

        candidates = trace_components(dilate(edges), self.min_contour_length)
        # Outlines broken at the corners still form one quad together
        if len(candidates) > 1:
            candidates.append(np.vstack(candidates))

        for component in candidates:
            hull_ratio = polygon_area(convex_hull(component)) / frame_area
            if hull_ratio > self.max_area_ratio:
                covers_frame = True

            quad = approximate_quad(component, self.epsilon_ratio)
            if quad is None:
                continue

            area_ratio = polygon_area(quad) / frame_area
            if not (self.min_area_ratio <= area_ratio <= self.max_area_ratio):
                continue

            ordered = order_corners(quad)
            width, height = target_size(ordered)
            aspect = max(width, height) / max(1, min(width, height))
            closeness = max(0.0, 1.0 - abs(aspect - self.target_aspect) / self.target_aspect)
            score = area_ratio * closeness

            logger.debug(f"Quad candidate: area={area_ratio:.3f}, aspect={aspect:.2f}, score={score:.3f}")
            if score > best_score:
                best_score = score
                best_quad = ordered

        if best_quad is not None:
            corners = [(float(x * scale_x), float(y * scale_y)) for x, y in best_quad]
            logger.info(f"Document outline found (score={best_score:.3f})")
            return 'perspective', corners

        if covers_frame:
            logger.debug("Document fills the frame, no crop")
            return 'full_frame', None

        margin_x = gray.width * self.margin_ratio
        margin_y = gray.height * self.margin_ratio
        right = gray.width - margin_x
        bottom = gray.height - margin_y
        logger.debug("No document outline, applying margin crop")
        return 'margin_crop', [(margin_x, margin_y), (right, margin_y), (right, bottom), (margin_x, bottom)]

    def enhance(self, gray: Image.Image) -> Image.Image:
        """
        Illumination normalization and adaptive binarization.

        Args:
            gray: Grayscale page.

        Returns:
            Binarized, denoised, sharpened page.
        """
        normalized = multi_scale_retinex(gray, self.retinex_scales)
        binary = sauvola_binarize(normalized, chunk_rows=self.chunk_rows, **self.sauvola)
        return finish_binarized(binary, self.contrast_factor)

    def _result(
        self,
        page: Image.Image,
        corrected: Image.Image,
        cropped: bool,
        method: str,
        corners: Optional[List[Tuple[float, float]]],
        warnings: List[str],
        metadata: Dict[str, Any],
        start_time: float
    ) -> ScanResult:
        result = ScanResult(
            image=page,
            corrected=corrected,
            cropped=cropped,
            method=method,
            corners=corners,
            warnings=warnings,
            processing_time=time.time() - start_time,
            metadata=metadata,
        )
        logger.info(
            f"Scan complete: method={method}, cropped={cropped}, "
            f"size={page.width}x{page.height}, time={result.processing_time:.2f}s"
        )
        return result
