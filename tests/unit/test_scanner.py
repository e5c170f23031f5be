"""Tests for the document scanner and its image helpers."""

import asyncio

import numpy as np
import pytest
from PIL import Image

from config import ConfigurationManager
from receipt_pipeline.scanner import DocumentScanner
from receipt_pipeline.scanner.geometry import order_corners, solve_homography, target_size, warp_perspective
from receipt_pipeline.scanner.quality import analyze_quality

RECEIPT_CORNERS = [(110, 70), (300, 90), (290, 370), (95, 350)]


@pytest.fixture
def scanner():
    return DocumentScanner(enhanced=True)


class TestDocumentScanner:
    """Scan routes."""

    def test_skewed_page_is_rectified(self, scanner, receipt_image):
        result = scanner.scan(receipt_image)

        assert result.method == 'perspective'
        assert result.cropped
        assert len(result.corners) == 4
        for found, expected in zip(result.corners, RECEIPT_CORNERS):
            assert abs(found[0] - expected[0]) <= 15
            assert abs(found[1] - expected[1]) <= 15
        assert result.image.mode == 'L'
        assert result.image.size == result.corrected.size

    def test_page_filling_frame_is_not_cropped(self, scanner, full_frame_image):
        result = scanner.scan(full_frame_image)

        assert result.method == 'full_frame'
        assert not result.cropped
        assert result.corners is None
        assert result.image.size == full_frame_image.size

    def test_uniform_image_keeps_full_frame(self, scanner):
        result = scanner.scan(Image.new('RGB', (300, 400), (128, 128, 128)))

        assert result.method == 'full_frame'
        assert not result.cropped

    def test_no_outline_applies_margin_crop(self, scanner):
        canvas = np.full((560, 400), 200, dtype=np.uint8)
        canvas[100:160, 50:350] = 20
        result = scanner.scan(Image.fromarray(canvas))

        assert result.method == 'margin_crop'
        assert result.cropped
        width, height = result.corrected.size
        assert abs(width - 360) <= 1
        assert abs(height - 504) <= 1

    def test_large_image_downscaled(self, receipt_image):
        ConfigurationManager().set("scanner.max_megapixels", 0.1)
        result = DocumentScanner(enhanced=True).scan(receipt_image)

        assert result.method == 'downscaled'
        assert result.image.width * result.image.height <= 100_000

    def test_basic_mode(self, receipt_image):
        result = DocumentScanner(enhanced=False).scan(receipt_image)

        assert result.method == 'basic'
        assert not result.cropped
        assert result.image.size == receipt_image.size

    def test_input_not_modified(self, scanner, receipt_image):
        before = receipt_image.tobytes()
        scanner.scan(receipt_image)
        assert receipt_image.tobytes() == before

    def test_quality_recorded(self, scanner, receipt_image):
        result = scanner.scan(receipt_image)

        quality = result.metadata['quality']
        assert 0 <= quality['overall_score'] <= 100
        assert result.to_dict()['method'] == result.method

    def test_scan_async(self, scanner, full_frame_image):
        result = asyncio.run(scanner.scan_async(full_frame_image))
        assert result.method == 'full_frame'


class TestGeometry:
    """Corner ordering and perspective warp."""

    def test_order_corners(self):
        ordered = order_corners(np.array([[10, 90], [90, 90], [90, 10], [10, 10]]))
        np.testing.assert_array_equal(ordered, [[10, 10], [90, 10], [90, 90], [10, 90]])

    def test_target_size_uses_longer_edges(self):
        corners = np.array([[0, 0], [100, 0], [90, 200], [10, 190]], dtype=np.float64)
        width, height = target_size(corners)
        assert width == 100
        assert height == round(np.hypot(10, 200))

    def test_identity_homography(self):
        square = np.array([[0, 0], [9, 0], [9, 9], [0, 9]], dtype=np.float64)
        np.testing.assert_allclose(solve_homography(square, square), np.eye(3), atol=1e-9)

    def test_axis_aligned_warp_is_crop(self):
        source = (np.arange(80 * 80) % 251).reshape(80, 80).astype(np.uint8)
        corners = np.array([[10, 20], [49, 20], [49, 59], [10, 59]], dtype=np.float64)
        warped = warp_perspective(source, corners, (40, 40), chunk_rows=7)

        np.testing.assert_allclose(warped.astype(float), source[20:60, 10:50].astype(float), atol=1)


def test_quality_of_blank_image():
    metrics = analyze_quality(Image.new('L', (100, 100), 255))

    assert metrics.contrast == 0.0
    assert metrics.sharpness == 0.0
    assert metrics.processing_route in ('simple', 'standard', 'complex')
