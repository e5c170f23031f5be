"""Tests for receipt file loading."""

import io

import fitz
import pytest
from PIL import Image

from receipt_pipeline.input_handler import InputHandler
from receipt_pipeline.utils.exceptions import ImageDecodeFailure, InputError, UnsupportedFileTypeError


@pytest.fixture
def handler():
    return InputHandler()


def _png_bytes(size=(60, 80), color=(250, 250, 250), mode='RGB'):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def _pdf_bytes():
    doc = fitz.open()
    page = doc.new_page(width=200, height=300)
    page.insert_text((20, 40), "CORNER CAFE  TOTAL 4.50")
    data = doc.tobytes()
    doc.close()
    return data


def test_load_png(handler, tmp_path):
    path = tmp_path / "receipt.png"
    path.write_bytes(_png_bytes())

    result = handler.load(path)

    assert result.file_type == 'image'
    assert result.image.mode == 'RGB'
    assert result.image.size == (60, 80)
    assert result.filename == "receipt.png"
    assert result.metadata['original_filename'] == "receipt.png"


def test_transparency_flattened(handler, tmp_path):
    path = tmp_path / "receipt.png"
    path.write_bytes(_png_bytes(color=(0, 0, 0, 0), mode='RGBA'))

    image = handler.load(path).image

    assert image.mode == 'RGB'
    assert image.getpixel((0, 0)) == (255, 255, 255)


def test_load_pdf_first_page(handler, tmp_path):
    path = tmp_path / "receipt.pdf"
    path.write_bytes(_pdf_bytes())

    result = handler.load(path)

    assert result.file_type == 'pdf'
    assert result.image.size == (400, 600)
    assert result.metadata['total_pages'] == 1


def test_missing_file(handler, tmp_path):
    with pytest.raises(InputError):
        handler.load(tmp_path / "missing.png")


def test_unsupported_extension(handler, tmp_path):
    path = tmp_path / "receipt.txt"
    path.write_text("TOTAL 4.50")

    with pytest.raises(UnsupportedFileTypeError) as exc_info:
        handler.load(path)
    assert exc_info.value.details


def test_empty_file(handler, tmp_path):
    path = tmp_path / "receipt.png"
    path.write_bytes(b"")

    with pytest.raises(ImageDecodeFailure):
        handler.load(path)


def test_corrupt_file(handler, tmp_path):
    path = tmp_path / "receipt.jpg"
    path.write_bytes(b"not really a jpeg")

    with pytest.raises(ImageDecodeFailure) as exc_info:
        handler.load(path)
    assert exc_info.value.terminal


def test_load_bytes(handler):
    assert handler.load_bytes(_png_bytes(), "upload.png").file_type == 'image'
    assert handler.load_bytes(_pdf_bytes(), "upload").file_type == 'pdf'

    with pytest.raises(ImageDecodeFailure):
        handler.load_bytes(b"", "upload.png")
    with pytest.raises(ImageDecodeFailure):
        handler.load_bytes(b"garbage", "upload.png")


def test_collect(handler, tmp_path):
    (tmp_path / "b.png").write_bytes(_png_bytes())
    (tmp_path / "a.jpg").write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("skip")

    assert [p.name for p in handler.collect(tmp_path)] == ["a.jpg", "b.png"]


def test_collect_requires_directory(handler, tmp_path):
    with pytest.raises(InputError):
        handler.collect(tmp_path / "missing")
