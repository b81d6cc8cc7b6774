"""Unit tests for OCR service.

Tests cover:
- Text and confidence extraction from images and PDFs
- Error handling for empty, unreadable and missing files
- Configuration management
"""

import io
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from bookkeeping.ocr.service import OCRResult, TesseractOCRService, is_pdf
from bookkeeping.shared.config import Settings

WORDS = {
    "text": ["Rechnung", "Nr.", "", "2024-0815", "Gesamt", "119,00"],
    "conf": ["96", "90", "-1", "88", "92", "-1"],
    "block_num": [1, 1, 1, 1, 2, 2],
    "par_num": [1, 1, 1, 1, 1, 1],
    "line_num": [1, 1, 1, 1, 1, 1],
}


@pytest.fixture
def png_bytes() -> bytes:
    """Create a simple white PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (200, 50), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def ocr_service(settings: Settings) -> TesseractOCRService:
    """Create OCR service instance."""
    return TesseractOCRService(settings)


def test_is_pdf() -> None:
    """Test the PDF magic header check."""
    assert is_pdf(b"%PDF-1.7") is True
    assert is_pdf(b"\x89PNG") is False
    assert is_pdf(b"") is False


@patch("bookkeeping.ocr.service.pytesseract.image_to_data")
def test_extract_text_from_image(
    mock_ocr: MagicMock, ocr_service: TesseractOCRService, png_bytes: bytes
) -> None:
    """Test words are grouped into lines and confidences averaged."""
    mock_ocr.return_value = WORDS

    result = ocr_service.extract_text(png_bytes)

    assert isinstance(result, OCRResult)
    assert result.success is True
    assert result.error is None
    assert result.text == "Rechnung Nr. 2024-0815\nGesamt 119,00"
    assert result.confidence == pytest.approx((96 + 90 + 88 + 92) / 4 / 100)
    assert result.page_count == 1
    assert mock_ocr.call_args.kwargs["lang"] == "deu+eng"


@patch("bookkeeping.ocr.service.pytesseract.image_to_data")
@patch("bookkeeping.ocr.service.convert_from_bytes")
def test_extract_text_from_pdf(
    mock_convert: MagicMock, mock_ocr: MagicMock, ocr_service: TesseractOCRService
) -> None:
    """Test every PDF page is rasterized and recognized."""
    mock_convert.return_value = [Image.new("RGB", (10, 10)), Image.new("RGB", (10, 10))]
    mock_ocr.return_value = WORDS

    result = ocr_service.extract_text(b"%PDF-1.7 two pages")

    assert result.success is True
    assert result.page_count == 2
    assert result.text.count("Rechnung") == 2
    assert mock_convert.call_args.kwargs["dpi"] == 300


def test_extract_text_empty_document(ocr_service: TesseractOCRService) -> None:
    """Test empty input is rejected without calling Tesseract."""
    result = ocr_service.extract_text(b"")

    assert result.success is False
    assert result.error == "Empty document"


def test_extract_text_unreadable_image(ocr_service: TesseractOCRService) -> None:
    """Test error handling for bytes that are neither PDF nor image."""
    result = ocr_service.extract_text(b"not an image")

    assert result.success is False
    assert result.text == ""
    assert result.error is not None
    assert "OCR processing failed" in result.error


@patch("bookkeeping.ocr.service.pytesseract.image_to_data")
def test_extract_text_tesseract_error(
    mock_ocr: MagicMock, ocr_service: TesseractOCRService, png_bytes: bytes
) -> None:
    """Test handling of OCR engine errors."""
    mock_ocr.side_effect = RuntimeError("Tesseract not found")

    result = ocr_service.extract_text(png_bytes)

    assert result.success is False
    assert "Tesseract not found" in str(result.error)


def test_extract_text_from_path_not_found(ocr_service: TesseractOCRService) -> None:
    """Test error handling for non-existent file."""
    result = ocr_service.extract_text_from_path(Path("/non/existent/file.pdf"))

    assert result.success is False
    assert "File not found" in str(result.error)


@patch("bookkeeping.ocr.service.pytesseract.image_to_data")
def test_extract_text_from_path(
    mock_ocr: MagicMock, ocr_service: TesseractOCRService, png_bytes: bytes, tmp_path: Path
) -> None:
    """Test files are read from disk."""
    mock_ocr.return_value = WORDS
    image_path = tmp_path / "scan.png"
    image_path.write_bytes(png_bytes)

    result = ocr_service.extract_text_from_path(image_path)

    assert result.success is True


def test_tesseract_cmd_from_env(settings: Settings) -> None:
    """Test custom Tesseract path configuration."""
    custom_path = "/custom/path/tesseract"

    with (
        patch.dict(os.environ, {"TESSERACT_CMD": custom_path}),
        patch("bookkeeping.ocr.service.pytesseract.pytesseract") as mock_module,
    ):
        TesseractOCRService(settings)

    assert mock_module.tesseract_cmd == custom_path
