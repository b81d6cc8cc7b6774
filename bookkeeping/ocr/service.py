"""OCR service using Tesseract.

Extracts text and a mean word confidence from invoice PDFs and images.
PDF pages are rasterized with pdf2image (poppler) before recognition.

Based on pytesseract documentation:
https://github.com/madmaze/pytesseract
"""

import io
import logging
import os
from pathlib import Path
from typing import Protocol

import pytesseract
from pdf2image import convert_from_bytes
from PIL import Image
from pydantic import BaseModel

from bookkeeping.shared.config import Settings

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


class OCRResult(BaseModel):
    """Result of OCR operation.

    Attributes:
        text: Extracted text content
        success: Whether operation succeeded
        error: Error message if operation failed
        confidence: Mean word confidence in [0, 1]
        page_count: Number of pages recognized
    """

    text: str
    success: bool
    error: str | None = None
    confidence: float = 0.0
    page_count: int = 0


class TextExtractor(Protocol):
    """Anything that turns document bytes into text."""

    def extract_text(self, document: bytes) -> OCRResult: ...


def is_pdf(document: bytes) -> bool:
    """Check the PDF magic header."""
    return document[:4] == PDF_MAGIC


class TesseractOCRService:
    """OCR service using Tesseract engine.

    Handles text extraction from PDF and image bytes with proper error handling
    and configuration management.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OCR service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._configure_tesseract()

    def _configure_tesseract(self) -> None:
        """Configure Tesseract command path from environment.

        Allows overriding default Tesseract path via TESSERACT_CMD environment variable.
        Common paths:
        - Linux: /usr/bin/tesseract
        - macOS: /opt/homebrew/bin/tesseract or /usr/local/bin/tesseract
        """
        tesseract_cmd = os.getenv("TESSERACT_CMD")
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract_text(self, document: bytes) -> OCRResult:
        """Extract text from PDF or image bytes.

        Args:
            document: Raw file content

        Returns:
            OCRResult with extracted text or error information
        """
        if not document:
            return OCRResult(text="", success=False, error="Empty document")

        try:
            pages = self._load_pages(document)
            texts: list[str] = []
            confidences: list[float] = []
            for page in pages:
                text, page_confidences = self._recognize(page)
                texts.append(text)
                confidences.extend(page_confidences)

            confidence = sum(confidences) / len(confidences) / 100 if confidences else 0.0
            full_text = "\n\n".join(t.strip() for t in texts if t.strip())
            logger.debug(
                f"OCR finished: {len(pages)} page(s), {len(full_text)} chars, "
                f"confidence {confidence:.2f}"
            )
            return OCRResult(
                text=full_text,
                success=True,
                confidence=confidence,
                page_count=len(pages),
            )

        except Exception as e:
            return OCRResult(text="", success=False, error=f"OCR processing failed: {str(e)}")

    def extract_text_from_path(self, path: Path) -> OCRResult:
        """Extract text from a file on disk.

        Args:
            path: PDF or image file

        Returns:
            OCRResult with extracted text or error information
        """
        if not path.exists():
            return OCRResult(text="", success=False, error=f"File not found: {path}")
        return self.extract_text(path.read_bytes())

    def _load_pages(self, document: bytes) -> list[Image.Image]:
        if is_pdf(document):
            return list(convert_from_bytes(document, dpi=self.settings.ocr_dpi))
        return [Image.open(io.BytesIO(document))]

    def _recognize(self, page: Image.Image) -> tuple[str, list[float]]:
        data = pytesseract.image_to_data(
            page, lang=self.settings.ocr_language, output_type=pytesseract.Output.DICT
        )
        lines: dict[tuple[int, int, int], list[str]] = {}
        confidences: list[float] = []
        for i, word in enumerate(data["text"]):
            if not word or not word.strip():
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word.strip())
            conf = float(data["conf"][i])
            if conf >= 0:
                confidences.append(conf)
        text = "\n".join(" ".join(words) for words in lines.values())
        return text, confidences
