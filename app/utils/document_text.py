"""Plain-text extraction for document artifacts sent to text-only providers."""

import zipfile
import xml.etree.ElementTree as ET
from io import BytesIO
from typing import Optional

import pdfplumber

from app.core.exceptions import AnalysisError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
WORD_NAMESPACE = {"w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main"}


def is_media(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.split("/", 1)[0] in ("audio", "video")


def extract_text(data: bytes, mime_type: Optional[str]) -> Optional[str]:
    """Return the readable text of a document, or None for audio/video.

    Raises:
        AnalysisError: If the document cannot be read.
    """
    if is_media(mime_type):
        return None
    try:
        if mime_type == "application/pdf":
            return _pdf_text(data)
        if mime_type == DOCX_MIME:
            return _docx_text(data)
        if mime_type == PPTX_MIME:
            return _pptx_text(data)
        return data.decode("utf-8", errors="replace")
    except Exception as e:
        raise AnalysisError(f"Could not read document text: {e}", original_error=e) from e


def _pdf_text(data: bytes) -> str:
    pages: list[str] = []
    with pdfplumber.open(BytesIO(data)) as pdf:
        for page in pdf.pages:
            text = (page.extract_text() or "").strip()
            if text:
                pages.append(text)
    LOGGER.debug("Extracted PDF text", extra={"pages": len(pages)})
    return "\n\n".join(pages)


def _docx_text(data: bytes) -> str:
    with zipfile.ZipFile(BytesIO(data)) as archive:
        root = ET.fromstring(archive.read("word/document.xml"))

    paragraphs: list[str] = []
    for paragraph in root.findall(".//w:p", WORD_NAMESPACE):
        line = "".join(node.text or "" for node in paragraph.findall(".//w:t", WORD_NAMESPACE)).strip()
        if line:
            paragraphs.append(line)
    return "\n\n".join(paragraphs)


def _slide_number(name: str) -> int:
    digits = name.rsplit("slide", 1)[-1].split(".xml", 1)[0]
    return int(digits) if digits.isdigit() else 0


def _pptx_text(data: bytes) -> str:
    with zipfile.ZipFile(BytesIO(data)) as archive:
        slide_names = sorted(
            (
                name for name in archive.namelist()
                if name.startswith("ppt/slides/slide") and name.endswith(".xml")
            ),
            key=_slide_number,
        )
        slides: list[str] = []
        for name in slide_names:
            root = ET.fromstring(archive.read(name))
            texts = [node.text.strip() for node in root.iter() if node.tag.endswith("}t") and node.text and node.text.strip()]
            if texts:
                slides.append("\n".join(texts))
    return "\n\n".join(slides)
