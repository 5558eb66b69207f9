"""Text extraction from uploaded documents.

PDF extraction requires the ``pdf`` optional extra (pypdf); HTML and plain
text use the standard library only.
"""

from __future__ import annotations

import io
import logging
import re
from html.parser import HTMLParser as _StdlibHTMLParser
from pathlib import PurePosixPath

from unichat.exceptions import DocumentError

logger = logging.getLogger(__name__)

_ENCODINGS = ("utf-8", "latin-1", "cp1252")
TEXT_EXTENSIONS: frozenset[str] = frozenset({
    ".txt", ".md", ".markdown", ".csv", ".tsv", ".json", ".xml", ".yaml", ".yml",
    ".py", ".js", ".ts", ".java", ".c", ".cpp", ".cs", ".go", ".rs", ".rb", ".sql", ".log",
})
HTML_EXTENSIONS: frozenset[str] = frozenset({".html", ".htm"})


def decode_text(raw: bytes) -> str:
    """Decode bytes with encoding fallback."""
    for encoding in _ENCODINGS:
        try:
            return raw.decode(encoding)
        except (UnicodeDecodeError, ValueError):
            continue
    return raw.decode("utf-8", errors="replace")


class _HTMLTextExtractor(_StdlibHTMLParser):
    """Collects visible text, skipping script and style bodies."""

    _BLOCK_TAGS = frozenset({"br", "p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr"})

    def __init__(self) -> None:
        super().__init__()
        self.text_parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        lower_tag = tag.lower()
        if lower_tag in ("script", "style"):
            self._skip_depth += 1
        elif lower_tag in self._BLOCK_TAGS:
            self.text_parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag.lower() in ("script", "style") and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self.text_parts.append(data)


def _html_to_text(raw: bytes) -> str:
    extractor = _HTMLTextExtractor()
    extractor.feed(decode_text(raw))
    return re.sub(r"\n{3,}", "\n\n", "".join(extractor.text_parts)).strip()


def _pdf_to_text(raw: bytes) -> str:
    try:
        from pypdf import PdfReader
    except ImportError as e:
        msg = "pypdf is required to read PDF files. Install it with: pip install unichat[pdf]"
        raise DocumentError(msg) from e

    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(io.BytesIO(raw))
        pages = [text for page in reader.pages if (text := page.extract_text())]
    except PdfReadError as e:
        msg = f"Could not read PDF: {e}"
        raise DocumentError(msg) from e
    return "\n\n".join(pages)


def is_pdf(raw: bytes, filename: str) -> bool:
    return raw.startswith(b"%PDF") or PurePosixPath(filename.lower()).suffix == ".pdf"


def extract_text(raw: bytes, filename: str) -> str:
    """Return the text content of a downloaded document.

    Raises:
        DocumentError: When the file is not a supported document or has no
            extractable text.
    """
    suffix = PurePosixPath(filename.lower()).suffix
    if is_pdf(raw, filename):
        text = _pdf_to_text(raw)
    elif suffix in HTML_EXTENSIONS:
        text = _html_to_text(raw)
    elif suffix in TEXT_EXTENSIONS or not suffix:
        text = decode_text(raw)
    elif b"\x00" in raw[:8192]:
        msg = f"Unsupported binary document type: {suffix}"
        raise DocumentError(msg)
    else:
        logger.debug("Treating %s as plain text", suffix)
        text = decode_text(raw)

    if not text.strip():
        msg = f"No extractable text in {filename}"
        raise DocumentError(msg)
    return text
