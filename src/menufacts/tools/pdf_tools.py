"""
Source document splitting, pure Python, zero LLM cost.

Three strategies, chosen by SPLIT_STRATEGY:
  page     : one single-page PDF per physical page (per-page vision extraction)
  text     : pdfplumber text, cut into ~TEXT_CHUNK_SIZE character chunks
  document : the whole PDF as one unit
"""
import enum
import logging
from pathlib import Path

import pymupdf
import pdfplumber

from menufacts.errors import EmptyDocumentError, ScannedDocumentError, SplitError
from menufacts.states.state import DocumentUnit

logger = logging.getLogger(__name__)

# Below this many characters of text a PDF is treated as scanned/image-only
MIN_TEXT_CHARS = 100


class SplitStrategy(str, enum.Enum):
    PAGE = "page"
    TEXT = "text"
    DOCUMENT = "document"


def split_pdf_into_pages(pdf_path: str | Path) -> list[DocumentUnit]:
    """Copy every page into its own standalone PDF."""
    try:
        source = pymupdf.open(pdf_path)
    except Exception as e:
        raise SplitError(f"Could not open PDF {pdf_path}: {e}") from e

    units = []
    try:
        for page_index in range(source.page_count):
            single = pymupdf.open()
            try:
                single.insert_pdf(source, from_page=page_index, to_page=page_index)
                units.append(DocumentUnit(number=page_index + 1, kind="pdf", data=single.tobytes()))
            finally:
                single.close()
    finally:
        source.close()

    if not units:
        raise EmptyDocumentError(f"PDF {pdf_path} has no pages")
    logger.info("Split %s into %d single-page units", pdf_path, len(units))
    return units


def chunk_text(text: str, chunk_size: int) -> list[str]:
    """
    Cut text into chunks of at most chunk_size characters.

    Each cut prefers the last blank line inside the second half of the window,
    then the last newline there, then a hard cut at chunk_size.
    "".join(chunk_text(t, n)) == t always holds.
    """
    if chunk_size < 2:
        raise ValueError("chunk_size must be at least 2")

    chunks = []
    start = 0
    length = len(text)
    while start < length:
        end = start + chunk_size
        if end >= length:
            chunks.append(text[start:])
            break

        window_start = end - chunk_size // 2
        cut = text.rfind("\n\n", window_start, end)
        if cut != -1:
            cut += 2
        else:
            cut = text.rfind("\n", window_start, end)
            cut = cut + 1 if cut != -1 else end

        chunks.append(text[start:cut])
        start = cut
    return chunks


def extract_pdf_text(pdf_path: str | Path) -> str:
    try:
        with pdfplumber.open(pdf_path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise SplitError(f"Could not read text from PDF {pdf_path}: {e}") from e
    return "\n\n".join(pages)


def split_pdf_into_text_chunks(pdf_path: str | Path, chunk_size: int) -> list[DocumentUnit]:
    text = extract_pdf_text(pdf_path)
    if len(text.strip()) < MIN_TEXT_CHARS:
        raise ScannedDocumentError(
            "PDF appears to be scanned/image-based. Text-based PDFs are required; OCR is not supported."
        )
    units = [
        DocumentUnit(number=number, kind="text", data=chunk)
        for number, chunk in enumerate(chunk_text(text, chunk_size), start=1)
    ]
    logger.info("Split %s into %d text chunks (%d chars)", pdf_path, len(units), len(text))
    return units


def load_whole_document(pdf_path: str | Path) -> list[DocumentUnit]:
    try:
        data = Path(pdf_path).read_bytes()
    except OSError as e:
        raise SplitError(f"Could not read PDF {pdf_path}: {e}") from e
    if not data:
        raise EmptyDocumentError(f"PDF {pdf_path} is empty")
    return [DocumentUnit(number=1, kind="pdf", data=data)]


def split_document(
    pdf_path: str | Path,
    strategy: SplitStrategy | str = SplitStrategy.PAGE,
    chunk_size: int = 30000,
) -> list[DocumentUnit]:
    """Divide the source document into extraction units. Any failure here is fatal for the job."""
    try:
        strategy = SplitStrategy(strategy)
    except ValueError:
        raise SplitError(f"Unknown split strategy '{strategy}'. Valid: {[s.value for s in SplitStrategy]}")

    if strategy is SplitStrategy.PAGE:
        units = split_pdf_into_pages(pdf_path)
    elif strategy is SplitStrategy.TEXT:
        units = split_pdf_into_text_chunks(pdf_path, chunk_size)
    else:
        units = load_whole_document(pdf_path)

    if not units:
        raise EmptyDocumentError(f"No extractable units in {pdf_path}")
    return units
