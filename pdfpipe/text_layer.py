# pdfpipe/text_layer.py
"""
Plain-text extraction path:
 - read the PDF text layer page by page (pypdf by default; no OCR)
 - normalize each page's whitespace
 - chunk every page independently with the word-safe overlapping chunker

Page numbers are 1-based and chunk indexes restart at 0 on every page, so a
(page_number, chunk_index) pair maps straight back to the source page.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import List, Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from pdfpipe.chunking import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, chunk_text, normalize_whitespace, validate_chunk_params
from pdfpipe.errors import TextLayerError

logger = logging.getLogger(__name__)


@dataclass
class ParsedPdf:
    pages: List[str]
    page_count: int


class TextLayerParser(Protocol):
    def parse(self, pdf_bytes: bytes) -> ParsedPdf:
        ...


class PypdfTextLayerParser:
    def parse(self, pdf_bytes: bytes) -> ParsedPdf:
        """
        Extract text by page. Keeps a page as empty string if extraction fails for
        that page to preserve page numbering.
        """
        try:
            reader = PdfReader(io.BytesIO(pdf_bytes))
            page_count = len(reader.pages)
        except PdfReadError as e:
            raise TextLayerError(f"Corrupt or invalid PDF: {e}") from e
        except Exception as e:
            raise TextLayerError(f"Failed to read PDF: {e}") from e

        pages: List[str] = []
        for i, page in enumerate(reader.pages):
            try:
                text = page.extract_text() or ""
            except Exception as e:
                logger.warning("Failed to extract text from page %s: %s", i + 1, e)
                text = ""
            pages.append(normalize_whitespace(text))
        return ParsedPdf(pages=pages, page_count=page_count)


@dataclass
class PageChunk:
    page_number: int
    chunk_index: int
    text: str

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass
class TextExtraction:
    page_count: int
    chunks: List[PageChunk] = field(default_factory=list)
    text: str = ""

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def char_count(self) -> int:
        return len(self.text)


def chunk_pages(pages: List[str], size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> List[PageChunk]:
    """
    Chunk all pages and return a flat list of chunks.
    """
    validate_chunk_params(size, overlap)
    all_chunks: List[PageChunk] = []
    for idx, page_text in enumerate(pages):
        page_number = idx + 1
        for chunk_index, text in enumerate(chunk_text(page_text or "", size=size, overlap=overlap)):
            all_chunks.append(PageChunk(page_number=page_number, chunk_index=chunk_index, text=text))
    return all_chunks


def extract_text_chunks(
    pdf_bytes: bytes,
    parser: TextLayerParser,
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> TextExtraction:
    validate_chunk_params(size, overlap)
    parsed = parser.parse(pdf_bytes)
    pages = [normalize_whitespace(p) for p in parsed.pages]
    chunks = chunk_pages(pages, size=size, overlap=overlap)
    if not chunks:
        logger.warning("PDF has no extractable text layer (%d pages; may be scanned/image-based)", parsed.page_count)
    return TextExtraction(page_count=parsed.page_count, chunks=chunks, text=join_pages(pages))


def join_pages(pages: List[str]) -> str:
    """Whole-document text: non-empty normalized pages separated by a blank line."""
    return "\n\n".join(p for p in pages if p)
