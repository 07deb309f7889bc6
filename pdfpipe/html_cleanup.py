# pdfpipe/html_cleanup.py
"""
HTML cleanup for converter output.

The conversion service emits one <p class="paragraph ..."> per text line with the
words split over many inline runs. This module rebuilds a minimal document:
an optional cover image followed by h1..h4 / p blocks in document order, with
reflow damage (spaced digits, split words, doubled letters) repaired.

Two strategies share the normalize() contract:
 - StructuredHtmlNormalizer: BeautifulSoup tree walk with block reconstruction
 - RegexHtmlNormalizer: degraded stripper (no block reconstruction), used when
   configured or when the requested parser backend is not installed
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, FeatureNotFound
from bs4.element import Comment, NavigableString, Tag

logger = logging.getLogger(__name__)

BLOCK_TAGS = ["h1", "h2", "h3", "h4", "p"]

_WATERMARK_HOST = "oceanofpdf.com"
_WATERMARK_LINK_RE = re.compile(
    r"\[\s*OceanofPD\s*\]\(\s*https?://oceanofpdf\.com/?\s*\)\s*"
    r"\[\s*F\s*\]\(\s*https?://oceanofpdf\.com/?\s*\)\s*"
    r"\[\s*\.\s*\]\(\s*https?://oceanofpdf\.com/?\s*\)\s*"
    r"\[\s*com\s*\]\(\s*https?://oceanofpdf\.com/?\s*\)",
    re.IGNORECASE,
)
_WATERMARK_TEXT_RE = re.compile(r"oceanofpd", re.IGNORECASE)

_HEADING_LEVEL_RE = re.compile(r"\bheading[-_ ]?([1-4])\b")
_HEADING_RE = re.compile(r"\bheading\b")

_OUTPUT_SHELL = '<!DOCTYPE html><html><head><meta charset="utf-8"/></head><body></body></html>'

# ---- text reflow rules, applied in this order ----
_UNICODE_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile("\u00a0"), " "),
    (re.compile("\u00ad"), ""),
    (re.compile("[\u200b-\u200d\ufeff]"), ""),
    (re.compile("\ufffd"), ""),
    (re.compile("[\u0000-\u001f\u007f]"), " "),
]
_WS_RE = re.compile(r"\s+")
_REFLOW_RULES: List[Tuple[re.Pattern, object]] = [
    (re.compile(r"\s+([,.;:!?])"), r"\1"),
    (re.compile(r"([(\[{])\s+"), r"\1"),
    (re.compile(r"\s+([)\]}])"), r"\1"),
    (re.compile("([\u2019'])\\s+([a-z])"), r"\1\2"),
    # spaced digit runs "1 2 3" and spaced thousands "1 000"
    (re.compile(r"\b(?:\d\s+){2,}\d\b"), lambda m: _WS_RE.sub("", m.group(0))),
    (re.compile(r"\b(\d)\s+(\d{3,})\b"), r"\1\2"),
    # hyphenated line-break splits
    (re.compile(r"-\s+([a-z])", re.IGNORECASE), r"-\1"),
    # doubled initials: "T The" -> "The", "bbook" -> "book"
    (re.compile(r"\b([A-Za-z])\s+(\1[A-Za-z]{2,})\b"), r"\2"),
    (re.compile(r"\b([bcdefghjklmnpqrtvwxyz])\1([a-z]{3,})\b"), r"\1\2"),
    # single-letter run-ons
    (re.compile(r"\b([A-Z])\s+([A-Z]{2,})\b"), r"\1\2"),
    (re.compile(r"\b([a-z]{3,})\s+([a-z])\b"), r"\1\2"),
    (re.compile(r"\b([b-hj-z])\s+([a-z]{2,})\b"), r"\1\2"),
]


@dataclass
class Block:
    tag: str
    text: str


@dataclass
class NormalizedHtml:
    html: str
    blocks: List[Block] = field(default_factory=list)
    cover_src: Optional[str] = None
    structured: bool = True


def remove_watermark(markup: str) -> str:
    return _WATERMARK_LINK_RE.sub("", markup or "")


def _reflow_once(text: str) -> str:
    for pattern, repl in _UNICODE_RULES:
        text = pattern.sub(repl, text)
    text = _WS_RE.sub(" ", text).strip()
    for pattern, repl in _REFLOW_RULES:
        text = pattern.sub(repl, text)
    return _WS_RE.sub(" ", text).strip()


def normalize_block_text(text: str) -> str:
    """
    Apply the reflow corrections until nothing changes.

    Every rule either removes characters or leaves the text alone, so the loop
    terminates, and running it twice gives the same result as running it once.
    """
    current = text or ""
    while True:
        updated = _reflow_once(current)
        if updated == current:
            return updated
        current = updated


def infer_block_tag(class_name: str) -> str:
    class_name = (class_name or "").lower()
    if not class_name:
        return "p"
    match = _HEADING_LEVEL_RE.search(class_name)
    if match:
        return f"h{match.group(1)}"
    for level in range(1, 5):
        if f"heading-{level}" in class_name:
            return f"h{level}"
    if _HEADING_RE.search(class_name):
        return "h2"
    return "p"


def is_droppable(text: str) -> bool:
    if not text:
        return True
    if not any(ch.isalnum() for ch in text):
        return True
    return bool(_WATERMARK_TEXT_RE.search(text))


class StructuredHtmlNormalizer:
    structured = True

    def __init__(self, parser: str = "html.parser"):
        # fails with FeatureNotFound when the tree builder is not installed
        BeautifulSoup("", parser)
        self.parser = parser

    def normalize(self, raw_html: str) -> NormalizedHtml:
        soup = BeautifulSoup(remove_watermark(raw_html), self.parser)

        for el in soup.find_all(["script", "style", "noscript"]):
            el.decompose()
        for a in soup.find_all("a", href=True):
            if _WATERMARK_HOST in str(a.get("href", "")).lower():
                a.decompose()

        cover_src = None
        for img in soup.find_all("img"):
            src = img.get("src")
            if isinstance(src, str) and src.startswith("data:image/"):
                cover_src = src
                break

        blocks: List[Block] = []
        for el in soup.find_all(BLOCK_TAGS):
            if el.find_parent(BLOCK_TAGS) is not None:
                continue
            if el.name == "p":
                tag = infer_block_tag(" ".join(el.get("class") or []))
            else:
                tag = el.name
            text = normalize_block_text(extract_block_text(el))
            if is_droppable(text):
                continue
            blocks.append(Block(tag=tag, text=text))

        return NormalizedHtml(
            html=self._render(blocks, cover_src),
            blocks=blocks,
            cover_src=cover_src,
            structured=True,
        )

    def _render(self, blocks: List[Block], cover_src: Optional[str]) -> str:
        out = BeautifulSoup(_OUTPUT_SHELL, "html.parser")
        body = out.body
        if cover_src:
            body.append(out.new_tag("img", src=cover_src, alt="Cover"))
        for block in blocks:
            node = out.new_tag(block.tag)
            node.string = block.text
            body.append(node)
        return remove_watermark(str(out)).strip()


def extract_block_text(el: Tag) -> str:
    """
    Rebuild a block's text from its inline runs.

    A run that starts with whitespace, a whitespace-only run, or a <br> marks a word
    boundary. Runs without whitespace between them are joined directly, which keeps
    words that the converter split across several spans intact.
    """
    out = ""
    for node in el.contents:
        if isinstance(node, Comment):
            continue
        if isinstance(node, NavigableString):
            raw = str(node)
        elif isinstance(node, Tag):
            raw = " " if node.name == "br" else node.get_text()
        else:
            continue
        if not raw:
            continue

        if not raw.strip():
            if out and not out.endswith(" "):
                out += " "
            continue

        stripped = raw.lstrip()
        if raw[0].isspace() and out and not out[-1].isspace():
            out += " "
        out += stripped
    return out or el.get_text()


_SCRIPT_RE = re.compile(r"<script\b[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_NOSCRIPT_RE = re.compile(r"<noscript\b[^>]*>[\s\S]*?</noscript>", re.IGNORECASE)
_STYLE_ATTR_RE = re.compile(r"""\sstyle\s*=\s*(".*?"|'.*?'|[^\s>]+)""", re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r"""\sclass\s*=\s*(".*?"|'.*?'|[^\s>]+)""", re.IGNORECASE)


class RegexHtmlNormalizer:
    """Degraded cleanup: strips scripts, styles and presentational attributes only."""

    structured = False

    def normalize(self, raw_html: str) -> NormalizedHtml:
        out = remove_watermark(raw_html)
        for pattern in (_SCRIPT_RE, _STYLE_RE, _NOSCRIPT_RE, _STYLE_ATTR_RE, _CLASS_ATTR_RE):
            out = pattern.sub("", out)
        out = _WS_RE.sub(" ", out).strip()
        return NormalizedHtml(html=out, blocks=[], cover_src=None, structured=False)


def build_normalizer(strategy: str = "structured", parser: str = "html.parser"):
    if strategy == "regex":
        return RegexHtmlNormalizer()
    if strategy != "structured":
        raise ValueError(f"Unknown html normalizer strategy: {strategy!r}")
    try:
        return StructuredHtmlNormalizer(parser)
    except FeatureNotFound:
        logger.warning(
            "HTML parser backend %r is not installed; using regex html cleanup (no block reconstruction)",
            parser,
        )
        return RegexHtmlNormalizer()
