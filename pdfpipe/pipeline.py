# pdfpipe/pipeline.py
"""
Stage router for the document pipeline.

    uploaded | pending | failed
        -> processing:pdf_to_html      (presign source, convert pdf -> html, store raw html)
        -> processing:cleanup_html     (normalize html, store clean html)
        -> processing:html_to_md       (convert html -> md, byte-chunk, replace markdown chunks)
        -> processing:extract_pdf_text (download source, text layer per page, store full text, replace text chunks)
        -> completed

Each call to PipelineRouter.step() executes at most one stage:
 - entry statuses are claimed with a compare-and-swap update; losing the claim is a no-op
 - the stage's work runs outside any transaction (network calls, parsing)
 - its outputs, chunk replacement and the move to the next status are committed in one
   transaction guarded by a second compare-and-swap on the stage status
 - on error the document is marked failed with the message and the error is re-raised

The compare-and-swap updates are the only concurrency control; no locks are held while
a stage runs.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from pdfpipe import metrics
from pdfpipe.chunking import chunk_bytes, validate_chunk_params
from pdfpipe.config import Settings
from pdfpipe.conversion import ConversionClient
from pdfpipe.downloads import fetch_bounded
from pdfpipe.errors import DocumentNotFound, InvalidChunkParams, PipelineError
from pdfpipe.models import Document, MarkdownChunk, TextChunk
from pdfpipe.stages import (
    ENTRY_STATUSES,
    FIRST_STAGE,
    PROCESSING_STATUSES,
    DocumentStatus,
    RetryPolicy,
    entry_stage,
    next_status,
)
from pdfpipe.storage import BlobStorage
from pdfpipe.text_layer import PypdfTextLayerParser, TextLayerParser, extract_text_chunks

logger = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 2000


@dataclass
class PipelineOptions:
    chunk_size: int = 1600
    chunk_overlap: int = 200
    markdown_chunk_bytes: int = 200_000
    markdown_inline_max_bytes: int = 200_000
    markdown_preview_chars: int = 2000
    presign_expiry_seconds: int = 900
    download_timeout: float = 60.0
    download_max_bytes: int = 30 * 1024 * 1024
    temp_dir: str = ".temp"
    retry_policy: RetryPolicy = RetryPolicy.RESTART

    def __post_init__(self):
        # chunking params are checked once, when options are built
        validate_chunk_params(self.chunk_size, self.chunk_overlap)
        if self.markdown_chunk_bytes <= 0:
            raise InvalidChunkParams(f"markdown chunk bytes ({self.markdown_chunk_bytes}) must be > 0.")
        self.retry_policy = RetryPolicy(self.retry_policy)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "PipelineOptions":
        values = dict(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            markdown_chunk_bytes=settings.markdown_chunk_bytes,
            markdown_inline_max_bytes=settings.markdown_inline_max_bytes,
            markdown_preview_chars=settings.markdown_preview_chars,
            presign_expiry_seconds=settings.presign_expiry_seconds,
            download_timeout=settings.download_timeout,
            download_max_bytes=settings.download_max_bytes,
            temp_dir=settings.temp_dir,
            retry_policy=RetryPolicy(settings.pipeline_retry_policy),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class StepResult:
    document_id: str
    status: DocumentStatus
    done: bool = False
    skipped: bool = False
    stage: Optional[DocumentStatus] = None


@dataclass
class _DocumentView:
    """Detached copy of the fields a stage needs; no session is held while a stage runs."""

    id: uuid.UUID
    filename: str
    source_key: str
    raw_html_key: Optional[str]
    clean_html_key: Optional[str]
    failed_stage: Optional[str]

    @classmethod
    def of(cls, doc: Document) -> "_DocumentView":
        return cls(
            id=doc.id,
            filename=doc.filename,
            source_key=doc.source_key,
            raw_html_key=doc.raw_html_key,
            clean_html_key=doc.clean_html_key,
            failed_stage=doc.failed_stage,
        )


@dataclass
class _StageOutput:
    values: Dict[str, Any] = field(default_factory=dict)
    markdown_chunks: Optional[List[Dict[str, Any]]] = None
    text_chunks: Optional[List[Dict[str, Any]]] = None


class _ClaimLost(Exception):
    pass


class PipelineRouter:
    def __init__(
        self,
        sessionmaker: async_sessionmaker,
        storage: BlobStorage,
        converter: ConversionClient,
        normalizer,
        http: httpx.AsyncClient,
        text_parser: Optional[TextLayerParser] = None,
        options: Optional[PipelineOptions] = None,
    ):
        self.sessionmaker = sessionmaker
        self.storage = storage
        self.converter = converter
        self.normalizer = normalizer
        self.http = http
        self.text_parser = text_parser or PypdfTextLayerParser()
        self.options = options or PipelineOptions()

        self._handlers = {
            DocumentStatus.PDF_TO_HTML: self._pdf_to_html,
            DocumentStatus.CLEANUP_HTML: self._cleanup_html,
            DocumentStatus.HTML_TO_MD: self._html_to_md,
            DocumentStatus.EXTRACT_PDF_TEXT: self._extract_pdf_text,
        }
        missing = PROCESSING_STATUSES - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for stages: {sorted(s.value for s in missing)}")

    # ---- public API ----

    async def step(self, document_id) -> StepResult:
        doc_uuid = _as_uuid(document_id)
        doc_key = str(doc_uuid)

        async with self.sessionmaker() as session:
            doc = await session.get(Document, doc_uuid)
            if doc is None:
                raise DocumentNotFound(doc_key)
            status = DocumentStatus.parse(doc.status, doc_key)
            view = _DocumentView.of(doc)

        if status is DocumentStatus.COMPLETED:
            return StepResult(document_id=doc_key, status=status, done=True)

        if status in ENTRY_STATUSES:
            stage = self._entry_stage(view, status)
            if not await self._claim(doc_uuid, stage):
                metrics.claims_skipped_total.inc()
                logger.info("Document %s already claimed by another worker; skipping", doc_key)
                return StepResult(document_id=doc_key, status=status, skipped=True)
            logger.info("Claimed document %s from %s -> %s", doc_key, status.value, stage.value)
            status = stage

        return await self._run_stage(view, status)

    async def reclaim_stale(self, older_than: timedelta) -> List[str]:
        """
        Reset documents stuck in a processing status (worker crashed mid-stage) to pending.

        Only documents whose updated_at is older than the threshold are touched, and each
        reset is a compare-and-swap so a stage that commits meanwhile wins.
        """
        cutoff = _utcnow() - older_than
        processing = [s.value for s in PROCESSING_STATUSES]
        async with self.sessionmaker() as session:
            rows = (
                await session.execute(
                    select(Document.id, Document.status).where(
                        Document.status.in_(processing), Document.updated_at < cutoff
                    )
                )
            ).all()

        reclaimed: List[str] = []
        for doc_id, status in rows:
            async with self.sessionmaker() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Document)
                        .where(Document.id == doc_id, Document.status == status, Document.updated_at < cutoff)
                        .values(
                            status=DocumentStatus.PENDING.value,
                            failed_stage=status,
                            error=f"Stage {status} did not finish; reclaimed for retry",
                            updated_at=_utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
            if result.rowcount == 1:
                reclaimed.append(str(doc_id))
                metrics.documents_reclaimed_total.inc()
                logger.warning("Reclaimed stale document %s (was %s)", doc_id, status)
        return reclaimed

    # ---- claim / advance / fail ----

    def _entry_stage(self, view: _DocumentView, status: DocumentStatus) -> DocumentStatus:
        if status is not DocumentStatus.FAILED and not view.failed_stage:
            return FIRST_STAGE
        stage = entry_stage(view.failed_stage, self.options.retry_policy)
        # resuming needs the artifacts of the earlier stages
        if stage is DocumentStatus.CLEANUP_HTML and not view.raw_html_key:
            return FIRST_STAGE
        if stage is DocumentStatus.HTML_TO_MD and not view.clean_html_key:
            return FIRST_STAGE
        return stage

    async def _claim(self, doc_id: uuid.UUID, stage: DocumentStatus) -> bool:
        async with self.sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Document)
                    .where(Document.id == doc_id, Document.status.in_([s.value for s in ENTRY_STATUSES]))
                    .values(status=stage.value, error=None, updated_at=_utcnow())
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount == 1

    async def _run_stage(self, view: _DocumentView, stage: DocumentStatus) -> StepResult:
        doc_key = str(view.id)
        target = next_status(stage)
        handler = self._handlers[stage]
        logger.info("Running %s for document %s", stage.value, doc_key)

        try:
            output = await handler(view)
            await self._advance(view.id, stage, target, output)
        except _ClaimLost:
            metrics.claims_skipped_total.inc()
            logger.warning("Document %s left %s while the stage ran; discarding its output", doc_key, stage.value)
            return StepResult(document_id=doc_key, status=stage, skipped=True, stage=stage)
        except Exception as e:
            metrics.stage_failures_total.labels(stage=stage.value).inc()
            logger.exception("Stage %s failed for document %s", stage.value, doc_key)
            await self._record_failure(view.id, stage, e)
            raise

        metrics.stage_runs_total.labels(stage=stage.value).inc()
        if target is DocumentStatus.COMPLETED:
            metrics.documents_completed_total.inc()
        logger.info("Document %s advanced %s -> %s", doc_key, stage.value, target.value)
        return StepResult(
            document_id=doc_key,
            status=target,
            done=target is DocumentStatus.COMPLETED,
            stage=stage,
        )

    async def _advance(
        self, doc_id: uuid.UUID, stage: DocumentStatus, target: DocumentStatus, output: _StageOutput
    ) -> None:
        values = dict(output.values)
        values.update(status=target.value, error=None, failed_stage=None, updated_at=_utcnow())

        async with self.sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Document)
                    .where(Document.id == doc_id, Document.status == stage.value)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise _ClaimLost()

                if output.markdown_chunks is not None:
                    await session.execute(delete(MarkdownChunk).where(MarkdownChunk.document_id == doc_id))
                    if output.markdown_chunks:
                        await session.execute(insert(MarkdownChunk), output.markdown_chunks)

                if output.text_chunks is not None:
                    await session.execute(delete(TextChunk).where(TextChunk.document_id == doc_id))
                    if output.text_chunks:
                        await session.execute(insert(TextChunk), output.text_chunks)

    async def _record_failure(self, doc_id: uuid.UUID, stage: DocumentStatus, exc: BaseException) -> None:
        message = _error_message(exc)
        try:
            async with self.sessionmaker() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Document)
                        .where(Document.id == doc_id, Document.status == stage.value)
                        .values(
                            status=DocumentStatus.FAILED.value,
                            error=message,
                            failed_stage=stage.value,
                            updated_at=_utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
        except Exception:
            logger.exception("Could not record failure of %s for document %s", stage.value, doc_id)
            return
        if result.rowcount != 1:
            logger.warning("Failure of %s for document %s not recorded: status already moved on", stage.value, doc_id)

    # ---- stages ----

    async def _pdf_to_html(self, doc: _DocumentView) -> _StageOutput:
        source_url = await self.storage.presigned_url(doc.source_key, self.options.presign_expiry_seconds)
        html_bytes = await self.converter.convert_and_download(source_url, "pdf", "html")
        key = artifact_key(doc.id, "converted.html")
        await self.storage.put(html_bytes, key, "text/html; charset=utf-8")
        logger.info("Converted document %s to html (%d bytes)", doc.id, len(html_bytes))
        return _StageOutput(values={"raw_html_key": key, "html_converted_at": _utcnow()})

    async def _cleanup_html(self, doc: _DocumentView) -> _StageOutput:
        if not doc.raw_html_key:
            raise PipelineError(f"Document {doc.id} has no converted html to clean")
        raw = await self.storage.get(doc.raw_html_key)
        result = await asyncio.to_thread(self.normalizer.normalize, raw.decode("utf-8", errors="replace"))
        if result.structured:
            logger.info("Cleaned html for document %s: %d blocks", doc.id, len(result.blocks))
        else:
            logger.warning("Cleaned html for document %s with regex fallback (no block reconstruction)", doc.id)
        key = artifact_key(doc.id, "clean.html")
        await self.storage.put(result.html.encode("utf-8"), key, "text/html; charset=utf-8")
        return _StageOutput(values={"clean_html_key": key})

    async def _html_to_md(self, doc: _DocumentView) -> _StageOutput:
        if not doc.clean_html_key:
            raise PipelineError(f"Document {doc.id} has no cleaned html to convert")
        html = await self.storage.get(doc.clean_html_key)
        md_bytes = await self.converter.convert_and_download(html, "html", "md", filename=f"{doc.id}.html")
        markdown = md_bytes.decode("utf-8", errors="replace")

        pieces = chunk_bytes(markdown, self.options.markdown_chunk_bytes)
        key = artifact_key(doc.id, "document.md")
        await self.storage.put(markdown.encode("utf-8"), key, "text/markdown; charset=utf-8")

        inline = markdown if len(markdown.encode("utf-8")) <= self.options.markdown_inline_max_bytes else None
        rows = [
            {"document_id": doc.id, "chunk_index": i, "text": text, "char_count": len(text)}
            for i, text in enumerate(pieces)
        ]
        logger.info("Document %s markdown: %d chars in %d chunks", doc.id, len(markdown), len(rows))
        return _StageOutput(
            values={
                "markdown_key": key,
                "markdown_text": inline,
                "markdown_preview": markdown[: self.options.markdown_preview_chars],
                "markdown_char_count": len(markdown),
                "markdown_chunk_count": len(rows),
                "markdown_converted_at": _utcnow(),
            },
            markdown_chunks=rows,
        )

    async def _extract_pdf_text(self, doc: _DocumentView) -> _StageOutput:
        source_url = await self.storage.presigned_url(doc.source_key, self.options.presign_expiry_seconds)
        pdf_bytes = await fetch_bounded(
            self.http,
            source_url,
            timeout=self.options.download_timeout,
            max_bytes=self.options.download_max_bytes,
            temp_dir=self.options.temp_dir,
        )
        extraction = await asyncio.to_thread(
            extract_text_chunks,
            pdf_bytes,
            self.text_parser,
            self.options.chunk_size,
            self.options.chunk_overlap,
        )
        text_key = artifact_key(doc.id, "document.txt")
        await self.storage.put(extraction.text.encode("utf-8"), text_key, "text/plain; charset=utf-8")

        rows = [
            {
                "document_id": doc.id,
                "page_number": c.page_number,
                "chunk_index": c.chunk_index,
                "text": c.text,
                "char_count": c.char_count,
            }
            for c in extraction.chunks
        ]
        logger.info("Document %s text layer: pages=%d chunks=%d", doc.id, extraction.page_count, len(rows))
        return _StageOutput(
            values={
                "page_count": extraction.page_count,
                "text_key": text_key,
                "text_char_count": extraction.char_count,
                "text_chunk_count": len(rows),
                "text_extracted_at": _utcnow(),
            },
            text_chunks=rows,
        )


def artifact_key(doc_id, name: str) -> str:
    return f"documents/{doc_id}/{name}"


def _as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise DocumentNotFound(str(value)) from None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_message(exc: BaseException) -> str:
    message = str(exc) or exc.__class__.__name__
    return message[:ERROR_MESSAGE_LIMIT]
