# pdfpipe/runner.py
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from pdfpipe.config import Settings
from pdfpipe.conversion import ConversionClient
from pdfpipe.db import close_engine, create_engine, create_sessionmaker, init_models
from pdfpipe.errors import ConfigurationError, PipelineStalled
from pdfpipe.html_cleanup import build_normalizer
from pdfpipe.models import Document
from pdfpipe.pipeline import PipelineOptions, PipelineRouter, StepResult
from pdfpipe.stages import ENTRY_STATUSES
from pdfpipe.storage import build_storage

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


async def drive_document(router: PipelineRouter, document_id, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> StepResult:
    """
    Step a document until it completes or another worker owns it.

    Raises PipelineStalled if it is still not done after max_iterations steps.
    Stage errors propagate (the router has already recorded them on the document).
    """
    last: Optional[StepResult] = None
    for _ in range(max_iterations):
        last = await router.step(document_id)
        if last.done or last.skipped:
            return last
    raise PipelineStalled(str(document_id), max_iterations, last.status.value if last else None)


async def select_candidates(
    sessionmaker: async_sessionmaker, limit: int, document_id: Optional[str] = None
) -> List[str]:
    if document_id:
        return [str(document_id)]
    async with sessionmaker() as session:
        rows = await session.execute(
            select(Document.id)
            .where(Document.status.in_([s.value for s in ENTRY_STATUSES]))
            .order_by(Document.created_at)
            .limit(limit)
        )
        return [str(doc_id) for doc_id in rows.scalars()]


@dataclass
class BatchReport:
    completed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.completed) + len(self.skipped) + len(self.failed)


async def run_batch(
    router: PipelineRouter,
    sessionmaker: async_sessionmaker,
    *,
    limit: int = 10,
    document_id: Optional[str] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> BatchReport:
    """
    Drive each candidate document to completion, one at a time.

    A failing document is logged and the batch moves on; its failure is already on
    the document row for the next run to retry.
    """
    report = BatchReport()
    candidates = await select_candidates(sessionmaker, limit, document_id)
    if not candidates:
        logger.info("No documents to process")
        return report

    logger.info("Processing %d document(s)", len(candidates))
    for doc_id in candidates:
        try:
            result = await drive_document(router, doc_id, max_iterations)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("Document %s failed: %s", doc_id, e)
            report.failed.append((doc_id, str(e)))
            continue
        if result.skipped:
            report.skipped.append(doc_id)
        else:
            report.completed.append(doc_id)
            logger.info("Document %s completed", doc_id)

    logger.info(
        "Batch finished: completed=%d skipped=%d failed=%d",
        len(report.completed), len(report.skipped), len(report.failed),
    )
    return report


@dataclass
class Runtime:
    router: PipelineRouter
    sessionmaker: async_sessionmaker


@asynccontextmanager
async def open_runtime(settings: Settings, create_tables: bool = False, **option_overrides) -> AsyncIterator[Runtime]:
    """
    Wire up engine, http client, storage, converter and normalizer for one run and
    tear them down afterwards. Configuration problems surface before any document is touched.
    """
    options = PipelineOptions.from_settings(settings, **option_overrides)
    storage = build_storage(settings)
    normalizer = build_normalizer(settings.html_normalizer, settings.html_parser)

    engine = create_engine(settings.database_url)
    try:
        if create_tables:
            await init_models(engine)
        async with httpx.AsyncClient(follow_redirects=True) as http:
            converter = ConversionClient(
                http,
                settings.convert_api_secret,
                settings.convert_api_base,
                timeout=settings.convert_timeout,
                retries=settings.convert_retries,
                max_bytes=settings.convert_max_bytes,
                temp_dir=settings.temp_dir,
            )
            sessionmaker = create_sessionmaker(engine)
            router = PipelineRouter(
                sessionmaker,
                storage,
                converter,
                normalizer,
                http,
                options=options,
            )
            yield Runtime(router=router, sessionmaker=sessionmaker)
    finally:
        await close_engine(engine)
