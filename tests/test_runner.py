"""Tests for candidate selection and batch runs."""
from datetime import datetime, timedelta, timezone

from pdfpipe.errors import ConversionServiceError
from pdfpipe.runner import run_batch, select_candidates


def _ago(minutes: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


class TestSelectCandidates:
    async def test_oldest_entry_documents_first(self, sessionmaker, add_document):
        newest = await add_document(status="uploaded", created_at=_ago(1))
        oldest = await add_document(status="failed", created_at=_ago(30))
        middle = await add_document(status="pending", created_at=_ago(10))
        await add_document(status="completed", created_at=_ago(60))
        await add_document(status="processing:html_to_md", created_at=_ago(60))

        assert await select_candidates(sessionmaker, limit=10) == [oldest, middle, newest]
        assert await select_candidates(sessionmaker, limit=2) == [oldest, middle]

    async def test_explicit_document_id(self, sessionmaker):
        assert await select_candidates(sessionmaker, limit=10, document_id="abc") == ["abc"]


class TestRunBatch:
    async def test_failures_do_not_stop_the_batch(
        self, make_router, sessionmaker, add_document, load_document, converter, storage
    ):
        storage.blobs["uploads/bad.pdf"] = b"%PDF broken"
        converter.fail = lambda source, src, dst: (
            ConversionServiceError("Conversion service error", 422, "unsupported") if "bad.pdf" in str(source) else None
        )
        bad = await add_document(source_key="uploads/bad.pdf", created_at=_ago(20))
        good = await add_document(created_at=_ago(10))

        report = await run_batch(make_router(), sessionmaker, limit=10)

        assert report.completed == [good]
        assert [doc_id for doc_id, _ in report.failed] == [bad]
        assert "unsupported" in report.failed[0][1]
        assert report.processed == 2
        assert (await load_document(good)).status == "completed"
        bad_doc = await load_document(bad)
        assert bad_doc.status == "failed"
        assert bad_doc.failed_stage == "processing:pdf_to_html"

    async def test_empty_batch(self, make_router, sessionmaker):
        report = await run_batch(make_router(), sessionmaker, limit=10)
        assert report.processed == 0

    async def test_unknown_document_id_is_reported(self, make_router, sessionmaker):
        report = await run_batch(make_router(), sessionmaker, document_id="missing")
        assert [doc_id for doc_id, _ in report.failed] == ["missing"]
