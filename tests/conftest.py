"""Shared fixtures: a throwaway sqlite database, fake collaborators and a router factory."""
import uuid

import httpx
import pytest

from pdfpipe.db import close_engine, create_engine, create_sessionmaker, init_models
from pdfpipe.html_cleanup import StructuredHtmlNormalizer
from pdfpipe.models import Document
from pdfpipe.pipeline import PipelineOptions, PipelineRouter
from tests.fakes import BLOB_HOST, CONVERTED_HTML, MARKDOWN, PDF_BYTES, FakeConverter, FakeParser, FakeStorage


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    await init_models(engine)
    yield engine
    await close_engine(engine)


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def storage():
    storage = FakeStorage()
    storage.blobs["uploads/book.pdf"] = PDF_BYTES
    return storage


@pytest.fixture
def converter():
    return FakeConverter(html=CONVERTED_HTML, markdown=MARKDOWN)


@pytest.fixture
def parser():
    return FakeParser(["Hello world.", "", "Foo bar baz."])


@pytest.fixture
async def http(storage):
    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.path.split("/pdfs/", 1)[-1]
        if request.method == "GET" and key in storage.blobs:
            return httpx.Response(200, content=storage.blobs[key])
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BLOB_HOST) as client:
        yield client


@pytest.fixture
def make_router(sessionmaker, storage, converter, parser, http, tmp_path):
    def _make(**options) -> PipelineRouter:
        options.setdefault("temp_dir", str(tmp_path / "scratch"))
        return PipelineRouter(
            sessionmaker,
            storage,
            converter,
            StructuredHtmlNormalizer(),
            http,
            text_parser=parser,
            options=PipelineOptions(**options),
        )

    return _make


@pytest.fixture
def add_document(sessionmaker):
    async def _add(**fields) -> str:
        fields.setdefault("owner_id", uuid.uuid4())
        fields.setdefault("filename", "book.pdf")
        fields.setdefault("source_key", "uploads/book.pdf")
        doc = Document(**fields)
        async with sessionmaker() as session:
            session.add(doc)
            await session.commit()
        return str(doc.id)

    return _add


@pytest.fixture
def load_document(sessionmaker):
    async def _load(document_id) -> Document:
        async with sessionmaker() as session:
            return await session.get(Document, uuid.UUID(str(document_id)))

    return _load
