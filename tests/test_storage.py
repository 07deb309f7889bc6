"""Tests for the MinIO-backed blob storage wrapper."""
from datetime import timedelta

import pytest

from pdfpipe.config import Settings
from pdfpipe.errors import ConfigurationError
from pdfpipe.storage import BlobStorage, build_storage


class StubResponse:
    def __init__(self, data: bytes):
        self.data = data
        self.closed = False
        self.released = False

    def read(self) -> bytes:
        return self.data

    def close(self):
        self.closed = True

    def release_conn(self):
        self.released = True


class StubMinio:
    """Records calls the way the minio client receives them."""

    def __init__(self):
        self.objects = {}
        self.responses = []
        self.put_calls = []
        self.presign_calls = []

    def get_object(self, bucket, key):
        resp = StubResponse(self.objects[(bucket, key)])
        self.responses.append(resp)
        return resp

    def put_object(self, bucket, key, data, length, content_type="application/octet-stream"):
        self.objects[(bucket, key)] = data.read()
        self.put_calls.append((bucket, key, length, content_type))

    def presigned_get_object(self, bucket, key, expires=timedelta(days=7)):
        self.presign_calls.append((bucket, key, expires))
        return f"https://minio.test/{bucket}/{key}?X-Amz-Signature=abc"


@pytest.fixture
def client():
    return StubMinio()


@pytest.fixture
def blob_storage(client):
    return BlobStorage(client, "pdfs", "http://minio.test:9000/")


class TestBlobStorage:
    async def test_get_reads_then_closes_and_releases(self, client, blob_storage):
        client.objects[("pdfs", "documents/1/clean.html")] = b"<p>hi</p>"

        data = await blob_storage.get("documents/1/clean.html")

        assert data == b"<p>hi</p>"
        (resp,) = client.responses
        assert resp.closed is True
        assert resp.released is True

    async def test_put_passes_length_and_content_type(self, client, blob_storage):
        url = await blob_storage.put(b"# Title\n", "documents/1/document.md", "text/markdown; charset=utf-8")

        assert client.put_calls == [("pdfs", "documents/1/document.md", 8, "text/markdown; charset=utf-8")]
        assert client.objects[("pdfs", "documents/1/document.md")] == b"# Title\n"
        assert url == "http://minio.test:9000/pdfs/documents/1/document.md"

    async def test_presigned_url_expiry_is_a_timedelta(self, client, blob_storage):
        url = await blob_storage.presigned_url("uploads/book.pdf", 900)

        assert url.startswith("https://minio.test/pdfs/uploads/book.pdf?")
        (bucket, key, expires), = client.presign_calls
        assert (bucket, key) == ("pdfs", "uploads/book.pdf")
        assert isinstance(expires, timedelta)
        assert expires == timedelta(seconds=900)


class TestBuildStorage:
    def test_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            build_storage(Settings(_env_file=None, minio_endpoint=None))

    def test_builds_bucket_and_public_base(self):
        settings = Settings(
            _env_file=None,
            minio_endpoint="minio:9000",
            minio_access_key="a",
            minio_secret_key="b",
            minio_secure=False,
            storage_bucket="books",
        )

        storage = build_storage(settings)

        assert storage.bucket == "books"
        assert storage.public_base == "http://minio:9000"
