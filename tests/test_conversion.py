"""Tests for the conversion service client against a mocked transport."""
import json

import httpx
import pytest

from pdfpipe.conversion import ConversionClient
from pdfpipe.errors import ConfigurationError, ConversionServiceError

BASE = "https://convert.test"


def _ok(file_url="https://files.test/out.html", name="out.html"):
    return httpx.Response(200, json={"ConversionCost": 1, "Files": [{"FileName": name, "Url": file_url}]})


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestConversionClient:
    def test_requires_secret(self):
        with pytest.raises(ConfigurationError):
            ConversionClient(None, None, BASE)

    async def test_url_source_is_posted_as_form_field(self, tmp_path):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.host == "convert.test":
                return _ok()
            return httpx.Response(200, content=b"<html>converted</html>")

        async with _client(handler) as http:
            client = ConversionClient(http, "s3cret", BASE, temp_dir=str(tmp_path))
            data = await client.convert_and_download("https://blobs.test/book.pdf?sig=1", "pdf", "html")

        assert data == b"<html>converted</html>"
        post = seen[0]
        assert post.method == "POST"
        assert post.url.path == "/convert/pdf/to/html"
        assert post.url.params["Secret"] == "s3cret"
        assert b"StoreFile=true" in post.content
        assert b"File=https" in post.content
        assert str(seen[1].url) == "https://files.test/out.html"

    async def test_bytes_source_is_uploaded_as_multipart(self, tmp_path):
        seen = []

        def handler(request):
            seen.append(request)
            return _ok(file_url="https://files.test/out.md", name="out.md")

        async with _client(handler) as http:
            client = ConversionClient(http, "s3cret", BASE, temp_dir=str(tmp_path))
            converted = await client.convert(b"<p>hi</p>", "html", "md", filename="doc.html")

        assert converted.url == "https://files.test/out.md"
        assert converted.filename == "out.md"
        assert seen[0].url.path == "/convert/html/to/md"
        assert b'filename="doc.html"' in seen[0].content
        assert b"<p>hi</p>" in seen[0].content

    async def test_retries_server_errors(self, tmp_path):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(502, text="bad gateway")
            return _ok()

        async with _client(handler) as http:
            client = ConversionClient(http, "s3cret", BASE, retries=3, backoff=0, temp_dir=str(tmp_path))
            converted = await client.convert("https://blobs.test/a.pdf", "pdf", "html")

        assert len(attempts) == 3
        assert converted.url == "https://files.test/out.html"

    async def test_retries_transport_errors_then_gives_up(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as http:
            client = ConversionClient(http, "s3cret", BASE, retries=2, backoff=0, temp_dir=str(tmp_path))
            with pytest.raises(ConversionServiceError, match="unreachable"):
                await client.convert("https://blobs.test/a.pdf", "pdf", "html")

    async def test_client_error_includes_truncated_body(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="E" * 1200)

        async with _client(handler) as http:
            client = ConversionClient(http, "s3cret", BASE, backoff=0, temp_dir=str(tmp_path))
            with pytest.raises(ConversionServiceError) as exc_info:
                await client.convert("https://blobs.test/a.pdf", "pdf", "html")

        assert len(calls) == 1
        assert exc_info.value.status_code == 401
        assert exc_info.value.body == "E" * 500

    @pytest.mark.parametrize(
        "payload",
        [{"Files": []}, {"Files": [{"FileName": "x.html"}]}, {"unexpected": True}, []],
    )
    async def test_missing_file_url(self, tmp_path, payload):
        async with _client(lambda request: httpx.Response(200, content=json.dumps(payload))) as http:
            client = ConversionClient(http, "s3cret", BASE, temp_dir=str(tmp_path))
            with pytest.raises(ConversionServiceError, match="missing file Url"):
                await client.convert("https://blobs.test/a.pdf", "pdf", "html")

    async def test_rejects_unknown_formats(self, tmp_path):
        async with _client(lambda request: _ok()) as http:
            client = ConversionClient(http, "s3cret", BASE, temp_dir=str(tmp_path))
            with pytest.raises(ValueError):
                await client.convert("https://blobs.test/a.pdf", "pdf", "docx")
