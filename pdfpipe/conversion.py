# pdfpipe/conversion.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from pdfpipe.downloads import fetch_bounded
from pdfpipe.errors import ConfigurationError, ConversionServiceError

logger = logging.getLogger(__name__)

FORMATS = ("pdf", "html", "md")
CONTENT_TYPES = {"pdf": "application/pdf", "html": "text/html", "md": "text/markdown"}


@dataclass
class ConvertedFile:
    url: str
    filename: Optional[str] = None


class ConversionClient:
    """
    Client for a ConvertAPI-style conversion service.

    POST {base}/convert/{from}/to/{to}?Secret=... with a multipart form; the service
    stores the result and answers with a URL that we then download (bounded).
    Transport errors and 5xx responses are retried with exponential backoff; 4xx
    responses are mapped to ConversionServiceError immediately.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        secret: Optional[str],
        base_url: str = "https://v2.convertapi.com",
        *,
        timeout: float = 120.0,
        retries: int = 3,
        backoff: float = 1.0,
        max_bytes: int = 100 * 1024 * 1024,
        temp_dir: str = ".temp",
    ):
        if not secret:
            raise ConfigurationError('Missing "CONVERT_API_SECRET" (conversion service secret).')
        self.http = http
        self.secret = secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(1, retries)
        self.backoff = backoff
        self.max_bytes = max_bytes
        self.temp_dir = temp_dir

    async def convert(
        self,
        source: Union[bytes, str],
        from_format: str,
        to_format: str,
        filename: Optional[str] = None,
    ) -> ConvertedFile:
        """
        Convert `source` (raw bytes, or a URL the service can fetch) and return the
        reference to the converted file.
        """
        if from_format not in FORMATS or to_format not in FORMATS:
            raise ValueError(f"Unsupported conversion {from_format!r} -> {to_format!r}")

        url = f"{self.base_url}/convert/{from_format}/to/{to_format}"
        data = {"StoreFile": "true"}
        files = None
        if isinstance(source, str):
            data["File"] = source
        else:
            name = filename or f"document.{from_format}"
            files = {"File": (name, source, CONTENT_TYPES[from_format])}

        payload = await self._post_with_retry(url, data=data, files=files)
        return _parse_converted_file(payload)

    async def convert_and_download(
        self,
        source: Union[bytes, str],
        from_format: str,
        to_format: str,
        filename: Optional[str] = None,
    ) -> bytes:
        converted = await self.convert(source, from_format, to_format, filename=filename)
        logger.info("Converted %s -> %s (%s)", from_format, to_format, converted.filename or "unnamed")
        return await fetch_bounded(
            self.http,
            converted.url,
            timeout=self.timeout,
            max_bytes=self.max_bytes,
            temp_dir=self.temp_dir,
        )

    async def _post_with_retry(self, url, data, files):
        delay = self.backoff
        for attempt in range(1, self.retries + 1):
            try:
                resp = await self.http.post(
                    url,
                    params={"Secret": self.secret},
                    data=data,
                    files=files,
                    timeout=self.timeout,
                )
            except httpx.TransportError as e:
                if attempt == self.retries:
                    logger.error("Conversion request failed after %s attempts to %s: %s", self.retries, url, e)
                    raise ConversionServiceError(f"Conversion service unreachable: {e}") from e
                logger.warning("Conversion attempt %s failed, retrying in %.1fs: %s", attempt, delay, e)
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if resp.status_code >= 500 and attempt < self.retries:
                logger.warning(
                    "Conversion service returned %s (attempt %s), retrying in %.1fs",
                    resp.status_code, attempt, delay,
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if resp.status_code < 200 or resp.status_code >= 300:
                raise ConversionServiceError(
                    "Conversion service error", status_code=resp.status_code, body=resp.text
                )

            try:
                return resp.json()
            except ValueError as e:
                raise ConversionServiceError(
                    "Conversion service returned non-JSON response", status_code=resp.status_code, body=resp.text
                ) from e


def _parse_converted_file(payload) -> ConvertedFile:
    files = None
    if isinstance(payload, dict):
        files = payload.get("Files") or payload.get("files")
    first = files[0] if isinstance(files, list) and files else None
    if not isinstance(first, dict):
        raise ConversionServiceError("Conversion service response missing file Url")

    file_url = first.get("Url") or first.get("url")
    file_name = first.get("FileName") or first.get("fileName")
    if not file_url or not isinstance(file_url, str):
        raise ConversionServiceError("Conversion service response missing file Url")
    return ConvertedFile(url=file_url, filename=file_name if isinstance(file_name, str) else None)
