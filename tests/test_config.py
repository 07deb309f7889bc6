"""Tests for environment-driven settings."""
import pytest
from pydantic import ValidationError

from pdfpipe.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.chunk_size == 1600
        assert s.chunk_overlap == 200
        assert s.batch_limit == 10
        assert s.pipeline_retry_policy == "restart"
        assert s.presign_expiry_seconds == 900

    def test_choices_are_normalized(self):
        s = Settings(_env_file=None, html_normalizer=" REGEX ", pipeline_retry_policy="Resume", log_level="debug")
        assert s.html_normalizer == "regex"
        assert s.pipeline_retry_policy == "resume"
        assert s.log_level == "DEBUG"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "900")
        monkeypatch.setenv("CONVERT_API_SECRET", "from-env")
        s = Settings(_env_file=None)
        assert s.chunk_size == 900
        assert s.convert_api_secret == "from-env"

    @pytest.mark.parametrize(
        "field,value",
        [("chunk_size", "0"), ("markdown_chunk_bytes", -1), ("html_normalizer", "lxml"), ("pipeline_retry_policy", "never")],
    )
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_storage_configured(self):
        assert not Settings(_env_file=None, minio_endpoint=None).storage_configured
        s = Settings(_env_file=None, minio_endpoint="minio:9000", minio_access_key="a", minio_secret_key="b")
        assert s.storage_configured
