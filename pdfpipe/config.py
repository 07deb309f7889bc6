# pdfpipe/config.py
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator

class Settings(BaseSettings):
    # DB
    database_url: str = Field("postgresql+asyncpg://localhost:5432/pdfpipe")

    # MinIO / S3 (source PDFs and generated artifacts)
    minio_endpoint: Optional[str] = Field(None)
    minio_access_key: Optional[str] = Field(None)
    minio_secret_key: Optional[str] = Field(None)
    minio_secure: bool = Field(True)
    minio_region: Optional[str] = Field(None)
    storage_bucket: str = Field("pdfs")
    presign_expiry_seconds: int = Field(900)

    # Conversion service (ConvertAPI compatible)
    convert_api_base: str = Field("https://v2.convertapi.com")
    convert_api_secret: Optional[str] = Field(None)
    convert_timeout: float = Field(120.0)
    convert_retries: int = Field(3)
    convert_max_bytes: int = Field(100 * 1024 * 1024)

    # Source download bounds for text extraction
    download_timeout: float = Field(60.0)
    download_max_bytes: int = Field(30 * 1024 * 1024)
    temp_dir: str = Field(".temp")

    # Chunking
    chunk_size: int = Field(1600)
    chunk_overlap: int = Field(200)
    markdown_chunk_bytes: int = Field(200_000)
    markdown_inline_max_bytes: int = Field(200_000)
    markdown_preview_chars: int = Field(2000)

    # Pipeline
    html_normalizer: str = Field("structured")  # "structured" or "regex"
    html_parser: str = Field("html.parser")  # any BeautifulSoup tree builder
    pipeline_retry_policy: str = Field("restart")  # "restart" or "resume"
    pipeline_max_iterations: int = Field(10)
    batch_limit: int = Field(10)

    # Celery / Redis
    redis_url: str = Field("redis://localhost:6379/0")
    celery_queue: str = Field("pdf_pipeline")

    # Prometheus
    prometheus_enabled: bool = Field(True)
    metrics_port: int = Field(9108)

    log_level: str = Field("INFO")

    # Pydantic v2 config
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # ---- field validators (pydantic v2 style) ----
    @field_validator("html_normalizer", "pipeline_retry_policy", mode="before")
    def _normalize_choice(cls, v):
        if v is None:
            return v
        return str(v).strip().lower()

    @field_validator("log_level", mode="before")
    def _normalize_log_level(cls, v):
        return str(v or "INFO").strip().upper()

    @field_validator("html_normalizer")
    def _validate_normalizer(cls, v):
        if v not in ("structured", "regex"):
            raise ValueError("HTML_NORMALIZER must be 'structured' or 'regex'")
        return v

    @field_validator("pipeline_retry_policy")
    def _validate_retry_policy(cls, v):
        if v not in ("restart", "resume"):
            raise ValueError("PIPELINE_RETRY_POLICY must be 'restart' or 'resume'")
        return v

    @field_validator(
        "chunk_size",
        "markdown_chunk_bytes",
        "pipeline_max_iterations",
        "download_max_bytes",
        "convert_max_bytes",
        mode="before",
    )
    def _validate_positive(cls, v):
        """
        Accepts the env value as string or int and ensures it's a positive int.
        """
        if isinstance(v, str) and v.strip().isdigit():
            v = int(v)
        if not isinstance(v, int) or v <= 0:
            raise ValueError("value must be a positive integer")
        return v

    @property
    def storage_configured(self) -> bool:
        return bool(self.minio_endpoint and self.minio_access_key and self.minio_secret_key)

settings = Settings()
