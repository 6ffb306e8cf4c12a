"""
Application configuration using pydantic-settings.
All settings read from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Central configuration for the carrier notification review service."""

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "carrier-notification-review"
    APP_VERSION: str = "0.1.0"
    PIPELINE_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./shipments.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_ECHO: bool = False

    # ── Upload ───────────────────────────────────────────────
    MAX_UPLOAD_SIZE_MB: int = 50
    ALLOWED_MIME_TYPES: str = "application/pdf,application/octet-stream"
    UPLOAD_TIMEOUT_SECONDS: int = 180

    # ── Text Recovery ────────────────────────────────────────
    ENABLE_EMBEDDED_TEXT: bool = True
    ENABLE_LAYOUT_TEXT: bool = True
    ENABLE_OCR: bool = True
    RENDER_DPI: int = 300
    POPPLER_PATH: Optional[str] = None
    TESSERACT_CMD: str = "tesseract"
    OCR_LANG: str = "eng+deu"
    OCR_PSM: int = 4
    OCR_OEM: int = 1
    OCR_BINARIZE_THRESHOLD: float = 0.60

    # ── Extraction Cache ─────────────────────────────────────
    ENABLE_EXTRACTION_CACHE: bool = True

    # ── Reconciliation (external structured extraction) ─────
    ENABLE_RECONCILIATION: bool = False
    LLM_API_KEY: Optional[str] = None
    LLM_API_URL: str = "https://api.openai.com/v1/chat/completions"
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: int = 90
    RECONCILIATION_MAX_CHARS: int = 120_000

    # ── Observability ────────────────────────────────────────
    SENTRY_DSN: Optional[str] = None
    PROMETHEUS_ENABLED: bool = True

    # ── Security ─────────────────────────────────────────────
    API_KEY: Optional[str] = None
    CORS_ORIGINS: str = "*"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }

    @property
    def reconciliation_enabled(self) -> bool:
        return self.ENABLE_RECONCILIATION and bool(self.LLM_API_KEY)


# Singleton instance
settings = Settings()
