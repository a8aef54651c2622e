"""Application configuration with environment variable support."""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Priority: ENV > .env.local > .env > defaults
    .env.local is gitignored for local overrides
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Service configuration
    PROJECT_NAME: str = "VP Context"
    DATA_DIR: str = "."  # Directory holding .vp-context/ state
    DEBUG: bool = False
    HOST: str = "localhost"
    PORT: int = 3457
    LOG_LEVEL: str = "INFO"
    LOG_TRAFFIC: bool = False  # Per-message bus and sampler logs in debug mode

    # Tutoring app API (OCR / transcription / answers)
    BASE_URL_CANDIDATES: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://localhost:3000",
    ]
    HTTP_TIMEOUT_SECONDS: float = 60.0

    # Context buffer
    MAX_CONTEXT_CHARS: int = 20000

    # Capture pipeline
    MIN_SELECTION_PX: int = 8
    SELECTION_TIMEOUT_SECONDS: float = 60.0
    OCR_SAMPLE_INTERVAL_MS: int = 2000
    RECORDER_TIMESLICE_MS: int = 1000

    # Storage
    SAVE_RECORDINGS: bool = True
    MAX_ARTIFACT_AGE_HOURS: int = 24

    # Page bridge
    MAX_CONNECTIONS: int = 100
    WS_RECEIVE_TIMEOUT: int = 300       # Max wait for any message (seconds)


# Global settings instance
settings = Settings()
