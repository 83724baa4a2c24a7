"""Relay configuration using Pydantic Settings."""

from pathlib import Path
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .timeouts import Timeouts
from .utils import normalize_base_url


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """Relay configuration settings.

    Loads from environment variables and .env file. Built once at startup
    and handed to the app factory; request handlers never read the
    environment themselves.
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 7860
    debug: bool = False
    service_name: str = "llm-agent-groq"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    static_dir: Path = Field(
        default_factory=lambda: PROJECT_ROOT / "public",
        description="Directory holding the browser chat UI build.",
    )

    # OpenAI-compatible chat provider (Groq by default)
    groq_api_key: Optional[str] = None
    openai_base_url: str = "https://api.groq.com/openai/v1"
    default_model: str = "llama-3.1-70b-versatile"

    # Gemini-style provider, reached through the format adapter
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.0-flash"

    # Google Programmable Search
    google_api_key: Optional[str] = None
    google_cse_id: Optional[str] = None
    google_search_url: str = "https://www.googleapis.com/customsearch/v1"

    # AI Pipe (optional). Empty URL means the offline simulation answers.
    aipipe_url: str = ""
    aipipe_token: Optional[str] = None
    aipipe_require_auth: bool = False

    # Outbound calls
    upstream_timeout_seconds: float = Field(default=Timeouts.UPSTREAM_REQUEST, gt=0)
    upstream_max_attempts: int = Field(default=Timeouts.UPSTREAM_MAX_ATTEMPTS, ge=1, le=10)
    upstream_retry_backoff_seconds: float = Field(default=Timeouts.RETRY_BACKOFF, ge=0)
    chat_timeout_seconds: float = Field(default=Timeouts.CHAT_REQUEST, gt=0)
    chat_max_attempts: int = Field(default=Timeouts.CHAT_MAX_ATTEMPTS, ge=1, le=10)

    # Logging
    log_dir: Path = Field(
        default_factory=lambda: PROJECT_ROOT / "logs",
        description="Directory to store relay log files.",
    )
    log_max_bytes: int = Field(
        default=1_048_576,
        description="Maximum log file size before rotation (in bytes).",
    )
    log_retention_days: int = Field(
        default=5,
        ge=0,
        description="Number of days to retain rotated log files.",
    )
    uvicorn_log_level: str = Field(
        default="info",
        description="Log level for uvicorn loggers (e.g., info, warning, error).",
    )

    @field_validator("openai_base_url", "gemini_base_url", mode="before")
    @classmethod
    def normalize_provider_url(cls, value: str) -> str:
        """Strip whitespace and trailing slashes from provider base URLs."""
        return normalize_base_url(value)

    @field_validator("aipipe_url", mode="before")
    @classmethod
    def normalize_aipipe_url(cls, value: Optional[str]) -> str:
        """Treat a blank AI Pipe URL as unset."""
        return (value or "").strip()

    @field_validator("log_dir", "static_dir", mode="before")
    @classmethod
    def normalize_project_path(cls, value: Union[str, Path]) -> Path:
        """Normalize directories relative to the project root.

        Args:
            value: The configured directory.

        Returns:
            An absolute path.
        """
        path = value if isinstance(value, Path) else Path(value)
        if not path.is_absolute():
            return (PROJECT_ROOT / path).resolve()
        return path

    @property
    def chat_completions_url(self) -> str:
        return f"{self.openai_base_url}/chat/completions"

    def gemini_generate_url(self, model: Optional[str] = None) -> str:
        """Return the generateContent endpoint for ``model``."""
        return f"{self.gemini_base_url}/models/{model or self.gemini_model}:generateContent"
