"""Centralized configuration — all env vars in one place."""

import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # EODHD market data
        self.eodhd_api_key: str | None = os.getenv("EODHD_API_KEY")
        self.eodhd_base_url: str = os.getenv("EODHD_BASE_URL", "https://eodhd.com/api")
        self.eodhd_timeout_seconds: float = float(os.getenv("EODHD_TIMEOUT_SECONDS", "10"))

        # OpenAI
        self.openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
        self.openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.openai_timeout_seconds: float = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30"))

        # Cache / rate limiter housekeeping
        self.cleanup_interval_seconds: float = float(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))
        # Only enable behind a proxy that overwrites X-Forwarded-For
        self.trust_forwarded_for: bool = _env_bool("TRUST_FORWARDED_FOR")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return list of missing env vars for upstream-backed features."""
        required = {"EODHD_API_KEY": self.eodhd_api_key, "OPENAI_API_KEY": self.openai_api_key}
        return [var for var, value in required.items() if not value]


settings = Settings()
