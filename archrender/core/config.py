"""
Application configuration.
All settings are loaded from environment variables (or .env) once at startup.
Use env.example as a reference for available variables.
"""
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process-wide settings. Read-only after start: components receive this object
    explicitly instead of reading os.environ on their own.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "development"  # development, production
    # CORS: comma-separated (e.g. http://localhost:3000,https://render.example.com). Empty = default list in main.py.
    cors_origins: str = ""

    # ===========================================
    # GOOGLE GEMINI (generateContent)
    # ===========================================
    gemini_api_key: str = ""  # Get one from https://aistudio.google.com/apikey
    gemini_model: str = "gemini-3-pro-image-preview"
    gemini_api_endpoint: str = "https://generativelanguage.googleapis.com"

    # ===========================================
    # TIMEOUTS & RETRY
    # ===========================================
    generation_timeout_seconds: float = 120.0  # one attempt, image generation is slow
    diagnostics_timeout_seconds: float = 30.0
    # End-to-end guard around /generate; must exceed one attempt plus a retry.
    request_timeout_seconds: float = 300.0
    retry_max_retries: int = 2  # up to 3 attempts total
    retry_backoff_seconds: float = 1.0  # linear: 1s, 2s, ...

    # ===========================================
    # PROXY & HOSTING
    # ===========================================
    https_proxy: str = ""
    http_proxy: str = ""
    # Managed hosting has direct egress: proxy settings are ignored there.
    vercel: str = ""
    vercel_env: str = ""
    managed_hosting: bool = False

    # ===========================================
    # USAGE LOG
    # ===========================================
    usage_log_path: str = "logs/token-usage.log"

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("gemini_api_key", "https_proxy", "http_proxy")
    @classmethod
    def strip_value(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("retry_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_max_retries must be >= 0")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @property
    def is_managed_hosting(self) -> bool:
        return self.managed_hosting or self.vercel.strip() == "1" or bool(self.vercel_env.strip())

    @property
    def proxy_url(self) -> str | None:
        """Forward proxy for outbound calls; always None on managed hosting."""
        if self.is_managed_hosting:
            return None
        return self.https_proxy or self.http_proxy or None

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def generate_url(self) -> str:
        endpoint = self.gemini_api_endpoint.rstrip("/")
        return f"{endpoint}/v1beta/models/{self.gemini_model}:generateContent"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Single Settings instance for the process."""
    return Settings()
