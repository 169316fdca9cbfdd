from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    # Upstream bookmarking API
    upstream_base_url: str = "https://api.pinboard.in"
    upstream_timeout: float = 30.0

    # Preview fetcher
    preview_timeout: float = 5.0
    preview_max_bytes: int = 2 * 1024 * 1024
    preview_max_redirects: int = 3
    preview_user_agent: str = (
        "pinboard-bridge/2.0 (+https://github.com/rossshannon/pinboard-bridge)"
    )

    # CORS: comma-separated list; unset allows every origin
    allowed_origins: str | None = None

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100 per 15 minutes"
    rate_limit_preview: str = "30 per minute"

    # Proxies whose X-Forwarded-For names the client; "*" trusts every peer
    forwarded_allow_ips: str = "127.0.0.1"

    # Logging
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _preview_faster_than_upstream(self) -> Settings:
        if self.preview_timeout >= self.upstream_timeout:
            raise ValueError("preview_timeout must be shorter than upstream_timeout")
        return self

    @property
    def allowed_origin_list(self) -> list[str] | None:
        """Parsed ``allowed_origins``, or ``None`` when every origin is allowed."""
        if not self.allowed_origins:
            return None
        origins = [origin.strip() for origin in self.allowed_origins.split(",")]
        return [origin for origin in origins if origin] or None


settings = Settings()
