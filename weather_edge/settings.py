from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized configuration.

    Loaded from:
    - environment variables (AMAP_API_KEY, QWEATHER_API_KEY, ...)
    - .env file (if present)

    Every credential is optional: a missing key disables the step that
    needs it and the request degrades instead of the app refusing to boot.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Upstream credentials
    amap_api_key: Optional[str] = None
    qweather_api_key: Optional[str] = None
    ai_serverless_api_key: Optional[str] = None
    xunfei_api_key: Optional[str] = None

    # Edge cache
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: Optional[int] = None

    # Per-call timeouts (no request-level timeout wraps the chain)
    upstream_timeout_seconds: float = 8.0
    completion_timeout_seconds: float = 10.0

    # Completion provider (OpenAI-compatible chat endpoint)
    completion_endpoint: str = "https://maas-api.cn-huabei-1.xf-yun.com/v1/chat/completions"
    completion_model: str = "general"

    # /api/generate always returns meta when set
    generate_debug: bool = False

    # Non-secret cosmetics
    app_name: str = "Edge Weather Assistant"
    log_level: str = "INFO"

    @property
    def advice_api_key(self) -> Optional[str]:
        """Key used for weather advice; falls back to the generate key."""
        return self.ai_serverless_api_key or self.xunfei_api_key

    @property
    def generate_api_key(self) -> Optional[str]:
        """Key used for /api/generate; falls back to the advice key."""
        return self.xunfei_api_key or self.ai_serverless_api_key


settings = Settings()
