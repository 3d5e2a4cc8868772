"""Configuration management for the Gatto API.

AppConfig is populated from environment variables.  Every variable has a
default so the service starts without any configuration.
"""

import os as _os

from utils.cache import DEFAULT_FAMILIES

DEFAULT_CORS_ORIGINS = ["https://gatto.city", "https://www.gatto.city"]
DEFAULT_CITY = "paris"


def _split_csv(raw: str) -> list[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


class AppConfig:
    """Application-level configuration loaded from environment variables.

    Environment variables:
        SUPABASE_URL: Base URL of the hosted backend (default: empty)
        SUPABASE_ANON_KEY: Backend API key, sent as apikey + bearer token
        BACKEND_TIMEOUT: Seconds allowed per backend request (default: 10)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_PORT: API server port (default: 3000)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_LOG_LEVEL: Root log level (default: INFO)
        APP_CORS_ORIGINS: Comma-separated allowed origins, or * (default: gatto.city)
        API_KEY_PUBLIC: When set, non-public routes require a matching X-API-Key
        RATE_LIMIT_DEFAULT: Max requests per minute per client IP (default: 100)
        TRUSTED_PROXIES: Comma-separated proxy IPs whose X-Forwarded-For is honoured
        CACHE_<FAMILY>_TTL / CACHE_<FAMILY>_MAXSIZE: Response cache bounds per
            family (AUTOCOMPLETE, POI_LIST, POI_DETAIL, COLLECTIONS)
    """

    def __init__(self) -> None:
        self.supabase_url = _os.getenv("SUPABASE_URL", "").rstrip("/")
        self.supabase_key = _os.getenv("SUPABASE_ANON_KEY", "")
        self.backend_timeout = float(_os.getenv("BACKEND_TIMEOUT", "10"))
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.api_port = int(_os.getenv("APP_PORT", "3000"))
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        self.log_level = _os.getenv("APP_LOG_LEVEL", "INFO").upper()
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "")
        if raw_origins.strip() == "*":
            self.cors_origins: list[str] = ["*"]
        else:
            self.cors_origins = _split_csv(raw_origins) or list(DEFAULT_CORS_ORIGINS)
        self.api_key = _os.getenv("API_KEY_PUBLIC", "")
        self.rate_limit_default = int(_os.getenv("RATE_LIMIT_DEFAULT", "100"))
        self.trusted_proxies: set[str] = set(_split_csv(_os.getenv("TRUSTED_PROXIES", "")))
        self.cache_families: dict[str, tuple[float, int]] = {}
        for family, (ttl, maxsize) in DEFAULT_FAMILIES.items():
            env = family.upper()
            self.cache_families[family] = (
                float(_os.getenv(f"CACHE_{env}_TTL", str(ttl))),
                int(_os.getenv(f"CACHE_{env}_MAXSIZE", str(maxsize))),
            )

    @property
    def backend_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
