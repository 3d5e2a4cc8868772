"""Tests for utils/config.py: environment-driven AppConfig."""
from utils.config import DEFAULT_CORS_ORIGINS, AppConfig

_ENV_VARS = (
    "SUPABASE_URL", "SUPABASE_ANON_KEY", "BACKEND_TIMEOUT", "APP_HOST", "APP_PORT",
    "APP_LOG_FORMAT", "APP_LOG_LEVEL", "APP_CORS_ORIGINS", "API_KEY_PUBLIC",
    "RATE_LIMIT_DEFAULT", "TRUSTED_PROXIES", "CACHE_POI_LIST_TTL", "CACHE_POI_LIST_MAXSIZE",
)


def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestAppConfig:
    def test_defaults(self, monkeypatch):
        _clean_env(monkeypatch)
        cfg = AppConfig.from_env()
        assert cfg.api_host == "127.0.0.1"
        assert cfg.api_port == 3000
        assert cfg.backend_timeout == 10.0
        assert cfg.rate_limit_default == 100
        assert cfg.cors_origins == DEFAULT_CORS_ORIGINS
        assert cfg.api_key == ""
        assert cfg.backend_configured is False
        assert cfg.cache_families["autocomplete"] == (60.0, 1000)
        assert cfg.cache_families["poi_detail"] == (600.0, 500)

    def test_environment_overrides(self, monkeypatch):
        _clean_env(monkeypatch)
        monkeypatch.setenv("SUPABASE_URL", "https://db.example.co/")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
        monkeypatch.setenv("APP_CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("TRUSTED_PROXIES", "10.0.0.1,10.0.0.2")
        monkeypatch.setenv("CACHE_POI_LIST_TTL", "30")
        monkeypatch.setenv("CACHE_POI_LIST_MAXSIZE", "10")
        monkeypatch.setenv("APP_LOG_LEVEL", "debug")
        cfg = AppConfig.from_env()
        assert cfg.supabase_url == "https://db.example.co"
        assert cfg.backend_configured is True
        assert cfg.cors_origins == ["https://a.example", "https://b.example"]
        assert cfg.trusted_proxies == {"10.0.0.1", "10.0.0.2"}
        assert cfg.cache_families["poi_list"] == (30.0, 10)
        assert cfg.log_level == "DEBUG"

    def test_wildcard_cors(self, monkeypatch):
        _clean_env(monkeypatch)
        monkeypatch.setenv("APP_CORS_ORIGINS", "*")
        assert AppConfig.from_env().cors_origins == ["*"]
