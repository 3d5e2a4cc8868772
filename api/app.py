"""
FastAPI application factory for the Gatto POI API.

Usage:
    python -m api.app                    # Dev server on port 3000
    SUPABASE_URL=... SUPABASE_ANON_KEY=... python -m api.app

OpenAPI docs available at http://localhost:3000/docs after starting.

The factory builds one backend client, one response-cache registry and one
search-metrics registry per application and stores them on ``app.state``.
Tests pass their own instances (a fake backend, fresh caches) instead.

Cross-cutting behaviour:
    - Proxy-aware client IP with TRUSTED_PROXIES.
    - Per-IP sliding-window rate limit with periodic purge of stale windows.
    - Optional API-key gate (API_KEY_PUBLIC) on every non-public route.
    - Structured JSON logging when APP_LOG_FORMAT=json.
    - CORS for configured origins; security headers on every response.
    - Every error, including validation and unknown routes, uses the
      ``{success: false, error, details?, timestamp}`` envelope.
"""

import hmac
import json
import logging
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.database import SupabaseBackend
from api.responses import error_response, success_response
from api.routes import autocomplete, collections, meta, pois, sitemap
from utils.cache import CacheRegistry
from utils.config import AppConfig
from utils.metrics import SearchMetrics

PUBLIC_PATHS = frozenset({"/health", "/v1", "/", "/docs", "/openapi.json"})
SLOW_REQUEST_MS = 500

_logger = logging.getLogger("gatto_api")


# ── Structured JSON logging ──────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "client_ip",
                    "request_id"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


def configure_logging(cfg: AppConfig) -> None:
    handler = logging.StreamHandler()
    if cfg.log_format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    logging.basicConfig(handlers=[handler], level=cfg.log_level, force=True)


# ── Rate limiting ────────────────────────────────────────────────────────────


class RateLimiter:
    """Per-IP sliding one-minute window with bounded memory.

    Stale windows are purged at most every five minutes; past
    ``max_tracked_ips`` the least active clients are dropped.
    """

    WINDOW_SECONDS = 60.0
    CLEANUP_INTERVAL = 300.0

    def __init__(self, limit: int, max_tracked_ips: int = 10_000) -> None:
        self.limit = limit
        self.max_tracked_ips = max_tracked_ips
        self.blocked = 0
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._last_cleanup = 0.0

    def __len__(self) -> int:
        return len(self._hits)

    def cleanup(self, now: float | None = None) -> None:
        now = time.time() if now is None else now
        if now - self._last_cleanup < self.CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        window_start = now - self.WINDOW_SECONDS
        for ip in list(self._hits):
            recent = [t for t in self._hits[ip] if t > window_start]
            if recent:
                self._hits[ip] = recent
            else:
                del self._hits[ip]
        if len(self._hits) > self.max_tracked_ips:
            excess = len(self._hits) - self.max_tracked_ips
            quietest = sorted(self._hits, key=lambda ip: len(self._hits[ip]))[:excess]
            for ip in quietest:
                del self._hits[ip]

    def allow(self, client_ip: str, now: float | None = None) -> bool:
        """Record a hit for *client_ip*; False when the window is full."""
        now = time.time() if now is None else now
        self.cleanup(now)
        window_start = now - self.WINDOW_SECONDS
        hits = [t for t in self._hits[client_ip] if t > window_start]
        if len(hits) >= self.limit:
            self._hits[client_ip] = hits
            self.blocked += 1
            return False
        hits.append(now)
        self._hits[client_ip] = hits
        return True


def get_client_ip(request: Request, trusted_proxies: set[str]) -> str:
    """Return the real client IP, respecting X-Forwarded-For from trusted proxies."""
    direct_ip = request.client.host if request.client else "unknown"
    if not trusted_proxies or direct_ip not in trusted_proxies:
        return direct_ip
    xff = request.headers.get("X-Forwarded-For", "")
    if xff:
        # leftmost entry is the originating client
        real_ip = xff.split(",")[0].strip()
        if real_ip:
            return real_ip
    return direct_ip


# ── Application factory ──────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.started_at = time.time()
    if app.state.backend is None:
        _logger.warning(
            "SUPABASE_URL / SUPABASE_ANON_KEY not set; data endpoints will answer 503"
        )
    yield
    backend = app.state.backend
    if backend is not None and hasattr(backend, "aclose"):
        await backend.aclose()


def _validation_details(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("query", "path")]
        details.append({
            "field": ".".join(loc),
            "message": err.get("msg", ""),
            "code": err.get("type", "invalid"),
        })
    return details


def create_app(
    config: AppConfig | None = None,
    backend=None,
    caches: CacheRegistry | None = None,
    metrics: SearchMetrics | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings; read from the environment when omitted.
        backend: Backend client override (tests pass a fake).  When omitted
            a SupabaseBackend is built if the config carries credentials.
        caches: Response cache registry override.
        metrics: Search metrics registry override.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = config or AppConfig.from_env()
    configure_logging(cfg)

    if backend is None and cfg.backend_configured:
        backend = SupabaseBackend(cfg.supabase_url, cfg.supabase_key, cfg.backend_timeout)

    app = FastAPI(
        title="Gatto POI API",
        summary="Read-only API over curated points of interest.",
        description=(
            "## Gatto POI API\n\n"
            "Search, filter and browse curated points of interest (restaurants, "
            "bars, cafés...) with scores, ratings, press mentions and photos.\n\n"
            "### Conventions\n"
            "- Every response is wrapped in `{success, data | error, timestamp}`.\n"
            "- Unknown query parameters are rejected with `400`.\n"
            "- `lang` is `fr` (default) or `en`; localized fields fall back to the "
            "other language.\n\n"
            "### Rate limits\n"
            f"- {cfg.rate_limit_default} req/min per IP on every endpoint except `/health`.\n\n"
            "Returns `429 Too Many Requests` with `Retry-After: 60` when exceeded."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url=None,
        openapi_tags=[
            {"name": "pois", "description": "POI list, facets and detail."},
            {"name": "autocomplete", "description": "Search-as-you-type suggestions."},
            {"name": "collections", "description": "Editorial POI collections."},
            {"name": "sitemap", "description": "Slug listings for sitemap generation."},
            {"name": "meta", "description": "Health check, API index and metrics."},
        ],
    )
    app.state.config = cfg
    app.state.backend = backend
    app.state.caches = caches if caches is not None else CacheRegistry.from_config(cfg)
    app.state.metrics = metrics if metrics is not None else SearchMetrics()
    app.state.rate_limiter = RateLimiter(cfg.rate_limit_default)
    app.state.started_at = time.time()

    # ── API key gate ──────────────────────────────────────────────────────────

    @app.middleware("http")
    async def require_api_key(request: Request, call_next):
        """Reject non-public routes without a matching X-API-Key when a key is configured."""
        if not cfg.api_key or request.method == "OPTIONS" or request.url.path in PUBLIC_PATHS:
            return await call_next(request)
        supplied = request.headers.get("X-API-Key", "")
        if not hmac.compare_digest(supplied.encode(), cfg.api_key.encode()):
            _logger.warning(
                "unauthorized ip=%s path=%s user_agent=%s",
                get_client_ip(request, cfg.trusted_proxies),
                request.url.path,
                request.headers.get("User-Agent", ""),
            )
            return error_response(401, "Unauthorized - Invalid or missing API key")
        return await call_next(request)

    # ── Request logging + rate limiting ──────────────────────────────────────

    @app.middleware("http")
    async def log_and_rate_limit(request: Request, call_next):
        """Log each request and enforce the per-IP rate limit."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        client_ip = get_client_ip(request, cfg.trusted_proxies)
        path = request.url.path

        # Health check bypass: not rate limited
        if path == "/health":
            return await call_next(request)

        limiter: RateLimiter = request.app.state.rate_limiter
        if not limiter.allow(client_ip):
            _logger.warning(
                "rate_limited ip=%s path=%s limit=%d", client_ip, path, limiter.limit
            )
            return error_response(429, "Too many requests", headers={"Retry-After": "60"})

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id,
            )
        if duration_ms > SLOW_REQUEST_MS:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        if response.status_code >= 500:
            _logger.error("server_error path=%s status=%d ip=%s", path, response.status_code, client_ip)
        return response

    # ── Security headers ──────────────────────────────────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Outermost middleware; preflights never reach the API key gate.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )

    # ── Error envelopes ───────────────────────────────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Invalid query parameters", details=_validation_details(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and message == "Not Found":
            message = "Route not found"
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return the envelope instead of a traceback."""
        _logger.error("unhandled error path=%s", request.url.path, exc_info=exc)
        return error_response(500, "Internal Server Error")

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    async def health():
        return success_response({"status": "healthy"})

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/v1"
    app.include_router(meta.router,         prefix=prefix)
    app.include_router(pois.router,         prefix=prefix)
    app.include_router(autocomplete.router, prefix=prefix)
    app.include_router(collections.router,  prefix=prefix)
    app.include_router(sitemap.router,      prefix=prefix)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    _cfg = app.state.config
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
