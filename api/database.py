"""
Backend access for the API.

The hosted backend exposes tables and stored procedures over PostgREST
(``{SUPABASE_URL}/rest/v1``).  SupabaseBackend wraps one shared
httpx.AsyncClient; the application factory creates it at startup, stores it
on ``app.state.backend`` and closes it on shutdown.  Routes receive it
through the get_backend() dependency.

All failures (transport errors, non-2xx responses, undecodable bodies)
surface as BackendError so callers can decide whether the call was fatal
(primary search/detail) or degradable (enrichment).
"""

import logging
from typing import Any, Iterable, Mapping

import httpx
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """A backend call failed; the message is for logs, never for clients."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _literal(value: Any) -> str:
    """Render a filter value in PostgREST syntax."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quoted(value: Any) -> str:
    text = _literal(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def build_select_params(
    columns: str = "*",
    eq: Mapping[str, Any] | None = None,
    in_: Mapping[str, Iterable[Any]] | None = None,
    any_eq: Mapping[str, Any] | None = None,
    order: Iterable[str] | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> list[tuple[str, str]]:
    """Translate filter arguments into PostgREST query parameters.

    Args:
        columns: ``select=`` projection, may embed related tables.
        eq: Column -> value equality filters.  Dotted names filter an
            embedded resource.
        in_: Column -> values membership filters.
        any_eq: Column -> value pairs OR-ed together (``or=(...)``).
        order: Order terms such as ``"updated_at.desc"``.
        limit: Maximum rows.
        offset: Rows to skip.

    Returns:
        List of (name, value) pairs, in a stable order.
    """
    params: list[tuple[str, str]] = [("select", columns)]
    for col, value in (eq or {}).items():
        params.append((col, f"eq.{_literal(value)}"))
    for col, values in (in_ or {}).items():
        joined = ",".join(_quoted(v) for v in values)
        params.append((col, f"in.({joined})"))
    if any_eq:
        terms = ",".join(f"{col}.eq.{_quoted(v)}" for col, v in any_eq.items())
        params.append(("or", f"({terms})"))
    if order:
        params.append(("order", ",".join(order)))
    if limit is not None:
        params.append(("limit", str(limit)))
    if offset:
        params.append(("offset", str(offset)))
    return params


def parse_content_range(header: str | None) -> int | None:
    """Total row count from a ``Content-Range: 0-9/123`` header."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class SupabaseBackend:
    """Async client for PostgREST tables and stored procedures."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {path} failed: {exc!r}") from exc
        if response.status_code >= 400:
            raise BackendError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"undecodable body from {response.request.url.path}") from exc

    async def rpc(self, function: str, params: Mapping[str, Any]) -> Any:
        """Call a stored procedure and return its decoded JSON result."""
        response = await self._send("POST", f"/rpc/{function}", json=dict(params))
        return self._json(response)

    async def select(self, table: str, columns: str = "*", **filters) -> list[dict]:
        """Read rows from a table or view.  See build_select_params() for filters."""
        response = await self._send(
            "GET", f"/{table}", params=build_select_params(columns, **filters)
        )
        rows = self._json(response)
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise BackendError(f"expected a row list from {table}")
        return rows

    async def select_with_count(
        self, table: str, columns: str = "*", **filters
    ) -> tuple[list[dict], int]:
        """Like select(), also returning the exact total matching row count."""
        response = await self._send(
            "GET",
            f"/{table}",
            params=build_select_params(columns, **filters),
            headers={"Prefer": "count=exact"},
        )
        rows = self._json(response) or []
        total = parse_content_range(response.headers.get("Content-Range"))
        return rows, total if total is not None else len(rows)


def get_backend(request: Request):
    """FastAPI dependency: the backend stored on the application.

    Raises HTTP 503 when the service was started without backend settings.

    Usage in a route::

        @router.get("/example")
        async def example(backend=Depends(get_backend)):
            ...
    """
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        raise HTTPException(
            status_code=503,
            detail="Backend not configured",
        )
    return backend
