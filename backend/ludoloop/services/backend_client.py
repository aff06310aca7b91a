"""
LudoLoop Backend — Hosted Data API Client
===========================================

What:  Async client for the hosted REST data API (PostgREST dialect).
Why:   Every data operation of the platform is a row insert/select/update/delete
       keyed by table name and filter predicates. There is no local schema.
How:   httpx.AsyncClient against {base_url}/rest/v1/<table>. Filters are encoded
       as PostgREST query parameters (column=op.value). Non-2xx answers raise
       BackendError whose message starts with "<status> <reason phrase>".
Who:   Created once in create_app() (app.state.backend_client); wrapped by
       RateLimitGuard.run_guarded() at every call site.

Filter encoding:
    {"user_id": "u1"}                  → user_id=eq.u1
    {"title": ("ilike", "%catan%")}    → title=ilike.%catan%
    {"created_at": ("gte", "2024-…")}  → created_at=gte.2024-…
    {"id": ("in", ["a", "b"])}         → id=in.(a,b)

Row-level security:
    Calls carry the end user's access token when one is given, so the hosted
    database applies that user's policies; otherwise the public key is used.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ludoloop.exceptions import BackendError

logger = logging.getLogger(__name__)

FilterValue = Union[Any, Tuple[str, Any]]
Filters = Mapping[str, FilterValue]

SUPPORTED_OPERATORS = {"eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is", "in"}


def encode_filters(filters: Optional[Filters]) -> List[Tuple[str, str]]:
    """Translate a filter mapping into PostgREST query parameters."""
    params: List[Tuple[str, str]] = []
    for column, condition in (filters or {}).items():
        if isinstance(condition, tuple):
            operator, value = condition
        else:
            operator, value = "eq", condition
        if operator not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported filter operator '{operator}' for column '{column}'")
        if operator == "in":
            value = "(" + ",".join(str(v) for v in value) + ")"
        elif isinstance(value, bool):
            value = "true" if value else "false"
        elif value is None:
            value = "null"
        params.append((column, f"{operator}.{value}"))
    return params


class BackendClient:
    """
    Table-oriented CRUD over the hosted data API.

    Args:
        base_url: Project URL (https://<ref>.supabase.co)
        anon_key: Public API key
        service_role_key: Admin key used when `admin=True` is passed
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_role_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={"apikey": anon_key},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return the rows of `table` matching `filters`."""
        params = [("select", columns), *encode_filters(filters)]
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        response = await self._request("GET", table, params=params, access_token=access_token)
        return response.json()

    async def insert(
        self,
        table: str,
        rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Insert one row or a batch; returns the inserted representation."""
        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(r) for r in rows]
        response = await self._request(
            "POST",
            table,
            json=payload,
            headers={"Prefer": "return=representation"},
            access_token=access_token,
        )
        return response.json()

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Filters,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Update matching rows; an empty filter is refused (it would touch every row)."""
        if not filters:
            raise ValueError("update() requires at least one filter")
        response = await self._request(
            "PATCH",
            table,
            params=encode_filters(filters),
            json=dict(values),
            headers={"Prefer": "return=representation"},
            access_token=access_token,
        )
        return response.json()

    async def delete(
        self,
        table: str,
        filters: Filters,
        access_token: Optional[str] = None,
        admin: bool = False,
    ) -> None:
        """Delete matching rows; an empty filter is refused."""
        if not filters:
            raise ValueError("delete() requires at least one filter")
        await self._request(
            "DELETE",
            table,
            params=encode_filters(filters),
            access_token=access_token,
            admin=admin,
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Iterable[Tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
        admin: bool = False,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if admin and self.service_role_key:
            request_headers["apikey"] = self.service_role_key
            request_headers["Authorization"] = f"Bearer {self.service_role_key}"
        else:
            request_headers["Authorization"] = f"Bearer {access_token or self.anon_key}"

        try:
            response = await self._client.request(
                method,
                f"/{table}",
                params=list(params or []),
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("Data API unreachable (%s %s): %s", method, table, exc)
            raise BackendError(
                message=f"Data API unreachable: {exc}",
                context={"table": table, "method": method},
            ) from exc

        if response.is_success:
            return response

        detail = ""
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = body.get("message") or body.get("hint") or ""
        except ValueError:
            detail = response.text[:200]

        message = f"{response.status_code} {response.reason_phrase}"
        if detail:
            message = f"{message}: {detail}"
        logger.warning("Data API error on %s %s: %s", method, table, message)
        raise BackendError(
            message=message,
            status_code=response.status_code,
            context={"table": table, "method": method},
        )
