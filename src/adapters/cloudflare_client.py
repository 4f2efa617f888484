"""REST implementation of `core.interfaces.cdn_client.CDNClient`.

Every API response is wrapped in the envelope
`{"success": bool, "errors": [...], "messages": [...], "result": ..., "result_info": {...}}`.
`_request` unwraps it and raises `CloudflareAPIError` when the call failed, so
the services only ever see domain models or an exception.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.models import KVKey, KVNamespace, PurgeCacheRequest, Zone

logger = logging.getLogger(__name__)

ZONES_PER_PAGE = 50
NAMESPACES_PER_PAGE = 100
DEFAULT_KEYS_LIMIT = 1000

ModelT = TypeVar("ModelT", bound=BaseModel)


class CloudflareAPIError(Exception):
    """The API rejected a call or answered with something unusable."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "; ".join(
            f"{err.get('code', '?')}: {err.get('message', '')}" for err in self.errors
        )
        return f"{base} ({details})"


def _parse(model: type[ModelT], raw: Any, what: str) -> ModelT:
    """Validate one API record; a malformed record is an API error, not a crash."""

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "record"
        raise CloudflareAPIError(
            f"Malformed {what} in API response ({field}: {first['msg']})"
        ) from exc


class CloudflareClient:
    """Async client for the zone, purge and Workers KV endpoints.

    Use as an async context manager so the underlying connection pool is
    closed:

        async with CloudflareClient(settings) as client:
            zones = await client.list_zones()
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http = http or build_async_client(settings)

    async def __aenter__(self) -> "CloudflareClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def account_id(self) -> str:
        return self._settings.require_account_id()

    async def _request_envelope(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        logger.debug("%s %s", method, path)
        response = await self._http.request(method, path, **kwargs)

        # Parse first so the API's own error message wins over the HTTP status.
        try:
            data = response.json()
        except ValueError as exc:
            raise CloudflareAPIError(
                f"{method} {path} returned a non-JSON body (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

        if not isinstance(data, dict) or not data.get("success"):
            errors = data.get("errors") if isinstance(data, dict) else None
            raise CloudflareAPIError(
                f"{method} {path} failed (HTTP {response.status_code})",
                status_code=response.status_code,
                errors=errors if isinstance(errors, list) else None,
            )
        if response.is_error:
            raise CloudflareAPIError(
                f"{method} {path} failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        return data

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        data = await self._request_envelope(method, path, **kwargs)
        return data.get("result")

    async def _paginate(self, path: str, per_page: int) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self._request_envelope(
                "GET", path, params={"page": page, "per_page": per_page}
            )
            result = data.get("result") or []
            items.extend(item for item in result if isinstance(item, dict))

            info = data.get("result_info") or {}
            total_pages = info.get("total_pages")
            if not result or not isinstance(total_pages, int) or page >= total_pages:
                return items
            page += 1

    # Zones
    async def list_zones(self) -> list[Zone]:
        raw = await self._paginate("zones", ZONES_PER_PAGE)
        return [_parse(Zone, item, "zone") for item in raw]

    # Cache purge
    async def purge_everything(self, zone_id: str) -> None:
        await self._request(
            "POST", f"zones/{zone_id}/purge_cache", json={"purge_everything": True}
        )

    async def purge_cache(self, zone_id: str, request: PurgeCacheRequest) -> None:
        if request.is_empty():
            raise ValueError("purge request carries no hosts, files or tags")
        await self._request("POST", f"zones/{zone_id}/purge_cache", json=request.to_payload())

    # Workers KV
    def _namespaces_path(self) -> str:
        return f"accounts/{self.account_id}/storage/kv/namespaces"

    async def list_kv_namespaces(self) -> list[KVNamespace]:
        raw = await self._paginate(self._namespaces_path(), NAMESPACES_PER_PAGE)
        return [_parse(KVNamespace, item, "namespace") for item in raw]

    async def create_kv_namespace(self, title: str) -> KVNamespace:
        result = await self._request("POST", self._namespaces_path(), json={"title": title})
        return _parse(KVNamespace, result, "namespace")

    async def rename_kv_namespace(self, namespace_id: str, title: str) -> None:
        await self._request(
            "PUT", f"{self._namespaces_path()}/{namespace_id}", json={"title": title}
        )

    async def list_kv_keys(
        self,
        namespace_id: str,
        *,
        prefix: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
        with_metadata: bool = False,
    ) -> tuple[list[KVKey], str | None]:
        # The keys endpoint always returns metadata; `with_metadata` is a no-op here.
        params: dict[str, Any] = {"limit": limit or DEFAULT_KEYS_LIMIT}
        if prefix:
            params["prefix"] = prefix
        if cursor:
            params["cursor"] = cursor

        data = await self._request_envelope(
            "GET", f"{self._namespaces_path()}/{namespace_id}/keys", params=params
        )
        keys = [_parse(KVKey, item, "KV key") for item in data.get("result") or []]
        info = data.get("result_info") or {}
        next_cursor = info.get("cursor") or None
        if next_cursor == "null":
            next_cursor = None
        return keys, next_cursor

    async def delete_kv_entry(self, namespace_id: str, key: str) -> None:
        await self._request(
            "DELETE",
            f"{self._namespaces_path()}/{namespace_id}/values/{quote(key, safe='')}",
        )

    # Diagnostics
    async def verify_credentials(self) -> str:
        """Return a short description of the authenticated principal."""

        if self._settings.api_token:
            result = await self._request("GET", "user/tokens/verify")
            status = result.get("status") if isinstance(result, dict) else None
            return f"token {status or 'unknown'}"
        result = await self._request("GET", "user")
        email = result.get("email") if isinstance(result, dict) else None
        return f"user {email or 'unknown'}"
