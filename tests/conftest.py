import asyncio
import pathlib
import sys
from typing import Callable

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from core.config import AppSettings  # noqa: E402
from core.domain.models import KVKey, KVNamespace, PurgeCacheRequest, Zone  # noqa: E402


class FakeAPIError(Exception):
    """Stands in for an API failure raised by a real client."""


class FakeCDNClient:
    """In-memory `CDNClient` recording every mutating call."""

    def __init__(
        self,
        zones: list[Zone] | None = None,
        namespaces: list[KVNamespace] | None = None,
        keys: dict[str, list[KVKey]] | None = None,
        page_size: int | None = None,
    ) -> None:
        self.zones = list(zones or [])
        self.namespaces = list(namespaces or [])
        self.keys = keys or {}
        self.page_size = page_size

        self.purge_calls: list[tuple[str, PurgeCacheRequest | None]] = []
        self.deleted: list[tuple[str, str]] = []
        self.list_key_calls: list[tuple[str, str | None]] = []

        self.fail_purge: Callable[[str, PurgeCacheRequest | None], bool] = lambda zone_id, request: False
        self.fail_delete_keys: set[str] = set()
        self.fail_list_namespaces: set[str] = set()
        self.fail_list_zones = False

    async def __aenter__(self) -> "FakeCDNClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def list_zones(self) -> list[Zone]:
        if self.fail_list_zones:
            raise FakeAPIError("zones unavailable")
        return list(self.zones)

    async def purge_everything(self, zone_id: str) -> None:
        await asyncio.sleep(0)
        self.purge_calls.append((zone_id, None))
        if self.fail_purge(zone_id, None):
            raise FakeAPIError(f"purge everything rejected for {zone_id}")

    async def purge_cache(self, zone_id: str, request: PurgeCacheRequest) -> None:
        await asyncio.sleep(0)
        self.purge_calls.append((zone_id, request))
        if self.fail_purge(zone_id, request):
            raise FakeAPIError(f"purge rejected for {zone_id}")

    async def list_kv_namespaces(self) -> list[KVNamespace]:
        return list(self.namespaces)

    async def list_kv_keys(
        self,
        namespace_id: str,
        *,
        prefix: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
        with_metadata: bool = False,
    ) -> tuple[list[KVKey], str | None]:
        self.list_key_calls.append((namespace_id, cursor))
        if namespace_id in self.fail_list_namespaces:
            raise FakeAPIError(f"namespace {namespace_id} unavailable")
        entries = [k for k in self.keys.get(namespace_id, []) if not prefix or k.name.startswith(prefix)]
        size = limit or self.page_size or max(len(entries), 1)
        start = int(cursor or 0)
        end = start + size
        next_cursor = str(end) if end < len(entries) else None
        return entries[start:end], next_cursor

    async def delete_kv_entry(self, namespace_id: str, key: str) -> None:
        await asyncio.sleep(0)
        if key in self.fail_delete_keys:
            raise FakeAPIError(f"cannot delete {key}")
        self.deleted.append((namespace_id, key))

    async def create_kv_namespace(self, title: str) -> KVNamespace:
        namespace = KVNamespace(id=f"ns-{len(self.namespaces) + 1}", title=title)
        self.namespaces.append(namespace)
        return namespace

    async def rename_kv_namespace(self, namespace_id: str, title: str) -> None:
        self.namespaces = [
            KVNamespace(id=ns.id, title=title) if ns.id == namespace_id else ns for ns in self.namespaces
        ]

    async def verify_credentials(self) -> str:
        return "token active"


def tagged(name: str, tag: str | None = None, **metadata: object) -> KVKey:
    """KV key whose metadata carries `cache-tag` when `tag` is given."""

    if tag is not None:
        metadata["cache-tag"] = tag
    return KVKey(name=name, metadata=metadata or None)


@pytest.fixture(autouse=True)
def no_env_files(monkeypatch):
    """Keep local `.env` files (project or per-user) out of every test."""

    monkeypatch.setitem(AppSettings.model_config, "env_file", None)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        api_token="test-token",
        account_id="acct-1",
        max_concurrency=16,
        operation_timeout_seconds=5,
    )


@pytest.fixture
def zones() -> list[Zone]:
    return [
        Zone(id="z-example", name="example.com", status="active"),
        Zone(id="z-other", name="other.com", status="active"),
        Zone(id="z-third", name="third.org", status="pending"),
    ]


@pytest.fixture
def fake_client(zones: list[Zone]) -> FakeCDNClient:
    return FakeCDNClient(zones=zones)
