"""CDN client contract.

Why Protocol:
- Structural contract (duck typing) without rigid inheritance.
- The REST adapter and the in-memory fakes used by tests are interchangeable
  without coupling the core to a concrete implementation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import KVKey, KVNamespace, PurgeCacheRequest, Zone


@runtime_checkable
class CDNClient(Protocol):
    """Minimal capability set the purge orchestrator needs.

    Design rules:
    - Every operation is async because it performs HTTP I/O.
    - Failures are raised as exceptions; callers decide whether they are fatal.
    - The account id is a property of the client, not of each call.
    """

    async def list_zones(self) -> list[Zone]:
        """Return every zone visible to the credentials."""

        ...

    async def purge_everything(self, zone_id: str) -> None:
        """Invalidate the whole cache of one zone."""

        ...

    async def purge_cache(self, zone_id: str, request: PurgeCacheRequest) -> None:
        """Invalidate the hosts, files or tags listed in `request`."""

        ...

    async def list_kv_namespaces(self) -> list[KVNamespace]:
        """Return every KV namespace of the account."""

        ...

    async def list_kv_keys(
        self,
        namespace_id: str,
        *,
        prefix: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
        with_metadata: bool = False,
    ) -> tuple[list[KVKey], str | None]:
        """Return one page of keys and the cursor of the next page (or None)."""

        ...

    async def delete_kv_entry(self, namespace_id: str, key: str) -> None:
        """Delete one key from a namespace."""

        ...
