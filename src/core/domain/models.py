"""Domain models (Pydantic v2).

Why Pydantic in the domain:
- Strict validation at the API boundary with self-describing fields, without
  coupling the core to HTTP.
- Cloudflare payloads carry many fields we do not care about; `extra="ignore"`
  keeps the snapshot small.

Note:
- These models describe *what* the data is, not *how* it is fetched.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

CACHE_TAG_FIELD = "cache-tag"


class Zone(BaseModel):
    """A managed domain of the account, fetched once per invocation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Zone identifier.",
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Public domain of the zone (e.g. 'example.com').",
    )
    status: str = Field(
        default="",
        description="Activation status reported by the API (active, pending...).",
    )


class KVNamespace(BaseModel):
    """Workers KV namespace scoped to the account."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(..., min_length=1)
    title: str = Field(default="")


class KVKey(BaseModel):
    """A key listed from a KV namespace, optionally with its metadata."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(
        ...,
        description="Key name inside the namespace.",
    )
    expiration: int | None = Field(
        default=None,
        description="Unix timestamp at which the key expires, if any.",
    )
    metadata: Any | None = Field(
        default=None,
        description="Arbitrary JSON metadata stored alongside the value.",
    )

    @property
    def cache_tag(self) -> str | None:
        """The `cache-tag` metadata value when present and a string."""

        if not isinstance(self.metadata, dict):
            return None
        value = self.metadata.get(CACHE_TAG_FIELD)
        return value if isinstance(value, str) else None


class PurgeCacheRequest(BaseModel):
    """Selective purge payload for one zone.

    The API accepts a single purge type per call, so the orchestrator fills
    exactly one of the three lists.
    """

    model_config = ConfigDict(frozen=True)

    hosts: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.hosts or self.files or self.tags)

    def to_payload(self) -> dict[str, list[str]]:
        payload: dict[str, list[str]] = {}
        if self.hosts:
            payload["hosts"] = list(self.hosts)
        if self.files:
            payload["files"] = list(self.files)
        if self.tags:
            payload["tags"] = list(self.tags)
        return payload

    def describe(self) -> str:
        if self.hosts:
            return "hosts: " + ", ".join(self.hosts)
        if self.files:
            return "URLs: " + ", ".join(self.files)
        if self.tags:
            return "tags: " + ", ".join(self.tags)
        return "nothing"
