"""Cache-tag matching over KV entry metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from core.domain.models import KVKey


@dataclass
class TagCollection:
    """Keys whose `cache-tag` matched, with the raw tag of each key.

    `keys[i]` carries tag `tags[i]`.
    """

    keys: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.keys)

    def pairs(self) -> list[tuple[str, str]]:
        return list(zip(self.keys, self.tags))


def collect_by_tag(entries: Iterable[KVKey], tag_filter: str) -> TagCollection:
    """Select entries whose `cache-tag` contains `tag_filter`.

    Substring match, so `product-123` also selects `product-123-variant`.
    Entries without metadata or without a string `cache-tag` are skipped.
    """

    collection = TagCollection()
    for entry in entries:
        tag = entry.cache_tag
        if tag is None or tag_filter not in tag:
            continue
        collection.keys.append(entry.name)
        collection.tags.append(tag)
    return collection


def build_cache_tag_index(entries: Iterable[KVKey]) -> dict[str, list[str]]:
    """Map each cache tag to the key names carrying it, in listing order."""

    index: dict[str, list[str]] = {}
    for entry in entries:
        tag = entry.cache_tag
        if tag is None:
            continue
        index.setdefault(tag, []).append(entry.name)
    return index


def unique_tags(tags: Iterable[str]) -> list[str]:
    """Deduplicate tags keeping first-seen order."""

    return list(dict.fromkeys(tags))
