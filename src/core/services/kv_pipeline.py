"""Workers KV tag-based delete and purge orchestration.

Flow for one invocation:
1. Resolve the namespace set (explicit ids or every namespace of the account).
2. Scan every key of each namespace (following pagination cursors) and keep
   the ones whose `cache-tag` contains the requested tag.
3. Delete the matches in batches, in parallel.
4. Optionally purge the deduplicated tag set from every zone of the account.

Dry-run runs steps 1-2 unchanged and reports what steps 3-4 would touch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from core.config import AppSettings, ConfigurationError
from core.domain.models import KVKey, PurgeCacheRequest
from core.interfaces.cdn_client import CDNClient
from core.services.batch_executor import (
    PURGE_BATCH_LIMIT,
    WorkOutcome,
    chunked,
    run_batches,
    run_groups,
)
from core.services.purge_pipeline import (
    PipelineHooks,
    PurgeCall,
    Summary,
    make_purge_worker,
)
from core.services.tag_collector import (
    TagCollection,
    build_cache_tag_index,
    collect_by_tag,
    unique_tags,
)
from core.services.zone_resolver import split_comma_list

logger = logging.getLogger(__name__)


@dataclass
class KVPurgeOptions:
    """Parameters for tag-based KV deletion (and the optional cache purge)."""

    tag: str = ""
    namespaces: Sequence[str] = ()
    all_namespaces: bool = False
    dry_run: bool = False
    purge_cache: bool = True

    @classmethod
    def from_flags(
        cls,
        *,
        tag: str | None,
        namespace: str | None = None,
        all_namespaces: bool = False,
        dry_run: bool = False,
        purge_cache: bool = True,
    ) -> "KVPurgeOptions":
        return cls(
            tag=(tag or "").strip(),
            namespaces=split_comma_list(namespace),
            all_namespaces=all_namespaces,
            dry_run=dry_run,
            purge_cache=purge_cache,
        )

    def validate(self) -> None:
        if self.namespaces and self.all_namespaces:
            raise ConfigurationError("Use either --namespace or --all-namespaces, not both.")
        if not self.namespaces and not self.all_namespaces:
            raise ConfigurationError("Either --namespace or --all-namespaces is required.")
        if not self.tag:
            raise ConfigurationError("A cache tag is required (--tag).")


@dataclass
class NamespaceScan:
    """Matches found in one namespace."""

    namespace_id: str
    matches: TagCollection = field(default_factory=TagCollection)
    tag_index: dict[str, list[str]] = field(default_factory=dict)
    deletions: Summary = field(default_factory=Summary)
    error: str | None = None


@dataclass
class KVPurgeResult:
    """Output of `purge_kv_by_tag`."""

    scans: list[NamespaceScan] = field(default_factory=list)
    deletions: Summary = field(default_factory=Summary)
    purge: Summary = field(default_factory=Summary)
    tags: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def keys_to_delete(self) -> dict[str, list[str]]:
        return {scan.namespace_id: list(scan.matches.keys) for scan in self.scans if scan.matches.keys}

    @property
    def exit_code(self) -> int:
        return 0 if self.deletions.ok and self.purge.ok else 1


async def resolve_namespace_ids(
    client: CDNClient,
    options: KVPurgeOptions,
    hooks: PipelineHooks,
) -> list[str]:
    if not options.all_namespaces:
        return list(options.namespaces)

    namespaces = await client.list_kv_namespaces()
    if not namespaces:
        raise ConfigurationError("No KV namespaces found in account.")
    hooks.emit_info(f"Found {len(namespaces)} KV namespaces to process")
    return [ns.id for ns in namespaces]


async def list_all_keys(client: CDNClient, namespace_id: str) -> list[KVKey]:
    """Every key of a namespace with its metadata, across all pages."""

    keys: list[KVKey] = []
    cursor: str | None = None
    while True:
        page, cursor = await client.list_kv_keys(
            namespace_id, cursor=cursor, with_metadata=True
        )
        keys.extend(page)
        logger.debug("Namespace %s: fetched %d key(s), next cursor %r", namespace_id, len(page), cursor)
        if not cursor or not page:
            return keys


async def scan_namespace(
    client: CDNClient,
    namespace_id: str,
    tag: str,
    hooks: PipelineHooks,
) -> NamespaceScan:
    scan = NamespaceScan(namespace_id=namespace_id)
    try:
        entries = await list_all_keys(client, namespace_id)
    except Exception as exc:
        scan.error = f"Error listing KV keys in namespace {namespace_id}: {exc}"
        logger.warning(scan.error)
        hooks.emit_error(scan.error)
        return scan

    scan.matches = collect_by_tag(entries, tag)
    matched = set(scan.matches.keys)
    scan.tag_index = build_cache_tag_index(entry for entry in entries if entry.name in matched)
    if not scan.matches.keys:
        hooks.emit_info(f"No KV keys found with cache-tag containing '{tag}' in namespace {namespace_id}")
    else:
        hooks.emit_info(
            f"Found {len(scan.matches)} KV keys ({len(scan.tag_index)} distinct tags) "
            f"with cache tag matching '{tag}' in namespace {namespace_id}"
        )
    return scan


async def delete_keys(
    client: CDNClient,
    namespace_id: str,
    keys: Sequence[str],
    *,
    settings: AppSettings,
    hooks: PipelineHooks,
) -> Summary:
    async def delete_one(key: str) -> WorkOutcome:
        try:
            await client.delete_kv_entry(namespace_id, key)
        except Exception as exc:
            message = f"Error deleting KV key {key} in namespace {namespace_id}: {exc}"
            logger.warning(message)
            hooks.emit_error(message)
            return WorkOutcome.failed(message)
        hooks.emit_success(f"Deleted KV key {key} from namespace {namespace_id}")
        return WorkOutcome.succeeded()

    batch = await run_batches(
        list(keys),
        PURGE_BATCH_LIMIT,
        delete_one,
        max_concurrency=settings.max_concurrency,
        timeout=settings.batch_timeout,
    )
    summary = Summary()
    summary.merge(batch)
    return summary


async def purge_tags_everywhere(
    client: CDNClient,
    tags: Sequence[str],
    *,
    settings: AppSettings,
    hooks: PipelineHooks,
) -> Summary:
    """Purge `tags` from every zone of the account, one group per zone."""

    summary = Summary()
    try:
        zones = await client.list_zones()
    except Exception as exc:
        message = f"Error getting zones for cache purge: {exc}"
        logger.warning(message)
        hooks.emit_error(message)
        summary.failure_count += 1
        summary.warnings.append(message)
        return summary

    hooks.emit_info(f"Purging {len(tags)} unique cache tag(s) from {len(zones)} zone(s)")
    groups = [
        [
            PurgeCall(zone=zone, request=PurgeCacheRequest(tags=chunk))
            for chunk in chunked(list(tags), PURGE_BATCH_LIMIT)
        ]
        for zone in zones
    ]
    batch = await run_groups(
        groups,
        make_purge_worker(client, hooks=hooks),
        max_concurrency=settings.max_concurrency,
        timeout=settings.batch_timeout,
    )
    summary.merge(batch)
    return summary


async def purge_kv_by_tag(
    *,
    client: CDNClient,
    settings: AppSettings,
    options: KVPurgeOptions,
    hooks: PipelineHooks | None = None,
) -> KVPurgeResult:
    """Delete KV entries whose cache tag matches, then purge those tags.

    With `options.purge_cache=False` only the deletion runs. A namespace whose
    key listing fails counts as one failed operation and is skipped.
    """

    hooks = hooks or PipelineHooks()
    options.validate()
    settings.require_account_id()

    namespace_ids = await resolve_namespace_ids(client, options, hooks)
    result = KVPurgeResult(dry_run=options.dry_run)
    collected_tags: list[str] = []

    for namespace_id in namespace_ids:
        hooks.emit_info(f"Processing namespace: {namespace_id}")
        scan = await scan_namespace(client, namespace_id, options.tag, hooks)
        result.scans.append(scan)

        if scan.error:
            result.deletions.failure_count += 1
            result.deletions.warnings.append(scan.error)
            continue
        if not scan.matches.keys:
            continue
        if options.dry_run:
            continue

        scan.deletions = await delete_keys(
            client,
            namespace_id,
            scan.matches.keys,
            settings=settings,
            hooks=hooks,
        )
        hooks.emit_info(
            f"Summary for namespace {namespace_id}: "
            f"{scan.deletions.success_count} successful, {scan.deletions.failure_count} failed"
        )
        result.deletions.merge(scan.deletions)
        collected_tags.extend(scan.matches.tags)

    if options.dry_run:
        result.tags = unique_tags(tag for scan in result.scans for tag in scan.matches.tags)
        return result

    result.tags = unique_tags(collected_tags)
    if options.purge_cache and result.tags:
        result.purge = await purge_tags_everywhere(
            client, result.tags, settings=settings, hooks=hooks
        )
    return result
