"""Zone cache purge orchestration.

This module owns the purge flow so the CLI only parses flags and renders
output. Side-effects visible to the operator (success / warning / error lines)
go through `PipelineHooks`, which keeps the core testable and silent by
default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from core.config import AppSettings, ConfigurationError
from core.domain.models import PurgeCacheRequest, Zone
from core.interfaces.cdn_client import CDNClient
from core.services.batch_executor import (
    PURGE_BATCH_LIMIT,
    BatchResult,
    WorkOutcome,
    Worker,
    chunked,
    run_groups,
)
from core.services.zone_resolver import ZoneAssignment, ZoneIndex, resolve_zones, split_comma_list

logger = logging.getLogger(__name__)


@dataclass
class PipelineHooks:
    """Optional callbacks for UI layers."""

    info: Callable[[str], None] | None = None
    success: Callable[[str], None] | None = None
    warning: Callable[[str], None] | None = None
    error: Callable[[str], None] | None = None

    def emit_info(self, message: str) -> None:
        if self.info:
            self.info(message)

    def emit_success(self, message: str) -> None:
        if self.success:
            self.success(message)

    def emit_warning(self, message: str) -> None:
        if self.warning:
            self.warning(message)

    def emit_error(self, message: str) -> None:
        if self.error:
            self.error(message)


@dataclass
class Summary(BatchResult):
    """Aggregated outcome of a run; drives the process exit code."""

    @property
    def ok(self) -> bool:
        return self.failure_count == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


@dataclass
class PurgeOptions:
    """Parameters that control a zone purge."""

    zones: Sequence[str] = ()
    hosts: Sequence[str] = ()
    urls: Sequence[str] = ()
    tags: Sequence[str] = ()
    all_zones: bool = False
    everything: bool = False
    quiet: bool = False

    @classmethod
    def from_flags(
        cls,
        *,
        zones: Sequence[str] = (),
        hosts: str | None = None,
        urls: str | None = None,
        tags: str | None = None,
        all_zones: bool = False,
        everything: bool = False,
        quiet: bool = False,
    ) -> "PurgeOptions":
        """Build options from raw CLI values (comma separated lists)."""

        return cls(
            zones=[z.strip() for z in zones if z.strip()],
            hosts=split_comma_list(hosts),
            urls=split_comma_list(urls),
            tags=split_comma_list(tags),
            all_zones=all_zones,
            everything=everything,
            quiet=quiet,
        )

    def validate(self) -> None:
        if not (self.zones or self.all_zones or self.hosts or self.urls or self.tags):
            raise ConfigurationError(
                "Specify at least one zone, use --all, or provide --hosts/--urls/--tags."
            )
        if not (self.everything or self.hosts or self.urls or self.tags):
            raise ConfigurationError(
                "Nothing to purge: pass --everything, --hosts, --urls or --tags."
            )


@dataclass(frozen=True)
class PurgeCall:
    """One purge API call against one zone. `request=None` purges everything."""

    zone: Zone
    request: PurgeCacheRequest | None = None

    def describe(self) -> str:
        if self.request is None:
            return "everything"
        return self.request.describe()


@dataclass
class PurgeResult:
    """Output of `purge_zones`."""

    summary: Summary
    targets: list[Zone] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def build_purge_calls(assignment: ZoneAssignment, *, everything: bool) -> list[PurgeCall]:
    """Turn one zone assignment into the API calls to issue, in order.

    Hosts, files and tags go in separate calls (the API takes one purge type
    per request), each chunked to the per-request limit. An empty assignment
    produces no calls.
    """

    zone = assignment.zone
    if everything:
        return [PurgeCall(zone=zone)]

    calls: list[PurgeCall] = []
    for chunk in chunked(assignment.hosts, PURGE_BATCH_LIMIT):
        calls.append(PurgeCall(zone=zone, request=PurgeCacheRequest(hosts=chunk)))
    for chunk in chunked(assignment.urls, PURGE_BATCH_LIMIT):
        calls.append(PurgeCall(zone=zone, request=PurgeCacheRequest(files=chunk)))
    for chunk in chunked(assignment.tags, PURGE_BATCH_LIMIT):
        calls.append(PurgeCall(zone=zone, request=PurgeCacheRequest(tags=chunk)))
    return calls


def make_purge_worker(
    client: CDNClient,
    *,
    hooks: PipelineHooks,
    quiet: bool = False,
) -> Worker[PurgeCall]:
    """Worker that issues one `PurgeCall` and reports its outcome."""

    async def purge_one(call: PurgeCall) -> WorkOutcome:
        zone = call.zone
        try:
            if call.request is None:
                await client.purge_everything(zone.id)
            else:
                await client.purge_cache(zone.id, call.request)
        except Exception as exc:
            message = f"Error purging {call.describe()} from {zone.name}: {exc}"
            logger.warning(message)
            hooks.emit_error(message)
            return WorkOutcome.failed(message)

        if not quiet:
            if call.request is None:
                hooks.emit_success(f"Purged everything from {zone.name}")
            else:
                hooks.emit_success(f"Purged {call.describe()} from {zone.name}")
        return WorkOutcome.succeeded()

    return purge_one


async def purge_zones(
    *,
    client: CDNClient,
    settings: AppSettings,
    options: PurgeOptions,
    hooks: PipelineHooks | None = None,
) -> PurgeResult:
    """Resolve target zones and purge them.

    Zones run in parallel, the calls of one zone run in order; a failed call
    never stops the remaining calls of its zone. Raises `ConfigurationError`
    when the options are unusable or no zone could be resolved.
    """

    hooks = hooks or PipelineHooks()
    options.validate()

    zones = await client.list_zones()
    index = ZoneIndex(zones)
    resolution = resolve_zones(
        index,
        explicit=options.zones,
        hosts=options.hosts,
        urls=options.urls,
        tags=options.tags,
        all_zones=options.all_zones,
    )
    for message in resolution.warnings:
        hooks.emit_warning(message)

    if not resolution.targets:
        raise ConfigurationError("No target zones resolved for the given arguments.")

    groups = [
        calls
        for calls in (
            build_purge_calls(assignment, everything=options.everything)
            for assignment in resolution.assignments.values()
        )
        if calls
    ]
    logger.debug("Purging %d zone(s) with %d call(s)", len(groups), sum(len(g) for g in groups))

    batch = await run_groups(
        groups,
        make_purge_worker(client, hooks=hooks, quiet=options.quiet),
        max_concurrency=settings.max_concurrency,
        timeout=settings.batch_timeout,
    )

    summary = Summary()
    summary.merge(batch)
    return PurgeResult(
        summary=summary,
        targets=list(resolution.targets),
        warnings=list(resolution.warnings),
    )
