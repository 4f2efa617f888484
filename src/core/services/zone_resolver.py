"""Zone resolution: which zones are targeted and which hosts/URLs go where.

The zone snapshot is indexed once (`ZoneIndex`) and every host or URL is
assigned to at most one zone: the one with the longest matching name. Hosts
match by domain suffix, URLs by substring containment. Both rules are loose
and kept as-is:
- host suffixes ignore label boundaries, so `notexample.com` matches zone
  `example.com`;
- a URL whose path segment contains a zone name can match that zone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from core.domain.models import Zone


def split_comma_list(value: str | Iterable[str] | None) -> list[str]:
    """Split a comma separated flag value, dropping blanks and duplicates."""

    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    seen: set[str] = set()
    out: list[str] = []
    for part in parts:
        item = part.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


class ZoneIndex:
    """Immutable lookup structure over one zone snapshot."""

    def __init__(self, zones: Iterable[Zone]) -> None:
        self._zones: tuple[Zone, ...] = tuple(zones)
        self._by_name: dict[str, Zone] = {}
        self._by_id: dict[str, Zone] = {}
        for zone in self._zones:
            self._by_name.setdefault(zone.name.lower(), zone)
            self._by_id.setdefault(zone.id, zone)
        # Longest names first so the first hit is the most specific zone.
        self._by_length: tuple[Zone, ...] = tuple(
            sorted(self._zones, key=lambda z: len(z.name), reverse=True)
        )

    @property
    def zones(self) -> tuple[Zone, ...]:
        return self._zones

    def __len__(self) -> int:
        return len(self._zones)

    def lookup(self, name_or_id: str) -> Zone | None:
        """Exact match by zone id or by zone name."""

        key = name_or_id.strip()
        return self._by_id.get(key) or self._by_name.get(key.lower())

    def match_host(self, host: str) -> Zone | None:
        """Zone whose name is the longest suffix of `host`."""

        candidate = host.strip().lower()
        for zone in self._by_length:
            if candidate.endswith(zone.name.lower()):
                return zone
        return None

    def match_url(self, url: str) -> Zone | None:
        """Zone whose name is the longest substring of `url`."""

        candidate = url.strip().lower()
        for zone in self._by_length:
            if zone.name.lower() in candidate:
                return zone
        return None


@dataclass
class ZoneAssignment:
    """Hosts, URLs and tags that will be purged from one zone."""

    zone: Zone
    hosts: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def add_host(self, host: str) -> None:
        if host not in self.hosts:
            self.hosts.append(host)

    def add_url(self, url: str) -> None:
        if url not in self.urls:
            self.urls.append(url)

    def is_empty(self) -> bool:
        return not (self.hosts or self.urls or self.tags)


@dataclass
class ResolveResult:
    """Output of `resolve_zones`."""

    targets: list[Zone] = field(default_factory=list)
    assignments: dict[str, ZoneAssignment] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def resolve_zones(
    zones: ZoneIndex | Iterable[Zone],
    *,
    explicit: Sequence[str] = (),
    hosts: Sequence[str] = (),
    urls: Sequence[str] = (),
    tags: Sequence[str] = (),
    all_zones: bool = False,
) -> ResolveResult:
    """Resolve the target zone set and the per-zone assignments.

    Target selection, first rule that applies:
    - `all_zones`: every zone of the snapshot.
    - `explicit`: each argument matched by exact name or id; unknown ones are
      reported as warnings and skipped.
    - otherwise: the zones that at least one host or URL was assigned to.

    Tags are account-wide and are attached to every targeted zone. The
    returned `assignments` contains exactly one entry per target, keyed by
    zone name, in target order.
    """

    index = zones if isinstance(zones, ZoneIndex) else ZoneIndex(zones)
    result = ResolveResult()

    matched: dict[str, ZoneAssignment] = {}
    for host in hosts:
        zone = index.match_host(host)
        if zone is None:
            result.warnings.append(f"No zone matches host '{host}'")
            continue
        matched.setdefault(zone.name, ZoneAssignment(zone=zone)).add_host(host)

    for url in urls:
        zone = index.match_url(url)
        if zone is None:
            result.warnings.append(f"No zone matches URL '{url}'")
            continue
        matched.setdefault(zone.name, ZoneAssignment(zone=zone)).add_url(url)

    if all_zones:
        targets = list(index.zones)
    elif explicit:
        targets = []
        for arg in explicit:
            zone = index.lookup(arg)
            if zone is None:
                result.warnings.append(f"Zone '{arg}' not found")
                continue
            if zone not in targets:
                targets.append(zone)
    else:
        targets = [assignment.zone for assignment in matched.values()]

    target_names = {zone.name for zone in targets}
    for name, assignment in matched.items():
        if name in target_names:
            continue
        for item in [*assignment.hosts, *assignment.urls]:
            result.warnings.append(f"'{item}' belongs to zone '{name}', which is not targeted")

    tag_list = split_comma_list(tags)
    for zone in targets:
        assignment = matched.get(zone.name) or ZoneAssignment(zone=zone)
        assignment.tags = list(tag_list)
        result.assignments[zone.name] = assignment

    result.targets = targets
    return result
