import pytest

from conftest import FakeCDNClient

from core.config import ConfigurationError
from core.domain.models import Zone
from core.services.purge_pipeline import (
    PipelineHooks,
    PurgeOptions,
    build_purge_calls,
    purge_zones,
)
from core.services.zone_resolver import ZoneAssignment


class RecordingHooks(PipelineHooks):
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        super().__init__(
            info=lambda m: self.events.append(("info", m)),
            success=lambda m: self.events.append(("success", m)),
            warning=lambda m: self.events.append(("warning", m)),
            error=lambda m: self.events.append(("error", m)),
        )

    def of(self, kind: str) -> list[str]:
        return [m for k, m in self.events if k == kind]


@pytest.mark.asyncio
async def test_hosts_across_two_zones(settings):
    client = FakeCDNClient(zones=[Zone(id="z1", name="example.com"), Zone(id="z2", name="other.com")])
    options = PurgeOptions.from_flags(hosts="api.example.com,cdn.other.com")

    result = await purge_zones(client=client, settings=settings, options=options)

    assert (result.summary.success_count, result.summary.failure_count) == (2, 0)
    assert result.summary.exit_code == 0
    sent = sorted((zone_id, req.hosts) for zone_id, req in client.purge_calls)
    assert sent == [("z1", ["api.example.com"]), ("z2", ["cdn.other.com"])]


@pytest.mark.asyncio
async def test_tags_on_all_zones_with_one_failing_zone(settings, fake_client):
    fake_client.fail_purge = lambda zone_id, request: zone_id == "z-other"
    hooks = RecordingHooks()
    options = PurgeOptions.from_flags(tags="t1,t2", all_zones=True)

    result = await purge_zones(client=fake_client, settings=settings, options=options, hooks=hooks)

    assert len(fake_client.purge_calls) == 3
    assert all(req.tags == ["t1", "t2"] for _, req in fake_client.purge_calls)
    assert (result.summary.success_count, result.summary.failure_count) == (2, 1)
    assert result.summary.exit_code == 1
    assert len(hooks.of("error")) == 1
    assert "other.com" in hooks.of("error")[0]


@pytest.mark.asyncio
async def test_everything_on_explicit_zones(settings, fake_client):
    hooks = RecordingHooks()
    options = PurgeOptions.from_flags(zones=["example.com", "z-third"], everything=True)

    result = await purge_zones(client=fake_client, settings=settings, options=options, hooks=hooks)

    assert sorted(fake_client.purge_calls) == [("z-example", None), ("z-third", None)]
    assert result.summary.success_count == 2
    assert "Purged everything from example.com" in hooks.of("success")


@pytest.mark.asyncio
async def test_targeted_zone_without_payload_is_not_called(settings, fake_client):
    options = PurgeOptions.from_flags(zones=["example.com", "other.com"], hosts="www.example.com")

    result = await purge_zones(client=fake_client, settings=settings, options=options)

    assert [zone_id for zone_id, _ in fake_client.purge_calls] == ["z-example"]
    assert result.summary.total == 1


@pytest.mark.asyncio
async def test_unknown_zone_is_warned_and_others_still_purged(settings, fake_client):
    hooks = RecordingHooks()
    options = PurgeOptions.from_flags(zones=["example.com", "ghost.com"], tags="t1")

    result = await purge_zones(client=fake_client, settings=settings, options=options, hooks=hooks)

    assert "Zone 'ghost.com' not found" in hooks.of("warning")
    assert result.summary.success_count == 1


@pytest.mark.asyncio
async def test_no_resolved_target_is_a_configuration_error(settings, fake_client):
    options = PurgeOptions.from_flags(hosts="www.unknown.net")

    with pytest.raises(ConfigurationError):
        await purge_zones(client=fake_client, settings=settings, options=options)
    assert fake_client.purge_calls == []


@pytest.mark.asyncio
async def test_failed_tag_chunk_does_not_stop_the_zone(settings, fake_client):
    tags = ",".join(f"tag-{i}" for i in range(65))
    fake_client.fail_purge = lambda zone_id, request: request is not None and request.tags[0] == "tag-0"
    options = PurgeOptions.from_flags(zones=["example.com"], tags=tags)

    result = await purge_zones(client=fake_client, settings=settings, options=options)

    assert [len(req.tags) for _, req in fake_client.purge_calls] == [30, 30, 5]
    assert (result.summary.success_count, result.summary.failure_count) == (2, 1)


@pytest.mark.asyncio
async def test_quiet_suppresses_success_lines(settings, fake_client):
    hooks = RecordingHooks()
    options = PurgeOptions.from_flags(tags="t1", all_zones=True, quiet=True)

    await purge_zones(client=fake_client, settings=settings, options=options, hooks=hooks)

    assert hooks.of("success") == []


def test_build_purge_calls_separates_types_and_chunks():
    assignment = ZoneAssignment(
        zone=Zone(id="z", name="example.com"),
        hosts=[f"h{i}.example.com" for i in range(31)],
        urls=["https://example.com/a"],
        tags=["t1"],
    )

    calls = build_purge_calls(assignment, everything=False)

    assert [c.describe().split(":")[0] for c in calls] == ["hosts", "hosts", "URLs", "tags"]
    assert len(calls[0].request.hosts) == 30
    assert build_purge_calls(ZoneAssignment(zone=assignment.zone), everything=False) == []
    assert [c.request for c in build_purge_calls(assignment, everything=True)] == [None]


@pytest.mark.parametrize(
    "flags",
    [
        {},
        {"zones": ["example.com"]},
        {"all_zones": True, "quiet": True},
    ],
)
def test_validate_rejects_incomplete_options(flags):
    with pytest.raises(ConfigurationError):
        PurgeOptions.from_flags(**flags).validate()


def test_from_flags_splits_csv_values():
    options = PurgeOptions.from_flags(zones=[" a.com ", ""], hosts="x.a.com, y.a.com,", urls=None)

    assert list(options.zones) == ["a.com"]
    assert options.hosts == ["x.a.com", "y.a.com"]
    assert options.urls == []
