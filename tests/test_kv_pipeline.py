import pytest

from conftest import FakeCDNClient, tagged

from core.config import AppSettings, ConfigurationError
from core.domain.models import KVKey, KVNamespace, Zone
from core.services.kv_pipeline import (
    KVPurgeOptions,
    list_all_keys,
    purge_kv_by_tag,
)


def _client(page_size: int | None = None) -> FakeCDNClient:
    return FakeCDNClient(
        zones=[Zone(id="z1", name="example.com"), Zone(id="z2", name="other.com")],
        namespaces=[KVNamespace(id="ns-a", title="A"), KVNamespace(id="ns-b", title="B")],
        keys={
            "ns-a": [
                tagged("page:1", "product-123"),
                tagged("page:2", "product-123-variant"),
                tagged("page:3", "product-456"),
                KVKey(name="plain"),
            ],
            "ns-b": [
                tagged("page:9", "product-123"),
                tagged("page:10", "unrelated"),
            ],
        },
        page_size=page_size,
    )


@pytest.mark.asyncio
async def test_deletes_matches_and_purges_unique_tags_everywhere(settings):
    client = _client()
    options = KVPurgeOptions.from_flags(tag="product-123", all_namespaces=True)

    result = await purge_kv_by_tag(client=client, settings=settings, options=options)

    assert sorted(client.deleted) == [("ns-a", "page:1"), ("ns-a", "page:2"), ("ns-b", "page:9")]
    assert result.tags == ["product-123", "product-123-variant"]
    assert sorted(zone_id for zone_id, _ in client.purge_calls) == ["z1", "z2"]
    assert all(req.tags == ["product-123", "product-123-variant"] for _, req in client.purge_calls)
    assert (result.deletions.success_count, result.deletions.failure_count) == (3, 0)
    assert (result.purge.success_count, result.purge.failure_count) == (2, 0)
    assert result.exit_code == 0


@pytest.mark.asyncio
async def test_dry_run_reports_same_keys_without_mutating(settings):
    dry_client = _client()
    dry = await purge_kv_by_tag(
        client=dry_client,
        settings=settings,
        options=KVPurgeOptions.from_flags(tag="product-123", all_namespaces=True, dry_run=True),
    )
    real = await purge_kv_by_tag(
        client=_client(),
        settings=settings,
        options=KVPurgeOptions.from_flags(tag="product-123", all_namespaces=True),
    )

    assert dry_client.deleted == []
    assert dry_client.purge_calls == []
    assert dry.dry_run
    assert dry.keys_to_delete == real.keys_to_delete
    assert dry.tags == real.tags


@pytest.mark.asyncio
async def test_keys_are_collected_across_pages(settings):
    client = _client(page_size=1)

    keys = await list_all_keys(client, "ns-a")

    assert [k.name for k in keys] == ["page:1", "page:2", "page:3", "plain"]
    assert [cursor for _, cursor in client.list_key_calls] == [None, "1", "2", "3"]


@pytest.mark.asyncio
async def test_listing_error_counts_one_failure_and_continues(settings):
    client = _client()
    client.fail_list_namespaces.add("ns-a")

    result = await purge_kv_by_tag(
        client=client,
        settings=settings,
        options=KVPurgeOptions.from_flags(tag="product-123", namespace="ns-a,ns-b", purge_cache=False),
    )

    assert client.deleted == [("ns-b", "page:9")]
    assert (result.deletions.success_count, result.deletions.failure_count) == (1, 1)
    assert result.scans[0].error
    assert result.exit_code == 1


@pytest.mark.asyncio
async def test_failed_deletion_is_counted(settings):
    client = _client()
    client.fail_delete_keys.add("page:2")

    result = await purge_kv_by_tag(
        client=client,
        settings=settings,
        options=KVPurgeOptions.from_flags(tag="product-123", namespace="ns-a", purge_cache=False),
    )

    assert (result.deletions.success_count, result.deletions.failure_count) == (1, 1)
    assert client.purge_calls == []


@pytest.mark.asyncio
async def test_zone_listing_failure_counts_against_purge(settings):
    client = _client()
    client.fail_list_zones = True

    result = await purge_kv_by_tag(
        client=client,
        settings=settings,
        options=KVPurgeOptions.from_flags(tag="product-456", namespace="ns-a"),
    )

    assert result.deletions.success_count == 1
    assert (result.purge.success_count, result.purge.failure_count) == (0, 1)
    assert result.exit_code == 1


@pytest.mark.asyncio
async def test_no_match_means_no_purge(settings):
    client = _client()

    result = await purge_kv_by_tag(
        client=client,
        settings=settings,
        options=KVPurgeOptions.from_flags(tag="missing", all_namespaces=True),
    )

    assert result.keys_to_delete == {}
    assert client.deleted == []
    assert client.purge_calls == []
    assert result.exit_code == 0


@pytest.mark.asyncio
async def test_all_namespaces_on_empty_account_is_an_error(settings):
    client = FakeCDNClient()

    with pytest.raises(ConfigurationError):
        await purge_kv_by_tag(
            client=client,
            settings=settings,
            options=KVPurgeOptions.from_flags(tag="t", all_namespaces=True),
        )


@pytest.mark.asyncio
async def test_missing_account_id_is_an_error(monkeypatch):
    monkeypatch.delenv("CLOUDFLARE_ACCOUNT_ID", raising=False)
    monkeypatch.delenv("CFPURGE_ACCOUNT_ID", raising=False)
    settings = AppSettings(_env_file=None, api_token="t")

    with pytest.raises(ConfigurationError):
        await purge_kv_by_tag(
            client=_client(),
            settings=settings,
            options=KVPurgeOptions.from_flags(tag="t", namespace="ns-a"),
        )


@pytest.mark.parametrize(
    "flags",
    [
        {"tag": "t", "namespace": "ns-a", "all_namespaces": True},
        {"tag": "t"},
        {"tag": "  ", "namespace": "ns-a"},
    ],
)
def test_validate_rejects_conflicting_or_missing_flags(flags):
    with pytest.raises(ConfigurationError):
        KVPurgeOptions.from_flags(**flags).validate()
