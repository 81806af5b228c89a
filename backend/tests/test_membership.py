"""Tests for per-host pack membership."""
import pytest

from schemas import LabelSpec, PackSpec, PackSpecTargets


async def pack_names(ds, host_id):
    return [p.name for p in await ds.list_packs_for_host(host_id)]


@pytest.fixture
def foo_bar_labels():
    return [LabelSpec(name="foo"), LabelSpec(name="bar"), LabelSpec(name="bing")]


@pytest.mark.asyncio
async def test_list_packs_for_host(ds, foo_bar_labels):
    await ds.apply_label_specs(foo_bar_labels)
    labels = await ds.label_ids_by_name(["foo", "bar", "bing"])
    await ds.apply_pack_specs([
        PackSpec(name="foo_pack", targets=PackSpecTargets(labels=["foo", "bar", "bing"])),
        PackSpec(name="shmoo_pack", targets=PackSpecTargets(labels=["bar"])),
    ])
    h1 = await ds.new_host("h1.local")

    assert await pack_names(ds, h1.id) == []

    await ds.record_label_query_executions(h1.id, {labels["foo"]: True})
    assert await pack_names(ds, h1.id) == ["foo_pack"]

    await ds.record_label_query_executions(h1.id, {labels["bar"]: True})
    assert await pack_names(ds, h1.id) == ["foo_pack", "shmoo_pack"]

    await ds.record_label_query_executions(h1.id, {labels["foo"]: False})
    assert await pack_names(ds, h1.id) == ["foo_pack", "shmoo_pack"]

    await ds.record_label_query_executions(h1.id, {labels["bar"]: False})
    assert await pack_names(ds, h1.id) == []


@pytest.mark.asyncio
async def test_label_targets_are_ored(ds):
    await ds.apply_label_specs([LabelSpec(name="A"), LabelSpec(name="B")])
    labels = await ds.label_ids_by_name(["A", "B"])
    a, b = labels["A"], labels["B"]
    await ds.apply_pack_specs([PackSpec(name="P", targets=PackSpecTargets(labels=["A", "B"]))])
    h = await ds.new_host("h.local")

    await ds.record_label_query_executions(h.id, {a: True})
    assert await pack_names(ds, h.id) == ["P"]

    await ds.record_label_query_executions(h.id, {a: False, b: True})
    assert await pack_names(ds, h.id) == ["P"]

    await ds.record_label_query_executions(h.id, {a: True, b: True})
    assert await pack_names(ds, h.id) == ["P"]

    await ds.record_label_query_executions(h.id, {b: False, a: True})
    assert await pack_names(ds, h.id) == ["P"]

    await ds.record_label_query_executions(h.id, {a: False})
    assert await pack_names(ds, h.id) == []


@pytest.mark.asyncio
async def test_other_hosts_results_do_not_leak(ds):
    await ds.apply_label_specs([LabelSpec(name="A")])
    a = (await ds.label_ids_by_name(["A"]))["A"]
    await ds.apply_pack_specs([PackSpec(name="P", targets=PackSpecTargets(labels=["A"]))])
    h1 = await ds.new_host("h1.local")
    h2 = await ds.new_host("h2.local")

    await ds.record_label_query_executions(h2.id, {a: True})
    assert await pack_names(ds, h1.id) == []
    assert await pack_names(ds, h2.id) == ["P"]


@pytest.mark.asyncio
async def test_unknown_results_never_satisfy(ds):
    await ds.apply_label_specs([LabelSpec(name="A")])
    a = (await ds.label_ids_by_name(["A"]))["A"]
    await ds.apply_pack_specs([PackSpec(name="P", targets=PackSpecTargets(labels=["A"]))])
    h = await ds.new_host("h.local")

    await ds.record_label_query_executions(h.id, {a: None})
    assert await pack_names(ds, h.id) == []

    await ds.record_label_query_executions(h.id, {a: True})
    await ds.record_label_query_executions(h.id, {a: None})
    assert await pack_names(ds, h.id) == []
    assert (await ds.host(h.id)).label_updated_at is not None


@pytest.mark.asyncio
async def test_disabled_packs_are_excluded(ds):
    await ds.apply_label_specs([LabelSpec(name="A")])
    a = (await ds.label_ids_by_name(["A"]))["A"]
    h = await ds.new_host("h.local")
    await ds.record_label_query_executions(h.id, {a: True})

    await ds.apply_pack_specs([
        PackSpec(name="off", disabled=True, targets=PackSpecTargets(labels=["A"], hosts=["h.local"])),
        PackSpec(name="on", targets=PackSpecTargets(labels=["A"])),
    ])
    assert await pack_names(ds, h.id) == ["on"]


@pytest.mark.asyncio
async def test_host_and_team_targets(ds):
    team = await ds.new_team("ops")
    h1 = await ds.new_host("h1.local", team_id=team.id)
    h2 = await ds.new_host("h2.local")

    await ds.apply_pack_specs([
        PackSpec(name="by_host", targets=PackSpecTargets(hosts=["h2.local"])),
        PackSpec(name="by_team", targets=PackSpecTargets(teams=["ops"])),
        PackSpec(name="untargeted"),
    ])
    assert await pack_names(ds, h1.id) == ["by_team"]
    assert await pack_names(ds, h2.id) == ["by_host"]


@pytest.mark.asyncio
async def test_team_pack_applies_to_team_hosts(ds):
    team = await ds.new_team("ops")
    h = await ds.new_host("h.local", team_id=team.id)
    tp = await ds.ensure_team_pack(team.id)

    packs = await ds.list_packs_for_host(h.id)
    assert [p.id for p in packs] == [tp.id]
    assert packs[0].type == f"team-{team.id}"


@pytest.mark.asyncio
async def test_unknown_host_has_no_packs(ds):
    await ds.apply_pack_specs([PackSpec(name="P")])
    assert await ds.list_packs_for_host(404) == []
