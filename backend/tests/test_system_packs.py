"""Tests for global and team schedule packs."""
import pytest

from datastore.system_packs import (
    global_schedule_name, team_id_from_pack_type, team_schedule_name, team_schedule_pack_type,
)
from errors import NotFound, ValidationError
from models import Pack
from schemas import PackListOptions, PackSpec, PackSpecTargets, TeamOut

ALL = PackListOptions(include_system_packs=True)


@pytest.mark.asyncio
async def test_ensure_global_pack(ds, all_hosts_label):
    assert await ds.list_packs(ALL) == []

    gp = await ds.ensure_global_pack()
    packs = await ds.list_packs(ALL)
    assert [p.id for p in packs] == [gp.id]
    assert gp.type == "global"
    assert gp.name == global_schedule_name()
    assert gp.label_ids == [all_hosts_label]

    again = await ds.ensure_global_pack()
    assert again.id == gp.id
    assert again == gp
    assert len(await ds.list_packs(ALL)) == 1


@pytest.mark.asyncio
async def test_ensure_global_pack_requires_all_hosts_label(ds):
    with pytest.raises(NotFound):
        await ds.ensure_global_pack()
    assert await ds.list_packs(ALL) == []


@pytest.mark.asyncio
async def test_system_packs_hidden_from_user_listing(ds, all_hosts_label):
    await ds.ensure_global_pack()
    assert await ds.list_packs() == []
    assert await ds.get_pack_specs() == []


@pytest.mark.asyncio
async def test_ensure_team_pack(ds):
    assert await ds.list_packs(ALL) == []

    with pytest.raises(NotFound):
        await ds.ensure_team_pack(12)

    team1 = await ds.new_team("team1")
    tp = await ds.ensure_team_pack(team1.id)

    packs = await ds.list_packs(ALL)
    assert [p.id for p in packs] == [tp.id]
    assert tp.name == team_schedule_name(team1)
    assert tp.type == f"team-{team1.id}"
    assert tp.team_ids == [team1.id]

    again = await ds.ensure_team_pack(team1.id)
    assert again.id == tp.id
    assert len(await ds.list_packs(ALL)) == 1

    team2 = await ds.new_team("team2")
    tp2 = await ds.ensure_team_pack(team2.id)
    packs = await ds.list_packs(ALL)
    assert [p.id for p in packs] == [tp.id, tp2.id]
    assert tp2.type == f"team-{team2.id}"
    assert tp2.team_ids == [team2.id]


@pytest.mark.asyncio
async def test_team_name_changes_team_schedule(ds):
    team1 = await ds.new_team("team1")
    tp = await ds.ensure_team_pack(team1.id)
    first_name = team_schedule_name(team1)
    assert tp.name == first_name

    team1 = await ds.save_team(team1.model_copy(update={"name": "new name!!"}))

    renamed = await ds.ensure_team_pack(team1.id)
    assert renamed.id == tp.id
    assert renamed.name != first_name
    assert renamed.name == team_schedule_name(team1)


async def insert_legacy_team_pack(session_factory, team):
    """Insert a team pack using the old naming scheme (name == type tag)"""
    async with session_factory() as db:
        db.add(Pack(
            name=team_schedule_pack_type(team),
            description="desc",
            platform="windows",
            disabled=False,
            pack_type=team_schedule_pack_type(team),
        ))
        await db.commit()


@pytest.mark.asyncio
async def test_team_schedule_names_migrate_to_new_format(ds, session_factory):
    team1 = await ds.new_team("team1")
    await insert_legacy_team_pack(session_factory, team1)
    legacy = (await ds.list_packs(ALL))[0]
    assert legacy.name == team_schedule_pack_type(team1)

    assert await ds.migrate_data() == 1
    assert await ds.migrate_data() == 0

    migrated = (await ds.list_packs(ALL))[0]
    assert migrated.id == legacy.id
    assert migrated.name == team_schedule_name(team1)

    tp = await ds.ensure_team_pack(team1.id)
    assert tp.id == legacy.id
    assert tp.name == team_schedule_name(team1)


@pytest.mark.asyncio
async def test_ensure_team_pack_repairs_legacy_name(ds, session_factory):
    team1 = await ds.new_team("team1")
    await insert_legacy_team_pack(session_factory, team1)

    tp = await ds.ensure_team_pack(team1.id)
    assert tp.name == team_schedule_name(team1)
    assert await ds.migrate_data() == 0


@pytest.mark.asyncio
async def test_migrate_data_skips_packs_of_deleted_teams(ds, session_factory):
    ghost = TeamOut(id=77, name="ghost")
    await insert_legacy_team_pack(session_factory, ghost)
    assert await ds.migrate_data() == 0
    assert (await ds.list_packs(ALL))[0].name == "team-77"


@pytest.mark.asyncio
async def test_migrate_data_on_empty_store(ds):
    assert await ds.migrate_data() == 0


def test_team_schedule_name_is_pure():
    team = TeamOut(id=3, name="blue")
    assert team_schedule_name(team) == team_schedule_name(TeamOut(id=3, name="blue"))
    assert team_schedule_name(team) != team_schedule_name(TeamOut(id=3, name="red"))
    assert team_schedule_pack_type(team) == "team-3"
    assert team_id_from_pack_type("team-3") == 3
    assert team_id_from_pack_type("global") is None
    assert team_id_from_pack_type("team-x") is None


@pytest.mark.asyncio
async def test_team_pack_cannot_be_applied_as_spec(ds):
    team = await ds.new_team("ops")
    tp = await ds.ensure_team_pack(team.id)

    with pytest.raises(ValidationError) as exc:
        await ds.apply_pack_specs([PackSpec(name=team_schedule_name(team))])
    assert exc.value.name == "Team: ops"

    again = await ds.ensure_team_pack(team.id)
    assert again == tp
    assert again.team_ids == [team.id]


@pytest.mark.asyncio
async def test_global_pack_cannot_be_applied_as_spec(ds, all_hosts_label, labels):
    gp = await ds.ensure_global_pack()

    with pytest.raises(ValidationError):
        await ds.apply_pack_specs([
            PackSpec(name="user_pack"),
            PackSpec(name="Global", disabled=True, targets=PackSpecTargets(labels=["foo"])),
        ])

    again = await ds.ensure_global_pack()
    assert again.label_ids == [all_hosts_label]
    assert again.disabled is False
    assert again == gp
    assert await ds.list_packs() == []
