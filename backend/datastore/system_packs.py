# datastore/system_packs.py — Singleton global and per-team schedule packs
#
# A system pack is identified by its pack_type tag ("global", "team-<id>"),
# never by its name. The name is derived from the current scope identity and
# is repaired in place whenever it drifts, so the pack id stays stable.
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from datastore.directory import ALL_HOSTS_LABEL, get_team
from datastore.packs import load_pack_targets, replace_pack_targets
from datastore.queries import pack_summary
from errors import AlreadyExists, NotFound
from models import Label, LabelType, Pack, Team, utcnow
from schemas import PackOut, TeamOut

logger = logging.getLogger("packplane.system-packs")

GLOBAL_PACK_TYPE = "global"
GLOBAL_PACK_DESCRIPTION = "Global pack"
TEAM_PACK_TYPE_PREFIX = "team-"
TEAM_PACK_DESCRIPTION = "Schedule additional queries for all hosts assigned to this team."


# ============================================================
# NAME DERIVATION
# ============================================================

def global_schedule_name() -> str:
    return "Global"


def team_schedule_pack_type(team: TeamOut) -> str:
    return f"{TEAM_PACK_TYPE_PREFIX}{team.id}"


def team_schedule_name(team: TeamOut) -> str:
    return f"Team: {team.name}"


def team_id_from_pack_type(pack_type: str) -> Optional[int]:
    if not pack_type or not pack_type.startswith(TEAM_PACK_TYPE_PREFIX):
        return None
    try:
        return int(pack_type[len(TEAM_PACK_TYPE_PREFIX):])
    except ValueError:
        return None


# ============================================================
# HELPERS
# ============================================================

async def _pack_by_type(db: AsyncSession, pack_type: str) -> Optional[Pack]:
    result = await db.execute(select(Pack).where(Pack.pack_type == pack_type))
    return result.scalar_one_or_none()


async def _insert_system_pack(db: AsyncSession, name: str, description: str, pack_type: str) -> Pack:
    row = Pack(name=name, description=description, platform="", disabled=False, pack_type=pack_type)
    db.add(row)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyExists("Pack", name) from e
    return row


async def _rename(db: AsyncSession, row: Pack, name: str):
    old_name = row.name
    try:
        await db.execute(
            update(Pack).where(Pack.id == row.id).values(name=name, updated_at=utcnow())
        )
    except IntegrityError as e:
        raise AlreadyExists("Pack", name) from e
    row.name = name
    logger.info(f"Renamed system pack {row.id} ({row.pack_type}): '{old_name}' -> '{name}'")


async def _with_targets(db: AsyncSession, row: Pack) -> PackOut:
    pack = pack_summary(row)
    await load_pack_targets(db, [pack])
    return pack


# ============================================================
# ENSURE
# ============================================================

async def ensure_global_pack(db: AsyncSession) -> PackOut:
    """Return the global pack, creating it on first use"""
    row = await _pack_by_type(db, GLOBAL_PACK_TYPE)
    if row is not None:
        return await _with_targets(db, row)

    label_id = (await db.execute(
        select(Label.id).where(
            Label.name == ALL_HOSTS_LABEL,
            Label.label_type == LabelType.BUILTIN.value,
        )
    )).scalar_one_or_none()
    if label_id is None:
        raise NotFound("Label", name=ALL_HOSTS_LABEL)

    row = await _insert_system_pack(db, global_schedule_name(), GLOBAL_PACK_DESCRIPTION, GLOBAL_PACK_TYPE)
    await replace_pack_targets(db, row.id, label_ids=[label_id])
    logger.info(f"Created global pack (id={row.id})")
    return await _with_targets(db, row)


async def ensure_team_pack(db: AsyncSession, team_id: int) -> PackOut:
    """Return the team's pack, creating it or repairing its name as needed"""
    team = await get_team(db, team_id)
    pack_type = team_schedule_pack_type(team)
    expected_name = team_schedule_name(team)

    row = await _pack_by_type(db, pack_type)
    if row is None:
        row = await _insert_system_pack(db, expected_name, TEAM_PACK_DESCRIPTION, pack_type)
        await replace_pack_targets(db, row.id, team_ids=[team.id])
        logger.info(f"Created team pack for team {team.id} (id={row.id})")
    elif row.name != expected_name:
        await _rename(db, row, expected_name)

    return await _with_targets(db, row)


# ============================================================
# DATA MIGRATION
# ============================================================

async def migrate_data(db: AsyncSession) -> int:
    """Rename system packs still named after their scope tag. Idempotent.

    Returns the number of packs renamed. Team packs whose team no longer
    exists are left as they are.
    """
    result = await db.execute(
        select(Pack).where(Pack.pack_type.is_not(None), Pack.name == Pack.pack_type).order_by(Pack.id)
    )
    repaired = 0
    for row in result.scalars().all():
        if row.pack_type == GLOBAL_PACK_TYPE:
            await _rename(db, row, global_schedule_name())
            repaired += 1
            continue

        team_id = team_id_from_pack_type(row.pack_type)
        if team_id is None:
            logger.warning(f"Skipping pack {row.id}: unrecognised pack type '{row.pack_type}'")
            continue
        team = await db.get(Team, team_id)
        if team is None:
            logger.warning(f"Skipping pack {row.id}: team {team_id} no longer exists")
            continue
        await _rename(db, row, team_schedule_name(TeamOut(id=team.id, name=team.name)))
        repaired += 1

    if repaired:
        logger.info(f"Migrated {repaired} legacy system pack names")
    return repaired
