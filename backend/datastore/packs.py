# datastore/packs.py — Pack spec reconciliation and pack CRUD
#
# Spec documents address labels, teams, hosts and queries by name. Every name
# is resolved to an identifier before any write; all joins after that point
# use identifiers only.
#
# Scheduled queries are upserted by (pack_id, name) rather than deleted and
# re-created, so entries that survive a re-application keep their id and the
# per-host stats recorded against that id.
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import check_deadline, dialect_insert
from datastore.directory import host_ids_by_hostname, label_ids_by_name, team_ids_by_name
from datastore.queries import pack_summary, saved_query_ids_by_name
from errors import AlreadyExists, NotFound, ValidationError
from models import Host, Label, Pack, PackTarget, Query, ScheduledQuery, TargetType, Team, utcnow
from schemas import (
    PackCreate, PackOut, PackSpec, PackSpecQuery, PackSpecTargets, PackUpdate, ScheduledQueryOut,
)

logger = logging.getLogger("packplane.packs")


# ============================================================
# TARGETS
# ============================================================

async def replace_pack_targets(
    db: AsyncSession,
    pack_id: int,
    label_ids: Iterable[int] = (),
    host_ids: Iterable[int] = (),
    team_ids: Iterable[int] = (),
):
    """Replace every target of a pack; insertion order is preserved"""
    check_deadline(db)
    await db.execute(delete(PackTarget).where(PackTarget.pack_id == pack_id))

    rows = []
    for target_type, ids in (
        (TargetType.LABEL, label_ids),
        (TargetType.HOST, host_ids),
        (TargetType.TEAM, team_ids),
    ):
        seen = set()
        for target_id in ids:
            if target_id in seen:
                continue
            seen.add(target_id)
            rows.append({"pack_id": pack_id, "type": int(target_type), "target_id": target_id})
    if rows:
        check_deadline(db)
        await db.execute(PackTarget.__table__.insert(), rows)


async def load_pack_targets(db: AsyncSession, packs: List[PackOut]):
    """Fill label/host/team ids for a set of packs with one query"""
    if not packs:
        return
    by_id = {p.id: p for p in packs}
    for p in packs:
        p.label_ids, p.host_ids, p.team_ids = [], [], []

    result = await db.execute(
        select(PackTarget.pack_id, PackTarget.type, PackTarget.target_id)
        .where(PackTarget.pack_id.in_(list(by_id)))
        .order_by(PackTarget.id)
    )
    for pack_id, target_type, target_id in result.all():
        pack = by_id[pack_id]
        if target_type == TargetType.LABEL:
            pack.label_ids.append(target_id)
        elif target_type == TargetType.HOST:
            pack.host_ids.append(target_id)
        elif target_type == TargetType.TEAM:
            pack.team_ids.append(target_id)


# ============================================================
# SPEC APPLICATION
# ============================================================

def _entry_name(entry: PackSpecQuery) -> str:
    return entry.name or entry.query_name


def _require_all(kind: str, names: Iterable[str], resolved: Dict[str, int]) -> List[int]:
    ids = []
    for name in names:
        if name not in resolved:
            raise ValidationError(f"unknown {kind} '{name}'", name=name)
        ids.append(resolved[name])
    return ids


def _validate_specs(specs: List[PackSpec]):
    seen_packs = set()
    for spec in specs:
        if not spec.name:
            raise ValidationError("pack name must not be empty")
        if spec.name in seen_packs:
            raise ValidationError(f"duplicate pack name '{spec.name}'", name=spec.name)
        seen_packs.add(spec.name)

        seen_entries = set()
        for entry in spec.queries:
            if not entry.query_name:
                raise ValidationError(f"scheduled query in pack '{spec.name}' is missing a query name")
            name = _entry_name(entry)
            if name in seen_entries:
                raise ValidationError(
                    f"duplicate scheduled query name '{name}' in pack '{spec.name}'", name=name,
                )
            seen_entries.add(name)


async def _reject_system_pack_names(db: AsyncSession, names: List[str]):
    """Global and team packs are owned by their scope and never spec-managed"""
    if not names:
        return
    result = await db.execute(
        select(Pack.name, Pack.pack_type)
        .where(Pack.name.in_(names), Pack.pack_type.is_not(None))
        .order_by(Pack.id)
    )
    row = result.first()
    if row is not None:
        raise ValidationError(
            f"pack '{row.name}' is a system pack ({row.pack_type}) and cannot be applied as a spec",
            name=row.name,
        )


async def apply_pack_specs(db: AsyncSession, specs: List[PackSpec]):
    """Make the stored packs match `specs`.

    Each named pack has its targets and scheduled queries fully replaced.
    Raises ValidationError before writing anything if a spec references an
    unknown label, team, host or saved query, or names a system pack.
    Atomicity across the batch is the caller's transaction.
    """
    _validate_specs(specs)
    await _reject_system_pack_names(db, [s.name for s in specs])

    labels = await label_ids_by_name(db, (n for s in specs for n in s.targets.labels))
    teams = await team_ids_by_name(db, (n for s in specs for n in s.targets.teams))
    hosts = await host_ids_by_hostname(db, (n for s in specs for n in s.targets.hosts))
    queries = await saved_query_ids_by_name(db, (e.query_name for s in specs for e in s.queries))

    resolved = []
    for spec in specs:
        label_ids = _require_all("label", spec.targets.labels, labels)
        team_ids = _require_all("team", spec.targets.teams, teams)
        host_ids = _require_all("host", spec.targets.hosts, hosts)
        query_ids = _require_all("query", (e.query_name for e in spec.queries), queries)
        resolved.append((spec, label_ids, host_ids, team_ids, query_ids))

    for spec, label_ids, host_ids, team_ids, query_ids in resolved:
        pack_id = await _upsert_pack_row(db, spec)
        await replace_pack_targets(db, pack_id, label_ids, host_ids, team_ids)
        await _replace_scheduled_queries(db, pack_id, spec.queries, query_ids)

    logger.info(f"Applied {len(specs)} pack specs: {', '.join(s.name for s in specs)}")


async def _upsert_pack_row(db: AsyncSession, spec: PackSpec) -> int:
    check_deadline(db)
    now = utcnow()
    stmt = dialect_insert(db, Pack.__table__).values(
        name=spec.name,
        description=spec.description,
        platform=spec.platform,
        disabled=spec.disabled,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Pack.__table__.c.name],
        set_={
            "description": stmt.excluded.description,
            "platform": stmt.excluded.platform,
            "disabled": stmt.excluded.disabled,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)
    result = await db.execute(select(Pack.id).where(Pack.name == spec.name))
    return result.scalar_one()


async def _replace_scheduled_queries(
    db: AsyncSession, pack_id: int, entries: List[PackSpecQuery], query_ids: List[int],
):
    names = []
    for position, (entry, query_id) in enumerate(zip(entries, query_ids)):
        check_deadline(db)
        name = _entry_name(entry)
        names.append(name)
        stmt = dialect_insert(db, ScheduledQuery.__table__).values(
            pack_id=pack_id,
            query_id=query_id,
            name=name,
            description=entry.description,
            interval=entry.interval,
            snapshot=entry.snapshot,
            removed=entry.removed,
            shard=entry.shard,
            platform=entry.platform,
            version=entry.version,
            denylist=entry.denylist,
            position=position,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[ScheduledQuery.__table__.c.pack_id, ScheduledQuery.__table__.c.name],
            set_={
                "query_id": excluded.query_id,
                "description": excluded.description,
                "interval": excluded.interval,
                "snapshot": excluded.snapshot,
                "removed": excluded.removed,
                "shard": excluded.shard,
                "platform": excluded.platform,
                "version": excluded.version,
                "denylist": excluded.denylist,
                "position": excluded.position,
                "updated_at": excluded.updated_at,
            },
        )
        await db.execute(stmt)

    check_deadline(db)
    stale = delete(ScheduledQuery).where(ScheduledQuery.pack_id == pack_id)
    if names:
        stale = stale.where(ScheduledQuery.name.not_in(names))
    await db.execute(stale)


# ============================================================
# SPEC PROJECTION
# ============================================================

async def _specs_for_rows(db: AsyncSession, rows: List[Pack]) -> List[PackSpec]:
    if not rows:
        return []
    specs = {
        row.id: PackSpec(
            id=row.id,
            name=row.name,
            description=row.description or "",
            platform=row.platform or "",
            disabled=bool(row.disabled),
            targets=PackSpecTargets(),
            queries=[],
        )
        for row in rows
    }
    pack_ids = list(specs)

    label_targets = await db.execute(
        select(PackTarget.pack_id, Label.name)
        .join(Label, Label.id == PackTarget.target_id)
        .where(PackTarget.pack_id.in_(pack_ids), PackTarget.type == int(TargetType.LABEL))
        .order_by(PackTarget.id)
    )
    for pack_id, name in label_targets.all():
        specs[pack_id].targets.labels.append(name)

    team_targets = await db.execute(
        select(PackTarget.pack_id, Team.name)
        .join(Team, Team.id == PackTarget.target_id)
        .where(PackTarget.pack_id.in_(pack_ids), PackTarget.type == int(TargetType.TEAM))
        .order_by(PackTarget.id)
    )
    for pack_id, name in team_targets.all():
        specs[pack_id].targets.teams.append(name)

    host_targets = await db.execute(
        select(PackTarget.pack_id, Host.hostname)
        .join(Host, Host.id == PackTarget.target_id)
        .where(PackTarget.pack_id.in_(pack_ids), PackTarget.type == int(TargetType.HOST))
        .order_by(PackTarget.id)
    )
    for pack_id, hostname in host_targets.all():
        specs[pack_id].targets.hosts.append(hostname)

    entries = await db.execute(
        select(ScheduledQuery, Query.name)
        .join(Query, Query.id == ScheduledQuery.query_id)
        .where(ScheduledQuery.pack_id.in_(pack_ids))
        .order_by(ScheduledQuery.pack_id, ScheduledQuery.position, ScheduledQuery.id)
    )
    for sq, query_name in entries.all():
        specs[sq.pack_id].queries.append(PackSpecQuery(
            query_name=query_name,
            name=sq.name,
            description=sq.description or "",
            interval=sq.interval,
            snapshot=sq.snapshot,
            removed=sq.removed,
            shard=sq.shard,
            platform=sq.platform,
            version=sq.version,
            denylist=sq.denylist,
        ))

    return [specs[row.id] for row in rows]


async def get_pack_spec(db: AsyncSession, name: str) -> PackSpec:
    row = (await db.execute(select(Pack).where(Pack.name == name))).scalar_one_or_none()
    if row is None:
        raise NotFound("Pack", name=name)
    return (await _specs_for_rows(db, [row]))[0]


async def get_pack_specs(db: AsyncSession) -> List[PackSpec]:
    """Specs for every user pack; system packs are not spec-managed"""
    result = await db.execute(
        select(Pack).where(Pack.pack_type.is_(None)).order_by(Pack.id)
    )
    return await _specs_for_rows(db, list(result.scalars().all()))


# ============================================================
# POINT CRUD
# ============================================================

async def new_pack(db: AsyncSession, data: PackCreate) -> PackOut:
    if not data.name:
        raise ValidationError("pack name must not be empty")
    existing = await db.execute(select(Pack.id).where(Pack.name == data.name))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("Pack", data.name)

    row = Pack(
        name=data.name,
        description=data.description,
        platform=data.platform,
        disabled=data.disabled,
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyExists("Pack", data.name) from e

    await replace_pack_targets(db, row.id, data.label_ids, data.host_ids, data.team_ids)
    return await get_pack(db, row.id)


async def save_pack(db: AsyncSession, data: PackUpdate):
    if not data.name:
        raise ValidationError("pack name must not be empty")
    try:
        result = await db.execute(
            update(Pack).where(Pack.id == data.id).values(
                name=data.name,
                description=data.description,
                platform=data.platform,
                disabled=data.disabled,
                updated_at=utcnow(),
            )
        )
    except IntegrityError as e:
        raise AlreadyExists("Pack", data.name) from e
    if result.rowcount == 0:
        raise NotFound("Pack", id=data.id)
    await replace_pack_targets(db, data.id, data.label_ids, data.host_ids, data.team_ids)


async def get_pack(db: AsyncSession, pack_id: int) -> PackOut:
    row = (await db.execute(select(Pack).where(Pack.id == pack_id))).scalar_one_or_none()
    if row is None:
        raise NotFound("Pack", id=pack_id)
    pack = pack_summary(row)
    await load_pack_targets(db, [pack])
    return pack


async def pack_by_name(db: AsyncSession, name: str) -> Optional[PackOut]:
    row = (await db.execute(select(Pack).where(Pack.name == name))).scalar_one_or_none()
    if row is None:
        return None
    pack = pack_summary(row)
    await load_pack_targets(db, [pack])
    return pack


async def delete_pack(db: AsyncSession, name: str):
    pack_id = (await db.execute(select(Pack.id).where(Pack.name == name))).scalar_one_or_none()
    if pack_id is None:
        raise NotFound("Pack", name=name)
    await db.execute(delete(PackTarget).where(PackTarget.pack_id == pack_id))
    await db.execute(delete(ScheduledQuery).where(ScheduledQuery.pack_id == pack_id))
    await db.execute(delete(Pack).where(Pack.id == pack_id))
    logger.info(f"Deleted pack '{name}' (id={pack_id})")


async def list_scheduled_queries_in_pack(db: AsyncSession, pack_id: int) -> List[ScheduledQueryOut]:
    result = await db.execute(
        select(ScheduledQuery, Query.name)
        .join(Query, Query.id == ScheduledQuery.query_id)
        .where(ScheduledQuery.pack_id == pack_id)
        .order_by(ScheduledQuery.position, ScheduledQuery.id)
    )
    return [
        ScheduledQueryOut(
            id=sq.id,
            pack_id=sq.pack_id,
            query_id=sq.query_id,
            query_name=query_name,
            name=sq.name,
            description=sq.description or "",
            interval=sq.interval,
            snapshot=sq.snapshot,
            removed=sq.removed,
            shard=sq.shard,
            platform=sq.platform,
            version=sq.version,
            denylist=sq.denylist,
        )
        for sq, query_name in result.all()
    ]
