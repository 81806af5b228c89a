# datastore/directory.py — Label, team, host and author directory adapter
# These entities are owned by external collaborators (label management, team
# management, host enrollment). The pack core only needs name -> id lookups,
# snapshot reads and a writer for label evaluation results.
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import dialect_insert
from errors import AlreadyExists, NotFound
from models import Host, Label, LabelMembership, Team, User, utcnow
from schemas import HostOut, LabelOut, LabelSpec, TeamOut

ALL_HOSTS_LABEL = "All Hosts"


# ============================================================
# LABELS
# ============================================================

async def apply_label_specs(db: AsyncSession, specs: List[LabelSpec]):
    """Upsert labels by name"""
    if not specs:
        return
    for spec in specs:
        stmt = dialect_insert(db, Label.__table__).values(
            name=spec.name,
            description=spec.description,
            query=spec.query,
            platform=spec.platform,
            label_type=spec.label_type,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Label.__table__.c.name],
            set_={
                "description": stmt.excluded.description,
                "query": stmt.excluded.query,
                "platform": stmt.excluded.platform,
                "label_type": stmt.excluded.label_type,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)


async def label_ids_by_name(db: AsyncSession, names: Iterable[str]) -> Dict[str, int]:
    names = list(set(names))
    if not names:
        return {}
    result = await db.execute(select(Label.name, Label.id).where(Label.name.in_(names)))
    return {name: id_ for name, id_ in result.all()}


async def label_by_name(db: AsyncSession, name: str) -> LabelOut:
    row = (await db.execute(select(Label).where(Label.name == name))).scalar_one_or_none()
    if row is None:
        raise NotFound("Label", name=name)
    return LabelOut(
        id=row.id, name=row.name, description=row.description, query=row.query,
        platform=row.platform, label_type=row.label_type,
    )


async def record_label_query_executions(
    db: AsyncSession,
    host_id: int,
    results: Dict[int, Optional[bool]],
    updated_at: Optional[datetime] = None,
):
    """Record the latest evaluation result per label for one host.

    True inserts (or refreshes) the membership row. False and None (failed or
    unknown evaluation) remove it. Labels missing from `results` keep their
    previously recorded state.
    """
    updated_at = updated_at or utcnow()
    matched = [label_id for label_id, value in results.items() if value]
    unmatched = [label_id for label_id, value in results.items() if not value]

    for label_id in matched:
        stmt = dialect_insert(db, LabelMembership.__table__).values(
            host_id=host_id, label_id=label_id, updated_at=updated_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[LabelMembership.__table__.c.host_id, LabelMembership.__table__.c.label_id],
            set_={"updated_at": stmt.excluded.updated_at},
        )
        await db.execute(stmt)

    if unmatched:
        await db.execute(
            delete(LabelMembership).where(
                LabelMembership.host_id == host_id,
                LabelMembership.label_id.in_(unmatched),
            )
        )

    await db.execute(update(Host).where(Host.id == host_id).values(label_updated_at=updated_at))


# ============================================================
# TEAMS
# ============================================================

def _team_out(row: Team) -> TeamOut:
    return TeamOut(id=row.id, name=row.name, description=row.description or "")


async def new_team(db: AsyncSession, name: str, description: str = "") -> TeamOut:
    existing = await db.execute(select(Team.id).where(Team.name == name))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("Team", name)
    team = Team(name=name, description=description)
    db.add(team)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyExists("Team", name) from e
    return _team_out(team)


async def save_team(db: AsyncSession, team: TeamOut) -> TeamOut:
    result = await db.execute(
        update(Team).where(Team.id == team.id).values(
            name=team.name, description=team.description, updated_at=utcnow(),
        )
    )
    if result.rowcount == 0:
        raise NotFound("Team", id=team.id)
    return team


async def get_team(db: AsyncSession, team_id: int) -> TeamOut:
    row = await db.get(Team, team_id)
    if row is None:
        raise NotFound("Team", id=team_id)
    return _team_out(row)


async def team_ids_by_name(db: AsyncSession, names: Iterable[str]) -> Dict[str, int]:
    names = list(set(names))
    if not names:
        return {}
    result = await db.execute(select(Team.name, Team.id).where(Team.name.in_(names)))
    return {name: id_ for name, id_ in result.all()}


# ============================================================
# HOSTS
# ============================================================

def _host_out(row: Host) -> HostOut:
    return HostOut(
        id=row.id, hostname=row.hostname, team_id=row.team_id,
        label_updated_at=row.label_updated_at,
    )


async def new_host(db: AsyncSession, hostname: str, team_id: Optional[int] = None) -> HostOut:
    existing = await db.execute(select(Host.id).where(Host.hostname == hostname))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("Host", hostname)
    host = Host(hostname=hostname, team_id=team_id)
    db.add(host)
    await db.flush()
    return _host_out(host)


async def get_host(db: AsyncSession, host_id: int) -> HostOut:
    row = await db.get(Host, host_id)
    if row is None:
        raise NotFound("Host", id=host_id)
    return _host_out(row)


async def host_ids_by_hostname(db: AsyncSession, hostnames: Iterable[str]) -> Dict[str, int]:
    hostnames = list(set(hostnames))
    if not hostnames:
        return {}
    result = await db.execute(select(Host.hostname, Host.id).where(Host.hostname.in_(hostnames)))
    return {hostname: id_ for hostname, id_ in result.all()}


# ============================================================
# AUTHORS
# ============================================================

async def new_user(db: AsyncSession, name: str, email: str) -> int:
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("User", email)
    user = User(name=name, email=email)
    db.add(user)
    await db.flush()
    return user.id
