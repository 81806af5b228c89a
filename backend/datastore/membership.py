# datastore/membership.py — Which packs apply to a host, computed per call
import logging
from typing import List, Optional

from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from datastore.packs import load_pack_targets
from datastore.queries import pack_summary
from models import Host, LabelMembership, Pack, PackTarget, TargetType
from schemas import PackListOptions, PackOut

logger = logging.getLogger("packplane.membership")


async def list_packs_for_host(db: AsyncSession, host_id: int) -> List[PackOut]:
    """Enabled packs with at least one satisfied target for the host.

    A label target is satisfied only by a recorded true result; labels that
    evaluated false or were never evaluated have no membership row. Each pack
    is returned once, in id order.
    """
    host_labels = select(LabelMembership.label_id).where(LabelMembership.host_id == host_id)
    host_team = select(Host.team_id).where(Host.id == host_id).scalar_subquery()

    matching_pack_ids = select(PackTarget.pack_id).where(or_(
        and_(PackTarget.type == int(TargetType.LABEL), PackTarget.target_id.in_(host_labels)),
        and_(PackTarget.type == int(TargetType.HOST), PackTarget.target_id == host_id),
        and_(PackTarget.type == int(TargetType.TEAM), PackTarget.target_id == host_team),
    ))

    result = await db.execute(
        select(Pack)
        .where(Pack.disabled.is_(False), Pack.id.in_(matching_pack_ids))
        .order_by(Pack.id)
    )
    packs = [pack_summary(row) for row in result.scalars().all()]
    await load_pack_targets(db, packs)
    logger.debug(f"Host {host_id} matches {len(packs)} packs")
    return packs


async def list_packs(db: AsyncSession, opts: Optional[PackListOptions] = None) -> List[PackOut]:
    opts = opts or PackListOptions()
    stmt = select(Pack).order_by(Pack.id)
    if not opts.include_system_packs:
        stmt = stmt.where(Pack.pack_type.is_(None))
    result = await db.execute(stmt)
    packs = [pack_summary(row) for row in result.scalars().all()]
    await load_pack_targets(db, packs)
    return packs
