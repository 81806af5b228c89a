# datastore/stats.py — Per-host scheduled query execution stats
#
# Stats are written far more often than packs are applied. Each write is a
# single multi-row upsert into scheduled_query_stats, a table with no foreign
# key to scheduled_queries, so it never waits on a pack re-application.
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import dialect_insert
from models import Pack, Query, ScheduledQuery
from models import ScheduledQueryStats as StatsRow
from schemas import PackStats, ScheduledQueryStats


async def save_host_pack_stats(db: AsyncSession, host_id: int, pack_stats: List[PackStats]):
    rows: Dict[int, dict] = {}
    for pack in pack_stats:
        for s in pack.query_stats:
            rows[s.scheduled_query_id] = {
                "host_id": host_id,
                "scheduled_query_id": s.scheduled_query_id,
                "average_memory": s.average_memory,
                "denylisted": s.denylisted,
                "executions": s.executions,
                "schedule_interval": s.interval,
                "last_executed": s.last_executed,
                "output_size": s.output_size,
                "system_time": s.system_time,
                "user_time": s.user_time,
                "wall_time": s.wall_time,
            }
    if not rows:
        return

    stmt = dialect_insert(db, StatsRow.__table__)
    stmt = stmt.on_conflict_do_update(
        index_elements=[StatsRow.__table__.c.host_id, StatsRow.__table__.c.scheduled_query_id],
        set_={
            column: getattr(stmt.excluded, column)
            for column in (
                "average_memory", "denylisted", "executions", "schedule_interval",
                "last_executed", "output_size", "system_time", "user_time", "wall_time",
            )
        },
    )
    await db.execute(stmt, list(rows.values()))


async def load_host_pack_stats(db: AsyncSession, host_id: int) -> List[PackStats]:
    """Stats for scheduled queries that still exist, grouped by pack"""
    result = await db.execute(
        select(StatsRow, ScheduledQuery, Pack.name, Query.name)
        .join(ScheduledQuery, ScheduledQuery.id == StatsRow.scheduled_query_id)
        .join(Pack, Pack.id == ScheduledQuery.pack_id)
        .join(Query, Query.id == ScheduledQuery.query_id)
        .where(StatsRow.host_id == host_id)
        .order_by(Pack.id, ScheduledQuery.position, ScheduledQuery.id)
    )

    packs: Dict[int, PackStats] = {}
    for stats, sq, pack_name, query_name in result.all():
        pack = packs.setdefault(sq.pack_id, PackStats(pack_id=sq.pack_id, pack_name=pack_name))
        pack.query_stats.append(ScheduledQueryStats(
            scheduled_query_id=sq.id,
            scheduled_query_name=sq.name,
            query_name=query_name,
            average_memory=stats.average_memory,
            denylisted=stats.denylisted,
            executions=stats.executions,
            interval=stats.schedule_interval,
            last_executed=stats.last_executed,
            output_size=stats.output_size,
            system_time=stats.system_time,
            user_time=stats.user_time,
            wall_time=stats.wall_time,
        ))
    return list(packs.values())
