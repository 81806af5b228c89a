# datastore/queries.py — Named query definitions: bulk apply, point CRUD, listing
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import check_deadline, dialect_insert
from errors import AlreadyExists, NotFound, ValidationError
from models import Pack, Query, ScheduledQuery, User, utcnow
from schemas import ListOptions, PackOut, QueryCreate, QueryOut, QuerySpec, QueryUpdate

logger = logging.getLogger("packplane.queries")

# order_key -> sortable column
QUERY_ORDER_KEYS = {
    "id": Query.id,
    "name": Query.name,
    "description": Query.description,
    "created_at": Query.created_at,
    "updated_at": Query.updated_at,
}

_author_name = func.coalesce(func.nullif(User.name, ""), User.email, "").label("author_name")


# ============================================================
# HELPERS
# ============================================================

def pack_summary(row: Pack) -> PackOut:
    """PackOut for a pack row without its targets"""
    return PackOut(
        id=row.id,
        name=row.name,
        description=row.description or "",
        platform=row.platform or "",
        disabled=bool(row.disabled),
        type=row.pack_type or None,
    )


def _query_out(row: Query, author_name: Optional[str]) -> QueryOut:
    return QueryOut(
        id=row.id,
        name=row.name,
        description=row.description or "",
        query=row.query,
        author_id=row.author_id,
        author_name=author_name or "",
        saved=bool(row.saved),
        observer_can_run=bool(row.observer_can_run),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _select_with_author():
    return select(Query, _author_name).outerjoin(User, Query.author_id == User.id)


def _apply_list_options(stmt, opts: ListOptions):
    if opts.order_key:
        column = QUERY_ORDER_KEYS.get(opts.order_key)
        if column is None:
            raise ValidationError(f"invalid order key '{opts.order_key}'", name=opts.order_key)
        stmt = stmt.order_by(column.desc() if opts.order_direction == "desc" else column.asc())
    else:
        stmt = stmt.order_by(Query.id)
    if opts.per_page:
        stmt = stmt.limit(opts.per_page).offset(opts.page * opts.per_page)
    return stmt


async def saved_query_ids_by_name(db: AsyncSession, names: Iterable[str]) -> Dict[str, int]:
    """Resolve saved query names to their identifiers"""
    names = list(set(names))
    if not names:
        return {}
    result = await db.execute(
        select(Query.name, Query.id).where(Query.name.in_(names), Query.saved.is_(True))
    )
    return {name: id_ for name, id_ in result.all()}


# ============================================================
# BULK APPLY
# ============================================================

async def apply_queries(db: AsyncSession, author_id: Optional[int], queries: List[QuerySpec]):
    """Upsert queries by name. Identifier and created_at survive re-application."""
    seen = set()
    for q in queries:
        if not q.name:
            raise ValidationError("query name must not be empty")
        if q.name in seen:
            raise ValidationError(f"duplicate query name '{q.name}'", name=q.name)
        seen.add(q.name)

    for q in queries:
        check_deadline(db)
        now = utcnow()
        stmt = dialect_insert(db, Query.__table__).values(
            name=q.name,
            description=q.description,
            query=q.query,
            author_id=author_id,
            saved=True,
            observer_can_run=q.observer_can_run,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Query.__table__.c.name],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "query": stmt.excluded.query,
                "author_id": stmt.excluded.author_id,
                "saved": stmt.excluded.saved,
                "observer_can_run": stmt.excluded.observer_can_run,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)

    logger.info(f"Applied {len(queries)} queries (author_id={author_id})")


# ============================================================
# POINT CRUD
# ============================================================

async def new_query(db: AsyncSession, data: QueryCreate) -> QueryOut:
    if not data.name:
        raise ValidationError("query name must not be empty")

    existing = await db.execute(select(Query.id).where(Query.name == data.name))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyExists("Query", data.name)

    row = Query(
        name=data.name,
        description=data.description,
        query=data.query,
        saved=data.saved,
        author_id=data.author_id,
        observer_can_run=data.observer_can_run,
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyExists("Query", data.name) from e

    out = _query_out(row, None)
    out.packs = []
    return out


async def save_query(db: AsyncSession, data: QueryUpdate):
    if not data.name:
        raise ValidationError("query name must not be empty")
    try:
        result = await db.execute(
            update(Query).where(Query.id == data.id).values(
                name=data.name,
                description=data.description,
                query=data.query,
                author_id=data.author_id,
                saved=data.saved,
                observer_can_run=data.observer_can_run,
                updated_at=utcnow(),
            )
        )
    except IntegrityError as e:
        raise AlreadyExists("Query", data.name) from e
    if result.rowcount == 0:
        raise NotFound("Query", id=data.id)


async def delete_query(db: AsyncSession, name: str):
    query_id = (await db.execute(select(Query.id).where(Query.name == name))).scalar_one_or_none()
    if query_id is None:
        raise NotFound("Query", name=name)
    await db.execute(delete(ScheduledQuery).where(ScheduledQuery.query_id == query_id))
    await db.execute(delete(Query).where(Query.id == query_id))


async def delete_queries(db: AsyncSession, ids: List[int]) -> int:
    """Delete queries by id; absent ids are ignored. Returns rows removed."""
    if not ids:
        return 0
    await db.execute(delete(ScheduledQuery).where(ScheduledQuery.query_id.in_(ids)))
    result = await db.execute(delete(Query).where(Query.id.in_(ids)))
    return result.rowcount or 0


# ============================================================
# READS
# ============================================================

async def query_by_name(db: AsyncSession, name: str) -> QueryOut:
    result = await db.execute(_select_with_author().where(Query.name == name))
    row = result.first()
    if row is None:
        raise NotFound("Query", name=name)
    query = _query_out(row[0], row[1])
    await load_packs_for_queries(db, [query])
    return query


async def get_query(db: AsyncSession, query_id: int) -> QueryOut:
    result = await db.execute(_select_with_author().where(Query.id == query_id))
    row = result.first()
    if row is None:
        raise NotFound("Query", id=query_id)
    query = _query_out(row[0], row[1])
    await load_packs_for_queries(db, [query])
    return query


async def list_queries(db: AsyncSession, opts: Optional[ListOptions] = None) -> List[QueryOut]:
    """Saved queries only, each with the packs that schedule it"""
    stmt = _apply_list_options(
        _select_with_author().where(Query.saved.is_(True)),
        opts or ListOptions(),
    )
    result = await db.execute(stmt)
    queries = [_query_out(q, author_name) for q, author_name in result.all()]
    await load_packs_for_queries(db, queries)
    return queries


async def load_packs_for_queries(db: AsyncSession, queries: List[QueryOut]):
    """Attach the packs scheduling each query using one join for the whole set"""
    if not queries:
        return

    by_name: Dict[str, QueryOut] = {}
    for q in queries:
        q.packs = []
        by_name[q.name] = q

    check_deadline(db)
    stmt = (
        select(Pack, Query.name)
        .join(ScheduledQuery, ScheduledQuery.pack_id == Pack.id)
        .join(Query, Query.id == ScheduledQuery.query_id)
        .where(Query.name.in_(list(by_name)))
        .distinct()
        .order_by(Pack.id)
    )
    result = await db.execute(stmt)
    for pack, query_name in result.all():
        by_name[query_name].packs.append(pack_summary(pack))
