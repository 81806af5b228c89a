"""Tests for scoped transactions, deadlines and error wrapping."""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from database import check_deadline, deadline_in, read_session, scoped_transaction
from errors import BackendError, DeadlineExceeded, NotFound, ValidationError, wrap_backend_errors
from models import Team


async def count_teams(session_factory):
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(Team))).scalar_one()


@pytest.mark.asyncio
async def test_scoped_transaction_commits(session_factory):
    async with scoped_transaction(session_factory) as db:
        db.add(Team(name="ops"))
    assert await count_teams(session_factory) == 1


@pytest.mark.asyncio
async def test_scoped_transaction_rolls_back_on_error(session_factory):
    with pytest.raises(ValidationError):
        async with scoped_transaction(session_factory) as db:
            db.add(Team(name="ops"))
            await db.flush()
            raise ValidationError("nope")
    assert await count_teams(session_factory) == 0


@pytest.mark.asyncio
async def test_deadline_checked_before_commit(session_factory):
    with pytest.raises(DeadlineExceeded):
        async with scoped_transaction(session_factory, deadline_in(60)) as db:
            db.add(Team(name="ops"))
            await db.flush()
            db.info["deadline"] = deadline_in(-1)
    assert await count_teams(session_factory) == 0


@pytest.mark.asyncio
async def test_read_session_expired_deadline(session_factory):
    with pytest.raises(DeadlineExceeded):
        async with read_session(session_factory, deadline_in(-1)):
            pass

    async with read_session(session_factory) as db:
        check_deadline(db)


def test_wrap_backend_errors():
    with pytest.raises(BackendError) as exc:
        with wrap_backend_errors("list packs"):
            raise OperationalError("select 1", {}, Exception("connection refused"))
    assert exc.value.operation == "list packs"
    assert exc.value.code == "PKP-DB-001"
    assert exc.value.severity == "error"

    with pytest.raises(NotFound):
        with wrap_backend_errors("pack"):
            raise NotFound("pack", id=1)


def test_error_codes():
    assert ValidationError("bad").code == "PKP-SPEC-001"
    assert NotFound("query", name="foo").code == "PKP-DB-002"
    assert "'foo' was not found" in str(NotFound("query", name="foo"))
    assert DeadlineExceeded("x").code == "PKP-SYS-003"
    assert isinstance(DeadlineExceeded("x"), BackendError)


@pytest.mark.asyncio
async def test_datastore_surfaces_backend_errors(ds, db_engine):
    async with db_engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE packs")

    with pytest.raises(BackendError) as exc:
        await ds.list_packs()
    assert exc.value.operation == "list packs"
