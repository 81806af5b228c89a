# tests/conftest.py — Shared test fixtures
import os

import pytest
import pytest_asyncio

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["ENVIRONMENT"] = "test"

from database import create_engine, create_session_maker
from models import Base
from schemas import LabelSpec, PackSpec, PackSpecQuery, PackSpecTargets, QuerySpec
from store import Datastore


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def ds(session_factory):
    return Datastore(session_factory)


@pytest_asyncio.fixture
async def author(ds):
    """Create a query author"""
    return await ds.new_user("Zach", "zwass@example.com")


@pytest_asyncio.fixture
async def saved_queries(ds, author):
    """Two saved queries applied by the test author"""
    queries = [
        QuerySpec(name="foo", description="get the foos", query="select * from foo"),
        QuerySpec(name="bar", description="do some bars", query="select baz from bar"),
    ]
    await ds.apply_queries(author, queries)
    return queries


@pytest_asyncio.fixture
async def labels(ds):
    await ds.apply_label_specs([
        LabelSpec(name="foo", query="select * from foo"),
        LabelSpec(name="bar", query="select * from bar"),
        LabelSpec(name="bing", query="select * from bing"),
    ])
    return await ds.label_ids_by_name(["foo", "bar", "bing"])


@pytest_asyncio.fixture
async def all_hosts_label(ds):
    await ds.apply_label_specs([
        LabelSpec(name="All Hosts", query="select 1", label_type="builtin"),
    ])
    return (await ds.label_ids_by_name(["All Hosts"]))["All Hosts"]


def build_pack_specs(queries):
    return [
        PackSpec(
            name="test_pack",
            targets=PackSpecTargets(labels=["foo", "bar", "bing"]),
            queries=[
                PackSpecQuery(
                    query_name=queries[0].name,
                    name="q0",
                    description="test_foo",
                    interval=42,
                ),
                PackSpecQuery(
                    query_name=queries[0].name,
                    name="foo_snapshot",
                    interval=600,
                    snapshot=True,
                    denylist=False,
                ),
                PackSpecQuery(
                    name="q2",
                    query_name=queries[1].name,
                    interval=600,
                    removed=False,
                    shard=73,
                    platform="foobar",
                    version="0.0.0.0.0.1",
                    denylist=True,
                ),
            ],
        ),
        PackSpec(
            name="test_pack_disabled",
            disabled=True,
            targets=PackSpecTargets(labels=["foo", "bar", "bing"]),
            queries=[
                PackSpecQuery(
                    query_name=queries[0].name,
                    name="q0",
                    description="test_foo",
                    interval=42,
                ),
                PackSpecQuery(
                    query_name=queries[0].name,
                    name="foo_snapshot",
                    interval=600,
                    snapshot=True,
                ),
                PackSpecQuery(
                    name="q2",
                    query_name=queries[1].name,
                    interval=600,
                    removed=False,
                    shard=73,
                    platform="foobar",
                    version="0.0.0.0.0.1",
                ),
            ],
        ),
    ]


@pytest_asyncio.fixture
async def pack_specs(ds, saved_queries, labels):
    """Apply the two reference packs and return the specs as written"""
    specs = build_pack_specs(saved_queries)
    await ds.apply_pack_specs(specs)
    return specs


def without_ids(specs):
    return [s.model_copy(update={"id": None}) for s in specs]
