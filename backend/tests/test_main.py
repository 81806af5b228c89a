"""Tests for process startup and shutdown."""
import pytest

import main
from schemas import PackListOptions


def test_sqlite_config_warns(caplog):
    with caplog.at_level("WARNING", logger="packplane"):
        assert main._check_startup_config() is False
    assert "SQLite" in caplog.text


@pytest.mark.asyncio
async def test_lifespan_creates_schema_and_yields_datastore():
    async with main.lifespan(create_schema=True) as ds:
        packs = await ds.list_packs(PackListOptions(include_system_packs=True))
        assert isinstance(packs, list)
