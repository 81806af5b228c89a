# store.py — Datastore facade over the pack and query core
# Features:
# - One session and one scoped transaction per call; nothing shared between calls
# - Writes go to the writer; read paths may use a replica reader
# - Unclassified SQLAlchemy failures surface as BackendError with the operation name
# - Optional tracing span per call
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from database import async_read_session_maker, async_session_maker, read_session, scoped_transaction
from datastore import directory, membership, packs, queries, stats, system_packs
from errors import BackendError, wrap_backend_errors
from schemas import (
    HostOut, LabelOut, LabelSpec, ListOptions, PackCreate, PackListOptions, PackOut, PackSpec,
    PackStats, PackUpdate, QueryCreate, QueryOut, QuerySpec, QueryUpdate, ScheduledQueryOut, TeamOut,
)
from telemetry import span

logger = logging.getLogger("packplane.store")


class Datastore:
    """Synchronous request/response operations over the shared relational store"""

    def __init__(
        self,
        writer: Optional[async_sessionmaker] = None,
        reader: Optional[async_sessionmaker] = None,
    ):
        self.writer = writer or async_session_maker
        if reader is not None:
            self.reader = reader
        elif writer is not None:
            self.reader = writer
        else:
            self.reader = async_read_session_maker

    @asynccontextmanager
    async def _write(self, operation: str, deadline: Optional[float] = None, **attributes):
        try:
            with span(f"datastore.{operation}", **attributes), wrap_backend_errors(operation):
                async with scoped_transaction(self.writer, deadline) as db:
                    yield db
        except BackendError as e:
            logger.error(f"{operation} failed: {e}")
            raise

    @asynccontextmanager
    async def _read(self, operation: str, deadline: Optional[float] = None, **attributes):
        try:
            with span(f"datastore.{operation}", **attributes), wrap_backend_errors(operation):
                async with read_session(self.reader, deadline) as db:
                    yield db
        except BackendError as e:
            logger.error(f"{operation} failed: {e}")
            raise

    # ============================================================
    # QUERIES
    # ============================================================

    async def apply_queries(self, author_id: Optional[int], specs: List[QuerySpec], *, deadline: Optional[float] = None):
        async with self._write("apply queries", deadline, count=len(specs)) as db:
            await queries.apply_queries(db, author_id, specs)

    async def new_query(self, data: QueryCreate, *, deadline: Optional[float] = None) -> QueryOut:
        async with self._write("new query", deadline, query=data.name) as db:
            return await queries.new_query(db, data)

    async def save_query(self, data: QueryUpdate, *, deadline: Optional[float] = None):
        async with self._write("save query", deadline, query_id=data.id) as db:
            await queries.save_query(db, data)

    async def delete_query(self, name: str, *, deadline: Optional[float] = None):
        async with self._write("delete query", deadline, query=name) as db:
            await queries.delete_query(db, name)

    async def delete_queries(self, ids: List[int], *, deadline: Optional[float] = None) -> int:
        async with self._write("delete queries", deadline, count=len(ids)) as db:
            return await queries.delete_queries(db, ids)

    async def query_by_name(self, name: str, *, deadline: Optional[float] = None) -> QueryOut:
        async with self._read("query by name", deadline, query=name) as db:
            return await queries.query_by_name(db, name)

    async def query(self, query_id: int, *, deadline: Optional[float] = None) -> QueryOut:
        async with self._read("query", deadline, query_id=query_id) as db:
            return await queries.get_query(db, query_id)

    async def list_queries(self, opts: Optional[ListOptions] = None, *, deadline: Optional[float] = None) -> List[QueryOut]:
        async with self._read("list queries", deadline) as db:
            return await queries.list_queries(db, opts)

    # ============================================================
    # PACK SPECS
    # ============================================================

    async def apply_pack_specs(self, specs: List[PackSpec], *, deadline: Optional[float] = None):
        """Apply every spec or none of them"""
        async with self._write("apply pack specs", deadline, count=len(specs)) as db:
            await packs.apply_pack_specs(db, specs)

    async def get_pack_spec(self, name: str, *, deadline: Optional[float] = None) -> PackSpec:
        async with self._read("get pack spec", deadline, pack=name) as db:
            return await packs.get_pack_spec(db, name)

    async def get_pack_specs(self, *, deadline: Optional[float] = None) -> List[PackSpec]:
        async with self._read("get pack specs", deadline) as db:
            return await packs.get_pack_specs(db)

    async def new_pack(self, data: PackCreate, *, deadline: Optional[float] = None) -> PackOut:
        async with self._write("new pack", deadline, pack=data.name) as db:
            return await packs.new_pack(db, data)

    async def save_pack(self, data: PackUpdate, *, deadline: Optional[float] = None):
        async with self._write("save pack", deadline, pack_id=data.id) as db:
            await packs.save_pack(db, data)

    async def pack(self, pack_id: int, *, deadline: Optional[float] = None) -> PackOut:
        async with self._read("pack", deadline, pack_id=pack_id) as db:
            return await packs.get_pack(db, pack_id)

    async def pack_by_name(self, name: str, *, deadline: Optional[float] = None) -> Optional[PackOut]:
        async with self._read("pack by name", deadline, pack=name) as db:
            return await packs.pack_by_name(db, name)

    async def delete_pack(self, name: str, *, deadline: Optional[float] = None):
        async with self._write("delete pack", deadline, pack=name) as db:
            await packs.delete_pack(db, name)

    async def list_scheduled_queries_in_pack(self, pack_id: int, *, deadline: Optional[float] = None) -> List[ScheduledQueryOut]:
        async with self._read("list scheduled queries in pack", deadline, pack_id=pack_id) as db:
            return await packs.list_scheduled_queries_in_pack(db, pack_id)

    # ============================================================
    # MEMBERSHIP
    # ============================================================

    async def list_packs(self, opts: Optional[PackListOptions] = None, *, deadline: Optional[float] = None) -> List[PackOut]:
        async with self._read("list packs", deadline) as db:
            return await membership.list_packs(db, opts)

    async def list_packs_for_host(self, host_id: int, *, deadline: Optional[float] = None) -> List[PackOut]:
        async with self._read("list packs for host", deadline, host_id=host_id) as db:
            return await membership.list_packs_for_host(db, host_id)

    # ============================================================
    # SYSTEM PACKS
    # ============================================================

    async def ensure_global_pack(self, *, deadline: Optional[float] = None) -> PackOut:
        async with self._write("ensure global pack", deadline) as db:
            return await system_packs.ensure_global_pack(db)

    async def ensure_team_pack(self, team_id: int, *, deadline: Optional[float] = None) -> PackOut:
        async with self._write("ensure team pack", deadline, team_id=team_id) as db:
            return await system_packs.ensure_team_pack(db, team_id)

    async def migrate_data(self, *, deadline: Optional[float] = None) -> int:
        async with self._write("migrate data", deadline) as db:
            return await system_packs.migrate_data(db)

    # ============================================================
    # EXECUTION STATS
    # ============================================================

    async def save_host_pack_stats(self, host_id: int, pack_stats: List[PackStats], *, deadline: Optional[float] = None):
        async with self._write("save host pack stats", deadline, host_id=host_id, count=len(pack_stats)) as db:
            await stats.save_host_pack_stats(db, host_id, pack_stats)

    async def load_host_pack_stats(self, host_id: int, *, deadline: Optional[float] = None) -> List[PackStats]:
        async with self._read("load host pack stats", deadline, host_id=host_id) as db:
            return await stats.load_host_pack_stats(db, host_id)

    # ============================================================
    # DIRECTORY
    # ============================================================

    async def apply_label_specs(self, specs: List[LabelSpec]):
        async with self._write("apply label specs") as db:
            await directory.apply_label_specs(db, specs)

    async def label_ids_by_name(self, names: List[str]) -> Dict[str, int]:
        async with self._read("label ids by name") as db:
            return await directory.label_ids_by_name(db, names)

    async def label_by_name(self, name: str) -> LabelOut:
        async with self._read("label by name") as db:
            return await directory.label_by_name(db, name)

    async def record_label_query_executions(
        self, host_id: int, results: Dict[int, Optional[bool]], updated_at: Optional[datetime] = None,
    ):
        async with self._write("record label query executions", host_id=host_id, count=len(results)) as db:
            await directory.record_label_query_executions(db, host_id, results, updated_at)

    async def new_team(self, name: str, description: str = "") -> TeamOut:
        async with self._write("new team") as db:
            return await directory.new_team(db, name, description)

    async def save_team(self, team: TeamOut) -> TeamOut:
        async with self._write("save team", team_id=team.id) as db:
            return await directory.save_team(db, team)

    async def team(self, team_id: int) -> TeamOut:
        async with self._read("team") as db:
            return await directory.get_team(db, team_id)

    async def new_host(self, hostname: str, team_id: Optional[int] = None) -> HostOut:
        async with self._write("new host") as db:
            return await directory.new_host(db, hostname, team_id)

    async def host(self, host_id: int) -> HostOut:
        async with self._read("host") as db:
            return await directory.get_host(db, host_id)

    async def new_user(self, name: str, email: str) -> int:
        async with self._write("new user") as db:
            return await directory.new_user(db, name, email)
