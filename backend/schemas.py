# schemas.py — Documents for query and pack definitions, targets and execution stats
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


# ============================================================
# LIST OPTIONS
# ============================================================

class ListOptions(BaseModel):
    page: int = Field(0, ge=0)
    per_page: int = Field(0, ge=0)  # 0 = no limit
    order_key: str = ""
    order_direction: str = Field("asc", pattern="^(asc|desc)$")


class PackListOptions(BaseModel):
    include_system_packs: bool = False


# ============================================================
# QUERIES
# ============================================================

class QuerySpec(BaseModel):
    name: str
    description: str = ""
    query: str = ""
    observer_can_run: bool = False


class QueryCreate(QuerySpec):
    saved: bool = False
    author_id: Optional[int] = None


class QueryUpdate(QueryCreate):
    id: int


class PackOut(BaseModel):
    id: int
    name: str
    description: str = ""
    platform: str = ""
    disabled: bool = False
    type: Optional[str] = None  # None = user pack, "global", "team-<id>"
    label_ids: List[int] = []
    host_ids: List[int] = []
    team_ids: List[int] = []


class QueryOut(BaseModel):
    id: int
    name: str
    description: str = ""
    query: str
    author_id: Optional[int] = None
    author_name: str = ""
    saved: bool
    observer_can_run: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    packs: List[PackOut] = []


# ============================================================
# PACKS
# ============================================================

class PackCreate(BaseModel):
    name: str
    description: str = ""
    platform: str = ""
    disabled: bool = False
    label_ids: List[int] = Field(default_factory=list)
    host_ids: List[int] = Field(default_factory=list)
    team_ids: List[int] = Field(default_factory=list)


class PackUpdate(PackCreate):
    id: int


class PackSpecTargets(BaseModel):
    labels: List[str] = Field(default_factory=list)
    teams: List[str] = Field(default_factory=list)
    hosts: List[str] = Field(default_factory=list)


class PackSpecQuery(BaseModel):
    """One scheduled query override; None on an optional field means unset"""
    query_name: str
    name: str = ""
    description: str = ""
    interval: int = 0
    snapshot: Optional[bool] = None
    removed: Optional[bool] = None
    shard: Optional[int] = None
    platform: Optional[str] = None
    version: Optional[str] = None
    denylist: Optional[bool] = None


class PackSpec(BaseModel):
    id: Optional[int] = None
    name: str
    description: str = ""
    platform: str = ""
    disabled: bool = False
    targets: PackSpecTargets = Field(default_factory=PackSpecTargets)
    queries: List[PackSpecQuery] = Field(default_factory=list)


class ScheduledQueryOut(BaseModel):
    id: int
    pack_id: int
    query_id: int
    query_name: str
    name: str
    description: str = ""
    interval: int = 0
    snapshot: Optional[bool] = None
    removed: Optional[bool] = None
    shard: Optional[int] = None
    platform: Optional[str] = None
    version: Optional[str] = None
    denylist: Optional[bool] = None


# ============================================================
# EXECUTION STATS
# ============================================================

class ScheduledQueryStats(BaseModel):
    scheduled_query_id: int
    scheduled_query_name: str = ""
    query_name: str = ""
    average_memory: int = 0
    denylisted: bool = False
    executions: int = 0
    interval: int = 0
    last_executed: Optional[datetime] = None
    output_size: int = 0
    system_time: int = 0
    user_time: int = 0
    wall_time: int = 0


class PackStats(BaseModel):
    pack_id: int
    pack_name: str = ""
    query_stats: List[ScheduledQueryStats] = Field(default_factory=list)


# ============================================================
# DIRECTORY
# ============================================================

class LabelSpec(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    query: str = ""
    platform: str = ""
    label_type: str = Field("regular", pattern="^(regular|builtin)$")


class LabelOut(LabelSpec):
    id: int


class TeamOut(BaseModel):
    id: int
    name: str
    description: str = ""


class HostOut(BaseModel):
    id: int
    hostname: str
    team_id: Optional[int] = None
    label_updated_at: Optional[datetime] = None
