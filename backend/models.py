# models.py — Relational model for queries, packs and host targeting
# - Integer identifiers; names are unique external join keys
# - Pack targets in one link table, typed label/host/team
# - Scheduled queries reference queries by id, never by name
# - Execution stats live in their own table with no FK to scheduled queries,
#   so pack reapplication and stats ingestion never contend on the same rows

from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Boolean, BigInteger, Integer,
    ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class TargetType(int, PyEnum):
    LABEL = 0
    HOST = 1
    TEAM = 2


class LabelType(str, PyEnum):
    REGULAR = "regular"
    BUILTIN = "builtin"


# ============================================================
# DIRECTORY (owned by external collaborators)
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Host(Base):
    __tablename__ = "hosts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hostname = Column(String, unique=True, nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    label_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Label(Base):
    __tablename__ = "labels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    query = Column(Text, nullable=False, default="")
    platform = Column(String, nullable=False, default="")
    label_type = Column(String, nullable=False, default=LabelType.REGULAR.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class LabelMembership(Base):
    """A row exists iff the host's latest evaluation of the label was true"""
    __tablename__ = "label_membership"

    host_id = Column(Integer, primary_key=True)
    label_id = Column(Integer, primary_key=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_lm_label_id", "label_id"),
    )


# ============================================================
# QUERIES
# ============================================================

class Query(Base):
    __tablename__ = "queries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    query = Column(Text, nullable=False)
    author_id = Column(Integer, nullable=True, index=True)
    saved = Column(Boolean, nullable=False, default=False)
    observer_can_run = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# PACKS
# ============================================================

class Pack(Base):
    __tablename__ = "packs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    platform = Column(String, nullable=False, default="")
    disabled = Column(Boolean, nullable=False, default=False)
    pack_type = Column(String, nullable=True, unique=True)  # NULL = user pack
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PackTarget(Base):
    __tablename__ = "pack_targets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pack_id = Column(Integer, ForeignKey("packs.id", ondelete="CASCADE"), nullable=False)
    type = Column(Integer, nullable=False)  # TargetType
    target_id = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("pack_id", "type", "target_id", name="uq_pack_target"),
        Index("idx_pack_target_lookup", "type", "target_id"),
    )


class ScheduledQuery(Base):
    __tablename__ = "scheduled_queries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pack_id = Column(Integer, ForeignKey("packs.id", ondelete="CASCADE"), nullable=False, index=True)
    query_id = Column(Integer, ForeignKey("queries.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    interval = Column(Integer, nullable=False, default=0)
    snapshot = Column(Boolean, nullable=True)
    removed = Column(Boolean, nullable=True)
    shard = Column(Integer, nullable=True)
    platform = Column(String, nullable=True)
    version = Column(String, nullable=True)
    denylist = Column(Boolean, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("pack_id", "name", name="uq_scheduled_query_pack_name"),
    )


# ============================================================
# EXECUTION STATS (high-frequency write path)
# ============================================================

class ScheduledQueryStats(Base):
    __tablename__ = "scheduled_query_stats"

    host_id = Column(Integer, primary_key=True)
    scheduled_query_id = Column(Integer, primary_key=True)
    average_memory = Column(BigInteger, nullable=False, default=0)
    denylisted = Column(Boolean, nullable=False, default=False)
    executions = Column(BigInteger, nullable=False, default=0)
    schedule_interval = Column(Integer, nullable=False, default=0)
    last_executed = Column(DateTime(timezone=True), nullable=True)
    output_size = Column(BigInteger, nullable=False, default=0)
    system_time = Column(BigInteger, nullable=False, default=0)
    user_time = Column(BigInteger, nullable=False, default=0)
    wall_time = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index("idx_sqs_scheduled_query_id", "scheduled_query_id"),
    )
