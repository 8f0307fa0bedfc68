"""
Finsight — Market News Persistence
───────────────────────────────────
Two tables, both written only by the MarketNewsManager:

  market_news_context   one row per (tier, origin), origin ∈ {auto, manual}.
                        Upserted in place, never deleted.
  market_news_history   append-only audit log, one row per mutation.

Upserts go through the dialect's INSERT … ON CONFLICT DO UPDATE on the
(tier, origin) unique key, so a concurrent auto refresh and manual edit
never race on read-modify-write. Last write wins on last_update.

DATABASE_URL defaults to a local SQLite file; PostgreSQL works unchanged.
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, create_engine, select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

log = logging.getLogger("fs.news.database")

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///market_news.db")

ORIGIN_AUTO   = "auto"
ORIGIN_MANUAL = "manual"

CHANGE_AUTO_UPDATE = "auto_update"
CHANGE_MANUAL_EDIT = "manual_edit"

Base = declarative_base()


def utcnow() -> datetime:
    # Naive UTC: SQLite drops tzinfo on the way back anyway.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MarketNewsContextRow(Base):
    __tablename__ = "market_news_context"
    __table_args__ = (
        UniqueConstraint("tier", "origin", name="uq_market_news_tier_origin"),
    )

    id              = Column(Integer, primary_key=True, autoincrement=True)
    tier            = Column(String(20), nullable=False, index=True)
    origin          = Column(String(10), nullable=False)
    context_text    = Column(Text, nullable=False)
    raw_data        = Column(JSON)
    data_sources    = Column(JSON, nullable=False, default=list)
    key_events      = Column(JSON, nullable=False, default=list)
    available_tiers = Column(JSON, nullable=False, default=list)
    is_active       = Column(Boolean, nullable=False, default=True)
    manual_override = Column(Boolean, nullable=False, default=False)
    last_edited_by  = Column(String(255))
    last_update     = Column(DateTime, nullable=False, index=True)
    created_at      = Column(DateTime, nullable=False)

    @property
    def context_key(self) -> str:
        return f"{self.origin}-{self.tier}"

    def __repr__(self):
        return f"<MarketNewsContext({self.context_key}, updated={self.last_update})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id":              self.id,
            "context_key":     self.context_key,
            "tier":            self.tier,
            "origin":          self.origin,
            "context_text":    self.context_text,
            "data_sources":    self.data_sources or [],
            "key_events":      self.key_events or [],
            "available_tiers": self.available_tiers or [],
            "is_active":       self.is_active,
            "manual_override": self.manual_override,
            "last_edited_by":  self.last_edited_by,
            "last_update":     self.last_update.isoformat() if self.last_update else None,
            "created_at":      self.created_at.isoformat() if self.created_at else None,
        }


class MarketNewsHistoryRow(Base):
    __tablename__ = "market_news_history"

    id            = Column(Integer, primary_key=True, autoincrement=True)
    context_id    = Column(Integer, ForeignKey("market_news_context.id"), nullable=False, index=True)
    context_text  = Column(Text, nullable=False)
    data_sources  = Column(JSON, nullable=False, default=list)
    key_events    = Column(JSON, nullable=False, default=list)
    change_type   = Column(String(20), nullable=False)
    change_reason = Column(Text)
    changed_by    = Column(String(255))
    created_at    = Column(DateTime, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id":            self.id,
            "context_id":    self.context_id,
            "context_text":  self.context_text,
            "data_sources":  self.data_sources or [],
            "key_events":    self.key_events or [],
            "change_type":   self.change_type,
            "change_reason": self.change_reason,
            "changed_by":    self.changed_by,
            "created_at":    self.created_at.isoformat() if self.created_at else None,
        }


Index("idx_market_news_history_created", MarketNewsHistoryRow.context_id, MarketNewsHistoryRow.created_at)


# ── Engine / sessions ─────────────────────────────────────────

class MarketNewsStore:
    """Engine plus session factory for the two market news tables."""

    def __init__(self, database_url: str = None, echo: bool = False):
        self.url = database_url or DATABASE_URL
        if self.url.startswith("sqlite"):
            self.engine = create_engine(
                self.url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=echo,
            )
        else:
            self.engine = create_engine(self.url, pool_pre_ping=True, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False,
                                             expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)
        log.info(f"Market news tables ready ({self.engine.dialect.name})")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            log.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()


def upsert_context(session: Session, values: Dict[str, Any]) -> int:
    """INSERT … ON CONFLICT (tier, origin) DO UPDATE. Returns the row id."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"No upsert support for dialect {dialect!r}")

    stmt = insert(MarketNewsContextRow).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["tier", "origin"],
        set_={k: stmt.excluded[k] for k in values if k not in ("tier", "origin", "created_at")},
    ).returning(MarketNewsContextRow.id)
    return session.execute(stmt).scalar_one()


def active_contexts(session: Session):
    stmt = (
        select(MarketNewsContextRow)
        .where(MarketNewsContextRow.is_active.is_(True))
        .order_by(MarketNewsContextRow.last_update.desc(), MarketNewsContextRow.id.desc())
    )
    return session.execute(stmt).scalars().all()
