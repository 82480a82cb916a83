"""
Relational storage for historical vehicle counts and data-source flags.

Two tables are defined:

    historical_data:  one row per calendar year (``tahun``) with the number
                      of registered cars (``mobil``) and motorcycles
                      (``motor``).  ``tahun`` is unique.
    data_sources:     named backing sources with an ``is_active`` flag.  At
                      most one row is active at a time.

The engine and session factory are created from ``config.DATABASE_URL``.
Request handlers obtain a session through `get_session`, which tests
override to point at a temporary database.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from . import config

Base = declarative_base()


class HistoricalRecord(Base):
    __tablename__ = "historical_data"
    __table_args__ = (
        CheckConstraint("mobil >= 0", name="ck_historical_mobil_non_negative"),
        CheckConstraint("motor >= 0", name="ck_historical_motor_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    tahun = Column(Integer, nullable=False, unique=True, index=True)
    mobil = Column(Integer, nullable=False)
    motor = Column(Integer, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"tahun": self.tahun, "mobil": self.mobil, "motor": self.motor}


class DataSourceRecord(Base):
    __tablename__ = "data_sources"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "isActive": bool(self.is_active)}


def create_db_engine(url: str) -> Engine:
    """Create an engine, allowing SQLite connections to cross threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


def init_db(bind: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False, future=True)


engine = create_db_engine(config.DATABASE_URL)
SessionLocal = make_session_factory(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
