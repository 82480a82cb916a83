"""
CRUD operations over the historical data and data-source tables.

All functions take an open SQLAlchemy session and commit their own work.
Database failures are rolled back, logged with their traceback, and
re-raised as `StoreError` carrying a generic message, so callers never see
driver-specific error shapes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..db import DataSourceRecord, HistoricalRecord
from ..errors import NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)


@contextmanager
def _transaction(session: Session, failure: str) -> Iterator[None]:
    """Commit on success; roll back and raise StoreError on database errors."""
    try:
        yield
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(failure)
        raise StoreError(failure) from exc
    except Exception:
        session.rollback()
        raise


# ---------------------------------------------------------------------------
# Historical data

def list_records(session: Session) -> List[HistoricalRecord]:
    with _transaction(session, "Failed to fetch historical data"):
        return list(
            session.execute(select(HistoricalRecord).order_by(HistoricalRecord.tahun)).scalars()
        )


def get_record(session: Session, tahun: int) -> Optional[HistoricalRecord]:
    return session.execute(
        select(HistoricalRecord).where(HistoricalRecord.tahun == tahun)
    ).scalar_one_or_none()


def _require_record(session: Session, tahun: int) -> HistoricalRecord:
    record = get_record(session, tahun)
    if record is None:
        raise NotFoundError(f"Data for year {tahun} not found")
    return record


def create_record(session: Session, tahun: int, mobil: int, motor: int) -> HistoricalRecord:
    """
    Insert a new year.

    The uniqueness of ``tahun`` is checked before inserting so the caller
    gets a domain message instead of a constraint violation.
    """
    with _transaction(session, "Failed to create historical data"):
        if get_record(session, tahun) is not None:
            raise ValidationError(f"Data for year {tahun} already exists")
        record = HistoricalRecord(tahun=tahun, mobil=mobil, motor=motor)
        session.add(record)
        session.flush()
    logger.info("Created historical data for %s", tahun)
    return record


def update_record(session: Session, tahun: int, mobil: int, motor: int) -> HistoricalRecord:
    with _transaction(session, "Failed to update historical data"):
        record = _require_record(session, tahun)
        record.mobil = mobil
        record.motor = motor
    logger.info("Updated historical data for %s", tahun)
    return record


def delete_record(session: Session, tahun: int) -> None:
    with _transaction(session, "Failed to delete historical data"):
        record = _require_record(session, tahun)
        session.delete(record)
    logger.info("Deleted historical data for %s", tahun)


def seed_records(session: Session, rows: Iterable[Tuple[int, int, int]]) -> int:
    """Insert `rows` when the table is empty.  Returns the number inserted."""
    with _transaction(session, "Failed to seed historical data"):
        count = session.execute(select(func.count()).select_from(HistoricalRecord)).scalar_one()
        if count:
            return 0
        records = [HistoricalRecord(tahun=t, mobil=c, motor=m) for t, c, m in rows]
        session.add_all(records)
    logger.info("Seeded %d historical records", len(records))
    return len(records)


# ---------------------------------------------------------------------------
# Data sources

def list_data_sources(session: Session) -> List[Dict[str, object]]:
    with _transaction(session, "Failed to fetch data sources"):
        rows = session.execute(select(DataSourceRecord).order_by(DataSourceRecord.id)).scalars()
        return [row.to_dict() for row in rows]


def ensure_default_source(session: Session, name: str = config.DEFAULT_SOURCE_NAME) -> DataSourceRecord:
    """
    Upsert the default source.

    The default becomes active only when no other source is active, so a
    restart does not override an explicit switch.
    """
    with _transaction(session, "Failed to initialize data sources"):
        record = session.execute(
            select(DataSourceRecord).where(DataSourceRecord.name == name)
        ).scalar_one_or_none()
        if record is None:
            record = DataSourceRecord(name=name, is_active=False)
            session.add(record)
            session.flush()
        any_active = session.execute(
            select(func.count()).select_from(DataSourceRecord).where(DataSourceRecord.is_active.is_(True))
        ).scalar_one()
        if not any_active:
            record.is_active = True
    return record


def switch_data_source(session: Session, name: str) -> str:
    """
    Make `name` the only active source.

    Unknown names raise NotFoundError and leave the current selection in
    place.  The flag flip is a single UPDATE, so readers never observe a
    state with zero active sources.
    """
    with _transaction(session, "Failed to switch data source"):
        exists = session.execute(
            select(DataSourceRecord.id).where(DataSourceRecord.name == name)
        ).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Data source {name} not found")
        session.execute(
            update(DataSourceRecord)
            .values(is_active=(DataSourceRecord.name == name))
            .execution_options(synchronize_session=False)
        )
        session.expire_all()
    logger.info("Switched active data source to %s", name)
    return name
