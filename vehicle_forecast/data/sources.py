"""
Data source definitions for the vehicle forecast service.

Historical vehicle counts can come from more than one backing source.
Each source is an adapter subclassing `DataSource` whose `load` method
returns a pandas DataFrame with the following columns:

    tahun:   int, calendar year (unique within a source)
    mobil:   int, number of registered cars in that year
    motor:   int, number of registered motorcycles in that year

Rows are returned ordered by ``tahun`` ascending, which is the order the
regression consumes them in.  Which source is authoritative is recorded in
the ``data_sources`` table; only the ``database`` source serves reads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..db import DataSourceRecord, HistoricalRecord
from ..errors import DataSourceError, StoreError

logger = logging.getLogger(__name__)

HISTORICAL_COLUMNS = ["tahun", "mobil", "motor"]

# Registered vehicle counts for 2019-2023, used to seed an empty database.
STATIC_HISTORICAL_DATA: Tuple[Tuple[int, int, int], ...] = (
    (2019, 3310426, 15868191),
    (2020, 3365467, 16141380),
    (2021, 3544492, 16711638),
    (2022, 3772850, 17347866),
    (2023, 3836691, 18229176),
)


class DataSource:
    """Abstract base class for a data source."""

    name: str = ""

    def load(self) -> pd.DataFrame:
        """
        Return a pandas DataFrame containing all records from this source.

        Implementations should adhere to the column specification defined
        in this module.  An empty DataFrame is permitted; predictions made
        from it fail with a "no historical data" error.
        """
        raise NotImplementedError


def _empty_frame() -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype="int64") for col in HISTORICAL_COLUMNS})


def normalize_historical_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Validate the column set and return rows sorted by year."""
    missing = [col for col in HISTORICAL_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Historical data missing columns: {missing}")
    if df.empty:
        return _empty_frame()
    df = df[HISTORICAL_COLUMNS].dropna()
    if df["tahun"].duplicated().any():
        raise ValueError("Historical data contains duplicate years")
    return df.astype("int64").sort_values("tahun").reset_index(drop=True)


@dataclass
class DatabaseSource(DataSource):
    """Rows of the ``historical_data`` table."""

    session: Session = field(repr=False)
    name: str = config.DEFAULT_SOURCE_NAME

    def load(self) -> pd.DataFrame:
        stmt = select(
            HistoricalRecord.tahun, HistoricalRecord.mobil, HistoricalRecord.motor
        ).order_by(HistoricalRecord.tahun)
        try:
            df = pd.read_sql(stmt, self.session.connection())
        except SQLAlchemyError as exc:
            logger.exception("Failed to read historical data")
            raise StoreError("Failed to fetch historical data") from exc
        return normalize_historical_frame(df)


def load_historical(source: DataSource) -> pd.DataFrame:
    """Load a source and check that it honours the DataFrame contract."""
    df = source.load()
    if not isinstance(df, pd.DataFrame):
        raise TypeError(f"DataSource {source} returned non-DataFrame: {type(df)}")
    return df


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, int]]:
    """Convert a historical frame into JSON-ready dicts."""
    return [
        {"tahun": int(row.tahun), "mobil": int(row.mobil), "motor": int(row.motor)}
        for row in df.itertuples(index=False)
    ]


def resolve_active_source(session: Session) -> DataSource:
    """
    Return the adapter for the currently active source.

    Historical reads are only served from the database.  When no source is
    active, or another one is, `DataSourceError` is raised.
    """
    try:
        active = session.execute(
            select(DataSourceRecord.name).where(DataSourceRecord.is_active.is_(True))
        ).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to resolve active data source")
        raise StoreError("Failed to resolve active data source") from exc
    if active != [config.DEFAULT_SOURCE_NAME]:
        logger.warning("Active data source is %s, expected %s", active or "unset", config.DEFAULT_SOURCE_NAME)
        raise DataSourceError("Data source is not set to database")
    return DatabaseSource(session=session)
