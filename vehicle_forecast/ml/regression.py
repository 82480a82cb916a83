"""
Linear trend fitting and prediction for vehicle counts.

Each series (cars, motorcycles) is fitted independently with ordinary least
squares against an implicit time-step index 1..N rather than the calendar
year, so the fitted slope reads as "growth per year" regardless of which
years the records carry:

    slope     = (N*sum(xy) - sum(x)*sum(y)) / (N*sum(x^2) - sum(x)^2)
    intercept = (sum(y) - slope*sum(x)) / N

To predict a target year the year is mapped to the same index space,
``index = year - earliest_year + 1``, and the line is evaluated there.  No
bounds are applied: years before the first record (index <= 0) or far in
the future are extrapolated as-is, and the result may even be negative.

Nothing is cached; the fit is recomputed on every call.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Sequence

import numpy as np
import pandas as pd

from ..errors import ComputeError, NoDataError

logger = logging.getLogger(__name__)

SERIES_COLUMNS = ("mobil", "motor")


@dataclass(frozen=True)
class RegressionResult:
    """Fitted line ``y = slope * index + intercept``."""

    slope: float
    intercept: float

    def predict(self, index: float) -> float:
        return predict_value(index, self)


@dataclass(frozen=True)
class SeriesPrediction:
    """Raw prediction for one series plus the data shown to the user."""

    fit: RegressionResult
    index: int
    value: float

    @property
    def equation(self) -> str:
        return format_equation(self.fit, self.index)

    def detail(self) -> Dict[str, Any]:
        return {
            "slope": self.fit.slope,
            "intercept": self.fit.intercept,
            "equation": self.equation,
        }


def linear_regression(values: Sequence[float]) -> RegressionResult:
    """
    Fit a least-squares line to `values` indexed 1..N.

    :param values: observations ordered by time step.
    :raises ComputeError: if fewer than two observations are given or any
                          observation is not finite.
    """
    y = np.asarray(values, dtype=float)
    n = y.size
    if n < 2:
        raise ComputeError(f"At least two data points are required, got {n}")
    if not np.isfinite(y).all():
        raise ComputeError("Observations must be finite numbers")

    x = np.arange(1, n + 1, dtype=float)
    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_xx = (x * x).sum()

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n
    if not (np.isfinite(slope) and np.isfinite(intercept)):
        raise ComputeError("Observations are too large to fit")
    logger.debug("Fitted slope=%s intercept=%s over %d points", slope, intercept, n)
    return RegressionResult(slope=float(slope), intercept=float(intercept))


def series_index(target_year: int, earliest_year: int) -> int:
    """Position of `target_year` in the 1-based index space."""
    return int(target_year) - int(earliest_year) + 1


def predict_value(index: float, fit: RegressionResult) -> float:
    return fit.slope * index + fit.intercept


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def format_equation(fit: RegressionResult, index: int) -> str:
    return f"y = {fit.slope:.2f} × (tahun ke-{index}) + {fit.intercept:.2f}"


def predict_series(values: Sequence[float], target_year: int, earliest_year: int) -> SeriesPrediction:
    """Fit one series and evaluate it at `target_year`."""
    fit = linear_regression(values)
    index = series_index(target_year, earliest_year)
    try:
        value = predict_value(index, fit)
    except OverflowError as exc:
        raise ComputeError(f"Year {target_year} is out of range") from exc
    if not math.isfinite(value):
        raise ComputeError(f"Prediction for year {target_year} is not finite")
    return SeriesPrediction(fit=fit, index=index, value=value)


def predict_year(history: pd.DataFrame, target_year: int) -> Dict[str, Any]:
    """
    Predict car and motorcycle counts for `target_year`.

    :param history: frame with ``tahun``, ``mobil`` and ``motor`` columns.
    :returns: response payload with rounded point estimates, the total and
              per-series fit details.  ``total`` is rounded once from the
              sum of the raw predictions, not summed from rounded parts.
    :raises NoDataError: when `history` has no rows.
    """
    if history.empty:
        raise NoDataError("No historical data available")
    history = history.sort_values("tahun")
    earliest_year = int(history["tahun"].iloc[0])

    predictions = {
        column: predict_series(history[column].tolist(), target_year, earliest_year)
        for column in SERIES_COLUMNS
    }
    mobil = predictions["mobil"].value
    motor = predictions["motor"].value
    if not math.isfinite(mobil + motor):
        raise ComputeError(f"Total prediction for year {target_year} is not finite")
    return {
        "year": target_year,
        "mobil": round_half_up(mobil),
        "motor": round_half_up(motor),
        "total": round_half_up(mobil + motor),
        "details": {column: pred.detail() for column, pred in predictions.items()},
    }
