"""
Error types shared by the store, the predictor and the HTTP layer.

Each error carries the HTTP status code the API responds with, so handlers
in `main` can translate any of them into the ``{"error": ...}`` envelope
without inspecting the failure further.
"""

from __future__ import annotations


class VehicleForecastError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(VehicleForecastError):
    """Missing or conflicting input supplied by the caller."""

    status_code = 400


class DataSourceError(VehicleForecastError):
    """The active data source cannot serve historical reads."""

    status_code = 400


class NoDataError(VehicleForecastError):
    """There are no historical records to fit."""

    status_code = 400


class NotFoundError(VehicleForecastError):
    status_code = 404


class StoreError(VehicleForecastError):
    """Persistence failure. The message is safe to show to clients."""

    status_code = 500


class ComputeError(VehicleForecastError):
    """Regression or prediction could not be computed."""

    status_code = 500
