"""
FastAPI application for the vehicle population forecast service.

This module defines the JSON API over the historical vehicle counts, the
data-source switch and the prediction endpoint, and serves the single page
front end for every other GET request.

Usage:
    uvicorn vehicle_forecast.main:app --reload --host 0.0.0.0 --port 5000
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .data import store
from .data.sources import STATIC_HISTORICAL_DATA, frame_to_records, load_historical, resolve_active_source
from .db import SessionLocal, engine, get_session, init_db
from .errors import ComputeError, NoDataError, ValidationError, VehicleForecastError
from .ml.regression import predict_year

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application state

app = FastAPI(title="Vehicle Forecast", docs_url=None, redoc_url=None)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


# ---------------------------------------------------------------------------
# Request models

class HistoricalDataCreate(BaseModel):
    tahun: int
    mobil: int = Field(..., ge=0)
    motor: int = Field(..., ge=0)


class HistoricalDataUpdate(BaseModel):
    mobil: int = Field(..., ge=0)
    motor: int = Field(..., ge=0)


class SwitchSourceRequest(BaseModel):
    sourceName: Optional[str] = None


class PredictRequest(BaseModel):
    year: Optional[int] = None


# ---------------------------------------------------------------------------
# Error handlers

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(VehicleForecastError)
async def handle_app_error(request: Request, exc: VehicleForecastError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request: " + "; ".join(problems))


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"msg": "Not Found"})
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong!")


# ---------------------------------------------------------------------------
# Startup

def initialize_database(session: Session, seed: bool = config.SEED_DATA) -> None:
    """Create the default data source and optionally seed an empty table."""
    store.ensure_default_source(session)
    if seed:
        store.seed_records(session, STATIC_HISTORICAL_DATA)


@app.on_event("startup")
async def startup_event() -> None:
    """Create tables, register the default source and seed data if needed."""
    config.configure_logging()
    init_db(engine)
    session = SessionLocal()
    try:
        initialize_database(session)
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Historical data API

@app.get("/api/historical-data")
def get_historical_data(session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Return all historical records ordered by year."""
    source = resolve_active_source(session)
    df = load_historical(source)
    return {"data": frame_to_records(df), "source": source.name}


@app.post("/api/historical-data", status_code=status.HTTP_201_CREATED)
def create_historical_data(
    payload: HistoricalDataCreate, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    record = store.create_record(session, payload.tahun, payload.mobil, payload.motor)
    return record.to_dict()


@app.put("/api/historical-data/{tahun}")
def update_historical_data(
    tahun: int, payload: HistoricalDataUpdate, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    record = store.update_record(session, tahun, payload.mobil, payload.motor)
    return record.to_dict()


@app.delete("/api/historical-data/{tahun}")
def delete_historical_data(tahun: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    store.delete_record(session, tahun)
    return {"success": True, "message": f"Data for year {tahun} deleted successfully"}


# ---------------------------------------------------------------------------
# Data source API

@app.get("/api/data-sources")
def get_data_sources(session: Session = Depends(get_session)):
    return store.list_data_sources(session)


@app.post("/api/switch-data-source")
def switch_data_source(
    payload: SwitchSourceRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """
    Make the named source the only active one.

    Unknown names are rejected with 404 and the current selection is kept.
    """
    name = (payload.sourceName or "").strip()
    if not name:
        raise ValidationError("sourceName is required")
    active = store.switch_data_source(session, name)
    return {"success": True, "activeSource": active}


# ---------------------------------------------------------------------------
# Prediction API

@app.post("/api/predict")
def predict(
    payload: Optional[PredictRequest] = None, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """
    Predict car and motorcycle counts for the requested year.

    Both series are refitted from the current records on every request.
    Any year may be requested; predictions far outside the recorded range
    are extrapolated without bounds.
    """
    if payload is None or not payload.year:
        raise ValidationError("Year is required")
    source = resolve_active_source(session)
    df = load_historical(source)
    if df.empty:
        raise NoDataError("No historical data available")
    try:
        return predict_year(df, payload.year)
    except ComputeError as exc:
        logger.error("Prediction for %s failed: %s", payload.year, exc.message)
        raise ComputeError("Failed to calculate prediction") from exc


# ---------------------------------------------------------------------------
# Front end

@app.get("/{full_path:path}", response_class=HTMLResponse)
async def index(request: Request, full_path: str):
    """
    Serve the single page application entry document.

    Unknown API paths are not part of the front end and get a 404.
    """
    if full_path == "api" or full_path.startswith("api/"):
        raise StarletteHTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return templates.TemplateResponse(request, "index.html", {"title": app.title})


def run() -> None:
    """Start the service with uvicorn on the configured port."""
    config.configure_logging()
    logger.info("Server listening on %s...", config.PORT)
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
