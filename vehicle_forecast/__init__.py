"""
Vehicle forecast application package.

This package contains the FastAPI web application, the relational store for
historical vehicle counts, the data-source adapters and the linear trend
predictor.  The top-level module `main` exposes a FastAPI instance that
serves both the JSON API and the single page front end.

The design follows a minimal structure:

* Historical car (``mobil``) and motorcycle (``motor``) counts per year
  (``tahun``) are kept in a SQL table and edited through CRUD endpoints.
* A data-source table records which backing source is authoritative.
* Predictions refit an ordinary least squares line per series on every
  request and extrapolate it to the requested year.
"""

from .main import app  # noqa: F401
