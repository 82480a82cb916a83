"""Tests for the HTTP API using FastAPI's TestClient."""

import asyncio
import time
import unittest
from unittest import mock

import httpx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from vehicle_forecast.data import store
from vehicle_forecast.db import DataSourceRecord, get_session, init_db, make_session_factory
from vehicle_forecast.errors import StoreError
from vehicle_forecast.main import app, initialize_database


class ApiTestCase(unittest.TestCase):
    """Runs each test against a fresh in-memory database."""

    seed = True

    def setUp(self) -> None:
        engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        init_db(engine)
        self.Session = make_session_factory(engine)
        session = self.Session()
        try:
            initialize_database(session, seed=self.seed)
        finally:
            session.close()

        def override_session():
            session = self.Session()
            try:
                yield session
            finally:
                session.close()

        app.dependency_overrides[get_session] = override_session
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def add_source(self, name: str) -> None:
        session = self.Session()
        try:
            session.add(DataSourceRecord(name=name, is_active=False))
            session.commit()
        finally:
            session.close()


class TestHistoricalDataApi(ApiTestCase):
    """Tests for the historical data CRUD endpoints."""

    def test_list(self) -> None:
        response = self.client.get("/api/historical-data")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["source"], "database")
        self.assertEqual([row["tahun"] for row in body["data"]], [2019, 2020, 2021, 2022, 2023])
        self.assertEqual(body["data"][0], {"tahun": 2019, "mobil": 3310426, "motor": 15868191})

    def test_create_visible_in_list(self) -> None:
        """A new year is created and immediately returned by GET."""
        response = self.client.post(
            "/api/historical-data", json={"tahun": 2024, "mobil": 3900000, "motor": 18900000}
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["tahun"], 2024)
        years = [row["tahun"] for row in self.client.get("/api/historical-data").json()["data"]]
        self.assertIn(2024, years)

    def test_create_duplicate(self) -> None:
        response = self.client.post(
            "/api/historical-data", json={"tahun": 2020, "mobil": 1, "motor": 2}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Data for year 2020 already exists"})

    def test_create_invalid(self) -> None:
        """Negative counts and missing fields are rejected with 400."""
        response = self.client.post(
            "/api/historical-data", json={"tahun": 2030, "mobil": -1, "motor": 2}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("mobil", response.json()["error"])
        response = self.client.post("/api/historical-data", json={"tahun": 2030})
        self.assertEqual(response.status_code, 400)

    def test_update(self) -> None:
        response = self.client.put("/api/historical-data/2021", json={"mobil": 1, "motor": 2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["mobil"], 1)
        data = self.client.get("/api/historical-data").json()["data"]
        self.assertIn({"tahun": 2021, "mobil": 1, "motor": 2}, data)

    def test_update_missing(self) -> None:
        response = self.client.put("/api/historical-data/1990", json={"mobil": 1, "motor": 2})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Data for year 1990 not found"})

    def test_delete(self) -> None:
        response = self.client.delete("/api/historical-data/2019")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(), {"success": True, "message": "Data for year 2019 deleted successfully"}
        )
        years = [row["tahun"] for row in self.client.get("/api/historical-data").json()["data"]]
        self.assertNotIn(2019, years)
        self.assertEqual(self.client.delete("/api/historical-data/2019").status_code, 404)


class TestDataSourceApi(ApiTestCase):
    """Tests for listing and switching data sources."""

    def test_list_sources(self) -> None:
        response = self.client.get("/api/data-sources")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [{"id": 1, "name": "database", "isActive": True}])

    def test_switch_away_blocks_reads(self) -> None:
        self.add_source("static")
        response = self.client.post("/api/switch-data-source", json={"sourceName": "static"})
        self.assertEqual(response.json(), {"success": True, "activeSource": "static"})

        response = self.client.get("/api/historical-data")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Data source is not set to database"})
        response = self.client.post("/api/predict", json={"year": 2024})
        self.assertEqual(response.status_code, 400)

        self.client.post("/api/switch-data-source", json={"sourceName": "database"})
        self.assertEqual(self.client.get("/api/historical-data").status_code, 200)

    def test_switch_unknown(self) -> None:
        """Unknown names return 404 and the database stays active."""
        response = self.client.post("/api/switch-data-source", json={"sourceName": "excel"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Data source excel not found"})
        self.assertEqual(self.client.get("/api/historical-data").status_code, 200)

    def test_switch_requires_name(self) -> None:
        response = self.client.post("/api/switch-data-source", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "sourceName is required"})


class TestPredictApi(ApiTestCase):
    """Tests for the prediction endpoint."""

    def test_predict_2024(self) -> None:
        response = self.client.post("/api/predict", json={"year": 2024})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["year"], 2024)
        self.assertEqual(body["mobil"], 4003959)
        self.assertEqual(body["motor"], 18638187)
        self.assertEqual(body["total"], 22642146)
        self.assertEqual(
            body["details"]["mobil"]["equation"], "y = 145991.30 × (tahun ke-6) + 3128011.30"
        )

    def test_predict_uses_current_records(self) -> None:
        """Each request refits from the records stored at that moment."""
        before = self.client.post("/api/predict", json={"year": 2024}).json()
        self.client.post("/api/historical-data", json={"tahun": 2024, "mobil": 0, "motor": 0})
        after = self.client.post("/api/predict", json={"year": 2024}).json()
        self.assertNotEqual(before["mobil"], after["mobil"])
        self.assertIn("(tahun ke-6)", after["details"]["motor"]["equation"])

    def test_year_required(self) -> None:
        response = self.client.post("/api/predict", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Year is required"})
        response = self.client.post("/api/predict")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Year is required"})

    def test_single_record_fails(self) -> None:
        for year in (2020, 2021, 2022, 2023):
            self.client.delete(f"/api/historical-data/{year}")
        response = self.client.post("/api/predict", json={"year": 2024})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to calculate prediction"})


    def test_extreme_year_fails_cleanly(self) -> None:
        """Years beyond float range get the prediction error, not a crash."""
        response = self.client.post("/api/predict", json={"year": 10**320})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to calculate prediction"})


class TestServerErrors(ApiTestCase):
    """Tests for the 500 responses."""

    def setUp(self) -> None:
        super().setUp()
        self.client = TestClient(app, raise_server_exceptions=False)

    def test_store_error_envelope(self) -> None:
        failure = StoreError("Failed to fetch data sources")
        with mock.patch.object(store, "list_data_sources", side_effect=failure):
            response = self.client.get("/api/data-sources")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to fetch data sources"})

    def test_unexpected_error_hides_details(self) -> None:
        """Unhandled exceptions return a generic message without the traceback."""
        with mock.patch.object(store, "list_data_sources", side_effect=RuntimeError("boom")):
            response = self.client.get("/api/data-sources")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Something went wrong!"})
        self.assertNotIn("boom", response.text)


class TestConcurrentRequests(ApiTestCase):
    """Blocking store calls must not serialize concurrent requests."""

    def test_requests_overlap(self) -> None:
        def slow_list(session):
            time.sleep(0.5)
            return []

        async def fire(count: int):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                return await asyncio.gather(
                    *(client.get("/api/data-sources") for _ in range(count))
                )

        with mock.patch.object(store, "list_data_sources", side_effect=slow_list):
            started = time.perf_counter()
            responses = asyncio.run(fire(4))
            elapsed = time.perf_counter() - started
        self.assertEqual([r.status_code for r in responses], [200] * 4)
        self.assertLess(elapsed, 1.5)


class TestPredictWithoutData(ApiTestCase):
    seed = False

    def test_no_data(self) -> None:
        response = self.client.post("/api/predict", json={"year": 2024})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "No historical data available"})


class TestFrontendAndFallback(ApiTestCase):
    """Tests for the SPA entry document and the 404 fallback."""

    def test_index_served(self) -> None:
        for path in ("/", "/prediksi/2024"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 200)
            self.assertIn("text/html", response.headers["content-type"])
            self.assertIn("Prediksi Jumlah Kendaraan", response.text)

    def test_static_asset(self) -> None:
        response = self.client.get("/static/app.js")
        self.assertEqual(response.status_code, 200)

    def test_unknown_api_path(self) -> None:
        response = self.client.get("/api/unknown")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"msg": "Not Found"})

    def test_unmatched_method(self) -> None:
        response = self.client.post("/somewhere")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"msg": "Not Found"})


if __name__ == "__main__":
    unittest.main()
