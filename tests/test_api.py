"""Tests for the HTTP API via TestClient."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from projectmap.core.config import DashboardConfig
from projectmap.core.predicate import compile_predicate
from projectmap.core.session_state import SessionState
from projectmap.main import app, get_session_state

logger = logging.getLogger(__name__)


@pytest.fixture
def session_state() -> Iterator[SessionState]:
    """A fresh session per test; the renderer applies filters without delay."""
    session_state = SessionState(
        DashboardConfig(
            renderer_apply_delay_seconds=0.0,
            count_delay_seconds=0.01,
            initial_count_delay_seconds=0.01,
        )
    )
    app.dependency_overrides[get_session_state] = lambda: session_state
    yield session_state
    app.dependency_overrides.pop(get_session_state, None)


@pytest.fixture
def client(session_state: SessionState) -> Iterator[TestClient]:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def loaded_client(client: TestClient, dataset_paths: tuple[Path, Path, Path]) -> TestClient:
    projects_path, regions_path, aggregates_path = dataset_paths
    response = client.post(
        "/api/data/load",
        json={
            "projects_path": str(projects_path),
            "regions_path": str(regions_path),
            "aggregates_path": str(aggregates_path),
        },
    )
    assert response.status_code == 200, response.text
    return client


def test_session_before_load(client: TestClient) -> None:
    response = client.get("/api/session")

    assert response.status_code == 200
    data = response.json()
    assert data["is_ready"] is False
    assert data["total_count"] == 0
    assert data["predicate"] is None


def test_toggle_before_load_is_ignored(client: TestClient, session_state: SessionState) -> None:
    response = client.post("/api/filters/year", json={"value": "2022"})

    assert response.status_code == 200
    assert response.json()["selection"]["years"] == []
    assert session_state.store.version == 0


def test_load_data(client: TestClient, dataset_paths: tuple[Path, Path, Path]) -> None:
    projects_path, regions_path, _ = dataset_paths
    response = client.post(
        "/api/data/load",
        json={"projects_path": str(projects_path), "regions_path": str(regions_path)},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["state"]["is_ready"] is True
    assert data["state"]["total_count"] == 10


def test_load_missing_file(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/data/load",
        json={
            "projects_path": str(tmp_path / "missing.geojson"),
            "regions_path": str(tmp_path / "missing_regions.geojson"),
        },
    )
    assert response.status_code == 404


def test_load_twice_conflicts(
    loaded_client: TestClient, dataset_paths: tuple[Path, Path, Path]
) -> None:
    projects_path, regions_path, _ = dataset_paths
    response = loaded_client.post(
        "/api/data/load",
        json={"projects_path": str(projects_path), "regions_path": str(regions_path)},
    )
    assert response.status_code == 409


def test_filter_endpoints(loaded_client: TestClient) -> None:
    response = loaded_client.post("/api/filters/year", json={"value": "2022"})
    assert response.status_code == 200
    assert response.json()["predicate"] == compile_predicate({"2022"}, set(), set())

    loaded_client.post("/api/filters/status", json={"value": "ONGOING"})
    response = loaded_client.post("/api/filters/type", json={"value": "SOLAR STREET LIGHT"})
    data = response.json()
    assert data["active_filter_count"] == 3
    assert data["predicate"] == compile_predicate(
        {"2022"}, {"ONGOING"}, {"SOLAR STREET LIGHT"}
    )

    response = loaded_client.post("/api/map/click/region", json={"region_name": "Lagos"})
    data = response.json()
    assert data["selection"]["active_region"] == "LAGOS"
    assert data["predicate"][1] == ["==", ["get", "state"], "LAGOS"]
    assert data["region_panel"]["total"] == 4

    response = loaded_client.post("/api/map/click/empty")
    assert response.json()["selection"]["active_region"] is None
    assert response.json()["selection"]["years"] == ["2022"]

    response = loaded_client.post("/api/filters/clear")
    assert response.json()["predicate"] is None


def test_session_waits_for_count(loaded_client: TestClient) -> None:
    loaded_client.post("/api/filters/year", json={"value": "2022"})
    response = loaded_client.get("/api/session", params={"wait_for_count": True})

    assert response.status_code == 200
    assert response.json()["visible_count"] == 6


def test_region_clear_endpoint(loaded_client: TestClient) -> None:
    loaded_client.post("/api/map/click/region", json={"region_name": "Kano"})
    response = loaded_client.post("/api/filters/region/clear")

    assert response.status_code == 200
    assert response.json()["region_panel"] is None


def test_toggle_unknown_value_is_rejected(loaded_client: TestClient) -> None:
    response = loaded_client.post("/api/filters/status", json={"value": "CANCELLED"})

    assert response.status_code == 400
    assert "CANCELLED" in response.json()["detail"]


def test_select_view(loaded_client: TestClient) -> None:
    loaded_client.post("/api/filters/year", json={"value": "2021"})
    response = loaded_client.post("/api/view", json={"view_mode": "coverage"})

    data = response.json()
    assert data["selection"]["view_mode"] == "coverage"
    assert data["selection"]["years"] == ["2021"]
    assert data["view_style"]["layer_visibility"]["project-points"] == "none"

    response = loaded_client.post("/api/view", json={"view_mode": "satellite"})
    assert response.status_code == 422


def test_region_lookup(loaded_client: TestClient) -> None:
    response = loaded_client.get("/api/regions/abuja federal capital territory")
    data = response.json()
    assert data["has_data"] is True
    assert data["display_name"] == "FCT"

    response = loaded_client.get("/api/regions/Oyo")
    assert response.status_code == 200
    assert response.json()["has_data"] is False


def test_project_details(loaded_client: TestClient) -> None:
    response = loaded_client.get("/api/projects/2")
    assert response.status_code == 200
    data = response.json()
    assert data["status_color"] == "#2ecc71"
    assert data["type"] == "SOLAR MINI GRID"

    assert loaded_client.get("/api/projects/999").status_code == 404


def test_project_details_before_load(client: TestClient) -> None:
    assert client.get("/api/projects/1").status_code == 404


def test_map_plot(loaded_client: TestClient) -> None:
    loaded_client.post("/api/filters/year", json={"value": "2022"})
    response = loaded_client.get("/api/plots/map")

    assert response.status_code == 200
    data = response.json()
    assert data["view_mode"] == "performance"
    assert data["feature_count"] == 6
    assert "data" in data["plotly_plot"]
    logger.info(f"Map plot has {len(data['plotly_plot']['data'])} traces")


def test_map_plot_before_load(client: TestClient) -> None:
    assert client.get("/api/plots/map").status_code == 404


def test_root_without_frontend(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 404
    assert response.json()["detail"] == "No frontend bundled"
