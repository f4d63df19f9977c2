"""
Tests for the TIN and contour endpoints.

These tests use FastAPI's TestClient to simulate requests against the
application without running a real server.  Storage is redirected to a
temporary directory before the application is imported.
"""

import math
import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("TOPO_STORAGE_DIR", tempfile.mkdtemp(prefix="topo-tests-"))

# Add the backend directory to sys.path so we can import the app
sys.path.append(str(Path(__file__).resolve().parents[1]))

from topo.main import app  # type: ignore  # noqa: E402
from topo.services.contour_cache import clear_cache  # noqa: E402
from topo.services.tin_store import TinRecord, get_tin_record  # noqa: E402

SQRT3 = math.sqrt(3.0)

TRIANGLE = {
    "name": "slope",
    "points": [[0.0, 0.0, 0.0], [10.0, 0.0, 10.0], [5.0, 5.0 * SQRT3, 20.0]],
    "triangles": [[0, 1, 2]],
}

SQUARE = {
    "name": "square",
    "points": [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [0.0, 10.0, 0.0], [10.0, 10.0, 0.0]],
    "triangles": [[0, 1, 3], [0, 3, 2]],
    "estimateGradients": True,
}


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def create(client: TestClient, body: dict) -> str:
    response = client.post("/api/tins", json=body)
    assert response.status_code == 201, response.text
    return response.json()["tinId"]


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_get_and_list(client: TestClient) -> None:
    """A stored TIN can be read back, listed and its arrays retrieved."""
    tin_id = create(client, TRIANGLE)
    info = client.get(f"/api/tins/{tin_id}").json()
    assert info["name"] == "slope"
    assert info["pointCount"] == 3
    assert info["triangleCount"] == 1
    assert info["hasGradients"] is False
    assert info["elevationRange"] == [0.0, 20.0]
    listed = client.get("/api/tins").json()
    assert tin_id in [t["tinId"] for t in listed]
    mesh = client.get(f"/api/tins/{tin_id}/mesh").json()
    assert mesh["points"] == TRIANGLE["points"]
    assert mesh["triangles"] == TRIANGLE["triangles"]
    assert mesh["gradients"] is None


def test_identical_uploads_share_an_archive(client: TestClient) -> None:
    first = create(client, TRIANGLE)
    second = create(client, TRIANGLE)
    assert first != second
    assert get_tin_record(first).archive_path == get_tin_record(second).archive_path


def test_estimated_gradients_are_stored(client: TestClient) -> None:
    tin_id = create(client, SQUARE)
    assert client.get(f"/api/tins/{tin_id}").json()["hasGradients"] is True
    mesh = client.get(f"/api/tins/{tin_id}/mesh").json()
    assert mesh["gradients"] == [[0.0, 0.0]] * 4


@pytest.mark.parametrize(
    "body",
    [
        {"points": [[0, 0, 0], [1, 0, 0], [0, 1, 0]], "triangles": [[0, 1, 5]]},
        {"points": [[0, 0, 0], [1, 0, 0], [2, 0, 0]], "triangles": [[0, 1, 2]]},
        {"points": [[0, 0], [1, 0], [0, 1]], "triangles": [[0, 1, 2]]},
        {"points": [], "triangles": []},
        {
            "points": [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
            "triangles": [[0, 1, 2]],
            "gradients": [[0, 0]],
        },
    ],
)
def test_malformed_tin_is_rejected(client: TestClient, body: dict) -> None:
    response = client.post("/api/tins", json=body)
    assert response.status_code == 400


def test_raw_contours(client: TestClient) -> None:
    tin_id = create(client, TRIANGLE)
    response = client.get(f"/api/tins/{tin_id}/contours", params={"interval": 10, "smooth": False})
    assert response.status_code == 200
    data = response.json()
    assert data["tinId"] == tin_id
    assert data["smoothed"] is False
    assert [level["elevation"] for level in data["levels"]] == [10.0]
    (contour,) = data["levels"][0]["contours"]
    assert contour["closed"] is False
    assert contour["arcs"] is None
    assert len(contour["points"]) >= 2
    assert contour["length"] == pytest.approx(5.0 * SQRT3)
    assert data["meta"]["totalContours"] == 1


def test_smoothed_contours_with_splits(client: TestClient) -> None:
    tin_id = create(client, TRIANGLE)
    response = client.get(
        f"/api/tins/{tin_id}/contours", params={"interval": 10, "includeSplits": True}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["smoothed"] is True
    assert data["splits"] == []
    (contour,) = data["levels"][0]["contours"]
    assert len(contour["arcs"]) == len(contour["points"]) - 1
    first, last = contour["arcs"][0], contour["arcs"][-1]
    assert first["start"] == contour["points"][0]
    assert last["end"] == contour["points"][-1]
    # Cached responses are identical
    again = client.get(
        f"/api/tins/{tin_id}/contours", params={"interval": 10, "includeSplits": True}
    )
    assert again.json() == data
    # Recomputing from scratch gives the same answer
    clear_cache()
    fresh = client.get(
        f"/api/tins/{tin_id}/contours", params={"interval": 10, "includeSplits": True}
    )
    recomputed = fresh.json()
    assert recomputed["levels"] == data["levels"]
    assert recomputed["splits"] == data["splits"]


@pytest.mark.parametrize("interval", [0, -5])
def test_bad_interval_is_rejected(client: TestClient, interval: float) -> None:
    tin_id = create(client, TRIANGLE)
    response = client.get(f"/api/tins/{tin_id}/contours", params={"interval": interval})
    assert response.status_code == 400


def test_unknown_tin(client: TestClient) -> None:
    assert client.get("/api/tins/nope").status_code == 404
    assert client.get("/api/tins/nope/mesh").status_code == 404
    assert client.get("/api/tins/nope/contours", params={"interval": 1}).status_code == 404
    assert client.delete("/api/tins/nope").status_code == 404


def test_delete(client: TestClient) -> None:
    tin_id = create(client, TRIANGLE)
    client.get(f"/api/tins/{tin_id}/contours", params={"interval": 5})
    response = client.delete(f"/api/tins/{tin_id}")
    assert response.status_code == 204
    assert client.get(f"/api/tins/{tin_id}").status_code == 404
    assert client.get(f"/api/tins/{tin_id}/contours", params={"interval": 5}).status_code == 404


def test_record_timestamps_are_timezone_aware() -> None:
    record = TinRecord(
        tin_id="t",
        content_hash="h",
        archive_path="a.npz",
        point_count=3,
        triangle_count=1,
        min_z=0.0,
        max_z=1.0,
    )
    assert record.created_at.tzinfo is not None
