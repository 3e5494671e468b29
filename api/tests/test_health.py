from fastapi.testclient import TestClient

from crowdprice.main import app
from crowdprice.services.repository import PostgresRepository, get_repository
from crowdprice.services.store import InMemoryObservationStore


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_names_the_service() -> None:
    client = TestClient(app)
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "crowdprice-api"
    assert response.json()["status"] == "ok"


def test_readyz_with_reachable_store() -> None:
    app.dependency_overrides[get_repository] = InMemoryObservationStore
    try:
        response = TestClient(app).get("/readyz")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_readyz_without_database_is_unavailable() -> None:
    app.dependency_overrides[get_repository] = lambda: PostgresRepository(
        database_url=None,
        min_pool_size=1,
        max_pool_size=1,
    )
    try:
        response = TestClient(app).get("/readyz")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "CP_DATABASE_URL" in response.json()["detail"]
