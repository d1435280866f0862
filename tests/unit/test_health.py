from fastapi.testclient import TestClient

from catalog_sync.main import app


def test_health_before_startup():
    """Test the health endpoint answers without the lifespan having run"""
    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "vendors": [], "scheduler": "not_initialized"}
