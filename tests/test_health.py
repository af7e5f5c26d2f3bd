"""
Health check and root endpoints.
"""


def test_health_returns_200(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_root_reports_app_name(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["app"]


def test_endpoints_require_auth(client):
    response = client.get("/activity-providers")
    assert response.status_code == 401
