from app import create_app
from conftest import GROUP_ID


def test_home_reports_online(manager):
    client = create_app(manager).test_client()

    response = client.get("/")

    assert response.status_code == 200
    assert response.get_json()["status"] == "online"


def test_health_counts_active_matches(manager, players):
    manager.create_match(GROUP_ID, players[1])
    client = create_app(manager).test_client()

    data = client.get("/health").get_json()

    assert data["status"] == "healthy"
    assert data["active_matches"] == 1
    assert "timestamp" in data
