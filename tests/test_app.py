import pytest

from create_admin import create_admin
from app.core.security import verify_password
from app.models import tables

pytestmark = pytest.mark.integration


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["status"] == "active"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_malformed_id_is_a_bad_request(client):
    response = client.get("/api/properties/not-a-uuid")

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_uploaded_files_are_served(client, user_headers):
    created = client.post(
        "/api/properties/",
        headers=user_headers,
        data={"name": "Z plikiem"},
        files=[("files", ("plan.pdf", b"%PDF-1.4 plan", "application/pdf"))],
    ).json()["property"]

    response = client.get(f"/{created['files'][0]['path']}")

    assert response.status_code == 200
    assert response.content == b"%PDF-1.4 plan"


def test_create_admin_is_idempotent(db):
    first = create_admin("Boss@Example.com", "tajnehaslo")
    second = create_admin("boss@example.com", "innehaslo")

    assert first.id == second.id
    admin = db.query(tables.User).filter(tables.User.email == "boss@example.com").one()
    assert admin.role == "admin"
    assert verify_password("tajnehaslo", admin.password_hash)
