import pytest

from app.models import tables
from conftest import auth_headers, stored_files

pytestmark = pytest.mark.integration


class TestAdminUserList:
    def test_list_and_filter_by_role(self, client, admin_headers, make_user):
        make_user(role="agent", surname="Agentowski")
        make_user()

        everyone = client.get("/api/users/", headers=admin_headers).json()
        agents = client.get("/api/users/", headers=admin_headers, params={"role": "agent"}).json()

        assert everyone["totalUsers"] == 3
        assert [u["surname"] for u in agents["users"]] == ["Agentowski"]

    def test_search(self, client, admin_headers, make_user):
        make_user(email="szukany@example.com")

        body = client.get("/api/users/", headers=admin_headers, params={"search": "SZUKANY"}).json()

        assert [u["email"] for u in body["users"]] == ["szukany@example.com"]

    def test_invalid_role_filter(self, client, admin_headers):
        response = client.get("/api/users/", headers=admin_headers, params={"role": "owner"})

        assert response.status_code == 400


class TestTeam:
    def test_team_lists_active_staff_only(self, client, make_user):
        make_user(role="admin", name="Adam", surname="Admin")
        make_user(role="agent", name="Ala", surname="Agent")
        make_user(role="agent", name="Ex", surname="Byly", is_active=False)
        make_user(role="user", name="Zwykly", surname="Klient")

        team = client.get("/api/users/team/admins").json()["team"]

        assert [m["fullName"] for m in team] == ["Adam Admin", "Ala Agent"]
        assert "email" not in team[0]


class TestSelfService:
    def test_user_reads_own_profile(self, client, user, user_headers):
        response = client.get(f"/api/users/{user.id}", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(user.id)

    def test_user_cannot_read_others(self, client, make_user, user_headers):
        other = make_user()

        assert client.get(f"/api/users/{other.id}", headers=user_headers).status_code == 403

    def test_user_updates_own_profile(self, client, user, user_headers):
        response = client.put(
            f"/api/users/{user.id}", headers=user_headers, json={"bio": "Nowe bio", "contactEmail": "Biuro@Example.com"}
        )

        assert response.status_code == 200
        assert response.json()["user"]["bio"] == "Nowe bio"
        assert response.json()["user"]["contactEmail"] == "biuro@example.com"

    def test_user_cannot_promote_self(self, client, db, user, user_headers):
        response = client.put(f"/api/users/{user.id}", headers=user_headers, json={"role": "admin"})

        assert response.status_code == 403
        db.expire_all()
        assert db.get(tables.User, user.id).role == "user"

    def test_admin_changes_role_and_status(self, client, user, admin_headers):
        response = client.put(
            f"/api/users/{user.id}", headers=admin_headers, json={"role": "agent", "isActive": False}
        )

        assert response.json()["user"]["role"] == "agent"
        assert response.json()["user"]["isActive"] is False

    def test_upload_picture(self, client, user, user_headers):
        response = client.post(
            f"/api/users/{user.id}/upload",
            headers=user_headers,
            files={"profilePicture": ("me.jpg", b"jpg", "image/jpeg")},
        )

        assert response.status_code == 200
        assert response.json()["profilePicture"].startswith("uploads/profiles/avatar-")
        assert len(stored_files()) == 1


class TestDelete:
    def test_admin_deletes_user_with_their_reels(self, client, db, admin_headers, make_user):
        doomed = make_user()
        client.post(
            "/api/reels/",
            headers=auth_headers(doomed),
            data={"title": "Do usunięcia"},
            files={"video": ("clip.mp4", b"mp4", "video/mp4")},
        )
        assert len(stored_files()) == 1

        response = client.delete(f"/api/users/{doomed.id}", headers=admin_headers)

        assert response.status_code == 200
        db.expire_all()
        assert db.query(tables.User).filter(tables.User.id == doomed.id).count() == 0
        assert db.query(tables.Reel).count() == 0
        assert stored_files() == []

    def test_user_owning_listings_is_kept(self, client, db, admin_headers, make_user, make_listing):
        owner = make_user()
        listing = make_listing(owner=owner, is_active=False)

        response = client.delete(f"/api/users/{owner.id}", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "User still owns properties; deactivate the account instead"
        db.expire_all()
        assert db.get(tables.User, owner.id) is not None
        assert db.get(tables.Listing, listing.id) is not None

    def test_admin_cannot_delete_self(self, client, admin, admin_headers):
        response = client.delete(f"/api/users/{admin.id}", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "You cannot delete your own account"

    def test_user_cannot_delete(self, client, make_user, user_headers):
        other = make_user()

        assert client.delete(f"/api/users/{other.id}", headers=auth_headers(other)).status_code == 403
        assert client.delete(f"/api/users/{other.id}", headers=user_headers).status_code == 403
