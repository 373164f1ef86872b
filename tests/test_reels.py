from datetime import datetime

import pytest

from app.models import tables
from conftest import auth_headers, stored_files

pytestmark = pytest.mark.integration


def video(name="clip.mp4", content=b"\x00\x00\x00\x18ftypmp42"):
    return {"video": (name, content, "video/mp4")}


@pytest.fixture
def make_reel(db, make_user):
    def _make_reel(owner=None, **overrides):
        owner = owner or make_user()
        data = {
            "title": "Spacer po mieszkaniu",
            "description": "Krótki film",
            "video_url": "uploads/reels/video-1.mp4",
            "duration": "0:45",
            "is_published": True,
            "featured": False,
        }
        data.update(overrides)
        reel = tables.Reel(user_id=owner.id, **data)
        db.add(reel)
        db.commit()
        db.refresh(reel)
        return reel
    return _make_reel


class TestCreate:
    def test_create_reel(self, client, user_headers):
        response = client.post(
            "/api/reels/",
            headers=user_headers,
            data={"title": "Nowa oferta", "description": "Zobacz", "duration": "1:05", "isPublished": "true"},
            files=video(),
        )

        assert response.status_code == 201
        reel = response.json()["reel"]
        assert reel["isPublished"] is True
        assert reel["videoUrl"].startswith("uploads/reels/video-")
        assert len(stored_files()) == 1

    def test_video_required(self, client, user_headers):
        response = client.post("/api/reels/", headers=user_headers, data={"title": "Bez filmu"})

        assert response.status_code == 400
        assert response.json()["error"] == "Video file is required"

    def test_only_video_files(self, client, user_headers):
        response = client.post(
            "/api/reels/",
            headers=user_headers,
            data={"title": "Zdjęcie"},
            files={"video": ("pic.jpg", b"jpg", "image/jpeg")},
        )

        assert response.status_code == 400
        assert stored_files() == []

    def test_title_length_limit(self, client, user_headers):
        response = client.post("/api/reels/", headers=user_headers, data={"title": "x" * 61}, files=video())

        assert response.status_code == 400
        assert stored_files() == []


class TestVisibility:
    def test_users_only_see_published(self, client, make_reel, user_headers):
        make_reel(title="Opublikowany")
        make_reel(title="Szkic", is_published=False)

        body = client.get("/api/reels/", headers=user_headers).json()

        assert [r["title"] for r in body["reels"]] == ["Opublikowany"]
        assert body["isAdmin"] is False

    def test_admin_can_filter_drafts(self, client, make_reel, admin_headers):
        make_reel(title="Opublikowany")
        make_reel(title="Szkic", is_published=False)

        body = client.get("/api/reels/", headers=admin_headers, params={"isPublished": "false"}).json()

        assert [r["title"] for r in body["reels"]] == ["Szkic"]
        assert body["isAdmin"] is True

    def test_list_requires_auth(self, client):
        assert client.get("/api/reels/").status_code == 401

    def test_public_list_puts_featured_first(self, client, make_reel):
        make_reel(title="Zwykły", created_at=datetime(2025, 5, 2))
        make_reel(title="Wyróżniony", featured=True, created_at=datetime(2025, 5, 1))
        make_reel(title="Szkic", is_published=False)

        body = client.get("/api/reels/public/all").json()

        assert [r["title"] for r in body["reels"]] == ["Wyróżniony", "Zwykły"]
        assert body["totalReels"] == 2

    def test_draft_detail_only_for_owner(self, client, make_user, make_reel, user_headers):
        owner = make_user()
        draft = make_reel(owner=owner, is_published=False)

        assert client.get(f"/api/reels/{draft.id}").status_code == 404
        assert client.get(f"/api/reels/{draft.id}", headers=user_headers).status_code == 404
        own = client.get(f"/api/reels/{draft.id}", headers=auth_headers(owner)).json()
        assert own["canEdit"] is True

    def test_my_reels(self, client, make_user, make_reel):
        owner = make_user()
        make_reel(owner=owner)
        make_reel(owner=owner, is_published=False)
        make_reel()

        body = client.get("/api/reels/user/moje", headers=auth_headers(owner)).json()

        assert body["totalReels"] == 2


class TestOwnerActions:
    def test_status_toggle(self, client, make_user, make_reel):
        owner = make_user()
        reel = make_reel(owner=owner)

        response = client.patch(
            f"/api/reels/{reel.id}/status", headers=auth_headers(owner), json={"isPublished": False}
        )

        assert response.status_code == 200
        assert response.json()["reel"]["isPublished"] is False
        assert response.json()["message"] == "Reel is now draft"

    def test_stranger_cannot_edit(self, client, make_reel, user_headers):
        reel = make_reel()

        response = client.patch(f"/api/reels/{reel.id}/status", headers=user_headers, json={"featured": True})

        assert response.status_code == 403

    def test_update_replaces_video(self, client, user_headers):
        created = client.post(
            "/api/reels/", headers=user_headers, data={"title": "Film"}, files=video("a.mp4")
        ).json()["reel"]

        response = client.put(
            f"/api/reels/{created['id']}",
            headers=user_headers,
            data={"title": "Film poprawiony"},
            files=video("b.mp4"),
        )

        updated = response.json()["reel"]
        assert updated["title"] == "Film poprawiony"
        assert updated["videoUrl"] != created["videoUrl"]
        assert stored_files() == [updated["videoUrl"][len("uploads/"):]]

    def test_delete_removes_video(self, client, user_headers):
        created = client.post(
            "/api/reels/", headers=user_headers, data={"title": "Film"}, files=video()
        ).json()["reel"]

        response = client.delete(f"/api/reels/{created['id']}", headers=user_headers)

        assert response.status_code == 200
        assert stored_files() == []


class TestStats:
    def test_admin_stats(self, client, make_reel, admin_headers):
        make_reel()
        make_reel(featured=True)
        make_reel(is_published=False, created_at=datetime(2020, 1, 1))

        stats = client.get("/api/reels/admin/stats", headers=admin_headers).json()["stats"]

        assert stats == {"published": 2, "drafts": 1, "total": 3, "newThisWeek": 2, "featuredCount": 1}
