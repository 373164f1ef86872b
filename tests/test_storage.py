import asyncio
import io
import re

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from app.utils import storage
from conftest import stored_files

pytestmark = pytest.mark.unit


def upload(filename, content=b"data", content_type="image/jpeg"):
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class TestPolicies:
    def test_listing_media_accepts_images_videos_and_pdf(self):
        policy = storage.LISTING_MEDIA

        assert policy.accepts("image/webp")
        assert policy.accepts("video/mp4")
        assert policy.accepts("application/pdf")
        assert not policy.accepts("application/zip")
        assert not policy.accepts(None)

    def test_cv_accepts_documents_only(self):
        policy = storage.CV_DOCUMENT

        assert policy.accepts("application/msword")
        assert not policy.accepts("image/png")

    def test_limits(self):
        assert storage.LISTING_MEDIA.max_files == 20
        assert storage.LISTING_MEDIA.max_bytes == 50 * storage.MB
        assert storage.PROFILE_PICTURE.max_bytes == 5 * storage.MB


class TestNaming:
    def test_generated_name_keeps_extension(self):
        name = storage.generate_filename("Zdjęcie salonu.JPG")

        assert re.fullmatch(r"Zdj-cie-salonu-\d+-\d+\.jpg", name)

    def test_prefix_replaces_original_name(self):
        name = storage.generate_filename("movie.mp4", prefix="video")

        assert re.fullmatch(r"video-\d+-\d+\.mp4", name)

    def test_names_do_not_collide(self):
        names = {storage.generate_filename("a.jpg") for _ in range(50)}

        assert len(names) == 50

    def test_disk_path_maps_public_prefix(self, upload_dir):
        assert storage.disk_path("uploads/reels/x.mp4").startswith(upload_dir)
        assert storage.disk_path("uploads/reels/x.mp4").endswith("reels/x.mp4")


class TestSaving:
    def test_batch_is_written(self):
        batch = asyncio.run(storage.save_uploads([upload("a.jpg"), upload("b.png", b"12345")], storage.LISTING_MEDIA))

        assert len(batch) == 2
        assert [f.size for f in batch] == [4, 5]
        assert len(stored_files()) == 2

    def test_empty_filenames_are_skipped(self):
        batch = asyncio.run(storage.save_uploads([upload("")], storage.LISTING_MEDIA))

        assert len(batch) == 0
        assert stored_files() == []

    def test_too_many_files(self):
        files = [upload(f"{i}.jpg") for i in range(21)]

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(storage.save_uploads(files, storage.LISTING_MEDIA))

        assert exc_info.value.status_code == 400
        assert stored_files() == []

    def test_oversized_file_removes_whole_batch(self):
        small = storage.UploadPolicy(name="tiny", max_bytes=10, max_files=5, type_prefixes=("image/",))
        files = [upload("ok.jpg", b"12345"), upload("big.jpg", b"x" * 50)]

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(storage.save_uploads(files, small))

        assert exc_info.value.status_code == 413
        assert stored_files() == []

    def test_discard(self):
        batch = asyncio.run(storage.save_uploads([upload("a.jpg")], storage.LISTING_MEDIA))

        batch.discard()

        assert stored_files() == []
        assert len(batch) == 0

    def test_single_upload_into_subdir(self):
        stored = asyncio.run(storage.save_upload(upload("clip.mov", content_type="video/quicktime"), storage.REEL_VIDEO))

        assert stored.path.startswith("uploads/reels/video-")
        assert stored.mimetype == "video/quicktime"
        assert storage.delete_stored_file(stored.path) is True
        assert storage.delete_stored_file(stored.path) is False

    def test_missing_single_upload(self):
        assert asyncio.run(storage.save_upload(None, storage.REEL_VIDEO)) is None
