# app/utils/storage.py
import os
import re
import time
import secrets
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from fastapi import UploadFile, HTTPException, status

from app.core import config

logger = logging.getLogger(__name__)

MB = 1024 * 1024
CHUNK_SIZE = 1024 * 1024
PUBLIC_PREFIX = "uploads"


@dataclass(frozen=True)
class UploadPolicy:
    """What a single endpoint accepts and where it puts it."""
    name: str
    max_bytes: int
    max_files: int
    subdir: str = ""
    prefix: Optional[str] = None   # None -> keep the original base name
    type_prefixes: Sequence[str] = ()
    exact_types: Sequence[str] = ()
    type_error: str = "Unsupported file type."

    def accepts(self, content_type: Optional[str]) -> bool:
        content_type = (content_type or "").lower().strip()
        return content_type in self.exact_types or any(content_type.startswith(p) for p in self.type_prefixes)


LISTING_MEDIA = UploadPolicy(
    name="listing media",
    max_bytes=50 * MB,
    max_files=20,
    type_prefixes=("image/", "video/"),
    exact_types=("application/pdf",),
    type_error="Unsupported file type. Allowed: images, videos, PDF.",
)
REEL_VIDEO = UploadPolicy(
    name="reel video",
    max_bytes=50 * MB,
    max_files=1,
    subdir="reels",
    prefix="video",
    type_prefixes=("video/",),
    type_error="Only video files are allowed.",
)
PROFILE_PICTURE = UploadPolicy(
    name="profile picture",
    max_bytes=5 * MB,
    max_files=1,
    subdir="profiles",
    prefix="avatar",
    type_prefixes=("image/",),
    type_error="Only image files are allowed.",
)
CV_DOCUMENT = UploadPolicy(
    name="cv",
    max_bytes=5 * MB,
    max_files=1,
    subdir="cv",
    prefix="cv",
    exact_types=(
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
    type_error="Invalid file format. Accepted formats: PDF, DOC, DOCX.",
)
BLOG_IMAGE = UploadPolicy(
    name="blog image",
    max_bytes=5 * MB,
    max_files=1,
    subdir="blog",
    prefix="blog",
    type_prefixes=("image/",),
    type_error="Only image files are allowed.",
)


@dataclass
class StoredFile:
    filename: str
    original_name: str
    path: str          # public relative path, e.g. "uploads/reels/video-....mp4"
    mimetype: str
    size: int


@dataclass
class StoredBatch:
    files: List[StoredFile] = field(default_factory=list)

    def discard(self):
        """Best-effort removal of everything written for this request."""
        for stored in self.files:
            delete_stored_file(stored.path)
        self.files = []

    def __iter__(self):
        return iter(self.files)

    def __len__(self):
        return len(self.files)


def _safe_basename(original_name: str) -> str:
    base = os.path.splitext(os.path.basename(original_name or "file"))[0]
    base = re.sub(r"[^A-Za-z0-9_-]+", "-", base).strip("-")
    return base[:40] or "file"


def _extension(original_name: str) -> str:
    ext = os.path.splitext(original_name or "")[1].lower()
    return ext if re.fullmatch(r"\.[a-z0-9]{1,10}", ext) else ""


def generate_filename(original_name: str, prefix: Optional[str] = None) -> str:
    """<prefix>-<epoch millis>-<random><ext>; prefix defaults to the original base name."""
    stem = prefix or _safe_basename(original_name)
    unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
    return f"{stem}-{unique_suffix}{_extension(original_name)}"


def disk_path(public_path: str) -> str:
    """Map a recorded "uploads/..." path to its location under UPLOAD_DIR."""
    relative = public_path.lstrip("/")
    if relative.startswith(PUBLIC_PREFIX + "/"):
        relative = relative[len(PUBLIC_PREFIX) + 1:]
    return os.path.join(config.UPLOAD_DIR, relative)


def delete_stored_file(public_path: Optional[str]) -> bool:
    if not public_path:
        return False
    target = disk_path(public_path)
    try:
        if os.path.exists(target):
            os.remove(target)
            return True
    except OSError as e:
        logger.error(f"Could not delete stored file {target}: {e}")
    return False


def _check_batch(files: List[UploadFile], policy: UploadPolicy):
    if len(files) > policy.max_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files for {policy.name}. Maximum is {policy.max_files}."
        )
    for upload in files:
        if not policy.accepts(upload.content_type):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{policy.type_error} Rejected: '{upload.filename}'"
            )
        declared_size = getattr(upload, "size", None)
        if declared_size is not None and declared_size > policy.max_bytes:
            raise _too_large(upload, policy)


def _too_large(upload: UploadFile, policy: UploadPolicy) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"File '{upload.filename}' is too large. Maximum size is {policy.max_bytes // MB}MB."
    )


async def _write_one(upload: UploadFile, policy: UploadPolicy, batch: StoredBatch):
    filename = generate_filename(upload.filename, policy.prefix)
    public_path = "/".join(p for p in (PUBLIC_PREFIX, policy.subdir, filename) if p)
    target = disk_path(public_path)
    os.makedirs(os.path.dirname(target), exist_ok=True)

    stored = StoredFile(
        filename=filename,
        original_name=upload.filename or filename,
        path=public_path,
        mimetype=(upload.content_type or "").lower(),
        size=0,
    )
    # Registered before writing so a partial file is cleaned up too
    batch.files.append(stored)

    with open(target, "wb") as out:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            stored.size += len(chunk)
            if stored.size > policy.max_bytes:
                raise _too_large(upload, policy)
            out.write(chunk)


async def save_uploads(files: Optional[List[UploadFile]], policy: UploadPolicy) -> StoredBatch:
    """
    Validates count and declared types for the whole batch before anything is written,
    then stores each file. Any failure removes every file already written.
    """
    files = [f for f in (files or []) if f is not None and f.filename]
    _check_batch(files, policy)

    batch = StoredBatch()
    try:
        for upload in files:
            await _write_one(upload, policy, batch)
    except HTTPException:
        batch.discard()
        raise
    except OSError as e:
        batch.discard()
        logger.error(f"Failed to store {policy.name} upload: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save uploaded file"
        )

    logger.info(f"Stored {len(batch)} {policy.name} file(s)")
    return batch


async def save_upload(upload: Optional[UploadFile], policy: UploadPolicy) -> Optional[StoredFile]:
    batch = await save_uploads([upload] if upload is not None else [], policy)
    return batch.files[0] if batch.files else None
