#routers/reels.py
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from sqlalchemy import desc, func
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError
from datetime import timedelta
from typing import Optional
import uuid
import logging

from app.core.database import get_db
from app.core.security import (
    get_current_user, get_current_admin, get_optional_user, is_owner_or_admin, require_owner_or_admin
)
from app.models import tables
from app.schemas import ReelOut, ReelCreate, ReelUpdate, ReelStatusUpdate, dump, parse_or_400
from app.services.listing_query import total_pages
from app.utils.storage import REEL_VIDEO, save_upload, delete_stored_file

router = APIRouter()

logger = logging.getLogger(__name__)

Reel = tables.Reel


def _reel_page(query, page: int, limit: int, featured_first: bool = False, **extra):
    total = query.count()
    ordering = [desc(Reel.created_at), desc(Reel.id)]
    if featured_first:
        ordering.insert(0, desc(Reel.featured))
    reels = (
        query.options(joinedload(Reel.owner))
        .order_by(*ordering)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    body = {
        "success": True,
        "reels": [dump(ReelOut, r) for r in reels],
        "currentPage": page,
        "totalPages": total_pages(total, limit),
        "totalReels": total,
    }
    body.update(extra)
    return body


def _get_reel(db: Session, reel_id: uuid.UUID) -> tables.Reel:
    reel = db.query(Reel).options(joinedload(Reel.owner)).filter(Reel.id == reel_id).first()
    if not reel:
        raise HTTPException(status_code=404, detail="Reel not found")
    return reel


# ===========================
# 1. LISTS
# ===========================
@router.get("/")
def get_reels(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    isPublished: Optional[bool] = None,
    featured: Optional[bool] = None,
    sort: Optional[str] = None,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    is_admin = current_user.role == "admin"
    query = db.query(Reel)

    # Regular users only ever see published reels; admins may filter
    if not is_admin:
        query = query.filter(Reel.is_published.is_(True))
    else:
        if isPublished is not None:
            query = query.filter(Reel.is_published.is_(isPublished))
        if featured is not None:
            query = query.filter(Reel.featured.is_(featured))

    return _reel_page(query, page, limit, featured_first=(sort == "featured"), isAdmin=is_admin)


@router.get("/public/all")
def get_public_reels(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    featured: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Reel).filter(Reel.is_published.is_(True))
    if featured:
        query = query.filter(Reel.featured.is_(True))
    return _reel_page(query, page, limit, featured_first=True)


@router.get("/user/moje")
def get_my_reels(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    isPublished: Optional[bool] = None,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(Reel).filter(Reel.user_id == current_user.id)
    if isPublished is not None:
        query = query.filter(Reel.is_published.is_(isPublished))
    return _reel_page(query, page, limit)


@router.get("/admin/stats")
def get_reel_stats(current_user: tables.User = Depends(get_current_admin), db: Session = Depends(get_db)):
    try:
        by_status = dict(db.query(Reel.is_published, func.count(Reel.id)).group_by(Reel.is_published).all())
        week_ago = tables.utcnow() - timedelta(days=7)
        new_this_week = db.query(func.count(Reel.id)).filter(Reel.created_at >= week_ago).scalar() or 0
        featured_count = db.query(func.count(Reel.id)).filter(Reel.featured.is_(True)).scalar() or 0
    except SQLAlchemyError as e:
        logger.error(f"Error computing reel stats: {e}")
        raise HTTPException(status_code=500, detail="Error fetching statistics")

    published = by_status.get(True, 0)
    drafts = by_status.get(False, 0)
    return {
        "success": True,
        "stats": {
            "published": published,
            "drafts": drafts,
            "total": published + drafts,
            "newThisWeek": new_this_week,
            "featuredCount": featured_count,
        },
    }


# ===========================
# 2. DETAIL
# ===========================
@router.get("/{reel_id}")
def get_reel(
    reel_id: uuid.UUID,
    current_user: Optional[tables.User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    reel = _get_reel(db, reel_id)
    can_edit = is_owner_or_admin(current_user, reel.user_id)
    if not reel.is_published and not can_edit:
        raise HTTPException(status_code=404, detail="Reel not found")
    return {"success": True, "reel": dump(ReelOut, reel), "canEdit": can_edit}


# ===========================
# 3. OWNER: CREATE / UPDATE / STATUS / DELETE
# ===========================
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_reel(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(""),
    duration: Optional[str] = Form(None),
    isPublished: bool = Form(False),
    featured: bool = Form(False),
    video: Optional[UploadFile] = File(None),
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = parse_or_400(ReelCreate, {
        "title": title,
        "description": description or "",
        "duration": duration or "0:00",
        "isPublished": isPublished,
    })
    if video is None or not video.filename:
        raise HTTPException(status_code=400, detail="Video file is required")

    stored = await save_upload(video, REEL_VIDEO)
    try:
        reel = Reel(
            user_id=current_user.id,
            title=data.title,
            description=data.description or "",
            duration=data.duration or "0:00",
            video_url=stored.path,
            is_published=data.is_published,
            featured=featured,
        )
        db.add(reel)
        db.commit()
        reel = _get_reel(db, reel.id)
    except SQLAlchemyError as e:
        db.rollback()
        delete_stored_file(stored.path)
        logger.error(f"Database error creating reel: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    logger.info(f"Reel created: {reel.id} by {current_user.email}")
    return {"success": True, "message": "Reel created", "reel": dump(ReelOut, reel)}


@router.put("/{reel_id}")
async def update_reel(
    reel_id: uuid.UUID,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    isPublished: Optional[bool] = Form(None),
    featured: Optional[bool] = Form(None),
    video: Optional[UploadFile] = File(None),
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    reel = _get_reel(db, reel_id)
    require_owner_or_admin(current_user, reel.user_id, "Not allowed to edit this reel")

    fields = {
        "title": title, "description": description, "duration": duration,
        "isPublished": isPublished, "featured": featured,
    }
    data = parse_or_400(ReelUpdate, {k: v for k, v in fields.items() if v is not None})
    stored = await save_upload(video, REEL_VIDEO)
    previous_video = reel.video_url

    try:
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(reel, key, value)
        if stored:
            reel.video_url = stored.path
        db.commit()
        reel = _get_reel(db, reel_id)
    except SQLAlchemyError as e:
        db.rollback()
        if stored:
            delete_stored_file(stored.path)
        logger.error(f"Database error updating reel {reel_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if stored and previous_video:
        delete_stored_file(previous_video)

    return {"success": True, "message": "Reel updated", "reel": dump(ReelOut, reel)}


@router.patch("/{reel_id}/status")
def update_reel_status(
    reel_id: uuid.UUID,
    data: ReelStatusUpdate,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        reel = _get_reel(db, reel_id)
        require_owner_or_admin(current_user, reel.user_id, "Not allowed to edit this reel")
        if data.is_published is None and data.featured is None:
            raise HTTPException(status_code=400, detail="Provide isPublished and/or featured")

        if data.is_published is not None:
            reel.is_published = data.is_published
        if data.featured is not None:
            reel.featured = data.featured
        db.commit()
        reel = _get_reel(db, reel_id)
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error updating reel status {reel_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    state = "published" if reel.is_published else "draft"
    return {"success": True, "message": f"Reel is now {state}", "reel": dump(ReelOut, reel)}


@router.delete("/{reel_id}")
def delete_reel(
    reel_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        reel = _get_reel(db, reel_id)
        require_owner_or_admin(current_user, reel.user_id, "Not allowed to delete this reel")
        video_url = reel.video_url
        db.delete(reel)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error deleting reel {reel_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    delete_stored_file(video_url)
    logger.info(f"Reel deleted: {reel_id} by {current_user.email}")
    return {"success": True, "message": "Reel deleted"}
