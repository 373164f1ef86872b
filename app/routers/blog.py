#routers/blog.py
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from sqlalchemy import asc, desc, extract, func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, time, timezone
from typing import Optional
import uuid
import logging

from app.core.database import get_db
from app.core.security import get_current_admin
from app.models import tables
from app.schemas import BlogPostOut, BlogPostCreate, BlogPostUpdate, dump, parse_or_400
from app.services.listing_query import total_pages
from app.utils.storage import BLOG_IMAGE, save_upload, delete_stored_file

router = APIRouter()

logger = logging.getLogger(__name__)

Post = tables.BlogPost

BLOG_SORTS = {
    "date-asc": [asc(Post.date), asc(Post.id)],
    "date-desc": [desc(Post.date), desc(Post.id)],
    "title-asc": [asc(Post.title), asc(Post.id)],
    "title-desc": [desc(Post.title), desc(Post.id)],
}


def _parse_date(raw: Optional[str], field_name: str, end_of_day: bool = False) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}. Use YYYY-MM-DD")
    # A bare date as the upper bound covers the whole day
    if end_of_day and len(raw) <= 10:
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.replace(tzinfo=None)


def _get_post(db: Session, post_id: uuid.UUID) -> tables.BlogPost:
    post = db.query(Post).filter(Post.id == post_id).first()
    if not post:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return post


# ===========================
# 1. PUBLIC: LIST / ARCHIVE / DETAIL
# ===========================
@router.get("/")
def get_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    search: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    sort: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Post)

    term = (search or "").strip()
    if term:
        query = query.filter(Post.title.icontains(term, autoescape=True))

    date_from = _parse_date(dateFrom, "dateFrom")
    date_to = _parse_date(dateTo, "dateTo", end_of_day=True)
    if date_from:
        query = query.filter(Post.date >= date_from)
    if date_to:
        query = query.filter(Post.date <= date_to)

    try:
        total = query.count()
        posts = (
            query.order_by(*BLOG_SORTS.get(sort or "", BLOG_SORTS["date-desc"]))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching blog posts: {e}")
        raise HTTPException(status_code=500, detail="Error fetching blog posts")

    return {
        "success": True,
        "data": [dump(BlogPostOut, p) for p in posts],
        "currentPage": page,
        "totalPages": total_pages(total, limit),
        "totalBlogs": total,
    }


@router.get("/archive/years")
def get_archive(db: Session = Depends(get_db)):
    year = extract("year", Post.date)
    month = extract("month", Post.date)
    try:
        rows = (
            db.query(year.label("year"), month.label("month"), func.count(Post.id).label("count"))
            .filter(Post.date.isnot(None))
            .group_by(year, month)
            .order_by(desc(year), desc(month))
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error building blog archive: {e}")
        raise HTTPException(status_code=500, detail="Error fetching archive")

    return {
        "success": True,
        "archive": [{"year": int(r.year), "month": int(r.month), "count": r.count} for r in rows],
    }


@router.get("/{post_id}")
def get_post(post_id: uuid.UUID, db: Session = Depends(get_db)):
    return {"success": True, "data": dump(BlogPostOut, _get_post(db, post_id))}


# ===========================
# 2. ADMIN: CREATE / UPDATE / DELETE
# ===========================
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_post(
    title: Optional[str] = Form(None),
    excerpt: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    data = parse_or_400(BlogPostCreate, {"title": title, "excerpt": excerpt, "content": content, "date": date})
    stored = await save_upload(image, BLOG_IMAGE)

    try:
        post = Post(
            title=data.title,
            excerpt=data.excerpt,
            content=data.content,
            image=stored.path if stored else None,
        )
        if data.date:
            post.date = data.date.replace(tzinfo=None)
        db.add(post)
        db.commit()
        db.refresh(post)
    except SQLAlchemyError as e:
        db.rollback()
        if stored:
            delete_stored_file(stored.path)
        logger.error(f"Database error creating blog post: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    logger.info(f"Blog post created: {post.id} by {current_user.email}")
    return {"success": True, "message": "Blog post created", "data": dump(BlogPostOut, post)}


@router.put("/{post_id}")
async def update_post(
    post_id: uuid.UUID,
    title: Optional[str] = Form(None),
    excerpt: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    post = _get_post(db, post_id)
    fields = {"title": title, "excerpt": excerpt, "content": content, "date": date}
    data = parse_or_400(BlogPostUpdate, {k: v for k, v in fields.items() if v is not None})
    stored = await save_upload(image, BLOG_IMAGE)
    previous_image = post.image

    try:
        for key, value in data.model_dump(exclude_unset=True).items():
            if key == "date":
                value = value.replace(tzinfo=None) if value else tables.utcnow()
            setattr(post, key, value)
        if stored:
            post.image = stored.path
        db.commit()
        db.refresh(post)
    except SQLAlchemyError as e:
        db.rollback()
        if stored:
            delete_stored_file(stored.path)
        logger.error(f"Database error updating blog post {post_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if stored and previous_image:
        delete_stored_file(previous_image)

    return {"success": True, "message": "Blog post updated", "data": dump(BlogPostOut, post)}


@router.delete("/{post_id}")
def delete_post(
    post_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    post = _get_post(db, post_id)
    image = post.image
    try:
        db.delete(post)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error deleting blog post {post_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if image:
        delete_stored_file(image)

    logger.info(f"Blog post deleted: {post_id} by {current_user.email}")
    return {"success": True, "message": "Blog post deleted"}
