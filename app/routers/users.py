#routers/users.py
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from typing import Optional
import uuid
import logging

from app.core.database import get_db
from app.core.security import get_current_user, get_current_admin, require_owner_or_admin
from app.models import tables
from app.schemas import UserOut, TeamMemberOut, UserUpdate, dump
from app.services.listing_query import total_pages
from app.utils.storage import PROFILE_PICTURE, save_upload, delete_stored_file

router = APIRouter()

logger = logging.getLogger(__name__)

User = tables.User


def _get_user(db: Session, user_id: uuid.UUID) -> tables.User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ==========================================
# 1. ADMIN: USER LIST
# ==========================================
@router.get("/")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[str] = None,
    search: Optional[str] = None,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    if role and role not in tables.USER_ROLES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid role. Must be one of: {', '.join(tables.USER_ROLES)}"
        )

    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    term = (search or "").strip()
    if term:
        query = query.filter(or_(
            User.name.icontains(term, autoescape=True),
            User.surname.icontains(term, autoescape=True),
            User.email.icontains(term, autoescape=True),
        ))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "users": [dump(UserOut, u) for u in users],
        "currentPage": page,
        "totalPages": total_pages(total, limit),
        "totalUsers": total,
    }


# ==========================================
# 2. PUBLIC: TEAM PAGE
# ==========================================
@router.get("/team/admins")
def get_team(db: Session = Depends(get_db)):
    members = (
        db.query(User)
        .filter(User.role.in_(("admin", "agent")), User.is_active.is_(True))
        .order_by(User.surname, User.name)
        .all()
    )
    return {"success": True, "team": [dump(TeamMemberOut, m) for m in members]}


# ==========================================
# 3. SELF OR ADMIN: DETAIL / UPDATE / PICTURE
# ==========================================
@router.get("/{user_id}")
def get_user(
    user_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_owner_or_admin(current_user, user_id, "Not allowed to view this user")
    return {"success": True, "user": dump(UserOut, _get_user(db, user_id))}


@router.put("/{user_id}")
def update_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_owner_or_admin(current_user, user_id, "Not allowed to edit this user")
    changes = data.model_dump(exclude_unset=True)

    if current_user.role != "admin" and ({"role", "is_active"} & changes.keys()):
        raise HTTPException(status_code=403, detail="Only admins can change role or account status")

    try:
        user = _get_user(db, user_id)
        for key, value in changes.items():
            if key in ("name", "surname"):
                value = (value or "").strip()
                if not value:
                    raise HTTPException(status_code=400, detail="Name and surname cannot be empty")
            if key in ("role", "is_active") and value is None:
                continue
            setattr(user, key, value)

        db.commit()
        db.refresh(user)

        logger.info(f"User {user_id} updated by {current_user.email}")
        return {"success": True, "message": "User updated", "user": dump(UserOut, user)}

    except HTTPException:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Integrity error updating user {user_id}: {e}")
        raise HTTPException(status_code=409, detail="Duplicate entry or constraint violation")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error updating user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")


@router.post("/{user_id}/upload")
async def upload_profile_picture(
    user_id: uuid.UUID,
    profilePicture: Optional[UploadFile] = File(None),
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_owner_or_admin(current_user, user_id, "Not allowed to edit this user")
    user = _get_user(db, user_id)
    if profilePicture is None or not profilePicture.filename:
        raise HTTPException(status_code=400, detail="Profile picture file is required")

    stored = await save_upload(profilePicture, PROFILE_PICTURE)
    previous_picture = user.profile_picture
    try:
        user.profile_picture = stored.path
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        delete_stored_file(stored.path)
        logger.error(f"Database error saving profile picture for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if previous_picture:
        delete_stored_file(previous_picture)

    return {
        "success": True,
        "message": "Profile picture uploaded",
        "profilePicture": user.profile_picture,
        "user": dump(UserOut, user),
    }


# ==========================================
# 4. ADMIN: DELETE
# ==========================================
@router.delete("/{user_id}")
def delete_user(
    user_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    if str(current_user.id) == str(user_id):
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    try:
        user = _get_user(db, user_id)
        owned = db.query(tables.Listing).filter(tables.Listing.user_id == user.id).count()
        if owned:
            raise HTTPException(status_code=409, detail="User still owns properties; deactivate the account instead")
        picture = user.profile_picture
        videos = [reel.video_url for reel in user.reels]
        db.delete(user)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error deleting user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if picture:
        delete_stored_file(picture)
    for video in videos:
        delete_stored_file(video)

    logger.info(f"User {user_id} deleted by {current_user.email}")
    return {"success": True, "message": "User deleted"}
