# routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from typing import Optional
import logging

from app.core.database import get_db
from app.core.security import verify_password, get_password_hash, create_access_token, get_current_user
from app.models import tables
from app.schemas import (
    RegisterRequest, LoginRequest, ChangePasswordRequest, ProfileUpdate, UserOut, dump, parse_or_400
)
from app.utils.storage import PROFILE_PICTURE, save_upload, delete_stored_file

router = APIRouter()

logger = logging.getLogger(__name__)


def _auth_payload(user: tables.User, message: str):
    return {
        "success": True,
        "message": message,
        "token": create_access_token(user),
        "user": dump(UserOut, user),
    }


# ==========================================
# 1. REGISTER
# ==========================================
@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    try:
        existing = db.query(tables.User).filter(tables.User.email == data.email).first()
        if existing:
            raise HTTPException(status_code=409, detail="A user with this email already exists")

        user = tables.User(
            name=data.name,
            surname=data.surname,
            email=data.email,
            password_hash=get_password_hash(data.password),
            phone=data.phone or "",
            role="user",
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"User registered: {user.email}")
        return _auth_payload(user, "Registration successful")

    except HTTPException:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Duplicate registration for {data.email}: {e}")
        raise HTTPException(status_code=409, detail="A user with this email already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during registration: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")


# ==========================================
# 2. LOGIN / LOGOUT
# ==========================================
@router.post("/login")
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    # 1. Find User
    user = db.query(tables.User).filter(tables.User.email == login_data.email).first()

    # 2. Validate Password
    if not user or not verify_password(login_data.password, user.password_hash):
        logger.warning(f"Failed login attempt for {login_data.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Record login and generate token
    try:
        user.last_login = tables.utcnow()
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not record last login for {user.email}: {e}")

    logger.info(f"User logged in: {user.email}")
    return _auth_payload(user, "Login successful")


@router.post("/logout")
def logout(current_user: tables.User = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    logger.info(f"User logged out: {current_user.email}")
    return {"success": True, "message": "Logged out"}


# ==========================================
# 3. CURRENT USER
# ==========================================
@router.get("/me")
def read_users_me(current_user: tables.User = Depends(get_current_user)):
    return {"success": True, "user": dump(UserOut, current_user)}


@router.put("/profile")
async def update_profile(
    name: Optional[str] = Form(None),
    surname: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    position: Optional[str] = Form(None),
    contactEmail: Optional[str] = Form(None),
    profilePicture: Optional[UploadFile] = File(None),
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    fields = {
        "name": name, "surname": surname, "phone": phone,
        "bio": bio, "position": position, "contactEmail": contactEmail,
    }
    update = parse_or_400(ProfileUpdate, {k: v for k, v in fields.items() if v is not None})

    stored = await save_upload(profilePicture, PROFILE_PICTURE)
    previous_picture = current_user.profile_picture
    try:
        for key, value in update.model_dump(exclude_unset=True).items():
            if key in ("name", "surname"):
                value = (value or "").strip()
                if not value:
                    raise HTTPException(status_code=400, detail="Name and surname cannot be empty")
            setattr(current_user, key, value)

        if stored:
            current_user.profile_picture = stored.path

        db.commit()
        db.refresh(current_user)
    except HTTPException:
        db.rollback()
        if stored:
            delete_stored_file(stored.path)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        if stored:
            delete_stored_file(stored.path)
        logger.error(f"Database error updating profile for {current_user.email}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if stored and previous_picture:
        delete_stored_file(previous_picture)

    logger.info(f"Profile updated: {current_user.email}")
    return {"success": True, "message": "Profile updated", "user": dump(UserOut, current_user)}


@router.delete("/profile/picture")
def delete_profile_picture(current_user: tables.User = Depends(get_current_user), db: Session = Depends(get_db)):
    previous_picture = current_user.profile_picture
    if not previous_picture:
        raise HTTPException(status_code=404, detail="No profile picture to delete")

    try:
        current_user.profile_picture = ""
        db.commit()
        db.refresh(current_user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error removing profile picture for {current_user.email}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    delete_stored_file(previous_picture)
    return {"success": True, "message": "Profile picture removed", "user": dump(UserOut, current_user)}


@router.put("/change-password")
def change_password(
    data: ChangePasswordRequest,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not verify_password(data.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    try:
        current_user.password_hash = get_password_hash(data.new_password)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error changing password for {current_user.email}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    logger.info(f"Password changed: {current_user.email}")
    return {"success": True, "message": "Password changed"}
