# app/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.core import config
from app.core.database import get_db
from app.models import tables
import uuid
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# Missing/malformed headers are turned into our own 401 below
security = HTTPBearer(auto_error=False)

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def create_access_token(user: tables.User, expires_delta: Optional[timedelta] = None):
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)

def decode_access_token(token: str) -> uuid.UUID:
    """
    Verify signature and expiry, returning the user id from the 'sub' claim.
    Raises JWTError (or ValueError for a malformed id) on any problem.
    """
    payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    subject = payload.get("sub")
    if subject is None:
        raise JWTError("Token missing 'sub' claim")
    return uuid.UUID(subject)

def _credentials_exception(detail: str = "Could not validate credentials"):
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

def _resolve_user(credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> tables.User:
    if credentials is None or not credentials.credentials:
        raise _credentials_exception("Authorization token missing")

    try:
        user_id = decode_access_token(credentials.credentials)
    except (JWTError, ValueError) as e:
        logger.warning(f"JWT decode error: {e}")
        raise _credentials_exception("Invalid or expired token")

    try:
        user = db.get(tables.User, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Database error while resolving token user: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection error. Please try again."
        )

    if user is None:
        logger.warning(f"Token references a missing user: {user_id}")
        raise _credentials_exception("Invalid token - user does not exist")

    if not user.is_active:
        logger.warning(f"Inactive user attempted access: {user.email}")
        raise _credentials_exception("User account is inactive")

    return user

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
):
    """
    Dependency: Get the current authenticated user from JWT token
    """
    return _resolve_user(credentials, db)

def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[tables.User]:
    """
    Dependency: Same resolution as get_current_user, but anonymous on any failure
    """
    if credentials is None:
        return None
    try:
        return _resolve_user(credentials, db)
    except HTTPException:
        return None

def get_current_admin(current_user: tables.User = Depends(get_current_user)):
    """
    Dependency: Check if user is Admin
    """
    if current_user.role != "admin":
        logger.warning(f"Non-admin user attempted admin access: {current_user.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

def is_owner_or_admin(caller: Optional[tables.User], owner_id) -> bool:
    if caller is None:
        return False
    return caller.role == "admin" or str(caller.id) == str(owner_id)

def require_owner_or_admin(caller: tables.User, owner_id, detail: str = "Not allowed to modify this resource"):
    if not is_owner_or_admin(caller, owner_id):
        logger.warning(f"User {caller.email} denied access to resource owned by {owner_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
