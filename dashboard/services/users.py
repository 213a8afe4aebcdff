import logging
from typing import Any, Dict, Optional
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from dashboard.core.auth import hash_password, verify_password, ROLE_STUDENT
from dashboard.core.config import settings
from dashboard.core.errors import Conflict, NotFound, Unauthenticated, ValidationFailed
from dashboard.models.orm import User
from dashboard.services.avatars import avatar_url

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "batch", "bio", "avatar_url")

def profile_payload(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "batch": user.batch,
        "bio": user.bio,
        "avatar_url": avatar_url(user.display_name, user.avatar_url),
        "role": user.role,
    }

def register_user(db: Session, username: str, email: str, password: str,
                  full_name: Optional[str] = None, batch: Optional[str] = None) -> User:
    username = username.strip()
    email = email.strip().lower()
    if not username:
        raise ValidationFailed("Username is required")
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationFailed(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")
    if db.scalar(select(User).where(or_(User.username == username, User.email == email))):
        raise Conflict("Username or email already registered")
    user = User(username=username, email=email, password_hash=hash_password(password),
                full_name=(full_name or "").strip() or None, batch=(batch or "").strip() or None,
                role=ROLE_STUDENT)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent registration took the username or email first
        db.rollback()
        raise Conflict("Username or email already registered")
    db.refresh(user)
    logger.info(f"User {user.id} registered as {user.username}")
    return user

def authenticate(db: Session, username: str, password: str) -> User:
    user = db.scalar(select(User).where(User.username == username.strip()))
    if not user or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return user

def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user

def update_profile(db: Session, user_id: int, changes: Dict[str, Any]) -> User:
    user = get_user(db, user_id)
    for key, value in changes.items():
        if key not in PROFILE_FIELDS:
            continue
        if isinstance(value, str):
            value = value.strip() or None
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user
