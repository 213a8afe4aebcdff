from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional
from sqlalchemy.orm import Session
from dashboard.core.database import get_db
from dashboard.core.auth import get_current_user, Identity
from dashboard.services import users

router = APIRouter()

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=120)
    batch: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, max_length=500)

@router.get("")
def get_profile(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return users.profile_payload(users.get_user(db, user.user_id))

@router.put("")
def update_profile(payload: ProfileUpdate, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = users.update_profile(db, user.user_id, payload.model_dump(exclude_unset=True))
    return users.profile_payload(updated)
