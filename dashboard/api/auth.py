from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from sqlalchemy.orm import Session
from dashboard.core.database import get_db
from dashboard.core.auth import create_token, get_current_user, Identity
from dashboard.services import users

router = APIRouter()

class Register(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    email: EmailStr
    password: str = Field(min_length=1)
    full_name: Optional[str] = None
    batch: Optional[str] = None

class Login(BaseModel):
    username: str
    password: str

@router.post("/register", status_code=201)
def register(payload: Register, db: Session = Depends(get_db)):
    user = users.register_user(db, payload.username, payload.email, payload.password,
                               full_name=payload.full_name, batch=payload.batch)
    return {"message": "Registered successfully", "user": users.profile_payload(user)}

@router.post("/login")
def login(payload: Login, db: Session = Depends(get_db)):
    user = users.authenticate(db, payload.username, payload.password)
    token = create_token(user.id, [user.role])
    return {"access_token": token, "token_type": "bearer", "user": users.profile_payload(user)}

@router.get("/me")
def me(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return users.profile_payload(users.get_user(db, user.user_id))
