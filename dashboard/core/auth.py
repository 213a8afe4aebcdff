from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import List, Optional
from passlib.context import CryptContext
import jwt
from datetime import datetime, timedelta, timezone
from dashboard.core.config import settings
from dashboard.core.errors import Unauthenticated, Unauthorized

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"

class Identity(BaseModel):
    """Verified caller, passed explicitly into every core operation."""
    sub: str
    roles: List[str]

    @property
    def user_id(self) -> int:
        return int(self.sub)

    def has_role(self, role: str) -> bool:
        return role in self.roles

bearer = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)

def verify_password(raw: str, hashed: str) -> bool:
    return pwd_context.verify(raw, hashed)

def create_token(user_id: int, roles: List[str], ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": str(user_id), "roles": roles, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)

def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Identity:
    if creds is None:
        raise Unauthenticated("Authentication required")
    try:
        payload = jwt.decode(creds.credentials, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
        return Identity(sub=payload["sub"], roles=payload.get("roles", []))
    except (jwt.PyJWTError, KeyError):
        raise Unauthenticated("Invalid or expired token")

def require_roles(*required: str):
    def checker(user: Identity = Depends(get_current_user)):
        roles = set(user.roles)
        if not roles.intersection(set(required)):
            raise Unauthorized("Insufficient role")
        return user
    return checker
