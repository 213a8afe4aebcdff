import zlib
from typing import Optional
from urllib.parse import urlencode
from dashboard.core.config import settings

PALETTE = ["3b82f6", "10b981", "f59e0b", "ef4444", "8b5cf6", "06b6d4", "ec4899", "84cc16"]

def background_for(name: str) -> str:
    return PALETTE[zlib.crc32(name.encode("utf-8")) % len(PALETTE)]

def avatar_url(name: str, override: Optional[str] = None) -> str:
    """Explicit profile picture if set, else a generated initials avatar."""
    if override:
        return override
    query = urlencode({"name": name, "background": background_for(name), "color": "fff"})
    return f"{settings.AVATAR_BASE_URL}?{query}"
