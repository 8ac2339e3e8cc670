from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session, select

from app.db import upsert
from app.models import UserPresence, utcnow
from app.settings import settings


def record_heartbeat(s: Session, user_id: str, *, now: Optional[datetime] = None) -> UserPresence:
    """Upsert the user's last_seen. Safe to call any number of times."""
    now = now or utcnow()
    upsert(s, UserPresence, {"user_id": user_id, "last_seen": now}, "user_id", {"last_seen": now})
    return s.get(UserPresence, user_id, populate_existing=True)


def is_anyone_online(
    s: Session,
    window_seconds: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> bool:
    window = settings.PRESENCE_ACTIVE_SECONDS if window_seconds is None else window_seconds
    cutoff = (now or utcnow()) - timedelta(seconds=window)
    hit = s.exec(select(UserPresence.user_id).where(UserPresence.last_seen >= cutoff).limit(1)).first()
    return hit is not None
