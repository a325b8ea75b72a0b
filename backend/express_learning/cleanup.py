from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession
from .settings import settings


def purge_stale_sessions(db: Session, days: int | None = None) -> int:
	# Plans and chapters are never deleted here; only idle login sessions expire
	threshold = datetime.utcnow() - timedelta(days=days if days is not None else settings.session_retention_days)
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	return res.rowcount or 0
