from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase

class Base(DeclarativeBase):
    pass

def utcnow() -> datetime:
    return datetime.now(timezone.utc)
