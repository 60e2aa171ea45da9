from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from shadowing.db.session import SessionLocal


@contextmanager
def session_scope(session_factory: Callable[[], Session] = SessionLocal) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
