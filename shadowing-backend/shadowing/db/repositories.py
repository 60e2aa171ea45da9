from typing import TypeVar, Generic, Type, Optional, Iterable
from uuid import uuid4
from sqlalchemy.orm import Session
from shadowing.db.base import Base

T = TypeVar("T", bound=Base)

class BaseRepository(Generic[T]):
    """Generic repository for CRUD operations."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def get_by_id(self, id: str) -> Optional[T]:
        return self.db.query(self.model).filter(self.model.id == id).first()

    def create(self, **kwargs) -> T:
        if "id" not in kwargs:
            kwargs["id"] = str(uuid4())
        instance = self.model(**kwargs)
        self.db.add(instance)
        return instance

    def bulk_create(self, rows: Iterable[dict]) -> list[T]:
        return [self.create(**row) for row in rows]

    def update(self, id: str, **fields) -> Optional[T]:
        instance = self.get_by_id(id)
        if instance:
            for key, value in fields.items():
                setattr(instance, key, value)
        return instance


class VideoRepository(BaseRepository):
    """Repository for Video operations."""

    def __init__(self, db: Session):
        from shadowing.models import Video
        super().__init__(db, Video)

    def get_by_external_id(self, external_id: str):
        return self.db.query(self.model).filter(
            self.model.external_id == external_id
        ).first()

    def _filtered(self, status: str | None = None, created_by: int | None = None):
        q = self.db.query(self.model)
        if status:
            q = q.filter(self.model.status == status)
        if created_by is not None:
            q = q.filter(self.model.created_by == created_by)
        return q

    def get_filtered(
        self,
        status: str | None = None,
        created_by: int | None = None,
        offset: int = 0,
        limit: int | None = None,
    ):
        q = self._filtered(status, created_by).order_by(self.model.created_at.desc())
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def count_filtered(self, status: str | None = None, created_by: int | None = None) -> int:
        return self._filtered(status, created_by).count()


class SubtitleSegmentRepository(BaseRepository):
    """Repository for SubtitleSegment operations."""

    def __init__(self, db: Session):
        from shadowing.models import SubtitleSegment
        super().__init__(db, SubtitleSegment)

    def get_by_video(self, video_id: str):
        return self.db.query(self.model).filter(
            self.model.video_id == video_id
        ).order_by(self.model.segment_order.asc()).all()

    def delete_by_video(self, video_id: str) -> int:
        count = self.db.query(self.model).filter(
            self.model.video_id == video_id
        ).delete()
        return count


class PracticeSentenceRepository(BaseRepository):
    """Repository for PracticeSentence operations."""

    def __init__(self, db: Session):
        from shadowing.models import PracticeSentence
        super().__init__(db, PracticeSentence)

    def get_by_video(self, video_id: str, difficulty: str | None = None):
        q = self.db.query(self.model).filter(self.model.video_id == video_id)
        if difficulty:
            q = q.filter(self.model.difficulty == difficulty)
        return q.order_by(self.model.sentence_order.asc()).all()

    def count_by_video(self, video_id: str) -> int:
        return self.db.query(self.model).filter(
            self.model.video_id == video_id
        ).count()

    def delete_by_video(self, video_id: str) -> int:
        count = self.db.query(self.model).filter(
            self.model.video_id == video_id
        ).delete()
        return count


class DownloadTaskRepository(BaseRepository):
    """Repository for DownloadTask operations."""

    def __init__(self, db: Session):
        from shadowing.models import DownloadTask
        super().__init__(db, DownloadTask)

    def get_by_creator(self, created_by: int):
        return self.db.query(self.model).filter(
            self.model.created_by == created_by
        ).order_by(self.model.created_at.desc()).all()

    def get_by_video(self, video_id: str):
        return self.db.query(self.model).filter(
            self.model.video_id == video_id
        ).order_by(self.model.created_at.desc()).all()

    def get_success(self, video_id: str, download_type: str):
        return self.db.query(self.model).filter(
            self.model.video_id == video_id,
            self.model.download_type == download_type,
            self.model.status == "success",
        ).first()

    def get_by_status(self, status: str):
        return self.db.query(self.model).filter(
            self.model.status == status
        ).order_by(self.model.created_at.asc()).all()

    def delete_by_video(self, video_id: str) -> int:
        count = self.db.query(self.model).filter(
            self.model.video_id == video_id
        ).delete()
        return count
