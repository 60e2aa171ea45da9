from datetime import datetime
from pydantic import BaseModel

from shadowing.schemas.video import VideoOut

class SentenceOut(BaseModel):
    id: str
    video_id: str
    text: str
    start_sec: float
    end_sec: float
    difficulty: str
    sentence_order: int
    video_url: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class VideoDetailOut(BaseModel):
    video: VideoOut
    sentences: list[SentenceOut]

class ExternalVideoOut(BaseModel):
    """Plugin view of a video; sentences are filled in once parsing completed"""
    status: str
    video_id: str
    message: str | None = None
    title: str | None = None
    video_url: str | None = None
    duration_sec: float | None = None
    channel: str | None = None
    thumbnail_url: str | None = None
    sentences: list[SentenceOut] = []
    total_sentences: int = 0
