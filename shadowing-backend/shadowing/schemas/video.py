from datetime import datetime
from pydantic import BaseModel, Field

class VideoCreate(BaseModel):
    """Request body for adding a video"""
    video_url: str
    difficulty_level: str | None = Field(default=None, pattern="^(auto|easy|medium|hard)$")

class ParseSubtitlesIn(BaseModel):
    language: str | None = None

class BrowserCue(BaseModel):
    start: float
    end: float
    text: str

class BrowserMetadata(BaseModel):
    title: str | None = None
    description: str | None = None
    channel: str | None = None
    thumbnail: str | None = None
    duration: float | None = None

class BrowserSubtitlesIn(BaseModel):
    """Cues extracted client-side, plus optional metadata and cookies"""
    video_url: str
    cues: list[BrowserCue]
    language: str | None = None
    metadata: BrowserMetadata | None = None
    cookies: str | None = None
    difficulty_level: str | None = Field(default=None, pattern="^(auto|easy|medium|hard)$")

class VideoOut(BaseModel):
    id: str
    external_id: str
    source_url: str
    title: str
    description: str | None = None
    duration_sec: float | None = None
    channel: str | None = None
    thumbnail_url: str | None = None
    has_subtitle: bool = False
    subtitle_language: str | None = None
    difficulty_level: str
    status: str
    progress_message: str | None = None
    error_message: str | None = None
    sentence_count: int = 0
    created_by: int = 0
    created_at: datetime
    completed_at: datetime | None = None

    class Config:
        from_attributes = True

class VideoStatusOut(BaseModel):
    id: str
    status: str
    progress_message: str | None = None
    error_message: str | None = None
    sentence_count: int = 0

    class Config:
        from_attributes = True

class VideoPageOut(BaseModel):
    items: list[VideoOut]
    total: int
    page: int
    size: int
    total_pages: int
    has_next: bool
    has_previous: bool

class ExternalParseIn(BaseModel):
    """Parse request keyed by the YouTube id, as sent by the browser plugin"""
    video_id: str = Field(min_length=1)
    video_url: str | None = None
