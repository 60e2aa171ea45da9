from datetime import datetime
from pydantic import BaseModel, Field

class DownloadTaskCreate(BaseModel):
    video_id: str
    download_type: str = Field(default="video", pattern="^(video|audio)$")
    format_id: str | None = None
    quality: str | None = "best"

class DownloadTaskOut(BaseModel):
    id: str
    video_id: str
    external_id: str
    download_type: str
    format_id: str | None = None
    quality: str | None = None
    status: str
    progress: int
    progress_message: str | None = None
    download_speed: str | None = None
    eta: str | None = None
    total_size: str | None = None
    output_file: str | None = None
    error_category: str | None = None
    error_message: str | None = None
    created_by: int = 0
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True

class VideoFormatOut(BaseModel):
    format_id: str
    ext: str | None = None
    resolution: str | None = None
    quality: str | None = None
    fps: float | None = None
    vcodec: str | None = None
    acodec: str | None = None
    filesize: int | None = None
    filesize_str: str | None = None
    note: str | None = None
    has_video: bool
    has_audio: bool

    class Config:
        from_attributes = True
