from sqlalchemy import String, Integer, Float, Boolean, DateTime, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from shadowing.db.base import Base, utcnow

# Title used until metadata has been fetched
PLACEHOLDER_TITLE = "Loading..."

class Video(Base):
    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    external_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    source_url: Mapped[str] = mapped_column(String, nullable=False)

    # Metadata from yt-dlp
    title: Mapped[str] = mapped_column(String, nullable=False, default=PLACEHOLDER_TITLE)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_sec: Mapped[float | None] = mapped_column(Float, nullable=True)
    channel: Mapped[str | None] = mapped_column(String, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String, nullable=True)
    has_subtitle: Mapped[bool] = mapped_column(Boolean, default=False)
    subtitle_language: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Requested level: auto lets the classifier decide per sentence
    difficulty_level: Mapped[str] = mapped_column(String(16), default="auto")

    status: Mapped[str] = mapped_column(String(16), default="added")
    progress_message: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentence_count: Mapped[int] = mapped_column(Integer, default=0)

    created_by: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    completed_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
