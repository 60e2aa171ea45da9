from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, Index, func, text
from sqlalchemy.orm import Mapped, mapped_column
from shadowing.db.base import Base, utcnow

class DownloadTask(Base):
    __tablename__ = "download_tasks"
    __table_args__ = (
        # At most one successful download per (video, type)
        Index(
            "uq_download_tasks_success",
            "video_id",
            "download_type",
            unique=True,
            sqlite_where=text("status = 'success'"),
            postgresql_where=text("status = 'success'"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    video_id: Mapped[str] = mapped_column(String, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(32), nullable=False)

    download_type: Mapped[str] = mapped_column(String(16), nullable=False)
    format_id: Mapped[str | None] = mapped_column(String, nullable=True)
    quality: Mapped[str] = mapped_column(String(16), default="best")

    status: Mapped[str] = mapped_column(String(16), default="queued")
    progress: Mapped[int] = mapped_column(Integer, default=0)
    progress_message: Mapped[str | None] = mapped_column(String, nullable=True)
    download_speed: Mapped[str | None] = mapped_column(String, nullable=True)
    eta: Mapped[str | None] = mapped_column(String, nullable=True)
    total_size: Mapped[str | None] = mapped_column(String, nullable=True)
    output_file: Mapped[str | None] = mapped_column(String, nullable=True)

    error_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    started_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
