"""
Download Task Orchestrator - Bounded-concurrency download jobs with live progress
Tasks move queued -> parsing -> downloading -> success/failed. Every state or
progress change is persisted and republished to progress subscribers.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shadowing.core.enums import DownloadStatus, DownloadType, ensure_download_transition
from shadowing.core.errors import (
    DownloadFailed,
    DuplicateSuccess,
    ErrorCode,
    RecordNotFound,
    ShadowingError,
)
from shadowing.core.logging import JobContext
from shadowing.db.base import utcnow
from shadowing.db.context import session_scope
from shadowing.db.repositories import DownloadTaskRepository, VideoRepository
from shadowing.db.session import SessionLocal
from shadowing.models import DownloadTask, Video
from shadowing.models.video import PLACEHOLDER_TITLE
from shadowing.schemas.download_task import DownloadTaskOut
from shadowing.services.download_files import format_args, locate_output, sanitize_filename
from shadowing.services.progress_broadcaster import ProgressBroadcaster
from shadowing.services.ytdlp import (
    AlreadyDownloadedEvent,
    DestinationEvent,
    DownloadComplete,
    ProgressEvent,
    YtdlpInvoker,
)
from shadowing.workers.queue import enqueue_download

logger = logging.getLogger(__name__)

PARSING_PROGRESS = 5
DOWNLOADING_PROGRESS = 10


def scale_progress(percent: float) -> int:
    """Map tool percentage 0-100 onto task progress 10-99."""
    return min(int(DOWNLOADING_PROGRESS + percent * 0.9), 99)


def task_event(task: DownloadTask) -> dict:
    return {"event": "task", "task": DownloadTaskOut.model_validate(task).model_dump(mode="json")}


class DownloadOrchestrator:
    def __init__(
        self,
        invoker: YtdlpInvoker,
        download_dir: str,
        broadcaster: ProgressBroadcaster,
        session_factory: Callable[[], Session] = SessionLocal,
        submit: Callable = enqueue_download,
        max_concurrent: int = 3,
    ):
        self.invoker = invoker
        self.download_dir = Path(download_dir)
        self.broadcaster = broadcaster
        self.session_factory = session_factory
        self.submit = submit
        self.max_concurrent = max_concurrent
        self._permits = threading.BoundedSemaphore(max_concurrent)
        self._create_lock = threading.Lock()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_task(self, db: Session, task_id: str) -> DownloadTask:
        task = DownloadTaskRepository(db).get_by_id(task_id)
        if task is None:
            raise RecordNotFound(f"Download task not found: {task_id}")
        return task

    def _load_video(self, db: Session, video_id: str) -> Video:
        video = VideoRepository(db).get_by_id(video_id)
        if video is None:
            raise RecordNotFound(f"Video not found: {video_id}")
        return video

    def _publish(self, task: DownloadTask) -> None:
        self.broadcaster.publish(task_event(task))

    def update_task_status(self, task_id: str, status: DownloadStatus, **fields) -> DownloadTask:
        with session_scope(self.session_factory) as db:
            task = self._load_task(db, task_id)
            ensure_download_transition(task.status, status)
            task.status = status.value
            for key, value in fields.items():
                setattr(task, key, value)
        logger.info(f"[downloads] Task {task_id} -> {status.value}")
        self._publish(task)
        return task

    def _update_progress(self, task_id: str, **fields) -> DownloadTask:
        with session_scope(self.session_factory) as db:
            task = self._load_task(db, task_id)
            for key, value in fields.items():
                setattr(task, key, value)
        self._publish(task)
        return task

    def _fail(self, task_id: str, error: Exception) -> None:
        category = getattr(error, "code", None)
        if category not in (ErrorCode.PERMISSION_REQUIRED, ErrorCode.DUPLICATE_SUCCESS):
            category = ErrorCode.DOWNLOAD_FAILED
        try:
            self.update_task_status(
                task_id,
                DownloadStatus.FAILED,
                error_category=category,
                error_message=str(error),
                progress_message="failed",
                completed_at=utcnow(),
            )
        except ShadowingError as e:
            logger.error(f"[downloads] could not mark task {task_id} failed: {e}")

    # =========================================================================
    # Formats / creation
    # =========================================================================

    def list_formats(self, video_id: str):
        with session_scope(self.session_factory) as db:
            video = self._load_video(db, video_id)
        return self.invoker.list_formats(video.source_url, video.external_id)

    def create_task(
        self,
        video_id: str,
        download_type: str = DownloadType.VIDEO.value,
        format_id: Optional[str] = None,
        quality: Optional[str] = None,
        created_by: int = 0,
    ) -> DownloadTask:
        """
        Insert a queued task. Rejects with DuplicateSuccess when the video already
        has a successful download of this type; check and insert share one lock.
        """
        download_type = DownloadType(download_type).value
        with self._create_lock:
            with session_scope(self.session_factory) as db:
                video = self._load_video(db, video_id)
                repo = DownloadTaskRepository(db)
                if repo.get_success(video_id, download_type):
                    raise DuplicateSuccess(video_id, download_type)
                task = repo.create(
                    video_id=video_id,
                    external_id=video.external_id,
                    download_type=download_type,
                    format_id=format_id,
                    quality=quality or "best",
                    status=DownloadStatus.QUEUED.value,
                    progress=0,
                    progress_message="waiting",
                    created_by=created_by,
                )
        logger.info(f"[downloads] Created {download_type} task {task.id} for video {video_id}")
        self._publish(task)
        return task

    def start(self, task_id: str) -> Future:
        return self.submit(self.run_task, task_id)

    def create_and_start(self, *args, **kwargs) -> DownloadTask:
        task = self.create_task(*args, **kwargs)
        self.start(task.id)
        return task

    def quick_download(self, video_id: str, download_type: str = DownloadType.VIDEO.value, created_by: int = 0) -> DownloadTask:
        """Best quality video (or mp3 audio) with no format selection."""
        return self.create_and_start(video_id, download_type, None, "best", created_by)

    # =========================================================================
    # Execution
    # =========================================================================

    def run_task(self, task_id: str) -> None:
        """Wait for a permit, then run the download. Never raises."""
        with JobContext(task_id=task_id):
            try:
                with self._permits:
                    self._execute(task_id)
            except Exception as e:
                logger.error(f"[downloads] task {task_id} failed: {e}", exc_info=not isinstance(e, ShadowingError))
                self._fail(task_id, e)

    def _execute(self, task_id: str) -> None:
        with session_scope(self.session_factory) as db:
            task = self._load_task(db, task_id)
            video = self._load_video(db, task.video_id)

        self.update_task_status(task_id, DownloadStatus.PARSING, progress=PARSING_PROGRESS, progress_message="parsing")

        title = video.title
        if not title or title == PLACEHOLDER_TITLE:
            title = self.invoker.fetch_metadata(video.source_url, video.external_id).title
        stem = sanitize_filename(title)
        self.download_dir.mkdir(parents=True, exist_ok=True)
        output_template = str(self.download_dir / f"{stem}.%(ext)s")

        self.update_task_status(
            task_id,
            DownloadStatus.DOWNLOADING,
            progress=DOWNLOADING_PROGRESS,
            progress_message="downloading",
            started_at=utcnow(),
        )

        progress = DOWNLOADING_PROGRESS
        destination: Optional[str] = None
        events = self.invoker.download(
            video.source_url,
            format_args(task.download_type, task.format_id, task.quality),
            output_template,
            video.external_id,
        )
        for event in events:
            if isinstance(event, ProgressEvent):
                progress = max(progress, scale_progress(event.percent))
                self._update_progress(
                    task_id,
                    progress=progress,
                    download_speed=event.speed,
                    eta=event.eta,
                    total_size=event.total_size,
                    progress_message=f"downloading {event.percent:.1f}%",
                )
            elif isinstance(event, AlreadyDownloadedEvent):
                logger.info(f"[downloads] {event.path} already downloaded")
                destination = event.path
            elif isinstance(event, DestinationEvent):
                destination = event.path
            elif isinstance(event, DownloadComplete) and event.path:
                destination = event.path

        output = Path(destination) if destination and Path(destination).is_file() else None
        if output is None:
            output = locate_output(self.download_dir, stem)
        if output is None:
            raise DownloadFailed("Download finished but the output file was not found")

        try:
            self.update_task_status(
                task_id,
                DownloadStatus.SUCCESS,
                progress=100,
                progress_message="success",
                output_file=str(output),
                download_speed=None,
                eta=None,
                completed_at=utcnow(),
            )
        except IntegrityError:
            raise DuplicateSuccess(task.video_id, task.download_type)

    # =========================================================================
    # Queries / delete
    # =========================================================================

    def get_task(self, task_id: str) -> DownloadTask:
        with session_scope(self.session_factory) as db:
            return self._load_task(db, task_id)

    def list_tasks_by_creator(self, created_by: int) -> list:
        with session_scope(self.session_factory) as db:
            return DownloadTaskRepository(db).get_by_creator(created_by)

    def list_tasks_by_video(self, video_id: str) -> list:
        with session_scope(self.session_factory) as db:
            return DownloadTaskRepository(db).get_by_video(video_id)

    def delete_task(self, task_id: str) -> None:
        """Delete the task record and its output file."""
        with session_scope(self.session_factory) as db:
            task = self._load_task(db, task_id)
            output_file = task.output_file
            db.delete(task)
        if output_file:
            Path(output_file).unlink(missing_ok=True)
        logger.info(f"[downloads] Deleted task {task_id}")
