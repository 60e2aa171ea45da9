"""
Video Acquisition Orchestrator - State machine for metadata + subtitle ingestion
Drives a video through added -> parsing -> completed/failed, trying subtitle
languages in order until one yields usable cues.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from shadowing.core.enums import Difficulty, VideoStatus, ensure_video_transition
from shadowing.core.errors import (
    EmptySubtitleFile,
    ExtractionFailed,
    InvalidTransition,
    InvalidVideoUrl,
    RecordNotFound,
    ShadowingError,
)
from shadowing.core.logging import JobContext
from shadowing.core.pipeline_settings import PipelineSettings, pipeline_settings
from shadowing.db.base import utcnow
from shadowing.db.context import session_scope
from shadowing.db.repositories import (
    DownloadTaskRepository,
    PracticeSentenceRepository,
    SubtitleSegmentRepository,
    VideoRepository,
)
from shadowing.db.session import SessionLocal
from shadowing.models import Video
from shadowing.models.video import PLACEHOLDER_TITLE
from shadowing.services.segmentation import SentenceDraft, build_sentences
from shadowing.services.subtitle_parser import Segment, clean_text, parse_vtt_file
from shadowing.services.video_urls import extract_youtube_video_id, watch_url
from shadowing.services.ytdlp import VideoMetadata, YtdlpInvoker
from shadowing.workers.queue import enqueue_parse

logger = logging.getLogger(__name__)

SUBTITLE_FAILURE_PREFIX = "Failed to download subtitles after trying multiple languages"


class VideoAcquisitionOrchestrator:
    def __init__(
        self,
        invoker: YtdlpInvoker,
        subtitle_dir: str,
        session_factory: Callable[[], Session] = SessionLocal,
        submit: Callable = enqueue_parse,
        config: PipelineSettings = pipeline_settings,
    ):
        self.invoker = invoker
        self.subtitle_dir = Path(subtitle_dir)
        self.session_factory = session_factory
        self.submit = submit
        self.config = config
        self._lock = threading.Lock()

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    def _load(self, db: Session, video_id: str) -> Video:
        video = VideoRepository(db).get_by_id(video_id)
        if video is None:
            raise RecordNotFound(f"Video not found: {video_id}")
        return video

    def update_video_status(self, video_id: str, status: VideoStatus, **fields) -> Video:
        """Validate and apply a status transition, plus any extra fields."""
        with session_scope(self.session_factory) as db:
            video = self._load(db, video_id)
            ensure_video_transition(video.status, status)
            video.status = status.value
            for key, value in fields.items():
                setattr(video, key, value)
        logger.info(f"[acquisition] Video {video_id} -> {status.value}")
        return video

    def _update_fields(self, video_id: str, **fields) -> None:
        with session_scope(self.session_factory) as db:
            VideoRepository(db).update(video_id, **fields)

    def _mark_failed(self, video_id: str, message: str) -> None:
        try:
            self.update_video_status(
                video_id,
                VideoStatus.FAILED,
                error_message=message,
                progress_message="Failed",
            )
        except ShadowingError as e:
            logger.error(f"[acquisition] could not mark video {video_id} failed: {e}")

    def _apply_metadata(self, video: Video, meta: VideoMetadata) -> None:
        video.title = meta.title or video.title
        video.description = meta.description
        video.duration_sec = meta.duration
        video.channel = meta.channel
        video.thumbnail_url = meta.thumbnail_url
        video.has_subtitle = meta.has_subtitle
        video.subtitle_language = meta.subtitle_language

    def _replace_sentences(
        self,
        db: Session,
        video: Video,
        segments: Sequence[Segment],
        drafts: Sequence[SentenceDraft],
    ) -> None:
        segment_repo = SubtitleSegmentRepository(db)
        sentence_repo = PracticeSentenceRepository(db)
        segment_repo.delete_by_video(video.id)
        sentence_repo.delete_by_video(video.id)

        segment_repo.bulk_create(
            dict(
                video_id=video.id,
                start_sec=seg.start,
                end_sec=seg.end,
                raw_text=seg.raw_text,
                clean_text=seg.text,
                segment_order=seg.order,
            )
            for seg in segments
        )
        sentence_repo.bulk_create(
            dict(
                video_id=video.id,
                text=d.text,
                start_sec=d.start,
                end_sec=d.end,
                difficulty=d.difficulty,
                sentence_order=d.order,
                video_url=video.source_url,
            )
            for d in drafts
        )
        video.sentence_count = len(drafts)

    # =========================================================================
    # Add video
    # =========================================================================

    def add_video(self, url: str, created_by: int = 0, difficulty: Optional[str] = None) -> Video:
        """Create a video in `added` state, or return the existing record for the same external id."""
        external_id = extract_youtube_video_id(url)
        if not external_id:
            raise InvalidVideoUrl(f"Invalid YouTube URL: {url}")

        with self._lock:
            with session_scope(self.session_factory) as db:
                repo = VideoRepository(db)
                existing = repo.get_by_external_id(external_id)
                if existing:
                    return existing
                video = repo.create(
                    external_id=external_id,
                    source_url=url,
                    title=PLACEHOLDER_TITLE,
                    status=VideoStatus.ADDED.value,
                    difficulty_level=(difficulty or Difficulty.AUTO.value),
                    progress_message="Waiting for video info",
                    created_by=created_by,
                )
        logger.info(f"[acquisition] Added video {video.id} ({external_id})")
        return video

    def add_video_and_fetch_info(self, url: str, created_by: int = 0, difficulty: Optional[str] = None) -> Video:
        video = self.add_video(url, created_by, difficulty)
        if video.title == PLACEHOLDER_TITLE and video.status == VideoStatus.ADDED.value:
            self.submit(self.fetch_video_info, video.id)
        return video

    def fetch_video_info(self, video_id: str) -> None:
        """Background metadata fetch. Failures are recorded; the status stays `added`."""
        with JobContext(video_id=video_id):
            try:
                with session_scope(self.session_factory) as db:
                    video = self._load(db, video_id)
                    url, external_id = video.source_url, video.external_id
                meta = self.invoker.fetch_metadata(url, external_id)
                with session_scope(self.session_factory) as db:
                    video = self._load(db, video_id)
                    self._apply_metadata(video, meta)
                    video.error_message = None
                    video.progress_message = "Video info loaded"
                logger.info(f"[acquisition] Metadata loaded for {video_id}: {meta.title}")
            except ShadowingError as e:
                logger.warning(f"[acquisition] fetch_video_info failed for {video_id}: {e}")
                self._update_fields(
                    video_id,
                    error_message=str(e),
                    progress_message="Failed to load video info",
                )

    # =========================================================================
    # Parse subtitles
    # =========================================================================

    def begin_parse(self, video_id: str, language: Optional[str] = None) -> Video:
        """
        Validate the transition to `parsing`, claim the video and submit the
        parse job. Returns immediately; callers poll the video status.
        """
        with self._lock:
            video = self.update_video_status(
                video_id,
                VideoStatus.PARSING,
                error_message=None,
                progress_message="Queued for parsing",
            )
        self.submit(self.parse_subtitles, video_id, language)
        return video

    def parse_subtitles(self, video_id: str, language: Optional[str] = None) -> None:
        """Run the parse pipeline. Never raises: every failure ends in `failed`."""
        with JobContext(video_id=video_id):
            try:
                with self._lock:
                    with session_scope(self.session_factory) as db:
                        video = self._load(db, video_id)
                        if video.status != VideoStatus.PARSING.value:
                            ensure_video_transition(video.status, VideoStatus.PARSING)
                            video.status = VideoStatus.PARSING.value
                            video.error_message = None
                self._run_parse(video_id, language)
            except Exception as e:
                logger.error(f"[acquisition] parse_subtitles failed for {video_id}: {e}", exc_info=True)
                self._mark_failed(video_id, str(e))

    def _run_parse(self, video_id: str, language: Optional[str]) -> None:
        with session_scope(self.session_factory) as db:
            video = self._load(db, video_id)

        if video.title == PLACEHOLDER_TITLE or not video.subtitle_language:
            self._update_fields(video_id, progress_message="Fetching video info")
            meta = self.invoker.fetch_metadata(video.source_url, video.external_id)
            with session_scope(self.session_factory) as db:
                video = self._load(db, video_id)
                self._apply_metadata(video, meta)

        segments, used_language = self._acquire_segments(video, language)

        self._update_fields(video_id, progress_message="Building practice sentences")
        drafts = build_sentences(segments, used_language, video.difficulty_level)

        with session_scope(self.session_factory) as db:
            video = self._load(db, video_id)
            ensure_video_transition(video.status, VideoStatus.COMPLETED)
            self._replace_sentences(db, video, segments, drafts)
            video.status = VideoStatus.COMPLETED.value
            video.has_subtitle = True
            video.subtitle_language = used_language
            video.completed_at = utcnow()
            video.error_message = None
            video.progress_message = f"Parsed {len(drafts)} sentences"
        logger.info(
            f"[acquisition] Video {video_id} -> completed ({len(drafts)} sentences, language={used_language})"
        )

    def candidate_languages(self, requested: Optional[str], detected: Optional[str]) -> List[str]:
        """Requested (or detected, or default) language first, then the fallback list."""
        target = requested or detected or self.config.default_language
        ordered = [target]
        for lang in self.config.fallback_languages:
            if lang not in ordered:
                ordered.append(lang)
        return ordered

    def _clear_subtitle_files(self, external_id: str) -> None:
        if not self.subtitle_dir.is_dir():
            return
        for path in self.subtitle_dir.glob(f"{external_id}*.vtt"):
            path.unlink(missing_ok=True)

    def _acquire_segments(self, video: Video, requested: Optional[str]) -> Tuple[List[Segment], str]:
        """
        Try each candidate language, then a catch-all download. The first file
        with usable cues wins; recoverable failures are logged and absorbed,
        anything else (missing tool, unavailable video) ends the attempt.
        """
        self._clear_subtitle_files(video.external_id)
        last_error: Optional[Exception] = None

        for lang in self.candidate_languages(requested, video.subtitle_language):
            self._update_fields(video.id, progress_message=f"Downloading subtitles ({lang})")
            try:
                path = self.invoker.fetch_subtitles(video.source_url, video.external_id, lang, self.subtitle_dir)
                return parse_vtt_file(path, lang), lang
            except ShadowingError as e:
                if not e.recoverable:
                    raise
                logger.info(f"[acquisition] subtitle attempt {lang} failed: {e}")
                last_error = e

        try:
            path, lang = self.invoker.fetch_any_subtitles(
                video.source_url, video.external_id, self.subtitle_dir, self.config.default_language
            )
            return parse_vtt_file(path, lang), lang
        except ShadowingError as e:
            if not e.recoverable:
                raise
            logger.info(f"[acquisition] catch-all subtitle attempt failed: {e}")
            last_error = e

        raise ExtractionFailed(f"{SUBTITLE_FAILURE_PREFIX}. Last error: {last_error}")

    # =========================================================================
    # Browser-supplied subtitles
    # =========================================================================

    def ingest_browser_subtitles(
        self,
        url: str,
        cues: Iterable[dict],
        language: Optional[str] = None,
        metadata: Optional[dict] = None,
        cookies: Optional[str] = None,
        created_by: int = 0,
        difficulty: Optional[str] = None,
    ) -> Video:
        """
        Complete a video from cues a client already extracted (start, end, text),
        without invoking the extraction tool for subtitles.
        """
        video = self.add_video(url, created_by, difficulty)
        lang = language or video.subtitle_language or self.config.default_language

        if cookies:
            self.save_cookies(video.external_id, cookies)

        segments: List[Segment] = []
        for cue in cues:
            start, end = float(cue["start"]), float(cue["end"])
            raw = str(cue.get("text") or "")
            text = clean_text(raw, lang)
            if end <= start or not text:
                continue
            segments.append(Segment(start=start, end=end, raw_text=raw, text=text, order=len(segments)))
        if not segments:
            raise EmptySubtitleFile("No usable subtitle cues supplied")

        self.update_video_status(video.id, VideoStatus.PARSING, error_message=None)
        try:
            drafts = build_sentences(segments, lang, difficulty or video.difficulty_level)
            with session_scope(self.session_factory) as db:
                video = self._load(db, video.id)
                if metadata:
                    video.title = metadata.get("title") or video.title
                    video.description = metadata.get("description") or video.description
                    video.channel = metadata.get("channel") or video.channel
                    video.thumbnail_url = metadata.get("thumbnail") or video.thumbnail_url
                    if metadata.get("duration") is not None:
                        video.duration_sec = float(metadata["duration"])
                self._replace_sentences(db, video, segments, drafts)
                video.status = VideoStatus.COMPLETED.value
                video.has_subtitle = True
                video.subtitle_language = lang
                video.completed_at = utcnow()
                video.progress_message = f"Parsed {len(drafts)} sentences"
        except Exception as e:
            logger.error(f"[acquisition] browser ingest failed for {video.id}: {e}", exc_info=True)
            self._mark_failed(video.id, str(e))
            raise
        logger.info(f"[acquisition] Video {video.id} -> completed from browser cues ({len(drafts)} sentences)")
        return video

    def save_cookies(self, external_id: str, cookies: str) -> Optional[Path]:
        path = self.invoker.cookies_path(external_id)
        if path is None:
            return None
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(cookies, encoding="utf-8")
        return path

    # =========================================================================
    # External id (browser plugin) flow
    # =========================================================================

    def get_by_external_id(self, external_id: str) -> Video:
        with session_scope(self.session_factory) as db:
            video = VideoRepository(db).get_by_external_id(external_id)
            if video is None:
                raise RecordNotFound(f"Video not found: {external_id}")
            return video

    def parse_by_external_id(self, external_id: str, video_url: Optional[str] = None, created_by: int = 0) -> Video:
        """
        Idempotent entry point keyed by the YouTube id. Completed and in-flight
        videos come back unchanged; added or failed ones are (re)queued; unknown
        ids are created from `video_url`, or the canonical watch URL when the
        given URL points at a different video.
        """
        with session_scope(self.session_factory) as db:
            video = VideoRepository(db).get_by_external_id(external_id)

        if video is None:
            url = video_url if video_url and extract_youtube_video_id(video_url) == external_id else watch_url(external_id)
            video = self.add_video(url, created_by)
        elif video.status in (VideoStatus.COMPLETED.value, VideoStatus.PARSING.value):
            return video

        try:
            self.begin_parse(video.id)
        except InvalidTransition as e:
            logger.info(f"[acquisition] parse for {external_id} already claimed: {e}")
        return self.get_video(video.id)

    # =========================================================================
    # Queries / delete
    # =========================================================================

    def get_video(self, video_id: str) -> Video:
        with session_scope(self.session_factory) as db:
            return self._load(db, video_id)

    def list_videos(
        self,
        status: Optional[str] = None,
        created_by: Optional[int] = None,
        page: int = 0,
        size: Optional[int] = None,
    ) -> list:
        """Newest first; `page` is zero-based and only applies when `size` is given."""
        offset = page * size if size else 0
        with session_scope(self.session_factory) as db:
            return VideoRepository(db).get_filtered(status=status, created_by=created_by, offset=offset, limit=size)

    def count_videos(self, status: Optional[str] = None, created_by: Optional[int] = None) -> int:
        with session_scope(self.session_factory) as db:
            return VideoRepository(db).count_filtered(status=status, created_by=created_by)

    def get_sentences(self, video_id: str, difficulty: Optional[str] = None) -> list:
        with session_scope(self.session_factory) as db:
            self._load(db, video_id)
            return PracticeSentenceRepository(db).get_by_video(video_id, difficulty)

    def delete_video(self, video_id: str) -> None:
        """Delete the video with its segments, sentences, download tasks and files."""
        with session_scope(self.session_factory) as db:
            video = self._load(db, video_id)
            external_id = video.external_id
            task_repo = DownloadTaskRepository(db)
            output_files = [t.output_file for t in task_repo.get_by_video(video_id) if t.output_file]
            SubtitleSegmentRepository(db).delete_by_video(video_id)
            PracticeSentenceRepository(db).delete_by_video(video_id)
            task_repo.delete_by_video(video_id)
            db.delete(video)

        self._clear_subtitle_files(external_id)
        for output in output_files:
            Path(output).unlink(missing_ok=True)
        logger.info(f"[acquisition] Deleted video {video_id}")
