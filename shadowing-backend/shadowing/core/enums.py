from enum import Enum

from shadowing.core.errors import InvalidTransition

class VideoStatus(str, Enum):
    # Initial state
    ADDED = "added"

    PARSING = "parsing"

    # Terminal states
    COMPLETED = "completed"
    FAILED = "failed"

class DownloadStatus(str, Enum):
    QUEUED = "queued"
    PARSING = "parsing"
    DOWNLOADING = "downloading"
    SUCCESS = "success"
    FAILED = "failed"

class DownloadType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"

class Difficulty(str, Enum):
    AUTO = "auto"
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


VIDEO_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.ADDED: frozenset({VideoStatus.PARSING}),
    VideoStatus.PARSING: frozenset({VideoStatus.COMPLETED, VideoStatus.FAILED}),
    VideoStatus.COMPLETED: frozenset(),
    VideoStatus.FAILED: frozenset({VideoStatus.PARSING}),
}

DOWNLOAD_TRANSITIONS: dict[DownloadStatus, frozenset[DownloadStatus]] = {
    DownloadStatus.QUEUED: frozenset({DownloadStatus.PARSING, DownloadStatus.FAILED}),
    DownloadStatus.PARSING: frozenset({DownloadStatus.DOWNLOADING, DownloadStatus.FAILED}),
    DownloadStatus.DOWNLOADING: frozenset({DownloadStatus.SUCCESS, DownloadStatus.FAILED}),
    DownloadStatus.SUCCESS: frozenset(),
    DownloadStatus.FAILED: frozenset(),
}


def ensure_video_transition(current: str, target: VideoStatus) -> None:
    """Raise InvalidTransition unless current -> target is allowed."""
    if target not in VIDEO_TRANSITIONS[VideoStatus(current)]:
        raise InvalidTransition("video", current, target.value)


def ensure_download_transition(current: str, target: DownloadStatus) -> None:
    if target not in DOWNLOAD_TRANSITIONS[DownloadStatus(current)]:
        raise InvalidTransition("download task", current, target.value)
