"""
Error taxonomy for extraction, parsing and download failures.
"""


class ErrorCode:
    TOOL_UNAVAILABLE = "tool-unavailable"
    NOT_FOUND = "not-found"
    NETWORK_FAILURE = "network-failure"
    EXTRACTION_FAILED = "extraction-failed"
    NO_SUBTITLES = "no-subtitles-for-language"
    EMPTY_SUBTITLE_FILE = "empty-subtitle-file"
    PARSE_FAILURE = "parse-failure"
    PERMISSION_REQUIRED = "permission-required"
    DOWNLOAD_FAILED = "download-failed"
    DUPLICATE_SUCCESS = "duplicate-success"
    INVALID_TRANSITION = "invalid-transition"
    RECORD_NOT_FOUND = "record-not-found"
    INVALID_URL = "invalid-url"


# Failures that may succeed with another language or a later attempt
RECOVERABLE_ERRORS = {
    ErrorCode.NETWORK_FAILURE,
    ErrorCode.EXTRACTION_FAILED,
    ErrorCode.NO_SUBTITLES,
    ErrorCode.EMPTY_SUBTITLE_FILE,
    ErrorCode.PARSE_FAILURE,
}


class ShadowingError(Exception):
    """Base class for known error conditions."""

    code = ErrorCode.EXTRACTION_FAILED

    def __init__(self, message: str, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    @property
    def recoverable(self) -> bool:
        return self.code in RECOVERABLE_ERRORS


class ToolUnavailable(ShadowingError):
    code = ErrorCode.TOOL_UNAVAILABLE


class NotFound(ShadowingError):
    code = ErrorCode.NOT_FOUND


class NetworkFailure(ShadowingError):
    code = ErrorCode.NETWORK_FAILURE


class ExtractionFailed(ShadowingError):
    code = ErrorCode.EXTRACTION_FAILED


class NoSubtitlesForLanguage(ShadowingError):
    code = ErrorCode.NO_SUBTITLES

    def __init__(self, language: str | None, message: str | None = None):
        self.language = language
        super().__init__(message or f"No subtitles available for language: {language}")


class EmptySubtitleFile(ShadowingError):
    code = ErrorCode.EMPTY_SUBTITLE_FILE


class ParseFailure(ShadowingError):
    code = ErrorCode.PARSE_FAILURE


class PermissionRequired(ShadowingError):
    code = ErrorCode.PERMISSION_REQUIRED


class DownloadFailed(ShadowingError):
    code = ErrorCode.DOWNLOAD_FAILED


class DuplicateSuccess(ShadowingError):
    code = ErrorCode.DUPLICATE_SUCCESS

    def __init__(self, video_id: str, download_type: str):
        self.video_id = video_id
        self.download_type = download_type
        super().__init__(f"A successful {download_type} download already exists for video {video_id}")


class InvalidTransition(ShadowingError):
    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, entity: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal {entity} status transition: {current} -> {target}")


class RecordNotFound(ShadowingError):
    code = ErrorCode.RECORD_NOT_FOUND


class InvalidVideoUrl(ShadowingError):
    code = ErrorCode.INVALID_URL
