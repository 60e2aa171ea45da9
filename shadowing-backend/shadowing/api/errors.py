from fastapi import HTTPException

from shadowing.core.errors import ErrorCode, ShadowingError

_STATUS_BY_CODE = {
    ErrorCode.RECORD_NOT_FOUND: 404,
    ErrorCode.INVALID_URL: 400,
    ErrorCode.INVALID_TRANSITION: 400,
    ErrorCode.EMPTY_SUBTITLE_FILE: 400,
    ErrorCode.DUPLICATE_SUCCESS: 409,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TOOL_UNAVAILABLE: 503,
}


def http_error(e: ShadowingError) -> HTTPException:
    """Translate a domain error into an HTTP error; extraction failures default to 502."""
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(e.code, 502),
        detail={"code": e.code, "message": e.message},
    )
