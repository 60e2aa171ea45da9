from fastapi import APIRouter, Depends, Header, HTTPException, Query

from shadowing.api.errors import http_error
from shadowing.core.enums import VideoStatus
from shadowing.core.errors import ShadowingError
from shadowing.schemas.sentence import SentenceOut, VideoDetailOut
from shadowing.schemas.video import (
    BrowserSubtitlesIn,
    ParseSubtitlesIn,
    VideoCreate,
    VideoOut,
    VideoPageOut,
    VideoStatusOut,
)
from shadowing.workers.acquisition import VideoAcquisitionOrchestrator
from shadowing.workers.runtime import get_acquisition

router = APIRouter(prefix="/api", tags=["videos"])


@router.post("/videos", response_model=VideoOut)
def create_video(
    body: VideoCreate,
    x_user_id: int = Header(default=0),
    acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition),
):
    """
    Add Video - register a video from its URL.

    Returns the existing record when the video was already added; otherwise
    metadata is fetched in the background and the video stays `added`.
    """
    try:
        return acquisition.add_video_and_fetch_info(body.video_url, x_user_id, body.difficulty_level)
    except ShadowingError as e:
        raise http_error(e)

@router.get("/videos", response_model=VideoPageOut)
def list_videos(
    status: str | None = Query(default=None),
    created_by: int | None = Query(default=None),
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=100),
    acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition),
):
    """List videos newest first, one zero-based page at a time."""
    total = acquisition.count_videos(status=status, created_by=created_by)
    total_pages = (total + size - 1) // size
    return {
        "items": acquisition.list_videos(status=status, created_by=created_by, page=page, size=size),
        "total": total,
        "page": page,
        "size": size,
        "total_pages": total_pages,
        "has_next": page + 1 < total_pages,
        "has_previous": page > 0,
    }

@router.post("/videos/browser-subtitles", response_model=VideoOut)
def ingest_browser_subtitles(
    body: BrowserSubtitlesIn,
    x_user_id: int = Header(default=0),
    acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition),
):
    try:
        return acquisition.ingest_browser_subtitles(
            body.video_url,
            [cue.model_dump() for cue in body.cues],
            language=body.language,
            metadata=(body.metadata.model_dump() if body.metadata else None),
            cookies=body.cookies,
            created_by=x_user_id,
            difficulty=body.difficulty_level,
        )
    except ShadowingError as e:
        raise http_error(e)

@router.get("/videos/{video_id}", response_model=VideoDetailOut)
def get_video(video_id: str, acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition)):
    try:
        video = acquisition.get_video(video_id)
        sentences = acquisition.get_sentences(video_id)
    except ShadowingError as e:
        raise http_error(e)
    return {"video": video, "sentences": sentences}

@router.get("/videos/{video_id}/status", response_model=VideoStatusOut)
def get_video_status(video_id: str, acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition)):
    try:
        return acquisition.get_video(video_id)
    except ShadowingError as e:
        raise http_error(e)

@router.get("/videos/{video_id}/sentences", response_model=list[SentenceOut])
def list_sentences(
    video_id: str,
    difficulty: str | None = Query(default=None),
    acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition),
):
    try:
        return acquisition.get_sentences(video_id, difficulty)
    except ShadowingError as e:
        raise http_error(e)

@router.post("/videos/{video_id}/parse-subtitles", response_model=VideoStatusOut)
def parse_subtitles(
    video_id: str,
    body: ParseSubtitlesIn | None = None,
    acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition),
):
    """Start subtitle parsing in the background; poll /status for the outcome."""
    try:
        video = acquisition.get_video(video_id)
    except ShadowingError as e:
        raise http_error(e)
    if video.status == VideoStatus.PARSING.value:
        raise HTTPException(status_code=400, detail="Video is already being parsed")
    if video.status == VideoStatus.COMPLETED.value:
        raise HTTPException(status_code=400, detail="Video has already been parsed")
    try:
        return acquisition.begin_parse(video_id, body.language if body else None)
    except ShadowingError as e:
        raise http_error(e)

@router.delete("/videos/{video_id}")
def delete_video(video_id: str, acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition)):
    try:
        acquisition.delete_video(video_id)
    except ShadowingError as e:
        raise http_error(e)
    return {"ok": True}
