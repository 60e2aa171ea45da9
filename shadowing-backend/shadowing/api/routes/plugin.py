from fastapi import APIRouter, Depends, Header, HTTPException

from shadowing.api.errors import http_error
from shadowing.core.enums import VideoStatus
from shadowing.core.errors import ShadowingError
from shadowing.models import Video
from shadowing.schemas.sentence import ExternalVideoOut
from shadowing.schemas.video import ExternalParseIn
from shadowing.workers.acquisition import VideoAcquisitionOrchestrator
from shadowing.workers.runtime import get_acquisition

router = APIRouter(prefix="/api/youtube", tags=["plugin"])


def _external_view(video: Video, acquisition: VideoAcquisitionOrchestrator) -> dict:
    completed = video.status == VideoStatus.COMPLETED.value
    sentences = acquisition.get_sentences(video.id) if completed else []
    return {
        "status": video.status,
        "video_id": video.external_id,
        "message": video.error_message if video.status == VideoStatus.FAILED.value else video.progress_message,
        "title": video.title,
        "video_url": video.source_url,
        "duration_sec": video.duration_sec,
        "channel": video.channel,
        "thumbnail_url": video.thumbnail_url,
        "sentences": sentences,
        "total_sentences": len(sentences),
    }


@router.post("/parse", response_model=ExternalVideoOut)
def parse_by_external_id(
    body: ExternalParseIn,
    x_user_id: int = Header(default=0),
    acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition),
):
    """
    Plugin entry point - parse a video by its YouTube id.

    Safe to call repeatedly: a completed video is returned with its sentences,
    one already parsing is returned as is, anything else is queued.
    """
    try:
        video = acquisition.parse_by_external_id(body.video_id, body.video_url, x_user_id)
        return _external_view(video, acquisition)
    except ShadowingError as e:
        raise http_error(e)

@router.get("/status/{external_id}", response_model=ExternalVideoOut)
def get_status(external_id: str, acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition)):
    try:
        video = acquisition.get_by_external_id(external_id)
        return _external_view(video, acquisition)
    except ShadowingError as e:
        raise http_error(e)

@router.get("/sentences/{external_id}", response_model=ExternalVideoOut)
def get_sentences(external_id: str, acquisition: VideoAcquisitionOrchestrator = Depends(get_acquisition)):
    try:
        video = acquisition.get_by_external_id(external_id)
    except ShadowingError as e:
        raise http_error(e)
    if video.status != VideoStatus.COMPLETED.value:
        raise HTTPException(status_code=400, detail="Video has not finished parsing")
    try:
        return _external_view(video, acquisition)
    except ShadowingError as e:
        raise http_error(e)
