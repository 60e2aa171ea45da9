import asyncio
import json
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import FileResponse, StreamingResponse

from shadowing.api.errors import http_error
from shadowing.core.enums import DownloadStatus
from shadowing.core.errors import ShadowingError
from shadowing.schemas.download_task import DownloadTaskCreate, DownloadTaskOut, VideoFormatOut
from shadowing.services.progress_broadcaster import LoopSubscription, ProgressBroadcaster
from shadowing.workers.downloads import DownloadOrchestrator
from shadowing.workers.runtime import get_broadcaster, get_downloads

router = APIRouter(prefix="/api/downloads", tags=["downloads"])

KEEPALIVE_SECONDS = 15.0
POLL_SECONDS = 1.0


@router.get("/formats/{video_id}", response_model=list[VideoFormatOut])
def list_formats(video_id: str, downloads: DownloadOrchestrator = Depends(get_downloads)):
    try:
        return downloads.list_formats(video_id)
    except ShadowingError as e:
        raise http_error(e)

@router.post("", response_model=DownloadTaskOut)
def create_download(
    body: DownloadTaskCreate,
    x_user_id: int = Header(default=0),
    downloads: DownloadOrchestrator = Depends(get_downloads),
):
    try:
        return downloads.create_and_start(
            body.video_id,
            body.download_type,
            body.format_id,
            body.quality,
            x_user_id,
        )
    except ShadowingError as e:
        raise http_error(e)

@router.post("/quick/{video_id}", response_model=DownloadTaskOut)
def quick_download(
    video_id: str,
    download_type: str = Query(default="video", pattern="^(video|audio)$"),
    x_user_id: int = Header(default=0),
    downloads: DownloadOrchestrator = Depends(get_downloads),
):
    try:
        return downloads.quick_download(video_id, download_type, x_user_id)
    except ShadowingError as e:
        raise http_error(e)

@router.get("/tasks", response_model=list[DownloadTaskOut])
def list_my_tasks(x_user_id: int = Header(default=0), downloads: DownloadOrchestrator = Depends(get_downloads)):
    return downloads.list_tasks_by_creator(x_user_id)

@router.get("/tasks/{task_id}", response_model=DownloadTaskOut)
def get_task(task_id: str, downloads: DownloadOrchestrator = Depends(get_downloads)):
    try:
        return downloads.get_task(task_id)
    except ShadowingError as e:
        raise http_error(e)

@router.delete("/tasks/{task_id}")
def delete_task(task_id: str, downloads: DownloadOrchestrator = Depends(get_downloads)):
    try:
        downloads.delete_task(task_id)
    except ShadowingError as e:
        raise http_error(e)
    return {"ok": True}

@router.get("/video/{video_id}/tasks", response_model=list[DownloadTaskOut])
def list_video_tasks(video_id: str, downloads: DownloadOrchestrator = Depends(get_downloads)):
    return downloads.list_tasks_by_video(video_id)

@router.get("/file/{task_id}")
def download_file(task_id: str, downloads: DownloadOrchestrator = Depends(get_downloads)):
    try:
        task = downloads.get_task(task_id)
    except ShadowingError as e:
        raise http_error(e)
    if task.status != DownloadStatus.SUCCESS.value or not task.output_file or not Path(task.output_file).is_file():
        raise HTTPException(status_code=404, detail="File not available")
    return FileResponse(task.output_file, filename=Path(task.output_file).name)

async def sse_events(
    subscription: LoopSubscription,
    broadcaster: ProgressBroadcaster,
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_seconds: float = POLL_SECONDS,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Render a subscription as server-sent events: one `task` event per update,
    comment keepalives in between. The subscriber is removed when the client
    disconnects or the stream is cancelled.
    """
    idle = 0.0
    try:
        yield ": connected\n\n"
        while not subscription.closed:
            if await is_disconnected():
                break
            event = await subscription.get(timeout=poll_seconds)
            if event is None:
                idle += poll_seconds
                if idle >= keepalive_seconds:
                    idle = 0.0
                    yield ": keepalive\n\n"
                continue
            idle = 0.0
            yield f"event: {event['event']}\ndata: {json.dumps(event['task'])}\n\n"
    finally:
        broadcaster.unsubscribe(subscription)

@router.get("/progress/stream")
async def progress_stream(request: Request, broadcaster: ProgressBroadcaster = Depends(get_broadcaster)):
    subscription = broadcaster.subscribe(LoopSubscription(asyncio.get_running_loop()))
    return StreamingResponse(
        sse_events(subscription, broadcaster, request.is_disconnected),
        media_type="text/event-stream",
    )
