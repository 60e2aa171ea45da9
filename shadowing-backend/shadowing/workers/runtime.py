"""
Lazily-built service singletons shared by the API and background jobs.
"""
import logging
import threading

from shadowing.core.settings import settings
from shadowing.services.progress_broadcaster import ProgressBroadcaster
from shadowing.services.ytdlp import default_invoker
from shadowing.workers.acquisition import VideoAcquisitionOrchestrator
from shadowing.workers.downloads import DownloadOrchestrator

logger = logging.getLogger(__name__)

_services = {}
_lock = threading.Lock()

def get_services():
    with _lock:
        if _services:
            return _services
        logger.info("Initializing services...")
        invoker = default_invoker()
        broadcaster = ProgressBroadcaster()
        _services["invoker"] = invoker
        _services["broadcaster"] = broadcaster
        _services["acquisition"] = VideoAcquisitionOrchestrator(invoker, subtitle_dir=settings.subtitle_dir)
        _services["downloads"] = DownloadOrchestrator(
            invoker,
            download_dir=settings.download_dir,
            broadcaster=broadcaster,
            max_concurrent=settings.max_concurrent_downloads,
        )
        return _services

def get_acquisition() -> VideoAcquisitionOrchestrator:
    return get_services()["acquisition"]

def get_downloads() -> DownloadOrchestrator:
    return get_services()["downloads"]

def get_broadcaster() -> ProgressBroadcaster:
    return get_services()["broadcaster"]

def get_invoker():
    return get_services()["invoker"]
