"""
Worker Pools - In-process executors for background work
Separates subtitle parsing from downloads so a burst of downloads
cannot starve parsing.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor

from shadowing.core.settings import settings

logger = logging.getLogger(__name__)

# Parse Pool: metadata fetch, subtitle download + segmentation
parse_pool = ThreadPoolExecutor(max_workers=settings.parse_workers, thread_name_prefix="parse")

# Download Pool: yt-dlp media downloads (admission is limited separately by a semaphore)
download_pool = ThreadPoolExecutor(max_workers=settings.download_workers, thread_name_prefix="download")


def _log_failure(future: Future):
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"[queue] background job raised: {exc!r}")


def enqueue_parse(func, *args, **kwargs) -> Future:
    """Submit job to the parse pool"""
    future = parse_pool.submit(func, *args, **kwargs)
    future.add_done_callback(_log_failure)
    return future


def enqueue_download(func, *args, **kwargs) -> Future:
    """Submit job to the download pool"""
    future = download_pool.submit(func, *args, **kwargs)
    future.add_done_callback(_log_failure)
    return future


def shutdown(wait: bool = False):
    parse_pool.shutdown(wait=wait)
    download_pool.shutdown(wait=wait)
