"""
Download file helpers: yt-dlp format arguments, safe file names and output lookup.
"""
from __future__ import annotations

import re
import time
from pathlib import Path
from typing import List, Optional, Union

QUALITY_SELECTORS = {
    "best": "bestvideo[height>=1080]+bestaudio/bestvideo+bestaudio/best",
    "4k": "bestvideo[height>=2160]+bestaudio/bestvideo[height>=1440]+bestaudio/best",
    "2k": "bestvideo[height>=1440][height<=2160]+bestaudio/bestvideo+bestaudio/best",
    "1080p": "bestvideo[height>=1080][height<=1440]+bestaudio/bestvideo[height=1080]+bestaudio/best",
    "720p": "bestvideo[height>=720][height<=1080]+bestaudio/bestvideo[height=720]+bestaudio/best",
    "480p": "bestvideo[height>=480][height<=720]+bestaudio/bestvideo[height=480]+bestaudio/best",
}
DEFAULT_SELECTOR = "bestvideo+bestaudio/best"

_UNSAFE_CHARS_RE = re.compile(r'[\\/:*?"<>|]')
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f]")
_WHITESPACE_RE = re.compile(r"\s+")
MAX_FILENAME_LENGTH = 200


def quality_selector(quality: Optional[str]) -> str:
    if not quality:
        return QUALITY_SELECTORS["best"]
    return QUALITY_SELECTORS.get(quality.lower(), DEFAULT_SELECTOR)


def format_args(download_type: str, format_id: Optional[str] = None, quality: Optional[str] = None) -> List[str]:
    if download_type == "audio":
        return ["-f", "bestaudio", "-x", "--audio-format", "mp3"]
    if format_id:
        return ["-f", format_id]
    return [
        "-f", quality_selector(quality),
        "--merge-output-format", "mp4",
        "--format-sort", "res,fps,vcodec,acodec",
    ]


def sanitize_filename(title: Optional[str]) -> str:
    name = _UNSAFE_CHARS_RE.sub("_", title or "")
    name = _CONTROL_CHARS_RE.sub("", name)
    name = _WHITESPACE_RE.sub(" ", name).strip()
    name = name[:MAX_FILENAME_LENGTH].strip()
    if not name:
        return f"video_{int(time.time() * 1000)}"
    return name


def locate_output(download_dir: Union[str, Path], stem: str) -> Optional[Path]:
    """Exact stem match first, then prefix match; newest file wins."""
    directory = Path(download_dir)
    if not directory.is_dir():
        return None
    files = [p for p in directory.iterdir() if p.is_file() and not p.name.endswith((".part", ".ytdl"))]
    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    for p in files:
        if p.stem == stem:
            return p
    for p in files:
        if p.name.startswith(stem):
            return p
    return None
