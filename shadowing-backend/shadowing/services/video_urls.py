import re

_ID_RE = re.compile(r'^[a-zA-Z0-9_-]{11}$')

_PATTERNS = [
    r'(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/)([a-zA-Z0-9_-]{11})',
    r'youtube\.com/embed/([a-zA-Z0-9_-]{11})',
    r'youtube\.com/shorts/([a-zA-Z0-9_-]{11})',
    r'youtube\.com/live/([a-zA-Z0-9_-]{11})',
    r'youtube\.com/v/([a-zA-Z0-9_-]{11})',
]


def extract_youtube_video_id(url: str) -> str | None:
    """Extract YouTube video ID from various URL formats (or a bare ID)"""
    url = (url or "").strip()
    if _ID_RE.match(url):
        return url
    for pat in _PATTERNS:
        m = re.search(pat, url)
        if m:
            return m.group(1)
    return None


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
