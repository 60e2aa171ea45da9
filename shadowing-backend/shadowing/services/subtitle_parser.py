"""
WebVTT Subtitle Parser
Turns a .vtt file into ordered, cleaned, timestamped segments.
"""
from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from shadowing.core.errors import EmptySubtitleFile, ParseFailure

logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{2})[.,](\d{1,3})$")
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_NON_CJK_DISALLOWED_RE = re.compile(r"[^a-zA-Z0-9\s,.!?'\-]")

CJK_LANGUAGES = {"jpn", "chi", "zho", "kor"}


@dataclass
class Segment:
    start: float
    end: float
    raw_text: str
    text: str
    order: int

    @property
    def duration(self) -> float:
        return self.end - self.start


def is_cjk_language(language: Optional[str]) -> bool:
    if not language:
        return False
    lang = language.lower()
    return lang.startswith(("zh", "ja", "ko")) or lang in CJK_LANGUAGES


def parse_timestamp(value: str) -> Optional[float]:
    """HH:MM:SS.mmm or MM:SS.mmm -> seconds."""
    m = _TIMESTAMP_RE.match(value.strip())
    if not m:
        return None
    hours = int(m.group(1) or 0)
    minutes = int(m.group(2))
    seconds = int(m.group(3))
    millis = int(m.group(4).ljust(3, "0"))
    return hours * 3600 + minutes * 60 + seconds + millis / 1000.0


def clean_text(text: str, language: Optional[str] = None) -> str:
    """Decode entities, strip markup, collapse whitespace, then apply the language rule."""
    cleaned = html.unescape(text)
    cleaned = _TAG_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    if is_cjk_language(language):
        cleaned = _CONTROL_RE.sub("", cleaned)
    else:
        cleaned = _NON_CJK_DISALLOWED_RE.sub("", cleaned)
        cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    return cleaned.strip()


def _parse_cue_timing(line: str) -> Optional[tuple]:
    left, _, right = line.partition("-->")
    right_tokens = right.split()
    if not right_tokens:
        return None
    start = parse_timestamp(left)
    # Positioning attributes (align:start position:0%) follow the end timestamp
    end = parse_timestamp(right_tokens[0])
    if start is None or end is None:
        return None
    return start, end


def parse_vtt(content: str, language: Optional[str] = None) -> List[Segment]:
    """
    Parse WebVTT content into segments ordered by position in the file.

    Cues with no text left after cleaning, or with end <= start, are dropped.
    Raises EmptySubtitleFile if no cue survives.
    """
    lines = content.replace("\ufeff", "").splitlines()
    segments: List[Segment] = []
    i = 0
    n = len(lines)
    while i < n:
        line = lines[i].strip()
        i += 1
        if not line or "-->" not in line:
            # Headers, NOTE blocks, cue identifiers and stray text are skipped
            continue

        timing = _parse_cue_timing(line)
        text_lines = []
        while i < n:
            body = lines[i].strip()
            if not body or "-->" in body:
                break
            text_lines.append(body)
            i += 1

        if timing is None:
            logger.debug(f"[subtitle_parser] Skipping malformed timing line: {line}")
            continue
        start, end = timing
        if end <= start:
            continue

        raw = " ".join(text_lines)
        text = clean_text(raw, language)
        if not text:
            continue
        segments.append(Segment(start=start, end=end, raw_text=raw, text=text, order=len(segments)))

    if not segments:
        raise EmptySubtitleFile("Subtitle file contains no usable cues")
    return segments


def parse_vtt_file(path: Union[str, Path], language: Optional[str] = None) -> List[Segment]:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseFailure(f"Cannot read subtitle file {path}: {e}")
    segments = parse_vtt(content, language)
    logger.info(f"[subtitle_parser] Parsed {len(segments)} segments from {Path(path).name}")
    return segments
