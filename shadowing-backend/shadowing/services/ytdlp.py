"""
yt-dlp Extraction Invoker
Wraps the yt-dlp command line: metadata, subtitle files, format listing and
streamed downloads. Every non-zero exit is translated into a typed error.
"""
from __future__ import annotations

import json
import logging
import re
import subprocess
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from shadowing.core.errors import (
    DownloadFailed,
    ExtractionFailed,
    NetworkFailure,
    NoSubtitlesForLanguage,
    NotFound,
    PermissionRequired,
    ToolUnavailable,
)
from shadowing.core.pipeline_settings import pipeline_settings
from shadowing.core.settings import settings

logger = logging.getLogger(__name__)

PROGRESS_MARKER = "[shadowing-progress]"
PROGRESS_TEMPLATE = (
    f"download:{PROGRESS_MARKER}"
    "%(progress._percent_str)s|%(progress._speed_str)s|%(progress._eta_str)s|%(progress._total_bytes_str)s"
)

# Plain "[download]  42.0% of 10.00MiB at 1.00MiB/s ETA 00:05" lines
_DOWNLOAD_LINE_RE = re.compile(
    r"\[download\]\s+(\d+(?:\.\d+)?)%(?:\s+of\s+~?\s*(\S+))?(?:\s+at\s+(\S+))?(?:\s+ETA\s+(\S+))?"
)
_DESTINATION_RE = re.compile(r"^\[(?:download|ExtractAudio)\] Destination: (.+)$")
_MERGER_RE = re.compile(r'^\[Merger\] Merging formats into "(.+)"$')
_ALREADY_RE = re.compile(r"^\[download\] (.+) has already been downloaded")

_PERMISSION_MARKERS: Tuple[str, ...] = (
    "sign in to confirm",
    "age-restricted",
    "age restricted",
    "forbidden",
    "http error 403",
    "private video",
    "members-only",
    "join this channel",
    "login required",
)

_NOT_FOUND_MARKERS: Tuple[str, ...] = (
    "video unavailable",
    "private video",
    "is not a valid url",
    "unsupported url",
    "does not exist",
    "http error 404",
    "has been removed",
)

_NO_SUBTITLE_MARKERS: Tuple[str, ...] = (
    "there are no subtitles",
    "has no subtitles",
    "doesn't have subtitles",
)


@dataclass
class VideoMetadata:
    external_id: str
    title: str
    description: Optional[str]
    duration: Optional[float]
    channel: Optional[str]
    thumbnail_url: Optional[str]
    has_subtitle: bool
    subtitle_language: str
    raw: Dict[str, Any] = field(repr=False, default_factory=dict)


@dataclass
class VideoFormat:
    format_id: str
    ext: Optional[str]
    resolution: Optional[str]
    quality: Optional[str]
    fps: Optional[float]
    vcodec: Optional[str]
    acodec: Optional[str]
    filesize: Optional[int]
    filesize_str: Optional[str]
    note: Optional[str]
    has_video: bool
    has_audio: bool


@dataclass
class ProgressEvent:
    percent: float
    speed: Optional[str] = None
    eta: Optional[str] = None
    total_size: Optional[str] = None


@dataclass
class DestinationEvent:
    path: str


@dataclass
class AlreadyDownloadedEvent:
    path: str


@dataclass
class DownloadComplete:
    path: Optional[str]


DownloadEvent = Union[ProgressEvent, DestinationEvent, AlreadyDownloadedEvent, DownloadComplete]


def language_code(language: Optional[str]) -> str:
    """Normalise a subtitle language tag: zh-Hans -> zh, en-US -> en."""
    if not language:
        return ""
    lang = language.lower()
    for prefix in ("zh", "ja", "ko"):
        if lang.startswith(prefix):
            return prefix
    return lang.split("-")[0]


def find_subtitle_file(output_dir: Union[str, Path], external_id: str, language: Optional[str]) -> Optional[Path]:
    """
    Locate the subtitle file yt-dlp wrote for a video.

    Tries {id}.{code}.vtt, {id}.{language}.vtt and {id}.vtt, then any
    {id}*.vtt preferring names that mention the language code.
    """
    directory = Path(output_dir)
    code = language_code(language)
    names = []
    if code:
        names.append(f"{external_id}.{code}.vtt")
    if language and language != code:
        names.append(f"{external_id}.{language}.vtt")
    names.append(f"{external_id}.vtt")

    for name in names:
        path = directory / name
        if path.is_file():
            return path

    matches = sorted(p for p in directory.glob(f"{external_id}*.vtt") if p.is_file())
    if not matches:
        return None
    if code:
        for p in matches:
            if f".{code}" in p.name.lower():
                return p
    return matches[0]


def language_from_filename(path: Union[str, Path], external_id: str, default: str) -> str:
    """{id}.zh-Hans.vtt -> zh, {id}.en.vtt -> en, {id}.vtt -> default."""
    name = Path(path).name
    middle = name[len(external_id):]
    if middle.endswith(".vtt"):
        middle = middle[:-4]
    middle = middle.strip(".")
    return language_code(middle) if middle else default


def detect_subtitle_language(data: Dict[str, Any], preferred: Sequence[str]) -> Optional[str]:
    """Pick a subtitle language from yt-dlp info: manual tracks first, then automatic captions."""
    subtitles = data.get("subtitles") or {}
    automatic = data.get("automatic_captions") or {}
    for tracks in (subtitles, automatic):
        for lang in preferred:
            if lang in tracks:
                return lang
    for tracks in (subtitles, automatic):
        for lang in tracks:
            return lang
    return None


def _format_size(num_bytes: Optional[float]) -> Optional[str]:
    if not num_bytes:
        return None
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024
    return f"{size:.2f} TB"


def _quality_rank(fmt: VideoFormat) -> int:
    for text in (fmt.quality, fmt.resolution):
        if text:
            m = re.search(r"(\d{3,4})p", text) or re.search(r"x(\d{3,4})", text)
            if m:
                return int(m.group(1))
    return 0


def parse_formats(data: Dict[str, Any]) -> List[VideoFormat]:
    formats: List[VideoFormat] = []
    for f in data.get("formats") or []:
        vcodec = f.get("vcodec")
        acodec = f.get("acodec")
        has_video = bool(vcodec) and vcodec != "none"
        has_audio = bool(acodec) and acodec != "none"
        if not (has_video or has_audio):
            continue
        filesize = f.get("filesize") or f.get("filesize_approx")
        formats.append(
            VideoFormat(
                format_id=str(f.get("format_id") or ""),
                ext=f.get("ext"),
                resolution=f.get("resolution"),
                quality=f.get("format_note"),
                fps=(float(f["fps"]) if f.get("fps") is not None else None),
                vcodec=vcodec,
                acodec=acodec,
                filesize=(int(filesize) if filesize else None),
                filesize_str=_format_size(filesize),
                note=f.get("format"),
                has_video=has_video,
                has_audio=has_audio,
            )
        )
    formats.sort(key=lambda fmt: (not (fmt.has_video and fmt.has_audio), -_quality_rank(fmt)))
    return formats


def parse_progress_line(line: str) -> Optional[ProgressEvent]:
    """Parse a templated progress line or a plain [download] percentage line."""
    text = line.strip()
    if PROGRESS_MARKER in text:
        payload = text.split(PROGRESS_MARKER, 1)[1]
        parts = [p.strip() for p in payload.split("|")]
        try:
            percent = float(parts[0].rstrip("%"))
        except (ValueError, IndexError):
            return None

        def _part(i: int) -> Optional[str]:
            if i < len(parts) and parts[i] and parts[i] not in ("N/A", "NA", "Unknown"):
                return parts[i]
            return None

        return ProgressEvent(percent=percent, speed=_part(1), eta=_part(2), total_size=_part(3))

    m = _DOWNLOAD_LINE_RE.search(text)
    if m:
        return ProgressEvent(
            percent=float(m.group(1)),
            total_size=m.group(2),
            speed=m.group(3),
            eta=m.group(4),
        )
    return None


def classify_download_failure(output: str) -> str:
    lowered = output.lower()
    if any(marker in lowered for marker in _PERMISSION_MARKERS):
        return PermissionRequired.code
    return DownloadFailed.code


class YtdlpInvoker:
    """
    Narrow interface over the yt-dlp executable.

    The invoker never retries; callers decide whether a failure is worth
    another attempt (e.g. another subtitle language).
    """

    def __init__(
        self,
        binary: str = "yt-dlp",
        cookies_dir: Optional[str] = None,
        timeout: int = 60,
    ):
        self.binary = binary
        self.cookies_dir = cookies_dir
        self.timeout = timeout

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def cookies_path(self, external_id: Optional[str]) -> Optional[Path]:
        if not self.cookies_dir or not external_id:
            return None
        return Path(self.cookies_dir) / f"{external_id}.txt"

    def _cookie_args(self, external_id: Optional[str]) -> List[str]:
        path = self.cookies_path(external_id)
        if path is not None and path.is_file():
            return ["--cookies", str(path)]
        return []

    def _run(self, cmd: List[str], merge_output: bool = False) -> subprocess.CompletedProcess:
        logger.debug(f"[ytdlp] exec: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_output else subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise ToolUnavailable(f"yt-dlp executable not found: {self.binary}")
        except subprocess.TimeoutExpired:
            raise NetworkFailure(f"yt-dlp timed out after {self.timeout}s")

    def check_tool(self) -> Optional[str]:
        """Return the yt-dlp version string, or None if it cannot be executed."""
        try:
            result = self._run([self.binary, "--version"])
        except (ToolUnavailable, NetworkFailure) as e:
            logger.warning(f"[ytdlp] tool check failed: {e}")
            return None
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def _dump_json(self, source_url: str, external_id: Optional[str]) -> Dict[str, Any]:
        cmd = [self.binary, *self._cookie_args(external_id), "--dump-json", "--no-download", source_url]
        result = self._run(cmd)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            lowered = stderr.lower()
            if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
                raise NotFound(f"Video not available: {stderr or source_url}")
            raise NetworkFailure(f"yt-dlp exited with code {result.returncode}: {stderr}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error(f"[ytdlp] Failed to parse yt-dlp JSON: {e}")
            raise NetworkFailure("Invalid JSON from yt-dlp")

    # ------------------------------------------------------------------
    # metadata / formats
    # ------------------------------------------------------------------

    def fetch_metadata(self, source_url: str, external_id: Optional[str] = None) -> VideoMetadata:
        logger.info(f"[ytdlp] Fetching metadata for: {source_url}")
        data = self._dump_json(source_url, external_id)

        detected = detect_subtitle_language(data, pipeline_settings.preferred_languages)
        return VideoMetadata(
            external_id=str(data.get("id") or external_id or ""),
            title=str(data.get("title") or ""),
            description=data.get("description"),
            duration=(float(data["duration"]) if data.get("duration") is not None else None),
            channel=data.get("channel") or data.get("uploader"),
            thumbnail_url=data.get("thumbnail"),
            has_subtitle=detected is not None,
            subtitle_language=detected or pipeline_settings.default_language,
            raw=data,
        )

    def list_formats(self, source_url: str, external_id: Optional[str] = None) -> List[VideoFormat]:
        return parse_formats(self._dump_json(source_url, external_id))

    # ------------------------------------------------------------------
    # subtitles
    # ------------------------------------------------------------------

    def _subtitle_cmd(self, source_url: str, external_id: str, output_dir: Path, language: Optional[str]) -> List[str]:
        cmd = [self.binary, *self._cookie_args(external_id), "--write-sub", "--write-auto-sub"]
        if language:
            cmd += ["--sub-lang", language]
        cmd += [
            "--sub-format", "vtt",
            "--skip-download",
            "-o", str(output_dir / "%(id)s.%(ext)s"),
            source_url,
        ]
        return cmd

    def fetch_subtitles(self, source_url: str, external_id: str, language: str, output_dir: Union[str, Path]) -> Path:
        """
        Download subtitles for one language. Returns the non-empty .vtt path.

        Raises NoSubtitlesForLanguage when the tool reports none or no file appears,
        ExtractionFailed on other non-zero exits.
        """
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        result = self._run(self._subtitle_cmd(source_url, external_id, out, language), merge_output=True)
        output = result.stdout or ""

        if any(marker in output.lower() for marker in _NO_SUBTITLE_MARKERS):
            raise NoSubtitlesForLanguage(language)
        if result.returncode != 0:
            raise ExtractionFailed(f"yt-dlp exited with code {result.returncode}: {_tail(output)}")

        path = find_subtitle_file(out, external_id, language)
        if path is None or path.stat().st_size == 0:
            raise NoSubtitlesForLanguage(language, f"No subtitle file produced for language: {language}")
        return path

    def fetch_any_subtitles(self, source_url: str, external_id: str, output_dir: Union[str, Path], default_language: str) -> Tuple[Path, str]:
        """Catch-all attempt without a language; the language is inferred from the file name."""
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        result = self._run(self._subtitle_cmd(source_url, external_id, out, None), merge_output=True)
        output = result.stdout or ""
        if result.returncode != 0:
            raise ExtractionFailed(f"yt-dlp exited with code {result.returncode}: {_tail(output)}")

        for path in sorted(out.glob(f"{external_id}*.vtt")):
            if path.is_file() and path.stat().st_size > 0:
                return path, language_from_filename(path, external_id, default_language)
        raise NoSubtitlesForLanguage(None, "No subtitle files were produced")

    # ------------------------------------------------------------------
    # download
    # ------------------------------------------------------------------

    def download(
        self,
        source_url: str,
        format_args: Sequence[str],
        output_template: str,
        external_id: Optional[str] = None,
    ) -> Iterator[DownloadEvent]:
        """
        Run a download and lazily yield events parsed from its output.

        The last event is DownloadComplete. A non-zero exit raises
        PermissionRequired or DownloadFailed after the output is drained.
        """
        cmd = [
            self.binary,
            *self._cookie_args(external_id),
            *format_args,
            "-o", output_template,
            "--newline",
            "--no-warnings",
            "--progress-template", PROGRESS_TEMPLATE,
            source_url,
        ]
        logger.info(f"[ytdlp] exec: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError:
            raise ToolUnavailable(f"yt-dlp executable not found: {self.binary}")

        tail: deque = deque(maxlen=50)
        destination: Optional[str] = None
        try:
            for raw_line in iter(proc.stdout.readline, ""):
                line = raw_line.rstrip("\r\n")
                if not line:
                    continue
                tail.append(line)

                progress = parse_progress_line(line)
                if progress is not None:
                    yield progress
                    continue

                m = _DESTINATION_RE.match(line) or _MERGER_RE.match(line)
                if m:
                    destination = m.group(1).strip()
                    yield DestinationEvent(path=destination)
                    continue

                m = _ALREADY_RE.match(line)
                if m:
                    destination = m.group(1).strip()
                    yield AlreadyDownloadedEvent(path=destination)
        finally:
            if proc.stdout is not None:
                proc.stdout.close()
            return_code = proc.wait()

        if return_code != 0:
            output = "\n".join(tail)
            message = f"yt-dlp exited with code {return_code}: {_tail(output)}"
            if classify_download_failure(output) == PermissionRequired.code:
                raise PermissionRequired(message)
            raise DownloadFailed(message)

        yield DownloadComplete(path=destination)


def _tail(output: str, lines: int = 5) -> str:
    chunks = [line for line in output.strip().splitlines() if line.strip()]
    return "\n".join(chunks[-lines:])


def default_invoker() -> YtdlpInvoker:
    return YtdlpInvoker(
        binary=settings.ytdlp_binary,
        cookies_dir=settings.cookies_dir,
        timeout=settings.ytdlp_timeout_seconds,
    )
