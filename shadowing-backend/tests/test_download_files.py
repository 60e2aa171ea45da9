from __future__ import annotations

import os
import time

from shadowing.services.download_files import (
    DEFAULT_SELECTOR,
    QUALITY_SELECTORS,
    format_args,
    locate_output,
    quality_selector,
    sanitize_filename,
)


def test_sanitize_filename_replaces_unsafe_characters() -> None:
    assert sanitize_filename('What? A "great" <talk>: part 1/2') == "What_ A _great_ _talk__ part 1_2"


def test_sanitize_filename_strips_control_chars_and_whitespace() -> None:
    assert sanitize_filename("  line\x01 one \t\n two  ") == "line one two"


def test_sanitize_filename_caps_length() -> None:
    assert len(sanitize_filename("x" * 500)) == 200


def test_sanitize_filename_empty_falls_back_to_timestamped_name() -> None:
    name = sanitize_filename("   ")
    assert name.startswith("video_")
    assert name[len("video_"):].isdigit()


def test_format_args_audio_extracts_mp3() -> None:
    assert format_args("audio", "137", "720p") == ["-f", "bestaudio", "-x", "--audio-format", "mp3"]


def test_format_args_video_with_format_id() -> None:
    assert format_args("video", "137", "720p") == ["-f", "137"]


def test_format_args_video_uses_quality_selector() -> None:
    args = format_args("video", None, "720p")
    assert args[:2] == ["-f", QUALITY_SELECTORS["720p"]]
    assert args[args.index("--merge-output-format") + 1] == "mp4"
    assert args[args.index("--format-sort") + 1] == "res,fps,vcodec,acodec"


def test_quality_selector_defaults() -> None:
    assert quality_selector(None) == QUALITY_SELECTORS["best"]
    assert quality_selector("4K") == QUALITY_SELECTORS["4k"]
    assert quality_selector("potato") == DEFAULT_SELECTOR


def test_locate_output_prefers_exact_stem_then_newest_prefix(tmp_path) -> None:
    older = tmp_path / "Talk (part 1).mp4"
    newer = tmp_path / "Talk (part 2).mp4"
    older.write_bytes(b"a")
    newer.write_bytes(b"b")
    now = time.time()
    os.utime(older, (now - 100, now - 100))
    os.utime(newer, (now, now))

    assert locate_output(tmp_path, "Talk") == newer

    exact = tmp_path / "Talk.mp4"
    exact.write_bytes(b"c")
    os.utime(exact, (now - 200, now - 200))
    assert locate_output(tmp_path, "Talk") == exact


def test_locate_output_ignores_partial_files(tmp_path) -> None:
    (tmp_path / "Talk.mp4.part").write_bytes(b"a")
    assert locate_output(tmp_path, "Talk") is None
    assert locate_output(tmp_path / "missing", "Talk") is None
