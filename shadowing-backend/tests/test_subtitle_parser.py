from __future__ import annotations

import pytest

from shadowing.core.errors import EmptySubtitleFile, ParseFailure
from shadowing.services.subtitle_parser import (
    clean_text,
    is_cjk_language,
    parse_timestamp,
    parse_vtt,
    parse_vtt_file,
)


VTT = """WEBVTT
Kind: captions
Language: en

NOTE this block is a comment
and spans two lines

intro
00:00:01.000 --> 00:00:02.500 align:start position:0%
Hello &amp; <c>welcome</c>
to the show

00:00:03.000 --> 00:00:04.000
<i>second</i> cue

01:00:00.000 --> 01:00:01.250
an hour in
"""


def test_parse_vtt_orders_and_times_cues() -> None:
    segments = parse_vtt(VTT, "en")

    assert [s.order for s in segments] == [0, 1, 2]
    assert segments[0].start == 1.0
    assert segments[0].end == 2.5
    assert segments[0].text == "Hello welcome to the show"
    assert segments[1].text == "second cue"
    assert segments[2].start == 3600.0
    assert segments[2].end == pytest.approx(3601.25)
    assert all(s.end > s.start for s in segments)


def test_parse_vtt_keeps_raw_text_joined_with_spaces() -> None:
    segments = parse_vtt(VTT, "en")
    assert segments[0].raw_text == "Hello &amp; <c>welcome</c> to the show"


def test_parse_vtt_drops_empty_and_inverted_cues_without_gaps_in_order() -> None:
    content = """WEBVTT

00:00:01.000 --> 00:00:02.000
first line here

00:00:05.000 --> 00:00:04.000
backwards cue

00:00:06.000 --> 00:00:07.000
<c></c>

00:00:08.000 --> 00:00:09.000
last line here
"""
    segments = parse_vtt(content, "en")

    assert [s.text for s in segments] == ["first line here", "last line here"]
    assert [s.order for s in segments] == [0, 1]


def test_parse_vtt_accepts_minute_second_timestamps() -> None:
    content = "WEBVTT\n\n00:01.500 --> 00:03.000\nshort form\n"
    segments = parse_vtt(content, "en")
    assert segments[0].start == 1.5
    assert segments[0].end == 3.0


def test_parse_vtt_without_cues_raises_empty_subtitle_file() -> None:
    with pytest.raises(EmptySubtitleFile):
        parse_vtt("WEBVTT\nKind: captions\n\n", "en")


def test_parse_vtt_file_missing_file_raises_parse_failure(tmp_path) -> None:
    with pytest.raises(ParseFailure):
        parse_vtt_file(tmp_path / "missing.vtt", "en")


def test_parse_vtt_file_reads_utf8(tmp_path) -> None:
    path = tmp_path / "abc.zh.vtt"
    path.write_text("WEBVTT\n\n00:00:01.000 --> 00:00:02.000\n今天天气很好\n", encoding="utf-8")

    segments = parse_vtt_file(path, "zh")

    assert segments[0].text == "今天天气很好"


def test_clean_text_decodes_entities_before_stripping_tags() -> None:
    assert clean_text("&lt;b&gt;bold&lt;/b&gt; text", "en") == "bold text"


def test_clean_text_non_cjk_keeps_only_basic_characters() -> None:
    assert clean_text("Hello ♪ world! It's 5 o'clock, right?", "en") == "Hello world! It's 5 o'clock, right?"


def test_clean_text_cjk_keeps_unicode_and_strips_control_chars() -> None:
    assert clean_text("你好\x07，世界", "zh-Hans") == "你好，世界"
    assert clean_text("こんにちは  世界", "ja") == "こんにちは 世界"


def test_is_cjk_language() -> None:
    assert is_cjk_language("zh-Hant")
    assert is_cjk_language("ja")
    assert is_cjk_language("ko-KR")
    assert is_cjk_language("jpn")
    assert not is_cjk_language("en")
    assert not is_cjk_language(None)


def test_parse_timestamp_rejects_garbage() -> None:
    assert parse_timestamp("not a time") is None
    assert parse_timestamp("00:00:02.5") == 2.5
