from __future__ import annotations

import pytest

from fakes import SAMPLE_VTT, FakeInvoker, make_metadata, run_inline
from shadowing.core.errors import (
    EmptySubtitleFile,
    InvalidTransition,
    InvalidVideoUrl,
    NetworkFailure,
    NotFound,
    RecordNotFound,
    ToolUnavailable,
)
from shadowing.db.repositories import PracticeSentenceRepository, SubtitleSegmentRepository
from shadowing.workers.acquisition import SUBTITLE_FAILURE_PREFIX, VideoAcquisitionOrchestrator

URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def _orchestrator(session_factory, tmp_path, invoker, submit=run_inline):
    return VideoAcquisitionOrchestrator(
        invoker,
        subtitle_dir=str(tmp_path / "subtitles"),
        session_factory=session_factory,
        submit=submit,
    )


def test_add_video_creates_added_record_with_placeholder(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())

    video = orch.add_video(URL, created_by=7)

    assert video.status == "added"
    assert video.title == "Loading..."
    assert video.external_id == "dQw4w9WgXcQ"
    assert video.created_by == 7
    assert video.difficulty_level == "auto"


def test_add_video_returns_existing_record_for_same_external_id(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())

    first = orch.add_video(URL)
    second = orch.add_video("https://youtu.be/dQw4w9WgXcQ")

    assert first.id == second.id
    assert len(orch.list_videos()) == 1


def test_add_video_rejects_unknown_url(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())
    with pytest.raises(InvalidVideoUrl):
        orch.add_video("https://example.com/video")


def test_add_video_and_fetch_info_loads_metadata(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(metadata=make_metadata(title="Real Title")))

    video = orch.add_video_and_fetch_info(URL)
    stored = orch.get_video(video.id)

    assert stored.title == "Real Title"
    assert stored.channel == "Sample Channel"
    assert stored.status == "added"
    assert stored.error_message is None


def test_metadata_failure_keeps_video_added_with_error(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(metadata=NotFound("Video unavailable")))

    video = orch.add_video_and_fetch_info(URL)
    stored = orch.get_video(video.id)

    assert stored.status == "added"
    assert stored.title == "Loading..."
    assert "Video unavailable" in stored.error_message


def test_parse_falls_back_from_requested_language(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(subtitles={"en": SAMPLE_VTT})
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video(URL)

    orch.begin_parse(video.id, language="fr")
    stored = orch.get_video(video.id)
    sentences = orch.get_sentences(video.id)

    assert stored.status == "completed"
    assert stored.subtitle_language == "en"
    assert stored.completed_at is not None
    assert stored.sentence_count == len(sentences) == 2
    assert [c[1] for c in invoker.calls_of("subtitles")][:2] == ["fr", "zh"]
    assert invoker.calls_of("subtitles")[-1] == ("subtitles", "en")
    assert sentences[0].text == "Welcome back to the channel everyone today we are going to learn something new"
    assert sentences[0].video_url == URL


def test_parse_uses_detected_language_first(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(metadata=make_metadata(language="ja"), subtitles={"ja": SAMPLE_VTT.replace("en", "ja")})
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video_and_fetch_info(URL)

    orch.begin_parse(video.id)

    assert invoker.calls_of("subtitles") == [("subtitles", "ja")]
    assert orch.get_video(video.id).subtitle_language == "ja"


def test_parse_uses_catch_all_when_no_language_matches(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(any_subtitles=("ko", "WEBVTT\n\n00:00:01.000 --> 00:00:03.000\n안녕하세요 여러분\n"))
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video(URL)

    orch.begin_parse(video.id)
    stored = orch.get_video(video.id)

    assert stored.status == "completed"
    assert stored.subtitle_language == "ko"
    assert len(invoker.calls_of("any_subtitles")) == 1


def test_parse_exhausting_all_languages_marks_failed(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())
    video = orch.add_video(URL)

    orch.begin_parse(video.id)
    stored = orch.get_video(video.id)

    assert stored.status == "failed"
    assert stored.error_message.startswith(SUBTITLE_FAILURE_PREFIX)


def test_tool_unavailable_stops_language_fallback(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(subtitle_error=ToolUnavailable("yt-dlp executable not found"))
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video(URL)

    orch.begin_parse(video.id)

    assert len(invoker.calls_of("subtitles")) == 1
    assert orch.get_video(video.id).status == "failed"


def test_unavailable_video_stops_language_fallback(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(subtitle_error=NotFound("Video unavailable"))
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video(URL)

    orch.begin_parse(video.id)
    stored = orch.get_video(video.id)

    assert len(invoker.calls_of("subtitles")) == 1
    assert invoker.calls_of("any_subtitles") == []
    assert stored.status == "failed"
    assert stored.error_message == "Video unavailable"


def test_network_failure_moves_on_to_every_candidate(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(subtitle_error=NetworkFailure("connection reset"))
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video(URL)

    orch.begin_parse(video.id)
    stored = orch.get_video(video.id)

    assert [c[1] for c in invoker.calls_of("subtitles")] == orch.candidate_languages(None, "en")
    assert len(invoker.calls_of("any_subtitles")) == 1
    assert stored.status == "failed"
    assert stored.error_message.startswith(SUBTITLE_FAILURE_PREFIX)


def test_begin_parse_rejects_parsing_and_completed_videos(session_factory, tmp_path) -> None:
    pending = []
    orch = _orchestrator(
        session_factory,
        tmp_path,
        FakeInvoker(subtitles={"en": SAMPLE_VTT}),
        submit=lambda func, *args: pending.append((func, args)),
    )
    video = orch.add_video(URL)

    orch.begin_parse(video.id)
    assert orch.get_video(video.id).status == "parsing"
    with pytest.raises(InvalidTransition):
        orch.begin_parse(video.id)

    func, args = pending.pop()
    func(*args)
    assert orch.get_video(video.id).status == "completed"
    with pytest.raises(InvalidTransition):
        orch.begin_parse(video.id)


def test_failed_video_can_be_reparsed_without_duplicates(session_factory, tmp_path) -> None:
    invoker = FakeInvoker()
    orch = _orchestrator(session_factory, tmp_path, invoker)
    video = orch.add_video(URL)
    orch.begin_parse(video.id)
    assert orch.get_video(video.id).status == "failed"

    invoker.subtitles = {"en": SAMPLE_VTT}
    orch.begin_parse(video.id)

    stored = orch.get_video(video.id)
    assert stored.status == "completed"
    assert stored.error_message is None
    with session_factory() as db:
        assert len(SubtitleSegmentRepository(db).get_by_video(video.id)) == 3


def test_direct_parse_on_completed_video_does_not_change_it(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(subtitles={"en": SAMPLE_VTT}))
    video = orch.add_video(URL)
    orch.begin_parse(video.id)

    orch.parse_subtitles(video.id)

    stored = orch.get_video(video.id)
    assert stored.status == "completed"
    assert stored.sentence_count == 2


def test_ingest_browser_subtitles_completes_without_tool(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(cookies_dir=tmp_path / "cookies")
    orch = _orchestrator(session_factory, tmp_path, invoker)
    cues = [
        {"start": 0.0, "end": 2.0, "text": "this is the first cue"},
        {"start": 2.5, "end": 4.0, "text": "and this one follows it"},
        {"start": 5.0, "end": 4.0, "text": "backwards and ignored"},
        {"start": 10.0, "end": 13.0, "text": "a separate sentence later on"},
    ]

    video = orch.ingest_browser_subtitles(
        URL, cues, language="en", metadata={"title": "From Browser"}, cookies="# Netscape HTTP Cookie File\n"
    )

    assert video.status == "completed"
    assert video.title == "From Browser"
    assert video.sentence_count == 2
    assert invoker.calls == []
    assert (tmp_path / "cookies" / "dQw4w9WgXcQ.txt").read_text(encoding="utf-8").startswith("# Netscape")


def test_ingest_browser_subtitles_without_usable_cues(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())
    with pytest.raises(EmptySubtitleFile):
        orch.ingest_browser_subtitles(URL, [{"start": 1.0, "end": 2.0, "text": "<c></c>"}])
    assert orch.list_videos()[0].status == "added"


def test_delete_video_removes_sentences_and_subtitle_files(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(subtitles={"en": SAMPLE_VTT}))
    video = orch.add_video(URL)
    orch.begin_parse(video.id)
    assert list((tmp_path / "subtitles").glob("*.vtt"))

    orch.delete_video(video.id)

    with pytest.raises(RecordNotFound):
        orch.get_video(video.id)
    assert not list((tmp_path / "subtitles").glob("*.vtt"))
    with session_factory() as db:
        assert SubtitleSegmentRepository(db).get_by_video(video.id) == []
        assert PracticeSentenceRepository(db).count_by_video(video.id) == 0


def test_stored_sentence_rows_match_sentence_count(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(subtitles={"en": SAMPLE_VTT}))
    video = orch.add_video(URL)
    orch.begin_parse(video.id)

    with session_factory() as db:
        assert PracticeSentenceRepository(db).count_by_video(video.id) == orch.get_video(video.id).sentence_count == 2


def test_list_videos_pages_newest_first(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())
    ids = [orch.add_video(url).id for url in (URL, "https://youtu.be/9bZkp7q19f0", "https://youtu.be/kJQP7kiw5Fk")]

    first = orch.list_videos(page=0, size=2)
    second = orch.list_videos(page=1, size=2)

    assert len(first) == 2
    assert len(second) == 1
    assert {v.id for v in first + second} == set(ids)
    assert orch.list_videos(page=2, size=2) == []
    assert orch.count_videos() == 3
    assert orch.count_videos(status="completed") == 0


def test_parse_by_external_id_creates_and_parses_unknown_video(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(subtitles={"en": SAMPLE_VTT}))

    video = orch.parse_by_external_id("dQw4w9WgXcQ", created_by=3)

    assert video.status == "completed"
    assert video.source_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert video.created_by == 3
    assert orch.get_by_external_id("dQw4w9WgXcQ").id == video.id


def test_parse_by_external_id_ignores_url_for_another_video(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker(subtitles={"en": SAMPLE_VTT}))

    kept = orch.parse_by_external_id("dQw4w9WgXcQ", video_url="https://youtu.be/dQw4w9WgXcQ?t=42")
    replaced = orch.parse_by_external_id("9bZkp7q19f0", video_url=URL)

    assert kept.source_url == "https://youtu.be/dQw4w9WgXcQ?t=42"
    assert replaced.source_url == "https://www.youtube.com/watch?v=9bZkp7q19f0"


def test_parse_by_external_id_returns_completed_video_unchanged(session_factory, tmp_path) -> None:
    invoker = FakeInvoker(subtitles={"en": SAMPLE_VTT})
    orch = _orchestrator(session_factory, tmp_path, invoker)
    first = orch.parse_by_external_id("dQw4w9WgXcQ")
    calls = len(invoker.calls)

    again = orch.parse_by_external_id("dQw4w9WgXcQ")

    assert again.id == first.id
    assert again.status == "completed"
    assert len(invoker.calls) == calls


def test_parse_by_external_id_leaves_parsing_video_alone(session_factory, tmp_path) -> None:
    pending = []
    orch = _orchestrator(
        session_factory,
        tmp_path,
        FakeInvoker(subtitles={"en": SAMPLE_VTT}),
        submit=lambda func, *args: pending.append((func, args)),
    )
    orch.parse_by_external_id("dQw4w9WgXcQ")
    assert len(pending) == 1

    video = orch.parse_by_external_id("dQw4w9WgXcQ")

    assert video.status == "parsing"
    assert len(pending) == 1


def test_parse_by_external_id_retries_failed_video(session_factory, tmp_path) -> None:
    invoker = FakeInvoker()
    orch = _orchestrator(session_factory, tmp_path, invoker)
    assert orch.parse_by_external_id("dQw4w9WgXcQ").status == "failed"

    invoker.subtitles = {"en": SAMPLE_VTT}
    video = orch.parse_by_external_id("dQw4w9WgXcQ")

    assert video.status == "completed"
    assert video.error_message is None


def test_get_by_external_id_for_unknown_video(session_factory, tmp_path) -> None:
    orch = _orchestrator(session_factory, tmp_path, FakeInvoker())
    with pytest.raises(RecordNotFound):
        orch.get_by_external_id("9bZkp7q19f0")
