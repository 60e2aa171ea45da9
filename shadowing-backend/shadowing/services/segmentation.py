"""
Sentence Segmentation Service
Merge subtitle segments into practice-sized units, strip fillers, filter by
length and duration, and label difficulty.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence

from shadowing.core.enums import Difficulty
from shadowing.core.pipeline_settings import PipelineSettings, pipeline_settings
from shadowing.services.subtitle_parser import Segment, is_cjk_language

logger = logging.getLogger(__name__)

FILLERS_EN = ("uh", "um", "you know", "like", "so", "well", "actually", "basically", "literally")
FILLERS_ZH = ("嗯", "那个", "就是", "然后", "这个", "呃", "啊", "哦")
FILLERS_JA = ("えー", "あの", "まあ", "その", "なんか", "っていうか", "てか")

_WHITESPACE_RE = re.compile(r"\s+")
_LETTERS_RE = re.compile(r"[^a-z]")

# Unified Ideographs, Hiragana, Katakana, Hangul Syllables
_CJK_RANGES = ((0x4E00, 0x9FFF), (0x3040, 0x309F), (0x30A0, 0x30FF), (0xAC00, 0xD7AF))


@dataclass
class SentenceDraft:
    text: str
    start: float
    end: float
    difficulty: str
    order: int


def text_units(text: str, language: Optional[str]) -> int:
    """Words for space-delimited languages, non-space characters for CJK."""
    if is_cjk_language(language):
        return len(_WHITESPACE_RE.sub("", text))
    return len(text.split())


def _is_cjk_char(ch: str) -> bool:
    cp = ord(ch)
    return any(lo <= cp <= hi for lo, hi in _CJK_RANGES)


def merge_segments(
    segments: Sequence[Segment],
    language: Optional[str],
    config: PipelineSettings = pipeline_settings,
) -> List[Segment]:
    """
    Greedily merge each segment into the running one when the gap, combined
    length and combined duration all stay within limits. Input is not modified.
    """
    if not segments:
        return []

    merged: List[Segment] = []
    current = replace(segments[0])
    for nxt in segments[1:]:
        gap = nxt.start - current.end
        units = text_units(current.text, language) + text_units(nxt.text, language)
        duration = nxt.end - current.start
        if (
            gap <= config.merge_max_gap_sec
            and units <= config.merge_max_units
            and duration <= config.merge_max_duration_sec
        ):
            current = replace(
                current,
                end=nxt.end,
                raw_text=f"{current.raw_text} {nxt.raw_text}",
                text=f"{current.text} {nxt.text}",
            )
        else:
            merged.append(current)
            current = replace(nxt)
    merged.append(current)

    return [replace(seg, order=i) for i, seg in enumerate(merged)]


def _filler_set(language: Optional[str]) -> Sequence[str]:
    # English fillers only for en/unknown; fr, de, es etc. keep their text untouched.
    if not language or language.lower().startswith("en"):
        return FILLERS_EN
    lang = language.lower()
    if lang.startswith("zh") or lang == "chi":
        return FILLERS_ZH
    if lang.startswith("ja") or lang == "jpn":
        return FILLERS_JA
    return ()


def remove_filler_words(text: str, language: Optional[str]) -> str:
    fillers = _filler_set(language)
    if not fillers:
        return text

    if is_cjk_language(language):
        for filler in sorted(fillers, key=len, reverse=True):
            text = text.replace(filler, "")
        return _WHITESPACE_RE.sub(" ", text).strip()

    phrases = [tuple(f.split()) for f in fillers]
    phrases.sort(key=len, reverse=True)
    tokens = text.split()
    normalized = [_LETTERS_RE.sub("", t.lower()) for t in tokens]
    kept = []
    i = 0
    while i < len(tokens):
        for phrase in phrases:
            if tuple(normalized[i:i + len(phrase)]) == phrase:
                i += len(phrase)
                break
        else:
            kept.append(tokens[i])
            i += 1
    return " ".join(kept)


def remove_fillers(segments: Iterable[Segment], language: Optional[str]) -> List[Segment]:
    """Strip filler words; segments left empty are dropped."""
    out: List[Segment] = []
    for seg in segments:
        text = remove_filler_words(seg.text, language)
        if text:
            out.append(replace(seg, text=text))
    return out


def is_practice_sized(
    text: str,
    duration: float,
    language: Optional[str],
    config: PipelineSettings = pipeline_settings,
) -> bool:
    units = text_units(text, language)
    if is_cjk_language(language):
        if units < config.filter_min_chars_cjk or units > config.filter_max_chars_cjk:
            return False
    elif units < config.filter_min_words or units > config.filter_max_words:
        return False
    return config.filter_min_duration_sec <= duration <= config.filter_max_duration_sec


def filter_segments(
    segments: Iterable[Segment],
    language: Optional[str],
    config: PipelineSettings = pipeline_settings,
) -> List[Segment]:
    return [s for s in segments if is_practice_sized(s.text, s.duration, language, config)]


def classify_difficulty(text: str, language: Optional[str], preference: Optional[str] = None) -> str:
    """Explicit easy/medium/hard passes through; auto or None is derived from the text."""
    if preference and preference != Difficulty.AUTO.value:
        return preference

    if is_cjk_language(language):
        chars = len(_WHITESPACE_RE.sub("", text))
        cjk = sum(1 for ch in text if _is_cjk_char(ch))
        if chars < 15 and cjk > 0.7 * chars:
            return Difficulty.EASY.value
        if chars > 50 or cjk < 0.3 * chars:
            return Difficulty.HARD.value
        return Difficulty.MEDIUM.value

    words = text.split()
    count = len(words)
    long_ratio = (sum(1 for w in words if len(w) > 8) / count) if count else 0.0
    if count < 12 and long_ratio < 0.2:
        return Difficulty.EASY.value
    if count > 25 or long_ratio > 0.4:
        return Difficulty.HARD.value
    return Difficulty.MEDIUM.value


def build_sentences(
    segments: Sequence[Segment],
    language: Optional[str],
    difficulty_preference: Optional[str] = None,
    config: PipelineSettings = pipeline_settings,
) -> List[SentenceDraft]:
    """merge -> filler removal -> filtering -> difficulty."""
    merged = merge_segments(segments, language, config)
    cleaned = remove_fillers(merged, language)
    kept = filter_segments(cleaned, language, config)
    logger.info(
        f"[segmentation] {len(segments)} segments -> {len(merged)} merged -> {len(kept)} sentences"
    )
    return [
        SentenceDraft(
            text=seg.text,
            start=seg.start,
            end=seg.end,
            difficulty=classify_difficulty(seg.text, language, difficulty_preference),
            order=i,
        )
        for i, seg in enumerate(kept)
    ]
