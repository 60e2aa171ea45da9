"""
Pipeline Settings - Thresholds for subtitle segmentation and language fallback
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Tuple

def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else int(v)

def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v

def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else float(v)

def _env_list(name: str, default: str) -> Tuple[str, ...]:
    return tuple(x.strip() for x in _env_str(name, default).split(",") if x.strip())

@dataclass(frozen=True)
class PipelineSettings:
    # Merge step
    merge_max_gap_sec: float = _env_float("MERGE_MAX_GAP_SEC", 2.5)
    merge_max_units: int = _env_int("MERGE_MAX_UNITS", 60)
    merge_max_duration_sec: float = _env_float("MERGE_MAX_DURATION_SEC", 30.0)

    # Filter step (space-delimited languages count words, CJK counts characters)
    filter_min_words: int = _env_int("FILTER_MIN_WORDS", 3)
    filter_max_words: int = _env_int("FILTER_MAX_WORDS", 80)
    filter_min_chars_cjk: int = _env_int("FILTER_MIN_CHARS_CJK", 3)
    filter_max_chars_cjk: int = _env_int("FILTER_MAX_CHARS_CJK", 200)
    filter_min_duration_sec: float = _env_float("FILTER_MIN_DURATION_SEC", 0.5)
    filter_max_duration_sec: float = _env_float("FILTER_MAX_DURATION_SEC", 40.0)

    # Subtitle language fallback order
    fallback_languages: Tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "SUBTITLE_FALLBACK_LANGUAGES", "zh,zh-Hans,zh-Hant,zh-CN,zh-TW,en,ja,ko"
        )
    )
    # Preferred order when detecting a language from metadata
    preferred_languages: Tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "SUBTITLE_PREFERRED_LANGUAGES", "en,zh,zh-Hans,zh-Hant,ja,ko"
        )
    )
    default_language: str = _env_str("SUBTITLE_DEFAULT_LANGUAGE", "en")

pipeline_settings = PipelineSettings()
