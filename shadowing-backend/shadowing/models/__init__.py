from shadowing.models.video import Video
from shadowing.models.subtitle_segment import SubtitleSegment
from shadowing.models.practice_sentence import PracticeSentence
from shadowing.models.download_task import DownloadTask

__all__ = ["Video", "SubtitleSegment", "PracticeSentence", "DownloadTask"]
