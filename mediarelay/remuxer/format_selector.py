"""
Quality-tier format selection.

Picks one video format and, when available, one audio format from a
resource's metadata. Selection is pure and deterministic: the same
metadata and tier always yield the same pair.
"""

from dataclasses import dataclass
from functools import cmp_to_key
from typing import Optional, Sequence

from mediarelay.remuxer.codec_utils import is_h264
from mediarelay.schemas import Format, MediaMetadata, QualityTier

# Target heights for the tiers that do not simply take the best candidate
TIER_TARGET_HEIGHTS = {
    QualityTier.MEDIUM: 720,
    QualityTier.LOW: 360,
}


@dataclass(frozen=True)
class SelectionResult:
    video: Optional[Format] = None
    audio: Optional[Format] = None


def _prefer(a: bool, b: bool) -> int:
    """Order the candidate whose flag is set first; 0 when both agree."""
    if a == b:
        return 0
    return -1 if a else 1


def _descending(a: float, b: float) -> int:
    return (a < b) - (a > b)


def compare_video(a: Format, b: Format) -> int:
    """Height desc, then H.264 before anything else, then total bitrate desc."""
    if a.height != b.height:
        return _descending(a.height, b.height)
    codec_order = _prefer(is_h264(a.vcodec), is_h264(b.vcodec))
    if codec_order:
        return codec_order
    return _descending(a.tbr, b.tbr)


def compare_audio(a: Format, b: Format) -> int:
    """Audio-only before muxed, then non-segmented before HLS, then effective bitrate desc."""
    audio_only_order = _prefer(a.is_audio_only, b.is_audio_only)
    if audio_only_order:
        return audio_only_order
    delivery_order = _prefer(not a.is_segmented, not b.is_segmented)
    if delivery_order:
        return delivery_order
    return _descending(a.effective_audio_bitrate, b.effective_audio_bitrate)


def sort_video_candidates(formats: Sequence[Format]) -> list[Format]:
    return sorted((f for f in formats if f.has_video), key=cmp_to_key(compare_video))


def sort_audio_candidates(formats: Sequence[Format]) -> list[Format]:
    return sorted((f for f in formats if f.has_audio), key=cmp_to_key(compare_audio))


def find_closest_height(candidates: Sequence[Format], target_height: int) -> Format:
    """
    Return the candidate whose height is closest to ``target_height``.

    Candidates must already be in preference order; on equal distance the
    earlier one wins.
    """
    best = candidates[0]
    best_distance = abs(best.height - target_height)
    for candidate in candidates[1:]:
        distance = abs(candidate.height - target_height)
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


def select_formats(metadata: MediaMetadata, quality: QualityTier = QualityTier.HIGH) -> SelectionResult:
    """Choose the video/audio pair that best matches the quality tier."""
    quality = QualityTier(quality)
    videos = sort_video_candidates(metadata.formats)
    audios = sort_audio_candidates(metadata.formats)

    video = None
    if videos:
        target_height = TIER_TARGET_HEIGHTS.get(quality)
        video = videos[0] if target_height is None else find_closest_height(videos, target_height)

    if audios:
        # Low quality conserves bandwidth with the weakest audio
        audio = audios[-1] if quality == QualityTier.LOW else audios[0]
    elif video is not None and video.acodec != "none":
        audio = video
    else:
        audio = None

    return SelectionResult(video=video, audio=audio)
