"""
Codec family detection for passthrough decisions.

Prober codec ids are RFC 6381 style strings (``avc1.640028``,
``mp4a.40.2``, ``vp09.00.40.08``) or plain FFmpeg names (``h264``,
``opus``). Families are recognised by case-insensitive substring match
so profile and level suffixes do not matter.
"""

# ────────────────────────────────────────────────────────────────────
# Codec family signatures
# ────────────────────────────────────────────────────────────────────
H264_SIGNATURES = (
    "avc1",
    "avc3",
    "h264",
)

H265_SIGNATURES = (
    "hevc",
    "hvc1",
    "hev1",
    "h265",
)

AAC_SIGNATURES = (
    "mp4a",
    "aac",
)

# Video that can be written into fMP4 without re-encoding
VIDEO_PASSTHROUGH_SIGNATURES = H264_SIGNATURES + H265_SIGNATURES


def _matches(codec_id: str | None, signatures: tuple[str, ...]) -> bool:
    if not codec_id:
        return False
    lowered = codec_id.lower()
    return any(signature in lowered for signature in signatures)


def is_h264(codec_id: str | None) -> bool:
    return _matches(codec_id, H264_SIGNATURES)


def video_can_passthrough(codec_id: str | None) -> bool:
    """True when the video stream is H.264 or H.265 and can be stream-copied."""
    return _matches(codec_id, VIDEO_PASSTHROUGH_SIGNATURES)


def audio_can_passthrough(codec_id: str | None) -> bool:
    """True when the audio stream is AAC and can be stream-copied."""
    return _matches(codec_id, AAC_SIGNATURES)
