"""
Transcode planning.

Turns a format selection into the ffmpeg invocation that produces a
fragmented MP4 on stdout: which streams are copied and which are
re-encoded, which inputs are opened with which headers, and how streams
are mapped into the output.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from mediarelay.configs import settings
from mediarelay.remuxer.codec_utils import audio_can_passthrough, video_can_passthrough
from mediarelay.remuxer.format_selector import SelectionResult
from mediarelay.schemas import MediaMetadata

logger = logging.getLogger(__name__)

# fMP4 that can be written to and read from a pipe without seeking
FRAGMENTED_MP4_OUTPUT = ("-f", "mp4", "-movflags", "frag_keyframe+empty_moov", "pipe:1")


@dataclass(frozen=True)
class StreamDirective:
    """Codec arguments for one output stream."""

    passthrough: bool
    args: tuple[str, ...]


@dataclass(frozen=True)
class PipelineInput:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)

    def to_args(self) -> list[str]:
        return header_args(self.headers) + ["-i", self.url]


@dataclass(frozen=True)
class PipelinePlan:
    video: StreamDirective
    audio: StreamDirective
    inputs: tuple[PipelineInput, ...]
    maps: tuple[str, ...]
    output: tuple[str, ...] = FRAGMENTED_MP4_OUTPUT
    threads: int = 0

    @property
    def has_separate_audio(self) -> bool:
        return len(self.inputs) > 1

    def to_args(self) -> list[str]:
        """Render the full ffmpeg argument vector (without the executable)."""
        args = ["-hide_banner", "-loglevel", "info", "-threads", str(self.threads)]
        for pipeline_input in self.inputs:
            args.extend(pipeline_input.to_args())
        for stream_map in self.maps:
            args.extend(["-map", stream_map])
        args.extend(self.video.args)
        args.extend(self.audio.args)
        args.extend(self.output)
        return args


def header_args(headers: Dict[str, str]) -> list[str]:
    """
    Build ffmpeg header injection arguments for one input.

    User-Agent goes through ``-user_agent``; every other header is sent as a
    CRLF-terminated line of a single ``-headers`` value.
    """
    args: list[str] = []
    header_lines = []
    for name, value in headers.items():
        if name.lower() == "user-agent":
            args.extend(["-user_agent", value])
        else:
            header_lines.append(f"{name}: {value}\r\n")
    if header_lines:
        args.extend(["-headers", "".join(header_lines)])
    return args


def plan_video(codec_id: str, preset: Optional[str] = None, keyframe_interval: Optional[int] = None) -> StreamDirective:
    if video_can_passthrough(codec_id):
        return StreamDirective(passthrough=True, args=("-c:v", "copy"))

    # Fixed GOP so every fragment starts on a keyframe regardless of frame rate
    gop = str(keyframe_interval or settings.keyframe_interval)
    return StreamDirective(
        passthrough=False,
        args=(
            "-c:v",
            "libx264",
            "-preset",
            preset or settings.video_preset,
            "-g",
            gop,
            "-keyint_min",
            gop,
            "-sc_threshold",
            "0",
        ),
    )


def plan_audio(codec_id: str) -> StreamDirective:
    if audio_can_passthrough(codec_id):
        return StreamDirective(passthrough=True, args=("-c:a", "copy"))
    return StreamDirective(passthrough=False, args=("-c:a", "aac"))


def build_pipeline_plan(selection: SelectionResult, metadata: Optional[MediaMetadata] = None) -> PipelinePlan:
    """
    Assemble the pipeline plan for a selection.

    Args:
        selection: The chosen video (required) and audio formats.
        metadata: The resource the formats belong to; its default headers are
            sent with every input.

    Raises:
        ValueError: If the selection has no video format.
    """
    video_format = selection.video
    audio_format = selection.audio
    if video_format is None:
        raise ValueError("Cannot plan a pipeline without a video format")

    metadata = metadata or MediaMetadata()
    inputs = [PipelineInput(url=video_format.url, headers=metadata.headers_for(video_format))]

    separate_audio = audio_format is not None and audio_format.url and audio_format.url != video_format.url
    if separate_audio:
        inputs.append(PipelineInput(url=audio_format.url, headers=metadata.headers_for(audio_format)))
        maps = ("0:v:0", "1:a:0")
    else:
        # A combined input may lack audio; the trailing "?" keeps that from failing
        maps = ("0:v:0", "0:a:0?")

    plan = PipelinePlan(
        video=plan_video(video_format.vcodec),
        audio=plan_audio(audio_format.acodec if audio_format is not None else ""),
        inputs=tuple(inputs),
        maps=maps,
        threads=settings.transcoder_threads,
    )
    logger.debug(
        f"Planned pipeline: video={'copy' if plan.video.passthrough else 'reencode'}, "
        f"audio={'copy' if plan.audio.passthrough else 'reencode'}, inputs={len(plan.inputs)}"
    )
    return plan
