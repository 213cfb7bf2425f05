from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QualityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Optional[str]) -> "QualityTier":
        """Map a raw query value to a tier, falling back to HIGH for anything unrecognized."""
        if value:
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.HIGH


class GenericParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class Format(GenericParams):
    format_id: str = Field("", description="The prober's identifier for this format.")
    url: str = Field("", description="Direct delivery URL of the format.")
    vcodec: str = Field("", description="Video codec id, or 'none' when the format carries no video.")
    acodec: str = Field("", description="Audio codec id, or 'none' when the format carries no audio.")
    width: int = Field(0, description="Frame width in pixels.")
    height: int = Field(0, description="Frame height in pixels.")
    tbr: float = Field(0.0, description="Total bitrate in kbps.")
    abr: float = Field(0.0, description="Audio bitrate in kbps.")
    protocol: str = Field("", description="Delivery protocol, e.g. 'https' or 'm3u8_native'.")
    http_headers: Dict[str, str] = Field(default_factory=dict, description="Headers required to fetch the URL.")

    @field_validator("format_id", "url", "vcodec", "acodec", "protocol", mode="before")
    def validate_text(cls, value: Any):
        return "" if value is None else str(value)

    @field_validator("width", "height", mode="before")
    def validate_dimension(cls, value: Any):
        return value or 0

    @field_validator("tbr", "abr", mode="before")
    def validate_bitrate(cls, value: Any):
        return value or 0.0

    @field_validator("http_headers", mode="before")
    def validate_headers(cls, value: Any):
        return value or {}

    @property
    def has_video(self) -> bool:
        return self.vcodec != "none" and self.width > 0

    @property
    def has_audio(self) -> bool:
        return self.acodec != "none"

    @property
    def is_audio_only(self) -> bool:
        return self.vcodec == "none"

    @property
    def is_segmented(self) -> bool:
        """True for chunked delivery (HLS) as opposed to a single HTTP stream."""
        return not (self.protocol.startswith("http") and "m3u8" not in self.protocol)

    @property
    def effective_audio_bitrate(self) -> float:
        return self.abr or self.tbr


class MediaMetadata(GenericParams):
    id: str = Field("", description="The resource identifier reported by the prober.")
    title: str = Field("", description="Human readable title.")
    formats: Tuple[Format, ...] = Field(default_factory=tuple, description="Available formats, in prober order.")
    http_headers: Dict[str, str] = Field(
        default_factory=dict, description="Default headers applying to every format of the resource."
    )

    @field_validator("id", "title", mode="before")
    def validate_text(cls, value: Any):
        return "" if value is None else str(value)

    @field_validator("formats", "http_headers", mode="before")
    def validate_collections(cls, value: Any, info):
        if value is None:
            return () if info.field_name == "formats" else {}
        return value

    def headers_for(self, media_format: Format) -> Dict[str, str]:
        """Resource-level headers overlaid with the format's own headers."""
        headers = dict(self.http_headers)
        headers.update(media_format.http_headers)
        return headers
