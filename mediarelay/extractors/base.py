from abc import ABC, abstractmethod
from typing import Optional

from mediarelay.schemas import MediaMetadata


class ExtractorError(Exception):
    """Base exception for all extractors."""

    pass


class MediaNotFoundError(ExtractorError):
    """The prober reports the resource does not exist or is unavailable."""

    pass


class FetchFailedError(ExtractorError):
    """The prober failed for a reason other than the resource being unavailable."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ParseFailedError(ExtractorError):
    """The prober's output could not be turned into MediaMetadata."""

    pass


class BaseExtractor(ABC):
    """Base class for metadata extractors."""

    @abstractmethod
    async def extract(self, url: str) -> MediaMetadata:
        """Fetch the metadata document for a resource locator."""
        pass
