from .base import BaseExtractor, ExtractorError, FetchFailedError, MediaNotFoundError, ParseFailedError
from .ytdlp import YtDlpExtractor

__all__ = [
    "BaseExtractor",
    "ExtractorError",
    "FetchFailedError",
    "MediaNotFoundError",
    "ParseFailedError",
    "YtDlpExtractor",
]
