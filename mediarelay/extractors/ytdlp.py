import asyncio
import json
import logging
from typing import Optional

from pydantic import ValidationError

from mediarelay.configs import settings
from mediarelay.extractors.base import (
    BaseExtractor,
    FetchFailedError,
    MediaNotFoundError,
    ParseFailedError,
)
from mediarelay.schemas import MediaMetadata

logger = logging.getLogger(__name__)

# stderr fragments yt-dlp emits when the resource itself is gone
NOT_FOUND_MARKERS = (
    "Video unavailable",
    "HTTP Error 404",
)


class YtDlpExtractor(BaseExtractor):
    """Fetches metadata by running ``yt-dlp -J`` as a child process."""

    def __init__(self, executable: Optional[str] = None):
        self.executable = executable or settings.prober_path

    def build_command(self, url: str) -> list[str]:
        return [self.executable, "-J", "--no-playlist", url]

    async def extract(self, url: str) -> MediaMetadata:
        command = self.build_command(url)
        logger.debug(f"Running prober: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FetchFailedError(f"Failed to start {self.executable}: {e}")

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            logger.info(f"Metadata fetch cancelled, killing prober for {url}")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise

        stderr_text = (stderr or b"").decode("utf-8", errors="replace")
        if process.returncode != 0:
            if any(marker in stderr_text for marker in NOT_FOUND_MARKERS):
                raise MediaNotFoundError(f"Resource not found: {url}")
            raise FetchFailedError(
                f"{self.executable} exited with status {process.returncode}",
                returncode=process.returncode,
                stderr=stderr_text,
            )

        return self.parse(stdout)

    @staticmethod
    def parse(output: bytes) -> MediaMetadata:
        """Turn the prober's JSON document into MediaMetadata."""
        try:
            document = json.loads(output)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseFailedError(f"Prober output is not valid JSON: {e}")

        if not isinstance(document, dict):
            raise ParseFailedError(f"Expected a JSON object, got {type(document).__name__}")

        try:
            return MediaMetadata.model_validate(document)
        except ValidationError as e:
            raise ParseFailedError(f"Prober output does not match the metadata schema: {e}")
