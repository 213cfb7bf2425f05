"""
Integration tests against a real yt-dlp installation.

These hit the network, so they only run when MEDIARELAY_INTEGRATION=1 is
set (in the environment or the project's .env) and yt-dlp is on PATH.
"""

import os
import shutil

import pytest

from mediarelay.extractors.base import MediaNotFoundError
from mediarelay.extractors.ytdlp import YtDlpExtractor

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(os.environ.get("MEDIARELAY_INTEGRATION") != "1", reason="MEDIARELAY_INTEGRATION not set"),
    pytest.mark.skipif(shutil.which("yt-dlp") is None, reason="yt-dlp not installed"),
]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=zzzzzzzzzzz",
        "https://example.com/nothing",
    ],
)
async def test_unavailable_resource_is_not_found(url):
    with pytest.raises(MediaNotFoundError):
        await YtDlpExtractor(executable="yt-dlp").extract(url)
