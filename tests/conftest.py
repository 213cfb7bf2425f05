"""
Pytest configuration and shared fixtures.

The real-prober integration test reads its switches from the environment.
Locally, add them to your .env file.
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from mediarelay.schemas import Format, MediaMetadata

# Load .env file from project root
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
    config.addinivalue_line("markers", "integration: needs yt-dlp and network access")


@pytest.fixture
def make_format():
    """
    Factory fixture building a Format with prober-style defaults.

    Usage:
        def test_something(make_format):
            fmt = make_format("137", vcodec="avc1.640028", width=1920, height=1080)
    """

    def _make(format_id: str, **fields) -> Format:
        fields.setdefault("url", f"https://media.example.com/{format_id}")
        fields.setdefault("vcodec", "none")
        fields.setdefault("acodec", "none")
        return Format(format_id=format_id, **fields)

    return _make


@pytest.fixture
def ladder_formats(make_format) -> list[Format]:
    """A typical adaptive ladder: separate video renditions plus two audio-only tracks."""
    return [
        make_format("1", vcodec="vp9", width=3840, height=2160, tbr=5000),
        make_format("2", vcodec="avc1.640028", width=1920, height=1080, tbr=3000),
        make_format("3", vcodec="vp9", width=1920, height=1080, tbr=2800),
        make_format("4", vcodec="avc1.4d401e", width=1280, height=720, tbr=1500),
        make_format("5", vcodec="vp9", width=640, height=360, tbr=800),
        make_format("audio1", acodec="mp4a.40.2", tbr=128),
        make_format("audio2", acodec="opus", tbr=160),
    ]


@pytest.fixture
def ladder_metadata(ladder_formats) -> MediaMetadata:
    return MediaMetadata(
        id="ladder",
        title="Ladder",
        formats=tuple(ladder_formats),
        http_headers={"User-Agent": "TestAgent", "Accept": "*/*"},
    )
