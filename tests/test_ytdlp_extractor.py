import asyncio
import json
import os
import sys
import textwrap

import pytest

from mediarelay.extractors.base import FetchFailedError, MediaNotFoundError, ParseFailedError
from mediarelay.extractors.ytdlp import YtDlpExtractor

SAMPLE_DOCUMENT = {
    "id": "dQw4w9WgXcQ",
    "title": "Sample",
    "http_headers": {"User-Agent": "Mozilla/5.0", "Accept-Language": "en-us,en;q=0.5"},
    "formats": [
        {
            "format_id": "sb0",
            "url": "https://i.ytimg.com/sb/0",
            "vcodec": "none",
            "acodec": "none",
            "width": 48,
            "height": 27,
            "protocol": "mhtml",
        },
        {
            "format_id": "140",
            "url": "https://rr1.example.com/140",
            "vcodec": "none",
            "acodec": "mp4a.40.2",
            "width": None,
            "height": None,
            "tbr": 129.5,
            "abr": 129.5,
            "protocol": "https",
            "http_headers": {"User-Agent": "Mozilla/5.0"},
        },
        {
            "format_id": "137",
            "url": "https://rr1.example.com/137",
            "vcodec": "avc1.640028",
            "acodec": "none",
            "width": 1920,
            "height": 1080,
            "tbr": 4400.1,
            "abr": None,
            "protocol": "https",
        },
    ],
    "duration": 212,
    "thumbnails": [],
}


class ScriptExtractor(YtDlpExtractor):
    """Runs a small Python script in place of yt-dlp."""

    def __init__(self, script: str):
        super().__init__(executable=sys.executable)
        self.script = textwrap.dedent(script)

    def build_command(self, url: str) -> list[str]:
        return [sys.executable, "-c", self.script, url]


def test_build_command_uses_single_video_json_mode():
    extractor = YtDlpExtractor(executable="/usr/local/bin/yt-dlp")
    assert extractor.build_command("https://youtu.be/x") == [
        "/usr/local/bin/yt-dlp",
        "-J",
        "--no-playlist",
        "https://youtu.be/x",
    ]


@pytest.mark.asyncio
async def test_extract_parses_prober_document():
    extractor = ScriptExtractor(
        f"""
        import sys
        sys.stdout.write({json.dumps(json.dumps(SAMPLE_DOCUMENT))})
        """
    )
    metadata = await extractor.extract("https://www.youtube.com/watch?v=dQw4w9WgXcQ")

    assert metadata.id == "dQw4w9WgXcQ"
    assert metadata.title == "Sample"
    assert [f.format_id for f in metadata.formats] == ["sb0", "140", "137"]
    audio = metadata.formats[1]
    assert audio.width == 0
    assert audio.abr == 129.5
    assert audio.has_audio and not audio.has_video
    video = metadata.formats[2]
    assert video.has_video and not video.has_audio
    assert video.http_headers == {}
    assert metadata.http_headers["Accept-Language"] == "en-us,en;q=0.5"


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["ERROR: [youtube] zzz: Video unavailable", "ERROR: HTTP Error 404: Not Found"])
async def test_extract_classifies_not_found(message):
    extractor = ScriptExtractor(
        f"""
        import sys
        sys.stderr.write({message!r})
        sys.exit(1)
        """
    )
    with pytest.raises(MediaNotFoundError):
        await extractor.extract("https://www.youtube.com/watch?v=zzzzzzzzzzz")


@pytest.mark.asyncio
async def test_extract_reports_other_failures_with_stderr():
    extractor = ScriptExtractor(
        """
        import sys
        sys.stderr.write("ERROR: Unable to download webpage: timed out")
        sys.exit(2)
        """
    )
    with pytest.raises(FetchFailedError) as exc_info:
        await extractor.extract("https://example.com/video")

    assert exc_info.value.returncode == 2
    assert "timed out" in exc_info.value.stderr


@pytest.mark.asyncio
async def test_extract_missing_executable_is_fetch_failure():
    extractor = YtDlpExtractor(executable="/nonexistent/yt-dlp")
    with pytest.raises(FetchFailedError):
        await extractor.extract("https://example.com/video")


@pytest.mark.asyncio
async def test_extract_rejects_malformed_output():
    extractor = ScriptExtractor(
        """
        print("not json at all")
        """
    )
    with pytest.raises(ParseFailedError):
        await extractor.extract("https://example.com/video")


@pytest.mark.parametrize(
    "output",
    [
        b"[]",
        b'{"id": "x", "formats": "nope"}',
        b'{"id": "x", "formats": [{"format_id": "1", "width": "wide"}]}',
        b"\xff\xfe",
    ],
)
def test_parse_rejects_unexpected_structure(output):
    with pytest.raises(ParseFailedError):
        YtDlpExtractor.parse(output)


def test_parse_tolerates_null_collections():
    metadata = YtDlpExtractor.parse(b'{"id": "x", "title": null, "formats": null, "http_headers": null}')
    assert metadata.title == ""
    assert metadata.formats == ()
    assert metadata.http_headers == {}


@pytest.mark.asyncio
@pytest.mark.skipif(os.name == "nt", reason="relies on POSIX process semantics")
async def test_cancelling_extract_kills_prober(tmp_path):
    pid_file = tmp_path / "pid"
    extractor = ScriptExtractor(
        f"""
        import os, time
        with open({str(pid_file)!r}, "w") as f:
            f.write(str(os.getpid()))
        time.sleep(30)
        """
    )
    task = asyncio.create_task(extractor.extract("https://example.com/slow"))
    for _ in range(500):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.01)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
