import asyncio

import pytest

from mediarelay.utils.http_utils import EnhancedStreamingResponse


async def never_disconnects():
    await asyncio.Event().wait()


def http_scope() -> dict:
    return {"type": "http", "method": "GET", "path": "/video", "headers": []}


@pytest.mark.asyncio
async def test_error_after_start_ends_body_with_partial_content():
    async def content():
        yield b"partial"
        raise RuntimeError("upstream went away")

    sent = []

    async def send(message):
        sent.append(message)

    response = EnhancedStreamingResponse(content(), media_type="video/mp4", headers={"content-length": "100"})
    await asyncio.wait_for(response(http_scope(), never_disconnects, send), timeout=5)

    assert sent[0]["type"] == "http.response.start"
    assert sent[0]["status"] == 200
    assert b"content-length" not in dict(sent[0]["headers"])
    assert [m["body"] for m in sent[1:]] == [b"partial", b""]
    assert sent[-1]["more_body"] is False
    assert response.actual_content_length == len(b"partial")


@pytest.mark.asyncio
async def test_disconnect_stops_body_iterator():
    closed = asyncio.Event()

    async def content():
        try:
            while True:
                yield b"x"
                await asyncio.sleep(0.01)
        finally:
            closed.set()

    async def disconnect_soon():
        await asyncio.sleep(0.1)
        return {"type": "http.disconnect"}

    async def send(message):
        pass

    response = EnhancedStreamingResponse(content(), media_type="video/mp4")
    await asyncio.wait_for(response(http_scope(), disconnect_soon, send), timeout=5)

    assert closed.is_set()
