import logging
import typing
from functools import partial

import anyio
from fastapi import Response
from starlette.background import BackgroundTask
from starlette.concurrency import iterate_in_threadpool
from starlette.types import Receive, Send, Scope

logger = logging.getLogger(__name__)


class EnhancedStreamingResponse(Response):
    """
    Streaming response that stops cleanly when the client goes away.

    The body iterator and a disconnect listener run in one task group; a
    disconnect cancels the group, which cancels the body iterator at its
    current ``await`` so whatever produces the body can shut down.
    """

    body_iterator: typing.AsyncIterable[typing.Any]

    def __init__(
        self,
        content: typing.Union[typing.AsyncIterable[typing.Any], typing.Iterable[typing.Any]],
        status_code: int = 200,
        headers: typing.Optional[typing.Mapping[str, str]] = None,
        media_type: typing.Optional[str] = None,
        background: typing.Optional[BackgroundTask] = None,
    ) -> None:
        if isinstance(content, typing.AsyncIterable):
            self.body_iterator = content
        else:
            self.body_iterator = iterate_in_threadpool(content)
        self.status_code = status_code
        self.media_type = self.media_type if media_type is None else media_type
        self.background = background
        self.init_headers(headers)
        self.actual_content_length = 0

    @staticmethod
    async def listen_for_disconnect(receive: Receive) -> None:
        """
        Listen for client disconnect events to stop streaming gracefully.
        """
        try:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    logger.debug("Client disconnected")
                    break
        except Exception as e:
            logger.error(f"Error in listen_for_disconnect: {str(e)}")

    async def stream_response(self, send: Send) -> None:
        """
        Stream the response body in chunks and handle protocol edge cases gracefully.
        """
        response_started = False
        try:
            # A live stream has no known length
            headers = [(name, value) for name, value in self.raw_headers if name.lower() != b"content-length"]

            await send(
                {
                    "type": "http.response.start",
                    "status": self.status_code,
                    "headers": headers,
                }
            )
            response_started = True

            async for chunk in self.body_iterator:
                if not isinstance(chunk, (bytes, memoryview)):
                    chunk = chunk.encode(self.charset)
                try:
                    await send({"type": "http.response.body", "body": chunk, "more_body": True})
                    self.actual_content_length += len(chunk)
                except (ConnectionResetError, anyio.BrokenResourceError):
                    logger.info("Client disconnected during streaming")
                    return

            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except Exception as e:
            if isinstance(e, (ConnectionResetError, anyio.BrokenResourceError)):
                logger.info("Client disconnected during streaming")
                return
            logger.exception(f"Error in stream_response: {str(e)}")
            if not response_started:
                return
            try:
                # Headers are committed; all we can do is end the body early
                logger.info(f"Response finalized after partial content ({self.actual_content_length} bytes)")
                await send({"type": "http.response.body", "body": b"", "more_body": False})
            except Exception as close_err:
                logger.warning(f"Could not finalize response after streaming error: {close_err}")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        ASGI entrypoint: run streaming and disconnect listener concurrently.
        """
        async with anyio.create_task_group() as task_group:
            streaming_completed = False
            stream_func = partial(self.stream_response, send)
            listen_func = partial(self.listen_for_disconnect, receive)

            async def wrap(func: typing.Callable[[], typing.Awaitable[None]]) -> None:
                try:
                    await func()
                    if func == stream_func:
                        nonlocal streaming_completed
                        streaming_completed = True
                except Exception as e:
                    if not isinstance(e, anyio.get_cancelled_exc_class()):
                        logger.exception("Error in streaming task")
                        raise
                finally:
                    if func == listen_func or streaming_completed:
                        task_group.cancel_scope.cancel()

            task_group.start_soon(wrap, stream_func)
            await wrap(listen_func)

        if self.background is not None:
            await self.background()
