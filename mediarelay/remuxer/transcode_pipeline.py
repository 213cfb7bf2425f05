"""
Live transcoder process orchestration.

Runs ffmpeg as a child process and relays its stdout chunk by chunk
while a sibling task drains stderr. Nothing is written to disk and the
output is never seeked or re-read: each chunk is handed to the consumer
as soon as it is read, and the next read only happens once the consumer
asks for more.

Failure semantics depend on whether output has already left the process:

- non-zero exit before the first byte: ``TranscodeError`` so the caller
  can still answer with an error status
- non-zero exit after bytes were forwarded: logged only, the client sees
  a truncated stream
"""

import asyncio
import logging
import re
import time
from collections import deque
from collections.abc import AsyncIterator
from typing import Optional

import anyio

from mediarelay.configs import settings

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(rb"[\r\n]+")
_STDERR_READ_SIZE = 1024
_STDERR_TAIL_LINES = 50
_TERMINATE_GRACE_SECONDS = 5.0


class TranscodeError(Exception):
    """The transcoder failed before producing any output."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr_tail: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class TranscodePipeline:
    """A single transcoder run whose stdout is relayed live to one consumer."""

    def __init__(self, args: list[str], executable: Optional[str] = None, chunk_size: Optional[int] = None):
        self.args = list(args)
        self.executable = executable or settings.transcoder_path
        self.chunk_size = chunk_size or settings.stream_chunk_size
        self.bytes_forwarded = 0
        self.time_to_first_byte: Optional[float] = None
        self.returncode: Optional[int] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    async def _spawn(self) -> asyncio.subprocess.Process:
        logger.info(f"Starting {self.executable} with args: {self.args}")
        try:
            return await asyncio.create_subprocess_exec(
                self.executable,
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Failed to start {self.executable}: {e}")

    def _record_diagnostic(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return
        self._stderr_tail.append(text)
        if "speed=" in text and settings.enable_streaming_progress:
            logger.info(f"Transcoder progress: {text}")
        else:
            logger.debug(f"Transcoder: {text}")

    async def _drain_diagnostics(self, stderr: asyncio.StreamReader) -> None:
        """Consume stderr until EOF so a full pipe can never stall stdout."""
        pending = b""
        while True:
            chunk = await stderr.read(_STDERR_READ_SIZE)
            if not chunk:
                break
            # ffmpeg rewrites its progress line with bare CRs
            *lines, pending = _LINE_SPLIT.split(pending + chunk)
            for line in lines:
                self._record_diagnostic(line)
        if pending:
            self._record_diagnostic(pending)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        # The surrounding task may already be cancelled; reaping must still happen
        with anyio.move_on_after(_TERMINATE_GRACE_SECONDS, shield=True) as scope:
            await process.wait()
        if scope.cancelled_caught:
            logger.warning(f"{self.executable} did not exit after SIGTERM, killing it")
            try:
                process.kill()
            except ProcessLookupError:
                return
            with anyio.CancelScope(shield=True):
                await process.wait()

    async def stream(self) -> AsyncIterator[bytes]:
        """
        Spawn the transcoder and yield its stdout as it arrives.

        Raises:
            TranscodeError: If the process cannot be started, or exits with a
                non-zero status before any byte was yielded.
        """
        process = self._process = await self._spawn()
        drain_task = asyncio.create_task(self._drain_diagnostics(process.stderr))
        started_at = time.monotonic()

        try:
            while True:
                chunk = await process.stdout.read(self.chunk_size)
                if not chunk:
                    break
                if self.time_to_first_byte is None:
                    self.time_to_first_byte = time.monotonic() - started_at
                    logger.info(f"First byte sent to client after {self.time_to_first_byte:.3f}s")
                self.bytes_forwarded += len(chunk)
                yield chunk

            self.returncode = await process.wait()
            await drain_task
        except (asyncio.CancelledError, GeneratorExit):
            logger.info(f"Stream cancelled after {self.bytes_forwarded} bytes, stopping {self.executable}")
            raise
        finally:
            await self._terminate(process)
            if not drain_task.done():
                drain_task.cancel()

        if self.returncode != 0:
            if self.bytes_forwarded == 0:
                raise TranscodeError(
                    f"{self.executable} exited with status {self.returncode} before producing output",
                    returncode=self.returncode,
                    stderr_tail=self.stderr_tail,
                )
            logger.error(
                f"{self.executable} exited with status {self.returncode} after {self.bytes_forwarded} bytes; "
                f"stream truncated. Last output: {self.stderr_tail}"
            )
        else:
            logger.info(f"Streaming completed successfully ({self.bytes_forwarded} bytes)")


async def open_stream(pipeline: TranscodePipeline) -> AsyncIterator[bytes]:
    """
    Start ``pipeline`` and wait for its first chunk.

    Pre-output failures surface here as ``TranscodeError`` while the caller
    can still choose the response status. The returned iterator replays the
    first chunk and then continues with the live stream.
    """
    stream = pipeline.stream()
    try:
        first_chunk = await stream.__anext__()
    except StopAsyncIteration:
        first_chunk = b""
    except BaseException:
        await stream.aclose()
        raise

    async def relay() -> AsyncIterator[bytes]:
        try:
            if first_chunk:
                yield first_chunk
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()

    return relay()
