"""
Process Stream
==============
Runs one child process and exposes its merged stdout/stderr as an ordered,
line-buffered stream of StreamChunks.

Mechanics:
    - The process is spawned from an argv list (no shell), stdin closed.
    - One reader task per pipe decodes bytes incrementally (UTF-8, invalid
      bytes replaced) and puts text into a shared bounded asyncio.Queue,
      followed by a sentinel when its pipe closes.
    - The consumer appends queue items to one buffer in arrival order and
      emits every complete line. stdout and stderr are never separated or
      re-ordered beyond what the OS delivered.
    - After both sentinels and process exit, a trailing partial line is
      flushed (newline appended), then one status chunk with
      is_final=True and the exit code closes the stream.

Backpressure:
    The queue is bounded. A consumer that stops pulling stalls the readers,
    which stalls the pipes and the child; nothing is buffered
    without limit.

Cancellation:
    Closing or cancelling the stream kills a still-running child, cancels the
    readers and reaps the process before the generator finishes.

Spawn failure:
    OSError from spawning (binary missing, permission denied) becomes a single
    status chunk with exit_code -1 and the OS error message.
"""
import asyncio
import codecs
import logging
import os
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

from prophet.core.constants import LOG_PREFIX
from prophet.models.simulation import StreamChunk

logger = logging.getLogger(__name__)

SpawnFn = Callable[..., Awaitable[asyncio.subprocess.Process]]

_READ_SIZE = 4096
_QUEUE_SIZE = 64
_EOF = object()


async def _pump(stream: asyncio.StreamReader, queue: asyncio.Queue) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            data = await stream.read(_READ_SIZE)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                await queue.put(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            await queue.put(tail)
    except Exception as e:
        logger.warning("Pipe read failed: %s", e)
    await queue.put(_EOF)


async def stream_command(
    argv: Sequence[str],
    cwd: str,
    spawn: Optional[SpawnFn] = None,
    env: Optional[dict] = None,
) -> AsyncIterator[StreamChunk]:
    """
    Run *argv* in *cwd* and yield its output lines, then one status chunk.

    Parameters
    ----------
    argv : Sequence[str]
        Program and arguments.
    cwd : str
        Working directory of the child.
    spawn : callable | None
        Process factory with the signature of asyncio.create_subprocess_exec.
    env : dict | None
        Child environment; None inherits the current one.

    Yields
    ------
    StreamChunk
        Output lines (is_final=False), then exactly one chunk with
        is_final=True carrying exit_code (and error on spawn failure).
    """
    spawn = spawn or asyncio.create_subprocess_exec
    label = os.path.basename(argv[0])

    try:
        proc = await spawn(
            *argv,
            cwd=cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        message = e.strerror or str(e)
        logger.error("Failed to spawn %s: %s", " ".join(argv), message)
        yield StreamChunk(
            text=f"{LOG_PREFIX} Failed to run {label}: {message}\n",
            is_final=True,
            exit_code=-1,
            error=message,
        )
        return

    logger.info("Spawned %s (pid=%s) in %s", " ".join(argv), proc.pid, cwd)

    queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
    readers = [
        asyncio.create_task(_pump(proc.stdout, queue)),
        asyncio.create_task(_pump(proc.stderr, queue)),
    ]

    try:
        buffer = ""
        open_pipes = len(readers)
        while open_pipes:
            item = await queue.get()
            if item is _EOF:
                open_pipes -= 1
                continue
            buffer += item
            *lines, buffer = buffer.split("\n")
            for line in lines:
                yield StreamChunk(text=line + "\n")

        exit_code = await proc.wait()
        if buffer:
            yield StreamChunk(text=buffer + "\n")

        logger.info("%s exited with code %s", label, exit_code)
        yield StreamChunk(text="", is_final=True, exit_code=exit_code)

    finally:
        for task in readers:
            task.cancel()
        await asyncio.gather(*readers, return_exceptions=True)
        if proc.returncode is None:
            logger.warning("Killing %s (pid=%s): stream closed before exit", label, proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
