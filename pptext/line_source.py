"""
Line source adapters.

Turn strings, bytes, text streams, iterables and async readers into a
uniform "give me the next line or None" interface.  Lines come back
without their terminator whatever the source used (CRLF, LF or CR).
"""

import io
import inspect
import logging
from typing import AsyncIterable, Iterable, Iterator, Optional, Union

logger = logging.getLogger(__name__)


def strip_terminator(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n") or line.endswith("\r"):
        return line[:-1]
    return line


class LineSource:
    """Synchronous line source.  Owns (and closes) the wrapped stream."""

    def __init__(self, source: Union[str, bytes, io.IOBase, Iterable[str]]):
        if isinstance(source, (bytes, bytearray)):
            source = bytes(source).decode("utf-8")
        if isinstance(source, str):
            # newline="" keeps CR/CRLF/LF splitting universal without translation
            source = io.StringIO(source, newline="")

        self._stream = source
        self._iter: Optional[Iterator[str]] = None
        self.closed = False

        if not hasattr(source, "readline"):
            if not isinstance(source, Iterable):
                raise TypeError(f"Unsupported line source: {type(source).__name__}")
            self._iter = iter(source)

    def readline(self) -> Optional[str]:
        if self.closed:
            raise ValueError("I/O operation on closed line source.")

        if self._iter is not None:
            raw = next(self._iter, None)
            return None if raw is None else strip_terminator(raw)

        raw = self._stream.readline()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if not raw:
            return None
        return strip_terminator(raw)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close = getattr(self._stream, "close", None)
        if callable(close):
            close()


class AsyncLineSource:
    """
    Asynchronous line source.

    Accepts an object with an awaitable ``readline()`` (e.g.
    ``asyncio.StreamReader``), an async iterable of lines, or anything a
    ``LineSource`` accepts.
    """

    def __init__(self, source):
        self._sync: Optional[LineSource] = None
        self._reader = None
        self._aiter = None
        self._stream = source
        self.closed = False

        readline = getattr(source, "readline", None)
        if readline is not None and inspect.iscoroutinefunction(readline):
            self._reader = source
        elif isinstance(source, AsyncIterable):
            self._aiter = source.__aiter__()
        else:
            self._sync = source if isinstance(source, LineSource) else LineSource(source)

    async def readline(self) -> Optional[str]:
        if self.closed:
            raise ValueError("I/O operation on closed line source.")

        if self._sync is not None:
            return self._sync.readline()

        if self._aiter is not None:
            # Iterables signal the end with StopAsyncIteration; "" is a blank line
            try:
                raw = await self._aiter.__anext__()
            except StopAsyncIteration:
                return None
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return strip_terminator(raw)

        raw = await self._reader.readline()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if not raw:
            return None
        return strip_terminator(raw)

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._sync is not None:
            self._sync.close()
            return
        for name in ("aclose", "close"):
            close = getattr(self._stream, name, None)
            if callable(close):
                result = close()
                if inspect.isawaitable(result):
                    await result
                return

    def close(self) -> None:
        """Close without awaiting; async close hooks are skipped."""
        if self.closed:
            return
        self.closed = True
        if self._sync is not None:
            self._sync.close()
            return
        close = getattr(self._stream, "close", None)
        if callable(close) and not inspect.iscoroutinefunction(close):
            close()
