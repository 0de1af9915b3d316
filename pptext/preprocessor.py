"""
PreprocessReader — the line-oriented preprocessing engine.

Reads text one line at a time, interprets statement lines, expands
variables and reformats the surviving lines:

    #define NAME [= VALUE]      define a variable (value stored unexpanded)
    #if A == B / #if A != B     string comparison after variable expansion
    #if defined(NAME)           symbol table membership
    #if undefined(NAME)
    #else / #endif
    #switch VALUE               select the first matching #case ...
    #case VALUE                 ... or #default
    #default
    #endswitch

Variables are referenced as ``$<name>``, environment variables as
``$<<NAME>>`` and secrets/profile values as ``$<<<kind:name[:vault]>>>``
(or the curly/paren equivalents, see ``VariableStyle``).

Only line-granular access is supported; the character-level read methods
raise ``NotSupportedError``.  Instances are not thread-safe.
"""

import inspect
import logging
from typing import AsyncIterator, Iterator, Mapping, Optional

from .directives import DirectiveInterpreter
from .errors import ConfigurationLockedError, NotSupportedError
from .formatter import LineFormatter
from .line_source import AsyncLineSource, LineSource
from .options import PreprocessOptions
from .profiles import ProfileResolver
from .variables import SymbolTable, VariableExpander

logger = logging.getLogger(__name__)


def _is_async_source(source) -> bool:
    return isinstance(source, AsyncLineSource) or (
        not isinstance(source, (str, bytes, bytearray, LineSource))
        and (hasattr(source, "__aiter__") or _has_async_readline(source))
    )


def _has_async_readline(source) -> bool:
    readline = getattr(source, "readline", None)
    return readline is not None and inspect.iscoroutinefunction(readline)


class PreprocessReader:
    """
    Preprocesses text from a line source.

    Args:
        source:           str, UTF-8 bytes, text stream, iterable of lines,
                          or an async reader / async iterable.
        variables:        Initial variables (same as calling ``set``).
        options:          A ``PreprocessOptions``; keyword overrides are
                          applied on top of it.
        profile_resolver: Resolves ``$<<<kind:name[:vault]>>>`` references.
    """

    def __init__(self, source, variables: Optional[Mapping[str, object]] = None,
                 options: Optional[PreprocessOptions] = None,
                 profile_resolver: Optional[ProfileResolver] = None,
                 **overrides):
        options = options or PreprocessOptions()
        if overrides:
            options = options.with_changes(**overrides)

        if _is_async_source(source):
            self._source: Optional[LineSource] = None
            self._async_source = source if isinstance(source, AsyncLineSource) else AsyncLineSource(source)
        else:
            self._source = source if isinstance(source, LineSource) else LineSource(source)
            self._async_source = AsyncLineSource(self._source)

        self._symbols = SymbolTable(variables)
        self._profile_resolver = profile_resolver
        self._line_number = 0
        self._started = False
        self._eof = False
        self._closed = False
        self._apply(options)

    @classmethod
    def from_file(cls, path: str, encoding: str = "utf-8", **kwargs) -> "PreprocessReader":
        """Open ``path`` and preprocess it; the reader owns the file."""
        f = open(path, "r", encoding=encoding, newline="")
        try:
            return cls(f, **kwargs)
        except Exception:
            f.close()
            raise

    # ────────────────────────────────────────────────────────────────
    #  Configuration
    # ────────────────────────────────────────────────────────────────

    def _apply(self, options: PreprocessOptions) -> None:
        self._options = options
        self._expander = VariableExpander(
            self._symbols,
            style=options.variable_style,
            default_variable=options.default_variable,
            default_environment_variable=options.default_environment_variable,
            profile_resolver=self._profile_resolver,
        )
        self._interpreter = DirectiveInterpreter(self._symbols, self._expander,
                                                 options.statement_marker)
        self._formatter = LineFormatter(options, self._expander)

    def _check_unlocked(self) -> None:
        if self._started:
            raise ConfigurationLockedError("Options cannot be changed after reading has started.")

    @property
    def options(self) -> PreprocessOptions:
        return self._options

    def configure(self, **changes) -> "PreprocessReader":
        self._check_unlocked()
        self._apply(self._options.with_changes(**changes))
        return self

    def add_comment_marker(self, marker: str) -> None:
        self._check_unlocked()
        self._apply(self._options.add_comment_marker(marker))

    def clear_comment_markers(self) -> None:
        self._check_unlocked()
        self._apply(self._options.clear_comment_markers())

    @property
    def variables(self) -> SymbolTable:
        return self._symbols

    @property
    def line_number(self) -> int:
        """Number of source lines consumed so far."""
        return self._line_number

    def set(self, name: str, value: object = "") -> None:
        """Set a variable; allowed at any time."""
        self._symbols.set(name, value)

    # ────────────────────────────────────────────────────────────────
    #  Line processing
    # ────────────────────────────────────────────────────────────────

    def _process(self, raw: str) -> Optional[str]:
        """Run one source line through the pipeline; None when nothing is emitted."""
        self._line_number += 1
        n = self._line_number

        if self._options.process_statements and self._interpreter.process(raw, n):
            return None
        if not self._interpreter.active:
            return None
        return self._formatter.format(raw, n)

    def _end(self) -> None:
        if not self._eof:
            self._eof = True
            logger.debug("End of input after %d line(s)", self._line_number)
            self._interpreter.finish()

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed PreprocessReader.")
        self._started = True

    def read_line(self) -> Optional[str]:
        """Return the next output line without its terminator, or None at the end."""
        self._check_open()
        if self._source is None:
            raise NotSupportedError("Synchronous reads need a synchronous line source; use read_line_async().")

        while not self._eof:
            raw = self._source.readline()
            if raw is None:
                self._end()
                break
            line = self._process(raw)
            if line is not None:
                return line
        return None

    async def read_line_async(self) -> Optional[str]:
        self._check_open()

        while not self._eof:
            raw = await self._async_source.readline()
            if raw is None:
                self._end()
                break
            line = self._process(raw)
            if line is not None:
                return line
        return None

    def lines(self) -> Iterator[str]:
        """Lazily yield the remaining output lines (without terminators)."""
        while True:
            line = self.read_line()
            if line is None:
                return
            yield line

    async def alines(self) -> AsyncIterator[str]:
        while True:
            line = await self.read_line_async()
            if line is None:
                return
            yield line

    def __iter__(self) -> Iterator[str]:
        return self.lines()

    def __aiter__(self) -> AsyncIterator[str]:
        return self.alines()

    def read_to_end(self) -> str:
        """Return every remaining line, each followed by the configured terminator."""
        terminator = self._options.line_ending.terminator
        return "".join(line + terminator for line in self.lines())

    async def read_to_end_async(self) -> str:
        terminator = self._options.line_ending.terminator
        parts = []
        async for line in self.alines():
            parts.append(line + terminator)
        return "".join(parts)

    # ────────────────────────────────────────────────────────────────
    #  Character-level access is not supported
    # ────────────────────────────────────────────────────────────────

    def read(self, size: int = -1) -> str:
        raise NotSupportedError("PreprocessReader only supports line reads.")

    def peek(self) -> str:
        raise NotSupportedError("PreprocessReader only supports line reads.")

    def read_block(self, buffer, index: int = 0, count: int = -1) -> int:
        raise NotSupportedError("PreprocessReader only supports line reads.")

    async def read_async(self, size: int = -1) -> str:
        raise NotSupportedError("PreprocessReader only supports line reads.")

    async def read_block_async(self, buffer, index: int = 0, count: int = -1) -> int:
        raise NotSupportedError("PreprocessReader only supports line reads.")

    # ────────────────────────────────────────────────────────────────
    #  Lifetime
    # ────────────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._source is not None:
            self._source.close()
        else:
            self._async_source.close()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._async_source.aclose()

    def __enter__(self) -> "PreprocessReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aenter__(self) -> "PreprocessReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def preprocess(text, variables: Optional[Mapping[str, object]] = None,
               profile_resolver: Optional[ProfileResolver] = None, **options) -> str:
    """Preprocess ``text`` in one call and return the full output."""
    with PreprocessReader(text, variables, profile_resolver=profile_resolver, **options) as reader:
        return reader.read_to_end()
