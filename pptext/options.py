"""
Preprocessor configuration.

``PreprocessOptions`` is an immutable value fixed before the first line is
read.  ``OptionsBuilder`` is the fluent way to assemble one:

    options = (OptionsBuilder()
               .with_tab_stop(4)
               .with_line_ending(LineEnding.LF)
               .add_comment_marker("#")
               .build())
"""

import os
import string
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from .errors import InvalidArgumentError
from .variables import VariableStyle


class LineEnding(Enum):
    CRLF = "\r\n"
    LF = "\n"
    PLATFORM = "platform"

    @property
    def terminator(self) -> str:
        return os.linesep if self is LineEnding.PLATFORM else self.value


DEFAULT_COMMENT_MARKERS = ("//",)


def validate_comment_marker(marker: str) -> str:
    """A comment marker is a non-empty run of punctuation characters."""
    if not isinstance(marker, str) or not marker:
        raise InvalidArgumentError("Comment marker cannot be empty.")
    if any(ch.isspace() for ch in marker):
        raise InvalidArgumentError(f"Comment marker [{marker}] cannot contain whitespace.")
    if any(ch not in string.punctuation for ch in marker):
        raise InvalidArgumentError(
            f"Comment marker [{marker}] may only contain punctuation characters."
        )
    return marker


@dataclass(frozen=True)
class PreprocessOptions:
    statement_marker: str = "#"
    variable_style: VariableStyle = VariableStyle.ANGLE
    expand_variables: bool = True
    process_statements: bool = True
    comment_markers: Tuple[str, ...] = field(default=DEFAULT_COMMENT_MARKERS)
    strip_comments: bool = True
    remove_comments: bool = False
    remove_blank: bool = False
    tab_stop: int = 0
    indent: int = 0
    line_ending: LineEnding = LineEnding.PLATFORM
    default_variable: Optional[str] = None
    default_environment_variable: Optional[str] = None

    def __post_init__(self):
        marker = self.statement_marker
        if not isinstance(marker, str) or len(marker) != 1 or marker.isspace():
            raise InvalidArgumentError(
                f"Statement marker must be a single non-whitespace character, not [{marker!r}]."
            )
        if not isinstance(self.variable_style, VariableStyle):
            raise InvalidArgumentError(f"Unknown variable style: {self.variable_style!r}")
        if not isinstance(self.line_ending, LineEnding):
            raise InvalidArgumentError(f"Unknown line ending: {self.line_ending!r}")
        if self.tab_stop < 0:
            raise InvalidArgumentError(f"Tab stop cannot be negative: {self.tab_stop}")
        if self.indent < 0:
            raise InvalidArgumentError(f"Indent cannot be negative: {self.indent}")

        # Accept any iterable of markers but store a de-duplicated tuple
        markers = []
        for marker in self.comment_markers:
            validate_comment_marker(marker)
            if marker not in markers:
                markers.append(marker)
        object.__setattr__(self, "comment_markers", tuple(markers))

    def with_changes(self, **changes) -> "PreprocessOptions":
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise InvalidArgumentError(f"Unknown preprocessor option(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def add_comment_marker(self, marker: str) -> "PreprocessOptions":
        validate_comment_marker(marker)
        return replace(self, comment_markers=self.comment_markers + (marker,))

    def clear_comment_markers(self) -> "PreprocessOptions":
        return replace(self, comment_markers=())


class OptionsBuilder:
    """Fluent builder for ``PreprocessOptions``."""

    def __init__(self, base: Optional[PreprocessOptions] = None):
        self._options = base or PreprocessOptions()

    def _set(self, **changes) -> "OptionsBuilder":
        self._options = self._options.with_changes(**changes)
        return self

    def with_statement_marker(self, marker: str) -> "OptionsBuilder":
        return self._set(statement_marker=marker)

    def with_variable_style(self, style: VariableStyle) -> "OptionsBuilder":
        return self._set(variable_style=style)

    def with_expand_variables(self, enabled: bool = True) -> "OptionsBuilder":
        return self._set(expand_variables=enabled)

    def with_process_statements(self, enabled: bool = True) -> "OptionsBuilder":
        return self._set(process_statements=enabled)

    def with_strip_comments(self, enabled: bool = True) -> "OptionsBuilder":
        return self._set(strip_comments=enabled)

    def with_remove_comments(self, enabled: bool = True) -> "OptionsBuilder":
        return self._set(remove_comments=enabled)

    def with_remove_blank(self, enabled: bool = True) -> "OptionsBuilder":
        return self._set(remove_blank=enabled)

    def with_tab_stop(self, tab_stop: int) -> "OptionsBuilder":
        return self._set(tab_stop=tab_stop)

    def with_indent(self, indent: int) -> "OptionsBuilder":
        return self._set(indent=indent)

    def with_line_ending(self, line_ending: LineEnding) -> "OptionsBuilder":
        return self._set(line_ending=line_ending)

    def with_default_variable(self, value: Optional[str]) -> "OptionsBuilder":
        return self._set(default_variable=value)

    def with_default_environment_variable(self, value: Optional[str]) -> "OptionsBuilder":
        return self._set(default_environment_variable=value)

    def add_comment_marker(self, marker: str) -> "OptionsBuilder":
        self._options = self._options.add_comment_marker(marker)
        return self

    def clear_comment_markers(self) -> "OptionsBuilder":
        self._options = self._options.clear_comment_markers()
        return self

    def build(self) -> PreprocessOptions:
        return self._options
