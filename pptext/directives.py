"""
Directive interpreter.

Recognises statement lines (``#define``, ``#if``/``#else``/``#endif``,
``#switch``/``#case``/``#default``/``#endswitch``), keeps the symbol table
and the conditional stack up to date, and answers whether ordinary text is
currently emitted.

A line is emitted only while every frame on the stack has its own branch
selected; a frame opened inside an inactive region can never turn output
back on.
"""

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

from .errors import DirectiveSyntaxError
from .variables import NAME_CHARS, SymbolTable, VariableExpander

logger = logging.getLogger(__name__)

KEYWORDS = ("define", "if", "else", "endif", "switch", "case", "default", "endswitch")

_KEYWORD_RE = re.compile(r"(?P<keyword>" + "|".join(KEYWORDS) + r")(?=\s|$)(?P<args>.*)$", re.DOTALL)

_DEFINE_RE = re.compile(rf"^(?P<name>[{NAME_CHARS}]+)\s*(?:=\s*(?P<value>.*))?$")
_COMPARE_RE = re.compile(r"^(?P<lhs>.*?)(?P<op>==|!=)(?P<rhs>.*)$")
_DEFINED_RE = re.compile(rf"^(?P<op>defined|undefined)\s*\(\s*(?P<name>[{NAME_CHARS}]+)\s*\)$")


class FrameKind(Enum):
    IF = "if"
    SWITCH = "switch"


@dataclass
class Frame:
    """One open ``#if`` or ``#switch`` block."""
    kind: FrameKind
    line_number: int
    parent_active: bool
    selected: bool = False
    taken: bool = False           # IF: a branch ran / SWITCH: a case or default matched
    else_seen: bool = False
    switch_value: Optional[str] = None
    case_values: Set[str] = field(default_factory=set)
    default_seen: bool = False

    @property
    def active(self) -> bool:
        return self.parent_active and self.selected


class DirectiveInterpreter:
    def __init__(self, symbols: SymbolTable, expander: VariableExpander,
                 statement_marker: str = "#"):
        self.symbols = symbols
        self.expander = expander
        self.statement_marker = statement_marker
        self.stack: List[Frame] = []

    # ────────────────────────────────────────────────────────────────
    #  State
    # ────────────────────────────────────────────────────────────────

    @property
    def active(self) -> bool:
        return not self.stack or self.stack[-1].active

    @property
    def depth(self) -> int:
        return len(self.stack)

    def _top(self, kind: FrameKind) -> Optional[Frame]:
        if self.stack and self.stack[-1].kind is kind:
            return self.stack[-1]
        return None

    # ────────────────────────────────────────────────────────────────
    #  Recognition
    # ────────────────────────────────────────────────────────────────

    def match(self, line: str) -> Optional["re.Match"]:
        """Return the keyword match when ``line`` is a directive, else None."""
        trimmed = line.lstrip()
        if not trimmed.startswith(self.statement_marker):
            return None
        return _KEYWORD_RE.match(trimmed, len(self.statement_marker))

    def process(self, line: str, line_number: int) -> bool:
        """
        Interpret ``line`` if it is a directive.

        Returns True when the line was consumed, False when it is ordinary
        text.  Raises DirectiveSyntaxError for malformed directives.
        """
        m = self.match(line)
        if m is None:
            return False

        keyword = m.group("keyword")
        args = m.group("args").strip()
        getattr(self, "_" + keyword)(args, line, line_number)
        return True

    def finish(self) -> None:
        """Called at end of input; every block must have been closed."""
        if self.stack:
            frame = self.stack[-1]
            raise DirectiveSyntaxError(
                f"Unclosed [#{frame.kind.value}] statement opened on line {frame.line_number}."
            )

    # ────────────────────────────────────────────────────────────────
    #  Statements
    # ────────────────────────────────────────────────────────────────

    def _expand(self, text: str, line_number: int) -> str:
        # Operands inside an inactive region may reference variables only
        # the other branch defines, so they are left unexpanded.
        if not self.active:
            return text
        return self.expander.expand(text, line_number)

    def _push(self, frame: Frame) -> None:
        self.stack.append(frame)
        logger.debug("Line %d: push %s (selected=%s, depth=%d)",
                     frame.line_number, frame.kind.value, frame.selected, len(self.stack))

    def _pop(self, kind: FrameKind, line: str, line_number: int) -> Frame:
        frame = self._top(kind)
        if frame is None:
            opener = "if" if kind is FrameKind.IF else "switch"
            closer = "endif" if kind is FrameKind.IF else "endswitch"
            raise DirectiveSyntaxError(
                f"[#{closer}] statement has no matching [#{opener}]: {line}", line_number
            )
        self.stack.pop()
        logger.debug("Line %d: pop %s (depth=%d)", line_number, kind.value, len(self.stack))
        return frame

    @staticmethod
    def _no_args(keyword: str, args: str, line: str, line_number: int) -> None:
        if args:
            raise DirectiveSyntaxError(f"Unexpected text after [#{keyword}]: {line}", line_number)

    def _define(self, args: str, line: str, line_number: int) -> None:
        # The value is stored unexpanded so it can reference variables
        # defined later.
        m = _DEFINE_RE.match(args)
        if m is None:
            raise DirectiveSyntaxError(f"Invalid [#define] statement: {line}", line_number)

        if self.active:
            value = (m.group("value") or "").strip()
            self.symbols.set(m.group("name"), value)
            logger.debug("Line %d: define %s=%r", line_number, m.group("name"), value)

    def _if(self, args: str, line: str, line_number: int) -> None:
        if not args:
            raise DirectiveSyntaxError(f"Invalid [#if] statement: {line}", line_number)

        parent_active = self.active

        m = _DEFINED_RE.match(args)
        if m is not None:
            defined = m.group("name") in self.symbols
            condition = defined if m.group("op") == "defined" else not defined
        elif args.startswith(("defined", "undefined")) and "==" not in args and "!=" not in args:
            raise DirectiveSyntaxError(f"Invalid [#if] statement: {line}", line_number)
        else:
            m = _COMPARE_RE.match(args)
            if m is None or not m.group("lhs").strip() or not m.group("rhs").strip():
                raise DirectiveSyntaxError(f"Invalid [#if] statement: {line}", line_number)
            # Operands are expanded separately so a value containing an
            # operator cannot change the comparison.
            lhs = self._expand(m.group("lhs"), line_number).strip()
            rhs = self._expand(m.group("rhs"), line_number).strip()
            condition = (lhs == rhs) if m.group("op") == "==" else (lhs != rhs)

        self._push(Frame(FrameKind.IF, line_number, parent_active,
                         selected=condition, taken=condition))

    def _else(self, args: str, line: str, line_number: int) -> None:
        self._no_args("else", args, line, line_number)
        frame = self._top(FrameKind.IF)
        if frame is None:
            raise DirectiveSyntaxError(f"[#else] statement is not within an [#if]: {line}", line_number)
        if frame.else_seen:
            raise DirectiveSyntaxError(f"Duplicate [#else] statement in [#if] block: {line}", line_number)

        frame.else_seen = True
        frame.selected = not frame.taken
        frame.taken = True

    def _endif(self, args: str, line: str, line_number: int) -> None:
        self._no_args("endif", args, line, line_number)
        self._pop(FrameKind.IF, line, line_number)

    def _switch(self, args: str, line: str, line_number: int) -> None:
        if not args:
            raise DirectiveSyntaxError(f"Invalid [#switch] statement: {line}", line_number)

        parent_active = self.active
        value = self._expand(args, line_number).strip()
        self._push(Frame(FrameKind.SWITCH, line_number, parent_active, switch_value=value))

    def _case(self, args: str, line: str, line_number: int) -> None:
        frame = self._top(FrameKind.SWITCH)
        if frame is None:
            raise DirectiveSyntaxError(
                f"[#case] statement is not within a [#switch] block: {line}", line_number
            )
        if frame.default_seen:
            raise DirectiveSyntaxError(
                f"[#case] statement cannot appear after [#default] in a [#switch] block: {line}",
                line_number,
            )
        if not args:
            raise DirectiveSyntaxError(f"Invalid [#case] statement: {line}", line_number)

        value = args
        if frame.parent_active:
            value = self.expander.expand(args, line_number).strip()
        if value in frame.case_values:
            raise DirectiveSyntaxError(
                f"[#case] statement cannot be repeated in a [#switch] block: {line}", line_number
            )
        frame.case_values.add(value)

        if not frame.taken and value == frame.switch_value:
            frame.selected = True
            frame.taken = True
        else:
            frame.selected = False

    def _default(self, args: str, line: str, line_number: int) -> None:
        self._no_args("default", args, line, line_number)
        frame = self._top(FrameKind.SWITCH)
        if frame is None:
            raise DirectiveSyntaxError(
                f"[#default] statement is not within a [#switch] block: {line}", line_number
            )
        if frame.default_seen:
            raise DirectiveSyntaxError(
                f"Duplicate [#default] statement in [#switch] block: {line}", line_number
            )

        frame.default_seen = True
        frame.selected = not frame.taken
        frame.taken = True

    def _endswitch(self, args: str, line: str, line_number: int) -> None:
        self._no_args("endswitch", args, line, line_number)
        self._pop(FrameKind.SWITCH, line, line_number)
