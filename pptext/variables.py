"""
Variables — symbol table, reference styles and the expander.

A reference is ``$`` followed by one, two or three opening delimiters, a
body and the same number of closing delimiters:

  • PLAIN        $<name>                  symbol table lookup (recursive)
  • ENVIRONMENT  $<<NAME>>                process environment (literal)
  • SECRET       $<<<kind:name[:vault]>>> delegated to a ProfileResolver

The three bracket styles (angle, curly, paren) are the same matcher built
from a different delimiter pair.
"""

import os
import re
import logging
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple

from .errors import (
    CyclicReferenceError,
    InvalidArgumentError,
    ProfileResolutionError,
    UndefinedReferenceError,
)
from .profiles import PROFILE_KINDS, NullProfileResolver, ProfileNotFoundError, ProfileResolver

logger = logging.getLogger(__name__)

# Characters allowed in variable and environment variable names
NAME_CHARS = r"A-Za-z0-9_.\-"
VARIABLE_NAME_RE = re.compile(rf"^[{NAME_CHARS}]+$")


def is_valid_name(name: str) -> bool:
    return bool(name) and VARIABLE_NAME_RE.match(name) is not None


class ReferenceKind(Enum):
    PLAIN = 1
    ENVIRONMENT = 2
    SECRET = 3


class VariableStyle(Enum):
    """Bracket style used for variable references."""

    ANGLE = ("<", ">")
    CURLY = ("{", "}")
    PAREN = ("(", ")")

    def __init__(self, opener: str, closer: str):
        self.opener = opener
        self.closer = closer

    @property
    def pattern(self) -> "re.Pattern":
        """Compiled matcher; alternatives are ordered triple, double, single."""
        cached = _PATTERNS.get(self.name)
        if cached is None:
            cached = _PATTERNS[self.name] = _compile_style(self.opener, self.closer)
        return cached

    def reference(self, name: str, kind: ReferenceKind = ReferenceKind.PLAIN) -> str:
        """Render a reference to ``name`` in this style (e.g. ``$<name>``)."""
        depth = kind.value
        return "$" + self.opener * depth + name + self.closer * depth


_PATTERNS: Dict[str, "re.Pattern"] = {}


def _compile_style(opener: str, closer: str) -> "re.Pattern":
    o = re.escape(opener)
    c = re.escape(closer)
    return re.compile(
        rf"\${o}{o}{o}(?P<secret>[^{o}{c}\s]+?){c}{c}{c}"
        rf"|\${o}{o}(?P<env>[{NAME_CHARS}]+){c}{c}"
        rf"|\${o}(?P<name>[{NAME_CHARS}]+){c}"
    )


# ═══════════════════════════════════════════════════════════════════════
#  Symbol table
# ═══════════════════════════════════════════════════════════════════════

class SymbolTable:
    """Case-sensitive mapping of variable names to unexpanded values."""

    def __init__(self, variables: Optional[Mapping[str, object]] = None):
        self._values: Dict[str, str] = {}
        if variables:
            for name, value in variables.items():
                self.set(name, value)

    def set(self, name: str, value: object = "") -> None:
        if not isinstance(name, str) or not is_valid_name(name):
            raise InvalidArgumentError(f"Invalid variable name [{name}].")

        if value is None:
            value = ""
        elif isinstance(value, bool):
            value = "true" if value else "false"
        elif not isinstance(value, str):
            value = str(value)

        self._values[name] = value

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(name, default)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __repr__(self) -> str:
        return f"SymbolTable({self._values!r})"


# ═══════════════════════════════════════════════════════════════════════
#  Expander
# ═══════════════════════════════════════════════════════════════════════

class VariableExpander:
    """
    Rewrites every variable reference in a line of text.

    Plain variable values are expanded recursively before substitution;
    the names currently being expanded travel down the recursion as a
    tuple so a self-referencing chain is reported instead of looping.
    Substituted text is never re-scanned.
    """

    def __init__(
        self,
        symbols: SymbolTable,
        style: VariableStyle = VariableStyle.ANGLE,
        default_variable: Optional[str] = None,
        default_environment_variable: Optional[str] = None,
        profile_resolver: Optional[ProfileResolver] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.symbols = symbols
        self.style = style
        self.default_variable = default_variable
        self.default_environment_variable = default_environment_variable
        self.profile_resolver = profile_resolver or NullProfileResolver()
        # None means look at os.environ at expansion time
        self._environ = environ

    def expand(self, text: str, line_number: Optional[int] = None) -> str:
        return self._expand(text, (), line_number)

    def _expand(self, text: str, expanding: Tuple[str, ...], line_number: Optional[int]) -> str:
        if "$" not in text:
            return text

        def substitute(match: "re.Match") -> str:
            if match.group("secret") is not None:
                return self._resolve_secret(match, line_number)
            if match.group("env") is not None:
                return self._resolve_environment(match, line_number)
            return self._resolve_plain(match, expanding, line_number)

        return self.style.pattern.sub(substitute, text)

    def _resolve_plain(self, match: "re.Match", expanding: Tuple[str, ...],
                       line_number: Optional[int]) -> str:
        name = match.group("name")

        if name in expanding:
            chain = " -> ".join(expanding + (name,))
            raise CyclicReferenceError(
                f"Recursively defined variable [{match.group(0)}]: {chain}", line_number
            )

        value = self.symbols.get(name)
        if value is None:
            if self.default_variable is None:
                raise UndefinedReferenceError(
                    f"Undefined variable reference [{match.group(0)}].", line_number
                )
            return self.default_variable

        return self._expand(value, expanding + (name,), line_number)

    def _resolve_environment(self, match: "re.Match", line_number: Optional[int]) -> str:
        name = match.group("env")
        environ = os.environ if self._environ is None else self._environ
        value = environ.get(name)
        if value is None:
            if self.default_environment_variable is None:
                raise UndefinedReferenceError(
                    f"Undefined environment variable reference [{match.group(0)}].", line_number
                )
            return self.default_environment_variable
        return value

    def _resolve_secret(self, match: "re.Match", line_number: Optional[int]) -> str:
        body = match.group("secret")
        parts = body.split(":")
        if len(parts) not in (2, 3) or not all(parts):
            raise ProfileResolutionError(
                f"Invalid secret/profile reference [{match.group(0)}]: expected kind:name[:vault].",
                line_number,
            )

        kind, name = parts[0], parts[1]
        vault = parts[2] if len(parts) == 3 else None
        if kind not in PROFILE_KINDS:
            raise ProfileResolutionError(
                f"Unknown reference kind [{kind}] in [{match.group(0)}]; "
                f"expected one of: {', '.join(PROFILE_KINDS)}.",
                line_number,
            )

        logger.debug("Resolving %s reference [%s] (vault=%s)", kind, name, vault)
        try:
            return self.profile_resolver.resolve(kind, name, vault)
        except ProfileNotFoundError as e:
            raise ProfileResolutionError(
                f"Unable to resolve [{match.group(0)}]: {e}", line_number
            ) from e
