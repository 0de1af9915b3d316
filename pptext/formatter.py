"""
Line formatter — everything that happens to a line after the directive
interpreter has decided it should be emitted.

Steps, in order:
  1. variable expansion
  2. comment detection (marker at the start of the left-trimmed line)
  3. comment removal or stripping
  4. blank-line removal
  5. tab expansion
  6. indentation

Terminators are not added here; ``PreprocessReader.read_to_end`` appends
them.
"""

import logging
from typing import Optional

from .options import PreprocessOptions
from .variables import VariableExpander

logger = logging.getLogger(__name__)


def expand_tabs(text: str, tab_stop: int) -> str:
    """Replace TABs with spaces up to the next multiple of ``tab_stop``."""
    if tab_stop <= 0 or "\t" not in text:
        return text

    out = []
    column = 0
    for ch in text:
        if ch == "\t":
            pad = tab_stop - (column % tab_stop)
            out.append(" " * pad)
            column += pad
        else:
            out.append(ch)
            column += 1
    return "".join(out)


class LineFormatter:
    def __init__(self, options: PreprocessOptions, expander: VariableExpander):
        self.options = options
        self.expander = expander

    def is_comment(self, line: str) -> bool:
        trimmed = line.lstrip()
        return any(trimmed.startswith(marker) for marker in self.options.comment_markers)

    def format(self, line: str, line_number: Optional[int] = None) -> Optional[str]:
        """Return the formatted line, or ``None`` when it is dropped."""
        opts = self.options

        if opts.expand_variables:
            line = self.expander.expand(line, line_number)

        if self.is_comment(line):
            if opts.remove_comments:
                logger.debug("Line %s: removed comment", line_number)
                return None
            if opts.strip_comments:
                line = ""

        if opts.remove_blank and not line.strip():
            return None

        line = expand_tabs(line, opts.tab_stop)

        # Blank lines are not indented
        if opts.indent and line.strip():
            line = " " * opts.indent + line

        return line
