"""
pptext — MCP Server

Exposes the text preprocessor to MCP clients via the Model Context Protocol:

  1. preprocess_text       — preprocess inline text
  2. preprocess_file       — preprocess a file on disk
  3. inspect_defines       — run the directives and report the variables they define
  4. list_variable_styles  — show the supported variable reference syntaxes
"""

from mcp.server.fastmcp import FastMCP
import logging
import os
import sys
from typing import Dict, Optional

# Ensure the pptext package is importable when run as a script
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from pptext import (
    LineEnding,
    PreprocessError,
    PreprocessOptions,
    PreprocessReader,
    VariableStyle,
)
from pptext.variables import ReferenceKind

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("pptext Preprocessor")

_LINE_ENDINGS = {
    "lf": LineEnding.LF,
    "crlf": LineEnding.CRLF,
    "platform": LineEnding.PLATFORM,
}


def _parse_variables(variables: str) -> Dict[str, str]:
    """Parse ``NAME=VALUE,NAME2,NAME3=VALUE3`` into a dict (bare names map to "")."""
    result = {}
    for item in variables.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" in item:
            name, value = item.split("=", 1)
            result[name.strip()] = value.strip()
        else:
            result[item] = ""
    return result


def _build_options(
    variable_style: str = "angle",
    line_ending: str = "lf",
    tab_stop: int = 0,
    indent: int = 0,
    strip_comments: bool = True,
    remove_comments: bool = False,
    remove_blank: bool = False,
    process_statements: bool = True,
    comment_markers: str = "//",
    default_variable: Optional[str] = None,
    default_environment_variable: Optional[str] = None,
) -> PreprocessOptions:
    """Translate tool arguments into ``PreprocessOptions``; raises ValueError on bad input."""
    try:
        style = VariableStyle[variable_style.strip().upper()]
    except KeyError:
        names = ", ".join(s.name.lower() for s in VariableStyle)
        raise ValueError(f"Unknown variable style '{variable_style}'. Expected one of: {names}")

    ending = _LINE_ENDINGS.get(line_ending.strip().lower())
    if ending is None:
        raise ValueError(f"Unknown line ending '{line_ending}'. Expected one of: {', '.join(_LINE_ENDINGS)}")

    markers = tuple(m.strip() for m in comment_markers.split(",") if m.strip())

    return PreprocessOptions(
        variable_style=style,
        line_ending=ending,
        tab_stop=tab_stop,
        indent=indent,
        strip_comments=strip_comments,
        remove_comments=remove_comments,
        remove_blank=remove_blank,
        process_statements=process_statements,
        comment_markers=markers,
        default_variable=default_variable,
        default_environment_variable=default_environment_variable,
    )


def _run(reader: PreprocessReader) -> str:
    with reader:
        return reader.read_to_end()


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1 — Preprocess Text
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def preprocess_text(
    text: str,
    variables: str = "",
    variable_style: str = "angle",
    line_ending: str = "lf",
    tab_stop: int = 0,
    indent: int = 0,
    strip_comments: bool = True,
    remove_comments: bool = False,
    remove_blank: bool = False,
    process_statements: bool = True,
    comment_markers: str = "//",
    default_variable: Optional[str] = None,
    default_environment_variable: Optional[str] = None,
) -> str:
    """
    Preprocesses text: expands variables, evaluates #define/#if/#switch
    statements, strips comments and reformats the output.

    Args:
        text:               The text to preprocess.
        variables:          Comma-separated variables (NAME=VALUE or NAME).
                            Example: "env=prod,replicas=3,DEBUG"
        variable_style:     "angle" ($<name>), "curly" (${name}) or "paren" ($(name)).
        line_ending:        "lf", "crlf" or "platform".
        tab_stop:           Expand TABs to this column width (0 leaves TABs alone).
        indent:             Number of spaces to indent every non-blank line.
        strip_comments:     Blank out comment lines.
        remove_comments:    Drop comment lines entirely.
        remove_blank:       Drop blank and whitespace-only lines.
        process_statements: Interpret #define/#if/#switch lines.
        comment_markers:    Comma-separated comment prefixes. Example: "//,#"
        default_variable:   Value for undefined variables (unset = error).
        default_environment_variable: Value for undefined environment variables.
    """
    try:
        options = _build_options(
            variable_style, line_ending, tab_stop, indent, strip_comments,
            remove_comments, remove_blank, process_statements, comment_markers,
            default_variable, default_environment_variable,
        )
        reader = PreprocessReader(text, _parse_variables(variables), options=options)
        return _run(reader)
    except (PreprocessError, ValueError) as e:
        logger.error("preprocess_text failed: %s", e)
        return f"Error: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2 — Preprocess File
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def preprocess_file(
    file_path: str,
    variables: str = "",
    variable_style: str = "angle",
    line_ending: str = "lf",
    tab_stop: int = 0,
    indent: int = 0,
    strip_comments: bool = True,
    remove_comments: bool = False,
    remove_blank: bool = False,
    process_statements: bool = True,
    comment_markers: str = "//",
    default_variable: Optional[str] = None,
    default_environment_variable: Optional[str] = None,
    output_path: str = "",
) -> str:
    """
    Preprocesses a UTF-8 text file.  Takes the same options as preprocess_text.

    Args:
        file_path:   Absolute path of the file to preprocess.
        output_path: Optional path to write the result to.  When empty the
                     preprocessed text is returned instead.
    """
    if not os.path.isfile(file_path):
        return f"Error: File not found at {file_path}"

    try:
        options = _build_options(
            variable_style, line_ending, tab_stop, indent, strip_comments,
            remove_comments, remove_blank, process_statements, comment_markers,
            default_variable, default_environment_variable,
        )
        reader = PreprocessReader.from_file(
            file_path, variables=_parse_variables(variables), options=options
        )
        output = _run(reader)
    except (PreprocessError, ValueError, OSError) as e:
        logger.error("preprocess_file failed for %s: %s", file_path, e)
        return f"Error: {e}"

    if not output_path:
        return output

    try:
        with open(output_path, "w", encoding="utf-8", newline="") as f:
            f.write(output)
    except OSError as e:
        logger.error("Unable to write %s: %s", output_path, e)
        return f"Error: {e}"

    line_count = len(output.splitlines())
    return f"Wrote {line_count} line(s) to {output_path}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 3 — Inspect Defines
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def inspect_defines(text: str, variables: str = "", variable_style: str = "angle") -> str:
    """
    Runs the statements in the text and lists the variables defined once
    the whole text has been processed (explicit variables included).

    Args:
        text:           The text to inspect.
        variables:      Comma-separated variables (NAME=VALUE or NAME).
        variable_style: "angle", "curly" or "paren".
    """
    try:
        options = _build_options(variable_style=variable_style, default_variable="",
                                 default_environment_variable="")
        reader = PreprocessReader(text, _parse_variables(variables), options=options)
        output = _run(reader)
    except (PreprocessError, ValueError) as e:
        logger.error("inspect_defines failed: %s", e)
        return f"Error: {e}"

    defines = reader.variables.as_dict()
    if not defines:
        return "No variables defined."

    result = f"**{len(defines)} variable(s) defined** ({len(output.splitlines())} output line(s)):\n\n"
    result += "| Name | Value |\n"
    result += "|------|-------|\n"
    for name in sorted(defines):
        result += f"| `{name}` | `{defines[name]}` |\n"
    return result


# ═══════════════════════════════════════════════════════════════════════
#  Tool 4 — Variable Styles
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_variable_styles() -> str:
    """Lists the supported variable reference syntaxes."""
    result = "| Style | Variable | Environment | Secret/Profile |\n"
    result += "|-------|----------|-------------|----------------|\n"
    for style in VariableStyle:
        result += (
            f"| {style.name.lower()} "
            f"| `{style.reference('name')}` "
            f"| `{style.reference('NAME', ReferenceKind.ENVIRONMENT)}` "
            f"| `{style.reference('kind:name[:vault]', ReferenceKind.SECRET)}` |\n"
        )
    return result


if __name__ == "__main__":
    # Debug: Print loaded tools to stderr (visible in MCP logs)
    try:
        if hasattr(mcp, "_tool_manager") and hasattr(mcp._tool_manager, "_tools"):
            tools = mcp._tool_manager._tools.keys()
            print(f"DEBUG: pptext server starting with {len(tools)} tools: {list(tools)}", file=sys.stderr)
        else:
            print("DEBUG: pptext server starting (cannot inspect tools)", file=sys.stderr)
    except Exception as e:
        print(f"DEBUG: Error inspecting tools: {e}", file=sys.stderr)

    mcp.run()
