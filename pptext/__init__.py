"""
pptext — a line-oriented text preprocessor.

Expands variables, evaluates ``#define``/``#if``/``#switch`` statements,
strips comments and reformats lines, without knowing anything about the
format of the text being processed.
"""

from .errors import (
    ConfigurationLockedError,
    CyclicReferenceError,
    DirectiveSyntaxError,
    InvalidArgumentError,
    NotSupportedError,
    PreprocessError,
    ProfileResolutionError,
    UndefinedReferenceError,
)
from .line_source import AsyncLineSource, LineSource
from .options import LineEnding, OptionsBuilder, PreprocessOptions
from .preprocessor import PreprocessReader, preprocess
from .profiles import DictProfileResolver, NullProfileResolver, ProfileNotFoundError, ProfileResolver
from .variables import ReferenceKind, SymbolTable, VariableExpander, VariableStyle

__version__ = "0.1.0"

__all__ = [
    "AsyncLineSource",
    "ConfigurationLockedError",
    "CyclicReferenceError",
    "DictProfileResolver",
    "DirectiveSyntaxError",
    "InvalidArgumentError",
    "LineEnding",
    "LineSource",
    "NotSupportedError",
    "NullProfileResolver",
    "OptionsBuilder",
    "PreprocessError",
    "PreprocessOptions",
    "PreprocessReader",
    "ProfileNotFoundError",
    "ProfileResolutionError",
    "ProfileResolver",
    "ReferenceKind",
    "SymbolTable",
    "UndefinedReferenceError",
    "VariableExpander",
    "VariableStyle",
    "preprocess",
]
