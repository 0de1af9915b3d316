"""
Error taxonomy for the preprocessing engine.

Every failure the engine can surface derives from ``PreprocessError`` and
also from the closest built-in exception, so callers can catch either:

  • DirectiveSyntaxError      — malformed or unbalanced directive (ValueError)
  • UndefinedReferenceError   — variable with no value and no default (LookupError)
  • CyclicReferenceError      — variable that expands to itself (ValueError)
  • ProfileResolutionError    — secret/profile lookup failed (LookupError)
  • NotSupportedError         — character-level access (NotImplementedError)
  • InvalidArgumentError      — bad variable name, comment marker, option
  • ConfigurationLockedError  — options changed after reading started
"""

from typing import Optional


class PreprocessError(Exception):
    """Base class for all preprocessing failures."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)


class DirectiveSyntaxError(PreprocessError, ValueError):
    """A directive line is malformed or the block structure is broken."""


class UndefinedReferenceError(PreprocessError, LookupError):
    """A variable or environment variable reference has no value."""


class CyclicReferenceError(PreprocessError, ValueError):
    """A variable's expansion depends on itself."""


class ProfileResolutionError(PreprocessError, LookupError):
    """A secret/profile reference could not be resolved."""


class NotSupportedError(PreprocessError, NotImplementedError):
    """The engine only supports line-granular reads."""


class InvalidArgumentError(PreprocessError, ValueError):
    """An argument failed validation."""


class ConfigurationLockedError(PreprocessError, RuntimeError):
    """Options cannot change once the first line has been read."""
