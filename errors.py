from __future__ import annotations
from typing import Any, Optional


class TMError(Exception):
    """Base class for interpreter errors."""


class TMParseError(TMError):
    """Raised when lexing or parsing fails."""


class ConfigurationError(TMError):
    """Raised when machine declarations are contradictory or the halt state is not reserved."""

    def __init__(self, message: str, *, machine: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.machine = machine


class TMRuntimeError(TMError):
    """Raised for driver faults while executing commands."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[Any] = None,
        rewrite_rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rewrite_rule = rewrite_rule
        self.step_index: Optional[int] = None


class TMExtensionError(TMError):
    """Raised when an extension cannot be loaded or registers an invalid hook."""
