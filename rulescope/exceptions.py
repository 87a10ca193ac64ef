"""Custom exceptions for rulescope."""

from typing import Any, List, Optional


class RulescopeException(Exception):
    """Base exception for all rulescope errors."""
    pass


class ConfigValidationError(RulescopeException):
    """Configuration validation failed."""

    def __init__(self, message: str, file: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message
        self.file = file
        self.errors = errors or []
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        """Format error message with location info."""
        parts = ["Configuration validation error"]
        if self.file:
            parts.append(f"\n  File: {self.file}")
        parts.append(f"\n  Error: {self.message}")
        for error in self.errors:
            parts.append(f"\n    • {error}")
        return "".join(parts)


class TopologyShapeError(RulescopeException):
    """Topology payload does not have the {sources, edges} shape."""

    def __init__(self, field: str, expected: str, actual: Any = None):
        self.field = field
        self.expected = expected
        self.actual_type = type(actual).__name__
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        """Format shape error."""
        return (
            f"✗ Invalid topology payload: '{self.field}'"
            f"\n  Expected: {self.expected}"
            f"\n  Got: {self.actual_type}"
        )


class MetricsShapeError(RulescopeException):
    """Metrics payload is not a flat mapping."""

    def __init__(self, actual: Any = None):
        self.actual_type = type(actual).__name__
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        """Format shape error."""
        return (
            "✗ Invalid metrics payload"
            "\n  Expected: mapping of metric key to number or string"
            f"\n  Got: {self.actual_type}"
        )
