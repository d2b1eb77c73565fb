from __future__ import annotations


class InvalidSelectionError(ValueError):
    """Raised when a dimension value, date or range cannot form a valid selection."""
