"""Exception types for CellType-RefMatch.

Both concrete errors subclass ``ValueError`` so callers that already guard
annotation calls with ``except ValueError`` keep working.
"""


class RefMatchError(Exception):
    """Base class for all CellType-RefMatch errors."""

    pass


class ConfigError(RefMatchError, ValueError):
    """Raised when a parameter or marker specification is invalid."""

    pass


class DataError(RefMatchError, ValueError):
    """Raised when reference, label or query data cannot be used."""

    pass
