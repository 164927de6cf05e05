"""
Error taxonomy shared by every pipeline stage.

Configuration and geometry errors are raised at the boundary of a public
operation, before anything is allocated. Invariant violations point at a
caller or construction bug and are never tolerated silently.
"""


class CheeseError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(CheeseError, ValueError):
    """Invalid caller input: non-positive spacing, zero slice count, bad box."""


class DegenerateGeometryError(CheeseError, ValueError):
    """Geometry that cannot be processed, e.g. zero extent along a slicing axis."""


class InternalInvariantError(CheeseError, RuntimeError):
    """Out-of-range indices, mismatched sizes or stale derived data."""
