"""Exception types raised by the crafting planner."""
from __future__ import annotations


class PlannerError(Exception):
    """Base class for planner errors."""


class CatalogError(PlannerError):
    """Raised when a catalog snapshot cannot be loaded or validated."""


class ConfigError(PlannerError):
    """Raised when the planner configuration is invalid."""


class InvariantViolation(PlannerError):
    """Raised when a computed quantity breaks an engine invariant.

    Examples are a negative quantity, ``remaining > base_required`` or a NaN
    leaking out of a cost comparison. These indicate a bug rather than bad
    catalog data and are never degraded silently.
    """
