"""
Vigil — Gesture Predicate Plugins
=================================
Interchangeable predicate strategies for the challenge engine.
"""
from typing import Optional

from vigil_types import ConfigurationError

from .geometry_predicates import GeometryPredicates
from .motion_predicates import MotionPredicates

PREDICATES = {
    GeometryPredicates.name: GeometryPredicates,
    MotionPredicates.name: MotionPredicates,
}


def build_predicate(name: str = "geometry", options: Optional[dict] = None):
    """Instantiate a strategy by name with its config section as kwargs."""
    try:
        cls = PREDICATES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown predicate strategy: {name!r}. Choose from {sorted(PREDICATES)}"
        ) from None
    try:
        return cls(**(options or {}))
    except TypeError as e:
        raise ConfigurationError(f"Bad options for {name!r} strategy: {e}") from None
