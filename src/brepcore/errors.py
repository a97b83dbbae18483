"""Error taxonomy and exceptions for brepcore.

Structural defects in a topology graph are *reported* through
``validation_errors()`` and never raised.  The exceptions below are for
contract violations: building a face from an open wire, a solid from an
open shell, asking for a repair that has no strategy, or decoding a
malformed record.
"""

from __future__ import annotations

from enum import Enum


class ValidationError(Enum):
    """Structural defects reported by ``validation_errors()``.

    These are values, not exceptions: an invalid entity stays inspectable
    and the caller decides whether to reject or repair it.
    """

    MISSING_GEOMETRY = "missing_geometry"
    DISCONNECTED_EDGES = "disconnected_edges"
    INVALID_WINDING = "invalid_winding"
    INVALID_ORIENTATION = "invalid_orientation"
    SELF_INTERSECTION = "self_intersection"


class TopologyError(ValueError):
    """Base class for topology contract violations."""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or {}


class ShellClosureError(TopologyError):
    """Raised when a shell required to be closed is not."""


class SolidValidationError(TopologyError):
    """Raised when a solid cannot be built from the given shells."""


class RepairError(TopologyError):
    """Raised when ``repair`` has no strategy for the detected errors.

    ``errors`` holds the validation errors left unresolved.
    """

    def __init__(self, message, errors=(), details=None):
        super().__init__(message, details)
        self.errors = list(errors)


class SerializationError(ValueError):
    """Raised when a record cannot be encoded or decoded."""


__all__ = [
    "ValidationError",
    "TopologyError",
    "ShellClosureError",
    "SolidValidationError",
    "RepairError",
    "SerializationError",
]
