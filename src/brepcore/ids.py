"""Entity identifiers.

Identifiers are plain strings: opaque, copyable, hashable and comparable.
The kernel never assigns or reclaims them on its own; an entity store does
that, usually through an :class:`IdGenerator` (sequential ``V1``, ``E1``,
... identifiers) or :func:`new_uuid`.
"""

from __future__ import annotations

import uuid
from typing import Dict

EntityId = str

## prefix per entity kind for generated identifiers
PREFIXES: Dict[str, str] = {
    "vertex": "V",
    "edge": "E",
    "loop": "L",
    "wire": "W",
    "face": "F",
    "shell": "S",
    "solid": "B",
    "constraint": "C",
}


def new_uuid() -> EntityId:
    """Generate a globally unique identifier."""
    return str(uuid.uuid4())


class IdGenerator:
    """Hands out sequential, kind-prefixed identifiers.

    Counting starts at 1 for every kind; 0 is never issued.
    """

    def __init__(self, start: int = 1):
        self._next: Dict[str, int] = {}
        self._start = int(start)

    def new_id(self, kind: str) -> EntityId:
        if kind not in PREFIXES:
            raise ValueError(f"unknown entity kind {kind!r}")
        value = self._next.get(kind, self._start)
        self._next[kind] = value + 1
        return f"{PREFIXES[kind]}{value}"

    def peek_next(self, kind: str) -> EntityId:
        if kind not in PREFIXES:
            raise ValueError(f"unknown entity kind {kind!r}")
        return f"{PREFIXES[kind]}{self._next.get(kind, self._start)}"

    def observe(self, entity_id: EntityId) -> None:
        """Advance counters past an identifier loaded from elsewhere."""
        for kind, prefix in PREFIXES.items():
            if entity_id.startswith(prefix) and entity_id[len(prefix):].isdigit():
                value = int(entity_id[len(prefix):])
                if value >= self._next.get(kind, self._start):
                    self._next[kind] = value + 1
                return


__all__ = ["EntityId", "IdGenerator", "PREFIXES", "new_uuid"]
