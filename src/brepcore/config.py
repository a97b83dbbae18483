"""Kernel tolerances and defaults.

A :class:`KernelConfig` bundles every numeric knob the kernel consults.
Callers either pass one explicitly or rely on the process-wide default
returned by :func:`get_config`.  Configurations can be read from YAML::

    closure_tolerance: 1.0e-10
    tessellation:
      tolerance: 0.01
      max_segments: 512
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from brepcore.geom import closure_tolerance as _CLOSURE_TOLERANCE


@dataclass
class TessellationSettings:
    """Default sampling bounds for curve and surface tessellation."""

    tolerance: float = 1e-3
    min_segments: int = 4
    max_segments: int = 1024
    max_chordal_error: float = 1e-3
    max_divisions: int = 64


@dataclass
class KernelConfig:
    """Numeric settings shared by geometry, topology and validation."""

    closure_tolerance: float = _CLOSURE_TOLERANCE
    connect_tolerance: float = 1e-6
    constraint_tolerance: float = 1e-9
    quadrature_points: int = 8
    default_density: float = 1.0
    tessellation: TessellationSettings = field(default_factory=TessellationSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "KernelConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown configuration keys: {sorted(unknown)}")
        tess = data.pop("tessellation", None) or {}
        tess_known = {f.name for f in fields(TessellationSettings)}
        bad = set(tess) - tess_known
        if bad:
            raise ValueError(f"unknown tessellation keys: {sorted(bad)}")
        return cls(tessellation=TessellationSettings(**tess), **data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "KernelConfig":
        """Read a configuration from a YAML file."""
        import yaml

        with Path(path).open("r", encoding="utf-8") as fp:
            return cls.from_dict(yaml.safe_load(fp) or {})

    def save(self, path: Union[str, Path]) -> None:
        import yaml

        with Path(path).open("w", encoding="utf-8") as fp:
            yaml.safe_dump(self.to_dict(), fp, sort_keys=False)


_config = KernelConfig()


def get_config() -> KernelConfig:
    """Return the process-wide default configuration."""
    return _config


def set_config(config: KernelConfig) -> KernelConfig:
    """Replace the process-wide default and return the previous one."""
    global _config
    previous = _config
    _config = config
    return previous


__all__ = [
    "KernelConfig",
    "TessellationSettings",
    "get_config",
    "set_config",
]
