"""Fitting engine implementations + registry."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .common import FitEngine, FitResult, MinimizeOutcome
from .scipy_minimize import ScipyMinimizeEngine

_ENGINES: Dict[str, Any] = {
    "scipy.minimize": ScipyMinimizeEngine,
}


def get_engine(name: str, options: Optional[Mapping[str, Any]] = None) -> FitEngine:
    """Return a new fitting engine by name, configured with ``options``."""
    try:
        cls = _ENGINES[name]
    except KeyError as e:
        raise ValueError(
            f"Unknown engine {name!r}. Available: {tuple(_ENGINES.keys())}"
        ) from e
    return cls(options)


AVAILABLE_ENGINES = tuple(_ENGINES.keys())

__all__ = [
    "AVAILABLE_ENGINES",
    "FitEngine",
    "FitResult",
    "MinimizeOutcome",
    "ScipyMinimizeEngine",
    "get_engine",
]
