from __future__ import annotations

from contextlib import contextmanager
from copy import copy
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

import numpy as np

try:
    import uncertainties
except Exception:  # pragma: no cover - optional at import time
    uncertainties = None


__all__ = [
    "Parameter",
    "ParameterSet",
    "frozen_parameters",
]

Bounds = Tuple[Optional[float], Optional[float]]


@dataclass(eq=False)
class Parameter:
    """A named model variable.

    Parameters are shared by reference: the model, the parameter-of-interest
    set and the null-hypothesis set may all hold the same object, so changing
    ``value`` or ``constant`` here is seen everywhere.
    """

    name: str
    value: float = 0.0
    error: Optional[float] = None
    bounds: Optional[Bounds] = None
    constant: bool = False

    def __post_init__(self) -> None:
        self.value = float(self.value)
        if self.bounds is not None:
            lo, hi = self.bounds
            if lo is not None and hi is not None and float(hi) <= float(lo):
                raise ValueError(
                    f"Invalid bounds for {self.name!r}: require hi > lo, got {self.bounds}."
                )

    @property
    def lo(self) -> float:
        if self.bounds is None or self.bounds[0] is None:
            return -np.inf
        return float(self.bounds[0])

    @property
    def hi(self) -> float:
        if self.bounds is None or self.bounds[1] is None:
            return np.inf
        return float(self.bounds[1])

    @property
    def u(self):
        """Return an uncertainties ufloat if an error is available."""
        if self.error is None:
            raise ValueError(f"No error available for parameter {self.name!r}.")
        if uncertainties is None:
            raise RuntimeError("uncertainties package is not available.")
        return uncertainties.ufloat(self.value, self.error, tag=self.name)

    def __repr__(self) -> str:
        tag = " C" if self.constant else ""
        err = "" if self.error is None else f" +/- {self.error:.4g}"
        return f"Parameter({self.name}={self.value:.6g}{err}{tag})"


class ParameterSet(Mapping[str, Parameter]):
    """Ordered, name-keyed collection of Parameter objects.

    Adding a parameter whose name is already present is a no-op; the first
    object is kept.
    """

    def __init__(self, params: Iterable[Parameter] = ()):
        self._items: Dict[str, Parameter] = {}
        for p in params:
            self.add(p)

    def __getitem__(self, key):  # type: ignore[override]
        if isinstance(key, int):
            try:
                return list(self._items.values())[key]
            except IndexError:
                raise KeyError(key) from None
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        inner = ", ".join(repr(p) for p in self._items.values())
        return f"ParameterSet([{inner}])"

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._items.keys())

    def add(self, param: Parameter) -> bool:
        if not isinstance(param, Parameter):
            raise TypeError(f"Expected a Parameter, got {type(param).__name__}.")
        if param.name in self._items:
            return False
        self._items[param.name] = param
        return True

    def find(self, name: str) -> Optional[Parameter]:
        return self._items.get(name)

    def free(self) -> "ParameterSet":
        """Return a new set (same objects) without the constant parameters."""
        return ParameterSet(p for p in self._items.values() if not p.constant)

    def has_free(self) -> bool:
        return any(not p.constant for p in self._items.values())

    def as_dict(self) -> Dict[str, float]:
        """Return name -> current value."""
        return {n: p.value for n, p in self._items.items()}

    def snapshot(self) -> "ParameterSet":
        """Return a set of independent copies of every parameter."""
        return ParameterSet(copy(p) for p in self._items.values())


@contextmanager
def frozen_parameters(
    targets: ParameterSet, overrides: Iterable[Parameter]
) -> Iterator[ParameterSet]:
    """Fix parameters of ``targets`` at the override values for the block.

    For every parameter in ``overrides`` whose name is found in ``targets``
    the target's value is replaced, and it is marked constant. Names absent
    from ``targets`` are skipped, as are repeats of a name already frozen
    (the first override wins). On exit (normal or exceptional) each touched
    target gets back its saved value and is made non-constant again.

    Yields the set of parameters that were frozen.
    """
    saved: list[Tuple[Parameter, float]] = []
    touched = ParameterSet()
    try:
        for override in overrides:
            target = targets.find(override.name)
            if target is None or target.name in touched:
                continue
            saved.append((target, target.value))
            target.value = float(override.value)
            target.constant = True
            touched.add(target)
        yield touched
    finally:
        for target, old_value in saved:
            target.value = old_value
            target.constant = False

