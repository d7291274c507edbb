from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from .data import Dataset
from .model import Model
from .params import ParameterSet


class NegLogLikelihood:
    """Joint negative log-likelihood of ``model`` over ``data``.

    Factors of the model that read a dataset column contribute per event
    (weighted when the dataset carries weights). Factors that read no column
    are constraint terms; they are included once, and only when they share a
    parameter with ``constrained``. Evaluation never changes parameter values.
    """

    def __init__(
        self,
        model: Model,
        data: Dataset,
        constrained: Optional[ParameterSet] = None,
    ):
        self.model = model
        self.data = data
        self.parameters = model.get_parameters(data)
        self.constrained = self.parameters if constrained is None else constrained
        self.n_evaluations = 0

        self._event_terms: List[Model] = []
        self._constraint_terms: List[Model] = []
        constrained_names = set(self.constrained.names)
        for f in model.factors:
            if f.depends_on(data):
                self._event_terms.append(f)
            elif constrained_names.intersection(f.variable_names):
                self._constraint_terms.append(f)

    def __repr__(self) -> str:
        return (
            f"NegLogLikelihood(model={self.model.name!r}, data={self.data.name!r}, "
            f"n_constraints={len(self._constraint_terms)})"
        )

    @property
    def constraint_terms(self) -> tuple:
        return tuple(self._constraint_terms)

    def evaluate(self, values: Optional[Mapping[str, float]] = None) -> float:
        """Return the NLL at the current parameter values overlaid by ``values``."""
        self.n_evaluations += 1
        vals: Dict[str, float] = self.parameters.as_dict()
        if values is not None:
            vals.update(values)

        n = len(self.data)
        w = self.data.weights
        total = 0.0
        for f in self._event_terms:
            logp = np.broadcast_to(np.asarray(f.log_density(self.data, vals), dtype=float), (n,))
            total -= float(np.sum(logp if w is None else w * logp))
        for f in self._constraint_terms:
            total -= float(np.sum(np.asarray(f.log_density(None, vals), dtype=float)))

        if not np.isfinite(total):
            return float("inf")
        return total

    def __call__(self, values: Optional[Mapping[str, float]] = None) -> float:
        return self.evaluate(values)


class ProfileLikelihood:
    """Profile of a NegLogLikelihood over a set of parameters of interest.

    ``evaluate(point)`` returns min over the remaining free parameters of
    NLL(point, others). The absolute minimum over all free parameters is
    found on first evaluation and cached; ``delta(point)`` is measured from
    it. The NLL is owned by the profile; any fit result is not.
    """

    def __init__(self, nll: NegLogLikelihood, poi: ParameterSet, engine: Any):
        self.nll = nll
        self.poi = poi
        self._engine = engine
        self._global_min: Optional[float] = None
        self._best: Optional[Dict[str, float]] = None

    def __repr__(self) -> str:
        state = "unevaluated" if self._global_min is None else f"min={self._global_min:.6g}"
        return f"ProfileLikelihood(poi={self.poi.names}, {state})"

    @property
    def nuisance(self) -> ParameterSet:
        return ParameterSet(
            p for n, p in self.nll.parameters.free().items() if n not in self.poi
        )

    def _point(self, point: Optional[Mapping[str, float]]) -> Dict[str, float]:
        vals = {n: p.value for n, p in self.poi.items() if n in self.nll.parameters}
        if point is not None:
            for n, v in point.items():
                if n not in self.poi:
                    raise KeyError(f"{n!r} is not a parameter of interest of this profile.")
                vals[n] = float(v)
        return vals

    def global_minimum(self) -> float:
        """Minimum of the NLL over every free parameter (cached)."""
        if self._global_min is None:
            outcome = self._engine.minimize(self.nll, start=self._point(None))
            self._global_min = float(outcome.fun)
            self._best = dict(outcome.values)
        return self._global_min

    @property
    def best_fit(self) -> Optional[Dict[str, float]]:
        """POI values at the cached global minimum (None before evaluation)."""
        if self._best is None:
            return None
        return {n: self._best[n] for n in self.poi.names if n in self._best}

    def evaluate(self, point: Optional[Mapping[str, float]] = None) -> float:
        self.global_minimum()
        outcome = self._engine.minimize(self.nll, fixed=self._point(point))
        return float(outcome.fun)

    def __call__(self, point: Optional[Mapping[str, float]] = None) -> float:
        return self.evaluate(point)

    def delta(self, point: Optional[Mapping[str, float]] = None) -> float:
        """evaluate(point) minus the global minimum, clamped at zero."""
        value = self.evaluate(point)
        return max(value - self.global_minimum(), 0.0)

    def for_parameter(self, name: str) -> "ProfileLikelihood":
        """Profile over the single POI ``name`` sharing this profile's NLL."""
        p = self.poi.find(name)
        if p is None:
            raise KeyError(name)
        sub = ProfileLikelihood(self.nll, ParameterSet([p]), self._engine)
        sub._global_min = self._global_min
        sub._best = None if self._best is None else dict(self._best)
        return sub
