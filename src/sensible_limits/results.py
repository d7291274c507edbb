from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence
from warnings import warn

import numpy as np
from scipy.optimize import brentq

from .likelihood import ProfileLikelihood
from .params import ParameterSet
from .util import delta_nll_threshold, p_value_to_significance, uncertainty_to_string


@dataclass(frozen=True)
class LikelihoodInterval:
    """Likelihood-ratio confidence region over the parameters of interest.

    The region is every POI point whose profile ΔNLL (measured from the
    global minimum) is at most ½·χ²_ppf(confidence_level, ndf) with ndf the
    number of parameters of interest.
    """

    name: str
    profile: ProfileLikelihood
    best_fit: ParameterSet
    confidence_level: float = 0.95
    _limits: Dict[str, float] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    @property
    def parameters(self) -> ParameterSet:
        return self.best_fit

    def threshold(self) -> float:
        return delta_nll_threshold(self.confidence_level, ndf=len(self.best_fit))

    def is_in_interval(self, point: Optional[Mapping[str, float]] = None) -> bool:
        """True if ``point`` (default: current POI values) lies in the region."""
        return self.profile.delta(point) <= self.threshold()

    def scan(self, name: str, values: Sequence[float]) -> np.ndarray:
        """Profile ΔNLL of parameter ``name`` at each of ``values``."""
        prof = self._profile_for(name)
        return np.asarray([prof.delta({name: float(v)}) for v in values], dtype=float)

    def lower_limit(self, name: str) -> float:
        return self._limit(name, -1.0)

    def upper_limit(self, name: str) -> float:
        return self._limit(name, +1.0)

    def _profile_for(self, name: str) -> ProfileLikelihood:
        if name not in self.best_fit:
            raise KeyError(f"{name!r} is not a parameter of interest of this interval.")
        if len(self.best_fit) == 1:
            return self.profile
        return self.profile.for_parameter(name)

    def _limit(self, name: str, sign: float) -> float:
        key = f"{name}:{'lo' if sign < 0 else 'hi'}"
        if key in self._limits:
            return self._limits[key]

        prof = self._profile_for(name)
        thr = self.threshold()
        p = self.best_fit[name]
        target = prof.nll.parameters.find(name) or p
        edge = target.lo if sign < 0 else target.hi
        best = p.value

        def excess(v: float) -> float:
            return prof.delta({name: v}) - thr

        step = p.error if p.error else 0.1 * (abs(best) + 1.0)
        b = best
        crossed = False
        for _ in range(30):
            b = best + sign * step
            if sign * (b - edge) >= 0.0:
                b = edge
                crossed = excess(b) > 0.0
                break
            if excess(b) > 0.0:
                crossed = True
                break
            step *= 2.0

        if not crossed:
            warn(
                f"{self.name}: {'lower' if sign < 0 else 'upper'} limit of {name!r} "
                f"not found before {b:.6g}; returning that value.",
                UserWarning,
            )
            limit = float(b)
        else:
            lo_b, hi_b = (b, best) if sign < 0 else (best, b)
            limit = float(brentq(excess, lo_b, hi_b, xtol=1e-8 * (abs(best) + 1.0)))

        self._limits[key] = limit
        return limit

    def summary(self, digits: int = 4) -> str:
        """Return a human-readable summary string for the interval."""
        lines = [f"LikelihoodInterval({self.name!r}, CL={self.confidence_level:.{digits}g})"]
        for name, p in self.best_fit.items():
            lo = self.lower_limit(name)
            hi = self.upper_limit(name)
            if p.error is None or not math.isfinite(p.error):
                best = f"{p.value:.{digits}g}"
            else:
                best = uncertainty_to_string(p.value, p.error, precision="auto")
            lines.append(f"  {name:>12s}: {best}  [{lo:.{digits}g}, {hi:.{digits}g}]")
        return "\n".join(lines)


@dataclass(frozen=True)
class HypoTestResult:
    """Outcome of a likelihood-ratio test of the null hypothesis.

    ``test_statistic`` is reserved and left None; ``stats`` carries the
    NLL values, ΔNLL and q = sqrt(2ΔNLL) behind the p-value, plus which
    conditional branch ran ("fit" or "evaluate").
    """

    name: str
    null_p_value: float
    test_statistic: Optional[float] = None
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def significance(self) -> float:
        """One-sided Normal significance equivalent to ``null_p_value``."""
        return p_value_to_significance(self.null_p_value)

    def summary(self, digits: int = 4) -> str:
        lines = [f"HypoTestResult({self.name!r})"]
        lines.append(f"  {'p-value':>12s}: {self.null_p_value:.{digits}g}")
        lines.append(f"  {'significance':>12s}: {self.significance:.{digits}g}")
        for key in ("nll_mle", "nll_cond", "delta_nll"):
            if key in self.stats:
                lines.append(f"  {key:>12s}: {float(self.stats[key]):.{digits + 4}g}")
        return "\n".join(lines)
