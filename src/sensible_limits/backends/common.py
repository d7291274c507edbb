from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import numpy as np

from ..params import ParameterSet

try:
    import uncertainties
except Exception:  # pragma: no cover - optional at import time
    uncertainties = None


@dataclass(frozen=True)
class MinimizeOutcome:
    """Raw outcome of one NLL minimisation."""

    values: Dict[str, float]  # every NLL parameter at the minimum
    fun: float
    free_names: Tuple[str, ...] = ()
    success: bool = True
    message: str = ""
    nfev: int = 0


@dataclass(frozen=True)
class FitResult:
    """Normalized result of a maximum-likelihood fit."""

    min_nll: float
    float_params_final: ParameterSet
    float_params_initial: ParameterSet
    const_params: ParameterSet
    cov: Optional[np.ndarray] = None  # free-parameter covariance, (P,P)
    status: int = 0
    message: str = ""
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def free_names(self) -> Tuple[str, ...]:
        return self.float_params_final.names

    def correlation(self, a: str, b: str) -> float:
        if self.cov is None:
            raise ValueError("Fit result has no covariance matrix.")
        names = self.free_names
        i, j = names.index(a), names.index(b)
        cov = np.asarray(self.cov, dtype=float)
        return float(cov[i, j] / np.sqrt(cov[i, i] * cov[j, j]))

    def correlated_values(self) -> Optional[Dict[str, Any]]:
        """Return name -> correlated ufloat, or None without covariance."""
        if uncertainties is None or self.cov is None:
            return None
        vals = [p.value for p in self.float_params_final.values()]
        try:
            corr = uncertainties.correlated_values(vals, np.asarray(self.cov, dtype=float))
        except Exception:
            return None
        return dict(zip(self.free_names, corr))

    def summary(self, digits: int = 4) -> str:
        lines = [
            f"FitResult(status={self.status}, min_nll={self.min_nll:.{digits + 4}g}, "
            f"engine={self.stats.get('engine', '')!r})"
        ]
        for name, p in self.float_params_final.items():
            if p.error is None:
                lines.append(f"  {name:>12s}: {p.value:.{digits}g}")
            else:
                lines.append(f"  {name:>12s}: {p.value:.{digits}g} ± {p.error:.{digits}g}")
        minos = self.stats.get("minos")
        if minos:
            for name, (lo, hi) in minos.items():
                lines.append(f"  {name:>12s}: minos [{lo:+.{digits}g}, {hi:+.{digits}g}]")
        for name, p in self.const_params.items():
            lines.append(f"  {name:>12s}: {p.value:.{digits}g} (const)")
        return "\n".join(lines)


class FitEngine(Protocol):
    """Fitting engine protocol consumed by the calculators."""

    name: str

    def fit(
        self,
        model: Any,
        data: Any,
        constrained: ParameterSet,
        *,
        strategy: int = 1,
        hesse: bool = True,
        minos: bool = False,
    ) -> Optional[FitResult]: ...

    def create_nll(self, model: Any, data: Any, constrained: ParameterSet) -> Any: ...

    def create_profile(self, nll: Any, poi: ParameterSet) -> Any: ...

    def minimize(
        self,
        nll: Any,
        *,
        fixed: Optional[Mapping[str, float]] = None,
        start: Optional[Mapping[str, float]] = None,
        strategy: int = 1,
    ) -> MinimizeOutcome: ...

    def evaluate(self, fn: Any, point: Optional[Mapping[str, float]] = None) -> float: ...
