from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
from scipy.optimize import brentq, minimize

from ..likelihood import NegLogLikelihood, ProfileLikelihood
from ..params import Parameter, ParameterSet
from ..util import numdiff_hessian
from .common import FitResult, MinimizeOutcome

# scipy methods that accept a bounds= argument
_BOUNDED_METHODS = {"l-bfgs-b", "tnc", "slsqp", "powell", "nelder-mead", "trust-constr"}

# tolerances per strategy: 0 fast, 1 default, 2 careful
_STRATEGY_OPTIONS: Dict[int, Dict[str, Any]] = {
    0: {"ftol": 1e-9, "gtol": 1e-5},
    1: {"ftol": 1e-12, "gtol": 1e-8, "maxiter": 5000},
    2: {"ftol": 1e-14, "gtol": 1e-10, "maxiter": 20000},
}


class ScipyMinimizeEngine:
    name = "scipy.minimize"

    def __init__(self, options: Optional[Mapping[str, Any]] = None):
        """Fitting engine built on scipy.optimize.minimize.

        Engine options:
        - method: optimizer name (default: L-BFGS-B)
        - options: dict forwarded to scipy.optimize.minimize (overrides strategy tolerances)
        - retry_method: method used once from the failed point when the first
          minimisation reports failure (default: Powell; None disables)
        - cov_step: relative step size for the numeric Hessian (default: 1e-4)
        - cov_jitter: diagonal jitter before inverting the Hessian (default: 0.0)
        """
        self.options: Dict[str, Any] = dict(options or {})

    def __repr__(self) -> str:
        return f"ScipyMinimizeEngine(options={self.options!r})"

    # ---- builders ----
    def create_nll(
        self, model: Any, data: Any, constrained: Optional[ParameterSet] = None
    ) -> NegLogLikelihood:
        return NegLogLikelihood(model, data, constrained)

    def create_profile(self, nll: NegLogLikelihood, poi: ParameterSet) -> ProfileLikelihood:
        return ProfileLikelihood(nll, poi, self)

    def evaluate(self, fn: Any, point: Optional[Mapping[str, float]] = None) -> float:
        return float(fn(point))

    # ---- minimisation ----
    def _scipy_options(self, method: str, strategy: int) -> Dict[str, Any]:
        opts: Dict[str, Any] = {}
        if method.lower() == "l-bfgs-b":
            opts.update(_STRATEGY_OPTIONS.get(int(strategy), _STRATEGY_OPTIONS[1]))
        opts.update(self.options.get("options", None) or {})
        return opts

    def minimize(
        self,
        nll: NegLogLikelihood,
        *,
        fixed: Optional[Mapping[str, float]] = None,
        start: Optional[Mapping[str, float]] = None,
        strategy: int = 1,
    ) -> MinimizeOutcome:
        """Minimise ``nll`` over its free parameters not listed in ``fixed``.

        ``start`` overrides starting values; parameter objects are not changed.
        """
        fixed = dict(fixed or {})
        free = [p for n, p in nll.parameters.free().items() if n not in fixed]
        names = [p.name for p in free]

        base: Dict[str, float] = nll.parameters.as_dict()
        base.update({k: float(v) for k, v in (start or {}).items() if k in base})
        base.update({k: float(v) for k, v in fixed.items()})

        if not free:
            fun = float(nll.evaluate(base))
            return MinimizeOutcome(
                values=base,
                fun=fun,
                free_names=(),
                success=math.isfinite(fun),
                message="no free parameters",
                nfev=1,
            )

        scipy_bounds: List[Tuple[Optional[float], Optional[float]]] = []
        x0 = np.empty((len(free),), dtype=float)
        for j, p in enumerate(free):
            lo_b = None if not math.isfinite(p.lo) else p.lo
            hi_b = None if not math.isfinite(p.hi) else p.hi
            scipy_bounds.append((lo_b, hi_b))
            x0[j] = min(max(base[p.name], p.lo), p.hi)

        def objective(theta: np.ndarray) -> float:
            vals = dict(base)
            for j, n in enumerate(names):
                vals[n] = float(theta[j])
            try:
                v = float(nll.evaluate(vals))
            except Exception:
                return float("inf")
            return v if math.isfinite(v) else float("inf")

        method = str(self.options.get("method", "L-BFGS-B"))
        use_bounds = scipy_bounds if method.lower() in _BOUNDED_METHODS else None
        res = minimize(
            objective,
            x0,
            method=method,
            bounds=use_bounds,
            options=self._scipy_options(method, strategy),
        )
        nfev = int(getattr(res, "nfev", 0))

        retry = self.options.get("retry_method", "Powell")
        polish = int(strategy) >= 2
        if retry is not None and (polish or not bool(res.success)) and math.isfinite(float(res.fun)):
            retry_bounds = scipy_bounds if str(retry).lower() in _BOUNDED_METHODS else None
            res2 = minimize(
                objective,
                np.asarray(res.x, dtype=float),
                method=str(retry),
                bounds=retry_bounds,
            )
            nfev += int(getattr(res2, "nfev", 0))
            if bool(res2.success) and float(res2.fun) <= float(res.fun):
                res = res2

        theta = np.asarray(res.x, dtype=float).reshape((-1,))
        values = dict(base)
        for j, n in enumerate(names):
            values[n] = float(theta[j])
        fun = float(res.fun)
        return MinimizeOutcome(
            values=values,
            fun=fun,
            free_names=tuple(names),
            success=bool(res.success) and math.isfinite(fun),
            message=str(res.message),
            nfev=nfev,
        )

    # ---- fitting ----
    def fit(
        self,
        model: Any,
        data: Any,
        constrained: Optional[ParameterSet] = None,
        *,
        strategy: int = 1,
        hesse: bool = True,
        minos: bool = False,
    ) -> Optional[FitResult]:
        """Maximum-likelihood fit of ``model`` to ``data``.

        Floats every non-constant parameter of the model given the data.
        Returns None when the minimiser does not converge. Parameter objects
        keep their values; fitted values live in the returned FitResult.
        """
        nll = self.create_nll(model, data, constrained)
        free = nll.parameters.free()
        initial = free.snapshot()
        const = ParameterSet(p for p in nll.parameters.values() if p.constant).snapshot()

        outcome = self.minimize(nll, strategy=strategy)
        if not outcome.success:
            return None

        names = list(outcome.free_names)
        final = ParameterSet(
            Parameter(
                name=n,
                value=outcome.values[n],
                error=None,
                bounds=free[n].bounds,
            )
            for n in names
        )

        cov = None
        if hesse and names:
            cov = self._covariance(nll, outcome, names)
            if cov is not None:
                perr = np.sqrt(np.clip(np.diag(cov), 0.0, np.inf))
                for j, n in enumerate(names):
                    final[n].error = float(perr[j])

        stats: Dict[str, Any] = {
            "engine": self.name,
            "strategy": int(strategy),
            "nfev": int(outcome.nfev),
            "hesse": bool(hesse),
        }
        if minos and names:
            stats["minos"] = self._minos(nll, outcome, final, strategy)

        return FitResult(
            min_nll=float(outcome.fun),
            float_params_final=final,
            float_params_initial=initial,
            const_params=const,
            cov=cov,
            status=0,
            message=outcome.message,
            stats=stats,
        )

    def _covariance(
        self, nll: NegLogLikelihood, outcome: MinimizeOutcome, names: List[str]
    ) -> Optional[np.ndarray]:
        params = [nll.parameters[n] for n in names]
        bounds = [(p.lo, p.hi) for p in params]
        theta = np.asarray([outcome.values[n] for n in names], dtype=float)

        def func(v: np.ndarray) -> float:
            vals = dict(outcome.values)
            for j, n in enumerate(names):
                vals[n] = float(v[j])
            return float(nll.evaluate(vals))

        hess = numdiff_hessian(func, theta, bounds, self.options.get("cov_step", None))
        if hess is None or not np.all(np.isfinite(hess)):
            return None
        jitter = float(self.options.get("cov_jitter", 0.0))
        if jitter > 0.0:
            hess = hess + jitter * np.eye(hess.shape[0])
        try:
            return np.linalg.pinv(hess)
        except np.linalg.LinAlgError:
            return None

    def _minos(
        self,
        nll: NegLogLikelihood,
        outcome: MinimizeOutcome,
        final: ParameterSet,
        strategy: int,
        up: float = 0.5,
    ) -> Dict[str, Tuple[float, float]]:
        """Asymmetric errors where the profiled NLL rises by ``up``.

        A side that reaches a parameter bound without crossing reports the
        distance to that bound.
        """
        out: Dict[str, Tuple[float, float]] = {}
        for name, p in final.items():
            best = p.value

            def excess(v: float, name: str = name) -> float:
                r = self.minimize(nll, fixed={name: v}, start=outcome.values, strategy=strategy)
                return float(r.fun) - outcome.fun - up

            limits = []
            for sign, edge in ((-1.0, p.lo), (+1.0, p.hi)):
                step = p.error if p.error else 0.1 * (abs(best) + 1.0)
                b = best
                crossed = False
                for _ in range(12):
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
                    limits.append(b - best)
                    continue
                lo_b, hi_b = (b, best) if sign < 0 else (best, b)
                root = brentq(excess, lo_b, hi_b, xtol=1e-6 * (abs(best) + 1.0))
                limits.append(float(root) - best)
            out[name] = (float(limits[0]), float(limits[1]))
        return out
