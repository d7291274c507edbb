from __future__ import annotations

import inspect
import math
from typing import Any, Callable, Optional, Sequence, Tuple

import numpy as np
from scipy import stats


def significance_to_p_value(z: float) -> float:
    """One-sided p-value for a Normal significance ``z``: 1 - Φ(z)."""
    return float(stats.norm.sf(float(z)))


def p_value_to_significance(p: float) -> float:
    """Inverse of :func:`significance_to_p_value`."""
    return float(stats.norm.isf(float(p)))


def delta_nll_threshold(confidence_level: float, ndf: int = 1) -> float:
    """ΔNLL bounding a likelihood-ratio region at ``confidence_level``.

    Under Wilks' theorem 2ΔNLL follows χ²(ndf), so the region is
    ΔNLL <= χ²_ppf(CL, ndf) / 2. With ndf=0 the threshold is 0.
    """
    if not (0.0 < confidence_level < 1.0):
        raise ValueError("confidence_level must be in (0, 1).")
    if ndf <= 0:
        return 0.0
    return 0.5 * float(stats.chi2.ppf(float(confidence_level), int(ndf)))


def infer_variable_names(func: Callable[..., Any]) -> Tuple[str, ...]:
    """Infer variable names from a log-density function signature.

    Every positional/keyword parameter is a variable. *args/**kwargs are not
    supported.
    """
    sig = inspect.signature(func)
    params = list(sig.parameters.values())

    if not params:
        raise TypeError("Density function must take at least one variable.")

    bad_kinds = {inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD}
    for p in params:
        if p.kind in bad_kinds:
            raise TypeError("*args/**kwargs are not supported in density functions.")

    return tuple(p.name for p in params)


def numdiff_hessian(
    func: Callable[[np.ndarray], float],
    x0: np.ndarray,
    bounds: Sequence[Tuple[float, float]],
    step: Optional[float] = None,
) -> Optional[np.ndarray]:
    """Central-difference Hessian of ``func`` at ``x0``.

    Steps are shrunk to stay inside ``bounds``; returns None if a parameter
    sits exactly on a bound.
    """
    x0 = np.asarray(x0, dtype=float)
    npar = int(x0.shape[0])
    step = 1e-4 if step is None else float(step)
    eps = step * (np.abs(x0) + 1.0)

    lo = np.array([float(b[0]) for b in bounds], dtype=float)
    hi = np.array([float(b[1]) for b in bounds], dtype=float)
    for i in range(npar):
        if np.isfinite(lo[i]):
            eps[i] = min(eps[i], 0.5 * max(0.0, x0[i] - lo[i]))
        if np.isfinite(hi[i]):
            eps[i] = min(eps[i], 0.5 * max(0.0, hi[i] - x0[i]))
        if eps[i] <= 0.0:
            return None

    f0 = float(func(x0))
    hess = np.zeros((npar, npar), dtype=float)
    for i in range(npar):
        ei = np.zeros(npar, dtype=float)
        ei[i] = eps[i]
        fpp = float(func(x0 + ei))
        fmm = float(func(x0 - ei))
        hess[i, i] = (fpp - 2.0 * f0 + fmm) / (eps[i] ** 2)
        for j in range(i + 1, npar):
            ej = np.zeros(npar, dtype=float)
            ej[j] = eps[j]
            fpp = float(func(x0 + ei + ej))
            fpm = float(func(x0 + ei - ej))
            fmp = float(func(x0 - ei + ej))
            fmm = float(func(x0 - ei - ej))
            hij = (fpp - fpm - fmp + fmm) / (4.0 * eps[i] * eps[j])
            hess[i, j] = hij
            hess[j, i] = hij
    return hess


def uncertainty_to_string(
    x: float, err: float, precision: int | str | None = 1
) -> str:
    """Format a value with uncertainty as a compact string.

    Returns the shortest string representation of x +/- err as either
    x.xx(ee)e+xx or xxx.xx(ee). Use precision="auto" to follow the
    common 1-or-2 significant-digit rule for the uncertainty.
    """
    auto = precision is None or (
        isinstance(precision, str) and precision.lower() == "auto"
    )
    x = float(x)
    err = float(err)

    if math.isnan(x) or math.isnan(err):
        return "NaN"
    if math.isinf(x) or math.isinf(err):
        return "inf"

    err = abs(err)
    if err == 0.0:
        if auto:
            precision = 1
        precision = max(1, int(precision))  # type: ignore[arg-type]
        return f"{x:.{precision}g}(0)"

    err_exp = int(math.floor(math.log10(err)))
    if auto:
        leading = int(err / (10 ** err_exp) + 1e-12)
        precision = 2 if leading == 1 else 1
    precision = max(1, int(precision))  # type: ignore[arg-type]

    if x == 0.0 or abs(x) < err:
        x_exp = err_exp
    else:
        x_exp = int(math.floor(math.log10(abs(x))))

    un_exp = err_exp - precision + 1
    un_int = round(err * 10 ** (-un_exp))

    no_exp = un_exp
    no_int = round(x * 10 ** (-no_exp))

    fieldw = x_exp - no_exp
    fmt = f"%.{fieldw}f"
    result1 = (fmt + "(%.0f)e%d") % (no_int * 10 ** (-fieldw), un_int, x_exp)

    fieldw = max(0, -no_exp)
    fmt = f"%.{fieldw}f"
    result2 = (fmt + "(%.0f)") % (no_int * 10 ** no_exp, un_int * 10 ** max(0, un_exp))

    return result2 if len(result2) <= len(result1) else result1
