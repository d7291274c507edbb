from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from scipy import stats

from .model import Model
from .params import Parameter, ParameterSet


def gaussian_logpdf(x, mu, sigma):
    """Module-level Normal log-density log N(x | mu, sigma)."""
    return stats.norm.logpdf(x, loc=mu, scale=sigma)


def exponential_logpdf(x, rate):
    """Module-level exponential log-density on x >= 0."""
    rate = np.asarray(rate, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        return stats.expon.logpdf(np.asarray(x, dtype=float) * rate) + np.log(rate)


def poisson_logpmf(n, mean):
    """Module-level Poisson log-probability of counts n."""
    return stats.poisson.logpmf(np.round(n), mean)


def _build(
    func: Callable[..., Any],
    canonical: Tuple[str, ...],
    names: Dict[str, str],
    initial: Dict[str, Any],
    name: str,
) -> Model:
    """Model over ``func`` with its variables renamed via ``names``."""
    actual = tuple(names[c] for c in canonical)

    def renamed(**kw: Any) -> Any:
        return func(**{c: kw[names[c]] for c in canonical})

    params = []
    for c, a in zip(canonical, actual):
        given = initial.get(c)
        if isinstance(given, Parameter):
            if given.name != a:
                raise ValueError(f"Shared parameter {given.name!r} cannot stand in for {a!r}.")
            params.append(given)
        else:
            params.append(Parameter(name=a, value=0.0 if given is None else float(given)))
    return Model(name=name, func=renamed, variable_names=actual, variables=ParameterSet(params))


def gaussian(
    *,
    x: str = "x",
    mu: str = "mu",
    sigma: str = "sigma",
    name: str = "gaussian",
    mu_value: Any = 0.0,
    sigma_value: Any = 1.0,
) -> Model:
    """Return a Normal density over ``x`` with mean ``mu`` and width ``sigma``.

    The *_value arguments are numbers or Parameter objects to share.
    """
    m = _build(
        gaussian_logpdf,
        ("x", "mu", "sigma"),
        {"x": x, "mu": mu, "sigma": sigma},
        {"mu": mu_value, "sigma": sigma_value},
        name,
    )
    if not isinstance(sigma_value, Parameter):
        m.bound(**{sigma: (0.0, None)})
    return m


def exponential(
    *, x: str = "x", rate: str = "rate", name: str = "exponential", rate_value: Any = 1.0
) -> Model:
    """Return an exponential density over ``x`` with decay ``rate``."""
    m = _build(
        exponential_logpdf,
        ("x", "rate"),
        {"x": x, "rate": rate},
        {"rate": rate_value},
        name,
    )
    if not isinstance(rate_value, Parameter):
        m.bound(**{rate: (0.0, None)})
    return m


def poisson(
    *, n: str = "n", mean: str = "mean", name: str = "poisson", mean_value: Any = 1.0
) -> Model:
    """Return a Poisson distribution for counts ``n`` with expectation ``mean``."""
    m = _build(
        poisson_logpmf,
        ("n", "mean"),
        {"n": n, "mean": mean},
        {"mean": mean_value},
        name,
    )
    if not isinstance(mean_value, Parameter):
        m.bound(**{mean: (0.0, None)})
    return m


def gaussian_constraint(
    param: Parameter,
    *,
    nominal: float,
    sigma: float,
    name: Optional[str] = None,
) -> Model:
    """Return a Normal constraint term N(nominal | param, sigma) on ``param``.

    ``nominal`` and ``sigma`` become constant variables named
    ``<param>_nominal`` and ``<param>_sigma``.
    """
    if float(sigma) <= 0.0:
        raise ValueError("gaussian_constraint requires sigma > 0.")
    nominal_p = Parameter(name=f"{param.name}_nominal", value=nominal, constant=True)
    sigma_p = Parameter(name=f"{param.name}_sigma", value=sigma, constant=True)
    return _build(
        gaussian_logpdf,
        ("x", "mu", "sigma"),
        {"x": nominal_p.name, "mu": param.name, "sigma": sigma_p.name},
        {"x": nominal_p, "mu": param, "sigma": sigma_p},
        name or f"{param.name}_constraint",
    )
