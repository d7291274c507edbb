from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple
from warnings import warn

import numpy as np

from .util import uncertainty_to_string


def plot_profile(
    interval: Any,
    name: Optional[str] = None,
    *,
    ax: Optional[Any] = None,
    values: Optional[np.ndarray] = None,
    n_points: int = 40,
    show_limits: bool = True,
    line_kwargs: Optional[Mapping[str, Any]] = None,
    threshold_kwargs: Optional[Mapping[str, Any]] = None,
    text_kwargs: Optional[Mapping[str, Any]] = None,
) -> Tuple[Any, Any]:
    """Plot the profile ΔNLL of one parameter of interest of a LikelihoodInterval.

    Parameters
    ----------
    interval : LikelihoodInterval
        Interval returned by ProfileLikelihoodCalculator.get_interval().
    name : str, optional
        Parameter to scan. Defaults to the first parameter of interest.
    ax : matplotlib.axes.Axes, optional
        If None, a new figure/axes is created.
    values : ndarray, optional
        Scan points. Defaults to ``n_points`` points spanning the interval
        limits with 50% margin on each side.
    show_limits : bool
        If True, mark the lower/upper limits and annotate the best fit.
    line_kwargs, threshold_kwargs, text_kwargs : dict, optional
        Styling kwargs for the profile curve, the threshold line and the text box.
    """
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    line_kwargs = dict(line_kwargs or {})
    threshold_kwargs = dict(threshold_kwargs or {})
    text_kwargs = dict(text_kwargs or {})

    if name is None:
        name = interval.best_fit.names[0]
    p = interval.best_fit[name]
    thr = float(interval.threshold())

    lo = hi = None
    if show_limits or values is None:
        try:
            lo = float(interval.lower_limit(name))
            hi = float(interval.upper_limit(name))
        except Exception as exc:
            warn(f"plot_profile: could not compute limits: {exc}", UserWarning)

    if values is None:
        if lo is not None and hi is not None and np.isfinite(lo) and np.isfinite(hi) and hi > lo:
            margin = 0.5 * (hi - lo)
            values = np.linspace(lo - margin, hi + margin, int(n_points))
        else:
            half = 3.0 * (p.error if p.error else 0.1 * (abs(p.value) + 1.0))
            values = np.linspace(p.value - half, p.value + half, int(n_points))
    values = np.asarray(values, dtype=float)
    target = interval.profile.nll.parameters.find(name)
    if target is not None:
        values = values[(values >= target.lo) & (values <= target.hi)]

    deltas = interval.scan(name, values)

    line_kwargs.setdefault("label", "profile")
    ax.plot(values, deltas, **line_kwargs)
    threshold_kwargs.setdefault("color", "k")
    threshold_kwargs.setdefault("linestyle", ":")
    threshold_kwargs.setdefault("label", f"{100 * interval.confidence_level:.3g}% CL")
    ax.axhline(thr, **threshold_kwargs)
    ax.set_xlabel(name)
    ax.set_ylabel(r"$\Delta$NLL")

    if show_limits and lo is not None and hi is not None:
        ax.axvline(lo, color="0.5", lw=1)
        ax.axvline(hi, color="0.5", lw=1)
        if p.error is None:
            label = f"{name}={p.value:.4g}"
        else:
            label = f"{name}={uncertainty_to_string(p.value, p.error, precision='auto')}"
        label += f"\n[{lo:.4g}, {hi:.4g}]"
        text_kwargs.setdefault("ha", "left")
        text_kwargs.setdefault("va", "top")
        text_kwargs.setdefault("fontsize", 9)
        text_kwargs.setdefault("transform", ax.transAxes)
        text_kwargs.setdefault(
            "bbox",
            {"boxstyle": "round", "facecolor": "white", "alpha": 0.7, "edgecolor": "none"},
        )
        ax.text(0.02, 0.98, label, **text_kwargs)

    return fig, ax
