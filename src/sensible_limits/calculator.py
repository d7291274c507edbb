from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Mapping, Optional
from warnings import warn

from .backends import get_engine
from .backends.common import FitEngine, FitResult
from .config import ModelConfig
from .data import Dataset
from .model import Model
from .params import Parameter, ParameterSet, frozen_parameters
from .results import HypoTestResult, LikelihoodInterval
from .util import significance_to_p_value


def _as_parameter_set(params: Optional[Iterable[Parameter]]) -> Optional[ParameterSet]:
    if params is None or isinstance(params, ParameterSet):
        return params
    if isinstance(params, Parameter):
        return ParameterSet([params])
    return ParameterSet(params)


class CombinedCalculator:
    """Configuration shared by calculators that produce both confidence
    intervals and hypothesis tests.

    Holds the model, the dataset, the parameters of interest, the parameters
    defining the null hypothesis (values and constant status) and the test
    size. Setting a new model or dataset calls :meth:`reset`.
    """

    def __init__(
        self,
        data: Optional[Dataset] = None,
        model: Optional[Model] = None,
        parameters_of_interest: Optional[Iterable[Parameter]] = None,
        size: float = 0.05,
        null_parameters: Optional[Iterable[Parameter]] = None,
        *,
        name: str = "",
        engine: str | FitEngine = "scipy.minimize",
        engine_options: Optional[Mapping[str, Any]] = None,
    ):
        self.name = name or type(self).__name__
        if isinstance(engine, str):
            self.engine: FitEngine = get_engine(engine, engine_options)
        else:
            if engine_options:
                raise TypeError("engine_options only apply when engine is given by name.")
            self.engine = engine
        self._data = data
        self._model = model
        self._poi = _as_parameter_set(parameters_of_interest)
        self._null = _as_parameter_set(null_parameters)
        self.model_config: Optional[ModelConfig] = None
        self._size = 0.05
        self.set_size(size)

    def __repr__(self) -> str:
        model = None if self._model is None else self._model.name
        poi = None if self._poi is None else self._poi.names
        return f"{type(self).__name__}(name={self.name!r}, model={model!r}, poi={poi}, size={self._size})"

    # ---- configuration ----
    @property
    def data(self) -> Optional[Dataset]:
        return self._data

    @property
    def model(self) -> Optional[Model]:
        return self._model

    @property
    def parameters_of_interest(self) -> Optional[ParameterSet]:
        return self._poi

    @property
    def null_parameters(self) -> Optional[ParameterSet]:
        return self._null

    @property
    def size(self) -> float:
        return self._size

    @property
    def confidence_level(self) -> float:
        return 1.0 - self._size

    def set_data(self, data: Optional[Dataset]) -> None:
        self._data = data
        self.reset()

    def set_model(self, model: Optional[Model]) -> None:
        self._model = model
        self.reset()

    def set_model_config(self, config: ModelConfig) -> ModelConfig:
        """Use ``config``'s pdf (times its prior, if any) as the model.

        Returns the composed config; ``config`` itself is not modified.
        """
        composed = config.constrained()
        self.model_config = composed
        self._model = composed.pdf
        if composed.parameters_of_interest is not None:
            self._poi = composed.parameters_of_interest
        self.reset()
        return composed

    def set_parameters_of_interest(self, params: Optional[Iterable[Parameter]]) -> None:
        self._poi = _as_parameter_set(params)

    def set_null_parameters(self, params: Optional[Iterable[Parameter]]) -> None:
        self._null = _as_parameter_set(params)

    def set_size(self, size: float) -> None:
        size = float(size)
        if not (0.0 < size < 1.0):
            raise ValueError(f"size must be in (0, 1); got {size}.")
        self._size = size

    def set_confidence_level(self, level: float) -> None:
        self.set_size(1.0 - float(level))

    def reset(self) -> None:
        """Drop anything derived from the current model or dataset."""

    # ---- queries ----
    def get_interval(self) -> Optional[Any]:
        raise NotImplementedError

    def get_hypo_test(self) -> Optional[Any]:
        raise NotImplementedError


class ProfileLikelihoodCalculator(CombinedCalculator):
    """Profile likelihood ratio calculator assuming Wilks' theorem.

    Twice the negative log profile likelihood ratio is taken to follow a χ²
    distribution, so

    - :meth:`get_interval` returns a :class:`LikelihoodInterval` built from
      the profile of the NLL over the parameters of interest, and
    - :meth:`get_hypo_test` compares the unconditional fit with a fit where the
      null parameters are fixed, turning q = sqrt(2ΔNLL) into a one-sided
      p-value.

    The unconditional (global) fit is cached and reused by both queries until
    :meth:`reset` is called; the setters for model and data call it. Changing
    the model or data objects behind the calculator's back and reusing it
    without calling :meth:`reset` gives stale answers.

    Both queries return None when an input is missing or a fit fails.
    """

    GLOBAL_FIT: Dict[str, Any] = {"strategy": 1, "hesse": True, "minos": False}
    CONDITIONAL_FIT: Dict[str, Any] = {"strategy": 0, "hesse": False, "minos": False}

    def __init__(self, *args: Any, **kwargs: Any):
        self._fit_result: Optional[FitResult] = None
        super().__init__(*args, **kwargs)

    @classmethod
    def from_model_config(
        cls,
        data: Dataset,
        config: ModelConfig,
        size: float = 0.05,
        **kwargs: Any,
    ) -> "ProfileLikelihoodCalculator":
        """Build a calculator from a ModelConfig.

        When the config carries a prior, the calculator works on the product
        of pdf and prior; the composed config is available as
        ``calculator.model_config``.
        """
        calc = cls(data=data, size=size, **kwargs)
        calc.set_model_config(config)
        return calc

    # ---- global fit cache ----
    def reset(self) -> None:
        self._fit_result = None

    invalidate = reset

    @property
    def fit_result(self) -> Optional[FitResult]:
        return self._fit_result

    def _free_parameters(self) -> ParameterSet:
        return self._model.get_parameters(self._data).free()

    def global_fit(self) -> Optional[FitResult]:
        """Return the cached unconditional fit, fitting first if needed."""
        if self._fit_result is not None:
            return self._fit_result
        if self._data is None or self._model is None:
            return None

        constrained = self._free_parameters()
        result = self.engine.fit(self._model, self._data, constrained, **self.GLOBAL_FIT)
        if result is None:
            warn(f"{self.name}: global fit of {self._model.name!r} did not converge.", UserWarning)
            return None
        self._fit_result = result
        return result

    # ---- queries ----
    def get_interval(self) -> Optional[LikelihoodInterval]:
        """Likelihood interval for the parameters of interest, or None."""
        if self._data is None or self._model is None or self._poi is None:
            return None

        constrained = self._free_parameters()
        nll = self.engine.create_nll(self._model, self._data, constrained)
        profile = self.engine.create_profile(nll, self._poi)

        fit = self.global_fit()
        if fit is None:
            return None

        # Start the profile at the unconditional optimum.
        fitted = fit.float_params_final
        for name, p in self._poi.items():
            fp = fitted.find(name)
            if fp is not None:
                p.value = fp.value
                p.error = fp.error

        self.engine.evaluate(profile)

        best = ParameterSet()
        for name, p in self._poi.items():
            fp = fitted.find(name)
            best.add(p if fp is None else fp)

        return LikelihoodInterval(
            name=f"LikelihoodInterval_{self.name}",
            profile=profile,
            best_fit=best,
            confidence_level=1.0 - self._size,
        )

    def get_hypo_test(self) -> Optional[HypoTestResult]:
        """Likelihood-ratio test of the null hypothesis, or None."""
        if self._data is None or self._model is None or self._null is None:
            return None

        fit = self.global_fit()
        if fit is None:
            return None
        nll_mle = fit.min_nll

        constrained = self._free_parameters()
        with frozen_parameters(constrained, self._null.values()) as frozen:
            if constrained.has_free():
                cond = self.engine.fit(
                    self._model, self._data, constrained, **self.CONDITIONAL_FIT
                )
                if cond is None:
                    warn(
                        f"{self.name}: conditional fit with {frozen.names} fixed did not converge.",
                        UserWarning,
                    )
                    return None
                nll_cond = cond.min_nll
                branch = "fit"
            else:
                # nothing left to float: the NLL is a constant
                nll = self.engine.create_nll(self._model, self._data, constrained)
                nll_cond = self.engine.evaluate(nll)
                branch = "evaluate"

        delta_nll = max(nll_cond - nll_mle, 0.0)
        q = math.sqrt(2.0 * delta_nll)
        return HypoTestResult(
            name=f"ProfileLRHypoTestResult_{self.name}",
            null_p_value=significance_to_p_value(q),
            stats={
                "nll_mle": float(nll_mle),
                "nll_cond": float(nll_cond),
                "delta_nll": float(delta_nll),
                "q": float(q),
                "conditional": branch,
                "frozen": frozen.names,
            },
        )
