import math

import numpy as np
import pytest
from scipy import stats

from sensible_limits import (
    Dataset,
    LikelihoodInterval,
    ModelConfig,
    Parameter,
    ParameterSet,
    ProfileLikelihoodCalculator,
    models,
)
from sensible_limits.backends.common import FitResult


class ScriptedEngine:
    """Engine double returning fixed NLL minima and recording every fit."""

    name = "scripted"

    def __init__(self, global_nll=10.0, cond_nll=15.2, fitted=None, fail_global=False, fail_cond=False):
        self.global_nll = global_nll
        self.cond_nll = cond_nll
        self.fitted = dict(fitted or {})
        self.fail_global = fail_global
        self.fail_cond = fail_cond
        self.fits = []
        self.nll_evaluations = 0

    @property
    def global_fits(self):
        return [f for f in self.fits if f["kind"] == "global"]

    @property
    def conditional_fits(self):
        return [f for f in self.fits if f["kind"] == "conditional"]

    def fit(self, model, data, constrained, *, strategy=1, hesse=True, minos=False):
        kind = "global" if hesse else "conditional"
        self.fits.append(
            {
                "kind": kind,
                "strategy": strategy,
                "minos": minos,
                "state": {n: (p.value, p.constant) for n, p in constrained.items()},
            }
        )
        free = constrained.free()
        if kind == "global":
            if self.fail_global:
                return None
            final = ParameterSet(
                Parameter(n, self.fitted.get(n, p.value), error=0.1) for n, p in free.items()
            )
            min_nll = self.global_nll
        else:
            if self.fail_cond:
                return None
            final = free.snapshot()
            min_nll = self.cond_nll
        return FitResult(
            min_nll=min_nll,
            float_params_final=final,
            float_params_initial=free.snapshot(),
            const_params=ParameterSet(p for p in constrained.values() if p.constant).snapshot(),
        )

    def create_nll(self, model, data, constrained):
        def nll(point=None):
            self.nll_evaluations += 1
            return self.cond_nll

        return nll

    def create_profile(self, nll, poi):
        return ("profile", nll, poi)

    def minimize(self, nll, *, fixed=None, start=None, strategy=1):
        raise AssertionError("calculator should not minimise directly")

    def evaluate(self, fn, point=None):
        if callable(fn):
            return float(fn(point))
        return 0.0


def _setup(engine, *, fix_sigma=False, null_value=0.0):
    model = models.gaussian(mu_value=1.3)
    if fix_sigma:
        model.fix(sigma=1.0)
    data = Dataset.from_arrays(x=[0.5, 1.0, 1.5])
    calc = ProfileLikelihoodCalculator(
        data=data,
        model=model,
        parameters_of_interest=[model["mu"]],
        null_parameters=[Parameter("mu", null_value)],
        name="test",
        engine=engine,
    )
    return calc, model


def test_global_fit_runs_once_across_queries():
    engine = ScriptedEngine()
    calc, _ = _setup(engine)

    assert calc.get_hypo_test() is not None
    assert calc.get_interval() is not None
    assert calc.get_hypo_test() is not None

    assert len(engine.global_fits) == 1
    assert engine.global_fits[0]["strategy"] == 1
    assert engine.global_fits[0]["minos"] is False
    assert calc.fit_result is not None


def test_reset_and_set_data_refit():
    engine = ScriptedEngine()
    calc, _ = _setup(engine)

    calc.get_hypo_test()
    calc.reset()
    assert calc.fit_result is None
    calc.get_hypo_test()
    assert len(engine.global_fits) == 2

    calc.set_data(Dataset.from_arrays(x=[0.0, 2.0]))
    calc.get_interval()
    assert len(engine.global_fits) == 3

    calc.set_model(calc.model)
    calc.get_interval()
    assert len(engine.global_fits) == 4


def test_p_value_from_likelihood_ratio():
    engine = ScriptedEngine(global_nll=10.0, cond_nll=15.2)
    calc, _ = _setup(engine)

    result = calc.get_hypo_test()

    assert result.name == "ProfileLRHypoTestResult_test"
    assert result.stats["delta_nll"] == pytest.approx(5.2)
    assert result.stats["q"] == pytest.approx(math.sqrt(10.4))
    assert result.null_p_value == pytest.approx(stats.norm.sf(math.sqrt(10.4)))
    assert result.null_p_value == pytest.approx(6.3e-4, rel=5e-2)
    assert result.significance == pytest.approx(math.sqrt(10.4))
    assert result.test_statistic is None
    assert engine.conditional_fits[0]["strategy"] == 0


def test_negative_delta_is_clamped():
    engine = ScriptedEngine(global_nll=10.0, cond_nll=9.5)
    calc, _ = _setup(engine)

    result = calc.get_hypo_test()

    assert result.stats["delta_nll"] == 0.0
    assert result.stats["q"] == 0.0
    assert result.null_p_value == 0.5


def test_null_parameters_frozen_during_conditional_fit():
    engine = ScriptedEngine()
    calc, model = _setup(engine, null_value=0.25)

    result = calc.get_hypo_test()

    state = engine.conditional_fits[0]["state"]
    assert state["mu"] == (0.25, True)
    assert state["sigma"][1] is False
    assert result.stats["conditional"] == "fit"
    assert result.stats["frozen"] == ("mu",)
    assert model["mu"].value == 1.3
    assert model["mu"].constant is False


def test_evaluate_branch_when_nothing_floats():
    engine = ScriptedEngine(global_nll=10.0, cond_nll=12.0)
    calc, model = _setup(engine, fix_sigma=True)

    result = calc.get_hypo_test()

    assert engine.conditional_fits == []
    assert engine.nll_evaluations == 1
    assert result.stats["conditional"] == "evaluate"
    assert result.stats["nll_cond"] == 12.0
    assert result.null_p_value == pytest.approx(stats.norm.sf(2.0))
    assert model["mu"].value == 1.3
    assert model["mu"].constant is False


def test_conditional_failure_returns_none_and_restores():
    engine = ScriptedEngine(fail_cond=True)
    calc, model = _setup(engine)

    with pytest.warns(UserWarning, match="conditional fit"):
        assert calc.get_hypo_test() is None

    assert model["mu"].value == 1.3
    assert model["mu"].constant is False


def test_global_failure_returns_none():
    engine = ScriptedEngine(fail_global=True)
    calc, _ = _setup(engine)

    with pytest.warns(UserWarning, match="global fit"):
        assert calc.get_interval() is None
    with pytest.warns(UserWarning):
        assert calc.get_hypo_test() is None
    assert engine.conditional_fits == []


def test_missing_inputs_return_none_without_fitting():
    engine = ScriptedEngine()
    model = models.gaussian()
    data = Dataset.from_arrays(x=[0.0, 1.0])

    calc = ProfileLikelihoodCalculator(data=data, model=model, engine=engine)
    assert calc.get_interval() is None
    assert calc.get_hypo_test() is None

    calc = ProfileLikelihoodCalculator(
        model=model, parameters_of_interest=[model["mu"]], engine=engine
    )
    assert calc.get_interval() is None

    assert engine.fits == []


def test_interval_warm_starts_poi():
    engine = ScriptedEngine(fitted={"mu": 0.8})
    calc, model = _setup(engine)

    interval = calc.get_interval()

    assert isinstance(interval, LikelihoodInterval)
    assert interval.name == "LikelihoodInterval_test"
    assert interval.confidence_level == pytest.approx(0.95)
    assert interval.best_fit["mu"].value == 0.8
    assert interval.best_fit["mu"].error == 0.1
    assert model["mu"].value == 0.8
    assert model["mu"].error == 0.1


def test_interval_passes_through_unfitted_poi():
    engine = ScriptedEngine()
    model = models.gaussian().fix(sigma=2.0)
    calc = ProfileLikelihoodCalculator(
        data=Dataset.from_arrays(x=[0.0, 1.0]),
        model=model,
        parameters_of_interest=[model["sigma"]],
        engine=engine,
    )

    interval = calc.get_interval()

    assert interval.best_fit["sigma"] is model["sigma"]


def test_duplicate_poi_names_keep_first():
    engine = ScriptedEngine(fitted={"mu": 0.8})
    calc, model = _setup(engine)
    calc.set_parameters_of_interest([model["mu"], Parameter("mu", 5.0)])

    interval = calc.get_interval()

    assert interval.best_fit.names == ("mu",)
    assert interval.best_fit["mu"].value == 0.8
    assert interval.threshold() == pytest.approx(0.5 * stats.chi2.ppf(0.95, 1))


def test_null_parameter_outside_free_set_is_skipped():
    engine = ScriptedEngine(global_nll=10.0, cond_nll=12.0)
    calc, model = _setup(engine, fix_sigma=True)
    calc.set_null_parameters([Parameter("mu", 0.0), Parameter("sigma", 3.0)])

    result = calc.get_hypo_test()

    assert result.stats["frozen"] == ("mu",)
    assert model["sigma"].value == 1.0
    assert model["sigma"].constant is True
    assert model["mu"].constant is False


def test_size_and_confidence_level():
    calc = ProfileLikelihoodCalculator(size=0.32, engine=ScriptedEngine())
    assert calc.confidence_level == pytest.approx(0.68)

    calc.set_confidence_level(0.9)
    assert calc.size == pytest.approx(0.1)

    with pytest.raises(ValueError):
        calc.set_size(0.0)
    with pytest.raises(ValueError):
        ProfileLikelihoodCalculator(size=1.5)


def test_engine_options_need_engine_name():
    with pytest.raises(TypeError):
        ProfileLikelihoodCalculator(engine=ScriptedEngine(), engine_options={"method": "Powell"})
    with pytest.raises(ValueError):
        ProfileLikelihoodCalculator(engine="minuit")


# ---- with the scipy engine ----


def _gaussian_data(seed=0, n=100, mu=0.3):
    rng = np.random.default_rng(seed)
    return rng.normal(mu, 1.0, size=n)


def test_interval_limits_for_gaussian_mean():
    x = _gaussian_data()
    model = models.gaussian().fix(sigma=1.0)
    calc = ProfileLikelihoodCalculator(
        data=Dataset.from_arrays(x=x),
        model=model,
        parameters_of_interest=[model["mu"]],
        size=0.05,
    )

    interval = calc.get_interval()

    xbar = float(np.mean(x))
    half = stats.norm.isf(0.025) / np.sqrt(x.size)
    assert interval.lower_limit("mu") == pytest.approx(xbar - half, abs=1e-4)
    assert interval.upper_limit("mu") == pytest.approx(xbar + half, abs=1e-4)
    assert interval.is_in_interval({"mu": xbar + 0.9 * half})
    assert not interval.is_in_interval({"mu": xbar + 1.1 * half})
    assert model["sigma"].constant is True


def test_empty_poi_set_gives_zero_threshold_region():
    x = _gaussian_data()
    model = models.gaussian().fix(sigma=1.0)
    calc = ProfileLikelihoodCalculator(
        data=Dataset.from_arrays(x=x),
        model=model,
        parameters_of_interest=ParameterSet(),
    )

    interval = calc.get_interval()

    assert len(interval.best_fit) == 0
    assert interval.threshold() == 0.0
    assert interval.is_in_interval()


def test_hypo_test_for_gaussian_mean():
    x = _gaussian_data(seed=4)
    model = models.gaussian().fix(sigma=1.0)
    calc = ProfileLikelihoodCalculator(
        data=Dataset.from_arrays(x=x),
        model=model,
        null_parameters=[Parameter("mu", 0.0)],
    )

    result = calc.get_hypo_test()

    q = np.sqrt(x.size) * abs(np.mean(x))
    assert result.stats["conditional"] == "evaluate"
    assert result.stats["q"] == pytest.approx(q, rel=1e-3)
    assert result.null_p_value == pytest.approx(stats.norm.sf(q), rel=1e-2)


def test_hypo_test_profiles_width():
    x = _gaussian_data(seed=7, n=200)
    model = models.gaussian()
    calc = ProfileLikelihoodCalculator(
        data=Dataset.from_arrays(x=x),
        model=model,
        null_parameters=[Parameter("mu", 0.0)],
    )

    result = calc.get_hypo_test()

    expected = 0.5 * x.size * np.log1p(np.mean(x) ** 2 / np.var(x))
    assert result.stats["conditional"] == "fit"
    assert result.stats["delta_nll"] == pytest.approx(expected, rel=1e-3)
    assert model["mu"].constant is False


def test_from_model_config_multiplies_prior():
    x = _gaussian_data(seed=1)
    pdf = models.gaussian().fix(sigma=1.0)
    prior = models.gaussian_constraint(pdf["mu"], nominal=0.0, sigma=0.1)
    config = ModelConfig(pdf=pdf, prior_pdf=prior).with_poi("mu")

    calc = ProfileLikelihoodCalculator.from_model_config(Dataset.from_arrays(x=x), config)
    interval = calc.get_interval()

    assert calc.model_config.prior_pdf is None
    assert calc.model.name == "constrained_gaussian_with_mu_constraint"
    assert config.pdf is pdf
    # precision-weighted mean of data (n / 1) and constraint (1 / 0.01)
    expected = x.size * np.mean(x) / (x.size + 100.0)
    assert calc.fit_result.float_params_final["mu"].value == pytest.approx(expected, abs=1e-5)
    half = stats.norm.isf(0.025) / np.sqrt(x.size + 100.0)
    assert interval.upper_limit("mu") == pytest.approx(expected + half, abs=1e-4)
