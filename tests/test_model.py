import numpy as np
import pytest
from scipy import stats

from sensible_limits import Dataset, Model, Parameter, ProductModel, models


def gauss(x, mu, sigma=1.0):
    return stats.norm.logpdf(x, mu, sigma)


def test_from_function_reads_signature_defaults():
    m = Model.from_function(gauss, mu=0.5)

    assert m.variable_names == ("x", "mu", "sigma")
    assert m["mu"].value == 0.5
    assert m["sigma"].value == 1.0
    assert m.name == "gauss"


def test_from_function_unknown_variable_raises():
    with pytest.raises(KeyError):
        Model.from_function(gauss, tau=1.0)


def test_parameters_are_decided_by_the_data():
    m = Model.from_function(gauss)
    data = Dataset.from_arrays(x=[0.0, 1.0])

    assert m.get_parameters(data).names == ("mu", "sigma")
    assert m.get_observables(data) == ("x",)

    data_with_sigma = Dataset.from_arrays(x=[0.0, 1.0], sigma=[1.0, 2.0])
    assert m.get_parameters(data_with_sigma).names == ("mu",)


def test_builders_mutate_shared_parameters():
    m = Model.from_function(gauss).fix(sigma=2.0).bound(mu=(-5, 5)).error(mu=0.1)

    assert m["sigma"].constant is True
    assert m["sigma"].value == 2.0
    assert m["mu"].bounds == (-5, 5)
    assert m["mu"].error == 0.1

    m.unfix("sigma")
    assert m["sigma"].constant is False
    with pytest.raises(KeyError):
        m.set(nope=1.0)


def test_shared_parameter_links_models():
    nu = Parameter("nu", 0.0)
    main = models.gaussian(mu="nu", mu_value=nu)
    constraint = models.gaussian_constraint(nu, nominal=0.0, sigma=0.5)

    product = main.with_prior(constraint)
    assert isinstance(product, ProductModel)
    assert product.name == f"constrained_{main.name}_with_{constraint.name}"
    assert product["nu"] is nu
    assert [f.name for f in product.factors] == [main.name, constraint.name]

    data = Dataset.from_arrays(x=[0.1, -0.2])
    assert product.get_parameters(data).names == ("nu", "sigma", "nu_nominal", "nu_sigma")
    assert product.get_parameters(data).free().names == ("nu", "sigma")


def test_product_log_density_sums_factors():
    mu = Parameter("mu", 0.3)
    a = models.gaussian(mu_value=mu)
    b = models.gaussian_constraint(mu, nominal=0.0, sigma=2.0)
    product = a.with_prior(b)
    data = Dataset.from_arrays(x=[0.0, 1.0])

    expected_events = stats.norm.logpdf(np.array([0.0, 1.0]), 0.3, 1.0)
    expected_constraint = stats.norm.logpdf(0.0, 0.3, 2.0)
    got = product.log_density(data)
    np.testing.assert_allclose(got, expected_events + expected_constraint)


def test_gaussian_constraint_rejects_nonpositive_sigma():
    with pytest.raises(ValueError):
        models.gaussian_constraint(Parameter("nu"), nominal=0.0, sigma=0.0)
