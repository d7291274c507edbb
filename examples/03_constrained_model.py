import numpy as np
from sensible_limits import Dataset, Model, ModelConfig, Parameter, ProfileLikelihoodCalculator, models


# Poisson counting experiment: n ~ Poisson(mu_sig + b), with the background b
# measured elsewhere as 4.0 +/- 0.8.
b = Parameter("b", 4.0, bounds=(0.0, None))


def counts(n, mu_sig, b):
    return models.poisson_logpmf(n, mu_sig + b)


pdf = Model.from_function(counts, mu_sig=1.0, b=b).bound(mu_sig=(0.0, 50.0))
prior = models.gaussian_constraint(b, nominal=4.0, sigma=0.8)
config = ModelConfig(pdf=pdf, prior_pdf=prior, name="counting").with_poi("mu_sig")

data = Dataset.from_arrays(n=np.array([11.0]))

calc = ProfileLikelihoodCalculator.from_model_config(data, config, size=0.05, name="counting")
print(calc.model)

interval = calc.get_interval()
print(interval.summary())

calc.set_null_parameters([Parameter("mu_sig", 0.0)])
result = calc.get_hypo_test()
print(result.summary())
print(f"b after the test: {b.value:.3g} (constant={b.constant})")
