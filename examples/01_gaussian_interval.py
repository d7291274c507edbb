import numpy as np
import matplotlib.pyplot as plt
from sensible_limits import Dataset, ProfileLikelihoodCalculator, models
from sensible_limits.plotting import plot_profile


model = models.gaussian(mu_value=0.0, sigma_value=1.0)

rng = np.random.default_rng(0)
data = Dataset.from_arrays(x=rng.normal(1.2, 0.8, size=200))

# 68% interval on the mean; the width is profiled.
calc = ProfileLikelihoodCalculator(
    data=data,
    model=model,
    parameters_of_interest=[model["mu"]],
    size=0.32,
    name="gauss",
)
interval = calc.get_interval()

print(calc.fit_result.summary())
print(interval.summary())
print("contains 1.2:", interval.is_in_interval({"mu": 1.2}))

fig, ax = plot_profile(interval)
ax.legend()
plt.show()
