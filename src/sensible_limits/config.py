from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .model import Model
from .params import ParameterSet


@dataclass(frozen=True)
class ModelConfig:
    """Bundle of a density with its parameter roles.

    ``pdf`` does not include the prior. Use :meth:`constrained` to obtain a
    config whose pdf is the product of both; the original config is left as
    it was.
    """

    pdf: Model
    prior_pdf: Optional[Model] = None
    parameters_of_interest: Optional[ParameterSet] = None
    name: str = "ModelConfig"

    def constrained(self) -> "ModelConfig":
        """Return a config with the prior multiplied into the pdf.

        Without a prior this config is returned unchanged.
        """
        if self.prior_pdf is None:
            return self
        composite = self.pdf.with_prior(self.prior_pdf)
        return replace(self, pdf=composite, prior_pdf=None)

    def with_poi(self, *names: str) -> "ModelConfig":
        """Return a config whose parameters of interest are the named pdf variables."""
        variables = self.pdf.get_variables()
        missing = [n for n in names if n not in variables]
        if missing:
            raise KeyError(f"Unknown parameters for {self.pdf.name!r}: {missing}")
        return replace(
            self, parameters_of_interest=ParameterSet(variables[n] for n in names)
        )
