"""sensible_limits public API."""
from .params import Parameter, ParameterSet
from .data import Dataset
from .model import Model, ProductModel
from .config import ModelConfig
from .results import HypoTestResult, LikelihoodInterval
from .calculator import CombinedCalculator, ProfileLikelihoodCalculator
from . import models

__all__ = [
    "CombinedCalculator",
    "Dataset",
    "HypoTestResult",
    "LikelihoodInterval",
    "Model",
    "ModelConfig",
    "Parameter",
    "ParameterSet",
    "ProductModel",
    "ProfileLikelihoodCalculator",
    "models",
]
