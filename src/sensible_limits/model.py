from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .data import Dataset
from .params import Parameter, ParameterSet
from .util import infer_variable_names


@dataclass(eq=False)
class Model:
    """A probability density defined by a log-density function.

    Every argument of ``func`` is a variable. Which variables are observables
    is decided by the dataset: a variable naming a dataset column is read from
    the data, every other variable is a parameter. ``func`` must return the
    normalised log-density per observation (or a scalar when no variable is
    an observable).
    """

    name: str
    func: Callable[..., Any]
    variable_names: Tuple[str, ...]
    variables: ParameterSet

    # ---- constructor ----
    @staticmethod
    def from_function(
        func: Callable[..., Any],
        *,
        name: Optional[str] = None,
        **initial: Any,
    ) -> "Model":
        """Construct a Model from a plain log-density function signature.

        Keyword arguments give initial values. Passing a Parameter instead of
        a number shares that object with this model, which is how densities
        are tied together (e.g. a constraint on a nuisance parameter).
        """
        names = infer_variable_names(func)
        unknown = [k for k in initial if k not in names]
        if unknown:
            raise KeyError(f"Unknown variables for {func!r}: {unknown}")

        sig = inspect.signature(func)
        params = []
        for n in names:
            given = initial.get(n)
            if isinstance(given, Parameter):
                if given.name != n:
                    raise ValueError(
                        f"Shared parameter {given.name!r} cannot stand in for variable {n!r}."
                    )
                params.append(given)
                continue
            v = 0.0
            if given is not None:
                v = float(given)
            else:
                d = sig.parameters[n].default
                if isinstance(d, (int, float, np.number)) and not isinstance(d, bool):
                    v = float(d)
            params.append(Parameter(name=n, value=v))

        return Model(
            name=name or getattr(func, "__name__", "model"),
            func=func,
            variable_names=names,
            variables=ParameterSet(params),
        )

    def __getitem__(self, name: str) -> Parameter:
        return self.variables[name]

    def __repr__(self) -> str:
        return f"Model({self.name!r}, variables={self.variables.names})"

    # ---- builders (mutate the shared parameters; return self) ----
    def _lookup(self, name: str) -> Parameter:
        p = self.variables.find(name)
        if p is None:
            raise KeyError(name)
        return p

    def set(self, **values: float) -> "Model":
        """Set current parameter values."""
        for k, v in values.items():
            self._lookup(k).value = float(v)
        return self

    def fix(self, **values: float) -> "Model":
        """Mark parameters constant at the given values."""
        for k, v in values.items():
            p = self._lookup(k)
            p.value = float(v)
            p.constant = True
        return self

    def unfix(self, *names: str) -> "Model":
        """Clear the constant flag on the named parameters."""
        for k in names:
            self._lookup(k).constant = False
        return self

    def bound(self, **bounds: Tuple[Optional[float], Optional[float]]) -> "Model":
        """Apply (lo, hi) bounds; None means unbounded on that side."""
        for k, b in bounds.items():
            p = self._lookup(k)
            lo, hi = b
            if lo is not None and hi is not None and float(hi) <= float(lo):
                raise ValueError(f"Invalid bounds for {k!r}: require hi > lo.")
            p.bounds = (lo, hi)
        return self

    def error(self, **errors: float) -> "Model":
        """Set parameter errors (used as initial step sizes and for display)."""
        for k, e in errors.items():
            self._lookup(k).error = float(e)
        return self

    # ---- structure ----
    @property
    def factors(self) -> Tuple["Model", ...]:
        return (self,)

    def get_variables(self) -> ParameterSet:
        return self.variables

    def get_parameters(self, data: Optional[Dataset] = None) -> ParameterSet:
        """Return the variables not supplied by ``data`` (same objects)."""
        if data is None:
            return ParameterSet(self.get_variables().values())
        return ParameterSet(
            p for n, p in self.get_variables().items() if n not in data
        )

    def get_observables(self, data: Dataset) -> Tuple[str, ...]:
        return tuple(n for n in self.get_variables().names if n in data)

    def depends_on(self, data: Dataset) -> bool:
        return any(n in data for n in self.variable_names)

    # ---- evaluation ----
    def log_density(
        self,
        data: Optional[Dataset] = None,
        values: Optional[Mapping[str, float]] = None,
    ) -> Any:
        """Evaluate the log-density.

        Observables come from ``data``; parameters from ``values`` when given,
        otherwise from the current parameter values.
        """
        kw: Dict[str, Any] = {}
        for n in self.variable_names:
            if data is not None and n in data:
                kw[n] = data[n]
            elif values is not None and n in values:
                kw[n] = values[n]
            else:
                kw[n] = self.variables[n].value
        return self.func(**kw)

    def with_prior(self, prior: "Model", *, name: Optional[str] = None) -> "ProductModel":
        """Return a new ProductModel of this density and ``prior``."""
        if name is None:
            name = f"constrained_{self.name}_with_{prior.name}"
        return ProductModel(name=name, components=(self, prior))


class ProductModel(Model):
    """Product of densities.

    Components are held by reference and never copied or torn down here.
    A variable appearing in several components resolves to the first
    component's Parameter object.
    """

    def __init__(self, name: str, components: Sequence[Model]):
        if not components:
            raise ValueError("ProductModel requires at least one component.")
        self.components: Tuple[Model, ...] = tuple(components)
        merged = ParameterSet()
        for c in self.components:
            for p in c.get_variables().values():
                merged.add(p)
        super().__init__(
            name=name,
            func=self._product_func,
            variable_names=merged.names,
            variables=merged,
        )

    def __repr__(self) -> str:
        inner = " * ".join(c.name for c in self.factors)
        return f"ProductModel({self.name!r}: {inner})"

    def _product_func(self, **kw: Any) -> Any:
        raise TypeError("ProductModel is evaluated per factor; use log_density().")

    @property
    def factors(self) -> Tuple[Model, ...]:
        out: list[Model] = []
        for c in self.components:
            out.extend(c.factors)
        return tuple(out)

    def depends_on(self, data: Dataset) -> bool:
        return any(f.depends_on(data) for f in self.factors)

    def log_density(
        self,
        data: Optional[Dataset] = None,
        values: Optional[Mapping[str, float]] = None,
    ) -> Any:
        vals = self.variables.as_dict()
        if values is not None:
            vals.update(values)
        total: Any = 0.0
        for f in self.factors:
            total = total + f.log_density(data, vals)
        return total
