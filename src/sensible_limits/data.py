from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class Dataset:
    """Named observation columns consumed by a likelihood.

    All columns are 1D and share the same length. ``weights`` (optional)
    scales each event's contribution to the negative log-likelihood.
    """

    columns: Mapping[str, np.ndarray]
    weights: Optional[np.ndarray] = None
    name: str = "data"

    def __post_init__(self) -> None:
        if not self.columns:
            raise ValueError("Dataset requires at least one column.")
        cols: Dict[str, np.ndarray] = {}
        n: Optional[int] = None
        for k, v in self.columns.items():
            arr = np.asarray(v, dtype=float).view()
            if arr.ndim == 0:
                arr = arr.reshape((1,))
            if arr.ndim != 1:
                raise ValueError(f"Column {k!r} must be 1D; got shape {arr.shape}.")
            if n is None:
                n = int(arr.shape[0])
            elif arr.shape[0] != n:
                raise ValueError(
                    f"Column {k!r} has length {arr.shape[0]}; expected {n}."
                )
            arr.setflags(write=False)
            cols[str(k)] = arr
        object.__setattr__(self, "columns", cols)

        if self.weights is not None:
            w = np.asarray(self.weights, dtype=float)
            w = np.broadcast_to(w, (n,)).copy()
            w.setflags(write=False)
            object.__setattr__(self, "weights", w)

    @staticmethod
    def from_arrays(
        *,
        weights: Optional[Any] = None,
        name: str = "data",
        **columns: Any,
    ) -> "Dataset":
        """Create a Dataset from keyword columns, e.g. ``Dataset.from_arrays(x=x)``."""
        return Dataset(columns=columns, weights=weights, name=name)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.columns.keys())

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    def __getitem__(self, name: str) -> np.ndarray:
        return self.columns[name]

    def __len__(self) -> int:
        return int(next(iter(self.columns.values())).shape[0])

    @property
    def sum_weights(self) -> float:
        if self.weights is None:
            return float(len(self))
        return float(np.sum(self.weights))
