"""
Container for Monte Carlo posterior instances of compositional data.

MonteCarloInstances holds, for every sample, a matrix of posterior draws
(features × Monte Carlo instances) that have already been moved into a
log-ratio basis (and optionally augmented with scale noise). The test engine
never touches the raw counts: it asks the container for one instance at a
time via ``slice_instance``.

Biological Context:
    A sequencing run only reports relative abundances. Drawing from the
    Dirichlet posterior of each sample's composition gives an ensemble of
    plausible compositions; repeating every downstream test across that
    ensemble and averaging yields estimates that are stable against
    sampling noise in low-count features.

Engineering Design:
    - Immutable: arrays are stored read-only; slicing returns fresh copies
    - Validated: constructor checks that every sample shares one shape
    - Conditions are carried alongside the draws, but the engine receives
      them as a separate argument and checks the two for consistency

Examples:
    >>> import numpy as np
    >>> draws = {
    ...     "S1": np.zeros((3, 4)),
    ...     "S2": np.ones((3, 4)),
    ... }
    >>> mc = MonteCarloInstances(
    ...     instances=draws,
    ...     feature_ids=["f1", "f2", "f3"],
    ...     conditions=["A", "B"],
    ... )
    >>> mc.slice_instance(0).shape
    (3, 2)
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

__all__ = ['MonteCarloInstances']


class MonteCarloInstances:
    """
    Immutable per-sample collection of Monte Carlo instance matrices.

    Attributes:
        instances: Mapping sample ID -> (n_features, n_instances) array
        sample_ids: Ordered sample identifiers
        feature_ids: Ordered feature identifiers (row labels of every result)
        conditions: Condition label for each sample, in sample order
        denom: Description of the log-ratio denominator used to build the draws
        scaled: Whether scale-model noise was added

    Shape Invariants:
        - every matrix in ``instances`` has shape (n_features, n_instances)
        - len(conditions) == n_samples
    """

    def __init__(
        self,
        instances: Mapping[str, NDArray[np.float64]],
        feature_ids: Sequence[str] | pd.Index,
        conditions: Sequence[str],
        denom: str = "all",
        scaled: bool = False,
    ):
        """
        Initialize with validation.

        Args:
            instances: Ordered mapping of sample ID to its draws matrix.
                Insertion order defines sample order.
            feature_ids: Row identifiers shared by every matrix.
            conditions: One condition label per sample.
            denom: Label of the denominator basis, kept as provenance.
            scaled: True when draws include scale-model noise.

        Raises:
            TypeError: If a matrix is not a numpy array
            ValueError: If shapes are inconsistent
        """
        if len(instances) == 0:
            raise ValueError("instances must contain at least one sample")

        feature_ids = pd.Index(feature_ids)
        if feature_ids.has_duplicates:
            raise ValueError("feature_ids must be unique")

        shape = None
        stacked = []
        for sample_id, mat in instances.items():
            if not isinstance(mat, np.ndarray):
                raise TypeError(
                    f"instances[{sample_id!r}] must be np.ndarray, got {type(mat)}"
                )
            if mat.ndim != 2:
                raise ValueError(
                    f"instances[{sample_id!r}] must be 2D, got shape {mat.shape}"
                )
            if shape is None:
                shape = mat.shape
            elif mat.shape != shape:
                raise ValueError(
                    f"instances[{sample_id!r}] has shape {mat.shape}, "
                    f"expected {shape} (all samples must share one shape)"
                )
            stacked.append(np.asarray(mat, dtype=np.float64))

        if shape[0] != len(feature_ids):
            raise ValueError(
                f"feature_ids length ({len(feature_ids)}) must match "
                f"matrix rows ({shape[0]})"
            )
        if shape[1] == 0:
            raise ValueError("instances must contain at least one Monte Carlo instance")

        conditions = tuple(str(c) for c in conditions)
        if len(conditions) != len(stacked):
            raise ValueError(
                f"conditions length ({len(conditions)}) must match "
                f"number of samples ({len(stacked)})"
            )

        # (n_samples, n_features, n_instances), read-only
        data = np.stack(stacked, axis=0)
        data.flags.writeable = False

        self._data = data
        self._sample_ids = pd.Index([str(s) for s in instances.keys()])
        self._feature_ids = feature_ids
        self._conditions = conditions
        self._denom = denom
        self._scaled = scaled

    @property
    def sample_ids(self) -> pd.Index:
        """Ordered sample identifiers."""
        return self._sample_ids

    @property
    def feature_ids(self) -> pd.Index:
        """Ordered feature identifiers."""
        return self._feature_ids

    @property
    def conditions(self) -> tuple[str, ...]:
        """Condition labels stored with the draws."""
        return self._conditions

    @property
    def n_samples(self) -> int:
        return self._data.shape[0]

    @property
    def n_features(self) -> int:
        return self._data.shape[1]

    @property
    def n_instances(self) -> int:
        """Number of Monte Carlo instances per sample."""
        return self._data.shape[2]

    @property
    def denom(self) -> str:
        return self._denom

    @property
    def scaled(self) -> bool:
        return self._scaled

    @property
    def instances(self) -> Mapping[str, NDArray[np.float64]]:
        """Read-only mapping of sample ID to its (features × instances) draws."""
        return MappingProxyType(
            {sid: self._data[j] for j, sid in enumerate(self._sample_ids)}
        )

    def slice_instance(self, i: int) -> NDArray[np.float64]:
        """
        Build the features × samples matrix for Monte Carlo instance ``i``.

        Column ``j`` is column ``i`` of sample ``j``'s draws. The returned
        array is a fresh copy and never aliases the stored draws.

        Args:
            i: Zero-based instance index.

        Returns:
            Array of shape (n_features, n_samples).

        Raises:
            IndexError: If ``i`` is outside [0, n_instances).
        """
        if not 0 <= i < self.n_instances:
            raise IndexError(
                f"instance index {i} out of range for {self.n_instances} instances"
            )
        return np.array(self._data[:, :, i].T, dtype=np.float64, copy=True)

    def iter_instances(self) -> Iterator[tuple[int, NDArray[np.float64]]]:
        """Yield ``(i, slice_instance(i))`` for every instance in order."""
        for i in range(self.n_instances):
            yield i, self.slice_instance(i)

    def __repr__(self) -> str:
        return (
            f"MonteCarloInstances(n_features={self.n_features}, "
            f"n_samples={self.n_samples}, n_instances={self.n_instances}, "
            f"denom={self._denom!r}, scaled={self._scaled})"
        )
