"""
Two-group design construction for per-instance hypothesis tests.

Turns a condition vector into the binary group assignment consumed by the
Welch and Wilcoxon statistics, validating the preconditions up front so the
Monte Carlo loop never starts on a malformed design.

Group encoding:
    group[j] = 1 if sample j belongs to the reference level, else 0

The reference level is the first level in sorted order, so ``["NS", "S"]``
gives reference ``"NS"``. Log-fold-changes are reported as
mean(reference) - mean(other).

Pairing rule (paired tests):
    The k-th reference sample (in condition-vector order) is paired with the
    k-th sample of the other level. Both levels must have the same number of
    samples.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class TwoGroupDesign:
    """Validated two-level design.

    Attributes:
        conditions: Condition label per sample, in sample order.
        levels: The two levels, reference first.
        group: Binary assignment (1 = reference level, 0 = other), read-only.
        paired: Whether tests use matched pairs.
    """

    conditions: tuple[str, ...]
    levels: tuple[str, str]
    group: NDArray[np.int8]
    paired: bool = False

    def __post_init__(self):
        group = np.array(self.group, dtype=np.int8, copy=True)
        group.flags.writeable = False
        object.__setattr__(self, 'group', group)

    @property
    def reference(self) -> str:
        return self.levels[0]

    @property
    def n_samples(self) -> int:
        return len(self.conditions)

    @property
    def reference_idx(self) -> NDArray[np.intp]:
        """Column indices of reference-level samples, in order."""
        return np.flatnonzero(self.group == 1)

    @property
    def other_idx(self) -> NDArray[np.intp]:
        """Column indices of the other level, in order."""
        return np.flatnonzero(self.group == 0)

    @property
    def n_reference(self) -> int:
        return int(self.group.sum())

    @property
    def n_other(self) -> int:
        return self.n_samples - self.n_reference


def build_two_group_design(
    conditions: Sequence[str],
    n_samples: int | None = None,
    paired: bool = False,
    stored_conditions: Sequence[str] | None = None,
) -> TwoGroupDesign:
    """
    Validate a condition vector and derive its group assignment.

    Args:
        conditions: One label per sample.
        n_samples: Sample count of the data the design will be applied to.
            If given, ``len(conditions)`` must match it.
        paired: Build a paired design (requires equal group sizes).
        stored_conditions: Conditions recorded alongside the Monte Carlo
            draws. If given, must equal ``conditions`` element-wise.

    Returns:
        TwoGroupDesign

    Raises:
        ValueError: If there are not exactly two levels, if lengths mismatch,
            if the stored conditions disagree, or if a paired design has
            unequal group sizes.
    """
    conditions = tuple(str(c) for c in conditions)

    levels = sorted(set(conditions))
    if len(levels) != 2:
        raise ValueError(
            f"Exactly two unique condition levels are required, got {len(levels)}: "
            f"{levels[:10]}"
        )

    if n_samples is not None and len(conditions) != n_samples:
        raise ValueError(
            f"Mismatch between length of conditions ({len(conditions)}) and "
            f"number of samples ({n_samples})"
        )

    if stored_conditions is not None:
        stored = tuple(str(c) for c in stored_conditions)
        if stored != conditions:
            raise ValueError(
                "conditions do not match the conditions stored with the "
                "Monte Carlo instances"
            )

    group = np.array([c == levels[0] for c in conditions], dtype=np.int8)

    if paired:
        n_ref = int(group.sum())
        n_other = len(group) - n_ref
        if n_ref != n_other:
            raise ValueError(
                f"Paired tests require equal group sizes: "
                f"{levels[0]}={n_ref}, {levels[1]}={n_other}"
            )
        if n_ref < 2:
            raise ValueError("Paired tests require at least two pairs")

    return TwoGroupDesign(
        conditions=conditions,
        levels=(levels[0], levels[1]),
        group=group,
        paired=paired,
    )
