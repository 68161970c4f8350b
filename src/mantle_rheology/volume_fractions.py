"""Compositional field values -> phase volume fractions.

Phase 0 is the implicit background material; phase ``i`` (1..N) corresponds to
compositional field ``i-1``.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np


def compute_volume_fractions(
    composition: Sequence[float],
    mask: Optional[Sequence[bool]] = None,
) -> np.ndarray:
    """Return ``N+1`` non-negative fractions that sum to one.

    Fields excluded by ``mask`` (``False`` entries, e.g. strain trackers) are
    not phases: they get zero weight and do not enter the normalisation.
    Included fields are clipped to ``[0, 1]``; if they sum to one or more they
    are rescaled and the background vanishes, otherwise the background takes
    the remainder.
    """
    x = np.clip(np.asarray(composition, dtype=float), 0.0, 1.0)
    if mask is None:
        include = np.ones(x.shape, dtype=bool)
    else:
        include = np.asarray(mask, dtype=bool)
        assert include.shape == x.shape
    x = np.where(include, x, 0.0)

    fractions = np.zeros(x.size + 1, dtype=float)
    total = float(np.sum(x))
    if total >= 1.0:
        fractions[0] = 0.0
        fractions[1:] = x / total
    else:
        fractions[0] = 1.0 - total
        fractions[1:] = x
    return fractions
