"""Combining per-phase properties into one value per point.

Two families are provided:

* :func:`average_value` - the four named schemes used for viscosity, density
  and the yielding flag of the visco-plastic model;
* :func:`weighted_p_norm_average` and its derivative - the generalised mean
  ``(sum_i w_i x_i^p)^(1/p)`` that unifies the schemes through ``p`` and is
  used for Newton derivatives.
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence

import numpy as np

from mantle_rheology.errors import ConfigurationError


class AveragingScheme(Enum):
    ARITHMETIC = "arithmetic"
    HARMONIC = "harmonic"
    GEOMETRIC = "geometric"
    MAXIMUM_COMPOSITION = "maximum composition"


_SCHEME_ALIASES = {
    "maximum_composition": "maximum composition",
    "max composition": "maximum composition",
    "infinity norm": "maximum composition",
}


def parse_averaging_scheme(name) -> AveragingScheme:
    if isinstance(name, AveragingScheme):
        return name
    key = str(name).strip().lower()
    key = _SCHEME_ALIASES.get(key, key)
    try:
        return AveragingScheme(key)
    except ValueError:
        raise ConfigurationError(f"Not a valid viscosity averaging scheme: '{name}'") from None


def averaging_exponent(scheme: AveragingScheme) -> float:
    """Exponent ``p`` of the weighted p-norm equivalent to ``scheme``.

    Maximum composition has no finite equivalent; ``p = 1000`` selects the
    extreme branch of the p-norm helpers.
    """
    if scheme is AveragingScheme.HARMONIC:
        return -1.0
    if scheme is AveragingScheme.ARITHMETIC:
        return 1.0
    if scheme is AveragingScheme.MAXIMUM_COMPOSITION:
        return 1000.0
    return 0.0


def average_value(
    volume_fractions: Sequence[float],
    values: Sequence[float],
    scheme: AveragingScheme,
) -> float:
    f = np.asarray(volume_fractions, dtype=float)
    v = np.asarray(values, dtype=float)
    assert f.shape == v.shape

    if scheme is AveragingScheme.ARITHMETIC:
        return float(np.sum(f * v))
    if scheme is AveragingScheme.HARMONIC:
        return float(1.0 / np.sum(f / v))
    if scheme is AveragingScheme.GEOMETRIC:
        return float(np.exp(np.sum(f * np.log(v))))
    if scheme is AveragingScheme.MAXIMUM_COMPOSITION:
        # np.argmax returns the first index on ties
        return float(v[int(np.argmax(f))])
    raise ConfigurationError(f"Unknown averaging scheme {scheme!r}")


def weighted_p_norm_average(
    weights: Sequence[float],
    values: Sequence[float],
    p: float,
) -> float:
    """Generalised mean of ``values`` with ``weights`` normalised to sum 1.

    Entries with zero weight are ignored. ``p <= -1000`` and ``p >= 1000`` give
    the minimum and maximum of the weighted entries, ``p == 0`` the geometric
    mean.
    """
    w = np.asarray(weights, dtype=float)
    v = np.asarray(values, dtype=float)
    active = w != 0.0
    w = w[active] / np.sum(w[active])
    v = v[active]

    if p <= -1000.0:
        return float(np.min(v))
    if p >= 1000.0:
        return float(np.max(v))
    if p == 0.0:
        return float(np.exp(np.sum(w * np.log(v))))
    if p == -1.0:
        return float(1.0 / np.sum(w / v))
    if p == 1.0:
        return float(np.sum(w * v))
    return float(np.sum(w * v**p) ** (1.0 / p))


def derivative_of_weighted_p_norm_average(
    averaged_parameter: float,
    weights: Sequence[float],
    values: Sequence[float],
    derivatives,
    p: float,
):
    """Chain rule through :func:`weighted_p_norm_average`.

    ``derivatives`` holds one entry per phase: scalars ``(n_phases,)`` or
    tensors ``(n_phases, dim, dim)``. The result has the shape of one entry.
    """
    w = np.asarray(weights, dtype=float)
    v = np.asarray(values, dtype=float)
    d = np.asarray(derivatives, dtype=float)
    active = w != 0.0
    w = w[active] / np.sum(w[active])
    v = v[active]
    d = d[active]

    if p <= -1000.0:
        return d[int(np.argmin(v))].copy()
    if p >= 1000.0:
        return d[int(np.argmax(v))].copy()

    # broadcast weights over tensor entries
    shape = (-1,) + (1,) * (d.ndim - 1)
    if p == 0.0:
        return float(averaged_parameter) * np.sum((w / v).reshape(shape) * d, axis=0)
    scale = float(averaged_parameter) ** (1.0 - p)
    return scale * np.sum((w * v ** (p - 1.0)).reshape(shape) * d, axis=0)
