"""Finite-difference viscosity derivatives for the Newton solver.

The per-phase viscosity is treated as a black box ``eta(strain_rate, pressure)``
returning one value per phase. Each independent strain-rate component and the
pressure are perturbed one at a time (one-sided differences), and the per-phase
derivatives are then pushed through the averaging rule with
:func:`~mantle_rheology.averaging.derivative_of_weighted_p_norm_average`.
"""

from __future__ import annotations

from typing import Callable, Tuple

import numpy as np

from mantle_rheology.averaging import derivative_of_weighted_p_norm_average
from mantle_rheology.tensors import (
    n_independent_symmetric_components,
    nth_basis_for_symmetric_tensors,
    symmetric_unrolled_indices,
)

FINITE_DIFFERENCE_ACCURACY = 1e-7

PhaseViscosityFn = Callable[[np.ndarray, float], np.ndarray]


def strain_rate_derivatives(
    viscosity_fn: PhaseViscosityFn,
    strain_rate: np.ndarray,
    pressure: float,
    viscosities: np.ndarray,
    min_strain_rate: float,
) -> np.ndarray:
    """Per-phase ``d eta / d strain_rate`` as ``(n_phases, dim, dim)``.

    Component ``(i, j)`` is perturbed by ``max(|e_ij|, min_strain_rate) * 1e-7``;
    a zero viscosity change gives a zero derivative.
    """
    strain_rate = np.asarray(strain_rate, dtype=float)
    dim = strain_rate.shape[0]
    n_phases = len(viscosities)
    out = np.zeros((n_phases, dim, dim), dtype=float)

    for component in range(n_independent_symmetric_components(dim)):
        i, j = symmetric_unrolled_indices(dim)[component]
        delta = max(abs(strain_rate[i, j]), min_strain_rate) * FINITE_DIFFERENCE_ACCURACY
        perturbed = strain_rate + delta * nth_basis_for_symmetric_tensors(component, dim)
        eta_component = viscosity_fn(perturbed, pressure)

        for c in range(n_phases):
            d_eta = eta_component[c] - viscosities[c]
            if d_eta != 0.0:
                d_eta /= delta
            out[c, i, j] = d_eta
            out[c, j, i] = d_eta
    return out


def pressure_derivatives(
    viscosity_fn: PhaseViscosityFn,
    strain_rate: np.ndarray,
    pressure: float,
    viscosities: np.ndarray,
) -> np.ndarray:
    """Per-phase ``d eta / d pressure``; zero when ``pressure == 0``."""
    n_phases = len(viscosities)
    if pressure == 0.0:
        return np.zeros(n_phases, dtype=float)

    delta = abs(pressure) * FINITE_DIFFERENCE_ACCURACY
    eta_pressure = viscosity_fn(strain_rate, pressure + delta)
    out = np.zeros(n_phases, dtype=float)
    for c in range(n_phases):
        d_eta = eta_pressure[c] - viscosities[c]
        out[c] = d_eta / delta if d_eta != 0.0 else 0.0
    return out


def averaged_viscosity_derivatives(
    viscosity_fn: PhaseViscosityFn,
    strain_rate: np.ndarray,
    pressure: float,
    volume_fractions: np.ndarray,
    viscosities: np.ndarray,
    averaged_viscosity: float,
    averaging_p: float,
    min_strain_rate: float,
) -> Tuple[np.ndarray, float]:
    """``(d eta_avg / d strain_rate, d eta_avg / d pressure)`` at one point."""
    d_eps = strain_rate_derivatives(viscosity_fn, strain_rate, pressure, viscosities, min_strain_rate)
    d_p = pressure_derivatives(viscosity_fn, strain_rate, pressure, viscosities)

    d_eta_d_eps = derivative_of_weighted_p_norm_average(
        averaged_viscosity, volume_fractions, viscosities, d_eps, averaging_p
    )
    d_eta_d_p = derivative_of_weighted_p_norm_average(
        averaged_viscosity, volume_fractions, viscosities, d_p, averaging_p
    )
    return np.asarray(d_eta_d_eps, dtype=float), float(d_eta_d_p)
