"""Numba kernels for creep, yielding and strain weakening.

These kernels are **stateless** (no Python objects) and operate on plain
floats so they compile in Numba ``nopython`` mode. The model classes loop over
phases and call them once per phase and point.

Units
-----
Pressure and stresses in Pa, temperature in K, strain rates in 1/s, grain size
in m, activation energies in J/mol and activation volumes in m^3/mol. Friction
angles are in **radians** here (the parameter layer converts from degrees).
"""

from __future__ import annotations

import math
from typing import Tuple

from numba import njit


# -----------------------------------------------------------------------------
# Viscous creep
# -----------------------------------------------------------------------------


@njit(cache=True)
def diffusion_creep_viscosity(
    prefactor: float,
    activation_energy: float,
    activation_volume: float,
    grain_size: float,
    grain_size_exponent: float,
    pressure: float,
    temperature: float,
    gas_constant: float,
) -> float:
    """Grain-size dependent, strain-rate independent creep (n = 1).

        eta = 0.5 / A * exp((E + P V) / (R T)) * d^m
    """
    return (
        0.5
        / prefactor
        * math.exp((activation_energy + pressure * activation_volume) / (gas_constant * temperature))
        * grain_size**grain_size_exponent
    )


@njit(cache=True)
def dislocation_creep_viscosity(
    prefactor: float,
    stress_exponent: float,
    activation_energy: float,
    activation_volume: float,
    pressure: float,
    temperature: float,
    edot_ii: float,
    gas_constant: float,
) -> float:
    """Grain-size independent power-law creep.

        eta = 0.5 * A^(-1/n) * exp((E + P V) / (n R T)) * edot_ii^((1 - n) / n)
    """
    n = stress_exponent
    return (
        0.5
        * prefactor ** (-1.0 / n)
        * math.exp((activation_energy + pressure * activation_volume) / (gas_constant * temperature * n))
        * edot_ii ** ((1.0 - n) / n)
    )


@njit(cache=True)
def composite_viscosity(viscosity_diffusion: float, viscosity_dislocation: float) -> float:
    """Harmonic combination of both mechanisms acting at the same stress.

    An overflowed (infinite) mechanism drops out and the other one controls
    the flow.
    """
    inverse = 1.0 / viscosity_diffusion + 1.0 / viscosity_dislocation
    if inverse == 0.0:
        return math.inf
    return 1.0 / inverse


@njit(cache=True)
def power_law_viscosity(prefactor: float, stress_exponent: float, edot_ii: float) -> float:
    """Single power-law term ``A^(-1/n) * edot_ii^(1/n - 1)`` (no thermal part)."""
    n_inv = 1.0 / stress_exponent
    return prefactor ** (-n_inv) * edot_ii ** (n_inv - 1.0)


# -----------------------------------------------------------------------------
# Yielding
# -----------------------------------------------------------------------------


@njit(cache=True)
def drucker_prager_yield_strength(
    cohesion: float,
    friction_angle: float,
    pressure: float,
    dim: int,
    max_yield_strength: float,
) -> float:
    """Drucker–Prager yield stress, capped by ``max_yield_strength``.

    In 3D the cone circumscribes the Mohr–Coulomb surface; in 2D (plane strain)
    it reduces to ``C cos(phi) + P sin(phi)``. Tensile pressures do not
    strengthen the material.
    """
    s = math.sin(friction_angle)
    c = math.cos(friction_angle)
    p = max(pressure, 0.0)
    if dim == 3:
        strength = (6.0 * cohesion * c + 6.0 * p * s) / (math.sqrt(3.0) * (3.0 + s))
    else:
        strength = cohesion * c + p * s
    return min(strength, max_yield_strength)


@njit(cache=True)
def drucker_prager_viscosity(
    viscosity_pre_yield: float, edot_ii: float, yield_strength: float
) -> Tuple[float, float]:
    """Rescale viscosity back onto the yield surface.

    Returns ``(viscosity, yielding)`` where ``yielding`` is 1.0 when the viscous
    stress ``2 eta edot_ii`` reaches the yield strength and 0.0 otherwise.
    """
    viscous_stress = 2.0 * viscosity_pre_yield * edot_ii
    if viscous_stress >= yield_strength:
        return yield_strength / (2.0 * edot_ii), 1.0
    return viscosity_pre_yield, 0.0


@njit(cache=True)
def stress_limiter_viscosity(
    viscosity_pre_yield: float,
    edot_ii: float,
    yield_strength: float,
    reference_strain_rate: float,
    exponent: float,
) -> float:
    """Stress-limiter rheology combined harmonically with the viscous branch."""
    viscosity_limiter = (
        yield_strength
        / (2.0 * reference_strain_rate)
        * (edot_ii / reference_strain_rate) ** (1.0 / exponent - 1.0)
    )
    # zero strength: no resistance, the caller clamps to the minimum viscosity
    if viscosity_limiter == 0.0:
        return 0.0
    return 1.0 / (1.0 / viscosity_limiter + 1.0 / viscosity_pre_yield)


@njit(cache=True)
def transition_viscosity_cap(
    viscosity: float,
    pressure: float,
    fixed_maximum: float,
    minimum_pressure: float,
    maximum_pressure: float,
    maximum_viscosity: float,
) -> float:
    """Cap ``viscosity`` by a fixed maximum that relaxes with pressure.

    Below ``minimum_pressure`` the cap is ``fixed_maximum``; across the band it
    rises log-linearly towards ``maximum_viscosity``; above the band no cap is
    applied.
    """
    if pressure <= minimum_pressure:
        return min(fixed_maximum, viscosity)
    if pressure < maximum_pressure:
        slope = (math.log10(maximum_viscosity) - math.log10(fixed_maximum)) / (
            maximum_pressure - minimum_pressure
        )
        cap = fixed_maximum * 10.0 ** ((pressure - minimum_pressure) * slope)
        return min(cap, viscosity)
    return viscosity


# -----------------------------------------------------------------------------
# Strain weakening
# -----------------------------------------------------------------------------


@njit(cache=True)
def weakening_strain_fraction(strain_ii: float, start: float, end: float) -> float:
    """Signed position of ``strain_ii`` in the weakening interval.

    Runs from 0 at ``start`` to -1 at ``end``; the sign matches the
    ``value + (value - factor*value) * fraction`` interpolation used below.
    A degenerate interval acts as a step at ``end``.
    """
    if end == start:
        return -1.0 if strain_ii >= end else 0.0
    cut_off = max(min(strain_ii, end), start)
    return (cut_off - start) / (start - end)


@njit(cache=True)
def plastic_weakening(
    strain_ii: float,
    cohesion: float,
    friction_angle: float,
    start: float,
    end: float,
    cohesion_factor: float,
    friction_factor: float,
) -> Tuple[float, float]:
    """Linearly weakened ``(cohesion, friction_angle)``."""
    fraction = weakening_strain_fraction(strain_ii, start, end)
    current_cohesion = cohesion + (cohesion - cohesion * cohesion_factor) * fraction
    current_friction = friction_angle + (friction_angle - friction_angle * friction_factor) * fraction
    return current_cohesion, current_friction


@njit(cache=True)
def viscous_weakening(strain_ii: float, start: float, end: float, factor: float) -> float:
    """Multiplicative factor applied to the pre-yield viscosity."""
    fraction = weakening_strain_fraction(strain_ii, start, end)
    return 1.0 + (1.0 - factor) * fraction
