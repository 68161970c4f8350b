"""Numba-compiled rheology kernels.

This subpackage contains small, *stateless* computational kernels that run in
Numba's ``nopython`` mode. They take primitive floats only; the model classes
hold all configuration and loop over phases.
"""

from .kernels_rheology import (
    composite_viscosity,
    diffusion_creep_viscosity,
    dislocation_creep_viscosity,
    drucker_prager_viscosity,
    drucker_prager_yield_strength,
    plastic_weakening,
    power_law_viscosity,
    stress_limiter_viscosity,
    transition_viscosity_cap,
    viscous_weakening,
    weakening_strain_fraction,
)

__all__ = [
    "composite_viscosity",
    "diffusion_creep_viscosity",
    "dislocation_creep_viscosity",
    "drucker_prager_viscosity",
    "drucker_prager_yield_strength",
    "plastic_weakening",
    "power_law_viscosity",
    "stress_limiter_viscosity",
    "transition_viscosity_cap",
    "viscous_weakening",
    "weakening_strain_fraction",
]
