"""Parameter containers for the rheology models.

The ``*Parameters`` dataclasses hold what the user wrote (scalars or per-phase
lists, angles in degrees, selectors as strings). Models turn them into an
immutable :class:`PhaseParameterSet` once at construction; the evaluation hot
path only sees those read-only arrays and resolved enums.

Per-phase lists have ``N+1`` entries (background first, then one per
compositional field). A single value is broadcast to all phases.

Units follow SI throughout: Pa, K, 1/s, Pa s, kg/m^3, J/kg/K, m^2/s, J/mol,
m^3/mol, m.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Sequence, Union

import numpy as np
import yaml

from mantle_rheology.averaging import AveragingScheme, parse_averaging_scheme
from mantle_rheology.errors import ConfigurationError

PerPhase = Union[float, Sequence[float]]


class ViscousFlowLaw(Enum):
    DIFFUSION = "diffusion"
    DISLOCATION = "dislocation"
    COMPOSITE = "composite"


class YieldMechanism(Enum):
    DRUCKER_PRAGER = "drucker"
    STRESS_LIMITER = "limiter"


_FLOW_LAW_ALIASES = {
    "diff": "diffusion",
    "disl": "dislocation",
}

_YIELD_ALIASES = {
    "drucker-prager": "drucker",
    "drucker_prager": "drucker",
    "druckerprager": "drucker",
    "dp": "drucker",
    "stress limiter": "limiter",
    "stress_limiter": "limiter",
}


def parse_viscous_flow_law(name) -> ViscousFlowLaw:
    if isinstance(name, ViscousFlowLaw):
        return name
    key = str(name).strip().lower()
    key = _FLOW_LAW_ALIASES.get(key, key)
    try:
        return ViscousFlowLaw(key)
    except ValueError:
        raise ConfigurationError(f"Not a valid viscous flow law: '{name}'") from None


def parse_yield_mechanism(name) -> YieldMechanism:
    if isinstance(name, YieldMechanism):
        return name
    key = str(name).strip().lower()
    key = _YIELD_ALIASES.get(key, key)
    try:
        return YieldMechanism(key)
    except ValueError:
        raise ConfigurationError(f"Not a valid yield mechanism: '{name}'") from None


def possibly_extend_from_1_to_N(values: PerPhase, n: int, name: str) -> np.ndarray:
    """Broadcast a scalar or one-element list to ``n`` entries."""
    arr = np.atleast_1d(np.asarray(values, dtype=float)).reshape(-1)
    if arr.size == 1:
        arr = np.full(n, float(arr[0]))
    elif arr.size != n:
        raise ConfigurationError(
            f"Length of '{name}' list ({arr.size}) must be 1 or equal to the number of "
            f"compositional fields + 1 ({n})"
        )
    arr = arr.astype(float, copy=True)
    arr.setflags(write=False)
    return arr


class _YamlMixin:
    """``to_dict`` / ``from_dict`` / YAML helpers shared by parameter classes."""

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, value in asdict(self).items():
            if isinstance(value, (tuple, np.ndarray)):
                value = [float(v) for v in value]
            out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown {cls.__name__} entries: {unknown}")
        return cls(**data)

    def save_yaml(self, filepath: str) -> None:
        with open(filepath, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load_yaml(cls, filepath: str):
        with open(filepath, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)


# ============================================================================
# VISCO-PLASTIC
# ============================================================================


@dataclass
class ViscoPlasticParameters(_YamlMixin):
    # Reference and minimum/maximum values
    reference_temperature: float = 293.0  # K
    minimum_strain_rate: float = 1.0e-20  # 1/s
    reference_strain_rate: float = 1.0e-15  # 1/s, used on the very first time step
    minimum_viscosity: float = 1e17  # Pa s
    maximum_viscosity: float = 1e28  # Pa s
    reference_viscosity: float = 1e22  # Pa s

    # Equation of state
    thermal_diffusivities: PerPhase = 0.8e-6  # m^2/s
    heat_capacities: PerPhase = 1.25e3  # J/kg/K
    densities: PerPhase = 3300.0  # kg/m^3
    thermal_expansivities: PerPhase = 3.5e-5  # 1/K

    # Strain weakening
    use_strain_weakening: bool = False
    use_plastic_strain_weakening: bool = False
    use_viscous_strain_weakening: bool = False
    use_finite_strain_tensor: bool = False
    start_plasticity_strain_weakening_intervals: PerPhase = 0.0
    end_plasticity_strain_weakening_intervals: PerPhase = 1.0
    start_prefactor_strain_weakening_intervals: PerPhase = 0.0
    end_prefactor_strain_weakening_intervals: PerPhase = 1.0
    prefactor_strain_weakening_factors: PerPhase = 1.0
    cohesion_strain_weakening_factors: PerPhase = 1.0
    friction_strain_weakening_factors: PerPhase = 1.0

    # Rheology selectors
    grain_size: float = 1e-3  # m
    viscosity_averaging_scheme: str = "harmonic"
    viscous_flow_law: str = "composite"
    yield_mechanism: str = "drucker"

    # Diffusion creep
    prefactors_diffusion: PerPhase = 1.5e-15  # Pa^-1 m^m s^-1
    stress_exponents_diffusion: PerPhase = 1.0
    grain_size_exponents_diffusion: PerPhase = 3.0
    activation_energies_diffusion: PerPhase = 375e3  # J/mol
    activation_volumes_diffusion: PerPhase = 6e-6  # m^3/mol

    # Dislocation creep
    prefactors_dislocation: PerPhase = 1.1e-16  # Pa^-n s^-1
    stress_exponents_dislocation: PerPhase = 3.5
    activation_energies_dislocation: PerPhase = 530e3  # J/mol
    activation_volumes_dislocation: PerPhase = 1.4e-5  # m^3/mol

    # Plasticity
    angles_internal_friction: PerPhase = 0.0  # degrees
    cohesions: PerPhase = 1e20  # Pa
    stress_limiter_exponents: PerPhase = 1.0
    maximum_yield_stress: float = 1e12  # Pa

    # spcrust: fixed maximum viscosity relaxing to the flow law over a pressure band
    use_fixed_spcrust_viscosity: bool = False
    maximum_spcrust_viscosity: float = 1e28  # Pa s
    minimum_transition_pressure_spcrust_viscosity: float = 0.0  # Pa
    maximum_transition_pressure_spcrust_viscosity: float = 0.0  # Pa

    # spcrust: density increase over a pressure band
    use_spcrust_density_change: bool = False
    density_change_from_spcrust: float = 0.0  # kg/m^3
    minimum_transition_pressure_spcrust_density: float = 0.0  # Pa
    maximum_transition_pressure_spcrust_density: float = 0.0  # Pa

    def __post_init__(self):
        """Normalise selector spellings and reject unknown ones early."""
        self.viscosity_averaging_scheme = parse_averaging_scheme(self.viscosity_averaging_scheme).value
        self.viscous_flow_law = parse_viscous_flow_law(self.viscous_flow_law).value
        self.yield_mechanism = parse_yield_mechanism(self.yield_mechanism).value

        if self.minimum_viscosity > self.maximum_viscosity:
            raise ConfigurationError(
                f"Minimum viscosity ({self.minimum_viscosity:g}) exceeds maximum viscosity "
                f"({self.maximum_viscosity:g})"
            )

    @property
    def averaging(self) -> AveragingScheme:
        return parse_averaging_scheme(self.viscosity_averaging_scheme)

    @property
    def flow_law(self) -> ViscousFlowLaw:
        return parse_viscous_flow_law(self.viscous_flow_law)

    @property
    def yield_type(self) -> YieldMechanism:
        return parse_yield_mechanism(self.yield_mechanism)

    def phase_parameters(self, n_phases: int) -> "PhaseParameterSet":
        def ext(name: str) -> np.ndarray:
            return possibly_extend_from_1_to_N(getattr(self, name), n_phases, name)

        friction = np.deg2rad(ext("angles_internal_friction"))
        friction.setflags(write=False)
        return PhaseParameterSet(
            thermal_diffusivities=ext("thermal_diffusivities"),
            heat_capacities=ext("heat_capacities"),
            densities=ext("densities"),
            thermal_expansivities=ext("thermal_expansivities"),
            prefactors_diffusion=ext("prefactors_diffusion"),
            stress_exponents_diffusion=ext("stress_exponents_diffusion"),
            grain_size_exponents_diffusion=ext("grain_size_exponents_diffusion"),
            activation_energies_diffusion=ext("activation_energies_diffusion"),
            activation_volumes_diffusion=ext("activation_volumes_diffusion"),
            prefactors_dislocation=ext("prefactors_dislocation"),
            stress_exponents_dislocation=ext("stress_exponents_dislocation"),
            activation_energies_dislocation=ext("activation_energies_dislocation"),
            activation_volumes_dislocation=ext("activation_volumes_dislocation"),
            angles_internal_friction=friction,
            cohesions=ext("cohesions"),
            stress_limiter_exponents=ext("stress_limiter_exponents"),
            start_plastic_strain_weakening_intervals=ext("start_plasticity_strain_weakening_intervals"),
            end_plastic_strain_weakening_intervals=ext("end_plasticity_strain_weakening_intervals"),
            start_viscous_strain_weakening_intervals=ext("start_prefactor_strain_weakening_intervals"),
            end_viscous_strain_weakening_intervals=ext("end_prefactor_strain_weakening_intervals"),
            viscous_strain_weakening_factors=ext("prefactor_strain_weakening_factors"),
            cohesion_strain_weakening_factors=ext("cohesion_strain_weakening_factors"),
            friction_strain_weakening_factors=ext("friction_strain_weakening_factors"),
        )


@dataclass(frozen=True)
class PhaseParameterSet:
    """Read-only per-phase constants (length ``N+1``, friction in radians)."""

    thermal_diffusivities: np.ndarray
    heat_capacities: np.ndarray
    densities: np.ndarray
    thermal_expansivities: np.ndarray
    prefactors_diffusion: np.ndarray
    stress_exponents_diffusion: np.ndarray
    grain_size_exponents_diffusion: np.ndarray
    activation_energies_diffusion: np.ndarray
    activation_volumes_diffusion: np.ndarray
    prefactors_dislocation: np.ndarray
    stress_exponents_dislocation: np.ndarray
    activation_energies_dislocation: np.ndarray
    activation_volumes_dislocation: np.ndarray
    angles_internal_friction: np.ndarray
    cohesions: np.ndarray
    stress_limiter_exponents: np.ndarray
    start_plastic_strain_weakening_intervals: np.ndarray
    end_plastic_strain_weakening_intervals: np.ndarray
    start_viscous_strain_weakening_intervals: np.ndarray
    end_viscous_strain_weakening_intervals: np.ndarray
    viscous_strain_weakening_factors: np.ndarray
    cohesion_strain_weakening_factors: np.ndarray
    friction_strain_weakening_factors: np.ndarray

    @property
    def n_phases(self) -> int:
        return int(self.densities.size)


# ============================================================================
# SIMPLE NONLINEAR (single power law)
# ============================================================================


@dataclass
class SimpleNonlinearParameters(_YamlMixin):
    reference_temperature: float = 293.0  # K
    reference_viscosity: float = 1e22  # Pa s
    minimum_strain_rate: PerPhase = 1.4e-20  # 1/s
    minimum_viscosity: PerPhase = 1e10  # Pa s
    maximum_viscosity: PerPhase = 1e28  # Pa s
    thermal_diffusivity: PerPhase = 0.8e-6  # m^2/s
    heat_capacity: PerPhase = 1.25e3  # J/kg/K
    densities: PerPhase = 3300.0  # kg/m^3
    thermal_expansivities: PerPhase = 3.5e-5  # 1/K
    viscosity_prefactor: PerPhase = 1e-37  # Pa^-n s^-1
    stress_exponent: PerPhase = 3.0
    viscosity_averaging_p: float = -1.0
    use_deviator_of_strain_rate: bool = True

    def phase_parameters(self, n_phases: int) -> "PowerLawPhaseParameterSet":
        def ext(name: str) -> np.ndarray:
            return possibly_extend_from_1_to_N(getattr(self, name), n_phases, name)

        return PowerLawPhaseParameterSet(
            minimum_strain_rate=ext("minimum_strain_rate"),
            minimum_viscosity=ext("minimum_viscosity"),
            maximum_viscosity=ext("maximum_viscosity"),
            thermal_diffusivity=ext("thermal_diffusivity"),
            heat_capacity=ext("heat_capacity"),
            densities=ext("densities"),
            thermal_expansivities=ext("thermal_expansivities"),
            viscosity_prefactor=ext("viscosity_prefactor"),
            stress_exponent=ext("stress_exponent"),
        )


@dataclass(frozen=True)
class PowerLawPhaseParameterSet:
    minimum_strain_rate: np.ndarray
    minimum_viscosity: np.ndarray
    maximum_viscosity: np.ndarray
    thermal_diffusivity: np.ndarray
    heat_capacity: np.ndarray
    densities: np.ndarray
    thermal_expansivities: np.ndarray
    viscosity_prefactor: np.ndarray
    stress_exponent: np.ndarray

    @property
    def n_phases(self) -> int:
        return int(self.densities.size)
