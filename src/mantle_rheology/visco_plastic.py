"""Visco-plastic rheology with diffusion/dislocation creep and yielding.

Per point the evaluation runs::

    volume fractions -> per-phase creep viscosity (+ strain weakening)
                     -> yield limiter (Drucker-Prager or stress limiter)
                     -> clamp to [min, max] -> average over phases
                     -> optional finite-difference Newton derivatives

All phases at a point see the same strain rate (isostrain). That is only
strictly consistent with arithmetic averaging, but for diffusion-dominated
creep the per-phase viscosities are strain-rate independent and any scheme is
consistent; the averaging scheme is therefore left to the user.

The viscous flow law, yield mechanism and averaging scheme are resolved to
enums once in the constructor; the evaluation path never parses strings.
"""

from __future__ import annotations

import warnings
from typing import Optional, Tuple

import numpy as np
from scipy import constants

from mantle_rheology.averaging import (
    AveragingScheme,
    average_value,
    averaging_exponent,
)
from mantle_rheology.derivatives import averaged_viscosity_derivatives
from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFieldLookup, CompositionalFields, SimulatorState
from mantle_rheology.kernels import (
    composite_viscosity,
    diffusion_creep_viscosity,
    dislocation_creep_viscosity,
    drucker_prager_viscosity,
    drucker_prager_yield_strength,
    stress_limiter_viscosity,
    transition_viscosity_cap,
)
from mantle_rheology.material_point import (
    MaterialModelDerivatives,
    MaterialModelInputs,
    MaterialModelOutputs,
    PlasticAdditionalOutputs,
)
from mantle_rheology.parameters import ViscoPlasticParameters, ViscousFlowLaw, YieldMechanism
from mantle_rheology.strain_weakening import StrainWeakening
from mantle_rheology.tensors import strain_rate_invariant
from mantle_rheology.volume_fractions import compute_volume_fractions

GAS_CONSTANT = float(constants.gas_constant)
_SMALLEST_NORMAL = float(np.finfo(float).tiny)


class ViscoPlastic:
    name = "visco plastic"

    def __init__(
        self,
        parameters: Optional[ViscoPlasticParameters] = None,
        dim: int = 2,
        fields: Optional[CompositionalFieldLookup] = None,
    ):
        if dim not in (2, 3):
            raise ConfigurationError(f"dim must be 2 or 3, got {dim}")
        self.parameters = parameters if parameters is not None else ViscoPlasticParameters()
        self.dim = int(dim)
        self.fields = fields if fields is not None else CompositionalFields()

        prm = self.parameters
        self.n_compositional_fields = int(self.fields.n_compositional_fields())
        self.n_phases = self.n_compositional_fields + 1
        self.phases = prm.phase_parameters(self.n_phases)

        self.viscous_flow_law = prm.flow_law
        self.yield_mechanism = prm.yield_type
        self.viscosity_averaging = prm.averaging

        self.reference_T = float(prm.reference_temperature)
        self.min_strain_rate = float(prm.minimum_strain_rate)
        self.ref_strain_rate = float(prm.reference_strain_rate)
        self.min_visc = float(prm.minimum_viscosity)
        self.max_visc = float(prm.maximum_viscosity)
        self.ref_visc = float(prm.reference_viscosity)
        self.grain_size = float(prm.grain_size)
        self.max_yield_strength = float(prm.maximum_yield_stress)

        if np.any(self.phases.stress_exponents_diffusion != 1.0):
            warnings.warn(
                "Stress exponents for diffusion creep are ignored; diffusion creep is linear in stress.",
                stacklevel=2,
            )

        self.strain_weakening = StrainWeakening(prm, self.phases, self.fields, self.dim)
        self.composition_mask = self.strain_weakening.composition_mask(self.n_compositional_fields)

        # phase index (background = 0) of the compositional field "spcrust"
        self.spcrust_phase: Optional[int] = None
        if prm.use_fixed_spcrust_viscosity or prm.use_spcrust_density_change:
            if not self.fields.compositional_name_exists("spcrust"):
                raise ConfigurationError("There must be a compositional field called spcrust.")
            self.spcrust_phase = self.fields.compositional_index_for_name("spcrust") + 1

    # ------------------------------------------------------------------
    # model info
    # ------------------------------------------------------------------

    def reference_viscosity(self) -> float:
        return self.ref_visc

    def is_compressible(self) -> bool:
        return False

    def get_min_strain_rate(self) -> float:
        return self.min_strain_rate

    def create_additional_named_outputs(self, out: MaterialModelOutputs) -> None:
        if out.get_additional_output(PlasticAdditionalOutputs) is None:
            out.additional_outputs.append(PlasticAdditionalOutputs(out.n_points))

    # ------------------------------------------------------------------
    # viscosity
    # ------------------------------------------------------------------

    def reference_strain_rate_invariant(self, strain_rate: np.ndarray, timestep_number: int) -> float:
        """``edot_ii`` used by the flow laws.

        On the very first time step the solver has no velocity yet, so a zero
        strain rate is replaced by the reference strain rate.
        """
        if timestep_number == 0 and float(np.linalg.norm(strain_rate)) <= _SMALLEST_NORMAL:
            return self.ref_strain_rate
        return max(strain_rate_invariant(strain_rate), self.min_strain_rate)

    def calculate_isostrain_viscosities(
        self,
        pressure: float,
        temperature: float,
        composition: np.ndarray,
        strain_rate: np.ndarray,
        timestep_number: int = 0,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Per-phase ``(viscosities, yielding)`` at one point."""
        ph = self.phases
        sw = self.strain_weakening
        edot_ii = self.reference_strain_rate_invariant(strain_rate, timestep_number)
        pressure = float(pressure)
        temperature = float(temperature)

        viscosities = np.zeros(self.n_phases, dtype=float)
        yielding = np.zeros(self.n_phases, dtype=float)

        if sw.enabled:
            plastic_strain = sw.plastic_strain_invariant(composition)
            viscous_strain = sw.viscous_strain_invariant(composition)

        for j in range(self.n_phases):
            viscosity_diffusion = diffusion_creep_viscosity(
                float(ph.prefactors_diffusion[j]),
                float(ph.activation_energies_diffusion[j]),
                float(ph.activation_volumes_diffusion[j]),
                self.grain_size,
                float(ph.grain_size_exponents_diffusion[j]),
                pressure,
                temperature,
                GAS_CONSTANT,
            )
            viscosity_dislocation = dislocation_creep_viscosity(
                float(ph.prefactors_dislocation[j]),
                float(ph.stress_exponents_dislocation[j]),
                float(ph.activation_energies_dislocation[j]),
                float(ph.activation_volumes_dislocation[j]),
                pressure,
                temperature,
                edot_ii,
                GAS_CONSTANT,
            )

            if self.viscous_flow_law is ViscousFlowLaw.DIFFUSION:
                viscosity_pre_yield = viscosity_diffusion
            elif self.viscous_flow_law is ViscousFlowLaw.DISLOCATION:
                viscosity_pre_yield = viscosity_dislocation
            elif self.viscous_flow_law is ViscousFlowLaw.COMPOSITE:
                viscosity_pre_yield = composite_viscosity(viscosity_diffusion, viscosity_dislocation)
            else:
                raise ConfigurationError(f"Not a valid viscous flow law: {self.viscous_flow_law!r}")

            cohesion = float(ph.cohesions[j])
            phi = float(ph.angles_internal_friction[j])
            if sw.enabled:
                cohesion, phi = sw.weakened_plastic_parameters(plastic_strain, j)
                viscosity_pre_yield *= sw.viscous_weakening_factor(viscous_strain, j)

            # spcrust: fixed maximum viscosity relaxing to the flow law with pressure
            if self.parameters.use_fixed_spcrust_viscosity and j == self.spcrust_phase:
                viscosity_pre_yield = transition_viscosity_cap(
                    viscosity_pre_yield,
                    pressure,
                    float(self.parameters.maximum_spcrust_viscosity),
                    float(self.parameters.minimum_transition_pressure_spcrust_viscosity),
                    float(self.parameters.maximum_transition_pressure_spcrust_viscosity),
                    self.max_visc,
                )

            yield_strength = drucker_prager_yield_strength(
                cohesion, phi, pressure, self.dim, self.max_yield_strength
            )
            viscosity_drucker_prager, yielding[j] = drucker_prager_viscosity(
                viscosity_pre_yield, edot_ii, yield_strength
            )

            if self.yield_mechanism is YieldMechanism.DRUCKER_PRAGER:
                viscosity_yield = viscosity_drucker_prager
            elif self.yield_mechanism is YieldMechanism.STRESS_LIMITER:
                viscosity_yield = stress_limiter_viscosity(
                    viscosity_pre_yield,
                    edot_ii,
                    yield_strength,
                    self.ref_strain_rate,
                    float(ph.stress_limiter_exponents[j]),
                )
            else:
                raise ConfigurationError(f"Not a valid yield mechanism: {self.yield_mechanism!r}")

            viscosities[j] = min(max(viscosity_yield, self.min_visc), self.max_visc)
            assert np.isfinite(viscosities[j]), "viscosity is not finite"

        return viscosities, yielding

    # ------------------------------------------------------------------
    # other properties
    # ------------------------------------------------------------------

    def _spcrust_density_change(self, pressure: float) -> float:
        prm = self.parameters
        p_min = prm.minimum_transition_pressure_spcrust_density
        p_max = prm.maximum_transition_pressure_spcrust_density
        if p_min < pressure < p_max:
            return (pressure - p_min) * prm.density_change_from_spcrust / (p_max - p_min)
        if pressure >= p_max:
            return float(prm.density_change_from_spcrust)
        return 0.0

    def density(self, volume_fractions: np.ndarray, temperature: float, pressure: float) -> float:
        ph = self.phases
        rho = 0.0
        for j in range(self.n_phases):
            delta = 0.0
            if self.parameters.use_spcrust_density_change and j == self.spcrust_phase:
                delta = self._spcrust_density_change(pressure)
            temperature_factor = 1.0 - ph.thermal_expansivities[j] * (temperature - self.reference_T)
            rho += volume_fractions[j] * (ph.densities[j] + delta) * temperature_factor
        return float(rho)

    def _current_plastic_parameters(self, volume_fractions: np.ndarray, composition: np.ndarray):
        ph = self.phases
        sw = self.strain_weakening
        if sw.enabled:
            plastic_strain = sw.plastic_strain_invariant(composition)
        cohesion = 0.0
        phi = 0.0
        for j in range(self.n_phases):
            if sw.enabled:
                c_j, phi_j = sw.weakened_plastic_parameters(plastic_strain, j)
            else:
                c_j, phi_j = float(ph.cohesions[j]), float(ph.angles_internal_friction[j])
            cohesion += volume_fractions[j] * c_j
            phi += volume_fractions[j] * phi_j
        return cohesion, phi

    # ------------------------------------------------------------------
    # evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        inputs: MaterialModelInputs,
        out: MaterialModelOutputs,
        state: Optional[SimulatorState] = None,
    ) -> None:
        """Fill ``out`` for every point of ``inputs``."""
        state = state if state is not None else SimulatorState()
        ph = self.phases
        sw = self.strain_weakening

        composition_all = np.asarray(inputs.composition, dtype=float)
        if composition_all.shape[1] != self.n_compositional_fields:
            raise ConfigurationError(
                f"Got {composition_all.shape[1]} compositional fields, the model was set up "
                f"for {self.n_compositional_fields}"
            )

        derivatives = out.get_additional_output(MaterialModelDerivatives)
        plastic_out = out.get_additional_output(PlasticAdditionalOutputs)
        has_strain_rate = inputs.has_strain_rate
        timestep_number = int(state.timestep_number)
        averaging_p = averaging_exponent(self.viscosity_averaging)

        adiabatic = state.adiabatic_conditions
        use_adiabatic_density = (
            state.use_reference_density_profile and adiabatic is not None and adiabatic.is_initialized()
        )

        for i in range(inputs.n_points):
            temperature = float(inputs.temperature[i])
            pressure = float(inputs.pressure[i])
            composition = composition_all[i]
            volume_fractions = compute_volume_fractions(composition, self.composition_mask)

            density = self.density(volume_fractions, temperature, pressure)
            thermal_expansivity = float(np.dot(volume_fractions, ph.thermal_expansivities))
            heat_capacity = float(np.dot(volume_fractions, ph.heat_capacities))
            thermal_diffusivity = float(np.dot(volume_fractions, ph.thermal_diffusivities))

            plastic_yielding = False
            strain_rate = None
            if has_strain_rate:
                strain_rate = np.asarray(inputs.strain_rate[i], dtype=float)
                viscosities, yielding = self.calculate_isostrain_viscosities(
                    pressure, temperature, composition, strain_rate, timestep_number
                )
                out.viscosities[i] = average_value(volume_fractions, viscosities, self.viscosity_averaging)
                # 0/1 flags: harmonic or geometric means of these are meaningless
                plastic_yielding = (
                    average_value(volume_fractions, yielding, AveragingScheme.MAXIMUM_COMPOSITION) != 0.0
                )

                if derivatives is not None:

                    def phase_viscosities(e: np.ndarray, p: float) -> np.ndarray:
                        return self.calculate_isostrain_viscosities(
                            p, temperature, composition, e, timestep_number
                        )[0]

                    d_eps, d_p = averaged_viscosity_derivatives(
                        phase_viscosities,
                        strain_rate,
                        pressure,
                        volume_fractions,
                        viscosities,
                        float(out.viscosities[i]),
                        averaging_p,
                        self.min_strain_rate,
                    )
                    derivatives.viscosity_derivative_wrt_strain_rate[i] = d_eps
                    derivatives.viscosity_derivative_wrt_pressure[i] = d_p

            out.densities[i] = density
            out.thermal_expansion_coefficients[i] = thermal_expansivity
            out.specific_heat[i] = heat_capacity
            if use_adiabatic_density:
                out.thermal_conductivities[i] = (
                    thermal_diffusivity * heat_capacity * adiabatic.density(inputs.position[i])
                )
            else:
                out.thermal_conductivities[i] = thermal_diffusivity * heat_capacity * density
            out.compressibilities[i] = 0.0
            out.entropy_derivative_pressure[i] = 0.0
            out.entropy_derivative_temperature[i] = 0.0
            out.reaction_terms[i, :] = 0.0

            if sw.enabled and not sw.use_finite_strain_tensor and timestep_number > 0 and has_strain_rate:
                edot_ii = max(strain_rate_invariant(strain_rate), self.min_strain_rate)
                sw.scalar_reaction_terms(out.reaction_terms[i], edot_ii, float(state.timestep), plastic_yielding)

            if plastic_out is not None:
                cohesion, phi = self._current_plastic_parameters(volume_fractions, composition)
                plastic_out.cohesions[i] = cohesion
                plastic_out.friction_angles[i] = np.rad2deg(phi)
                plastic_out.yielding[i] = 1.0 if plastic_yielding else 0.0

        # The finite strain increment needs the velocity gradient, which is not
        # part of the inputs; it is interpolated from the solution in the cell.
        if (
            inputs.current_cell is not None
            and sw.enabled
            and sw.use_finite_strain_tensor
            and timestep_number > 0
            and has_strain_rate
        ):
            if state.velocity_gradients is None:
                raise ConfigurationError(
                    "Finite strain tensor tracking needs a velocity gradient provider in the simulator state."
                )
            gradients = state.velocity_gradients.velocity_gradients(inputs.current_cell, inputs.position)
            sw.finite_strain_reaction_terms(out.reaction_terms, composition_all, gradients, float(state.timestep))
