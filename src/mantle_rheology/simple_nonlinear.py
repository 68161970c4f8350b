"""Single power-law rheology with analytic Newton derivatives.

Every phase follows ``eta = A^(-1/n) * edot_ii^(1/n - 1)`` with per-phase
prefactor, exponent and viscosity bounds; phases are combined with a weighted
p-norm average. There is no temperature or pressure dependence in the
viscosity, so the pressure derivative is identically zero.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from mantle_rheology.averaging import derivative_of_weighted_p_norm_average, weighted_p_norm_average
from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFieldLookup, CompositionalFields, SimulatorState
from mantle_rheology.kernels import power_law_viscosity
from mantle_rheology.material_point import (
    MaterialModelDerivatives,
    MaterialModelInputs,
    MaterialModelOutputs,
)
from mantle_rheology.parameters import SimpleNonlinearParameters
from mantle_rheology.tensors import deviator
from mantle_rheology.volume_fractions import compute_volume_fractions


class SimpleNonlinear:
    name = "simple nonlinear"

    def __init__(
        self,
        parameters: Optional[SimpleNonlinearParameters] = None,
        dim: int = 2,
        fields: Optional[CompositionalFieldLookup] = None,
    ):
        if dim not in (2, 3):
            raise ConfigurationError(f"dim must be 2 or 3, got {dim}")
        self.parameters = parameters if parameters is not None else SimpleNonlinearParameters()
        self.dim = int(dim)
        self.fields = fields if fields is not None else CompositionalFields()

        self.n_fields = int(self.fields.n_compositional_fields()) + 1
        self.phases = self.parameters.phase_parameters(self.n_fields)
        self.reference_T = float(self.parameters.reference_temperature)
        self.ref_visc = float(self.parameters.reference_viscosity)
        self.viscosity_averaging_p = float(self.parameters.viscosity_averaging_p)
        self.use_deviator_of_strain_rate = bool(self.parameters.use_deviator_of_strain_rate)

    def reference_viscosity(self) -> float:
        return self.ref_visc

    def is_compressible(self) -> bool:
        return False

    def phase_viscosities(
        self, strain_rate: np.ndarray, with_derivatives: bool = False
    ) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """Per-phase viscosities and, optionally, ``d eta / d strain_rate``.

        The derivative is zero where the viscosity hits a bound or the strain
        rate is below the floor.
        """
        ph = self.phases
        edot = np.asarray(strain_rate, dtype=float)
        if self.use_deviator_of_strain_rate:
            edot = deviator(edot)
        edot_ii_strict = float(np.sqrt(0.5 * np.sum(edot * edot)))

        viscosities = np.zeros(self.n_fields, dtype=float)
        d_eta = np.zeros((self.n_fields, self.dim, self.dim), dtype=float) if with_derivatives else None

        for c in range(self.n_fields):
            min_sr = float(ph.minimum_strain_rate[c])
            eta_min = float(ph.minimum_viscosity[c])
            eta_max = float(ph.maximum_viscosity[c])
            edot_ii = 2.0 * max(edot_ii_strict, min_sr * min_sr)

            eta = power_law_viscosity(float(ph.viscosity_prefactor[c]), float(ph.stress_exponent[c]), edot_ii)
            viscosities[c] = max(min(eta, eta_max), eta_min)
            assert np.isfinite(viscosities[c]), "viscosity is not finite"

            if d_eta is not None and edot_ii_strict > min_sr * min_sr and eta_min < viscosities[c] < eta_max:
                n_inv = 1.0 / float(ph.stress_exponent[c])
                d = 2.0 * (n_inv - 1.0) * viscosities[c] / (edot_ii * edot_ii) * edot
                d_eta[c] = deviator(d) if self.use_deviator_of_strain_rate else d

        return viscosities, d_eta

    def evaluate(
        self,
        inputs: MaterialModelInputs,
        out: MaterialModelOutputs,
        state: Optional[SimulatorState] = None,
    ) -> None:
        ph = self.phases
        derivatives = out.get_additional_output(MaterialModelDerivatives)
        composition_all = np.asarray(inputs.composition, dtype=float)

        for i in range(inputs.n_points):
            if composition_all[i].size + 1 != self.n_fields:
                raise ConfigurationError(
                    "Number of compositional fields + 1 not equal to number of fields given in input file."
                )
            temperature = float(inputs.temperature[i])
            volume_fractions = compute_volume_fractions(composition_all[i])

            temperature_factor = 1.0 - ph.thermal_expansivities * (temperature - self.reference_T)
            out.densities[i] = float(np.sum(volume_fractions * ph.densities * temperature_factor))
            out.thermal_expansion_coefficients[i] = float(np.dot(volume_fractions, ph.thermal_expansivities))
            out.specific_heat[i] = float(np.dot(volume_fractions, ph.heat_capacity))
            out.thermal_conductivities[i] = float(
                np.sum(volume_fractions * ph.thermal_diffusivity * ph.heat_capacity * ph.densities)
            )

            if inputs.has_strain_rate:
                viscosities, d_eta = self.phase_viscosities(inputs.strain_rate[i], derivatives is not None)
                out.viscosities[i] = weighted_p_norm_average(
                    volume_fractions, viscosities, self.viscosity_averaging_p
                )
                assert np.isfinite(out.viscosities[i]), "averaged viscosity is not finite"

                if derivatives is not None:
                    derivatives.viscosity_derivative_wrt_strain_rate[i] = derivative_of_weighted_p_norm_average(
                        out.viscosities[i], volume_fractions, viscosities, d_eta, self.viscosity_averaging_p
                    )
                    derivatives.viscosity_derivative_wrt_pressure[i] = 0.0

            out.compressibilities[i] = 0.0
            out.entropy_derivative_pressure[i] = 0.0
            out.entropy_derivative_temperature[i] = 0.0
            out.reaction_terms[i, :] = 0.0
