"""Strain weakening of plastic and viscous parameters.

Accumulated strain is carried by compositional fields that are not phases:

- ``plastic_strain``: plastic weakening, grows only while yielding
- ``viscous_strain``: viscous weakening, grows only while not yielding
- ``total_strain``: both kinds of weakening when neither of the above is used
- ``s11, s12, ...``: the full finite strain tensor ``F`` (``dim**2`` fields,
  contiguous, row-major). Weakening then uses ``|I2(sym(F F^T))|``.

:class:`StrainWeakening` resolves the field names once, validates the
combination of flags, and answers the per-point questions of the visco-plastic
model: which fields to mask out of the volume fractions, which strain
invariant to use, the weakened parameters, and the reaction terms that advance
the trackers.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFieldLookup
from mantle_rheology.kernels import plastic_weakening, viscous_weakening
from mantle_rheology.parameters import PhaseParameterSet, ViscoPlasticParameters
from mantle_rheology.tensors import (
    n_independent_components,
    second_invariant,
    symmetrize,
    tensor_from_components,
    tensor_unrolled_indices,
)


def finite_strain_field_names(dim: int):
    return [f"s{i + 1}{j + 1}" for (i, j) in tensor_unrolled_indices(dim)]


class StrainWeakening:
    def __init__(
        self,
        parameters: ViscoPlasticParameters,
        phases: PhaseParameterSet,
        fields: CompositionalFieldLookup,
        dim: int,
    ):
        self.dim = int(dim)
        self.phases = phases
        self.enabled = bool(parameters.use_strain_weakening)
        self.use_plastic = bool(parameters.use_plastic_strain_weakening)
        self.use_viscous = bool(parameters.use_viscous_strain_weakening)
        self.use_finite_strain_tensor = bool(parameters.use_finite_strain_tensor)

        self.plastic_strain_index: Optional[int] = None
        self.viscous_strain_index: Optional[int] = None
        self.total_strain_index: Optional[int] = None
        self.finite_strain_first_index: Optional[int] = None

        if self.use_plastic:
            if not self.enabled:
                raise ConfigurationError(
                    "If plastic strain weakening is to be used, strain weakening should also be set to true."
                )
            self.plastic_strain_index = self._require(fields, "plastic_strain", "plastic strain weakening")

        if self.use_viscous:
            if not self.enabled:
                raise ConfigurationError(
                    "If viscous strain weakening is to be used, strain weakening should also be set to true."
                )
            self.viscous_strain_index = self._require(fields, "viscous_strain", "viscous strain weakening")

        if self.use_finite_strain_tensor:
            self.finite_strain_first_index = self._check_finite_strain_fields(fields)

        if self.enabled and not (self.use_plastic or self.use_viscous or self.use_finite_strain_tensor):
            self.total_strain_index = self._require(fields, "total_strain", "total strain weakening")

        if self.enabled:
            self._check_intervals(
                phases.start_plastic_strain_weakening_intervals,
                phases.end_plastic_strain_weakening_intervals,
                "plasticity",
            )
            self._check_intervals(
                phases.start_viscous_strain_weakening_intervals,
                phases.end_viscous_strain_weakening_intervals,
                "prefactor",
            )

    # ------------------------------------------------------------------
    # setup checks
    # ------------------------------------------------------------------

    @staticmethod
    def _require(fields: CompositionalFieldLookup, name: str, what: str) -> int:
        if not fields.compositional_name_exists(name):
            raise ConfigurationError(
                f"Material model visco_plastic with {what} only works if there is a "
                f"compositional field called {name}."
            )
        return int(fields.compositional_index_for_name(name))

    def _check_finite_strain_fields(self, fields: CompositionalFieldLookup) -> int:
        n_s = n_independent_components(self.dim)
        if fields.n_compositional_fields() < n_s:
            raise ConfigurationError(
                "There must be enough compositional fields to track all components of the "
                f"finite strain tensor ({n_s} in {self.dim}D)."
            )
        if not self.enabled:
            raise ConfigurationError(
                "If strain weakening using the full tensor is to be used, strain weakening "
                "should also be set to true."
            )
        if self.use_plastic or self.use_viscous:
            raise ConfigurationError(
                "If strain weakening using the full tensor is to be used, the total strain "
                "will be used for weakening; disable plastic and viscous strain weakening."
            )

        names = finite_strain_field_names(self.dim)
        idx = [self._require(fields, n, "strain weakening using the full strain tensor") for n in names]
        if any(b <= a for a, b in zip(idx, idx[1:])):
            raise ConfigurationError(
                "Material model visco_plastic with strain weakening using the full strain tensor "
                f"only works if the fields {', '.join(names)} appear in that order."
            )
        if idx[-1] != idx[0] + n_s - 1:
            raise ConfigurationError("The strain tensor components should be represented by consecutive fields.")
        return idx[0]

    @staticmethod
    def _check_intervals(start: np.ndarray, end: np.ndarray, what: str) -> None:
        bad = np.nonzero(end < start)[0]
        if bad.size:
            raise ConfigurationError(
                f"End {what} strain weakening interval lies below its start for phase(s) {bad.tolist()}"
            )

    # ------------------------------------------------------------------
    # volume fraction mask
    # ------------------------------------------------------------------

    def composition_mask(self, n_fields: int) -> np.ndarray:
        """``True`` for fields that represent phases."""
        mask = np.ones(n_fields, dtype=bool)
        if not self.enabled:
            return mask
        for k in (self.plastic_strain_index, self.viscous_strain_index, self.total_strain_index):
            if k is not None:
                mask[k] = False
        if self.finite_strain_first_index is not None:
            k0 = self.finite_strain_first_index
            mask[k0 : k0 + n_independent_components(self.dim)] = False
        return mask

    # ------------------------------------------------------------------
    # strain invariants
    # ------------------------------------------------------------------

    def finite_strain_tensor(self, composition: np.ndarray) -> np.ndarray:
        assert self.finite_strain_first_index is not None
        return tensor_from_components(composition, self.finite_strain_first_index, self.dim)

    def finite_strain_invariant(self, composition: np.ndarray) -> float:
        F = self.finite_strain_tensor(composition)
        L = symmetrize(F @ F.T)
        return abs(second_invariant(L))

    def plastic_strain_invariant(self, composition: np.ndarray) -> float:
        """Strain driving cohesion/friction weakening (0 in viscous-only mode)."""
        if self.use_finite_strain_tensor:
            return self.finite_strain_invariant(composition)
        if self.use_plastic:
            return float(composition[self.plastic_strain_index])
        if not self.use_viscous:
            return float(composition[self.total_strain_index])
        return 0.0

    def viscous_strain_invariant(self, composition: np.ndarray) -> float:
        """Strain driving prefactor weakening."""
        if self.use_viscous:
            return float(composition[self.viscous_strain_index])
        return self.plastic_strain_invariant(composition)

    # ------------------------------------------------------------------
    # weakened parameters
    # ------------------------------------------------------------------

    def weakened_plastic_parameters(self, strain_ii: float, j: int) -> Tuple[float, float]:
        ph = self.phases
        return plastic_weakening(
            float(strain_ii),
            float(ph.cohesions[j]),
            float(ph.angles_internal_friction[j]),
            float(ph.start_plastic_strain_weakening_intervals[j]),
            float(ph.end_plastic_strain_weakening_intervals[j]),
            float(ph.cohesion_strain_weakening_factors[j]),
            float(ph.friction_strain_weakening_factors[j]),
        )

    def viscous_weakening_factor(self, strain_ii: float, j: int) -> float:
        ph = self.phases
        return viscous_weakening(
            float(strain_ii),
            float(ph.start_viscous_strain_weakening_intervals[j]),
            float(ph.end_viscous_strain_weakening_intervals[j]),
            float(ph.viscous_strain_weakening_factors[j]),
        )

    # ------------------------------------------------------------------
    # reaction terms
    # ------------------------------------------------------------------

    def scalar_reaction_terms(
        self,
        reaction_terms: np.ndarray,
        edot_ii: float,
        timestep: float,
        plastic_yielding: bool,
    ) -> None:
        """Write the strain increment ``edot_ii * dt`` of one point into its tracker."""
        if not self.enabled or self.use_finite_strain_tensor:
            return
        e_ii = edot_ii * timestep
        if self.use_plastic and plastic_yielding:
            reaction_terms[self.plastic_strain_index] = e_ii
        if self.use_viscous and not plastic_yielding:
            reaction_terms[self.viscous_strain_index] = e_ii
        if not self.use_plastic and not self.use_viscous:
            reaction_terms[self.total_strain_index] = e_ii

    def finite_strain_reaction_terms(
        self,
        reaction_terms: np.ndarray,
        composition: np.ndarray,
        velocity_gradients: np.ndarray,
        timestep: float,
    ) -> None:
        """Write ``dt * (grad v . F)`` for every point into the tensor fields.

        ``reaction_terms`` and ``composition`` are ``(n, n_fields)``,
        ``velocity_gradients`` is ``(n, dim, dim)``.
        """
        assert self.finite_strain_first_index is not None
        k0 = self.finite_strain_first_index
        for q in range(reaction_terms.shape[0]):
            F = self.finite_strain_tensor(composition[q])
            increment = timestep * (np.asarray(velocity_gradients[q], dtype=float) @ F)
            for c, (i, j) in enumerate(tensor_unrolled_indices(self.dim)):
                reaction_terms[q, k0 + c] = increment[i, j]
