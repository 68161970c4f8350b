"""Per-point input and output containers for material model evaluation.

One evaluation call handles a batch of ``n`` quadrature points. The solver
allocates both containers, the model only reads :class:`MaterialModelInputs`
and fills the buffers of :class:`MaterialModelOutputs` in place.

Arrays are NumPy-based and indexed by point first:

- scalars: ``(n,)``
- tensors: ``(n, dim, dim)``
- per-field values: ``(n, n_fields)``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Type, TypeVar

import numpy as np


@dataclass(frozen=True)
class MaterialModelInputs:
    """Thermodynamic state at a batch of points.

    ``strain_rate`` may be ``None`` (or have zero length) when the solver only
    needs non-viscous properties; viscosities are then left untouched.
    ``current_cell`` is only needed for finite-strain tensor tracking; ``None``
    means "no valid cell".
    """

    temperature: np.ndarray
    pressure: np.ndarray
    composition: np.ndarray
    strain_rate: Optional[np.ndarray] = None
    position: Optional[np.ndarray] = None
    current_cell: Any = None

    @classmethod
    def from_points(
        cls,
        temperature: Sequence[float],
        pressure: Sequence[float],
        composition: Sequence[Sequence[float]],
        strain_rate: Optional[Sequence] = None,
        position: Optional[Sequence] = None,
        current_cell: Any = None,
    ) -> "MaterialModelInputs":
        T = np.asarray(temperature, dtype=float).reshape(-1)
        n = T.size
        comp = np.asarray(composition, dtype=float).reshape(n, -1)
        sr = None if strain_rate is None else np.asarray(strain_rate, dtype=float)
        pos = None if position is None else np.asarray(position, dtype=float)
        return cls(
            temperature=T,
            pressure=np.asarray(pressure, dtype=float).reshape(n),
            composition=comp,
            strain_rate=sr,
            position=pos,
            current_cell=current_cell,
        )

    @property
    def n_points(self) -> int:
        return int(np.asarray(self.temperature).size)

    @property
    def has_strain_rate(self) -> bool:
        return self.strain_rate is not None and len(self.strain_rate) > 0


class AdditionalMaterialOutputs:
    """Base class for optional output slots requested by the solver."""


class NamedAdditionalMaterialOutputs(AdditionalMaterialOutputs, ABC):
    """Additional outputs exposed as a list of named per-point fields."""

    def __init__(self, names: Sequence[str]):
        self.names: List[str] = list(names)

    def get_names(self) -> List[str]:
        return list(self.names)

    @abstractmethod
    def get_nth_output(self, idx: int) -> np.ndarray:
        """Per-point values of output ``names[idx]``."""


class PlasticAdditionalOutputs(NamedAdditionalMaterialOutputs):
    """Current cohesion [Pa], friction angle [deg] and yielding flag per point.

    Buffers start as NaN so that points the model did not visit are obvious.
    """

    def __init__(self, n_points: int):
        super().__init__(["current_cohesions", "current_friction_angles", "plastic_yielding"])
        self.cohesions = np.full(n_points, np.nan)
        self.friction_angles = np.full(n_points, np.nan)
        self.yielding = np.full(n_points, np.nan)

    def get_nth_output(self, idx: int) -> np.ndarray:
        if idx == 0:
            return self.cohesions
        if idx == 1:
            return self.friction_angles
        if idx == 2:
            return self.yielding
        raise IndexError(f"PlasticAdditionalOutputs has 3 outputs, got index {idx}")


class MaterialModelDerivatives(AdditionalMaterialOutputs):
    """Viscosity derivatives for the Newton solver."""

    def __init__(self, n_points: int, dim: int):
        self.viscosity_derivative_wrt_strain_rate = np.zeros((n_points, dim, dim), dtype=float)
        self.viscosity_derivative_wrt_pressure = np.zeros(n_points, dtype=float)


_A = TypeVar("_A", bound=AdditionalMaterialOutputs)


@dataclass
class MaterialModelOutputs:
    viscosities: np.ndarray
    densities: np.ndarray
    thermal_expansion_coefficients: np.ndarray
    specific_heat: np.ndarray
    thermal_conductivities: np.ndarray
    compressibilities: np.ndarray
    entropy_derivative_pressure: np.ndarray
    entropy_derivative_temperature: np.ndarray
    reaction_terms: np.ndarray
    additional_outputs: List[AdditionalMaterialOutputs] = field(default_factory=list)

    @classmethod
    def create(cls, n_points: int, n_fields: int) -> "MaterialModelOutputs":
        def z() -> np.ndarray:
            return np.zeros(n_points, dtype=float)

        return cls(
            viscosities=z(),
            densities=z(),
            thermal_expansion_coefficients=z(),
            specific_heat=z(),
            thermal_conductivities=z(),
            compressibilities=z(),
            entropy_derivative_pressure=z(),
            entropy_derivative_temperature=z(),
            reaction_terms=np.zeros((n_points, n_fields), dtype=float),
        )

    @property
    def n_points(self) -> int:
        return int(self.viscosities.size)

    def get_additional_output(self, kind: Type[_A]) -> Optional[_A]:
        for out in self.additional_outputs:
            if isinstance(out, kind):
                return out
        return None
