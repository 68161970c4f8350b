"""Narrow contracts to the surrounding simulator.

The material models never reach into the solver. Whatever they need is passed
in through the small protocols below, resolved once at setup where possible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import numpy as np

from mantle_rheology.errors import ConfigurationError


class CompositionalFieldLookup(Protocol):
    def n_compositional_fields(self) -> int:
        ...

    def compositional_name_exists(self, name: str) -> bool:
        ...

    def compositional_index_for_name(self, name: str) -> int:
        """Index of field ``name``; raises :class:`ConfigurationError` if absent."""


class VelocityGradientProvider(Protocol):
    def velocity_gradients(self, cell: Any, positions: np.ndarray) -> np.ndarray:
        """Velocity gradient ``(n, dim, dim)`` at ``positions`` inside ``cell``."""


class AdiabaticConditions(Protocol):
    def is_initialized(self) -> bool:
        ...

    def density(self, position: np.ndarray) -> float:
        ...


class CompositionalFields:
    """List-backed :class:`CompositionalFieldLookup`."""

    def __init__(self, names: Sequence[str] = ()):
        self.names = [str(n) for n in names]
        if len(set(self.names)) != len(self.names):
            raise ConfigurationError(f"Duplicate compositional field names: {self.names}")

    def n_compositional_fields(self) -> int:
        return len(self.names)

    def compositional_name_exists(self, name: str) -> bool:
        return name in self.names

    def compositional_index_for_name(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise ConfigurationError(f"There is no compositional field called '{name}'") from None


@dataclass(frozen=True)
class SimulatorState:
    """Read-only view of the simulator at the time of an evaluation call.

    The default instance describes a fresh run on time step 0 without
    velocity-gradient or adiabatic-profile access.
    """

    timestep_number: int = 0
    timestep: float = 0.0
    use_reference_density_profile: bool = False
    velocity_gradients: Optional[VelocityGradientProvider] = None
    adiabatic_conditions: Optional[AdiabaticConditions] = None
