"""mantle_rheology package (composition-weighted mantle rheology models)."""

from .averaging import AveragingScheme, average_value, weighted_p_norm_average
from .errors import ConfigurationError
from .interfaces import CompositionalFields, SimulatorState
from .material_point import (
    MaterialModelInputs,
    MaterialModelOutputs,
    MaterialModelDerivatives,
    PlasticAdditionalOutputs,
)
from .parameters import ViscoPlasticParameters, SimpleNonlinearParameters
from .volume_fractions import compute_volume_fractions
from .visco_plastic import ViscoPlastic
from .simple_nonlinear import SimpleNonlinear
from .material_factory import make_material_model

__version__ = "0.1.0"

__all__ = [
    "AveragingScheme", "average_value", "weighted_p_norm_average",
    "ConfigurationError",
    "CompositionalFields", "SimulatorState",
    "MaterialModelInputs", "MaterialModelOutputs",
    "MaterialModelDerivatives", "PlasticAdditionalOutputs",
    "ViscoPlasticParameters", "SimpleNonlinearParameters",
    "compute_volume_fractions",
    "ViscoPlastic", "SimpleNonlinear",
    "make_material_model",
]
