"""Material model factory.

The CLI and drivers select a rheology by name. This module centralizes that
mapping, including building the parameter container from a plain mapping.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFieldLookup, CompositionalFields
from mantle_rheology.parameters import SimpleNonlinearParameters, ViscoPlasticParameters
from mantle_rheology.simple_nonlinear import SimpleNonlinear
from mantle_rheology.visco_plastic import ViscoPlastic

_MODEL_ALIASES = {
    "visco plastic": "visco plastic",
    "visco_plastic": "visco plastic",
    "viscoplastic": "visco plastic",
    "simple nonlinear": "simple nonlinear",
    "simple_nonlinear": "simple nonlinear",
    "simplenonlinear": "simple nonlinear",
}


def normalize_model_name(name: str) -> str:
    key = str(name or "").strip().lower().replace("-", " ")
    try:
        return _MODEL_ALIASES[key]
    except KeyError:
        raise ConfigurationError(f"Unknown material model='{name}'") from None


def make_material_model(
    name: str,
    parameters: Union[None, Mapping[str, Any], ViscoPlasticParameters, SimpleNonlinearParameters] = None,
    dim: int = 2,
    fields: Union[None, Sequence[str], CompositionalFieldLookup] = None,
):
    """Instantiate the material model called ``name``.

    ``parameters`` may be a parameter dataclass of the matching kind or a
    plain mapping (as read from YAML); ``fields`` a lookup or a list of
    compositional field names.
    """
    model = normalize_model_name(name)

    lookup: Optional[CompositionalFieldLookup]
    if fields is None or isinstance(fields, (list, tuple)):
        lookup = CompositionalFields(fields or ())
    else:
        lookup = fields

    if model == "visco plastic":
        return ViscoPlastic(_coerce(parameters, ViscoPlasticParameters), dim=dim, fields=lookup)

    if model == "simple nonlinear":
        return SimpleNonlinear(_coerce(parameters, SimpleNonlinearParameters), dim=dim, fields=lookup)

    raise ConfigurationError(f"Unknown material model='{name}'")


def _coerce(parameters, cls):
    if parameters is None:
        return cls()
    if isinstance(parameters, cls):
        return parameters
    if isinstance(parameters, Mapping):
        return cls.from_dict(dict(parameters))
    raise ConfigurationError(
        f"Parameters of type {type(parameters).__name__} do not match material model {cls.__name__}"
    )
