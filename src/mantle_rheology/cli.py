"""Evaluate a material model at a single point from the command line.

The YAML configuration holds the model name, the compositional field names and
the model parameters::

    model: visco plastic
    dim: 2
    compositional_fields: [plastic_strain, crust]
    parameters:
      viscous_flow_law: dislocation
      cohesions: 20.e6
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

import numpy as np
import yaml

from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import SimulatorState
from mantle_rheology.material_factory import make_material_model
from mantle_rheology.material_point import (
    MaterialModelDerivatives,
    MaterialModelInputs,
    MaterialModelOutputs,
)
from mantle_rheology.utils.run_info import print_material_summary, print_point_outputs, print_run_header


def load_config(path: str) -> dict:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    unknown = sorted(set(data) - {"model", "dim", "compositional_fields", "parameters"})
    if unknown:
        raise ConfigurationError(f"{path}: unknown entries {unknown}")
    if "model" not in data:
        raise ConfigurationError(f"{path}: 'model' is required")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mantle-rheology",
        description="Evaluate a mantle rheology model at one point",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mantle-rheology model.yaml --temperature 1600 --pressure 1e9 --strain-rate 1e-15 0 0 -1e-15
  mantle-rheology model.yaml -T 1300 -P 0 --strain-rate 0 1e-14 1e-14 0 --composition 1 0 --derivatives
        """,
    )
    parser.add_argument("config", type=str, help="YAML file with model, compositional_fields and parameters")
    parser.add_argument("-T", "--temperature", type=float, default=293.0, help="Temperature [K] (default: 293)")
    parser.add_argument("-P", "--pressure", type=float, default=0.0, help="Pressure [Pa] (default: 0)")
    parser.add_argument(
        "--strain-rate",
        type=float,
        nargs="+",
        help="Strain rate tensor, dim*dim values in row-major order [1/s]",
    )
    parser.add_argument(
        "--composition",
        type=float,
        nargs="*",
        default=[],
        help="Compositional field values, one per field",
    )
    parser.add_argument("--timestep-number", type=int, default=1, help="Time step number (default: 1)")
    parser.add_argument("--timestep", type=float, default=0.0, help="Time step size [s] (default: 0)")
    parser.add_argument("--derivatives", action="store_true", help="Also compute Newton derivatives")
    parser.add_argument("--quiet", action="store_true", help="Do not print the model summary")
    return parser


def _strain_rate_tensor(values: Optional[Sequence[float]], dim: int) -> Optional[np.ndarray]:
    if values is None:
        return None
    arr = np.asarray(values, dtype=float)
    if arr.size != dim * dim:
        raise ConfigurationError(f"--strain-rate needs {dim * dim} values for dim={dim}, got {arr.size}")
    return arr.reshape(1, dim, dim)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
        dim = int(cfg.get("dim", 2))
        field_names = list(cfg.get("compositional_fields") or [])
        model = make_material_model(cfg["model"], cfg.get("parameters") or {}, dim=dim, fields=field_names)

        composition = np.asarray(args.composition, dtype=float)
        if composition.size != len(field_names):
            raise ConfigurationError(
                f"--composition needs {len(field_names)} values (one per compositional field), got {composition.size}"
            )
        inputs = MaterialModelInputs.from_points(
            temperature=[args.temperature],
            pressure=[args.pressure],
            composition=composition.reshape(1, -1),
            strain_rate=_strain_rate_tensor(args.strain_rate, dim),
            position=np.zeros((1, dim)),
        )
    except (ConfigurationError, OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    out = MaterialModelOutputs.create(1, len(field_names))
    if hasattr(model, "create_additional_named_outputs"):
        model.create_additional_named_outputs(out)
    if args.derivatives:
        out.additional_outputs.append(MaterialModelDerivatives(1, dim))

    if not args.quiet:
        print_run_header(str(cfg["model"]))
        print_material_summary(model)

    state = SimulatorState(timestep_number=args.timestep_number, timestep=args.timestep)
    model.evaluate(inputs, out, state)
    print_point_outputs(out, 0, field_names)
    return 0


if __name__ == "__main__":
    sys.exit(main())
