"""Run-time info printing utilities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import numba
import numpy as np

from mantle_rheology.material_point import (
    MaterialModelDerivatives,
    MaterialModelOutputs,
    PlasticAdditionalOutputs,
)


def _fmt_pa(x: float) -> str:
    x = float(x)
    if abs(x) >= 1e9:
        return f"{x/1e9:.3g} GPa"
    if abs(x) >= 1e6:
        return f"{x/1e6:.3g} MPa"
    if abs(x) >= 1e3:
        return f"{x/1e3:.3g} kPa"
    return f"{x:.3g} Pa"


def _fmt_list(values, fmt: str = "{:.3g}") -> str:
    arr = np.atleast_1d(np.asarray(values, dtype=float))
    if arr.size and np.all(arr == arr[0]):
        return fmt.format(arr[0])
    return "[" + ", ".join(fmt.format(v) for v in arr) + "]"


def print_run_header(tag: str) -> None:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z")
    print(f"\n[run] {tag}  start={ts}")


def print_material_summary(model) -> None:
    """Print a few tagged lines describing a constructed material model."""
    name = getattr(model, "name", type(model).__name__)
    n_phases = int(model.phases.n_phases)
    print(f"[material] ({name}) dim={model.dim}  phases={n_phases}  eta_ref={model.reference_viscosity():.3g} Pa s")

    if name == "visco plastic":
        prm = model.parameters
        ph = model.phases
        print(
            f"[material] flow_law={model.viscous_flow_law.value}  yield={model.yield_mechanism.value}"
            f"  averaging={model.viscosity_averaging.value}"
        )
        print(
            f"[material] eta_min={model.min_visc:.3g}  eta_max={model.max_visc:.3g} Pa s"
            f"  edot_min={model.min_strain_rate:.3g} 1/s  d={model.grain_size:.3g} m"
        )
        print(
            f"[material] cohesion={_fmt_list(ph.cohesions)} Pa"
            f"  phi={_fmt_list(np.rad2deg(ph.angles_internal_friction))} deg"
            f"  sigma_y_max={_fmt_pa(model.max_yield_strength)}"
        )
        sw = model.strain_weakening
        if sw.enabled:
            if sw.use_finite_strain_tensor:
                mode = "finite strain tensor"
            elif sw.use_plastic or sw.use_viscous:
                mode = "+".join(m for m, on in (("plastic", sw.use_plastic), ("viscous", sw.use_viscous)) if on)
            else:
                mode = "total strain"
            print(f"[weakening] mode={mode}")
        else:
            print("[weakening] off")
        if model.spcrust_phase is not None:
            print(
                f"[spcrust] phase={model.spcrust_phase}"
                f"  fixed_viscosity={'yes' if prm.use_fixed_spcrust_viscosity else 'no'}"
                f"  density_change={'yes' if prm.use_spcrust_density_change else 'no'}"
            )
    elif name == "simple nonlinear":
        ph = model.phases
        print(
            f"[material] A={_fmt_list(ph.viscosity_prefactor)}  n={_fmt_list(ph.stress_exponent)}"
            f"  p={model.viscosity_averaging_p:.3g}"
        )

    print(f"[numba] version={numba.__version__}")


def print_point_outputs(out: MaterialModelOutputs, idx: int = 0, names: Optional[list] = None) -> None:
    """Print the outputs of point ``idx``."""
    print(f"[point {idx}] viscosity={out.viscosities[idx]:.6g} Pa s  density={out.densities[idx]:.6g} kg/m^3")
    print(
        f"[point {idx}] alpha={out.thermal_expansion_coefficients[idx]:.4g} 1/K"
        f"  cp={out.specific_heat[idx]:.4g} J/kg/K  k={out.thermal_conductivities[idx]:.4g} W/m/K"
    )
    reactions = out.reaction_terms[idx]
    if reactions.size and np.any(reactions != 0.0):
        labels = names or [str(k) for k in range(reactions.size)]
        txt = "  ".join(f"{n}={r:.4g}" for n, r in zip(labels, reactions))
        print(f"[point {idx}] reactions: {txt}")

    plastic = out.get_additional_output(PlasticAdditionalOutputs)
    if plastic is not None:
        print(
            f"[plastic] cohesion={_fmt_pa(plastic.cohesions[idx])}"
            f"  phi={plastic.friction_angles[idx]:.3g} deg  yielding={int(plastic.yielding[idx])}"
        )

    derivatives = out.get_additional_output(MaterialModelDerivatives)
    if derivatives is not None:
        d_eps = derivatives.viscosity_derivative_wrt_strain_rate[idx]
        rows = "; ".join(" ".join(f"{v:.4g}" for v in row) for row in d_eps)
        print(f"[newton] deta/dedot=[{rows}]")
        print(f"[newton] deta/dp={derivatives.viscosity_derivative_wrt_pressure[idx]:.4g}")
