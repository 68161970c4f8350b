import numpy as np
import pytest

from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFields
from mantle_rheology.material_point import (
    MaterialModelDerivatives,
    MaterialModelInputs,
    MaterialModelOutputs,
)
from mantle_rheology.parameters import SimpleNonlinearParameters
from mantle_rheology.simple_nonlinear import SimpleNonlinear
from mantle_rheology.tensors import nth_basis_for_symmetric_tensors


def _power_law(A, n, edot_ii):
    return A ** (-1.0 / n) * edot_ii ** (1.0 / n - 1.0)


def test_single_phase_power_law():
    model = SimpleNonlinear()
    e = 1e-15
    eta, _ = model.phase_viscosities(np.diag([e, -e]))
    # sqrt(0.5 e:e) = e, edot_ii = 2 e
    assert np.isclose(eta[0], _power_law(1e-37, 3.0, 2.0 * e))


def test_zero_strain_rate_is_floored():
    model = SimpleNonlinear(SimpleNonlinearParameters(minimum_strain_rate=1e-10, maximum_viscosity=1e40))
    eta, _ = model.phase_viscosities(np.zeros((2, 2)))
    assert np.isfinite(eta[0])
    assert np.isclose(eta[0], _power_law(1e-37, 3.0, 2.0 * 1e-20))


def test_isotropic_strain_rate_ignored_with_deviator():
    model = SimpleNonlinear()
    base, _ = model.phase_viscosities(np.diag([1e-15, -1e-15]))
    shifted, _ = model.phase_viscosities(np.diag([1e-15, -1e-15]) + 3e-15 * np.eye(2))
    assert np.isclose(base[0], shifted[0])

    raw = SimpleNonlinear(SimpleNonlinearParameters(use_deviator_of_strain_rate=False))
    shifted_raw, _ = raw.phase_viscosities(np.diag([1e-15, -1e-15]) + 3e-15 * np.eye(2))
    assert shifted_raw[0] < base[0]


@pytest.mark.parametrize("use_deviator", [True, False])
def test_analytic_derivative_matches_finite_difference(use_deviator):
    model = SimpleNonlinear(SimpleNonlinearParameters(use_deviator_of_strain_rate=use_deviator))
    e = np.array([[1e-15, 3e-16], [3e-16, -1e-15]])
    eta, d_eta = model.phase_viscosities(e, with_derivatives=True)

    for k, (i, j) in enumerate([(0, 0), (1, 1), (0, 1)]):
        B = nth_basis_for_symmetric_tensors(k, 2)
        h = 1e-22
        eta_p, _ = model.phase_viscosities(e + h * B)
        fd = (eta_p[0] - eta[0]) / h
        analytic = float(np.sum(d_eta[0] * B))
        assert np.isclose(analytic, fd, rtol=1e-4), (i, j, analytic, fd)


def test_clamped_viscosity_has_zero_derivative():
    model = SimpleNonlinear(SimpleNonlinearParameters(maximum_viscosity=1e15))
    eta, d_eta = model.phase_viscosities(np.diag([1e-15, -1e-15]), with_derivatives=True)
    assert eta[0] == 1e15
    assert np.all(d_eta[0] == 0.0)


def test_evaluate_two_phases():
    fields = CompositionalFields(["weak"])
    prm = SimpleNonlinearParameters(
        viscosity_prefactor=[1e-37, 1e-35],
        densities=[3300.0, 3000.0],
        thermal_expansivities=0.0,
        viscosity_averaging_p=-1.0,
    )
    model = SimpleNonlinear(prm, fields=fields)
    e = np.diag([1e-15, -1e-15])
    inputs = MaterialModelInputs.from_points([1600.0], [1e9], [[0.5]], [e])
    out = MaterialModelOutputs.create(1, 1)
    derivatives = MaterialModelDerivatives(1, 2)
    out.additional_outputs.append(derivatives)
    model.evaluate(inputs, out)

    v0 = _power_law(1e-37, 3.0, 2e-15)
    v1 = _power_law(1e-35, 3.0, 2e-15)
    assert np.isclose(out.viscosities[0], 1.0 / (0.5 / v0 + 0.5 / v1))
    assert np.isclose(out.densities[0], 3150.0)
    assert np.isclose(out.thermal_conductivities[0], 0.5 * 0.8e-6 * 1.25e3 * (3300.0 + 3000.0))
    assert derivatives.viscosity_derivative_wrt_pressure[0] == 0.0
    assert derivatives.viscosity_derivative_wrt_strain_rate[0][0, 0] < 0.0
    assert out.reaction_terms[0, 0] == 0.0


def test_field_count_mismatch():
    model = SimpleNonlinear(fields=CompositionalFields(["a"]))
    inputs = MaterialModelInputs.from_points([1600.0], [0.0], [[0.1, 0.2]], [np.zeros((2, 2))])
    with pytest.raises(ConfigurationError):
        model.evaluate(inputs, MaterialModelOutputs.create(1, 2))


def test_model_info():
    model = SimpleNonlinear(SimpleNonlinearParameters(reference_viscosity=5e21))
    assert model.reference_viscosity() == 5e21
    assert model.is_compressible() is False
