import math

import numpy as np
import pytest
from scipy import constants

from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFields, SimulatorState
from mantle_rheology.material_point import (
    MaterialModelInputs,
    MaterialModelOutputs,
    NamedAdditionalMaterialOutputs,
    PlasticAdditionalOutputs,
)
from mantle_rheology.parameters import ViscoPlasticParameters
from mantle_rheology.visco_plastic import ViscoPlastic

R = constants.gas_constant


def _pure_shear(e, dim=2):
    d = np.zeros((dim, dim))
    d[0, 0] = e
    d[1, 1] = -e
    return d


def _evaluate(model, T, P, composition, strain_rate=None, state=None, plastic=False, position=None):
    n_fields = model.n_compositional_fields
    inputs = MaterialModelInputs.from_points(
        temperature=[T],
        pressure=[P],
        composition=np.asarray(composition, dtype=float).reshape(1, n_fields),
        strain_rate=None if strain_rate is None else [strain_rate],
        position=position,
    )
    out = MaterialModelOutputs.create(1, n_fields)
    if plastic:
        model.create_additional_named_outputs(out)
    model.evaluate(inputs, out, state)
    return out


def _diffusion_viscosity(T, P=0.0):
    return 0.5 / 1.5e-15 * math.exp((375e3 + P * 6e-6) / (R * T)) * 1e-9


def test_diffusion_creep_single_phase():
    model = ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="diffusion"))
    out = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-15))
    assert np.isclose(out.viscosities[0], _diffusion_viscosity(1600.0), rtol=1e-10)
    assert 5e17 < out.viscosities[0] < 7e17


def test_dislocation_creep_uses_strain_rate_invariant():
    prm = ViscoPlasticParameters(viscous_flow_law="dislocation")
    model = ViscoPlastic(prm)
    out = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-15))
    n = 3.5
    expected = 0.5 * 1.1e-16 ** (-1.0 / n) * math.exp(530e3 / (n * R * 1600.0)) * 1e-15 ** ((1.0 - n) / n)
    assert np.isclose(out.viscosities[0], expected, rtol=1e-10)


def test_composite_is_below_both_mechanisms():
    diff = _evaluate(ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="diffusion")), 1600.0, 0.0, [], _pure_shear(1e-15))
    disl = _evaluate(ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="dislocation")), 1600.0, 0.0, [], _pure_shear(1e-15))
    comp = _evaluate(ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="composite")), 1600.0, 0.0, [], _pure_shear(1e-15))
    eta_d = diff.viscosities[0]
    eta_s = disl.viscosities[0]
    assert np.isclose(comp.viscosities[0], eta_d * eta_s / (eta_d + eta_s))


def test_yielding_caps_viscosity_and_sets_flag():
    prm = ViscoPlasticParameters(viscous_flow_law="diffusion", cohesions=5e5)
    model = ViscoPlastic(prm)
    out = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-12), plastic=True)
    assert np.isclose(out.viscosities[0], 5e5 / (2.0 * 1e-12))
    plastic = out.get_additional_output(PlasticAdditionalOutputs)
    assert plastic.yielding[0] == 1.0

    out = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-15), plastic=True)
    assert np.isclose(out.viscosities[0], _diffusion_viscosity(1600.0))
    assert out.get_additional_output(PlasticAdditionalOutputs).yielding[0] == 0.0


def test_stress_limiter_lowers_viscosity():
    dp = ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="diffusion", cohesions=1e8))
    limiter = ViscoPlastic(
        ViscoPlasticParameters(viscous_flow_law="diffusion", cohesions=1e8, yield_mechanism="stress limiter")
    )
    e = _pure_shear(1e-15)
    eta_dp = _evaluate(dp, 1600.0, 0.0, [], e).viscosities[0]
    eta_limiter = _evaluate(limiter, 1600.0, 0.0, [], e).viscosities[0]
    assert eta_limiter < eta_dp
    assert np.isclose(1.0 / eta_limiter, 1.0 / eta_dp + 2e-15 / 1e8)


def test_stress_limiter_without_strength_falls_to_minimum_viscosity():
    prm = ViscoPlasticParameters(cohesions=0.0, angles_internal_friction=30.0, yield_mechanism="stress limiter")
    model = ViscoPlastic(prm)
    out = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-15))
    assert out.viscosities[0] == 1e17


def test_viscosity_is_clamped():
    low = ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="diffusion", minimum_viscosity=1e19))
    assert _evaluate(low, 1600.0, 0.0, [], _pure_shear(1e-15)).viscosities[0] == 1e19

    high = ViscoPlastic(
        ViscoPlasticParameters(viscous_flow_law="diffusion", minimum_viscosity=1e10, maximum_viscosity=1e17)
    )
    assert _evaluate(high, 1600.0, 0.0, [], _pure_shear(1e-15)).viscosities[0] == 1e17


@pytest.mark.parametrize("flow_law", ["diffusion", "dislocation", "composite"])
@pytest.mark.parametrize("yield_mechanism", ["drucker", "stress limiter"])
def test_viscosity_stays_finite_and_bounded(flow_law, yield_mechanism):
    model = ViscoPlastic(ViscoPlasticParameters(viscous_flow_law=flow_law, yield_mechanism=yield_mechanism))
    state = SimulatorState(timestep_number=1)
    for T in (273.0, 1600.0):
        for P in (0.0, 3e11):
            for e in (1e-20, 1e-15, 1e3):
                eta = _evaluate(model, T, P, [], _pure_shear(e), state=state).viscosities[0]
                assert np.isfinite(eta)
                assert 1e17 <= eta <= 1e28

def test_reference_strain_rate_on_first_timestep():
    model = ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="dislocation"))
    zero = np.zeros((2, 2))
    first = _evaluate(model, 1600.0, 0.0, [], zero, state=SimulatorState(timestep_number=0))
    ref = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-15), state=SimulatorState(timestep_number=0))
    assert np.isclose(first.viscosities[0], ref.viscosities[0])

    later = _evaluate(model, 1600.0, 0.0, [], zero, state=SimulatorState(timestep_number=3))
    n = 3.5
    floor = 0.5 * 1.1e-16 ** (-1.0 / n) * math.exp(530e3 / (n * R * 1600.0)) * 1e-20 ** ((1.0 - n) / n)
    assert np.isclose(later.viscosities[0], min(floor, 1e28))


def test_two_phases_are_averaged():
    fields = CompositionalFields(["crust"])
    prm = ViscoPlasticParameters(
        viscous_flow_law="diffusion",
        prefactors_diffusion=[1.5e-15, 1.5e-17],
        minimum_viscosity=1e10,
        viscosity_averaging_scheme="arithmetic",
    )
    model = ViscoPlastic(prm, fields=fields)
    out = _evaluate(model, 1600.0, 0.0, [0.25], _pure_shear(1e-15))
    eta0 = _diffusion_viscosity(1600.0)
    assert np.isclose(out.viscosities[0], 0.75 * eta0 + 0.25 * 100.0 * eta0)


def test_thermal_properties():
    fields = CompositionalFields(["crust"])
    prm = ViscoPlasticParameters(
        densities=[3300.0, 2900.0],
        thermal_expansivities=[3e-5, 2e-5],
        heat_capacities=[1200.0, 1000.0],
        thermal_diffusivities=[1e-6, 0.5e-6],
        reference_temperature=273.0,
    )
    model = ViscoPlastic(prm, fields=fields)
    out = _evaluate(model, 1273.0, 0.0, [0.5])

    rho = 0.5 * 3300.0 * (1.0 - 3e-5 * 1000.0) + 0.5 * 2900.0 * (1.0 - 2e-5 * 1000.0)
    assert np.isclose(out.densities[0], rho)
    assert np.isclose(out.thermal_expansion_coefficients[0], 2.5e-5)
    assert np.isclose(out.specific_heat[0], 1100.0)
    assert np.isclose(out.thermal_conductivities[0], 0.75e-6 * 1100.0 * rho)
    assert out.compressibilities[0] == 0.0
    assert out.entropy_derivative_pressure[0] == 0.0
    assert out.entropy_derivative_temperature[0] == 0.0
    # no strain rate given: viscosity left untouched
    assert out.viscosities[0] == 0.0


class _Adiabat:
    def is_initialized(self):
        return True

    def density(self, position):
        return 4000.0


def test_conductivity_uses_adiabatic_density():
    model = ViscoPlastic(ViscoPlasticParameters())
    state = SimulatorState(use_reference_density_profile=True, adiabatic_conditions=_Adiabat())
    out = _evaluate(model, 1600.0, 1e9, [], state=state, position=[[0.0, 0.0]])
    assert np.isclose(out.thermal_conductivities[0], 0.8e-6 * 1.25e3 * 4000.0)

    out = _evaluate(model, 1600.0, 1e9, [], state=SimulatorState(), position=[[0.0, 0.0]])
    assert np.isclose(out.thermal_conductivities[0], 0.8e-6 * 1.25e3 * out.densities[0])


def test_plastic_outputs_report_current_parameters():
    fields = CompositionalFields(["crust"])
    prm = ViscoPlasticParameters(cohesions=[2e7, 1e7], angles_internal_friction=[30.0, 10.0])
    model = ViscoPlastic(prm, fields=fields)
    out = _evaluate(model, 1600.0, 0.0, [0.5], _pure_shear(1e-15), plastic=True)
    plastic = out.get_additional_output(PlasticAdditionalOutputs)
    assert np.isclose(plastic.cohesions[0], 1.5e7)
    assert np.isclose(plastic.friction_angles[0], 20.0)
    assert plastic.get_names() == ["current_cohesions", "current_friction_angles", "plastic_yielding"]
    assert plastic.get_nth_output(0) is plastic.cohesions
    with pytest.raises(IndexError):
        plastic.get_nth_output(3)


def test_named_outputs_need_nth_output():
    with pytest.raises(TypeError):
        NamedAdditionalMaterialOutputs(["a"])

def test_additional_outputs_created_once():
    model = ViscoPlastic()
    out = MaterialModelOutputs.create(4, 0)
    model.create_additional_named_outputs(out)
    model.create_additional_named_outputs(out)
    assert len(out.additional_outputs) == 1
    assert np.all(np.isnan(out.additional_outputs[0].cohesions))


def test_evaluate_is_repeatable():
    fields = CompositionalFields(["crust"])
    model = ViscoPlastic(ViscoPlasticParameters(cohesions=[2e7, 1e6]), fields=fields)
    inputs = MaterialModelInputs.from_points(
        temperature=[1600.0, 1300.0, 900.0],
        pressure=[1e9, 0.0, 3e8],
        composition=[[0.0], [0.4], [1.0]],
        strain_rate=[_pure_shear(1e-15), _pure_shear(1e-13), _pure_shear(1e-14)],
    )
    out1 = MaterialModelOutputs.create(3, 1)
    out2 = MaterialModelOutputs.create(3, 1)
    model.evaluate(inputs, out1)
    model.evaluate(inputs, out2)
    assert np.array_equal(out1.viscosities, out2.viscosities)
    assert np.array_equal(out1.densities, out2.densities)
    assert np.all(out1.viscosities >= 1e17)
    assert np.all(out1.viscosities <= 1e28)


def test_wrong_number_of_fields_at_evaluation():
    model = ViscoPlastic(fields=CompositionalFields(["crust"]))
    inputs = MaterialModelInputs.from_points([1600.0], [0.0], [[0.1, 0.2]], [_pure_shear(1e-15)])
    with pytest.raises(ConfigurationError):
        model.evaluate(inputs, MaterialModelOutputs.create(1, 2))


def test_model_info():
    model = ViscoPlastic(ViscoPlasticParameters(reference_viscosity=1e21, minimum_strain_rate=1e-19))
    assert model.reference_viscosity() == 1e21
    assert model.is_compressible() is False
    assert model.get_min_strain_rate() == 1e-19


def test_invalid_setup():
    with pytest.raises(ConfigurationError):
        ViscoPlastic(dim=4)
    with pytest.raises(ConfigurationError):
        ViscoPlastic(ViscoPlasticParameters(use_fixed_spcrust_viscosity=True), fields=CompositionalFields(["crust"]))
    with pytest.raises(ConfigurationError):
        ViscoPlastic(ViscoPlasticParameters(cohesions=[1e7, 2e7, 3e7]), fields=CompositionalFields(["crust"]))


def test_diffusion_stress_exponent_is_ignored_with_warning():
    with pytest.warns(UserWarning):
        model = ViscoPlastic(ViscoPlasticParameters(viscous_flow_law="diffusion", stress_exponents_diffusion=3.0))
    out = _evaluate(model, 1600.0, 0.0, [], _pure_shear(1e-15))
    assert np.isclose(out.viscosities[0], _diffusion_viscosity(1600.0))


# ---------------------------------------------------------------------------
# spcrust
# ---------------------------------------------------------------------------


def _spcrust_model(**kwargs):
    prm = ViscoPlasticParameters(viscous_flow_law="diffusion", **kwargs)
    return ViscoPlastic(prm, fields=CompositionalFields(["crust", "spcrust"]))


def test_spcrust_viscosity_cap_relaxes_with_pressure():
    model = _spcrust_model(
        use_fixed_spcrust_viscosity=True,
        maximum_spcrust_viscosity=1e19,
        minimum_transition_pressure_spcrust_viscosity=1e9,
        maximum_transition_pressure_spcrust_viscosity=2e9,
    )
    assert model.spcrust_phase == 2
    e = _pure_shear(1e-15)

    assert np.isclose(_evaluate(model, 1000.0, 0.0, [0.0, 1.0], e).viscosities[0], 1e19)
    assert np.isclose(_evaluate(model, 1000.0, 1.5e9, [0.0, 1.0], e).viscosities[0], 10.0**23.5, rtol=1e-8)
    assert np.isclose(
        _evaluate(model, 1000.0, 3e9, [0.0, 1.0], e).viscosities[0], _diffusion_viscosity(1000.0, 3e9)
    )
    # other phases are not capped
    assert np.isclose(_evaluate(model, 1000.0, 0.0, [1.0, 0.0], e).viscosities[0], _diffusion_viscosity(1000.0))


def test_spcrust_density_ramp():
    model = _spcrust_model(
        use_spcrust_density_change=True,
        density_change_from_spcrust=200.0,
        minimum_transition_pressure_spcrust_density=1e9,
        maximum_transition_pressure_spcrust_density=2e9,
    )
    T = 293.0
    assert np.isclose(_evaluate(model, T, 0.0, [0.0, 1.0]).densities[0], 3300.0)
    assert np.isclose(_evaluate(model, T, 1.5e9, [0.0, 1.0]).densities[0], 3400.0)
    assert np.isclose(_evaluate(model, T, 3e9, [0.0, 1.0]).densities[0], 3500.0)
    assert np.isclose(_evaluate(model, T, 3e9, [1.0, 0.0]).densities[0], 3300.0)


# ---------------------------------------------------------------------------
# strain weakening and reaction terms
# ---------------------------------------------------------------------------


def test_plastic_strain_grows_only_while_yielding():
    prm = ViscoPlasticParameters(
        viscous_flow_law="diffusion",
        cohesions=5e5,
        use_strain_weakening=True,
        use_plastic_strain_weakening=True,
    )
    model = ViscoPlastic(prm, fields=CompositionalFields(["plastic_strain"]))
    state = SimulatorState(timestep_number=1, timestep=1e3)

    out = _evaluate(model, 1600.0, 0.0, [0.0], _pure_shear(1e-12), state=state)
    assert np.isclose(out.reaction_terms[0, 0], 1e-9)

    out = _evaluate(model, 1600.0, 0.0, [0.0], _pure_shear(1e-15), state=state)
    assert out.reaction_terms[0, 0] == 0.0

    # nothing accumulates on the first time step
    out = _evaluate(model, 1600.0, 0.0, [0.0], _pure_shear(1e-12), state=SimulatorState(timestep=1e3))
    assert out.reaction_terms[0, 0] == 0.0


def test_strain_tracker_is_not_a_phase():
    prm = ViscoPlasticParameters(
        viscous_flow_law="diffusion",
        use_strain_weakening=True,
        use_plastic_strain_weakening=True,
        prefactors_diffusion=[1.5e-15, 1.0],
    )
    model = ViscoPlastic(prm, fields=CompositionalFields(["plastic_strain"]))
    out = _evaluate(model, 1600.0, 0.0, [5.0], _pure_shear(1e-15))
    assert np.isclose(out.viscosities[0], _diffusion_viscosity(1600.0))


def test_cohesion_weakening_lowers_yield_viscosity():
    prm = ViscoPlasticParameters(
        viscous_flow_law="diffusion",
        cohesions=5e5,
        use_strain_weakening=True,
        use_plastic_strain_weakening=True,
        cohesion_strain_weakening_factors=0.5,
    )
    model = ViscoPlastic(prm, fields=CompositionalFields(["plastic_strain"]))
    fresh = _evaluate(model, 1600.0, 0.0, [0.0], _pure_shear(1e-12), plastic=True)
    weak = _evaluate(model, 1600.0, 0.0, [1.0], _pure_shear(1e-12), plastic=True)
    assert np.isclose(fresh.viscosities[0], 5e5 / 2e-12)
    assert np.isclose(weak.viscosities[0], 2.5e5 / 2e-12)
    assert np.isclose(weak.get_additional_output(PlasticAdditionalOutputs).cohesions[0], 2.5e5)


def test_viscous_weakening_scales_creep_viscosity():
    prm = ViscoPlasticParameters(
        viscous_flow_law="diffusion",
        use_strain_weakening=True,
        use_viscous_strain_weakening=True,
        prefactor_strain_weakening_factors=0.5,
    )
    model = ViscoPlastic(prm, fields=CompositionalFields(["viscous_strain"]))
    state = SimulatorState(timestep_number=2, timestep=1e3)
    out = _evaluate(model, 1600.0, 0.0, [2.0], _pure_shear(1e-15), state=state)
    assert np.isclose(out.viscosities[0], 0.5 * _diffusion_viscosity(1600.0))
    assert np.isclose(out.reaction_terms[0, 0], 1e-12)


def test_weakening_applies_to_every_phase():
    fields = CompositionalFields(["plastic_strain", "crust"])
    prm = ViscoPlasticParameters(
        viscous_flow_law="diffusion",
        cohesions=[5e5, 5e5, 1e6],
        use_strain_weakening=True,
        use_plastic_strain_weakening=True,
        cohesion_strain_weakening_factors=0.5,
    )
    model = ViscoPlastic(prm, fields=fields)
    viscosities, yielding = model.calculate_isostrain_viscosities(
        0.0, 1600.0, np.array([1.0, 0.0]), _pure_shear(1e-12), 1
    )
    assert np.isclose(viscosities[0], 2.5e5 / 2e-12)
    assert np.isclose(viscosities[2], 5e5 / 2e-12)
    assert yielding[0] == 1.0 and yielding[2] == 1.0

class _ConstantGradient:
    def __init__(self, grad):
        self.grad = np.asarray(grad, dtype=float)

    def velocity_gradients(self, cell, positions):
        return np.repeat(self.grad[None, :, :], len(positions), axis=0)


def test_finite_strain_tensor_increment():
    names = ["s11", "s12", "s21", "s22"]
    prm = ViscoPlasticParameters(use_strain_weakening=True, use_finite_strain_tensor=True)
    model = ViscoPlastic(prm, fields=CompositionalFields(names))
    grad = [[0.0, 1e-14], [0.0, 0.0]]
    n_fields = 4

    def run(timestep_number, cell="cell", provider=True):
        inputs = MaterialModelInputs.from_points(
            temperature=[1600.0],
            pressure=[0.0],
            composition=[[1.0, 0.0, 0.0, 1.0]],
            strain_rate=[_pure_shear(1e-15)],
            position=[[0.0, 0.0]],
            current_cell=cell,
        )
        out = MaterialModelOutputs.create(1, n_fields)
        state = SimulatorState(
            timestep_number=timestep_number,
            timestep=1e3,
            velocity_gradients=_ConstantGradient(grad) if provider else None,
        )
        model.evaluate(inputs, out, state)
        return out

    assert np.allclose(run(1).reaction_terms[0], [0.0, 1e-11, 0.0, 0.0])
    assert np.all(run(0).reaction_terms[0] == 0.0)
    assert np.all(run(1, cell=None).reaction_terms[0] == 0.0)
    with pytest.raises(ConfigurationError):
        run(1, provider=False)
