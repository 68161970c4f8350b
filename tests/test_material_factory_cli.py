import numpy as np
import pytest
import yaml

from mantle_rheology.cli import main
from mantle_rheology.errors import ConfigurationError
from mantle_rheology.interfaces import CompositionalFields
from mantle_rheology.material_factory import make_material_model
from mantle_rheology.parameters import SimpleNonlinearParameters, ViscoPlasticParameters
from mantle_rheology.simple_nonlinear import SimpleNonlinear
from mantle_rheology.utils.run_info import print_material_summary
from mantle_rheology.visco_plastic import ViscoPlastic


def test_factory_names_and_aliases():
    assert isinstance(make_material_model("visco plastic"), ViscoPlastic)
    assert isinstance(make_material_model("Visco-Plastic"), ViscoPlastic)
    assert isinstance(make_material_model("simple_nonlinear"), SimpleNonlinear)
    with pytest.raises(ConfigurationError):
        make_material_model("grain size")


def test_factory_accepts_mappings_and_field_lists():
    model = make_material_model(
        "visco plastic",
        {"cohesions": [2e7, 1e7], "viscous_flow_law": "diffusion"},
        dim=3,
        fields=["crust"],
    )
    assert model.dim == 3
    assert model.n_phases == 2
    assert model.phases.cohesions.tolist() == [2e7, 1e7]

    lookup = CompositionalFields(["a", "b"])
    model = make_material_model("simple nonlinear", SimpleNonlinearParameters(), fields=lookup)
    assert model.n_fields == 3


def test_factory_rejects_mismatched_parameter_type():
    with pytest.raises(ConfigurationError):
        make_material_model("simple nonlinear", ViscoPlasticParameters())


def test_material_summary_prints_tagged_lines(capsys):
    fields = CompositionalFields(["plastic_strain", "spcrust"])
    prm = ViscoPlasticParameters(
        use_strain_weakening=True,
        use_plastic_strain_weakening=True,
        use_spcrust_density_change=True,
    )
    print_material_summary(ViscoPlastic(prm, fields=fields))
    text = capsys.readouterr().out
    assert "[material] (visco plastic)" in text
    assert "[weakening] mode=plastic" in text
    assert "[spcrust] phase=2" in text

    print_material_summary(SimpleNonlinear())
    assert "[material] (simple nonlinear)" in capsys.readouterr().out


def _write_config(tmp_path, data):
    path = tmp_path / "model.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_cli_evaluates_one_point(tmp_path, capsys):
    cfg = _write_config(
        tmp_path,
        {
            "model": "visco plastic",
            "dim": 2,
            "compositional_fields": ["crust"],
            "parameters": {"viscous_flow_law": "dislocation", "cohesions": [2e7, 1e7]},
        },
    )
    rc = main(
        [
            cfg,
            "--temperature", "1600",
            "--pressure", "1e9",
            "--strain-rate", "1e-15", "0", "0", "-1e-15",
            "--composition", "0.5",
            "--derivatives",
        ]
    )
    assert rc == 0
    text = capsys.readouterr().out
    assert "[point 0] viscosity=" in text
    assert "[plastic] cohesion=" in text
    assert "[newton] deta/dp=" in text


def test_cli_reports_configuration_errors(tmp_path, capsys):
    cfg = _write_config(tmp_path, {"model": "visco plastic", "compositional_fields": ["crust"]})
    # one composition value missing
    rc = main([cfg, "--strain-rate", "1e-15", "0", "0", "-1e-15"])
    assert rc == 1
    assert "Error:" in capsys.readouterr().err

    cfg = _write_config(tmp_path, {"model": "unknown"})
    assert main([cfg]) == 1

    # 3x3 strain rate given for a 2D model
    cfg = _write_config(tmp_path, {"model": "simple nonlinear"})
    assert main([cfg, "--strain-rate"] + ["0"] * 9) == 1
