"""Configuration validation, unit conversion and generator construction."""

from __future__ import annotations

import math

import pytest
import torch

from cppm import DEBYE_TO_EA, ConfigurationError, SimulationConfig


def test_defaults_are_valid() -> None:
    config = SimulationConfig()
    assert config.num_total == 643
    assert config.num_plus == 29
    assert config.num_minus == 37
    assert config.num_neutral == 643 - 29 - 37
    assert config.target_dipole is None
    assert config.torch_device == torch.device("cpu")


@pytest.mark.parametrize(
    "overrides",
    [
        {"radius": 0.0},
        {"radius": -1.0},
        {"bjerrum_length": -0.1},
        {"num_total": 0},
        {"num_plus": -1},
        {"num_total": 10, "num_plus": 6, "num_minus": 5},
        {"steps": -1},
        {"dipole_moment": -3.0},
        {"dipole_force_constant": -1.0},
        {"angular_displacement": 0.0},
        {"target_acceptance": 1.0},
        {"target_acceptance": 0.0},
        {"softcore_sigma": 0.0},
        {"softcore_alpha": -0.1},
        {"trace_interval": 0},
        {"check_interval": -5},
    ],
)
def test_invalid_parameters_raise(overrides) -> None:
    with pytest.raises(ConfigurationError):
        SimulationConfig(**overrides)


def test_configuration_error_is_value_error() -> None:
    assert issubclass(ConfigurationError, ValueError)


def test_boundary_values_are_allowed() -> None:
    config = SimulationConfig(bjerrum_length=0.0, steps=0, num_total=6, num_plus=3, num_minus=3)
    assert config.num_neutral == 0


def test_debye_conversion() -> None:
    assert DEBYE_TO_EA == pytest.approx(0.2081943, rel=1e-6)
    config = SimulationConfig(dipole_moment=100.0)
    assert config.target_dipole == pytest.approx(20.81943, rel=1e-6)


def test_bjerrum_length_of_water() -> None:
    assert SimulationConfig.bjerrum_length_for(78.4, 298.15) == pytest.approx(7.15, abs=0.01)
    with pytest.raises(ConfigurationError):
        SimulationConfig.bjerrum_length_for(0.0)


def test_surface_area() -> None:
    assert SimulationConfig(radius=10.0).surface_area == pytest.approx(400.0 * math.pi)


def test_seeded_generators_agree() -> None:
    a = SimulationConfig(seed=42).make_generator()
    b = SimulationConfig(seed=42).make_generator()
    assert torch.equal(
        torch.rand(8, generator=a, dtype=torch.float64),
        torch.rand(8, generator=b, dtype=torch.float64),
    )


def test_unseeded_generator_announces_seed(capsys) -> None:
    SimulationConfig().make_generator(verbose=True)
    assert "random seed" in capsys.readouterr().out
