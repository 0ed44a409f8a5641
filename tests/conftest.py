from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import pytest
import torch

from cppm import ParticleEnsemble, SimulationConfig


@pytest.fixture
def generator() -> torch.Generator:
    return torch.Generator().manual_seed(1234)


@pytest.fixture
def small_config() -> SimulationConfig:
    return SimulationConfig(
        radius=20.0,
        num_total=10,
        num_plus=3,
        num_minus=3,
        steps=500,
        angular_displacement=0.2,
        seed=7,
    )


@pytest.fixture
def small_ensemble(small_config: SimulationConfig, generator: torch.Generator) -> ParticleEnsemble:
    return ParticleEnsemble.from_config(small_config, generator)
