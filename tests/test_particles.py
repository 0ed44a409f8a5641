"""Particle ensemble layout, invariants and mutation."""

from __future__ import annotations

import pytest
import torch

from cppm import Particle, ParticleEnsemble


def test_species_layout(small_ensemble) -> None:
    charges = small_ensemble.charges.tolist()
    assert charges[:3] == [1.0, 1.0, 1.0]
    assert charges[3:7] == [0.0] * 4
    assert charges[7:] == [-1.0, -1.0, -1.0]
    assert small_ensemble.species_counts == (4, 3, 3)
    assert len(small_ensemble) == 10


def test_positions_on_sphere(small_ensemble) -> None:
    assert small_ensemble.radial_deviation() < 1e-12


@pytest.mark.parametrize("num_total, num_plus, num_minus", [(10, 6, 5), (0, 0, 0)])
def test_invalid_counts(generator, num_total, num_plus, num_minus) -> None:
    with pytest.raises(ValueError):
        ParticleEnsemble.random(10.0, num_total, num_plus, num_minus, generator)


def test_constructor_checks_shapes() -> None:
    with pytest.raises(ValueError):
        ParticleEnsemble(torch.zeros(4, 2), torch.zeros(4), 1.0)
    with pytest.raises(ValueError):
        ParticleEnsemble(torch.ones(4, 3), torch.zeros(3), 1.0)


def test_particles_and_names(small_ensemble) -> None:
    particles = list(small_ensemble)
    assert all(isinstance(p, Particle) for p in particles)
    assert [p.name for p in particles] == ["PP"] * 3 + ["NP"] * 4 + ["MP"] * 3
    assert particles[5].index == 5
    assert particles[5].position == tuple(small_ensemble.positions[5].tolist())


def test_set_positions_projects(small_ensemble) -> None:
    small_ensemble.set_positions([2], torch.tensor([[0.0, 3.0, 4.0]], dtype=torch.float64))
    assert torch.allclose(
        small_ensemble.positions[2], torch.tensor([0.0, 12.0, 16.0], dtype=torch.float64)
    )
    assert small_ensemble.radial_deviation() < 1e-12


def test_trial_positions_leave_ensemble_untouched(small_ensemble) -> None:
    before = small_ensemble.positions.clone()
    new = torch.tensor([[20.0, 0.0, 0.0]], dtype=torch.float64)
    trial = small_ensemble.trial_positions([4], new)
    assert torch.equal(small_ensemble.positions, before)
    assert torch.equal(trial[4], new[0])


def test_copy_is_exact_and_independent(small_ensemble) -> None:
    clone = small_ensemble.copy()
    assert torch.equal(clone.positions, small_ensemble.positions)
    assert torch.equal(clone.charges, small_ensemble.charges)
    clone.set_positions([0], torch.tensor([[0.0, 0.0, 1.0]], dtype=torch.float64))
    assert not torch.equal(clone.positions, small_ensemble.positions)
