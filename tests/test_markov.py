"""Metropolis-Hastings engine: acceptance rule, moves and run invariants."""

from __future__ import annotations

import math

import pytest
import torch

from cppm import (
    DEBYE_TO_EA,
    DisplaceParticle,
    EngineState,
    Hamiltonian,
    MetropolisMC,
    MoveStatistics,
    Nonbonded,
    NumericalError,
    ParticleEnsemble,
    Propagator,
    SimulationConfig,
    SoftcoreCoulomb,
    SwapPositions,
    accept_move,
    dipole_moment,
)
from cppm.energy import EnergyTerm


def _engine(**overrides) -> MetropolisMC:
    params = dict(radius=10.0, num_total=30, num_plus=10, num_minus=10, angular_displacement=0.3, seed=11)
    params.update(overrides)
    return MetropolisMC.from_config(SimulationConfig(**params))


def test_downhill_and_flat_moves_always_accepted(generator) -> None:
    assert all(accept_move(-5.0, generator) for _ in range(100))
    assert all(accept_move(0.0, generator) for _ in range(100))


def test_huge_uphill_moves_rejected_without_overflow(generator) -> None:
    assert not any(accept_move(1e6, generator) for _ in range(100))
    assert not accept_move(1e300, generator)


def test_acceptance_probability(generator) -> None:
    accepted = sum(accept_move(math.log(2.0), generator) for _ in range(20000))
    assert accepted / 20000 == pytest.approx(0.5, abs=0.02)


def test_accept_move_draws_exactly_one_number() -> None:
    a = torch.Generator().manual_seed(5)
    b = torch.Generator().manual_seed(5)
    accept_move(-1.0, a)
    torch.rand(1, generator=b, dtype=torch.float64)
    assert torch.equal(torch.rand(4, generator=a), torch.rand(4, generator=b))


def test_move_statistics() -> None:
    stats = MoveStatistics()
    assert stats.acceptance_ratio == 0.0
    for accepted in (True, False, True, True):
        stats.record(accepted)
    assert (stats.proposed, stats.accepted, stats.rejected) == (4, 3, 1)
    assert stats.acceptance_ratio == 0.75
    stats.reset()
    assert stats.proposed == 0


def test_swap_proposal(generator) -> None:
    positions = torch.tensor([[0.0, 0.0, 1.0], [0.0, 0.0, -1.0]], dtype=torch.float64)
    ensemble = ParticleEnsemble(positions, torch.tensor([1.0, -1.0]), 1.0)
    indices, new = SwapPositions().propose(ensemble, generator)
    for index, position in zip(indices.tolist(), new):
        assert torch.equal(position, positions[1 - index])

    same = ParticleEnsemble(positions, torch.tensor([1.0, 1.0]), 1.0)
    assert SwapPositions().propose(same, generator) is None


def test_propagator_choice(generator) -> None:
    displace, swap = DisplaceParticle(), SwapPositions()
    propagator = Propagator([displace])
    assert all(propagator.choose(generator) is displace for _ in range(10))
    propagator.push(swap)
    chosen = {propagator.choose(generator).name for _ in range(100)}
    assert chosen == {"displace", "swap"}
    assert "move 1 (swap)" in propagator.report()
    with pytest.raises(RuntimeError):
        Propagator().choose(generator)


def test_engine_state_and_callback() -> None:
    engine = _engine()
    assert engine.state is EngineState.INITIALIZING
    seen = []
    engine.run(250, callback=lambda mc: seen.append(mc.current_step))
    assert seen == list(range(1, 251))
    assert engine.state is EngineState.DONE
    assert engine.statistics.proposed == 250
    assert [step for step, _ in engine.energy_trace] == [0, 100, 200]


def test_negative_steps_rejected() -> None:
    with pytest.raises(ValueError):
        _engine().run(-1)


def test_zero_steps_leave_configuration_unchanged() -> None:
    engine = _engine()
    initial = engine.ensemble.positions.clone()
    engine.run(0)
    assert torch.equal(engine.ensemble.positions, initial)
    assert engine.acceptance_ratio == 0.0
    assert engine.state is EngineState.DONE


def test_run_invariants() -> None:
    engine = _engine(bjerrum_length=7.0, dipole_moment=100.0)
    charges = engine.ensemble.charges.clone()
    counts = engine.ensemble.species_counts
    drifts = []

    def check(mc: MetropolisMC) -> None:
        if mc.current_step % 200 == 0:
            drifts.append(mc.check_energy_drift())
            assert mc.ensemble.radial_deviation() < 1e-9

    engine.run(2000, callback=check)
    assert len(drifts) == 10
    assert max(drifts) < 1e-6
    assert torch.equal(engine.ensemble.charges, charges)
    assert engine.ensemble.species_counts == counts
    assert 0.0 < engine.acceptance_ratio < 1.0


def test_no_interactions_accepts_everything() -> None:
    engine = _engine(bjerrum_length=0.0)
    engine.run(500)
    assert engine.acceptance_ratio == 1.0
    assert engine.energy == 0.0


def test_same_seed_same_trajectory() -> None:
    a, b = _engine(seed=3, swap_moves=True), _engine(seed=3, swap_moves=True)
    a.run(300)
    b.run(300)
    assert torch.equal(a.ensemble.positions, b.ensemble.positions)
    assert a.energy == b.energy


def test_swap_moves_keep_charges() -> None:
    engine = _engine(swap_moves=True, bjerrum_length=7.0)
    charges = engine.ensemble.charges.clone()
    engine.run(1000)
    swap = engine.propagator.moves[1]
    assert swap.statistics.proposed > 0
    assert torch.equal(engine.ensemble.charges, charges)
    assert engine.check_energy_drift() < 1e-6


def test_adaptive_displacement_grows_when_everything_is_accepted() -> None:
    engine = _engine(bjerrum_length=0.0, angular_displacement=0.01, target_acceptance=0.5)
    engine.run(1000)
    displace = engine.propagator.moves[0]
    assert displace.angular_displacement == pytest.approx(0.01 * 1.1 ** 10)


def test_adaptive_displacement_is_clamped() -> None:
    move = DisplaceParticle(angular_displacement=3.0, target_acceptance=0.5, tune_interval=1)
    for _ in range(5):
        move.update(True)
    assert move.angular_displacement == math.pi


def test_dipole_restraint_reaches_target() -> None:
    target = 40.0  # eÅ
    engine = MetropolisMC.from_config(SimulationConfig(
        radius=10.0,
        num_total=10,
        num_plus=5,
        num_minus=5,
        bjerrum_length=0.0,
        dipole_moment=target / DEBYE_TO_EA,
        dipole_force_constant=1.0,
        angular_displacement=0.5,
        seed=7,
    ))
    engine.run(10000)
    magnitude = float(torch.linalg.norm(dipole_moment(engine.ensemble)))
    assert magnitude == pytest.approx(target, abs=5.0)


def test_checkpoint_raises_on_drift() -> None:
    engine = _engine(check_interval=10, drift_tolerance=1e-6)
    engine.energy += 1.0
    with pytest.raises(NumericalError):
        engine.run(10)


class _NonFiniteChange(EnergyTerm):
    """Energy term whose incremental change is never finite."""

    def energy(self, ensemble) -> float:
        return 0.0

    def delta(self, ensemble, indices, positions) -> float:
        return float("nan")


def test_non_finite_energy_change_aborts_run(small_ensemble, generator) -> None:
    hamiltonian = Hamiltonian([Nonbonded(SoftcoreCoulomb(7.0)), _NonFiniteChange()])
    engine = MetropolisMC(small_ensemble, hamiltonian, generator)
    positions = engine.ensemble.positions.clone()
    energy = engine.energy

    with pytest.raises(NumericalError):
        engine.run(5)
    assert torch.equal(engine.ensemble.positions, positions)
    assert engine.energy == energy
    assert engine.current_step == 0
    assert engine.statistics.proposed == 0
