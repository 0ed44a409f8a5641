"""
Metropolis-Hastings Monte Carlo for particles on a sphere.

Provides the move set and the sampling engine:
  - DisplaceParticle : rotate one random particle by a small angle
  - SwapPositions    : exchange the positions of two unlike particles
  - Propagator       : picks one registered move per step
  - MetropolisMC     : owns the ensemble, cached energy and statistics

Class hierarchy:
    MoveAlgorithm (abstract)
    ├── DisplaceParticle   optionally tunes its step towards a target acceptance
    └── SwapPositions      charge-neutral swap; charges themselves never change

Each step is transactional: the move proposes new positions, the
Hamiltonian returns the energy change without touching any state, and
only an accepted proposal is committed to the ensemble, the cached
energy and the cached dipole.
"""

import math
import torch
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .config import SimulationConfig
from .core import perturb
from .energy import Hamiltonian, NumericalError
from .particles import ParticleEnsemble


def accept_move(energy_change: float, generator: torch.Generator) -> bool:
    """
    Metropolis criterion with exactly one uniform draw.

    Accept iff ΔE ≤ 0 or u < exp(-ΔE), u ~ U[0, 1). The exponential is
    only evaluated for ΔE > 0, so it cannot overflow.
    """
    u = float(torch.rand(
        1, generator=generator, dtype=torch.float64, device=generator.device
    ))
    return energy_change <= 0.0 or u < math.exp(-energy_change)


@dataclass
class MoveStatistics:
    """Running counts of proposed and accepted moves."""

    proposed: int = 0
    accepted: int = 0

    def record(self, accepted: bool) -> None:
        self.proposed += 1
        if accepted:
            self.accepted += 1

    @property
    def rejected(self) -> int:
        return self.proposed - self.accepted

    @property
    def acceptance_ratio(self) -> float:
        """accepted / proposed; 0.0 before any move was proposed."""
        if self.proposed == 0:
            return 0.0
        return self.accepted / self.proposed

    def reset(self) -> None:
        self.proposed = 0
        self.accepted = 0


# A proposal is (indices, new positions); None means "nothing to do"
Proposal = Optional[Tuple[torch.Tensor, torch.Tensor]]


# =============================================================================
# Moves
# =============================================================================

class MoveAlgorithm(ABC):
    """
    Abstract base class for Monte Carlo moves.

    A move only proposes; it never mutates the ensemble. The engine
    evaluates, accepts or rejects, and reports the outcome back via
    update() so moves can keep their own statistics.
    """

    name: str = "move"

    def __init__(self):
        self.statistics = MoveStatistics()

    @abstractmethod
    def propose(
        self,
        ensemble: ParticleEnsemble,
        generator: torch.Generator
    ) -> Proposal:
        """Return (indices, positions) for a trial configuration, or None."""
        ...

    def update(self, accepted: bool) -> None:
        """Record the outcome of the last proposal."""
        self.statistics.record(accepted)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DisplaceParticle(MoveAlgorithm):
    """
    Rotate one uniformly chosen particle by a random angle ≤ angular_displacement.

    When target_acceptance is given the displacement is adapted every
    tune_interval attempts: multiplied by tune_factor if the windowed
    acceptance is above target, divided by it otherwise.

    Attributes:
        angular_displacement: Current maximum rotation angle (radians)
        target_acceptance:    Desired acceptance ratio, or None for a fixed step
    """

    name = "displace"

    MIN_DISPLACEMENT = 1e-5
    MAX_DISPLACEMENT = math.pi

    def __init__(
        self,
        angular_displacement: float = 0.01,
        target_acceptance: Optional[float] = None,
        tune_interval: int = 100,
        tune_factor: float = 1.1,
    ):
        super().__init__()
        if angular_displacement <= 0:
            raise ValueError("angular displacement must be positive")
        self.angular_displacement = angular_displacement
        self.target_acceptance = target_acceptance
        self.tune_interval = tune_interval
        self.tune_factor = tune_factor
        self._window = MoveStatistics()

    def propose(self, ensemble, generator) -> Proposal:
        index = torch.randint(len(ensemble), (1,), generator=generator, device=ensemble.device)
        position = perturb(ensemble.positions[index[0]], self.angular_displacement, generator)
        return index, position.unsqueeze(0)

    def update(self, accepted: bool) -> None:
        super().update(accepted)
        if self.target_acceptance is None:
            return
        self._window.record(accepted)
        if self._window.proposed >= self.tune_interval:
            self.tune()

    def tune(self) -> None:
        """Scale the displacement towards the target acceptance and restart the window."""
        if self._window.acceptance_ratio > self.target_acceptance:
            displacement = self.angular_displacement * self.tune_factor
        else:
            displacement = self.angular_displacement / self.tune_factor
        self.angular_displacement = min(
            max(displacement, self.MIN_DISPLACEMENT), self.MAX_DISPLACEMENT
        )
        self._window.reset()

    def __repr__(self) -> str:
        return (
            f"DisplaceParticle(angular_displacement={self.angular_displacement:.4g}, "
            f"target_acceptance={self.target_acceptance})"
        )


class SwapPositions(MoveAlgorithm):
    """
    Exchange the positions of two distinct, randomly chosen particles.

    Swapping the positions of two particles with different charges is
    equivalent to swapping their charges, but keeps each particle's
    charge fixed. Pairs with equal charges give an identical
    configuration and yield no proposal.
    """

    name = "swap"

    def propose(self, ensemble, generator) -> Proposal:
        if len(ensemble) < 2:
            return None
        first, second = torch.randperm(
            len(ensemble), generator=generator, device=ensemble.device
        )[:2].tolist()
        charges = ensemble.charges
        if charges[first] == charges[second]:
            return None
        indices = torch.tensor([first, second], device=ensemble.device)
        return indices, ensemble.positions[[second, first]].clone()


class Propagator:
    """Holds the registered moves and runs a randomly selected one per step."""

    def __init__(self, moves: Optional[List[MoveAlgorithm]] = None):
        self.moves: List[MoveAlgorithm] = list(moves) if moves else []

    def push(self, move: MoveAlgorithm) -> None:
        self.moves.append(move)

    def choose(self, generator: torch.Generator) -> MoveAlgorithm:
        if not self.moves:
            raise RuntimeError("no Monte Carlo moves registered")
        if len(self.moves) == 1:
            return self.moves[0]
        index = int(torch.randint(
            len(self.moves), (1,), generator=generator, device=generator.device
        ))
        return self.moves[index]

    def report(self) -> str:
        """One line per move with its acceptance ratio."""
        return "\n".join(
            f"move {i} ({move.name}) acceptance ratio = "
            f"{move.statistics.acceptance_ratio:.2f}"
            for i, move in enumerate(self.moves)
        )

    def __iter__(self):
        return iter(self.moves)

    def __len__(self) -> int:
        return len(self.moves)


# =============================================================================
# Engine
# =============================================================================

class EngineState(Enum):
    INITIALIZING = "initializing"
    SAMPLING = "sampling"
    DONE = "done"


class MetropolisMC:
    """
    Metropolis-Hastings sampler on a fixed ensemble.

    The full O(N²) energy is computed once at construction; afterwards
    the cached energy is only updated by the ΔE of accepted moves. It
    can be compared against a fresh full evaluation with
    check_energy_drift(), automatically every check_interval steps.

    Attributes:
        ensemble:     Particle configuration, mutated in place
        hamiltonian:  Composite energy function
        generator:    The run's single random generator
        propagator:   Registered moves
        energy:       Cached total energy (kT)
        statistics:   Global proposed/accepted counts
        energy_trace: (step, energy) samples
        state:        EngineState
    """

    def __init__(
        self,
        ensemble: ParticleEnsemble,
        hamiltonian: Hamiltonian,
        generator: torch.Generator,
        moves: Optional[List[MoveAlgorithm]] = None,
        trace_interval: int = 100,
        check_interval: int = 0,
        drift_tolerance: float = 1e-6,
    ):
        self.state = EngineState.INITIALIZING
        self.ensemble = ensemble
        self.hamiltonian = hamiltonian
        self.generator = generator
        self.propagator = Propagator(moves or [DisplaceParticle()])
        self.trace_interval = trace_interval
        self.check_interval = check_interval
        self.drift_tolerance = drift_tolerance

        self.statistics = MoveStatistics()
        self._step = 0
        self.energy = hamiltonian.energy(ensemble)
        self.energy_trace: List[Tuple[int, float]] = [(0, self.energy)]

    @classmethod
    def from_config(
        cls,
        config: SimulationConfig,
        generator: Optional[torch.Generator] = None,
        ensemble: Optional[ParticleEnsemble] = None,
    ) -> "MetropolisMC":
        """
        Set up ensemble, Hamiltonian and moves from a SimulationConfig.

        Args:
            config:    Simulation configuration
            generator: Random generator (created from config.seed if None)
            ensemble:  Initial configuration (random placement if None)
        """
        if generator is None:
            generator = config.make_generator()
        if ensemble is None:
            ensemble = ParticleEnsemble.from_config(config, generator)

        moves: List[MoveAlgorithm] = [
            DisplaceParticle(
                config.angular_displacement,
                target_acceptance=config.target_acceptance,
            )
        ]
        if config.swap_moves:
            moves.append(SwapPositions())

        return cls(
            ensemble,
            Hamiltonian.from_config(config),
            generator,
            moves=moves,
            trace_interval=config.trace_interval,
            check_interval=config.check_interval,
            drift_tolerance=config.drift_tolerance,
        )

    @property
    def current_step(self) -> int:
        """Number of completed steps."""
        return self._step

    @property
    def acceptance_ratio(self) -> float:
        return self.statistics.acceptance_ratio

    def step(self) -> bool:
        """
        Perform one Metropolis-Hastings move.

        Returns:
            True if the move was accepted

        Raises:
            NumericalError: on a non-finite energy change
        """
        move = self.propagator.choose(self.generator)
        proposal = move.propose(self.ensemble, self.generator)

        if proposal is None:
            accepted = True
        else:
            indices, positions = proposal
            energy_change = self.hamiltonian.delta(self.ensemble, indices, positions)
            accepted = accept_move(energy_change, self.generator)
            if accepted:
                self.hamiltonian.accept(self.ensemble, indices, positions)
                self.ensemble.set_positions(indices, positions)
                self.energy += energy_change

        move.update(accepted)
        self.statistics.record(accepted)
        self._step += 1

        if self._step % self.trace_interval == 0:
            self.energy_trace.append((self._step, self.energy))
        if self.check_interval and self._step % self.check_interval == 0:
            self._checkpoint()
        return accepted

    def run(
        self,
        steps: int,
        callback: Optional[Callable[["MetropolisMC"], None]] = None
    ) -> None:
        """
        Perform exactly `steps` moves; no early stopping.

        Args:
            steps:    Number of Monte Carlo steps
            callback: Called with the engine after every step (progress, sampling)
        """
        if steps < 0:
            raise ValueError(f"steps must be non-negative, got {steps}")

        self.state = EngineState.SAMPLING
        for _ in range(steps):
            self.step()
            if callback is not None:
                callback(self)
        self.state = EngineState.DONE

    def check_energy_drift(self) -> float:
        """
        Recompute the full energy and compare it with the cached value.

        Returns:
            |cached - recomputed| (kT)
        """
        return abs(self.energy - self.hamiltonian.energy(self.ensemble))

    def _checkpoint(self) -> None:
        drift = self.check_energy_drift()
        if drift > self.drift_tolerance:
            raise NumericalError(
                f"energy drift {drift:.3e} kT exceeds tolerance "
                f"{self.drift_tolerance:.1e} at step {self._step}"
            )

    def reset_statistics(self) -> None:
        """Zero all move counters (global and per move)."""
        self.statistics.reset()
        for move in self.propagator:
            move.statistics.reset()

    def __repr__(self) -> str:
        return (
            f"MetropolisMC(state={self.state.value}, step={self._step}, "
            f"energy={self.energy:.3f}, acceptance={self.acceptance_ratio:.2f})"
        )
