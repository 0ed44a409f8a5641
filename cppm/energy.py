"""
Energy model for charged particles on a sphere.

All energies are in units of kT. The Hamiltonian is a composite of
independent energy terms:

- Nonbonded: softcore-regularized Coulomb interaction over all pairs
- DipoleBias: harmonic restraint of the net dipole magnitude

Every term can evaluate the full system energy (used once at start and
at drift checkpoints) and the energy change of a proposed move of one
or a few particles (used every step). Terms that cache state (the
dipole vector) update it only in accept(), so a rejected proposal
leaves them untouched.
"""

import math
import torch
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .particles import ParticleEnsemble


class NumericalError(ArithmeticError):
    """Raised when an energy evaluation produces a non-finite value."""


def _check_finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise NumericalError(f"non-finite {what}: {value}")
    return value


# =============================================================================
# Pair potential
# =============================================================================

class SoftcoreCoulomb:
    """
    Coulomb interaction with softcore repulsion, bounded at zero separation.

        r_eff = (r⁶ + α σ⁶)^(1/6)
        u(r)  = λ_B · [ q_i q_j / r_eff + (σ / r_eff)¹² / σ ]

    Particles on a sphere can come arbitrarily close, so the bare 1/r and
    1/r¹² terms would diverge. Replacing r by r_eff ≥ α^(1/6) σ keeps u
    smooth and finite for every r ≥ 0 while leaving it essentially
    unchanged for r ≫ σ. The repulsion is expressed in λ_B units, so
    λ_B = 0 switches off all pair interactions.

    Attributes:
        bjerrum_length: λ_B (Å)
        sigma:          Softcore length σ (Å)
        alpha:          Softcore strength α (dimensionless)
    """

    def __init__(self, bjerrum_length: float, sigma: float = 4.0, alpha: float = 0.1):
        if sigma <= 0 or alpha <= 0:
            raise ValueError("softcore sigma and alpha must be positive")
        self.bjerrum_length = bjerrum_length
        self.sigma = sigma
        self.alpha = alpha
        self._sigma6 = alpha * sigma ** 6

    def effective_distance(self, distance: torch.Tensor) -> torch.Tensor:
        return (distance ** 6 + self._sigma6) ** (1.0 / 6.0)

    def __call__(
        self,
        distance: torch.Tensor,
        charge_product: torch.Tensor
    ) -> torch.Tensor:
        """
        Pair energies (kT) for the given separations and charge products.

        Args:
            distance:       Separations r_ij (Å), any shape
            charge_product: q_i q_j, broadcastable to distance
        """
        r_eff = self.effective_distance(distance)
        repulsion = (self.sigma / r_eff) ** 12 / self.sigma
        return self.bjerrum_length * (charge_product / r_eff + repulsion)

    @property
    def minimum_distance(self) -> float:
        """Smallest possible r_eff (reached at r = 0)."""
        return self._sigma6 ** (1.0 / 6.0)

    def __repr__(self) -> str:
        return (
            f"SoftcoreCoulomb(bjerrum_length={self.bjerrum_length}, "
            f"sigma={self.sigma}, alpha={self.alpha})"
        )


# =============================================================================
# Energy terms
# =============================================================================

class EnergyTerm(ABC):
    """Interface shared by all terms of the Hamiltonian."""

    @abstractmethod
    def energy(self, ensemble: ParticleEnsemble) -> float:
        """Full energy of the current configuration (kT)."""
        ...

    @abstractmethod
    def delta(
        self,
        ensemble: ParticleEnsemble,
        indices: torch.Tensor,
        positions: torch.Tensor,
    ) -> float:
        """
        Energy change if particles `indices` moved to `positions`.

        The ensemble is not modified.

        Args:
            ensemble:  Current configuration
            indices:   Indices of moved particles, shape (m,)
            positions: Proposed positions, shape (m, 3)
        """
        ...

    def accept(
        self,
        ensemble: ParticleEnsemble,
        indices: torch.Tensor,
        positions: torch.Tensor,
    ) -> None:
        """Update cached state for an accepted move, before the ensemble is changed."""


class Nonbonded(EnergyTerm):
    """Sum of a pair potential over all unordered particle pairs."""

    def __init__(self, pair_potential: SoftcoreCoulomb):
        self.pair_potential = pair_potential

    @staticmethod
    def _distances(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        # Direct differences keep full and incremental energies consistent
        return torch.cdist(a, b, compute_mode="donot_use_mm_for_euclid_dist")

    def pair_energies(self, ensemble: ParticleEnsemble) -> torch.Tensor:
        """Matrix of pair energies, shape (N, N), with a zero diagonal."""
        positions, charges = ensemble.positions, ensemble.charges
        u = self.pair_potential(
            self._distances(positions, positions),
            charges[:, None] * charges[None, :],
        )
        return u.fill_diagonal_(0.0)

    def energy(self, ensemble: ParticleEnsemble) -> float:
        """Sum all pair interactions (kT); O(N²)."""
        return float(torch.triu(self.pair_energies(ensemble), diagonal=1).sum())

    def particle_energy(self, ensemble: ParticleEnsemble, index: int) -> float:
        """Interaction energy of one particle with all others (kT); O(N)."""
        indices = torch.tensor([index], device=ensemble.device)
        return self._group_energy(ensemble.positions, ensemble.charges, indices)

    def _group_energy(
        self,
        positions: torch.Tensor,
        charges: torch.Tensor,
        indices: torch.Tensor,
    ) -> float:
        """
        Energy of all pairs that involve at least one particle in `indices`.

        Each row holds one particle's interactions with everybody; pairs
        inside the group appear in two rows and are counted once.
        """
        u = self.pair_potential(
            self._distances(positions[indices], positions),
            charges[indices, None] * charges[None, :],
        )
        rows = torch.arange(len(indices), device=positions.device)
        u[rows, indices] = 0.0
        return float(u.sum() - 0.5 * u[:, indices].sum())

    def delta(self, ensemble, indices, positions) -> float:
        old_energy = self._group_energy(ensemble.positions, ensemble.charges, indices)
        trial = ensemble.trial_positions(indices, positions)
        new_energy = self._group_energy(trial, ensemble.charges, indices)
        return new_energy - old_energy


class DipoleBias(EnergyTerm):
    """
    Harmonic restraint on the dipole moment magnitude.

        μ = Σ q_i r_i,   U = k (|μ| - μ_target)²

    The dipole vector is cached and updated incrementally: a move changes
    μ by Σ q_i (r_i' - r_i) over the moved particles only.

    Attributes:
        target:         μ_target (eÅ)
        force_constant: k (kT/(eÅ)²)
    """

    def __init__(self, target: float, force_constant: float = 1.0):
        self.target = target
        self.force_constant = force_constant
        self._dipole: Optional[torch.Tensor] = None

    def bias(self, dipole: torch.Tensor) -> float:
        deviation = float(torch.linalg.norm(dipole)) - self.target
        return self.force_constant * deviation * deviation

    @property
    def dipole(self) -> Optional[torch.Tensor]:
        """Cached dipole vector (eÅ), or None before energy() is first called."""
        return self._dipole

    def _trial_dipole(self, ensemble, indices, positions) -> torch.Tensor:
        if self._dipole is None:
            self.energy(ensemble)
        q = ensemble.charges[indices, None]
        change = (q * (positions - ensemble.positions[indices])).sum(dim=0)
        return self._dipole + change

    def energy(self, ensemble: ParticleEnsemble) -> float:
        """Recompute μ from positions, refresh the cache and return the bias."""
        self._dipole = (ensemble.charges[:, None] * ensemble.positions).sum(dim=0)
        return self.bias(self._dipole)

    def delta(self, ensemble, indices, positions) -> float:
        if self._dipole is None:
            self.energy(ensemble)
        trial = self._trial_dipole(ensemble, indices, positions)
        return self.bias(trial) - self.bias(self._dipole)

    def accept(self, ensemble, indices, positions) -> None:
        self._dipole = self._trial_dipole(ensemble, indices, positions)

    def __repr__(self) -> str:
        return f"DipoleBias(target={self.target:.3f} eÅ, k={self.force_constant})"


# =============================================================================
# Composite Hamiltonian
# =============================================================================

class Hamiltonian(EnergyTerm):
    """
    Composite energy function: the sum of independent energy terms.

    Every value leaving the Hamiltonian is checked for finiteness.
    """

    def __init__(self, terms: Sequence[EnergyTerm]):
        self.terms: List[EnergyTerm] = list(terms)

    @classmethod
    def from_config(cls, config) -> "Hamiltonian":
        """
        Build the Hamiltonian for a SimulationConfig.

        The dipole restraint is only added when a target dipole is set.
        """
        terms: List[EnergyTerm] = [
            Nonbonded(SoftcoreCoulomb(
                config.bjerrum_length,
                sigma=config.softcore_sigma,
                alpha=config.softcore_alpha,
            ))
        ]
        if config.target_dipole is not None:
            terms.append(DipoleBias(config.target_dipole, config.dipole_force_constant))
        return cls(terms)

    def energy(self, ensemble: ParticleEnsemble) -> float:
        return _check_finite(sum(term.energy(ensemble) for term in self.terms), "energy")

    def delta(self, ensemble, indices, positions) -> float:
        return _check_finite(
            sum(term.delta(ensemble, indices, positions) for term in self.terms),
            "energy change",
        )

    def accept(self, ensemble, indices, positions) -> None:
        for term in self.terms:
            term.accept(ensemble, indices, positions)

    def term_energies(self, ensemble: ParticleEnsemble) -> dict:
        """Full energy of each term, keyed by class name."""
        return {type(term).__name__: term.energy(ensemble) for term in self.terms}

    def __iter__(self):
        return iter(self.terms)

    def __repr__(self) -> str:
        return f"Hamiltonian({self.terms})"
