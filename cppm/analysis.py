"""
Analysis tools for charged particle configurations.

This module provides:
- Multipole helpers (net charge, dipole moment, charge center)
- Moments: running averages accumulated while sampling
- ConfigurationSummary: final properties of a configuration, handed to
  the writers and printed by the runner

Everything here is computed directly from particle positions and
charges. In particular the final dipole moment is recomputed from
scratch and never taken from the sampler's incremental cache.
"""

import math
import torch
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import DEBYE_TO_EA
from .particles import ParticleEnsemble


def net_charge(ensemble: ParticleEnsemble) -> float:
    """Monopole moment Σ q_i (e)."""
    return float(ensemble.charges.sum())


def absolute_charge(ensemble: ParticleEnsemble) -> float:
    """Σ |q_i| (e)."""
    return float(ensemble.charges.abs().sum())


def geometric_center(ensemble: ParticleEnsemble) -> torch.Tensor:
    """Mean position Σ r_i / N (Å)."""
    return ensemble.positions.mean(dim=0)


def charge_center(ensemble: ParticleEnsemble) -> torch.Tensor:
    """
    |q|-weighted mean position Σ |q_i| r_i / Σ |q_i| (Å).

    Returns the zero vector for an uncharged ensemble.
    """
    weights = ensemble.charges.abs()
    total = weights.sum()
    if total == 0:
        return torch.zeros(3, dtype=ensemble.positions.dtype, device=ensemble.device)
    return (weights[:, None] * ensemble.positions).sum(dim=0) / total


def dipole_moment(ensemble: ParticleEnsemble) -> torch.Tensor:
    """Dipole moment vector μ = Σ q_i r_i (eÅ)."""
    return (ensemble.charges[:, None] * ensemble.positions).sum(dim=0)


def to_debye(dipole: float) -> float:
    """Convert a dipole magnitude from eÅ to Debye."""
    return dipole / DEBYE_TO_EA


class Moments:
    """
    Running averages of configuration moments, sampled during the run.

    Accumulates the geometric center, charge center, dipole vector and
    dipole magnitude; means are taken over the number of samples.
    """

    def __init__(self):
        self.number_of_samples = 0
        self._geometric_center = torch.zeros(3, dtype=torch.float64)
        self._charge_center = torch.zeros(3, dtype=torch.float64)
        self._dipole_moment = torch.zeros(3, dtype=torch.float64)
        self._dipole_scalar = 0.0

    def sample(self, ensemble: ParticleEnsemble) -> None:
        """Add the current configuration to the averages."""
        mu = dipole_moment(ensemble).cpu()
        self._geometric_center += geometric_center(ensemble).cpu()
        self._charge_center += charge_center(ensemble).cpu()
        self._dipole_moment += mu
        self._dipole_scalar += float(torch.linalg.norm(mu))
        self.number_of_samples += 1

    def _mean(self, total):
        if self.number_of_samples == 0:
            raise ValueError("no samples collected")
        return total / self.number_of_samples

    @property
    def mean_geometric_center(self) -> torch.Tensor:
        return self._mean(self._geometric_center)

    @property
    def mean_charge_center(self) -> torch.Tensor:
        return self._mean(self._charge_center)

    @property
    def mean_dipole_moment(self) -> torch.Tensor:
        """⟨Σ q_i r_i⟩ (eÅ), the averaged vector."""
        return self._mean(self._dipole_moment)

    @property
    def mean_dipole_scalar(self) -> float:
        """⟨|Σ q_i r_i|⟩ (eÅ), the averaged magnitude."""
        return self._mean(self._dipole_scalar)

    def format(self) -> str:
        """Human-readable report of the averaged moments."""
        mu = self.mean_dipole_scalar
        return "\n".join([
            f"geometric center displacement = |⟨∑𝐫ᵢ/N⟩| = "
            f"{float(torch.linalg.norm(self.mean_geometric_center)):.1f} Å",
            f"charge center displacement    = |⟨∑|qᵢ|𝐫ᵢ⟩/N| = "
            f"{float(torch.linalg.norm(self.mean_charge_center)):.1f} Å",
            f"mean dipole moment 𝛍          = ⟨|∑qᵢ𝐫ᵢ|⟩ = "
            f"{mu:.1f} eÅ = {to_debye(mu):.1f} D",
        ])


@dataclass
class ConfigurationSummary:
    """
    Global properties of a final configuration.

    Surface charge densities are area per unit charge; they are infinite
    when the corresponding charge is zero.
    """

    num_particles: int
    num_plus: int
    num_minus: int
    num_neutral: int
    radius: float
    surface_area: float
    net_charge: float
    absolute_charge: float
    dipole: Tuple[float, float, float]
    dipole_magnitude: float
    acceptance_ratio: float = 0.0
    energy: Optional[float] = None

    @property
    def dipole_debye(self) -> float:
        return to_debye(self.dipole_magnitude)

    @property
    def particle_density(self) -> float:
        """Surface area per particle (Å²/particle)."""
        return self.surface_area / self.num_particles

    @property
    def surface_charge_density(self) -> float:
        """Surface area per net charge (Å²/e)."""
        if self.net_charge == 0:
            return math.inf
        return self.surface_area / self.net_charge

    @property
    def absolute_surface_charge_density(self) -> float:
        """Surface area per absolute charge (Å²/e)."""
        if self.absolute_charge == 0:
            return math.inf
        return self.surface_area / self.absolute_charge

    def header(self) -> str:
        """Single-line summary for file comments."""
        return (
            f"acceptance={self.acceptance_ratio:.4f} "
            f"dipole={self.dipole_magnitude:.4f} eÅ ({self.dipole_debye:.4f} D) "
            f"radius={self.radius}"
        )

    def format(self) -> str:
        """Multi-line human-readable report."""
        lines = [
            "CPPM properties:",
            f"  number of particles       = {self.num_particles} "
            f"(+{self.num_plus}, -{self.num_minus}, neutral {self.num_neutral})",
            f"  abs. net charge           = {self.absolute_charge}",
            f"  radius                    = {self.radius} Å",
            f"  surface area              = {self.surface_area:.2f} Å²",
            f"  monopole moment           = {self.net_charge:.2f}e",
            f"  dipole moment |𝛍|         = {self.dipole_magnitude:.2f} eÅ = "
            f"{self.dipole_debye:.2f} D",
            f"  particle density          = {self.particle_density:.2f} Å²/particle",
            f"  surf. charge density      = {self.surface_charge_density:.2f} Å²/e",
            f"  abs. surf. charge density = {self.absolute_surface_charge_density:.2f} Å²/e",
            f"  acceptance ratio          = {self.acceptance_ratio:.3f}",
        ]
        if self.energy is not None:
            lines.append(f"  energy                    = {self.energy:.3f} kT")
        return "\n".join(lines)


def summarize(
    ensemble: ParticleEnsemble,
    statistics=None,
    energy: Optional[float] = None,
) -> ConfigurationSummary:
    """
    Compute the summary of a configuration.

    Args:
        ensemble:   Final configuration
        statistics: MoveStatistics of the run (acceptance ratio 0 if None)
        energy:     Final energy (kT), if known

    Returns:
        ConfigurationSummary with the dipole recomputed from positions
    """
    mu = dipole_moment(ensemble)
    neutral, plus, minus = ensemble.species_counts
    return ConfigurationSummary(
        num_particles=len(ensemble),
        num_plus=plus,
        num_minus=minus,
        num_neutral=neutral,
        radius=ensemble.radius,
        surface_area=4.0 * math.pi * ensemble.radius ** 2,
        net_charge=net_charge(ensemble),
        absolute_charge=absolute_charge(ensemble),
        dipole=tuple(mu.tolist()),
        dipole_magnitude=float(torch.linalg.norm(mu)),
        acceptance_ratio=statistics.acceptance_ratio if statistics is not None else 0.0,
        energy=energy,
    )
