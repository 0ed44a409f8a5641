"""
Particle ensemble on a sphere surface.

The ensemble stores all positions in one (N, 3) float64 tensor and all
charges in one (N,) tensor, in a fixed order. Positions are the only
mutable state: charges and species counts never change after creation,
and every position written through the ensemble is re-projected onto
the sphere.
"""

import torch
from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

from .core import project_to_sphere, random_point_on_sphere


@dataclass(frozen=True)
class Particle:
    """Read-only view of one particle: index, position (Å) and charge (e)."""

    index: int
    position: Tuple[float, float, float]
    charge: float

    @property
    def name(self) -> str:
        """Atom name used by the writers: PP (plus), MP (minus), NP (neutral)."""
        if self.charge > 0:
            return "PP"
        if self.charge < 0:
            return "MP"
        return "NP"


class ParticleEnsemble:
    """
    Ordered, fixed-size collection of charged particles on a sphere.

    Attributes:
        radius:    Sphere radius (Å)
        positions: Cartesian positions, shape (N, 3)
        charges:   Charges in units of e, shape (N,)
    """

    def __init__(
        self,
        positions: torch.Tensor,
        charges: torch.Tensor,
        radius: float,
        project: bool = True,
    ):
        """
        Args:
            positions: Initial positions, shape (N, 3)
            charges:   Charges, shape (N,)
            radius:    Sphere radius
            project:   Rescale positions onto the sphere; False keeps them bit for bit
        """
        positions = torch.as_tensor(positions, dtype=torch.float64)
        charges = torch.as_tensor(charges, dtype=torch.float64, device=positions.device)

        if positions.dim() != 2 or positions.shape[1] != 3:
            raise ValueError(f"positions must have shape (N, 3), got {tuple(positions.shape)}")
        if charges.shape != (positions.shape[0],):
            raise ValueError(
                f"charges must have shape ({positions.shape[0]},), got {tuple(charges.shape)}"
            )

        self.radius = float(radius)
        if project:
            positions = project_to_sphere(positions, self.radius)
        self._positions = positions.clone()
        self._charges = charges.clone()

    @classmethod
    def random(
        cls,
        radius: float,
        num_total: int,
        num_plus: int,
        num_minus: int,
        generator: torch.Generator,
        device: torch.device | str = "cpu",
    ) -> "ParticleEnsemble":
        """
        Place particles uniformly at random on the sphere.

        Cations occupy the front of the sequence, anions the back and
        neutral particles the middle.

        Raises:
            ValueError: if num_plus + num_minus > num_total or num_total < 1
        """
        if num_total < 1:
            raise ValueError("at least one particle is required")
        if num_plus + num_minus > num_total:
            raise ValueError("number of charged particles exceeds total number of particles")

        charges = torch.zeros(num_total, dtype=torch.float64, device=device)
        charges[:num_plus] = 1.0
        if num_minus > 0:
            charges[num_total - num_minus:] = -1.0

        positions = torch.stack([
            random_point_on_sphere(radius, generator, device=device)
            for _ in range(num_total)
        ])
        return cls(positions, charges, radius)

    @classmethod
    def from_config(cls, config, generator: torch.Generator) -> "ParticleEnsemble":
        """Random ensemble using the sphere and species counts of a SimulationConfig."""
        return cls.random(
            radius=config.radius,
            num_total=config.num_total,
            num_plus=config.num_plus,
            num_minus=config.num_minus,
            generator=generator,
            device=config.torch_device,
        )

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def positions(self) -> torch.Tensor:
        """Cartesian positions, shape (N, 3). Treat as read-only."""
        return self._positions

    @property
    def charges(self) -> torch.Tensor:
        """Charges, shape (N,). Treat as read-only."""
        return self._charges

    @property
    def device(self) -> torch.device:
        return self._positions.device

    def __len__(self) -> int:
        return self._positions.shape[0]

    def __getitem__(self, index: int) -> Particle:
        x, y, z = self._positions[index].tolist()
        return Particle(int(index), (x, y, z), float(self._charges[index]))

    def __iter__(self) -> Iterator[Particle]:
        for index in range(len(self)):
            yield self[index]

    @property
    def num_plus(self) -> int:
        return int((self._charges > 0).sum())

    @property
    def num_minus(self) -> int:
        return int((self._charges < 0).sum())

    @property
    def num_neutral(self) -> int:
        return int((self._charges == 0).sum())

    @property
    def species_counts(self) -> Tuple[int, int, int]:
        """(neutral, plus, minus) particle counts."""
        return self.num_neutral, self.num_plus, self.num_minus

    def radial_deviation(self) -> float:
        """Largest | |r_i| - R | over all particles (Å)."""
        norms = torch.linalg.norm(self._positions, dim=1)
        return float((norms - self.radius).abs().max())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_positions(self, indices: Sequence[int] | torch.Tensor, positions: torch.Tensor) -> None:
        """
        Commit new positions for the given particles.

        Positions are projected onto the sphere before they are stored.

        Args:
            indices:   Particle indices, length m
            positions: New positions, shape (m, 3)
        """
        indices = torch.as_tensor(indices, dtype=torch.long, device=self.device)
        self._positions[indices] = project_to_sphere(
            positions.to(self._positions), self.radius
        )

    def trial_positions(
        self,
        indices: Sequence[int] | torch.Tensor,
        positions: torch.Tensor,
    ) -> torch.Tensor:
        """Copy of all positions with the given particles moved; the ensemble is untouched."""
        trial = self._positions.clone()
        trial[torch.as_tensor(indices, dtype=torch.long, device=self.device)] = positions
        return trial

    def copy(self) -> "ParticleEnsemble":
        return ParticleEnsemble(self._positions, self._charges, self.radius, project=False)

    def __repr__(self) -> str:
        neutral, plus, minus = self.species_counts
        return (
            f"ParticleEnsemble(N={len(self)}, +{plus}, -{minus}, "
            f"0x{neutral}, radius={self.radius})"
        )
