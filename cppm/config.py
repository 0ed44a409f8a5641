"""
Configuration management for charged patchy particle generation.

This module provides a centralized configuration class that manages
all simulation parameters, validation, RNG construction, device
allocation, and unit conversions.
"""

from dataclasses import dataclass, field
from typing import Optional
import numpy as np
import torch
from scipy import constants


# 1 D = 1e-21 / c  C·m;  1 eÅ = e · 1e-10  C·m
DEBYE_TO_EA = 1e-21 / constants.c / (constants.e * constants.angstrom)


class ConfigurationError(ValueError):
    """Raised for invalid simulation parameters, before any sampling."""


@dataclass
class SimulationConfig:
    """
    Central configuration for charged patchy particle Monte Carlo.

    This class manages:
    - Sphere and particle parameters (radius, species counts)
    - Energy parameters (Bjerrum length, softcore, dipole restraint)
    - Move parameters (angular displacement, adaptive tuning, swaps)
    - Random number generator construction
    - Hardware configuration (CPU/GPU device)
    - Bookkeeping intervals (energy trace, drift checkpoints)

    Particles carry a charge of +1e, -1e or 0. All energies are in units
    of the thermal energy kT; lengths are in Ångström.

    Attributes:
        radius: Sphere radius (Å)
        bjerrum_length: Bjerrum length λ_B (Å); 0 disables electrostatics
        num_total: Total number of particles N
        num_plus: Number of +1e particles
        num_minus: Number of -1e particles (the rest are neutral)
        steps: Number of Monte Carlo steps
        dipole_moment: Target dipole moment magnitude (Debye), None = no bias
        dipole_force_constant: Harmonic constant k of the dipole restraint (kT/(eÅ)²)
        angular_displacement: Maximum rotation angle per displacement move (rad)
        target_acceptance: If set, displacement is tuned towards this ratio
        swap_moves: Enable the position swap move
        softcore_sigma: Softcore length scale σ (Å)
        softcore_alpha: Softcore regularization strength α
        seed: Random seed for reproducibility (None = random seed)
        device: Device for PyTorch tensors ("cpu" or "cuda")
        trace_interval: Steps between energy trace samples
        check_interval: Steps between energy drift checkpoints (0 = never)
        drift_tolerance: Maximum allowed |cached - recomputed| energy (kT)
        frame_dpi: DPI resolution for animation frames
        gif_duration: Duration per frame in milliseconds
    """

    # Sphere and particles
    radius: float = 20.0
    bjerrum_length: float = 7.0
    num_total: int = 643
    num_plus: int = 29
    num_minus: int = 37
    steps: int = 10000

    # Dipole restraint
    dipole_moment: Optional[float] = None  # Debye
    dipole_force_constant: float = 1.0

    # Moves
    angular_displacement: float = 0.01
    target_acceptance: Optional[float] = None
    swap_moves: bool = False

    # Softcore: r_eff = (r^6 + alpha * sigma^6)^(1/6)
    softcore_sigma: float = 4.0
    softcore_alpha: float = 0.1

    seed: Optional[int] = None
    device: str = "cpu"

    trace_interval: int = 100
    check_interval: int = 0
    drift_tolerance: float = 1e-6

    # Visualization parameters
    frame_dpi: int = 128
    gif_duration: int = 40  # milliseconds per frame

    _torch_device: torch.device = field(init=False, repr=False)

    def __post_init__(self):
        """Validate parameters and initialize derived properties."""
        self.validate()
        self._torch_device = torch.device(self.device)

    def validate(self) -> None:
        """
        Check all parameters.

        Raises:
            ConfigurationError: on the first invalid parameter found
        """
        if not self.radius > 0:
            raise ConfigurationError(f"radius must be positive, got {self.radius}")
        if self.bjerrum_length < 0:
            raise ConfigurationError(
                f"Bjerrum length must be non-negative, got {self.bjerrum_length}"
            )
        if self.num_total <= 0:
            raise ConfigurationError(
                f"total number of particles must be positive, got {self.num_total}"
            )
        if self.num_plus < 0 or self.num_minus < 0:
            raise ConfigurationError(
                f"particle counts must be non-negative, got "
                f"plus={self.num_plus}, minus={self.num_minus}"
            )
        if self.num_plus + self.num_minus > self.num_total:
            raise ConfigurationError(
                f"number of charged particles ({self.num_plus} + {self.num_minus}) "
                f"exceeds total number of particles ({self.num_total})"
            )
        if self.steps < 0:
            raise ConfigurationError(f"steps must be non-negative, got {self.steps}")
        if self.dipole_moment is not None and self.dipole_moment < 0:
            raise ConfigurationError(
                f"target dipole moment must be non-negative, got {self.dipole_moment}"
            )
        if self.dipole_force_constant < 0:
            raise ConfigurationError(
                f"dipole force constant must be non-negative, got {self.dipole_force_constant}"
            )
        if not self.angular_displacement > 0:
            raise ConfigurationError(
                f"angular displacement must be positive, got {self.angular_displacement}"
            )
        if self.target_acceptance is not None and not 0 < self.target_acceptance < 1:
            raise ConfigurationError(
                f"target acceptance must lie in (0, 1), got {self.target_acceptance}"
            )
        if not (self.softcore_sigma > 0 and self.softcore_alpha > 0):
            raise ConfigurationError("softcore sigma and alpha must be positive")
        if self.trace_interval <= 0 or self.check_interval < 0:
            raise ConfigurationError(
                "trace interval must be positive and check interval non-negative"
            )

    def make_generator(self, verbose: bool = False) -> torch.Generator:
        """
        Create the single random generator used for the whole run.

        Every random draw (placement, particle selection, perturbation,
        acceptance) goes through this generator, so a fixed seed gives
        a reproducible run.

        Args:
            verbose: Print the seed being used

        Returns:
            Seeded torch.Generator on the configured device
        """
        generator = torch.Generator(device=self._torch_device)
        if self.seed is None:
            seed = generator.seed()
            if verbose:
                print(f"⚠️  No seed set - using random seed {seed}")
        else:
            generator.manual_seed(self.seed)
            if verbose:
                print(f"🌱 Seed set to: {self.seed}")
        return generator

    @property
    def torch_device(self) -> torch.device:
        """Get PyTorch device object for tensor allocation."""
        return self._torch_device

    @property
    def num_neutral(self) -> int:
        """Number of uncharged particles."""
        return self.num_total - self.num_plus - self.num_minus

    @property
    def target_dipole(self) -> Optional[float]:
        """Target dipole moment in eÅ, or None if no restraint is set."""
        if self.dipole_moment is None:
            return None
        return self.dipole_moment * DEBYE_TO_EA

    @property
    def surface_area(self) -> float:
        """Sphere surface area (Å²)."""
        return 4.0 * np.pi * self.radius ** 2

    @staticmethod
    def bjerrum_length_for(
        relative_permittivity: float,
        temperature: float = 298.15
    ) -> float:
        """
        Bjerrum length λ_B = e² / (4π ε₀ ε_r k_B T) in Ångström.

        Args:
            relative_permittivity: Dielectric constant of the medium
            temperature: Temperature in Kelvin

        Returns:
            Bjerrum length (Å)

        Example:
            >>> round(SimulationConfig.bjerrum_length_for(78.4, 298.15), 2)
            7.15
        """
        if relative_permittivity <= 0 or temperature <= 0:
            raise ConfigurationError(
                "relative permittivity and temperature must be positive"
            )
        bjerrum = constants.e ** 2 / (
            4 * np.pi * constants.epsilon_0 * relative_permittivity
            * constants.k * temperature
        )
        return bjerrum / constants.angstrom

    def __repr__(self) -> str:
        """Formatted string representation of configuration."""
        dipole = "off" if self.dipole_moment is None else (
            f"{self.dipole_moment} D (k={self.dipole_force_constant})"
        )
        return (
            f"SimulationConfig(\n"
            f"  radius={self.radius}, bjerrum_length={self.bjerrum_length}\n"
            f"  N={self.num_total} (+{self.num_plus}, -{self.num_minus}, "
            f"0x{self.num_neutral}), steps={self.steps}\n"
            f"  dipole restraint={dipole}\n"
            f"  displacement={self.angular_displacement}, "
            f"swap_moves={self.swap_moves}\n"
            f"  seed={self.seed}, device={self.device}\n"
            f")"
        )
