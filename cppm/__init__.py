"""
Charged Patchy Particle Model (CPPM) generator

Generates point charges on a sphere surface by Metropolis-Hastings
Monte Carlo sampling of a softcore Coulomb energy, optionally
restrained to a target dipole moment.

Main Components:
---------------
config.SimulationConfig    - Central configuration management
particles.ParticleEnsemble - Charged particles on a sphere
energy.Hamiltonian         - Nonbonded + dipole restraint energy terms
markov.MetropolisMC        - Monte Carlo engine
analysis.summarize         - Final configuration properties
io.save_coordinates        - .xyz / .pqr writers
plotting.*                 - Visualization classes

Module Structure:
----------------
├── run.py                  # Command line runner
└── cppm/                   # Package
    ├── config.py           # Configuration management
    ├── core.py             # Sphere geometry (Rodrigues rotation, point picking)
    ├── particles.py        # Particle ensemble
    ├── energy.py           # Energy model
    ├── markov.py           # Metropolis-Hastings engine and moves
    ├── analysis.py         # Moments and summary
    ├── io.py               # Coordinate writers
    ├── plotting.py         # Visualization classes
    └── __init__.py         # This file

For detailed usage, see run.py.
"""

from .config import SimulationConfig, ConfigurationError, DEBYE_TO_EA
from .core import (
    rodrigues_rotation,
    spherical_to_cartesian,
    cartesian_to_spherical,
    random_point_on_sphere,
    perturb,
)
from .particles import Particle, ParticleEnsemble
from .energy import (
    SoftcoreCoulomb,
    Nonbonded,
    DipoleBias,
    Hamiltonian,
    NumericalError,
)
from .markov import (
    MetropolisMC,
    EngineState,
    MoveStatistics,
    DisplaceParticle,
    SwapPositions,
    Propagator,
    accept_move,
)
from .analysis import Moments, ConfigurationSummary, dipole_moment, summarize
from .io import save_coordinates, load_xyzfile

__version__ = "0.2.0"

__all__ = [
    # Configuration
    'SimulationConfig',
    'ConfigurationError',
    'DEBYE_TO_EA',

    # Geometry
    'rodrigues_rotation',
    'spherical_to_cartesian',
    'cartesian_to_spherical',
    'random_point_on_sphere',
    'perturb',

    # State and energy
    'Particle',
    'ParticleEnsemble',
    'SoftcoreCoulomb',
    'Nonbonded',
    'DipoleBias',
    'Hamiltonian',
    'NumericalError',

    # Sampling
    'MetropolisMC',
    'EngineState',
    'MoveStatistics',
    'DisplaceParticle',
    'SwapPositions',
    'Propagator',
    'accept_move',

    # Analysis and output
    'Moments',
    'ConfigurationSummary',
    'dipole_moment',
    'summarize',
    'save_coordinates',
    'load_xyzfile',
]
