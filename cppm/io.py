"""
Coordinate writers for particle configurations.

Two formats are supported, chosen by file suffix:
- .xyz: particle count, one comment line, then `NAME x y z` per particle
- .pqr: REMARK header, fixed-column ATOM records with charge and radius

Atom names are PP (+1e), MP (-1e) and NP (neutral).
"""

import torch
from pathlib import Path
from typing import Optional

from .analysis import ConfigurationSummary
from .particles import ParticleEnsemble

GENERATOR_NAME = "cppm-generator"
PQR_RESIDUE = "CPP"
PQR_CHAIN = "A"
PQR_RADIUS = 2.0  # Å


def _comment(summary: Optional[ConfigurationSummary]) -> str:
    if summary is None:
        return f"generated by {GENERATOR_NAME}"
    return f"generated by {GENERATOR_NAME} {summary.header()}"


def save_xyzfile(
    output_path: Path | str,
    ensemble: ParticleEnsemble,
    summary: Optional[ConfigurationSummary] = None
) -> None:
    """
    Write an .xyz file.

    Coordinates are written with full float precision so a saved
    configuration reproduces the sampled positions exactly.
    """
    lines = [str(len(ensemble)), _comment(summary)]
    for particle in ensemble:
        x, y, z = particle.position
        lines.append(f"{particle.name} {x!r} {y!r} {z!r}")

    with open(output_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


def format_pqr_atom(index: int, name: str, position, charge: float, radius: float) -> str:
    """One fixed-column PQR ATOM record (1-based serial)."""
    x, y, z = position
    return (
        f"{'ATOM':<6}{index + 1:>5} {name:^4} {PQR_RESIDUE:>3} {PQR_CHAIN:1}{1:>4}    "
        f"{x:8.3f}{y:8.3f}{z:8.3f}{charge:6.2f}{radius:6.2f}"
    )


def save_pqrfile(
    output_path: Path | str,
    ensemble: ParticleEnsemble,
    summary: Optional[ConfigurationSummary] = None
) -> None:
    """Write a .pqr file with per-atom charge and radius."""
    lines = [f"REMARK   1 {_comment(summary)}"]
    if summary is not None:
        lines.append(
            f"REMARK   1 N={summary.num_particles} net charge={summary.net_charge:.2f} "
            f"dipole vector=({summary.dipole[0]:.3f}, {summary.dipole[1]:.3f}, "
            f"{summary.dipole[2]:.3f}) eÅ"
        )
    for particle in ensemble:
        lines.append(format_pqr_atom(
            particle.index, particle.name, particle.position, particle.charge, PQR_RADIUS
        ))
    lines.append("END")

    with open(output_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


def save_coordinates(
    output_path: Path | str,
    ensemble: ParticleEnsemble,
    summary: Optional[ConfigurationSummary] = None
) -> Path:
    """
    Save a configuration, choosing the format from the file suffix.

    Args:
        output_path: Target file ending in .xyz or .pqr
        ensemble:    Configuration to write
        summary:     Optional summary for the file header

    Returns:
        The written path

    Raises:
        ValueError: for an unsupported suffix (nothing is written)
        OSError:    if the file cannot be written
    """
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()

    if suffix == ".xyz":
        save_xyzfile(output_path, ensemble, summary)
    elif suffix == ".pqr":
        save_pqrfile(output_path, ensemble, summary)
    else:
        raise ValueError(f"file suffix must be .xyz or .pqr, got '{output_path.name}'")
    return output_path


def load_xyzfile(input_path: Path | str, radius: Optional[float] = None) -> ParticleEnsemble:
    """
    Read an .xyz file written by save_xyzfile back into an ensemble.

    Charges are recovered from the atom names. If radius is None the
    mean distance from the origin is used.

    Raises:
        ValueError: for a truncated file or an unknown atom name
    """
    charge_of = {"PP": 1.0, "MP": -1.0, "NP": 0.0}
    with open(input_path, encoding="utf-8") as f:
        count = int(f.readline())
        f.readline()
        records = [f.readline().split() for _ in range(count)]

    if any(len(r) < 4 for r in records):
        raise ValueError(f"{input_path}: expected {count} records of the form NAME x y z")
    try:
        charges = torch.tensor([charge_of[r[0]] for r in records], dtype=torch.float64)
    except KeyError as e:
        raise ValueError(f"unknown atom name {e} in {input_path}") from None
    positions = torch.tensor([[float(v) for v in r[1:4]] for r in records], dtype=torch.float64)
    if radius is None:
        radius = float(torch.linalg.norm(positions, dim=1).mean())
    return ParticleEnsemble(positions, charges, radius)
