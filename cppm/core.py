"""
Geometric utilities for particles constrained to a sphere.

This module provides the fundamental operations used by the sampler:
conversion between spherical and Cartesian coordinates, uniform point
picking on the sphere surface, and small random rotations of a point
on the sphere via Rodrigues' formula.

All random draws take an explicit torch.Generator so that a run is
reproducible from a single seed.
"""

import math
import torch
from typing import Tuple


def rodrigues_rotation(
    v: torch.Tensor,
    k: torch.Tensor,
    theta: torch.Tensor,
    vector_dim: int = 0
) -> torch.Tensor:
    """
    Rotate vectors using Rodrigues' rotation formula.

    Implements the rotation of vector v around axis k by angle theta:
        v_rot = v*cos(θ) + (k × v)*sin(θ) + k*(k·v)*(1 - cos(θ))

    The rotation preserves |v| exactly (up to rounding), which is what
    keeps a rotated particle on its sphere.

    Args:
        v: Vectors to rotate, shape (..., 3, ...)
        k: Rotation axes (will be normalized), shape matching v
        theta: Rotation angles in radians, broadcastable to v
        vector_dim: Dimension along which vector components (x,y,z) lie

    Returns:
        Rotated vectors, same shape as v
    """
    k_norm = k / torch.linalg.norm(k, dim=vector_dim, keepdim=True)

    cos_theta = torch.cos(theta)
    sin_theta = torch.sin(theta)

    term1 = v * cos_theta
    term2 = torch.linalg.cross(k_norm, v, dim=vector_dim) * sin_theta
    dot_product = torch.sum(k_norm * v, dim=vector_dim, keepdim=True)
    term3 = k_norm * dot_product * (1 - cos_theta)

    return term1 + term2 + term3


def spherical_to_cartesian(
    theta: float,
    phi: float,
    radius: float
) -> torch.Tensor:
    """
    Convert spherical to Cartesian coordinates (ISO convention).

    Args:
        theta: Polar angle, 0 ≤ θ ≤ π
        phi: Azimuthal angle, 0 ≤ φ < 2π
        radius: Radial distance

    Returns:
        Position, shape (3,), float64
    """
    sin_theta = math.sin(theta)
    return torch.tensor(
        [
            radius * sin_theta * math.cos(phi),
            radius * sin_theta * math.sin(phi),
            radius * math.cos(theta),
        ],
        dtype=torch.float64,
    )


def cartesian_to_spherical(position: torch.Tensor) -> Tuple[float, float, float]:
    """
    Convert a Cartesian position to (radius, theta, phi).

    φ is wrapped into [0, 2π). The origin maps to (0, 0, 0).
    """
    x, y, z = (float(c) for c in position)
    radius = math.sqrt(x * x + y * y + z * z)
    if radius == 0.0:
        return 0.0, 0.0, 0.0
    theta = math.acos(max(-1.0, min(1.0, z / radius)))
    phi = math.atan2(y, x) % (2 * math.pi)
    return radius, theta, phi


def project_to_sphere(position: torch.Tensor, radius: float) -> torch.Tensor:
    """Rescale position(s) along the last dimension to lie exactly at radius."""
    return position * (radius / torch.linalg.norm(position, dim=-1, keepdim=True))


def random_point_on_sphere(
    radius: float,
    generator: torch.Generator,
    device: torch.device | str = "cpu"
) -> torch.Tensor:
    """
    Draw a uniformly distributed point on a sphere surface.

    cos(θ) is drawn uniformly in [-1, 1] and φ uniformly in [0, 2π);
    drawing θ itself uniformly would cluster points at the poles.
    See https://mathworld.wolfram.com/SpherePointPicking.html

    Args:
        radius: Sphere radius
        generator: Random generator for the run
        device: Device for the returned tensor

    Returns:
        Position with |position| == radius, shape (3,)
    """
    u = torch.rand(2, generator=generator, dtype=torch.float64, device=device)
    theta = math.acos(2.0 * float(u[0]) - 1.0)
    phi = 2.0 * math.pi * float(u[1])
    position = spherical_to_cartesian(theta, phi, radius).to(device)
    return project_to_sphere(position, radius)


def random_tangent(position: torch.Tensor, generator: torch.Generator) -> torch.Tensor:
    """
    Random unit vector perpendicular to position, uniform in angle.

    A Gaussian trial vector is crossed with the position; the result is
    isotropic in the tangent plane.
    """
    while True:
        trial = torch.randn(
            3, generator=generator, dtype=position.dtype, device=position.device
        )
        tangent = torch.linalg.cross(position, trial, dim=0)
        norm = torch.linalg.norm(tangent)
        if norm > 1e-12:
            return tangent / norm


def perturb(
    position: torch.Tensor,
    max_angular_step: float,
    generator: torch.Generator
) -> torch.Tensor:
    """
    Propose a new position by a small random rotation on the sphere.

    The position is rotated about a random axis in its tangent plane by
    an angle drawn uniformly from [0, max_angular_step], i.e. it moves
    along a great circle in a random direction. The proposal density
    depends only on the geodesic distance, so it is symmetric as the
    Metropolis rule requires. The result is re-projected onto the
    sphere to remove rounding drift.

    Args:
        position: Current position, shape (3,)
        max_angular_step: Maximum rotation angle (radians)
        generator: Random generator for the run

    Returns:
        New position on the same sphere, shape (3,)
    """
    radius = torch.linalg.norm(position)
    axis = random_tangent(position, generator)
    angle = max_angular_step * torch.rand(
        1, generator=generator, dtype=position.dtype, device=position.device
    )
    rotated = rodrigues_rotation(position, axis, angle, vector_dim=0)
    return rotated * (radius / torch.linalg.norm(rotated))


def geodesic_angle(a: torch.Tensor, b: torch.Tensor) -> float:
    """Angle (radians) between two positions seen from the sphere center."""
    cos_angle = torch.dot(a, b) / (torch.linalg.norm(a) * torch.linalg.norm(b))
    return float(torch.acos(torch.clamp(cos_angle, -1.0, 1.0)))
