"""
Visualization tools for particle configurations on a sphere.

This module provides plotting classes for the sampled configuration
and the run statistics, with built-in support for animation frame
capture and GIF generation.
"""

import io
import numpy as np
import matplotlib.pyplot as plt
import matplotlib.gridspec as gridspec
from PIL import Image
from pathlib import Path
from typing import Optional

# Constants for visualization
DEFAULT_ELEVATION = 20
DEFAULT_AZIMUTH = 45
SPECIES_STYLE = {
    # name: (charge sign, color, marker size)
    "plus": (1, "tab:blue", 40),
    "minus": (-1, "tab:red", 40),
    "neutral": (0, "lightgray", 8),
}


class FrameCapture:
    """
    Helper class for capturing animation frames and creating GIFs.

    Manages the frame buffer and provides methods for saving to
    animated GIF files.
    """

    def __init__(self):
        """Initialize empty frame buffer."""
        self.frames: list[Image.Image] = []

    def capture(self, fig: plt.Figure, dpi: int = 64) -> None:
        """
        Capture current figure state as an image frame.

        Args:
            fig: Matplotlib figure to capture
            dpi: Resolution in dots per inch
        """
        fig.canvas.draw()
        buf = io.BytesIO()
        fig.savefig(buf, format='png', dpi=dpi)
        buf.seek(0)
        self.frames.append(Image.open(buf))

    def save_gif(
            self,
            output_path: Path | str,
            duration: int = 40,
            loop: int = 0
    ) -> Optional[Path]:
        """
        Save captured frames as animated GIF.

        Args:
            output_path: Output file path
            duration: Duration per frame in milliseconds
            loop: Number of loops (0 = infinite)

        Returns:
            The written path, or None if there were no frames
        """
        if not self.frames:
            print("⚠️  No frames captured, skipping GIF save")
            return None

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        self.frames[0].save(
            output_path,
            save_all=True,
            append_images=self.frames[1:],
            optimize=False,
            duration=duration,
            loop=loop
        )

        print(f"✅ Saved GIF: {output_path}")
        self.frames = []
        return output_path


class BasePlotter:
    """
    Base class for all plotters.

    Provides common functionality for figure management and frame capture.
    """

    def __init__(self, fig: Optional[plt.Figure] = None, ax=None):
        """
        Initialize plotter with figure and axes.

        Args:
            fig: Matplotlib figure (creates new if None)
            ax: Matplotlib axes (creates new if None)
        """
        self.fig = fig if fig else plt.figure()
        self.ax = ax if ax else self.fig.add_subplot(111)
        self.frame_capture = FrameCapture()

    def set_size(self, width: float, height: float) -> None:
        """Set figure size in inches."""
        self.fig.set_figwidth(width)
        self.fig.set_figheight(height)

    def capture_frame(self, dpi: int = 64) -> None:
        """Capture current state as animation frame."""
        self.frame_capture.capture(self.fig, dpi=dpi)

    def save_gif(
            self,
            output_path: Path | str,
            duration: int = 40,
            loop: int = 0
    ) -> Optional[Path]:
        """Save captured frames as GIF."""
        return self.frame_capture.save_gif(output_path, duration, loop)

    def save(self, output_path: Path | str, dpi: int = 128) -> Path:
        """Save the current figure as a still image."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.fig.savefig(output_path, dpi=dpi)
        return output_path

    def close(self) -> None:
        plt.close(self.fig)

    def plot(self, engine):
        """
        Plot engine data. Must be implemented by subclasses.

        Args:
            engine: MetropolisMC instance
        """
        raise NotImplementedError("Subclasses must implement plot()")


class SpherePlotter(BasePlotter):
    """
    3D scatter of the particles on their sphere, colored by charge.

    A faint wireframe marks the sphere surface.
    """

    def __init__(
            self,
            fig: Optional[plt.Figure] = None,
            ax=None,
            alpha: float = 0.9
    ):
        """
        Initialize 3D plotter.

        Args:
            fig: Matplotlib figure
            ax: 3D axes (will create if None)
            alpha: Transparency for particle markers
        """
        if ax is None:
            fig = fig if fig else plt.figure()
            ax = fig.add_subplot(111, projection="3d")

        super().__init__(fig, ax)
        self.alpha = alpha

    def _draw_sphere(self, radius: float) -> None:
        u = np.linspace(0, 2 * np.pi, 24)
        v = np.linspace(0, np.pi, 12)
        x = radius * np.outer(np.cos(u), np.sin(v))
        y = radius * np.outer(np.sin(u), np.sin(v))
        z = radius * np.outer(np.ones_like(u), np.cos(v))
        self.ax.plot_wireframe(x, y, z, color="k", alpha=0.05, lw=0.5)

    def plot(self, engine) -> None:
        """
        Plot the current configuration.

        Args:
            engine: MetropolisMC instance (or anything with an `ensemble`)
        """
        ensemble = engine.ensemble
        positions = ensemble.positions.cpu().numpy()
        signs = np.sign(ensemble.charges.cpu().numpy())
        radius = ensemble.radius

        self.ax.clear()
        self.ax.set_axis_off()
        self._draw_sphere(radius)

        for label, (sign, color, size) in SPECIES_STYLE.items():
            mask = signs == sign
            if not mask.any():
                continue
            x, y, z = positions[mask].T
            self.ax.scatter(x, y, z, c=color, s=size, alpha=self.alpha, label=label)

        self.ax.set_xlim(-radius, radius)
        self.ax.set_ylim(-radius, radius)
        self.ax.set_zlim(-radius, radius)
        self.ax.set_box_aspect([1, 1, 1])
        self.ax.view_init(elev=DEFAULT_ELEVATION, azim=DEFAULT_AZIMUTH)
        self.ax.set_title(f"step {engine.current_step}")


class TracePlotter(BasePlotter):
    """
    Energy trace of the run with the running acceptance ratio in the title.
    """

    def __init__(self, fig: Optional[plt.Figure] = None, ax=None):
        """Initialize trace plotter."""
        super().__init__(fig, ax)

    def plot(self, engine) -> None:
        """
        Plot energy versus step.

        Args:
            engine: MetropolisMC instance
        """
        self.ax.clear()
        steps, energies = zip(*engine.energy_trace)
        self.ax.plot(steps, energies, lw=1.5)
        self.ax.set_xlabel("Monte Carlo step")
        self.ax.set_ylabel("Energy (kT)")
        self.ax.set_title(f"acceptance = {engine.acceptance_ratio:.2f}")
        self.ax.grid(True, linestyle='--', alpha=0.3)


class DashboardPlotter(BasePlotter):
    """
    Composite dashboard: sphere snapshot next to the energy trace.
    """

    def __init__(self):
        """Initialize dashboard with two-panel layout."""
        fig = plt.figure(figsize=(12, 5))
        gs = gridspec.GridSpec(1, 2, width_ratios=[1, 1])

        self.sphere = SpherePlotter(fig, fig.add_subplot(gs[0, 0], projection='3d'))
        self.trace = TracePlotter(fig, fig.add_subplot(gs[0, 1]))
        super().__init__(fig, self.sphere.ax)

    def plot(self, engine) -> None:
        """
        Update all sub-plots.

        Args:
            engine: MetropolisMC instance
        """
        self.sphere.plot(engine)
        self.trace.plot(engine)
        self.fig.tight_layout()


__all__ = [
    'FrameCapture',
    'BasePlotter',
    'SpherePlotter',
    'TracePlotter',
    'DashboardPlotter',
]
