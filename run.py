"""
Command line runner for charged patchy particle generation.

This script orchestrates the full workflow:
1. Argument parsing and configuration setup
2. Random placement (or loading) of the particles
3. Metropolis-Hastings sampling with a progress line
4. Analysis report and coordinate output (.xyz or .pqr)
5. Optional snapshot plots and GIF animation

Example:
    python run.py -o cppm.pqr -N 643 -p 29 -m 37 -s 10000 --seed 1
"""

import argparse
import dataclasses
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from cppm import (
    SimulationConfig,
    ConfigurationError,
    NumericalError,
    MetropolisMC,
    Moments,
    ConfigurationSummary,
    summarize,
    save_coordinates,
    load_xyzfile,
)

OUTPUT_SUFFIXES = (".xyz", ".pqr")


class Timer:
    """Simple timer for performance monitoring."""

    def __init__(self):
        self.start_time = time.perf_counter()
        self.last_lap = time.perf_counter()

    def lap(self) -> float:
        now = time.perf_counter()
        delta = now - self.last_lap
        self.last_lap = now
        return delta

    @property
    def total(self) -> float:
        return time.perf_counter() - self.start_time


def build_parser() -> argparse.ArgumentParser:
    """Command line interface; defaults mirror SimulationConfig."""
    defaults = SimulationConfig()
    parser = argparse.ArgumentParser(
        prog="cppm-generator",
        description="Generates charged patchy particles by Monte Carlo sampling on a sphere",
    )
    parser.add_argument("-o", "--file", required=True, type=Path,
                        help="Output structure (.xyz or .pqr)")
    parser.add_argument("-r", "--radius", type=float, default=None,
                        help=f"Sphere radius (Å); default {defaults.radius}, "
                             "or the radius of the --input file")
    parser.add_argument("-s", "--steps", type=int, default=defaults.steps,
                        help="Number of Monte Carlo iterations")
    parser.add_argument("-N", dest="num_total", type=int, default=defaults.num_total,
                        help="Total number of particles")
    parser.add_argument("-p", "--plus", dest="num_plus", type=int, default=defaults.num_plus,
                        help="Number of positive (+1e) particles")
    parser.add_argument("-m", "--minus", dest="num_minus", type=int, default=defaults.num_minus,
                        help="Number of negative (-1e) particles")
    parser.add_argument("-b", "--bjerrum-length", type=float, default=defaults.bjerrum_length,
                        help="Bjerrum length (Å)")
    parser.add_argument("--epsilon-r", type=float, default=None,
                        help="Relative permittivity; computes the Bjerrum length instead")
    parser.add_argument("--temperature", type=float, default=298.15,
                        help="Temperature (K) used with --epsilon-r")
    parser.add_argument("--dipole", type=float, default=None,
                        help="Target dipole moment (Debye)")
    parser.add_argument("--dipole-force-constant", type=float,
                        default=defaults.dipole_force_constant,
                        help="Dipole restraint force constant (kT/(eÅ)²)")
    parser.add_argument("--displacement", type=float, default=defaults.angular_displacement,
                        help="Maximum angular displacement per move (radians)")
    parser.add_argument("--target-acceptance", type=float, default=None,
                        help="Tune the displacement towards this acceptance ratio")
    parser.add_argument("--swap", action="store_true",
                        help="Also attempt position swaps of unlike particles")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed (random if omitted)")
    parser.add_argument("--check-interval", type=int, default=defaults.check_interval,
                        help="Steps between energy drift checks (0 = off)")
    parser.add_argument("-i", "--input", type=Path, default=None,
                        help="Start from a previously written .xyz configuration")
    parser.add_argument("--plot", type=Path, default=None,
                        help="Directory for snapshot and energy trace plots")
    parser.add_argument("--gif", type=Path, default=None,
                        help="Save an animation of the sampling to this GIF")
    parser.add_argument("--frames", type=int, default=50,
                        help="Number of animation frames for --gif")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Only print errors")
    return parser


def config_from_args(args: argparse.Namespace) -> SimulationConfig:
    """
    Build and validate the configuration.

    Raises:
        ConfigurationError: for invalid parameters
    """
    bjerrum_length = args.bjerrum_length
    if args.epsilon_r is not None:
        bjerrum_length = SimulationConfig.bjerrum_length_for(args.epsilon_r, args.temperature)

    radius = args.radius if args.radius is not None else SimulationConfig.radius

    return SimulationConfig(
        radius=radius,
        bjerrum_length=bjerrum_length,
        num_total=args.num_total,
        num_plus=args.num_plus,
        num_minus=args.num_minus,
        steps=args.steps,
        dipole_moment=args.dipole,
        dipole_force_constant=args.dipole_force_constant,
        angular_displacement=args.displacement,
        target_acceptance=args.target_acceptance,
        swap_moves=args.swap,
        seed=args.seed,
        check_interval=args.check_interval,
    )


def run_simulation(
    config: SimulationConfig,
    output_file: Path,
    input_file: Optional[Path] = None,
    plot_dir: Optional[Path] = None,
    gif_path: Optional[Path] = None,
    n_frames: int = 50,
    verbose: bool = True,
    rescale_input: bool = False,
) -> Tuple[MetropolisMC, ConfigurationSummary]:
    """
    Main simulation entry point.

    Args:
        config:      Simulation configuration
        output_file: Output structure (.xyz or .pqr)
        input_file:  Optional .xyz start configuration; its species counts
                     and radius replace those of config
        plot_dir:    Directory for still plots (skipped if None)
        gif_path:    GIF animation output (skipped if None)
        n_frames:    Number of animation frames
        verbose:     Print progress and reports
        rescale_input: Project the input configuration onto config.radius
                       instead of keeping the radius stored in the file

    Returns:
        (engine, summary) after the run

    Raises:
        ConfigurationError: invalid setup, detected before sampling
        NumericalError:     non-finite energy or drift during sampling
        OSError:            output cannot be written
    """
    output_file = Path(output_file)
    if output_file.suffix.lower() not in OUTPUT_SUFFIXES:
        raise ConfigurationError(
            f"output file must end in .xyz or .pqr, got '{output_file.name}'"
        )

    timer = Timer()
    log = print if verbose else (lambda *a, **k: None)

    ensemble = None
    if input_file is not None:
        ensemble = load_xyzfile(input_file, radius=config.radius if rescale_input else None)
        neutral, plus, minus = ensemble.species_counts
        config = dataclasses.replace(
            config,
            radius=ensemble.radius,
            num_total=len(ensemble),
            num_plus=plus,
            num_minus=minus,
        )
        log(f"📦 Loaded {len(ensemble)} particles from {input_file}")

    log(f"\n{'='*60}")
    log("CPPM Monte Carlo")
    log(f"{'='*60}")
    log(f"Particles:      {config.num_total} "
        f"(+{config.num_plus}, -{config.num_minus}, neutral {config.num_neutral})")
    log(f"Radius:         {config.radius:g} Å")
    log(f"Bjerrum length: {config.bjerrum_length:.3f} Å")
    if config.target_dipole is not None:
        log(f"Dipole target:  {config.dipole_moment} D = {config.target_dipole:.2f} eÅ "
            f"(k={config.dipole_force_constant})")
    log(f"Steps:          {config.steps}")
    log(f"{'='*60}\n")

    generator = config.make_generator(verbose=verbose)
    engine = MetropolisMC.from_config(config, generator=generator, ensemble=ensemble)
    log(f"⚙️  Initial energy: {engine.energy:.3f} kT ({timer.lap():.2f}s)")

    moments = Moments()
    dashboard = None
    frame_every = 0
    if gif_path is not None:
        from cppm.plotting import DashboardPlotter
        dashboard = DashboardPlotter()
        frame_every = max(1, config.steps // max(1, n_frames))

    # Progress and moments share one cadence: about 100 updates per run
    report_every = max(1, config.steps // 100)

    def on_step(mc: MetropolisMC) -> None:
        step = mc.current_step
        if step % report_every == 0:
            moments.sample(mc.ensemble)
        if dashboard is not None and step % frame_every == 0:
            dashboard.plot(mc)
            dashboard.capture_frame(dpi=config.frame_dpi)
        if verbose and (step % report_every == 0 or step == config.steps):
            print(
                f"\r  ↳ [Step {step}/{config.steps}] "
                f"acceptance={mc.acceptance_ratio:.2f} | "
                f"energy={mc.energy:.2f} kT | "
                f"Total: {timer.total:.2f}s",
                end="",
                flush=True,
            )

    engine.run(config.steps, callback=on_step)
    log()

    summary = summarize(engine.ensemble, engine.statistics, energy=engine.energy)

    log(f"✅ Sampling complete ({timer.lap():.2f}s)")
    log(engine.propagator.report())
    if moments.number_of_samples:
        log(moments.format())
    log(summary.format())

    written = save_coordinates(output_file, engine.ensemble, summary)
    log(f"💾 Saved coordinates: {written}")

    if plot_dir is not None:
        from cppm.plotting import SpherePlotter, TracePlotter
        sphere, trace = SpherePlotter(), TracePlotter()
        sphere.plot(engine)
        trace.plot(engine)
        log(f"💾 Saved plot: {sphere.save(Path(plot_dir) / 'configuration.png', dpi=config.frame_dpi)}")
        log(f"💾 Saved plot: {trace.save(Path(plot_dir) / 'energy_trace.png', dpi=config.frame_dpi)}")
        sphere.close()
        trace.close()

    if dashboard is not None:
        dashboard.save_gif(gif_path, duration=config.gif_duration)
        dashboard.close()

    log(f"Total time: {timer.total:.2f}s")
    return engine, summary


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
        run_simulation(
            config,
            output_file=args.file,
            input_file=args.input,
            plot_dir=args.plot,
            gif_path=args.gif,
            n_frames=args.frames,
            verbose=not args.quiet,
            rescale_input=args.radius is not None,
        )
    except (ConfigurationError, NumericalError, ValueError, OSError) as e:
        print(f"\n❌ {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
