"""Smoke tests for the plotters; the Agg backend is selected in conftest."""

from __future__ import annotations

from cppm import MetropolisMC, SimulationConfig
from cppm.plotting import DashboardPlotter, FrameCapture, SpherePlotter, TracePlotter


def _engine() -> MetropolisMC:
    config = SimulationConfig(radius=10.0, num_total=12, num_plus=4, num_minus=4, seed=2, angular_displacement=0.2)
    return MetropolisMC.from_config(config)


def test_still_plots(tmp_path) -> None:
    engine = _engine()
    engine.run(300)
    sphere, trace = SpherePlotter(), TracePlotter()
    sphere.plot(engine)
    trace.plot(engine)
    assert sphere.save(tmp_path / "plots" / "sphere.png", dpi=32).exists()
    assert trace.save(tmp_path / "plots" / "trace.png", dpi=32).exists()
    sphere.close()
    trace.close()


def test_dashboard_gif(tmp_path) -> None:
    engine = _engine()
    dashboard = DashboardPlotter()
    for _ in range(3):
        engine.run(100)
        dashboard.plot(engine)
        dashboard.capture_frame(dpi=32)
    assert len(dashboard.frame_capture.frames) == 3
    path = dashboard.save_gif(tmp_path / "run.gif", duration=20)
    assert path is not None and path.exists()
    assert dashboard.frame_capture.frames == []
    dashboard.close()


def test_empty_capture_skips_gif(tmp_path, capsys) -> None:
    assert FrameCapture().save_gif(tmp_path / "empty.gif") is None
    assert not (tmp_path / "empty.gif").exists()
    assert "No frames" in capsys.readouterr().out
