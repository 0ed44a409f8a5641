"""Coordinate writers and the .xyz reader."""

from __future__ import annotations

import pytest
import torch

from cppm import load_xyzfile, save_coordinates, summarize
from cppm.io import format_pqr_atom


def test_xyz_layout(tmp_path, small_ensemble) -> None:
    path = save_coordinates(tmp_path / "out.xyz", small_ensemble, summarize(small_ensemble))
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "10"
    assert lines[1].startswith("generated by cppm-generator acceptance=")
    assert len(lines) == 12

    charge_of = {"PP": 1, "MP": -1, "NP": 0}
    total = 0
    for line in lines[2:]:
        name, x, y, z = line.split()
        total += charge_of[name]
        norm = float(torch.linalg.norm(torch.tensor([float(x), float(y), float(z)], dtype=torch.float64)))
        assert abs(norm - 20.0) < 1e-6
    assert total == 0


def test_xyz_reload_reproduces_configuration(tmp_path, small_ensemble) -> None:
    path = save_coordinates(tmp_path / "out.xyz", small_ensemble)
    loaded = load_xyzfile(path, radius=small_ensemble.radius)
    assert torch.equal(loaded.charges, small_ensemble.charges)
    assert torch.allclose(loaded.positions, small_ensemble.positions, atol=1e-12)
    assert load_xyzfile(path).radius == pytest.approx(20.0)


def test_xyz_reader_rejects_unknown_names(tmp_path) -> None:
    path = tmp_path / "bad.xyz"
    path.write_text("1\ncomment\nXX 1.0 0.0 0.0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_xyzfile(path)


def test_pqr_atom_columns() -> None:
    record = format_pqr_atom(0, "PP", (1.5, -2.25, 19.875), 1.0, 2.0)
    assert record.startswith("ATOM      1  PP  CPP A   1    ")
    assert float(record[30:38]) == 1.5
    assert float(record[38:46]) == -2.25
    assert float(record[46:54]) == 19.875
    assert float(record[54:60]) == 1.0
    assert float(record[60:66]) == 2.0


def test_pqr_file(tmp_path, small_ensemble) -> None:
    path = save_coordinates(tmp_path / "out.pqr", small_ensemble, summarize(small_ensemble))
    lines = path.read_text(encoding="utf-8").splitlines()
    atoms = [line for line in lines if line.startswith("ATOM")]
    assert lines[0].startswith("REMARK")
    assert lines[-1] == "END"
    assert len(atoms) == 10
    assert sum(float(line[54:60]) for line in atoms) == 0.0


def test_unsupported_suffix_writes_nothing(tmp_path, small_ensemble) -> None:
    with pytest.raises(ValueError):
        save_coordinates(tmp_path / "out.pdb", small_ensemble)
    assert not (tmp_path / "out.pdb").exists()


def test_unwritable_path_raises(tmp_path, small_ensemble) -> None:
    with pytest.raises(OSError):
        save_coordinates(tmp_path / "missing" / "out.xyz", small_ensemble)


def test_xyz_reader_rejects_truncated_file(tmp_path) -> None:
    path = tmp_path / "short.xyz"
    path.write_text("3\ncomment\nPP 1.0 0.0 0.0\nMP 0.0 1.0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_xyzfile(path)
