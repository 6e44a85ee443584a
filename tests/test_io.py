from __future__ import annotations

import h5py
import numpy as np
import pytest
import pyvista as pv

import fractalmesh
from fractalmesh.controller.emitter import MeshEmitter
from fractalmesh.model.bounds import Bounds
from fractalmesh.model.field import EscapeTimeField
from fractalmesh.model.io import IOManager


@pytest.fixture
def fields() -> list[EscapeTimeField]:
    out = [
        EscapeTimeField(3, 2, 2, Bounds(-2.0, -2.0, 2.0, 0.0, 2.0, 3.0)),
        EscapeTimeField(3, 2, 2, Bounds(0.0, -2.0, 2.0, 2.0, 2.0, 3.0)),
    ]
    for f in out:
        f.advance(4)
    return out


def test_checkpoint_round_trip(tmp_path, fields: list[EscapeTimeField]) -> None:
    path = str(tmp_path / "fields.h5")
    IOManager.save_fields(path, fields)
    loaded = IOManager.load_fields(path)

    assert len(loaded) == len(fields)
    for old, new in zip(fields, loaded):
        assert new.shape == old.shape
        assert new.bounds == old.bounds
        np.testing.assert_array_equal(new.state, old.state)
        np.testing.assert_array_equal(new.nsteps, old.nsteps)


def test_resumed_checkpoint_matches_uninterrupted_run(tmp_path, fields: list[EscapeTimeField]) -> None:
    path = str(tmp_path / "fields.h5")
    IOManager.save_fields(path, fields)

    resumed = IOManager.load_fields(path)[0]
    resumed.advance(6)

    direct = EscapeTimeField(3, 2, 2, fields[0].bounds)
    direct.advance(10)

    np.testing.assert_array_equal(resumed.state, direct.state)
    np.testing.assert_array_equal(resumed.nsteps, direct.nsteps)


def test_load_rejects_non_hdf5(tmp_path) -> None:
    path = tmp_path / "not_a_checkpoint.h5"
    path.write_text("hello")

    with pytest.raises(ValueError):
        IOManager.load_fields(str(path))


def test_export_rank_mesh(tmp_path, fields: list[EscapeTimeField]) -> None:
    mesh = MeshEmitter().emit_all(fields)
    path = IOManager.export_rank_mesh(mesh, str(tmp_path / "out"), rank=3)

    assert path.endswith("fractal_r3.vtu")
    grid = pv.read(path)
    assert grid.n_cells == 24
    np.testing.assert_array_equal(grid.cell_data["nsteps"], mesh.scalars)


def test_write_collection(tmp_path) -> None:
    path = IOManager.write_collection(str(tmp_path), world_size=3)
    text = open(path).read()

    for rank in range(3):
        assert f'part="{rank}" file="fractal_r{rank}.vtu"' in text
    assert text.startswith('<?xml version="1.0"?>')


def test_many_fields_load_in_saved_order(tmp_path) -> None:
    # more fields than the 4-digit group names can sort correctly
    fields = [
        EscapeTimeField(1, 1, 1, Bounds(float(i), 0.0, 0.0, i + 1.0, 1.0, 1.0))
        for i in range(10002)
    ]
    path = str(tmp_path / "many.h5")
    IOManager.save_fields(path, fields)

    loaded = IOManager.load_fields(path)
    assert [f.bounds.min_x for f in loaded] == [float(i) for i in range(10002)]


def test_checkpoint_records_package_version(tmp_path, fields: list[EscapeTimeField]) -> None:
    path = str(tmp_path / "fields.h5")
    IOManager.save_fields(path, fields)

    with h5py.File(path, "r") as f:
        assert f.attrs["version"] == fractalmesh.__version__
        assert f.attrs["n_fields"] == 2
