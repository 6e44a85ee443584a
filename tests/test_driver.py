from __future__ import annotations

import io
import logging
import os

import numpy as np
import pytest

from fractalmesh.config import FractalConfig
from fractalmesh.controller.driver import RankDriver
from fractalmesh.controller.transport import LoopbackTransport
from fractalmesh.main import main, make_transport


def _config(**changes) -> FractalConfig:
    base = dict(nx=2, ny=2, nz=2, nxcuts=2, nycuts=1, nzcuts=1, nsteps=3)
    base.update(changes)
    return FractalConfig(**base)


class RecordingTransport(LoopbackTransport):
    def __init__(self, rank: int = 0, world_size: int = 1) -> None:
        super().__init__(rank, world_size)
        self.barriers = 0

    def barrier(self) -> None:
        self.barriers += 1


def test_each_rank_builds_its_own_subdomain() -> None:
    for rank in range(2):
        driver = RankDriver(_config(), LoopbackTransport(rank=rank, world_size=2))
        subdomains, fields = driver.build_fields()

        assert [s.cell for s in subdomains] == [(rank, 0, 0)]
        assert len(fields) == 1
        assert fields[0].bounds.min_x == pytest.approx(-2.0 + 2.0 * rank)


def test_config_overrides_transport() -> None:
    driver = RankDriver(_config(rank=1, nprocs=2), LoopbackTransport())
    assert (driver.rank, driver.nprocs) == (1, 2)


def test_rank_out_of_range() -> None:
    with pytest.raises(ValueError):
        RankDriver(_config(rank=3), LoopbackTransport(rank=0, world_size=2))


def test_run_produces_rank_mesh() -> None:
    result = RankDriver(_config(), LoopbackTransport()).run()

    assert result.rank == 0
    assert len(result.fields) == 2
    assert result.mesh.n_cells == 16
    assert result.mesh.n_points == 128
    assert result.mesh.scalars.max() <= 3
    assert result.files == []


def test_rank_without_subdomains_gets_empty_mesh() -> None:
    config = _config(nxcuts=1, rank=2, nprocs=3)
    result = RankDriver(config, LoopbackTransport()).run()

    assert result.subdomains == []
    assert result.mesh.n_cells == 0
    assert result.mesh.n_points == 0


def test_ranks_cover_the_whole_volume() -> None:
    config = _config(nxcuts=2, nycuts=2, nzcuts=1)
    total = 0
    for rank in range(3):
        result = RankDriver(config, LoopbackTransport(rank=rank, world_size=3)).run()
        total += result.mesh.n_cells
    assert total == 4 * 8


def test_checkpoint_and_resume(tmp_path) -> None:
    checkpoint = str(tmp_path / "ckpt_r{rank}.h5")

    first = RankDriver(_config(nsteps=2, checkpoint=checkpoint), LoopbackTransport()).run()
    assert os.path.exists(checkpoint.format(rank=0))
    assert checkpoint.format(rank=0) in first.files

    resumed = RankDriver(_config(nsteps=3, resume=checkpoint), LoopbackTransport()).run()
    direct = RankDriver(_config(nsteps=5), LoopbackTransport()).run()

    np.testing.assert_array_equal(resumed.mesh.scalars, direct.mesh.scalars)
    for a, b in zip(resumed.fields, direct.fields):
        np.testing.assert_array_equal(a.state, b.state)


def test_resume_rejects_mismatched_partition(tmp_path) -> None:
    checkpoint = str(tmp_path / "ckpt.h5")
    RankDriver(_config(checkpoint=checkpoint), LoopbackTransport()).run()

    driver = RankDriver(_config(nxcuts=3, resume=checkpoint), LoopbackTransport())
    with pytest.raises(ValueError):
        driver.build_fields()


def test_export(tmp_path) -> None:
    out = str(tmp_path / "out")
    result = RankDriver(_config(output_dir=out), LoopbackTransport()).run()

    assert os.path.exists(os.path.join(out, "fractal_r0.vtu"))
    assert os.path.exists(os.path.join(out, "fractal.pvd"))
    assert len(result.files) == 2


def test_debug_dump_on_rank_zero() -> None:
    driver = RankDriver(_config(), LoopbackTransport())
    _, fields = driver.build_fields()
    driver.advance(fields)

    stream = io.StringIO()
    driver.debug_dump(fields, stream=stream)
    assert "[ [" in stream.getvalue()


def test_main_with_config_file(tmp_path) -> None:
    path = str(tmp_path / "config.json")
    _config(nsteps=4, log_level="DEBUG").to_json(path)

    result = main(path)
    assert result.mesh.n_cells == 16


def test_make_transport_defaults_to_loopback() -> None:
    assert isinstance(make_transport(FractalConfig()), LoopbackTransport)


@pytest.mark.parametrize("rank", [0, 2])
def test_log_in_rank_order_waits_for_every_rank(rank: int, caplog: pytest.LogCaptureFixture) -> None:
    transport = RecordingTransport(rank=rank, world_size=3)
    driver = RankDriver(_config(), transport)

    with caplog.at_level(logging.INFO, logger="fractalmesh.controller.driver"):
        driver.log_in_rank_order("ready")

    assert transport.barriers == 3
    assert [r.getMessage() for r in caplog.records] == [f"{rank}: ready"]


def test_debug_dump_only_on_rank_zero() -> None:
    for rank in range(2):
        transport = RecordingTransport(rank=rank, world_size=2)
        driver = RankDriver(_config(), transport)
        _, fields = driver.build_fields()

        stream = io.StringIO()
        driver.debug_dump(fields, stream=stream)

        assert transport.barriers == 1
        assert bool(stream.getvalue()) == (rank == 0)
