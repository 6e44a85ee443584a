"""
Run Entry Point
===============
Builds the configuration, logging and transport for one process and runs its
rank's share of the job.

Usage:
    $ python -m fractalmesh [config.json]
    $ mpiexec -n 4 python -m fractalmesh config.json   # with "transport": "mpi"
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

from fractalmesh.config import FractalConfig
from fractalmesh.controller.driver import RankDriver, RankResult
from fractalmesh.controller.transport import LoopbackTransport, MPITransport, Transport
from fractalmesh.logging_config import setup_logging

logger = logging.getLogger(__name__)


def make_transport(config: FractalConfig) -> Transport:
    if config.transport == "mpi":
        return MPITransport()
    return LoopbackTransport()


def main(config_path: Optional[str] = None, config: Optional[FractalConfig] = None) -> RankResult:
    # 1. Load configuration (defaults when no file is given)
    if config is None:
        config = FractalConfig.from_json(config_path) if config_path else FractalConfig()

    # 2. Join the process group
    transport = make_transport(config)
    rank = config.rank if config.rank is not None else transport.rank

    # 3. Setup Logging (Console + Optional File)
    setup_logging(level=config.log_level, log_file=config.log_file, rank=rank)

    # 4. Run this rank
    driver = RankDriver(config, transport)
    return driver.run()


def cli() -> None:
    main(sys.argv[1] if len(sys.argv) > 1 else None)
