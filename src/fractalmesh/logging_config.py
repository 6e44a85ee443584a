"""
Logging Configuration
Sets up the package logger for one rank of a fractalmesh run.
"""
import logging
import sys
from typing import Optional, Union


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    rank: Optional[int] = None,
) -> None:
    """
    Configures the logger for the 'fractalmesh' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG or "DEBUG")
        log_file: Optional path to save logs to a file. A "{rank}" placeholder
            is replaced by the rank so processes do not share one file.
        rank: Rank of this process, shown in every record when given.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logger = logging.getLogger("fractalmesh")
    logger.setLevel(level)

    # A second run in the same process must not duplicate output
    if logger.hasHandlers():
        logger.handlers.clear()

    # Format: Time - [Rank] - Module - Level - Message
    rank_tag = f"[rank {rank}] - " if rank is not None else ""
    formatter = logging.Formatter(
        f'%(asctime)s - {rank_tag}%(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        path = log_file.format(rank=rank if rank is not None else 0)
        file_handler = logging.FileHandler(path, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info("Logging initialized.")
