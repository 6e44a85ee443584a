from __future__ import annotations

import logging

import pytest

from fractalmesh.logging_config import setup_logging


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("fractalmesh")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def test_string_level_is_resolved() -> None:
    setup_logging(level="debug")
    assert logging.getLogger("fractalmesh").level == logging.DEBUG


def test_unknown_level_rejected() -> None:
    with pytest.raises(ValueError):
        setup_logging(level="chatty")


def test_repeated_setup_does_not_duplicate_handlers() -> None:
    setup_logging()
    setup_logging()
    assert len(logging.getLogger("fractalmesh").handlers) == 1


def test_log_file_is_per_rank(tmp_path) -> None:
    template = str(tmp_path / "run_r{rank}.log")
    setup_logging(level=logging.INFO, log_file=template, rank=3)

    logging.getLogger("fractalmesh.test").info("hello")
    for handler in logging.getLogger("fractalmesh").handlers:
        handler.flush()

    text = (tmp_path / "run_r3.log").read_text(encoding="utf-8")
    assert "[rank 3]" in text
    assert "hello" in text
