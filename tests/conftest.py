from __future__ import annotations

import logging

import pytest

from mode_control.logging_setup import LOGGER_NAME
from mode_control.version import DEV_MODE_ENV_VAR


@pytest.fixture(autouse=True)
def _isolate_package_logger(monkeypatch):
    """Keep records flowing to caplog and drop handlers a test installed."""
    monkeypatch.setenv(DEV_MODE_ENV_VAR, "0")
    logger = logging.getLogger(LOGGER_NAME)
    previous_level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(previous_level)
