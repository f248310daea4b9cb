from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    # CLI runs attach a handler bound to the runner's captured stderr.
    yield
    logger = logging.getLogger("service_sentinel")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
