import logging

import pytest


@pytest.fixture(autouse=True)
def reset_fleetsetup_logger():
    yield
    logger = logging.getLogger("fleetsetup")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
