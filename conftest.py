"""Pytest configuration: custom markers and shared fixtures."""
import logging

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--stress", action="store_true", default=False,
        help="Run stress tests (deep reference chains, large generated layers)",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "stress: mark test as stress-only (slow, large inputs)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--stress"):
        # When --stress is passed, run everything
        return
    skip_stress = pytest.mark.skip(reason="needs --stress option to run")
    for item in items:
        if "stress" in item.keywords:
            item.add_marker(skip_stress)


@pytest.fixture
def reset_logging():
    """Detach handlers that configure_logging bound to a per-test stream."""
    yield
    logger = logging.getLogger("usdcompose")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
