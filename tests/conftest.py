"""
Pytest configuration for rhythm analysis tests.

Long note sequences evaluated without binning take a while; those tests are
marked slow and only run with --run-slow.
"""

import numpy as np
import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow", action="store_true", default=False,
        help="Also run tests on long, unbinned note sequences",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: long note sequences evaluated exactly (need --run-slow)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return

    skip_slow = pytest.mark.skip(reason="long sequence, use --run-slow")
    for item in items:
        if item.get_closest_marker("slow") is not None:
            item.add_marker(skip_slow)


@pytest.fixture
def rng():
    """Seeded generator so random charts are the same on every run."""
    return np.random.default_rng(1)


@pytest.fixture
def varied_difficulties(rng):
    """A long chart with difficulties spread between 5 and 15."""
    return list(rng.uniform(5.0, 15.0, 5000))
