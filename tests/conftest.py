# Pylint is complaining about duplicated lines, but they are all imports
# pylint: disable=duplicate-code
from pathlib import Path

import matplotlib
import numpy as np
import pandas as pd
import pytest

from spatial_epi_sim import loaders

matplotlib.use("Agg")

# Path to directory containing test files for fixtures
FIXTURE_DIR = Path(__file__).parents[0] / "test_data"


@pytest.fixture
def base_data_dir():
    yield FIXTURE_DIR


@pytest.fixture
def config_file(base_data_dir):  # pylint: disable=redefined-outer-name
    yield base_data_dir / "config.yaml"


@pytest.fixture
def regions_table(base_data_dir):  # pylint: disable=redefined-outer-name
    yield pd.read_csv(base_data_dir / "regions.csv")


@pytest.fixture
def connectivity_table(base_data_dir):  # pylint: disable=redefined-outer-name
    yield pd.read_csv(base_data_dir / "connectivity.csv")


@pytest.fixture
def generator():
    yield np.random.default_rng(123)


@pytest.fixture
def parameters():
    yield loaders.readParameters({
        "population": 100_000,
        "num_locales": 10,
        "initial_infected": 30,
        "end_tick": 40,
        "start_lifting_quarantine": 7,
        "seed": 1,
    })


@pytest.fixture
def make_parameters():
    """Builds parameters from the defaults, overridden by keyword arguments (configuration names)"""
    def _make(**kwargs):
        return loaders.readParameters(kwargs)
    yield _make
