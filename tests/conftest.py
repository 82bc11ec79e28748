"""Shared fixtures. Tests run against in-memory SQLite."""

import os

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "plain")

import pytest

from py_worldmap.core.map_generator import GenerationParams, generate_map
from py_worldmap.core.partition import PartitionConfig
from py_worldmap.db.connection import Database


def _small_params(**overrides) -> GenerationParams:
    values = dict(
        width=200,
        height=200,
        partition=PartitionConfig(strategy="hex", hex_size=30),
    )
    values.update(overrides)
    return GenerationParams(**values)


@pytest.fixture
def small_params():
    """Factory for small hex-map generation parameters."""
    return _small_params


@pytest.fixture
def small_map():
    """The 200x200 hex map of seed "abc"."""
    return generate_map("abc", _small_params(), map_id="map-abc")


@pytest.fixture
def medium_map():
    return generate_map(
        "tiles",
        GenerationParams(width=1200, height=800, partition=PartitionConfig(strategy="hex", hex_size=20)),
        map_id="map-medium",
    )


@pytest.fixture
def database():
    """A fresh in-memory database."""
    database = Database()
    database.initialize("sqlite://")
    yield database
    database.engine.dispose()
