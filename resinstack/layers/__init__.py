"""Layer model and layer stores."""

from resinstack.layers.layer import (
    HEIGHT_PRECISION,
    MAXIMUM_HEIGHT,
    MINIMUM_HEIGHT,
    Layer,
    round_height,
)
from resinstack.layers.store import InMemoryLayerStore, LayerStore
from resinstack.layers.directory_store import DirectoryLayerStore, write_project

__all__ = [
    "HEIGHT_PRECISION",
    "MAXIMUM_HEIGHT",
    "MINIMUM_HEIGHT",
    "Layer",
    "round_height",
    "LayerStore",
    "InMemoryLayerStore",
    "DirectoryLayerStore",
    "write_project",
]
