"""Shared fixtures for layer stacking tests."""

import numpy as np
import pytest

from resinstack.layers import InMemoryLayerStore

SIZE = 64


def square(x0: int = 12, y0: int = 12, x1: int = 52, y1: int = 52, value: int = 255) -> np.ndarray:
    """A black frame with one filled rectangle."""
    image = np.zeros((SIZE, SIZE), dtype=np.uint8)
    image[y0:y1, x0:x1] = value
    return image


def blank() -> np.ndarray:
    return np.zeros((SIZE, SIZE), dtype=np.uint8)


@pytest.fixture
def make_store():
    """Factory for uniform 0.02mm stores."""
    def factory(images, layer_height=0.02, **kwargs):
        kwargs.setdefault("exposure_time", 2.5)
        kwargs.setdefault("bottom_exposure_time", 25.0)
        return InMemoryLayerStore.from_images(images, layer_height, **kwargs)

    return factory


@pytest.fixture
def identical_images():
    """Five layers with the same geometry."""
    return [square() for _ in range(5)]


@pytest.fixture
def alternating_images():
    """Five layers where every neighbour differs by a large solid block."""
    return [square() if i % 2 else blank() for i in range(5)]


@pytest.fixture
def partial_images():
    """Layers 0-1 differ by a one pixel edge, layer 2 differs by a large block, 2-4 identical."""
    return [
        square(x1=52),
        square(x1=53),
        blank(),
        blank(),
        blank(),
    ]
