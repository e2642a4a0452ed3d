"""Layer stores: the owners of a project's layer sequence.

The optimizer only borrows images from a store and hands a complete
replacement sequence back through :meth:`LayerStore.replace_layers`.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from resinstack.layers.layer import Layer, round_height
from resinstack.utils import get_logger

logger = get_logger("layers.store")


class LayerStore(ABC):
    """Indexed, mutable sequence of layers with project-wide print settings."""

    def __init__(
        self,
        layers: Sequence[Layer],
        layer_height: float,
        bottom_layer_count: int = 0,
        bottom_exposure_time: float = 0.0,
        exposure_time: float = 0.0,
        layer_overhead: float = 5.0,
        can_use_layer_position_z: bool = True,
        can_use_layer_exposure_time: bool = True,
    ):
        """
        Initialize store.

        Args:
            layers: Layer sequence, ordered from the build plate up
            layer_height: Uniform base layer height in mm
            bottom_layer_count: Number of bottom (adhesion) layers
            bottom_exposure_time: Default bottom exposure in seconds
            exposure_time: Default normal exposure in seconds
            layer_overhead: Seconds spent per layer outside exposure (lift, retract)
            can_use_layer_position_z: Format supports per-layer positions
            can_use_layer_exposure_time: Format supports per-layer exposures
        """
        self._layers: List[Layer] = list(layers)
        self._layer_height = round_height(layer_height)
        self._bottom_layer_count = bottom_layer_count
        self._bottom_exposure_time = bottom_exposure_time
        self._exposure_time = exposure_time
        self.layer_overhead = layer_overhead
        self.can_use_layer_position_z = can_use_layer_position_z
        self.can_use_layer_exposure_time = can_use_layer_exposure_time

        self._suppress_depth = 0
        self._print_time = 0.0
        self.rebuild_print_time()

    # Sequence access ---------------------------------------------------------

    def __len__(self) -> int:
        return len(self._layers)

    def __getitem__(self, index: int) -> Layer:
        return self._layers[index]

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    @property
    def layer_count(self) -> int:
        return len(self._layers)

    @property
    def last_layer_index(self) -> int:
        return len(self._layers) - 1

    @property
    def layers(self) -> Tuple[Layer, ...]:
        """Snapshot of the current layer sequence."""
        return tuple(self._layers)

    @property
    @abstractmethod
    def resolution(self) -> Tuple[int, int]:
        """Image resolution as (width, height) in pixels."""

    @abstractmethod
    def get_image(self, index: int) -> np.ndarray:
        """Return a freshly owned copy of the layer image at ``index``."""

    # Project settings --------------------------------------------------------

    @property
    def layer_height(self) -> float:
        return self._layer_height

    def set_layer_height(self, value: float) -> bool:
        """Set the base layer height. Returns True if it changed."""
        value = round_height(value)
        if value == self._layer_height:
            return False
        self._layer_height = value
        return True

    @property
    def bottom_layer_count(self) -> int:
        return self._bottom_layer_count

    def set_bottom_layer_count(self, value: int) -> bool:
        if value == self._bottom_layer_count:
            return False
        self._bottom_layer_count = value
        return True

    @property
    def bottom_exposure_time(self) -> float:
        return self._bottom_exposure_time

    def set_bottom_exposure_time(self, value: float) -> bool:
        if value == self._bottom_exposure_time:
            return False
        self._bottom_exposure_time = value
        return True

    @property
    def exposure_time(self) -> float:
        return self._exposure_time

    def set_exposure_time(self, value: float) -> bool:
        if value == self._exposure_time:
            return False
        self._exposure_time = value
        return True

    # Print time --------------------------------------------------------------

    @property
    def print_time(self) -> float:
        """Total print time in seconds."""
        return self._print_time

    def rebuild_print_time(self) -> None:
        """Recompute the total print time from the layer sequence."""
        if self._suppress_depth:
            return
        self._print_time = round(
            sum(layer.exposure_time + self.layer_overhead for layer in self._layers), 2
        )

    @contextmanager
    def suppress_rebuild(self):
        """Defer derived-value recompute until a bulk change is complete."""
        self._suppress_depth += 1
        try:
            yield self
        finally:
            self._suppress_depth -= 1
        self.rebuild_print_time()

    # Structural changes ------------------------------------------------------

    def replace_layers(self, layers: Sequence[Layer]) -> None:
        """Atomically replace the whole layer sequence."""
        new_layers = list(layers)
        for expected, layer in enumerate(new_layers):
            if layer.index != expected:
                raise ValueError(f"Layer at position {expected} has index {layer.index}")

        self._layers = new_layers
        logger.debug(f"Layer sequence replaced with {len(new_layers)} layers")
        self.rebuild_print_time()


class InMemoryLayerStore(LayerStore):
    """Layer store whose images are all resident in memory."""

    def __init__(self, layers: Sequence[Layer], layer_height: float, resolution: Optional[Tuple[int, int]] = None, **kwargs):
        super().__init__(layers, layer_height, **kwargs)
        if resolution is None:
            first = next((layer.image for layer in self._layers if layer.image is not None), None)
            if first is None:
                raise ValueError("Cannot infer resolution from a store without images")
            resolution = (first.shape[1], first.shape[0])
        self._resolution = resolution

    @property
    def resolution(self) -> Tuple[int, int]:
        return self._resolution

    def get_image(self, index: int) -> np.ndarray:
        image = self._layers[index].image
        if image is None:
            raise ValueError(f"Layer {index} has no image")
        return image.copy()

    @classmethod
    def from_images(
        cls,
        images: Sequence[np.ndarray],
        layer_height: float,
        exposure_time: float = 2.5,
        bottom_exposure_time: float = 25.0,
        bottom_layer_count: int = 0,
        **kwargs,
    ) -> "InMemoryLayerStore":
        """Build a uniform-height store from a stack of images."""
        layers = []
        for index, image in enumerate(images):
            layers.append(Layer(
                index=index,
                position_z=layer_height * (index + 1),
                height=layer_height,
                exposure_time=bottom_exposure_time if index < bottom_layer_count else exposure_time,
                bottom_exposure_time=bottom_exposure_time,
                image=np.ascontiguousarray(image, dtype=np.uint8),
            ))
        return cls(
            layers,
            layer_height,
            bottom_layer_count=bottom_layer_count,
            bottom_exposure_time=bottom_exposure_time,
            exposure_time=exposure_time,
            **kwargs,
        )
