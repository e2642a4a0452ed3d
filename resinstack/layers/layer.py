"""Layer model for raster resin print projects.

A layer is one single-channel slice image with its physical placement
(position from the build plate and thickness) and its exposure times.
"""

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Optional

import numpy as np

HEIGHT_PRECISION = 3
MINIMUM_HEIGHT = 0.01  # mm
MAXIMUM_HEIGHT = 0.20  # mm

_HEIGHT_QUANTUM = Decimal(1).scaleb(-HEIGHT_PRECISION)


def round_height(height: float) -> float:
    """Round a height to the layer precision (half away from zero)."""
    return float(Decimal(repr(float(height))).quantize(_HEIGHT_QUANTUM, rounding=ROUND_HALF_UP))


@dataclass
class Layer:
    """A single raster slice of the model."""
    index: int
    position_z: float  # Cumulative height from the build plate in mm
    height: float  # Physical thickness in mm
    exposure_time: float = 0.0  # Effective exposure in seconds
    bottom_exposure_time: float = 0.0
    image: Optional[np.ndarray] = None  # uint8, 0..255
    source_path: Optional[Path] = None  # Lazily decoded image on disk
    is_modified: bool = False

    def __post_init__(self):
        self.position_z = round_height(self.position_z)
        self.height = round_height(self.height)

    def moved(self, index: int, position_z: float) -> "Layer":
        """Return a copy placed at a new index and position."""
        return replace(self, index=index, position_z=position_z, is_modified=True)

    def to_dict(self) -> dict:
        """Convert to dictionary (image excluded)."""
        return {
            "index": self.index,
            "position_z": self.position_z,
            "height": self.height,
            "exposure_time": self.exposure_time,
            "bottom_exposure_time": self.bottom_exposure_time,
            "is_modified": self.is_modified,
        }
