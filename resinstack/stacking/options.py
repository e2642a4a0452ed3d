"""Run parameters for the dynamic layer height operation."""

from dataclasses import dataclass, field
from typing import List, Optional

from resinstack.layers.layer import MAXIMUM_HEIGHT, round_height
from resinstack.stacking.exposure import ExposureItem, ExposureSetType

BYTES_PER_GB = 1_000_000_000


@dataclass
class DynamicLayerHeightConfig:
    """Configuration for a dynamic layer height run."""
    # Frame cache
    cache_ram_gb: float = 1.5

    # Layer height bounds (mm)
    minimum_layer_height: float = 0.03
    maximum_layer_height: float = 0.10

    # Anti-aliasing
    strip_anti_aliasing: bool = False
    reconstruct_anti_aliasing: bool = False

    # Convergence bound per stacking window
    maximum_erodes: int = 10

    # Exposure scheduling
    exposure_set_type: ExposureSetType = ExposureSetType.LINEAR
    iterate_bottom_exposure_time: bool = False
    bottom_exposure_time: float = 0.0  # 0 = take from the project
    exposure_time: float = 0.0  # 0 = take from the project
    bottom_exposure_step: float = 0.5
    exposure_step: float = 0.2
    manual_exposure_table: List[ExposureItem] = field(default_factory=list)

    # Layer range, inclusive; None = last layer
    layer_index_start: int = 0
    layer_index_end: Optional[int] = None

    def __post_init__(self):
        self.cache_ram_gb = round(self.cache_ram_gb, 2)
        self.minimum_layer_height = round_height(self.minimum_layer_height)
        self.maximum_layer_height = round_height(self.maximum_layer_height)
        self.exposure_set_type = ExposureSetType(self.exposure_set_type)

    @property
    def cache_ram_bytes(self) -> float:
        return self.cache_ram_gb * BYTES_PER_GB

    @property
    def is_exposure_set_type_manual(self) -> bool:
        return self.exposure_set_type == ExposureSetType.MANUAL

    def resolve_range(self, layer_count: int):
        """Return the inclusive (start, end) layer range for a project."""
        end = layer_count - 1 if self.layer_index_end is None else min(self.layer_index_end, layer_count - 1)
        start = max(0, self.layer_index_start)
        return start, end

    def init_with_store(self, store) -> None:
        """Fill project dependent defaults."""
        layer_height = store.layer_height
        if self.minimum_layer_height < layer_height:
            self.minimum_layer_height = layer_height
        if layer_height * 2 > self.maximum_layer_height:
            self.maximum_layer_height = round_height(min(MAXIMUM_HEIGHT, self.maximum_layer_height * 2))
        if self.bottom_exposure_time <= 0:
            self.bottom_exposure_time = store.bottom_exposure_time
        if self.exposure_time <= 0:
            self.exposure_time = store.exposure_time

    def summary(self) -> str:
        """One-line description of the run parameters."""
        end = "last" if self.layer_index_end is None else self.layer_index_end
        return (
            f"[RAM: {self.cache_ram_gb}GB] "
            f"[Layer Height: Min: {self.minimum_layer_height}mm Max: {self.maximum_layer_height}mm] "
            f"[Strip AA: {self.strip_anti_aliasing} Reconstruct AA: {self.reconstruct_anti_aliasing}] "
            f"[Difference: {self.maximum_erodes}px] "
            f"[Bottom Exposure: {self.bottom_exposure_time}s Normal Exposure: {self.exposure_time}s] "
            f"[Exposure type: {self.exposure_set_type.value}, "
            f"Steps: {self.bottom_exposure_step}s/{self.exposure_step}s] "
            f"[Layers: {self.layer_index_start} - {end}]"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "cache_ram_gb": self.cache_ram_gb,
            "minimum_layer_height": self.minimum_layer_height,
            "maximum_layer_height": self.maximum_layer_height,
            "strip_anti_aliasing": self.strip_anti_aliasing,
            "reconstruct_anti_aliasing": self.reconstruct_anti_aliasing,
            "maximum_erodes": self.maximum_erodes,
            "exposure_set_type": self.exposure_set_type.value,
            "iterate_bottom_exposure_time": self.iterate_bottom_exposure_time,
            "bottom_exposure_time": self.bottom_exposure_time,
            "exposure_time": self.exposure_time,
            "bottom_exposure_step": self.bottom_exposure_step,
            "exposure_step": self.exposure_step,
            "manual_exposure_table": [item.to_dict() for item in self.manual_exposure_table],
            "layer_index_start": self.layer_index_start,
            "layer_index_end": self.layer_index_end,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DynamicLayerHeightConfig":
        """Create from dictionary."""
        return cls(
            cache_ram_gb=data.get("cache_ram_gb", 1.5),
            minimum_layer_height=data.get("minimum_layer_height", 0.03),
            maximum_layer_height=data.get("maximum_layer_height", 0.10),
            strip_anti_aliasing=data.get("strip_anti_aliasing", False),
            reconstruct_anti_aliasing=data.get("reconstruct_anti_aliasing", False),
            maximum_erodes=data.get("maximum_erodes", 10),
            exposure_set_type=ExposureSetType(data.get("exposure_set_type", "linear")),
            iterate_bottom_exposure_time=data.get("iterate_bottom_exposure_time", False),
            bottom_exposure_time=data.get("bottom_exposure_time", 0.0),
            exposure_time=data.get("exposure_time", 0.0),
            bottom_exposure_step=data.get("bottom_exposure_step", 0.5),
            exposure_step=data.get("exposure_step", 0.2),
            manual_exposure_table=[
                ExposureItem.from_dict(item) for item in data.get("manual_exposure_table", [])
            ],
            layer_index_start=data.get("layer_index_start", 0),
            layer_index_end=data.get("layer_index_end"),
        )
