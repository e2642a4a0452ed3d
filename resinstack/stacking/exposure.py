"""Exposure scheduling keyed to layer height.

Thicker layers need more light to cure through. The scheduler maps every
height reachable by the optimizer to a (bottom, normal) exposure pair using
one of three strategies.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from resinstack.layers.layer import MAXIMUM_HEIGHT, MINIMUM_HEIGHT, Layer, round_height
from resinstack.stacking.errors import ExposureTableError
from resinstack.utils import get_logger

logger = get_logger("stacking.exposure")


class ExposureSetType(str, Enum):
    """How the exposure table is produced."""
    LINEAR = "linear"  # base + n * step
    MULTIPLIER = "multiplier"  # base + base * n * height * step
    MANUAL = "manual"  # User supplied table


@dataclass
class ExposureItem:
    """Exposure pair for one layer height."""
    layer_height: float
    bottom_exposure: float
    exposure: float

    def __post_init__(self):
        self.layer_height = round_height(self.layer_height)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "layer_height": self.layer_height,
            "bottom_exposure": self.bottom_exposure,
            "exposure": self.exposure,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExposureItem":
        """Create from dictionary."""
        return cls(
            layer_height=float(data["layer_height"]),
            bottom_exposure=float(data["bottom_exposure"]),
            exposure=float(data["exposure"]),
        )


def height_levels(base_height: float, maximum_height: float) -> List[float]:
    """Heights from ``base_height`` up to ``maximum_height`` in base increments."""
    if base_height <= 0:
        return []
    base = Decimal(repr(round_height(base_height)))
    maximum = Decimal(repr(round_height(maximum_height)))
    levels = []
    height = base
    while height <= maximum:
        levels.append(float(height))
        height += base
    return levels


def default_manual_table(bottom_exposure: float, exposure: float) -> List[ExposureItem]:
    """One entry per representable height, all with the same exposures."""
    return [
        ExposureItem(height, bottom_exposure, exposure)
        for height in height_levels(MINIMUM_HEIGHT, MAXIMUM_HEIGHT)
    ]


class ExposureScheduler:
    """
    Builds and applies height-keyed exposure tables.

    Setters return whether the value changed; any change to an input of the
    automatic table rebuilds it right away.
    """

    def __init__(
        self,
        base_layer_height: float,
        maximum_layer_height: float,
        bottom_exposure_time: float,
        exposure_time: float,
        set_type: ExposureSetType = ExposureSetType.LINEAR,
        bottom_exposure_step: float = 0.5,
        exposure_step: float = 0.2,
        iterate_bottom_exposure_time: bool = False,
        manual_table: Optional[Sequence[ExposureItem]] = None,
    ):
        self._base_layer_height = round_height(base_layer_height)
        self._maximum_layer_height = round_height(maximum_layer_height)
        self._bottom_exposure_time = bottom_exposure_time
        self._exposure_time = exposure_time
        self._set_type = ExposureSetType(set_type)
        self._bottom_exposure_step = bottom_exposure_step
        self._exposure_step = exposure_step
        self._iterate_bottom_exposure_time = iterate_bottom_exposure_time
        self.manual_table: List[ExposureItem] = (
            list(manual_table) if manual_table is not None
            else default_manual_table(bottom_exposure_time, exposure_time)
        )
        self._automatic_table: List[ExposureItem] = []
        self.rebuild_automatic_table()

    # Inputs ------------------------------------------------------------------

    @property
    def set_type(self) -> ExposureSetType:
        return self._set_type

    @property
    def is_manual(self) -> bool:
        return self._set_type == ExposureSetType.MANUAL

    @property
    def base_layer_height(self) -> float:
        return self._base_layer_height

    @property
    def maximum_layer_height(self) -> float:
        return self._maximum_layer_height

    @property
    def bottom_exposure_time(self) -> float:
        return self._bottom_exposure_time

    @property
    def exposure_time(self) -> float:
        return self._exposure_time

    def _set(self, name: str, value) -> bool:
        attr = f"_{name}"
        if getattr(self, attr) == value:
            return False
        setattr(self, attr, value)
        if not self.is_manual:
            self.rebuild_automatic_table()
        return True

    def set_set_type(self, value: ExposureSetType) -> bool:
        return self._set("set_type", ExposureSetType(value))

    def set_base_layer_height(self, value: float) -> bool:
        return self._set("base_layer_height", round_height(value))

    def set_maximum_layer_height(self, value: float) -> bool:
        return self._set("maximum_layer_height", round_height(value))

    def set_bottom_exposure_time(self, value: float) -> bool:
        return self._set("bottom_exposure_time", value)

    def set_exposure_time(self, value: float) -> bool:
        return self._set("exposure_time", value)

    def set_bottom_exposure_step(self, value: float) -> bool:
        return self._set("bottom_exposure_step", value)

    def set_exposure_step(self, value: float) -> bool:
        return self._set("exposure_step", value)

    def set_iterate_bottom_exposure_time(self, value: bool) -> bool:
        return self._set("iterate_bottom_exposure_time", bool(value))

    # Tables ------------------------------------------------------------------

    def reachable_heights(self) -> List[float]:
        """Every output height the optimizer can produce."""
        return height_levels(self._base_layer_height, self._maximum_layer_height)

    def _exposures_at(self, level: int, height: float):
        if self._set_type == ExposureSetType.LINEAR:
            bottom = (
                self._bottom_exposure_time + level * self._bottom_exposure_step
                if self._iterate_bottom_exposure_time else self._bottom_exposure_time
            )
            normal = self._exposure_time + level * self._exposure_step
        elif self._set_type == ExposureSetType.MULTIPLIER:
            bottom = (
                self._bottom_exposure_time
                + self._bottom_exposure_time * level * height * self._bottom_exposure_step
                if self._iterate_bottom_exposure_time else self._bottom_exposure_time
            )
            normal = self._exposure_time + self._exposure_time * level * height * self._exposure_step
        else:
            bottom = normal = 0.0
        return round(bottom, 2), round(normal, 2)

    def rebuild_automatic_table(self) -> None:
        """Recompute the Linear/Multiplier table."""
        self._automatic_table = []
        for level, height in enumerate(self.reachable_heights()):
            bottom, normal = self._exposures_at(level, height)
            self._automatic_table.append(ExposureItem(height, bottom, normal))

    @property
    def automatic_table(self) -> List[ExposureItem]:
        if not self._automatic_table:
            self.rebuild_automatic_table()
        return self._automatic_table

    @property
    def table(self) -> List[ExposureItem]:
        """The active table."""
        return self.manual_table if self.is_manual else self.automatic_table

    def table_dict(self) -> Dict[float, ExposureItem]:
        """Active table keyed by layer height; the first entry for a height wins."""
        table: Dict[float, ExposureItem] = {}
        for item in self.table:
            table.setdefault(item.layer_height, item)
        return table

    def copy_automatic_to_manual(self) -> None:
        """Seed the manual table from the automatic one and switch to manual."""
        self.manual_table = [
            ExposureItem(item.layer_height, item.bottom_exposure, item.exposure)
            for item in self.automatic_table
        ]
        self._set_type = ExposureSetType.MANUAL

    def describe(self) -> str:
        """Preview of the exposures per reachable height."""
        lines = []
        for level, height in enumerate(self.reachable_heights()):
            bottom, normal = self._exposures_at(level, height)
            if self.is_manual:
                item = self.table_dict().get(height)
                bottom, normal = (item.bottom_exposure, item.exposure) if item else (0.0, 0.0)
            lines.append(f"{height:.2f}mm: {bottom:.2f}s / {normal:.2f}s")
        return "\n".join(lines)

    # Validation & application -----------------------------------------------

    def validate(self) -> List[str]:
        """Check that every reachable height has positive exposures."""
        messages = []
        table = self.table_dict()
        for height in self.reachable_heights():
            item = table.get(height)
            if item is None:
                messages.append(f"Layer height {height}mm exposures are missing.")
            elif item.bottom_exposure <= 0 or item.exposure <= 0:
                messages.append(
                    f"Layer height {height}mm exposures must be a positive value, "
                    f"current: {item.bottom_exposure}s/{item.exposure}s"
                )
        return messages

    def apply(self, layers: Iterable[Layer], bottom_layer_count: int) -> None:
        """Set each layer's exposure from its height.

        Layers with index below ``bottom_layer_count`` take the bottom value.
        """
        table = self.table_dict()
        for layer in layers:
            item = table.get(round_height(layer.height))
            if item is None:
                raise ExposureTableError(
                    f"No exposure entry for layer {layer.index} height {layer.height}mm"
                )
            layer.bottom_exposure_time = item.bottom_exposure
            layer.exposure_time = item.bottom_exposure if layer.index < bottom_layer_count else item.exposure
        logger.debug(f"Applied {self._set_type.value} exposure table")
