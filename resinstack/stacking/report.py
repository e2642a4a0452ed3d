"""Summary of a dynamic layer height run."""

from dataclasses import dataclass

from resinstack.utils import format_duration


@dataclass
class Report:
    """Counters collected before and after a run."""
    old_layer_count: int = 0
    new_layer_count: int = 0
    stacked_layers: int = 0
    maximum_layer_height: float = 0.0
    old_print_time: float = 0.0  # seconds
    new_print_time: float = 0.0  # seconds

    @property
    def reused_layers(self) -> int:
        """Layers that went through without being stacked."""
        return self.old_layer_count - self.stacked_layers

    @property
    def compression_ratio(self) -> float:
        """Old layer count over new layer count, as a percentage."""
        if self.new_layer_count == 0:
            return 0.0
        return round(self.old_layer_count / self.new_layer_count * 100.0, 2)

    @property
    def spared_print_time(self) -> float:
        return round(self.old_print_time - self.new_print_time, 2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "old_layer_count": self.old_layer_count,
            "new_layer_count": self.new_layer_count,
            "stacked_layers": self.stacked_layers,
            "reused_layers": self.reused_layers,
            "maximum_layer_height": self.maximum_layer_height,
            "compression_ratio": self.compression_ratio,
            "old_print_time": self.old_print_time,
            "new_print_time": self.new_print_time,
            "spared_print_time": self.spared_print_time,
        }

    def __str__(self) -> str:
        return (
            f"From {self.old_layer_count} layers, {self.reused_layers} got reused, "
            f"{self.stacked_layers} got stacked and optimized with dynamic layer heights\n"
            f"Resultant layers: {self.new_layer_count}\n"
            f"Compression ratio: {self.compression_ratio}%\n"
            f"Maximum layer height reached: {self.maximum_layer_height}mm\n"
            f"Print time: {format_duration(self.old_print_time)} -> {format_duration(self.new_print_time)} "
            f"(- {format_duration(self.spared_print_time)})"
        )


class ReportBuilder:
    """Aggregates run counters into a :class:`Report`."""

    def __init__(self):
        self.report = Report()

    def begin(self, store) -> "ReportBuilder":
        """Capture the store state before the run."""
        self.report.old_layer_count = store.layer_count
        self.report.old_print_time = store.print_time
        return self

    def add_window(self, size: int, height: float) -> None:
        """Record a closed stacking window."""
        if size > 1:
            self.report.stacked_layers += size
        self.report.maximum_layer_height = max(self.report.maximum_layer_height, height)

    def finish(self, store) -> Report:
        """Capture the store state after the commit."""
        self.report.new_layer_count = store.layer_count
        self.report.new_print_time = store.print_time
        return self.report
