"""Dynamic layer height operation.

Analyzes a project sliced at a thin uniform layer height and merges runs of
geometrically similar layers into thicker ones. Steep features keep thin
layers while straight walls get stacked, trading print time for a minimal
loss of shape fidelity. Only printers that honour per-layer positions and
exposures can print the result.
"""

from typing import List, Optional

from resinstack.layers.layer import MAXIMUM_HEIGHT, round_height
from resinstack.layers.store import LayerStore
from resinstack.stacking.builder import StackBuilder
from resinstack.stacking.errors import OperationNotSupported, OperationValidationError
from resinstack.stacking.exposure import ExposureScheduler
from resinstack.stacking.frame_cache import FrameCache, compute_capacity
from resinstack.stacking.options import DynamicLayerHeightConfig
from resinstack.stacking.progress import OperationProgress
from resinstack.stacking.report import Report, ReportBuilder
from resinstack.utils import get_logger

logger = get_logger("stacking.operation")

NOT_SUPPORTED_MESSAGE = "This project format does not support per-layer positions and exposures."


class DynamicLayerHeightOperation:
    """
    Runs the dynamic layer height optimizer against a layer store.

    Usage:
        operation = DynamicLayerHeightOperation(store, DynamicLayerHeightConfig(maximum_layer_height=0.1))
        errors = operation.validate()
        report = operation.execute()
    """

    title = "Dynamic layer height"

    def __init__(
        self,
        store: LayerStore,
        config: Optional[DynamicLayerHeightConfig] = None,
        progress: Optional[OperationProgress] = None,
    ):
        """
        Initialize operation.

        Args:
            store: Project layers, replaced on success
            config: Run parameters; project dependent defaults are filled in
            progress: Shared progress and cancellation state
        """
        self.store = store
        self.config = config or DynamicLayerHeightConfig()
        self.config.init_with_store(store)
        self.progress = progress or OperationProgress()
        self.scheduler = ExposureScheduler(
            base_layer_height=store.layer_height,
            maximum_layer_height=self.config.maximum_layer_height,
            bottom_exposure_time=self.config.bottom_exposure_time,
            exposure_time=self.config.exposure_time,
            set_type=self.config.exposure_set_type,
            bottom_exposure_step=self.config.bottom_exposure_step,
            exposure_step=self.config.exposure_step,
            iterate_bottom_exposure_time=self.config.iterate_bottom_exposure_time,
            manual_table=self.config.manual_exposure_table or None,
        )
        if not self.config.manual_exposure_table:
            self.config.manual_exposure_table = self.scheduler.manual_table

    @property
    def cache_object_count(self) -> int:
        """Frame pairs that fit in the configured RAM budget."""
        width, height = self.store.resolution
        return compute_capacity(self.config.cache_ram_bytes, width, height)

    def sync_exposure_table(self) -> bool:
        """Push the exposure related configuration into the scheduler.

        Returns True if anything changed.
        """
        config = self.config
        scheduler = self.scheduler
        changed = False
        changed |= scheduler.set_base_layer_height(self.store.layer_height)
        changed |= scheduler.set_maximum_layer_height(config.maximum_layer_height)
        changed |= scheduler.set_bottom_exposure_time(config.bottom_exposure_time)
        changed |= scheduler.set_exposure_time(config.exposure_time)
        changed |= scheduler.set_bottom_exposure_step(config.bottom_exposure_step)
        changed |= scheduler.set_exposure_step(config.exposure_step)
        changed |= scheduler.set_iterate_bottom_exposure_time(config.iterate_bottom_exposure_time)
        changed |= scheduler.set_set_type(config.exposure_set_type)
        if scheduler.manual_table is not config.manual_exposure_table:
            scheduler.manual_table = config.manual_exposure_table
            changed = True
        return changed

    def copy_automatic_table_to_manual(self) -> None:
        """Switch to a manual table seeded from the automatic one."""
        self.sync_exposure_table()
        self.scheduler.copy_automatic_to_manual()
        self.config.manual_exposure_table = self.scheduler.manual_table
        self.config.exposure_set_type = self.scheduler.set_type

    # Validation ---------------------------------------------------------------

    def validate_spawn(self) -> Optional[str]:
        """Check whether the project can be processed at all."""
        store = self.store
        if not store.can_use_layer_position_z or not store.can_use_layer_exposure_time:
            return NOT_SUPPORTED_MESSAGE

        if store.layer_height * 2 > MAXIMUM_HEIGHT:
            return (
                f"This project already uses the maximum layer height possible ({store.layer_height}mm).\n"
                "Layers can not be stacked, please re-slice with the lowest layer height of 0.01mm."
            )

        for index in range(1, store.layer_count):
            step = round_height(store[index].position_z - store[index - 1].position_z)
            if step != store.layer_height:
                return (
                    f"This project contains layer(s) with modified positions, starting at layer {index}.\n"
                    "This tool requires sequential layers with equal height.\n"
                    "If you ran this tool before, you can't run it again."
                )

        return None

    def validate(self) -> List[str]:
        """Check the configuration against the project."""
        config = self.config
        layer_height = self.store.layer_height
        messages = []

        if config.cache_ram_gb <= 0:
            messages.append(f"Cache RAM size ({config.cache_ram_gb}GB) must be a positive value")
        elif self.cache_object_count < FrameCache.MINIMUM_CAPACITY:
            messages.append(
                f"Cache RAM size ({config.cache_ram_gb}GB) fits {self.cache_object_count} layer(s), "
                f"at least {FrameCache.MINIMUM_CAPACITY} are required"
            )
        if config.maximum_erodes < 0:
            messages.append(f"Maximum erodes ({config.maximum_erodes}) can't be negative")
        if config.minimum_layer_height < layer_height:
            messages.append(
                f"Minimum layer height ({config.minimum_layer_height}mm) must be equal or higher "
                f"than file layer height ({layer_height}mm)"
            )
        if config.minimum_layer_height > config.maximum_layer_height:
            messages.append(
                f"Minimum layer height ({config.minimum_layer_height}mm) can't be higher "
                f"than maximum layer height ({config.maximum_layer_height}mm)"
            )
        if layer_height >= config.maximum_layer_height:
            messages.append(
                f"Maximum layer height ({config.maximum_layer_height}mm) can't be the same "
                f"or less than current file layer height ({layer_height}mm)"
            )

        start, end = config.resolve_range(self.store.layer_count)
        if start > end:
            messages.append(f"Layer range start ({start}) can't be after its end ({end})")

        self.sync_exposure_table()
        messages.extend(self.scheduler.validate())
        return messages

    # Execution ----------------------------------------------------------------

    def execute(self) -> Report:
        """Run the optimizer and commit the new layer sequence.

        The store is only modified after the whole range was scanned; any
        error or cancellation leaves it untouched.

        Raises:
            OperationNotSupported: The project can't be processed
            OperationValidationError: The configuration is invalid
            IntegrityError: Model height integrity was violated
            OperationCancelled: Cancellation was requested
        """
        message = self.validate_spawn()
        if message:
            raise OperationNotSupported(message)
        messages = self.validate()
        if messages:
            raise OperationValidationError(messages)

        store = self.store
        report = ReportBuilder().begin(store)
        builder = StackBuilder(store, self.config, progress=self.progress, report=report)
        layers = builder.build()

        self.scheduler.apply(layers, store.bottom_layer_count)
        self.progress.check_cancelled()

        with store.suppress_rebuild():
            store.set_bottom_exposure_time(self.config.bottom_exposure_time)
            store.set_exposure_time(self.config.exposure_time)
            store.replace_layers(layers)

        result = report.finish(store)
        logger.info(str(result))
        return result

    def __str__(self) -> str:
        return self.config.summary()


# Convenience functions
def create_operation(
    store: LayerStore,
    minimum_layer_height: float = 0.03,
    maximum_layer_height: float = 0.10,
    maximum_erodes: int = 10,
    **kwargs,
) -> DynamicLayerHeightOperation:
    """Create an operation with the specified settings."""
    config = DynamicLayerHeightConfig(
        minimum_layer_height=minimum_layer_height,
        maximum_layer_height=maximum_layer_height,
        maximum_erodes=maximum_erodes,
        **kwargs,
    )
    return DynamicLayerHeightOperation(store, config=config)


def optimize_layers(store: LayerStore, **kwargs) -> Report:
    """
    Optimize a store's layer heights in place.

    Args:
        store: Project layers
        **kwargs: Configuration overrides, see DynamicLayerHeightConfig

    Returns:
        Run report
    """
    return create_operation(store, **kwargs).execute()
