"""Window-growing layer stacker.

Consecutive thin layers are merged into one thicker layer for as long as the
accumulated difference between them erodes away within the configured bound.
Each window goes through the same steps:

    seed -> try extend -> (accept -> try extend | reject) -> close

The scan is strictly sequential: every window starts where the previous one
closed and its position depends on the previous output layer.
"""

from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from resinstack.layers.layer import Layer, round_height
from resinstack.layers.store import LayerStore
from resinstack.stacking.convergence import ConvergenceChecker
from resinstack.stacking.difference import DifferenceEvaluator
from resinstack.stacking.errors import IntegrityError
from resinstack.stacking.frame_cache import FrameCache, make_binarizer
from resinstack.stacking.options import DynamicLayerHeightConfig
from resinstack.stacking.progress import OperationProgress
from resinstack.stacking.report import ReportBuilder
from resinstack.utils import get_logger

logger = get_logger("stacking.builder")

RECONSTRUCT_KERNEL = (3, 3)


@dataclass
class StackingWindow:
    """A run of consecutive layers being merged into one."""
    start: int
    accumulated: np.ndarray  # Max of the raw frames merged so far
    height: float
    tail: int = -1
    union_mask: Optional[np.ndarray] = None
    erode_count: int = 0

    def __post_init__(self):
        if self.tail < 0:
            self.tail = self.start

    @property
    def size(self) -> int:
        return self.tail - self.start + 1


class StackBuilder:
    """
    Builds the merged layer sequence for a store.

    The store is only read; the caller commits the returned layers.

    Usage:
        builder = StackBuilder(store, config)
        layers = builder.build()
    """

    def __init__(
        self,
        store: LayerStore,
        config: DynamicLayerHeightConfig,
        progress: Optional[OperationProgress] = None,
        report: Optional[ReportBuilder] = None,
        difference: Optional[DifferenceEvaluator] = None,
        convergence: Optional[ConvergenceChecker] = None,
    ):
        self.store = store
        self.config = config
        self.progress = progress or OperationProgress()
        self.report = report or ReportBuilder()
        self.difference = difference or DifferenceEvaluator()
        self.convergence = convergence or ConvergenceChecker()

        self._output: List[Layer] = []
        self._cache: Optional[FrameCache] = None
        self._range_start = 0

    def create_cache(self) -> FrameCache:
        """Frame cache sized from the configured RAM budget."""
        return FrameCache.for_store(
            self.store,
            self.config.cache_ram_bytes,
            transform=make_binarizer(self.config.strip_anti_aliasing),
            keep_last=1,
        )

    def build(self) -> List[Layer]:
        """Scan the store and return the new layer sequence.

        Raises:
            IntegrityError: A closed window does not land on the original height
            OperationCancelled: Cancellation was requested through the progress
        """
        store = self.store
        start, end = self.config.resolve_range(store.layer_count)
        self._range_start = start
        self._output = []
        self.progress.reset(
            f"Optimizing layer heights from layers {start} through {end}",
            max(0, end - start + 1),
        )

        logger.info(f"Stacking layers {start}-{end} of {store.layer_count} ({self.config.summary()})")

        with self.create_cache() as cache:
            self._cache = cache
            try:
                for index in range(0, start):
                    self._pass_through(index)

                index = start
                while index <= end:
                    self.progress.check_cancelled()
                    if index == end:
                        self._pass_through(index)
                        break

                    window = self._seed_window(index)
                    while self._try_extend(window, end):
                        pass
                    self._close_window(window)
                    index = window.tail + 1

                for index in range(end + 1, store.layer_count):
                    self._pass_through(index)
            finally:
                self._cache = None

        self.progress.processed = self.progress.total
        logger.info(f"Stacked {store.layer_count} layers into {len(self._output)}")
        return self._output

    # Window steps -------------------------------------------------------------

    def _seed_window(self, index: int) -> StackingWindow:
        return StackingWindow(
            start=index,
            accumulated=self._cache.get(index).copy(),
            height=self.store.layer_height,
        )

    def _try_extend(self, window: StackingWindow, end: int) -> bool:
        """Attempt to merge the next layer into the window.

        Returns True when the window grew, False when it must close.
        """
        self.progress.check_cancelled()
        self.progress.processed = window.tail - self._range_start

        config = self.config
        candidate_height = round_height(window.height + self.store.layer_height)
        if candidate_height > config.maximum_layer_height or window.tail == end:
            return False

        tail_binary = self._cache.get_binary(window.tail)
        next_raw, next_binary = self._cache.get_pair(window.tail + 1)

        mask = self.difference.diff(tail_binary, next_binary)
        window.union_mask = self.difference.fold(window.union_mask, mask)

        result = self.convergence.check(window.union_mask, config.maximum_erodes - window.erode_count)
        window.erode_count += result.erodes

        # A failed check only closes the window once it could reach the minimum height
        if not result.converged and config.minimum_layer_height < candidate_height:
            logger.debug(
                f"Layer {window.tail + 1} rejected after {window.erode_count} erodes, "
                f"closing at {window.height}mm"
            )
            return False

        np.maximum(window.accumulated, next_raw, out=window.accumulated)
        window.height = candidate_height
        window.tail += 1
        return True

    def _close_window(self, window: StackingWindow) -> None:
        self.progress.check_cancelled()

        image = window.accumulated
        if self.config.strip_anti_aliasing and self.config.reconstruct_anti_aliasing:
            image = cv2.GaussianBlur(image, RECONSTRUCT_KERNEL, 0)

        position_z = self._next_position(window.height)
        expected_z = self.store[window.tail].position_z
        if position_z != expected_z:
            logger.error(f"Height mismatch at layer {window.tail}: {position_z}mm != {expected_z}mm")
            raise IntegrityError(window.tail, expected_z, position_z)

        self._output.append(Layer(
            index=len(self._output),
            position_z=position_z,
            height=window.height,
            exposure_time=self.store.exposure_time,
            bottom_exposure_time=self.store.bottom_exposure_time,
            image=image,
            is_modified=True,
        ))
        self.report.add_window(window.size, window.height)
        logger.debug(f"Packed layers {window.start}-{window.tail} into {window.height}mm")

    def _pass_through(self, index: int) -> None:
        """Re-index a layer without merging it."""
        layer = self.store[index]
        moved = layer.moved(len(self._output), self._next_position(layer.height))
        if self.config.strip_anti_aliasing:
            image = self._cache.get_binary(index)
            if self.config.reconstruct_anti_aliasing:
                image = cv2.GaussianBlur(image, RECONSTRUCT_KERNEL, 0)
            else:
                image = image.copy()
            moved.image = image
        self._output.append(moved)

    def _next_position(self, height: float) -> float:
        if not self._output:
            return round_height(height)
        return round_height(self._output[-1].position_z + height)
