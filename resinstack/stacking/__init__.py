"""Dynamic layer height stacking.

Merges runs of thin layers into fewer, thicker layers and reschedules
exposures for the resulting heights.
"""

from resinstack.stacking.builder import StackBuilder, StackingWindow
from resinstack.stacking.convergence import ConvergenceChecker, ConvergenceResult
from resinstack.stacking.difference import DifferenceEvaluator
from resinstack.stacking.errors import (
    ExposureTableError,
    IntegrityError,
    OperationCancelled,
    OperationNotSupported,
    OperationValidationError,
    ResinStackError,
)
from resinstack.stacking.exposure import ExposureItem, ExposureScheduler, ExposureSetType
from resinstack.stacking.frame_cache import FrameCache, FrameCacheEntry, compute_capacity, make_binarizer
from resinstack.stacking.operation import DynamicLayerHeightOperation, create_operation, optimize_layers
from resinstack.stacking.options import DynamicLayerHeightConfig
from resinstack.stacking.progress import OperationProgress
from resinstack.stacking.report import Report, ReportBuilder

__all__ = [
    # Operation
    "DynamicLayerHeightOperation",
    "DynamicLayerHeightConfig",
    "create_operation",
    "optimize_layers",
    # Components
    "StackBuilder",
    "StackingWindow",
    "FrameCache",
    "FrameCacheEntry",
    "compute_capacity",
    "make_binarizer",
    "DifferenceEvaluator",
    "ConvergenceChecker",
    "ConvergenceResult",
    "ExposureScheduler",
    "ExposureItem",
    "ExposureSetType",
    "OperationProgress",
    "Report",
    "ReportBuilder",
    # Errors
    "ResinStackError",
    "OperationNotSupported",
    "OperationValidationError",
    "IntegrityError",
    "OperationCancelled",
    "ExposureTableError",
]
