"""Exceptions raised by the dynamic layer height operation."""

from typing import List, Optional


class ResinStackError(Exception):
    """Base error for resinstack operations."""
    pass


class OperationNotSupported(ResinStackError):
    """The project cannot be processed by this operation."""
    pass


class OperationValidationError(ResinStackError):
    """The operation configuration is invalid."""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__("\n".join(self.messages))


class IntegrityError(ResinStackError):
    """Model height integrity was violated while stacking layers.

    This is fatal: the run is aborted and nothing is committed.
    """

    def __init__(self, layer_index: int, expected_z: float, actual_z: float, message: Optional[str] = None):
        self.layer_index = layer_index
        self.expected_z = expected_z
        self.actual_z = actual_z
        super().__init__(message or (
            f"Model height integrity has been violated at layer {layer_index} "
            f"({actual_z}mm != {expected_z}mm), this operation will not proceed."
        ))


class OperationCancelled(ResinStackError):
    """The run was cancelled before completion."""
    pass


class ExposureTableError(ResinStackError):
    """A layer height has no entry in the active exposure table."""
    pass
