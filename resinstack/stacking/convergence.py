"""Erosion-based test for geometrically negligible layer differences.

Eroding the union-difference mask with a 3x3 kernel approximates how many
pixels of lateral slope a feature can absorb before stacking its layers
would show a visible stair-step. Differences that erode away within the
bound are treated as negligible.
"""

from dataclasses import dataclass

import cv2
import numpy as np

KERNEL_3X3 = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


@dataclass
class ConvergenceResult:
    """Outcome of a convergence check."""
    converged: bool
    erodes: int  # Erosion steps consumed

    def __bool__(self) -> bool:
        return self.converged


class ConvergenceChecker:
    """Bounded morphological erosion of a difference mask."""

    def __init__(self, kernel: np.ndarray = KERNEL_3X3, border_type: int = cv2.BORDER_REFLECT_101):
        self.kernel = kernel
        self.border_type = border_type

    def check(self, mask: np.ndarray, maximum_erodes: int) -> ConvergenceResult:
        """
        Erode a working copy of ``mask`` one step at a time.

        Args:
            mask: Union-difference mask, left untouched
            maximum_erodes: Maximum erosion steps allowed

        Returns:
            Converged on the first all-zero result, or not converged once the
            bound is exhausted with pixels remaining
        """
        if cv2.countNonZero(mask) == 0:
            return ConvergenceResult(converged=True, erodes=0)

        working = mask.copy()
        erodes = 0
        while erodes < maximum_erodes:
            erodes += 1
            working = cv2.erode(working, self.kernel, iterations=1, borderType=self.border_type)
            if cv2.countNonZero(working) == 0:
                return ConvergenceResult(converged=True, erodes=erodes)

        return ConvergenceResult(converged=False, erodes=erodes)
