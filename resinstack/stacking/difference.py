"""Pixel-wise differences between binarized layer frames."""

from typing import Optional

import cv2
import numpy as np


class DifferenceEvaluator:
    """Computes per-step frame differences and folds them into a union mask."""

    @staticmethod
    def diff(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Logical XOR of two binarized frames: 255 where they disagree."""
        if a.shape != b.shape:
            raise ValueError(f"Frame shapes differ: {a.shape} != {b.shape}")
        return cv2.bitwise_xor(a, b)

    @staticmethod
    def fold(running: Optional[np.ndarray], mask: np.ndarray) -> np.ndarray:
        """Accumulate ``mask`` into ``running`` with a pixel-wise maximum.

        A pixel that differed once stays marked for the rest of the window.
        The running mask is updated in place and returned; a missing running
        mask starts as a copy of ``mask``.
        """
        if running is None:
            return mask.copy()
        np.maximum(running, mask, out=running)
        return running
