"""Bounded cache of decoded layer frames.

Each entry holds the raw layer image and a derived binarized copy. The cache
owns both buffers: callers get borrowed references that stay valid only until
the next fetch that may evict.
"""

from collections import OrderedDict, deque
from dataclasses import dataclass
from itertools import count
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from resinstack.utils import format_size, get_logger

logger = get_logger("stacking.frame_cache")

OBJECTS_PER_ENTRY = 2  # raw + binarized
BINARY_THRESHOLD = 127

FrameTransform = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray]]


def binarize(image: np.ndarray) -> np.ndarray:
    """Threshold an image at mid-gray into 0/255."""
    _, binary = cv2.threshold(image, BINARY_THRESHOLD, 255, cv2.THRESH_BINARY)
    return binary


def make_binarizer(strip_anti_aliasing: bool = False) -> FrameTransform:
    """Build the post-load transform applied to every freshly loaded frame.

    With ``strip_anti_aliasing`` the binarized frame replaces the raw one,
    so grayscale edges never reach the merged output.
    """
    def transform(raw: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        binary = binarize(raw)
        if strip_anti_aliasing:
            return binary, binary
        return raw, binary

    return transform


def compute_capacity(
    ram_budget_bytes: float,
    width: int,
    height: int,
    bytes_per_pixel: int = 1,
    objects_per_entry: int = OBJECTS_PER_ENTRY,
) -> int:
    """Number of entries that fit in a RAM budget."""
    footprint = bytes_per_pixel * width * height * objects_per_entry
    if footprint <= 0:
        raise ValueError("Frame footprint must be positive")
    return int(ram_budget_bytes // footprint)


@dataclass
class FrameCacheEntry:
    """A cached frame pair."""
    index: int
    raw: Optional[np.ndarray]
    binary: Optional[np.ndarray]
    last_access: int = 0

    def release(self) -> None:
        """Drop the buffers held by this entry."""
        self.raw = None
        self.binary = None


class FrameCache:
    """
    Least-recently-used cache of (raw, binarized) frame pairs keyed by layer index.

    Usage:
        with FrameCache(store.get_image, capacity=64) as cache:
            raw, binary = cache.get_pair(10)
    """

    MINIMUM_CAPACITY = 2

    def __init__(
        self,
        loader: Callable[[int], np.ndarray],
        capacity: int,
        transform: Optional[FrameTransform] = None,
        keep_last: int = 1,
    ):
        """
        Initialize cache.

        Args:
            loader: Returns a freshly owned image for a layer index
            capacity: Maximum resident entries
            transform: Post-load transform, defaults to plain binarization
            keep_last: Most recently loaded entries protected from eviction
        """
        if keep_last < 0:
            raise ValueError("keep_last can't be negative")
        self.loader = loader
        minimum = max(self.MINIMUM_CAPACITY, keep_last + 1)
        if capacity < minimum:
            raise ValueError(f"Frame cache capacity {capacity} is below the minimum of {minimum} entries")
        self.capacity = capacity
        self.transform = transform or make_binarizer()
        self.keep_last = keep_last

        self._entries: "OrderedDict[int, FrameCacheEntry]" = OrderedDict()
        self._load_order: deque = deque(maxlen=keep_last)
        self._clock = count(1)

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @classmethod
    def for_store(
        cls,
        store,
        ram_budget_bytes: float,
        transform: Optional[FrameTransform] = None,
        keep_last: int = 1,
    ) -> "FrameCache":
        """Create a cache sized for a store's resolution."""
        width, height = store.resolution
        capacity = compute_capacity(ram_budget_bytes, width, height)
        logger.debug(
            f"Frame cache: {capacity} entries in {format_size(int(ram_budget_bytes))} "
            f"for {width}x{height} frames"
        )
        return cls(store.get_image, capacity, transform=transform, keep_last=keep_last)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, index: int) -> bool:
        return index in self._entries

    def __enter__(self) -> "FrameCache":
        return self

    def __exit__(self, *args) -> None:
        self.clear()

    def get(self, index: int) -> np.ndarray:
        """Get the raw frame for a layer."""
        return self._fetch(index).raw

    def get_binary(self, index: int) -> np.ndarray:
        """Get the binarized frame for a layer."""
        return self._fetch(index).binary

    def get_pair(self, index: int) -> Tuple[np.ndarray, np.ndarray]:
        """Get the (raw, binarized) frame pair for a layer."""
        entry = self._fetch(index)
        return entry.raw, entry.binary

    def clear(self) -> None:
        """Release every entry."""
        for entry in self._entries.values():
            entry.release()
        self._entries.clear()
        self._load_order.clear()

    def _fetch(self, index: int) -> FrameCacheEntry:
        entry = self._entries.get(index)
        if entry is not None:
            self.hits += 1
            entry.last_access = next(self._clock)
            self._entries.move_to_end(index)
            return entry

        self.misses += 1
        raw, binary = self.transform(self.loader(index))
        self._make_room()

        entry = FrameCacheEntry(index=index, raw=raw, binary=binary, last_access=next(self._clock))
        self._entries[index] = entry
        self._load_order.append(index)
        return entry

    def _make_room(self) -> None:
        # capacity > keep_last, so an unprotected victim always exists
        protected = set(self._load_order)
        while len(self._entries) >= self.capacity:
            victim = next(i for i in self._entries if i not in protected)
            self._entries.pop(victim).release()
            self.evictions += 1
