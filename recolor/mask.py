"""Foreground mask + mode color (most frequent foreground gray level).

Scan order is raster order over the requested frame. A bucket becomes the
mode whenever its count reaches a value >= the running maximum, so among
buckets sharing the final maximum the one completed last in scan order wins.

Mask slots hold the integer luma code of a foreground pixel, or MASK_SENTINEL
for background. Bucket b covers codes [b * 1000 - 500, b * 1000 + 499], i.e.
the gray level rounded half up.
"""

from typing import Optional, Tuple

import cv2
import numpy as np
from numpy.lib.stride_tricks import as_strided

from recolor.grayscale import LUMA_CODES, LUMA_SCALE

HISTOGRAM_BINS: int = 256

# Mask slot value for "no color" (background); one past the last luma code
MASK_SENTINEL: int = LUMA_CODES

_HALF_BUCKET = LUMA_SCALE // 2


def score_pairs(scores: np.ndarray, width: int, height: int, grid_height: int) -> np.ndarray:
    """
    (height, width, 2) read-only view of (background, foreground) scores.

    Rows are strided by the score grid *height*; this matches the layout the
    segmentation models were exported with and differs from a plain row-major
    stride only on non-square grids, where rows alias. The caller guarantees
    the last pair lies inside `scores`.
    """
    step = scores.itemsize
    return as_strided(
        scores,
        shape=(height, width, 2),
        strides=(grid_height * 2 * step, 2 * step, step),
        writeable=False,
    )


class MaskAndModeEstimator:
    def __init__(self, capacity: int, grid_height: int) -> None:
        self.capacity = int(capacity)
        self.grid_height = int(grid_height)
        self.histogram = np.zeros(HISTOGRAM_BINS, dtype=np.int64)
        self.mask = np.full(self.capacity, MASK_SENTINEL, dtype=np.intp)

        self._gray = np.zeros(self.capacity, dtype=np.float32)
        self._foreground = np.zeros(self.capacity, dtype=bool)
        self._background = np.zeros(self.capacity, dtype=bool)
        self._gate = np.zeros(self.capacity, dtype=bool)
        self._hits = np.zeros(self.capacity, dtype=bool)

    def estimate(
        self,
        codes: np.ndarray,
        scores: np.ndarray,
        width: int,
        height: int,
        threshold: Optional[float] = None,
        gray: Optional[np.ndarray] = None,
    ) -> Tuple[int, int]:
        """
        codes     : integer luma codes of the frame, width*height of them
        scores    : flat contiguous interleaved (background, foreground) scores
        threshold : extra foreground confidence gate (None = plain fg > bg)
        gray      : (height, width) float32 codes / 1000, computed when None

        Fills self.mask[:width*height] and self.histogram.
        Returns (mode_color, foreground_pixel_count).
        """
        n = width * height
        src = np.asarray(codes).reshape(-1)
        if src.size != n:
            raise ValueError(f"Got {src.size} luma codes for a {width}x{height} frame")

        mask = self.mask[:n]
        np.copyto(mask, src, casting="unsafe")
        if gray is None:
            gray = self._gray[:n].reshape(height, width)
            np.divide(mask.reshape(height, width), LUMA_SCALE, out=gray, dtype=np.float32, casting="unsafe")

        pairs = score_pairs(scores, width, height, self.grid_height)
        foreground = self._foreground[:n].reshape(height, width)
        np.greater(pairs[..., 1], pairs[..., 0], out=foreground)
        if threshold is not None:
            gate = self._gate[:n].reshape(height, width)
            np.greater(pairs[..., 1], threshold, out=gate)
            np.logical_and(foreground, gate, out=foreground)

        background = self._background[:n]
        np.logical_not(foreground.reshape(-1), out=background)
        np.copyto(mask, MASK_SENTINEL, where=background)

        # bin edges sit on the .5 boundaries: bucket = floor(gray + 0.5)
        hist = cv2.calcHist(
            [gray], [0], foreground.view(np.uint8), [HISTOGRAM_BINS], [-0.5, HISTOGRAM_BINS - 0.5]
        )
        np.copyto(self.histogram, hist.reshape(-1), casting="unsafe")
        fg_count = int(self.histogram.sum())
        if fg_count == 0:
            return 0, 0

        candidates = np.flatnonzero(self.histogram == self.histogram.max())
        if candidates.size == 1:
            return int(candidates[0]), fg_count
        return self._last_completed(mask, candidates), fg_count

    def _last_completed(self, mask: np.ndarray, candidates: np.ndarray) -> int:
        """Tied bucket whose final pixel comes last in raster order."""
        n = mask.size
        hits = self._hits[:n]
        upper = self._gate[:n]
        winner, latest = int(candidates[0]), -1
        for bucket in candidates:
            low = max(0, int(bucket) * LUMA_SCALE - _HALF_BUCKET)
            high = min(LUMA_CODES - 1, int(bucket) * LUMA_SCALE + _HALF_BUCKET - 1)
            np.greater_equal(mask, low, out=hits)
            np.less_equal(mask, high, out=upper)
            np.logical_and(hits, upper, out=hits)
            last = n - 1 - int(np.argmax(hits[::-1]))
            if last > latest:
                winner, latest = int(bucket), last
        return winner
