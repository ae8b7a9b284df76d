from typing import Hashable, Optional, Tuple

import numpy as np

from recolor.color import TRANSPARENT
from recolor.grayscale import LUMA_CODES
from recolor.mask import MASK_SENTINEL

# byte offsets of R, G, B, A inside a little-endian 0xAARRGGBB word
_RED, _GREEN, _BLUE, _ALPHA = 2, 1, 0, 3


class Compositor:
    """
    Writes the final packed ARGB pixels.

    Foreground: outC = clamp(targetC + round_half_up(delta * jitterC), 0, 255),
    alpha 0xFF. Background (sentinel mask slot): 0x00000000.

    The color of a pixel depends only on its luma code, so shade() builds a
    palette with one packed color per code and compose() is a single gather.
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = int(capacity)
        self.output = np.zeros(self.capacity, dtype=np.uint32)
        self.palette = np.zeros(LUMA_CODES + 1, dtype="<u4")
        self._planes = self.palette.view(np.uint8).reshape(-1, 4)
        self._channel = np.zeros(LUMA_CODES, dtype=np.float64)
        self._key: Optional[Hashable] = None

    def shade(
        self,
        delta: np.ndarray,
        target: Tuple[int, int, int],
        jitter: np.ndarray,
        low: int = 0,
        high: int = LUMA_CODES,
        key: Optional[Hashable] = None,
    ) -> np.ndarray:
        """
        delta  : signed delta per luma code (LUMA_CODES,)
        target : (r, g, b)
        jitter : (3,) channel factors
        low, high : code range to rebuild; slots outside it keep old colors
        key    : palette identity; a repeat of the last key skips the rebuild
        """
        if key is not None and key == self._key:
            return self.palette

        span = delta[low:high]
        channel = self._channel[: high - low]
        for plane, base, factor in zip((_RED, _GREEN, _BLUE), target, jitter):
            np.multiply(span, float(factor), out=channel)
            np.add(channel, 0.5, out=channel)
            np.floor(channel, out=channel)
            np.add(channel, int(base), out=channel)
            np.clip(channel, 0, 255, out=channel)
            np.copyto(self._planes[low:high, plane], channel, casting="unsafe")
        self._planes[low:high, _ALPHA] = 0xFF
        self.palette[MASK_SENTINEL] = TRANSPARENT
        self._key = key
        return self.palette

    def compose(self, mask: np.ndarray) -> np.ndarray:
        """
        mask : flat intp luma-code-or-sentinel slots (n,)
        Returns a view of the first n output slots.
        """
        out = self.output[: mask.size]
        np.take(self.palette, mask, out=out, mode="clip")
        return out
