"""Packed ARGB -> Rec.601 luma.

Luma is kept as an exact integer code, 299 R + 587 G + 114 B, so that the
gray level of a pixel is code / LUMA_SCALE with no float accumulation error.
Every code in [0, LUMA_CODES) can therefore index a precomputed table.
"""

import numpy as np

LUMA_WEIGHTS = (299, 587, 114)
LUMA_SCALE: int = 1000
LUMA_CODES: int = 255 * LUMA_SCALE + 1

# gray level for every luma code
GRAY_LEVELS = np.arange(LUMA_CODES, dtype=np.float64) / LUMA_SCALE

# byte offsets of R, G, B inside a little-endian 0xAARRGGBB word
_CHANNEL_BYTES = (2, 1, 0)


class GrayscaleConverter:
    """
    Works into scratch kept between calls; the scratch is only regrown when
    a larger frame arrives.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._codes = np.zeros(capacity, dtype=np.uint32)
        self._term = np.zeros(capacity, dtype=np.uint32)

    def _ensure(self, n: int) -> None:
        if self._codes.size < n:
            self._codes = np.zeros(n, dtype=np.uint32)
            self._term = np.zeros(n, dtype=np.uint32)

    def codes(self, pixels: np.ndarray) -> np.ndarray:
        """
        Integer luma codes (n,) uint32 for the flat pixel array.
        The result is a view of internal scratch, valid until the next call.
        """
        flat = np.ascontiguousarray(pixels, dtype="<u4").reshape(-1)
        n = flat.size
        self._ensure(n)
        codes = self._codes[:n]
        term = self._term[:n]

        planes = flat.view(np.uint8).reshape(n, 4)
        np.multiply(planes[:, _CHANNEL_BYTES[0]], LUMA_WEIGHTS[0], out=codes, dtype=np.uint32)
        for byte, weight in zip(_CHANNEL_BYTES[1:], LUMA_WEIGHTS[1:]):
            np.multiply(planes[:, byte], weight, out=term, dtype=np.uint32)
            np.add(codes, term, out=codes)
        return codes

    def convert(self, pixels: np.ndarray, out: np.ndarray) -> np.ndarray:
        """Float luma into a caller-owned buffer of the same length."""
        if not out.flags.c_contiguous:
            raise ValueError("Grayscale output buffer must be C-contiguous")
        target = out.reshape(-1)
        codes = self.codes(pixels)
        if target.size != codes.size:
            raise ValueError(f"Grayscale buffer length {target.size} != pixel count {codes.size}")
        np.divide(codes, LUMA_SCALE, out=target, dtype=target.dtype, casting="unsafe")
        return out
