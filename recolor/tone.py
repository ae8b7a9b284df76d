"""Tone heuristic: grayscale deviation from the mode color -> signed channel delta.

The delta keeps a pixel's shading relative to the dominant shade of the
region once the region is moved onto the target color. Four banded tables
drive it; every band is an inclusive upper bound checked in ascending order,
the last entry catches everything above 250.
"""

import math
from typing import Sequence, Tuple

import numpy as np

Band = Tuple[float, float]

# |pixelGray - modeColor| -> spread multiplier
SPREAD_BANDS: Tuple[Band, ...] = (
    (25, 2.0), (50, 2.1), (75, 2.2), (100, 2.3), (125, 2.4), (150, 2.5),
    (175, 2.6), (200, 2.7), (225, 2.8), (250, 2.9), (math.inf, 3.0),
)

# |targetGray - pixelGray| -> offset subtracted from the spread
DECAY_BANDS: Tuple[Band, ...] = (
    (25, 1.0), (50, 0.9), (75, 0.8), (100, 0.7), (125, 0.6), (150, 0.5),
    (175, 0.4), (200, 0.3), (225, 0.2), (250, 0.1), (math.inf, 0.0),
)

# modeColor -> damper (dark regions are pushed less)
MODE_DAMPER_BANDS: Tuple[Band, ...] = (
    (25, 0.45), (50, 0.50), (75, 0.55), (100, 0.60), (125, 0.65), (150, 0.70),
    (175, 0.75), (200, 0.80), (225, 0.85), (250, 0.90), (math.inf, 0.95),
)

# targetGray -> damper
TARGET_DAMPER_BANDS: Tuple[Band, ...] = (
    (25, 0.70), (50, 0.73), (75, 0.76), (100, 0.79), (125, 0.82), (150, 0.85),
    (175, 0.88), (200, 0.91), (225, 0.94), (250, 0.97), (math.inf, 1.00),
)


def band_value(bands: Sequence[Band], value: float) -> float:
    for upper, result in bands:
        if value <= upper:
            return result
    return bands[-1][1]


# every band but the last is BAND_WIDTH wide
BAND_WIDTH: float = 25.0


def _band_steps(bands: Sequence[Band]) -> np.ndarray:
    """Table indexed by ceil(value / BAND_WIDTH); index 0 is value == 0."""
    return np.array([bands[0][1]] + [result for _, result in bands], dtype=np.float64)


_SPREAD_STEPS = _band_steps(SPREAD_BANDS)
_DECAY_STEPS = _band_steps(DECAY_BANDS)


def diff(mode_color: float, pixel_gray: float, target_gray: float) -> float:
    """Signed delta (grayscale units) for one pixel."""
    a = pixel_gray - mode_color
    spread = band_value(SPREAD_BANDS, abs(a))
    if a != 0:
        spread *= a / -a

    b = target_gray - pixel_gray
    decay = band_value(DECAY_BANDS, abs(b))
    sign_b = b / -b if b != 0 else 1.0

    result = a * (spread - decay) * sign_b
    result *= band_value(MODE_DAMPER_BANDS, mode_color)
    result *= band_value(TARGET_DAMPER_BANDS, target_gray)
    return result


class ToneHeuristic:
    """
    diff() over whole arrays into preallocated scratch.

    a * (-spread - decay) * -1 is folded into a * (spread + decay), and the
    b == 0 case (no sign flip) negates afterwards; the result matches diff()
    bit for bit.
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = int(capacity)
        self._a = np.zeros(self.capacity, dtype=np.float64)
        self._spread = np.zeros(self.capacity, dtype=np.float64)
        self._index = np.zeros(self.capacity, dtype=np.intp)
        self._flip = np.zeros(self.capacity, dtype=bool)

    def _band_index(self, values: np.ndarray, n: int) -> np.ndarray:
        index = self._index[:n]
        np.abs(values, out=values)
        np.divide(values, BAND_WIDTH, out=values)
        np.ceil(values, out=index, casting="unsafe")
        return index

    def fill(self, mode_color: float, gray: np.ndarray, target_gray: float, out: np.ndarray) -> np.ndarray:
        """gray and out are flat float64 arrays of equal length <= capacity."""
        n = gray.size
        if n > self.capacity or out.size != n:
            raise ValueError(f"Tone buffers hold {self.capacity}, got {n} gray / {out.size} out")
        a = self._a[:n]
        spread = self._spread[:n]
        flip = self._flip[:n]

        np.subtract(gray, float(mode_color), out=a)
        np.copyto(spread, a)
        np.take(_SPREAD_STEPS, self._band_index(spread, n), out=spread, mode="clip")

        np.subtract(float(target_gray), gray, out=out)
        index = self._band_index(out, n)
        np.equal(index, 0, out=flip)
        np.take(_DECAY_STEPS, index, out=out, mode="clip")

        np.add(spread, out, out=out)
        np.multiply(out, a, out=out)
        np.multiply(out, band_value(MODE_DAMPER_BANDS, mode_color), out=out)
        np.multiply(out, band_value(TARGET_DAMPER_BANDS, target_gray), out=out)
        np.negative(out, out=out, where=flip)
        return out


def diff_array(mode_color: float, pixel_gray: np.ndarray, target_gray: float) -> np.ndarray:
    """diff() over a whole gray array; allocates its result and scratch."""
    gray = np.asarray(pixel_gray, dtype=np.float64)
    flat = gray.reshape(-1)
    out = np.empty(flat.size, dtype=np.float64)
    ToneHeuristic(flat.size).fill(mode_color, flat, target_gray, out)
    return out.reshape(gray.shape)


def raw_diff(mode_color: float, pixel_gray: float) -> float:
    return pixel_gray - mode_color


def raw_diff_array(mode_color: float, pixel_gray: np.ndarray, out: np.ndarray = None) -> np.ndarray:
    return np.subtract(np.asarray(pixel_gray, dtype=np.float64), float(mode_color), out=out)
