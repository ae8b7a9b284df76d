"""Per-channel multiplicative jitter; keeps large recolored areas from looking flat."""

from enum import Enum
from typing import Optional, Tuple

import numpy as np

from config.settings import Settings

NEUTRAL: Tuple[float, float, float] = (1.0, 1.0, 1.0)


class JitterPolicy(str, Enum):
    PER_CALL = "per_call"           # fresh draw on every recolor call
    PER_COLOR = "per_color"         # redraw only when the target color changes
    OFF = "off"                     # always neutral


def jitter_choices() -> np.ndarray:
    """{0.89, 0.90, ..., 0.99} with the default settings."""
    steps = np.arange(int(Settings.JITTER_STEPS), dtype=np.float64)
    return np.round(float(Settings.JITTER_MIN) + steps * float(Settings.JITTER_STEP), 4)


class JitterGenerator:
    def __init__(
        self,
        policy: JitterPolicy = JitterPolicy.PER_CALL,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.policy = JitterPolicy(policy)
        self.rng = rng if rng is not None else np.random.default_rng()
        self._choices = jitter_choices()
        self._factors = np.ones(3, dtype=np.float64)
        self._last_color: Optional[Tuple[int, int, int]] = None

    def next(self, red: int, green: int, blue: int) -> np.ndarray:
        """Factors for (R, G, B); achromatic targets always get (1, 1, 1)."""
        color = (red, green, blue)
        if self.policy == JitterPolicy.OFF or red == green == blue:
            self._factors[:] = NEUTRAL
            self._last_color = color
            return self._factors

        if self.policy == JitterPolicy.PER_COLOR and color == self._last_color:
            return self._factors

        self._factors[:] = self.rng.choice(self._choices, size=3)
        self._last_color = color
        return self._factors
