"""
Hair Recolor - Recoloring Engine
================================
Frame -> grayscale -> classifier -> mask / mode color -> tone delta x jitter
-> packed ARGB output with the foreground recolored and everything else
fully transparent.

Strategies:
    tone_mapped         ungated mask, tone heuristic, jitter per call
    tone_mapped_sticky  ungated mask, tone heuristic, jitter per color change
    raw_delta           ungated mask, gray - mode delta, no jitter
    gated_raw_delta     fg > bg and fg > threshold, gray - mode delta, no jitter

Usage:
    from recolor.engine import RecolorEngine
    engine = RecolorEngine(model, classifier)
    out = engine.recolor(frame, width, height, 0x8E3B2A)
"""

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from config.settings import Settings
from recolor.classifier import BaseClassifier, ModelDescriptor
from recolor.color import ColorLike, luma, split_rgb
from recolor.compositor import Compositor
from recolor.errors import ClassifierError, DimensionMismatchError, InvalidArgumentError
from recolor.grayscale import GRAY_LEVELS, LUMA_CODES, LUMA_SCALE, GrayscaleConverter
from recolor.jitter import JitterGenerator, JitterPolicy
from recolor.mask import MaskAndModeEstimator
from recolor import tone
from recolor.tone import ToneHeuristic
from recolor.utils import Logger


class RecolorStrategy(str, Enum):
    TONE_MAPPED = "tone_mapped"
    TONE_MAPPED_STICKY = "tone_mapped_sticky"
    RAW_DELTA = "raw_delta"
    GATED_RAW_DELTA = "gated_raw_delta"

    @property
    def tone_mapped(self) -> bool:
        return self in (RecolorStrategy.TONE_MAPPED, RecolorStrategy.TONE_MAPPED_STICKY)

    @property
    def gated(self) -> bool:
        return self == RecolorStrategy.GATED_RAW_DELTA

    @property
    def jitter_policy(self) -> JitterPolicy:
        if self == RecolorStrategy.TONE_MAPPED:
            return JitterPolicy.PER_CALL
        if self == RecolorStrategy.TONE_MAPPED_STICKY:
            return JitterPolicy.PER_COLOR
        return JitterPolicy.OFF


@dataclass
class FrameStats:
    mode_color: int = 0
    foreground_pixels: int = 0
    jitter: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    gray_ms: float = 0.0
    infer_ms: float = 0.0
    mask_ms: float = 0.0
    composite_ms: float = 0.0

    @property
    def total_ms(self) -> float:
        return self.gray_ms + self.infer_ms + self.mask_ms + self.composite_ms

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["jitter"] = list(self.jitter)
        data["total_ms"] = self.total_ms
        return data


class RecolorEngine:
    """
    Owns every scratch buffer (grayscale grid, mask, histogram, delta table,
    palette, output) and reuses them across calls, so a warm call allocates
    nothing frame-sized. Not thread-safe: one instance per stream.

    The returned frame is a view of the engine's output buffer and stays
    valid until the next recolor() call; copy it to keep it longer.
    """

    def __init__(
        self,
        model: ModelDescriptor,
        classifier: BaseClassifier,
        strategy: Any = None,
        rng: Optional[np.random.Generator] = None,
        mask_threshold: Optional[float] = None,
    ) -> None:
        self.log = Logger("Engine")
        self.classifier = classifier
        self.strategy = RecolorStrategy(strategy or Settings.RECOLOR_STRATEGY)
        self.mask_threshold = float(
            Settings.MASK_CONFIDENCE_THRESHOLD if mask_threshold is None else mask_threshold
        )
        self.jitter = JitterGenerator(self.strategy.jitter_policy, rng=rng)
        self.last_stats: Optional[FrameStats] = None
        self._gray_dims: Optional[Tuple[int, int]] = None
        self._allocate(model)

        self.log.info(
            f"Engine ready | model={model.path} | "
            f"input={model.input_width}x{model.input_height} | "
            f"output={model.output_width}x{model.output_height} | "
            f"strategy={self.strategy.value}"
        )

    def _allocate(self, model: ModelDescriptor) -> None:
        self.model = model
        capacity = model.input_size
        self._gray_grid = np.zeros((model.input_height, model.input_width), dtype=np.float32)
        self._converter = GrayscaleConverter(capacity)
        self._estimator = MaskAndModeEstimator(capacity, model.output_height)
        self._compositor = Compositor(capacity)
        # delta per luma code; only rebuilt when mode / target gray change
        self._tone = ToneHeuristic(LUMA_CODES)
        self._delta = np.zeros(LUMA_CODES, dtype=np.float64)
        self._delta_key: Optional[Tuple[bool, int, Optional[float]]] = None
        self._gray_dims = None

    def reconfigure(self, model: ModelDescriptor) -> None:
        """Swap the model descriptor; every scratch buffer is rebuilt."""
        self._allocate(model)
        self.last_stats = None
        self.log.info(
            f"Engine reconfigured | input={model.input_width}x{model.input_height} | "
            f"output={model.output_width}x{model.output_height}"
        )

    @property
    def histogram(self) -> np.ndarray:
        """256-bin foreground gray histogram of the last successful call."""
        return self._estimator.histogram

    # =========================================================================
    #  VALIDATION
    # =========================================================================

    def _check_dimensions(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise InvalidArgumentError(f"Width/height must be positive, got {width}x{height}")

        m = self.model
        if width > m.input_width or height > m.input_height:
            raise DimensionMismatchError(
                f"Frame {width}x{height} exceeds model input {m.input_width}x{m.input_height}"
            )
        if width > m.output_width or height > m.output_height:
            raise DimensionMismatchError(
                f"Frame {width}x{height} exceeds score grid {m.output_width}x{m.output_height}"
            )
        last_index = (height - 1) * m.output_height * 2 + (width - 1) * 2 + 1
        if last_index >= m.score_count:
            raise DimensionMismatchError(
                f"Frame {width}x{height} would read score {last_index} of {m.score_count}"
            )

    def _check_scores(self, scores: Any) -> np.ndarray:
        if scores is None:
            raise ClassifierError("Classifier returned no output")
        try:
            flat = np.ascontiguousarray(scores, dtype=np.float32).reshape(-1)
        except (TypeError, ValueError) as e:
            raise ClassifierError(f"Classifier output is not numeric: {e}") from e
        if flat.size != self.model.score_count:
            raise ClassifierError(
                f"Classifier returned {flat.size} scores, expected {self.model.score_count}"
            )
        # min / max propagate NaN and expose +-inf without a mask array
        if not (np.isfinite(flat.min()) and np.isfinite(flat.max())):
            raise ClassifierError("Classifier returned non-finite scores")
        return flat

    # =========================================================================
    #  PIPELINE
    # =========================================================================

    def _grayscale(self, pixels: np.ndarray, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        codes = self._converter.codes(pixels)

        # Frame sits at the top-left of the model grid, the rest stays zero
        if self._gray_dims != (width, height):
            self._gray_grid.fill(0.0)
            self._gray_dims = (width, height)
        region = self._gray_grid[:height, :width]
        np.divide(codes.reshape(height, width), LUMA_SCALE, out=region, dtype=np.float32, casting="unsafe")
        return codes, region

    def _infer(self) -> np.ndarray:
        try:
            scores = self.classifier.infer(self._gray_grid)
        except ClassifierError:
            raise
        except Exception as e:
            raise ClassifierError(f"Classifier failed: {e}") from e
        return self._check_scores(scores)

    def _delta_table(self, mode_color: int, target: Tuple[int, int, int]) -> Tuple[bool, int, Optional[float]]:
        tone_mapped = self.strategy.tone_mapped
        target_gray = luma(*target) if tone_mapped else None
        key = (tone_mapped, mode_color, target_gray)
        if key != self._delta_key:
            if tone_mapped:
                self._tone.fill(mode_color, GRAY_LEVELS, target_gray, self._delta)
            else:
                tone.raw_diff_array(mode_color, GRAY_LEVELS, out=self._delta)
            self._delta_key = key
        return key

    def _code_range(self) -> Tuple[int, int]:
        """Luma codes that can occur in the foreground, from the histogram."""
        filled = np.flatnonzero(self._estimator.histogram)
        if filled.size == 0:
            return 0, 0
        half = LUMA_SCALE // 2
        low = max(0, int(filled[0]) * LUMA_SCALE - half)
        high = min(LUMA_CODES, int(filled[-1]) * LUMA_SCALE + half)
        return low, high

    def recolor(self, frame: np.ndarray, width: int, height: int, color: ColorLike) -> np.ndarray:
        """
        frame  : packed 0xAARRGGBB pixels, (height, width) or flat
        color  : packed 0xRRGGBB int or (r, g, b)
        Returns (height, width) uint32 packed ARGB.
        """
        width = int(width)
        height = int(height)
        self._check_dimensions(width, height)

        pixels = np.asarray(frame)
        if pixels.size != width * height:
            raise InvalidArgumentError(
                f"Frame has {pixels.size} pixels, expected {width}x{height}={width * height}"
            )
        target = split_rgb(color)

        stats = FrameStats()
        t0 = time.perf_counter()
        codes, gray = self._grayscale(pixels, width, height)
        t1 = time.perf_counter()
        scores = self._infer()
        t2 = time.perf_counter()

        threshold = self.mask_threshold if self.strategy.gated else None
        mode_color, fg_count = self._estimator.estimate(codes, scores, width, height, threshold, gray=gray)
        mask = self._estimator.mask[: width * height]
        t3 = time.perf_counter()

        factors = self.jitter.next(*target)
        delta_key = self._delta_table(mode_color, target)
        low, high = self._code_range()
        jitter = tuple(float(f) for f in factors)
        self._compositor.shade(
            self._delta, target, factors, low, high, key=(delta_key, target, jitter, low, high)
        )
        out = self._compositor.compose(mask)
        t4 = time.perf_counter()

        stats.mode_color = mode_color
        stats.foreground_pixels = fg_count
        stats.jitter = jitter
        stats.gray_ms = (t1 - t0) * 1000.0
        stats.infer_ms = (t2 - t1) * 1000.0
        stats.mask_ms = (t3 - t2) * 1000.0
        stats.composite_ms = (t4 - t3) * 1000.0
        self.last_stats = stats

        if Settings.DEBUG:
            self.log.debug(
                f"PRE: {stats.gray_ms:.1f}ms | INF: {stats.infer_ms:.1f}ms | "
                f"POS: {stats.mask_ms + stats.composite_ms:.1f}ms | "
                f"mode={mode_color} fg={fg_count}"
            )
            overhead = stats.total_ms - stats.infer_ms
            if overhead > Settings.FRAME_BUDGET_MS:
                self.log.warn(f"Frame budget exceeded: {overhead:.1f}ms > {Settings.FRAME_BUDGET_MS:.1f}ms")
        return out.reshape(height, width)

    def close(self) -> None:
        self.classifier.close()
