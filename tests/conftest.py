from typing import Callable, List, Optional

import numpy as np
import pytest

from config.settings import Settings
from recolor.classifier import BaseClassifier, ModelDescriptor
from recolor.engine import RecolorEngine


class ScriptedClassifier(BaseClassifier):
    """Returns fixed scores (or scores built from the input) and records calls."""

    def __init__(self, scores=None, fn: Optional[Callable] = None, error: Optional[Exception] = None):
        self.scores = scores
        self.fn = fn
        self.error = error
        self.calls: List[np.ndarray] = []
        self.closed = False

    def infer(self, grayscale: np.ndarray) -> np.ndarray:
        self.calls.append(grayscale.copy())
        if self.error is not None:
            raise self.error
        if self.fn is not None:
            return self.fn(grayscale)
        return self.scores

    def close(self) -> None:
        self.closed = True


def pack_gray(values) -> np.ndarray:
    """Gray levels -> packed opaque ARGB with R == G == B."""
    v = np.asarray(values, dtype=np.uint32)
    return (0xFF000000 | (v << 16) | (v << 8) | v).astype(np.uint32)


def score_grid(foreground, grid_width: int, grid_height: int, fg: float = 0.9, bg: float = 0.1) -> np.ndarray:
    """
    (h, w) boolean foreground layout -> flat interleaved scores, laid out with
    the height-strided indexing the engine reads.
    """
    fg_mask = np.asarray(foreground, dtype=bool)
    scores = np.zeros(2 * grid_width * grid_height, dtype=np.float32)
    scores[0::2] = 1.0
    h, w = fg_mask.shape
    for y in range(h):
        for x in range(w):
            idx = y * grid_height * 2 + x * 2
            if fg_mask[y, x]:
                scores[idx], scores[idx + 1] = bg, fg
            else:
                scores[idx], scores[idx + 1] = 0.9, 0.1
    return scores


@pytest.fixture(autouse=True)
def restore_settings():
    """Tests may override Settings attributes; put them back afterwards."""
    snapshot = {k: getattr(Settings, k) for k in dir(Settings) if k.isupper()}
    Settings.DEBUG = False
    yield
    for key, value in snapshot.items():
        setattr(Settings, key, value)


@pytest.fixture
def model_4x4() -> ModelDescriptor:
    return ModelDescriptor("fake.pt", 4, 4, 4, 4)


@pytest.fixture
def make_engine(model_4x4):
    def _make(scores=None, strategy="tone_mapped", model=None, rng=None, classifier=None, **kwargs):
        model = model or model_4x4
        if classifier is None:
            classifier = ScriptedClassifier(scores=scores)
        return RecolorEngine(model, classifier, strategy=strategy, rng=rng, **kwargs)

    return _make
