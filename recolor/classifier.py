"""
Hair Recolor - Foreground Classifier Boundary
=============================================
The engine only needs `infer(grayscale) -> scores`: a flat float array of
interleaved (background, foreground) pairs, 2 x output_width x output_height
long. TorchClassifier wraps a TorchScript segmentation model behind that
contract.

Usage:
    from recolor.classifier import TorchClassifier
    classifier = TorchClassifier(model)
    scores = classifier.infer(gray)
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np
import torch

from config.settings import Settings
from recolor.errors import ClassifierError, InvalidArgumentError
from recolor.utils import Logger


@dataclass(frozen=True)
class ModelDescriptor:
    """Fixed model record; changing it means rebuilding every scratch buffer."""

    path: str
    input_width: int
    input_height: int
    output_width: int
    output_height: int

    def __post_init__(self) -> None:
        for name in ("input_width", "input_height", "output_width", "output_height"):
            if int(getattr(self, name)) <= 0:
                raise InvalidArgumentError(f"Model {name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_settings(cls) -> "ModelDescriptor":
        return cls(
            path=Settings.MODEL_PATH,
            input_width=Settings.MODEL_INPUT_WIDTH,
            input_height=Settings.MODEL_INPUT_HEIGHT,
            output_width=Settings.MODEL_OUTPUT_WIDTH,
            output_height=Settings.MODEL_OUTPUT_HEIGHT,
        )

    @property
    def input_size(self) -> int:
        return self.input_width * self.input_height

    @property
    def score_count(self) -> int:
        return 2 * self.output_width * self.output_height


class BaseClassifier(ABC):
    @abstractmethod
    def infer(self, grayscale: np.ndarray) -> np.ndarray:
        """
        grayscale : (input_height, input_width) float32 luma
        returns   : flat float32 scores, (background, foreground) per position
        """
        raise NotImplementedError

    def close(self) -> None:
        pass


class TorchClassifier(BaseClassifier):
    """
    TorchScript 2-class segmentation model.

    Accepts (1, 2, H, W) NCHW or (1, H, W, 2) NHWC outputs and flattens them
    to the interleaved pair layout. Falls back to CPU when CUDA is missing.
    """

    def __init__(self, model: ModelDescriptor) -> None:
        self.log = Logger("Classifier")
        self.model_info = model
        self._use_half: bool = False

        if Settings.DEVICE == "cuda" and torch.cuda.is_available():
            self.device = "cuda"
            self.log.success(f"GPU active: {torch.cuda.get_device_name(0)}")
        else:
            self.device = "cpu"
            self.log.warn("CUDA not found! Running in CPU mode (will be slow)")

        self.log.info(f"Loading segmentation model: {model.path}")
        if not os.path.exists(model.path):
            raise ClassifierError(f"Model file not found: {model.path}")
        try:
            self.net = torch.jit.load(model.path, map_location=self.device)
            self.net.eval()
            if self.device == "cuda" and Settings.HALF_PRECISION:
                self.net = self.net.half()
                self._use_half = True
                self.log.info("FP16 (half precision) active")
        except Exception as e:
            self.log.error(f"Model load error: {e}")
            raise ClassifierError(f"Segmentation model could not be loaded: {e}") from e

        self.log.success("Model loaded")
        self._warmup()

    def _warmup(self) -> None:
        iterations = int(Settings.WARMUP_ITERATIONS)
        if iterations <= 0:
            return
        self.log.info(f"Model warmup ({iterations} iterations)...")
        dummy = np.zeros(
            (self.model_info.input_height, self.model_info.input_width), dtype=np.float32
        )
        try:
            for _ in range(iterations):
                self.infer(dummy)
            self.log.success("Model warmup done")
        except ClassifierError as e:
            self.log.warn(f"Warmup error (ignored): {e}")

    def _to_pairs(self, output: "torch.Tensor") -> np.ndarray:
        h = self.model_info.output_height
        w = self.model_info.output_width
        if output.dim() == 3:
            output = output.unsqueeze(0)
        if output.dim() != 4:
            raise ClassifierError(f"Unexpected model output rank: {tuple(output.shape)}")
        if tuple(output.shape[1:]) == (2, h, w):
            output = output.permute(0, 2, 3, 1)
        elif tuple(output.shape[1:]) != (h, w, 2):
            raise ClassifierError(
                f"Unexpected model output shape {tuple(output.shape)}, expected 2 x {h} x {w}"
            )
        return output.float().contiguous().cpu().numpy().reshape(-1)

    def infer(self, grayscale: np.ndarray) -> np.ndarray:
        tensor = torch.from_numpy(np.ascontiguousarray(grayscale, dtype=np.float32))
        tensor = tensor.reshape(
            1, 1, self.model_info.input_height, self.model_info.input_width
        ).to(self.device)
        if self._use_half:
            tensor = tensor.half()
        try:
            with torch.no_grad():
                output = self.net(tensor)
        except Exception as e:
            raise ClassifierError(f"Inference failed: {e}") from e
        if isinstance(output, (tuple, list)):
            output = output[0]
        return self._to_pairs(output)

    def close(self) -> None:
        if self.device == "cuda":
            torch.cuda.empty_cache()
