"""Packed-color helpers: ARGB <-> OpenCV BGR(A) arrays, target color parsing."""

from typing import Tuple, Union

import cv2
import numpy as np

from config.settings import Settings
from recolor.errors import InvalidArgumentError

ColorLike = Union[int, Tuple[int, int, int]]

# Luma weights (ITU-R BT.601)
LUMA_R: float = 0.299
LUMA_G: float = 0.587
LUMA_B: float = 0.114

OPAQUE: int = 0xFF000000
TRANSPARENT: int = 0x00000000


def rgb(red: int, green: int, blue: int) -> int:
    return OPAQUE | (red << 16) | (green << 8) | blue


def split_rgb(color: ColorLike) -> Tuple[int, int, int]:
    """
    Packed 0x(AA)RRGGBB int or (r, g, b) tuple -> (r, g, b). Alpha bits are ignored;
    a negative int is read as its 32-bit two's complement word (signed ARGB).
    """
    if isinstance(color, (tuple, list)):
        if len(color) != 3:
            raise InvalidArgumentError(f"Color tuple needs 3 channels, got {len(color)}")
        channels = tuple(int(c) for c in color)
        for c in channels:
            if not 0 <= c <= 255:
                raise InvalidArgumentError(f"Color channel out of range [0, 255]: {c}")
        return channels

    value = int(color) & 0xFFFFFFFF
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


def luma(red: float, green: float, blue: float) -> float:
    return LUMA_R * red + LUMA_G * green + LUMA_B * blue


def parse_color(text: str) -> int:
    """
    Accepted forms:
        preset name   "auburn"       (Settings.HAIR_COLOR_PRESETS)
        hex           "#8E3B2A", "0x8E3B2A", "8E3B2A"
        channels      "142,59,42"
    Returns packed 0xRRGGBB.
    """
    raw = text.strip()
    key = raw.lower().replace(" ", "_").replace("-", "_")
    if key in Settings.HAIR_COLOR_PRESETS:
        return int(Settings.HAIR_COLOR_PRESETS[key])

    if "," in raw:
        parts = [p.strip() for p in raw.split(",")]
        try:
            r, g, b = split_rgb(tuple(int(p) for p in parts))
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid channel color: {text!r}") from exc
        return (r << 16) | (g << 8) | b

    hex_part = raw[1:] if raw.startswith("#") else raw
    if hex_part.lower().startswith("0x"):
        hex_part = hex_part[2:]
    if len(hex_part) != 6:
        raise InvalidArgumentError(f"Invalid color: {text!r}")
    try:
        return int(hex_part, 16)
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid color: {text!r}") from exc


def bgr_to_argb(frame: np.ndarray) -> np.ndarray:
    """(H, W, 3) uint8 BGR -> (H, W) uint32 packed opaque ARGB."""
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise InvalidArgumentError(f"Expected (H, W, 3) BGR frame, got shape {frame.shape}")
    bgra = cv2.cvtColor(frame, cv2.COLOR_BGR2BGRA)
    # Byte order B, G, R, A read as little-endian uint32 == 0xAARRGGBB
    return np.ascontiguousarray(bgra).view("<u4")[:, :, 0].astype(np.uint32)


def argb_to_bgra(argb: np.ndarray) -> np.ndarray:
    """(H, W) uint32 packed ARGB -> (H, W, 4) uint8 BGRA."""
    packed = np.ascontiguousarray(argb, dtype=np.uint32)
    out = np.empty(packed.shape + (4,), dtype=np.uint8)
    out[..., 0] = packed & 0xFF
    out[..., 1] = (packed >> 8) & 0xFF
    out[..., 2] = (packed >> 16) & 0xFF
    out[..., 3] = (packed >> 24) & 0xFF
    return out
