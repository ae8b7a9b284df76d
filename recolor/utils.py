"""Logger (leveled log), Visualizer (preview compositing), log_json_to_disk (per-frame stats)."""

import os
import json
import re
from datetime import datetime
from typing import Dict, Optional, Any

import cv2
import numpy as np

try:
    from colorama import init as colorama_init, Fore, Style
    colorama_init(autoreset=True)
    _HAS_COLORAMA = True
except ImportError:
    _HAS_COLORAMA = False

from config.settings import Settings
from recolor.color import argb_to_bgra


class Logger:
    """Leveled log (DEBUG, INFO, WARN, ERROR, SUCCESS)."""

    def __init__(self, module_name: str) -> None:
        self.module_name = module_name

    def _timestamp(self) -> str:
        now = datetime.now()
        return now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"

    def _print(self, level: str, color: str, message: str) -> None:
        ts = self._timestamp()
        prefix = f"[{ts}] [{level:^7}] [{self.module_name}]"
        if _HAS_COLORAMA:
            print(f"{color}{prefix}{Style.RESET_ALL} {message}")
        else:
            print(f"{prefix} {message}")

    def debug(self, message: str) -> None:
        if Settings.DEBUG:
            color = Fore.WHITE if _HAS_COLORAMA else ""
            self._print("DEBUG", color, message)

    def info(self, message: str) -> None:
        color = Fore.GREEN if _HAS_COLORAMA else ""
        self._print("INFO", color, message)

    def warn(self, message: str) -> None:
        color = Fore.YELLOW if _HAS_COLORAMA else ""
        self._print("WARN", color, message)

    def error(self, message: str) -> None:
        color = Fore.RED if _HAS_COLORAMA else ""
        self._print("ERROR", color, message)

    def success(self, message: str) -> None:
        color = Fore.CYAN if _HAS_COLORAMA else ""
        self._print("SUCCESS", color, message)


class Visualizer:
    """Debug: blends the recolored layer over the source frame and draws stats."""

    def __init__(self, alpha: Optional[float] = None) -> None:
        os.makedirs(Settings.DEBUG_OUTPUT_DIR, exist_ok=True)
        self.log = Logger("Visualizer")
        self.alpha = float(Settings.PREVIEW_ALPHA if alpha is None else alpha)
        self._save_counter: int = 0

    def compose(
        self,
        frame: np.ndarray,
        recolored: np.ndarray,
        frame_id: str = "unknown",
        stats: Optional[Dict[str, Any]] = None,
        save_to_disk: bool = True,
    ) -> np.ndarray:
        """
        frame     : (H, W, 3) uint8 BGR source
        recolored : (H, W) uint32 packed ARGB engine output
        """
        h, w = recolored.shape[:2]
        base = frame[:h, :w]
        bgra = argb_to_bgra(recolored)

        # Transparent pixels keep the source, opaque ones take the recolored layer
        weight = (bgra[:, :, 3:4].astype(np.float32) / 255.0) * self.alpha
        blended = base.astype(np.float32) * (1.0 - weight) + bgra[:, :, :3].astype(np.float32) * weight
        annotated = frame.copy()
        annotated[:h, :w] = np.clip(blended, 0, 255).astype(np.uint8)

        if stats:
            lines = [
                f"Mode: {stats.get('mode_color', 0)}",
                f"FG: {stats.get('foreground_pixels', 0)} px",
                f"Total: {stats.get('total_ms', 0.0):.1f}ms",
            ]
            for i, text in enumerate(lines):
                cv2.putText(
                    annotated, text, (10, 25 + i * 25),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2,
                )

        if save_to_disk:
            self._save_counter += 1
            if self._save_counter % Settings.DEBUG_SAVE_INTERVAL == 0:
                save_path = os.path.join(Settings.DEBUG_OUTPUT_DIR, f"{frame_id}.jpg")
                cv2.imwrite(save_path, annotated)
                self.log.debug(f"Debug preview saved: {save_path}")

        return annotated


def log_json_to_disk(
    data: Any,
    direction: str = "stats",
    tag: str = "general",
) -> None:
    try:
        os.makedirs(Settings.LOG_DIR, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        safe_direction = _sanitize_log_component(direction)
        safe_tag = _sanitize_log_component(tag)
        filename = f"{timestamp}_{safe_direction}_{safe_tag}.json"
        filepath = os.path.join(Settings.LOG_DIR, filename)

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        _prune_old_logs(Settings.LOG_DIR)

    except Exception as exc:
        Logger("Logger").warn(f"JSON log write failed: {exc}")


def _sanitize_log_component(value: Any) -> str:
    text = str(value)
    sanitized = re.sub(r"[^A-Za-z0-9._-]", "_", text)
    return sanitized[:80] if sanitized else "general"


def _prune_old_logs(log_dir: str) -> None:
    max_files = max(1, int(Settings.LOG_MAX_FILES))
    try:
        files = [
            os.path.join(log_dir, name)
            for name in os.listdir(log_dir)
            if name.lower().endswith(".json")
        ]
    except OSError:
        return

    if len(files) <= max_files:
        return

    files.sort(key=lambda path: os.path.getmtime(path))
    for old_file in files[: len(files) - max_files]:
        try:
            os.remove(old_file)
        except OSError:
            continue
