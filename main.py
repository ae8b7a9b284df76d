"""Hair Recolor — runner.
Streams frames from an image directory or video file through the recoloring engine,
shows/saves composited previews and reports FPS + per-stage timings."""

import argparse
import os
import signal
import sys
import time
from typing import Dict, List, Optional

import cv2
import numpy as np
import torch

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config.settings import Settings
from recolor.classifier import ModelDescriptor, TorchClassifier
from recolor.color import bgr_to_argb, parse_color, split_rgb
from recolor.data_loader import FrameLoader
from recolor.engine import RecolorEngine, RecolorStrategy
from recolor.errors import RecolorError
from recolor.runtime_profile import apply_runtime_profile
from recolor.utils import Logger, Visualizer, log_json_to_disk

BANNER = """
╔══════════════════════════════════════════════════════════════╗
║     HAIR RECOLOR - mask-driven live recoloring               ║
╚══════════════════════════════════════════════════════════════╝
"""


def print_system_info(log: Logger, model: ModelDescriptor, strategy: str, color: int) -> None:
    print(BANNER)
    log.info(f"Working Directory : {PROJECT_ROOT}")
    log.info(f"Debug            : {'ON' if Settings.DEBUG else 'OFF'}")
    log.info(f"Model            : {model.path}")
    log.info(f"Model Input      : {model.input_width}x{model.input_height}")
    log.info(f"Model Output     : {model.output_width}x{model.output_height}")
    log.info(f"Strategy         : {strategy}")
    log.info(f"Target Color     : #{color:06X}")
    log.info(f"Device           : {Settings.DEVICE}")
    log.info(f"FP16             : {'ON' if Settings.HALF_PRECISION else 'OFF'}")

    if torch.cuda.is_available():
        log.success(f"GPU              : {torch.cuda.get_device_name(0)}")
    else:
        log.warn("GPU              : NOT FOUND, running on CPU")


class FPSCounter:
    def __init__(self, report_interval: int = 10) -> None:
        self.report_interval = report_interval
        self.frame_count: int = 0
        self.start_time: float = time.time()
        self.log = Logger("FPS")

    def tick(self) -> Optional[float]:
        self.frame_count += 1
        if self.frame_count % self.report_interval == 0:
            elapsed = time.time() - self.start_time
            fps = self.frame_count / elapsed if elapsed > 0 else 0
            self.log.info(
                f"Frame: {self.frame_count} | FPS: {fps:.2f} | Elapsed: {elapsed:.1f}s"
            )
            return fps
        return None


def fit_to_model(frame: np.ndarray, model: ModelDescriptor) -> np.ndarray:
    """Downscale frames larger than the model grid, keeping the aspect ratio."""
    h, w = frame.shape[:2]
    max_w = min(model.input_width, model.output_width)
    max_h = min(model.input_height, model.output_height)
    if w <= max_w and h <= max_h:
        return frame
    scale = min(max_w / w, max_h / h)
    new_size = (max(1, int(w * scale)), max(1, int(h * scale)))
    return cv2.resize(frame, new_size, interpolation=cv2.INTER_AREA)


def process_frame(
    log: Logger,
    engine: RecolorEngine,
    frame_info: dict,
    color: int,
    visualizer: Optional[Visualizer],
    show: bool,
    save: bool,
) -> bool:
    frame = fit_to_model(frame_info["frame"], engine.model)
    frame_idx = frame_info["frame_idx"]
    height, width = frame.shape[:2]

    recolored = engine.recolor(bgr_to_argb(frame), width, height, color)
    stats = engine.last_stats.to_dict() if engine.last_stats is not None else {}

    log.success(
        f"Frame: {frame_idx:04d} | "
        f"Mode: {stats.get('mode_color', 0):3d} | "
        f"FG: {stats.get('foreground_pixels', 0)} px | "
        f"Total: {stats.get('total_ms', 0.0):.1f}ms"
    )

    if Settings.ENABLE_JSON_LOGGING and frame_idx % max(1, Settings.JSON_LOG_EVERY_N_FRAMES) == 0:
        log_json_to_disk(
            {"frame_idx": frame_idx, "filename": frame_info.get("filename"), **stats},
            direction="stats",
            tag=f"frame_{frame_idx:04d}",
        )

    if visualizer is not None and (show or save):
        annotated = visualizer.compose(
            frame,
            recolored,
            frame_id=f"frame_{frame_idx:04d}",
            stats=stats,
            save_to_disk=not save,
        )

        if show:
            try:
                cv2.imshow("Hair Recolor", annotated)
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    log.info("Window closed by user (q/ESC)")
                    return True
            except cv2.error:
                pass

        if save:
            save_path = os.path.join(
                Settings.DEBUG_OUTPUT_DIR,
                f"frame_{frame_idx:04d}.png",
            )
            cv2.imwrite(save_path, annotated)

    return False


def run_stream(
    log: Logger,
    engine: RecolorEngine,
    loader: FrameLoader,
    color: int,
    show: bool = False,
    save: bool = False,
    max_frames: int = 0,
) -> Dict[str, float]:
    fps_counter = FPSCounter(report_interval=Settings.FPS_REPORT_INTERVAL)
    visualizer = Visualizer() if (show or save) else None
    timings: List[float] = []
    failed = 0
    attempted = 0
    running = True

    def signal_handler(sig, frame) -> None:
        nonlocal running
        running = False
        log.warn("Shutdown signal received, stopping loop...")

    previous_handler = signal.signal(signal.SIGINT, signal_handler)

    try:
        for frame_info in loader:
            if not running:
                break

            if max_frames and attempted >= max_frames:
                log.success(f"Max frame limit reached ({max_frames})")
                break

            attempted += 1
            try:
                should_stop = process_frame(log, engine, frame_info, color, visualizer, show, save)
                if engine.last_stats is not None:
                    timings.append(engine.last_stats.total_ms)
                fps_counter.tick()
                if should_stop:
                    break

            except RecolorError as exc:
                failed += 1
                log.error(f"Frame {frame_info.get('frame_idx', '?')} error: {exc}")
                continue

    finally:
        log.info("Cleaning resources...")
        signal.signal(signal.SIGINT, previous_handler)
        loader.close()
        if show:
            cv2.destroyAllWindows()
            cv2.waitKey(1)
        if save:
            log.success(f"Frames saved: {Settings.DEBUG_OUTPUT_DIR}/")

    summary = _summarize(fps_counter, timings, failed)
    _print_summary(log, summary)
    return summary


def _summarize(fps_counter: FPSCounter, timings: List[float], failed: int) -> Dict[str, float]:
    elapsed = time.time() - fps_counter.start_time
    return {
        "frames": fps_counter.frame_count,
        "failed": failed,
        "elapsed_sec": elapsed,
        "fps": fps_counter.frame_count / elapsed if elapsed > 0 else 0.0,
        "avg_ms": float(np.mean(timings)) if timings else 0.0,
        "max_ms": float(np.max(timings)) if timings else 0.0,
    }


def _print_summary(log: Logger, summary: Dict[str, float]) -> None:
    print()
    log.info("=" * 56)
    log.info("SESSION SUMMARY")
    log.info("=" * 56)
    log.info(f"Frames         : {int(summary['frames'])} ({int(summary['failed'])} failed)")
    log.info(f"Elapsed        : {summary['elapsed_sec']:.1f}s")
    log.info(f"Average FPS    : {summary['fps']:.2f}")
    log.info(f"Frame Time     : avg {summary['avg_ms']:.1f}ms | max {summary['max_ms']:.1f}ms")
    log.success("System shutdown complete")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hair Recolor Runtime")
    parser.add_argument("--model", type=str, default=None, help="TorchScript model path (default: Settings.MODEL_PATH)")
    parser.add_argument("--source", type=str, default=None, help="Image directory or video file (default: Settings.DATASETS_DIR)")
    parser.add_argument("--color", type=str, default=None, help="Target color: preset name, #RRGGBB or r,g,b")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in RecolorStrategy],
        default=None,
        help="Recoloring strategy (default: Settings.RECOLOR_STRATEGY)",
    )
    parser.add_argument(
        "--deterministic-profile",
        choices=["off", "balanced", "max"],
        default="balanced",
        help="Runtime determinism profile",
    )
    parser.add_argument("--show", action="store_true", help="Show preview window")
    parser.add_argument("--save", action="store_true", help="Save preview images")
    parser.add_argument("--seed", type=int, default=None, help="Jitter seed (overrides Settings.DETERMINISM_SEED)")
    parser.add_argument("--max-frames", type=int, default=None, help="Stop after N frames (0 = no limit)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    log = Logger("Main")
    args = parse_args(argv)

    if args.model:
        Settings.MODEL_PATH = args.model
    if args.seed is not None:
        Settings.DETERMINISM_SEED = args.seed

    try:
        color = parse_color(args.color) if args.color else int(Settings.DEFAULT_TARGET_COLOR)
        split_rgb(color)
    except RecolorError as exc:
        log.error(f"Invalid --color: {exc}")
        return 2

    strategy = args.strategy or Settings.RECOLOR_STRATEGY
    rng = apply_runtime_profile(args.deterministic_profile)
    model = ModelDescriptor.from_settings()
    print_system_info(log, model, strategy, color)

    log.info("Initializing modules...")
    loader = None
    classifier = None
    try:
        loader = FrameLoader(args.source)
        if not loader.is_ready:
            log.error("Frame source loading failed, exiting.")
            loader.close()
            return 1
        classifier = TorchClassifier(model)
        engine = RecolorEngine(model, classifier, strategy=strategy, rng=rng)
        log.success("All modules initialized successfully")
    except (RecolorError, OSError) as exc:
        log.error(f"Initialization error: {exc}")
        if classifier is not None:
            classifier.close()
        if loader is not None:
            loader.close()
        return 1

    max_frames = Settings.MAX_FRAMES if args.max_frames is None else args.max_frames
    try:
        run_stream(log, engine, loader, color, show=args.show, save=args.save, max_frames=max_frames)
    finally:
        engine.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
