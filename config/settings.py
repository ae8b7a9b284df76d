"""
Hair Recolor - Central Configuration
====================================
All runtime parameters live in this file. Switching models or tuning the
recoloring look is done by editing the values below (or overriding the class
attributes at startup).

Usage:
    from config.settings import Settings
    print(Settings.MODEL_PATH)
"""

from pathlib import Path
import os


# =============================================================================
#  PROJECT ROOT
# =============================================================================
# Two levels above this file = project root
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Settings:
    """
    Central configuration class holding every system setting.

    Parameters that change between sessions are grouped at the top,
    rarely touched ones further down.
    """

    # =========================================================================
    #  RUN MODES
    # =========================================================================

    DEBUG: bool = True              # True: verbose log + per-frame stats

    # =========================================================================
    #  MODEL SETTINGS
    # =========================================================================

    # TorchScript segmentation model (loaded from local disk)
    MODEL_PATH: str = os.path.join(str(PROJECT_ROOT), "model", "lr_aspp_s_new_1024.pt")

    # Model descriptor: fixed classifier input / output grid (pixels)
    MODEL_INPUT_WIDTH: int = 1024
    MODEL_INPUT_HEIGHT: int = 1024
    MODEL_OUTPUT_WIDTH: int = 1024
    MODEL_OUTPUT_HEIGHT: int = 1024

    # Device selection (cuda: GPU, cpu: processor)
    DEVICE: str = "cuda"

    # FP16 half precision on GPU
    HALF_PRECISION: bool = True

    # Model warmup iterations (avoids first-frame latency spike)
    WARMUP_ITERATIONS: int = 2

    # =========================================================================
    #  RECOLORING
    # =========================================================================

    # tone_mapped | tone_mapped_sticky | raw_delta | gated_raw_delta
    RECOLOR_STRATEGY: str = "tone_mapped"

    # Extra foreground confidence required by the gated strategy
    MASK_CONFIDENCE_THRESHOLD: float = 0.5

    # Per-channel jitter values (0.89 .. 0.99, step 0.01)
    JITTER_MIN: float = 0.89
    JITTER_STEPS: int = 11
    JITTER_STEP: float = 0.01

    # Packed 0xRRGGBB target used when no color is given
    DEFAULT_TARGET_COLOR: int = 0x8E3B2A

    # Named target colors accepted by the runner (--color auburn)
    HAIR_COLOR_PRESETS: dict = {
        "jet_black": 0x161616,
        "dark_brown": 0x3B2417,
        "medium_brown": 0x6A4327,
        "auburn": 0x8E3B2A,
        "fiery_red": 0xC1281C,
        "strawberry_blonde": 0xD79A6B,
        "platinum_blonde": 0xE6E2D3,
        "ash_blonde": 0xB8AE96,
        "pastel_pink": 0xF2A7C3,
        "vivid_blue": 0x1F4FD8,
        "emerald_green": 0x1E8C5A,
        "purple": 0x6B2FA3,
        "silver": 0xC0C0C0,
    }

    # =========================================================================
    #  FILE PATHS
    # =========================================================================

    # Log directory
    LOG_DIR: str = os.path.join(str(PROJECT_ROOT), "logs")

    # Debug output directory (composited previews)
    DEBUG_OUTPUT_DIR: str = os.path.join(str(PROJECT_ROOT), "debug_output")

    # Default frame source for the runner
    DATASETS_DIR: str = os.path.join(str(PROJECT_ROOT), "datasets")

    IMAGE_EXTENSIONS: tuple = (".jpg", ".jpeg", ".png", ".bmp")

    # =========================================================================
    #  PERFORMANCE
    # =========================================================================

    # FPS report interval (every N frames)
    FPS_REPORT_INTERVAL: int = 30

    # Per-frame budget for the engine stages around inference
    # (grayscale + mask + composite) at the full 1024x1024 model input
    FRAME_BUDGET_MS: float = 10.0

    # Preview blend strength of the recolored layer over the source frame
    PREVIEW_ALPHA: float = 0.85

    # Save a debug preview every N frames
    DEBUG_SAVE_INTERVAL: int = 50

    # JSON stats logging
    ENABLE_JSON_LOGGING: bool = False
    JSON_LOG_EVERY_N_FRAMES: int = 30
    LOG_MAX_FILES: int = 2000

    # Deterministic runtime profile (can be overridden at startup)
    DETERMINISM_SEED: int = 42
    DETERMINISM_CPU_THREADS: int = 1

    # Stop the runner after this many frames (0 = no limit)
    MAX_FRAMES: int = 0
