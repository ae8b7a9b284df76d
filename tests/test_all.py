"""
Hair Recolor — consolidated tests for the ambient modules
=========================================================
Logger / JSON stats logging, Visualizer, runtime profile, frame loader and
the runner loop.
Run: python -m pytest tests/test_all.py -v
"""

import json
from unittest.mock import patch, mock_open

import numpy as np
import pytest

from config.settings import Settings

# ─── Soft imports (environment-dependent) ────────────────────────────────────
try:
    import cv2
except ImportError:  # pragma: no cover
    cv2 = None

try:
    import torch
except ImportError:  # pragma: no cover
    torch = None

try:
    import main as main_module
    from recolor.runtime_profile import apply_runtime_profile
except Exception:  # pragma: no cover
    main_module = None
    apply_runtime_profile = None

from conftest import ScriptedClassifier, score_grid
from recolor.classifier import ModelDescriptor
from recolor.data_loader import FrameLoader
from recolor.engine import RecolorEngine
from recolor.errors import ClassifierError
from recolor.utils import Logger, Visualizer, log_json_to_disk, _sanitize_log_component, _prune_old_logs


# =============================================================================
#  §1  UTILS TESTS
# =============================================================================

class TestLogger:
    @patch('builtins.print')
    def test_logger_info(self, mock_print):
        Logger("TestModule").info("Test message")
        assert mock_print.called

    @patch('builtins.print')
    def test_logger_debug(self, mock_print):
        logger = Logger("TestModule")
        Settings.DEBUG = True
        logger.debug("show")
        assert mock_print.called
        mock_print.reset_mock()
        Settings.DEBUG = False
        logger.debug("hide")
        assert not mock_print.called

    @patch('builtins.print')
    def test_logger_error(self, mock_print):
        Logger("TestModule").error("Error")
        assert mock_print.called

    @patch('builtins.print')
    def test_logger_warn(self, mock_print):
        Logger("TestModule").warn("Warn")
        assert mock_print.called

    @patch('builtins.print')
    def test_logger_success(self, mock_print):
        Logger("TestModule").success("OK")
        assert mock_print.called
        assert "[TestModule]" in mock_print.call_args.args[0]


class TestSanitizeAndLogs:
    def test_sanitize_log_component(self):
        assert _sanitize_log_component("valid_name") == "valid_name"
        assert _sanitize_log_component("invalid?name!") == "invalid_name_"
        assert _sanitize_log_component("") == "general"

    @patch('os.makedirs')
    @patch('builtins.open', new_callable=mock_open)
    @patch('recolor.utils._prune_old_logs')
    def test_log_json_to_disk(self, mock_prune, mock_file, mock_makedirs):
        data = {"mode_color": 100, "foreground_pixels": 12}
        Settings.LOG_DIR = "/fake/dir"
        log_json_to_disk(data, direction="stats", tag="frame_0001")
        mock_makedirs.assert_called_with("/fake/dir", exist_ok=True)
        mock_file.assert_called_once()
        mock_prune.assert_called_once_with("/fake/dir")
        written = "".join(c.args[0] for c in mock_file().write.call_args_list)
        assert json.loads(written) == data

    @patch('os.listdir')
    @patch('os.path.getmtime')
    @patch('os.remove')
    def test_prune_old_logs(self, mock_remove, mock_getmtime, mock_listdir):
        mock_listdir.return_value = ["log1.json", "log2.json", "log3.json"]
        mock_getmtime.side_effect = [1.0, 3.0, 2.0]
        Settings.LOG_MAX_FILES = 1
        _prune_old_logs("/fake/dir")
        assert mock_remove.call_count == 2


@pytest.mark.skipif(cv2 is None, reason="opencv is missing")
class TestVisualizer:
    def test_compose_blends_only_opaque_pixels(self, tmp_path):
        Settings.DEBUG_OUTPUT_DIR = str(tmp_path)
        vis = Visualizer(alpha=1.0)
        frame = np.full((2, 2, 3), 50, dtype=np.uint8)
        recolored = np.array([[0xFFFF0000, 0], [0, 0xFF00FF00]], dtype=np.uint32)

        out = vis.compose(frame, recolored, save_to_disk=False)

        assert out[0, 0].tolist() == [0, 0, 255]
        assert out[0, 1].tolist() == [50, 50, 50]
        assert out[1, 1].tolist() == [0, 255, 0]
        assert frame[0, 0].tolist() == [50, 50, 50]

    def test_compose_saves_every_interval(self, tmp_path):
        Settings.DEBUG_OUTPUT_DIR = str(tmp_path)
        Settings.DEBUG_SAVE_INTERVAL = 2
        vis = Visualizer()
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        recolored = np.zeros((4, 4), dtype=np.uint32)

        vis.compose(frame, recolored, frame_id="a")
        vis.compose(frame, recolored, frame_id="b")

        assert not (tmp_path / "a.jpg").exists()
        assert (tmp_path / "b.jpg").exists()


# =============================================================================
#  §2  RUNTIME PROFILE TESTS
# =============================================================================

@pytest.mark.skipif(torch is None or apply_runtime_profile is None, reason="torch is missing")
class TestRuntimeProfile:
    def test_off(self):
        orig_fp16 = Settings.HALF_PRECISION
        assert apply_runtime_profile("off") is None
        assert Settings.HALF_PRECISION == orig_fp16

    def test_balanced_returns_seeded_generator(self):
        Settings.DETERMINISM_SEED = 123
        Settings.HALF_PRECISION = True
        rng_a = apply_runtime_profile("balanced")
        rng_b = apply_runtime_profile("balanced")
        assert rng_a.integers(0, 1000) == rng_b.integers(0, 1000)
        assert Settings.HALF_PRECISION is True

    def test_max_disables_fp16(self):
        Settings.HALF_PRECISION = True
        apply_runtime_profile("max")
        assert Settings.HALF_PRECISION is False

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            apply_runtime_profile("turbo")


# =============================================================================
#  §3  FRAME LOADER TESTS
# =============================================================================

@pytest.mark.skipif(cv2 is None, reason="opencv is missing")
class TestFrameLoader:
    def test_image_directory(self, tmp_path):
        nested = tmp_path / "seq"
        nested.mkdir()
        cv2.imwrite(str(nested / "b.png"), np.full((4, 4, 3), 20, dtype=np.uint8))
        cv2.imwrite(str(tmp_path / "a.png"), np.full((4, 4, 3), 10, dtype=np.uint8))
        (tmp_path / "notes.txt").write_text("skip me")

        loader = FrameLoader(str(tmp_path))

        assert loader.is_ready
        assert loader.mode == "images"
        assert len(loader) == 2
        frames = list(loader)
        assert [f["filename"] for f in frames] == ["a.png", "b.png"]
        assert frames[0]["frame"].shape == (4, 4, 3)

    def test_unreadable_image_skipped(self, tmp_path):
        (tmp_path / "broken.jpg").write_bytes(b"not an image")
        cv2.imwrite(str(tmp_path / "ok.png"), np.zeros((2, 2, 3), dtype=np.uint8))
        frames = list(FrameLoader(str(tmp_path)))
        assert [f["filename"] for f in frames] == ["ok.png"]

    def test_missing_source(self, tmp_path):
        loader = FrameLoader(str(tmp_path / "nope"))
        assert not loader.is_ready
        assert len(loader) == 0


# =============================================================================
#  §4  RUNNER TESTS
# =============================================================================

class _ListLoader:
    def __init__(self, frames):
        self.frames = frames
        self.closed = False

    def __iter__(self):
        return iter(self.frames)

    def close(self):
        self.closed = True


def _frame_info(idx, h=4, w=4, value=120):
    return {"frame": np.full((h, w, 3), value, dtype=np.uint8), "frame_idx": idx, "filename": f"{idx}.png"}


@pytest.mark.skipif(main_module is None, reason="runtime deps are missing")
class TestRunner:
    def _engine(self, classifier=None):
        model = ModelDescriptor("fake.pt", 4, 4, 4, 4)
        classifier = classifier or ScriptedClassifier(scores=score_grid(np.ones((4, 4), dtype=bool), 4, 4))
        return RecolorEngine(model, classifier, strategy="raw_delta")

    def test_run_stream_processes_all_frames(self):
        loader = _ListLoader([_frame_info(i) for i in range(3)])
        summary = main_module.run_stream(Logger("Test"), self._engine(), loader, 0x8E3B2A)
        assert summary["frames"] == 3
        assert summary["failed"] == 0
        assert loader.closed

    def test_run_stream_respects_max_frames(self):
        loader = _ListLoader([_frame_info(i) for i in range(5)])
        summary = main_module.run_stream(Logger("Test"), self._engine(), loader, 0x8E3B2A, max_frames=2)
        assert summary["frames"] == 2

    def test_max_frames_counts_failed_frames(self):
        engine = self._engine(ScriptedClassifier(error=RuntimeError("inference backend lost")))
        loader = _ListLoader([_frame_info(i) for i in range(5)])
        summary = main_module.run_stream(Logger("Test"), engine, loader, 0x8E3B2A, max_frames=2)
        assert summary["failed"] == 2
        assert len(engine.classifier.calls) == 2

    def test_failed_frame_is_skipped(self):
        engine = self._engine(ScriptedClassifier(error=RuntimeError("inference backend lost")))
        loader = _ListLoader([_frame_info(0), _frame_info(1)])
        summary = main_module.run_stream(Logger("Test"), engine, loader, 0x8E3B2A)
        assert summary["frames"] == 0
        assert summary["failed"] == 2

    def test_large_frames_are_downscaled(self):
        model = ModelDescriptor("fake.pt", 4, 4, 4, 4)
        frame = np.zeros((8, 16, 3), dtype=np.uint8)
        assert main_module.fit_to_model(frame, model).shape == (2, 4, 3)
        small = np.zeros((3, 4, 3), dtype=np.uint8)
        assert main_module.fit_to_model(small, model) is small

    def test_process_frame_writes_json_stats(self):
        Settings.ENABLE_JSON_LOGGING = True
        Settings.JSON_LOG_EVERY_N_FRAMES = 1
        with patch.object(main_module, "log_json_to_disk") as mock_log:
            stop = main_module.process_frame(
                Logger("Test"), self._engine(), _frame_info(0), 0x8E3B2A, None, False, False
            )
        assert stop is False
        payload = mock_log.call_args.args[0]
        assert payload["foreground_pixels"] == 16
        assert payload["filename"] == "0.png"

    def test_parse_args(self):
        args = main_module.parse_args(["--color", "auburn", "--strategy", "raw_delta", "--max-frames", "5"])
        assert args.color == "auburn"
        assert args.strategy == "raw_delta"
        assert args.max_frames == 5
        assert args.deterministic_profile == "balanced"

    def test_main_rejects_bad_color(self):
        assert main_module.main(["--color", "#zzzzzz", "--deterministic-profile", "off"]) == 2

    def test_main_missing_source(self, tmp_path):
        code = main_module.main([
            "--source", str(tmp_path / "missing"), "--deterministic-profile", "off",
        ])
        assert code == 1

    def test_main_closes_loader_when_classifier_fails(self):
        loader = _ListLoader([])
        loader.is_ready = True
        with patch.object(main_module, "FrameLoader", return_value=loader), \
                patch.object(main_module, "TorchClassifier", side_effect=ClassifierError("bad weights")):
            code = main_module.main(["--deterministic-profile", "off"])
        assert code == 1
        assert loader.closed
