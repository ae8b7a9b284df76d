"""Frame source for the runner. Either an image directory (scanned recursively,
sorted by path) or a video file read through cv2.VideoCapture."""

import os
from typing import Any, Dict, Iterator, List, Optional

import cv2

from config.settings import Settings
from recolor.utils import Logger


def _collect_images_recursive(root: str) -> List[str]:
    """Walk root recursively, keep files whose extension matches."""
    exts = tuple(e.lower() for e in Settings.IMAGE_EXTENSIONS)
    paths: List[str] = []
    for dirpath, _, filenames in os.walk(root):
        for f in filenames:
            if f.lower().endswith(exts):
                paths.append(os.path.join(dirpath, f))
    return sorted(paths)


class FrameLoader:
    """Yields {"frame", "frame_idx", "filename"} dicts with BGR uint8 frames."""

    def __init__(self, source: Optional[str] = None) -> None:
        self.log = Logger("DataLoader")
        self.source = source or Settings.DATASETS_DIR
        self._frames: List[str] = []
        self._capture: Optional[cv2.VideoCapture] = None
        self._index: int = 0
        self._mode: str = "unknown"

        if os.path.isdir(self.source):
            self.log.info(f"Scanning image directory (recursive): {self.source}")
            self._frames = _collect_images_recursive(self.source)
            if not self._frames:
                self.log.error("No images found!")
                self.log.error(f"  -> Supported extensions: {Settings.IMAGE_EXTENSIONS}")
                return
            self._mode = "images"
            self.log.success(f"Found {len(self._frames)} images")
        elif os.path.isfile(self.source):
            capture = cv2.VideoCapture(self.source)
            if not capture.isOpened():
                self.log.error(f"Video could not be opened: {self.source}")
                return
            self._capture = capture
            self._mode = "video"
            self.log.success(f"Video opened: {self.source}")
        else:
            self.log.error(f"Frame source not found: {self.source}")

    def __len__(self) -> int:
        if self._capture is not None:
            return max(0, int(self._capture.get(cv2.CAP_PROP_FRAME_COUNT)))
        return len(self._frames)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        self._index = 0
        if self._capture is not None:
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)
        return self

    def __next__(self) -> Dict[str, Any]:
        if self._capture is not None:
            ok, frame = self._capture.read()
            if not ok or frame is None:
                raise StopIteration
            result = {
                "frame": frame,
                "frame_idx": self._index,
                "filename": f"{os.path.basename(self.source)}#{self._index}",
            }
            self._index += 1
            return result

        while self._index < len(self._frames):
            frame_path = self._frames[self._index]
            frame = cv2.imread(frame_path)

            if frame is None:
                self.log.warn(f"Image unreadable, skipping: {frame_path}")
                self._index += 1
                continue

            result = {
                "frame": frame,
                "frame_idx": self._index,
                "filename": os.path.basename(frame_path),
            }
            self._index += 1
            return result

        raise StopIteration

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_ready(self) -> bool:
        return self._capture is not None or len(self._frames) > 0
