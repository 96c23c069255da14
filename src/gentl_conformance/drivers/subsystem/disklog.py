"""Disk logger for captured frames.

Wraps cv2.VideoWriter so a capture session can stream frames to an AVI
file while the acquisition test compares frame counters. The writer is
opened lazily on the first frame because the frame size is only known once
the device delivers data.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import cv2
import numpy as np

from gentl_conformance.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)

__all__ = ["DiskLogger"]

# Motion-JPEG is available in every OpenCV build and fits AVI containers
_DEFAULT_FOURCC = "MJPG"
_DEFAULT_FPS = 30.0


class DiskLogger:
    """Video file sink counting the frames it has written.

    Attributes:
        path: Destination file.
        fps: Nominal frame rate written to the container.
    """

    def __init__(
        self, path: Path | str, fps: float = _DEFAULT_FPS, fourcc: str = _DEFAULT_FOURCC
    ) -> None:
        self.path = Path(path)
        self.fps = fps
        self._fourcc = fourcc
        self._writer: cv2.VideoWriter | None = None
        self._frame_count = 0
        self._frame_size: tuple[int, int] | None = None

    @property
    def frame_count(self) -> int:
        """Frames written since the logger was created."""
        return self._frame_count

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    def write(self, frame: NDArray[Any]) -> None:
        """Append one frame to the file.

        Frames are converted to 8-bit BGR because VideoWriter only encodes
        that layout. The first frame fixes the file's frame size; later frames
        with a different size are resized to match.

        Args:
            frame: Mono (H, W) or color (H, W, 3) frame, uint8 or uint16.

        Raises:
            OSError: If the video file cannot be opened for writing.
        """
        bgr = _to_bgr8(frame)
        height, width = bgr.shape[:2]
        if self._writer is None:
            self._open(width, height)
        assert self._frame_size is not None
        if (width, height) != self._frame_size:
            bgr = cv2.resize(bgr, self._frame_size)
        assert self._writer is not None
        self._writer.write(bgr)
        self._frame_count += 1

    def close(self) -> None:
        """Flush and close the file. Safe to call more than once."""
        if self._writer is not None:
            self._writer.release()
            self._writer = None
            logger.debug(
                "Disk logger closed", path=str(self.path), frames=self._frame_count
            )

    def _open(self, width: int, height: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        writer = cv2.VideoWriter(
            str(self.path),
            cv2.VideoWriter_fourcc(*self._fourcc),
            self.fps,
            (width, height),
            True,
        )
        if not writer.isOpened():
            raise OSError(f"Unable to open video file for writing: {self.path}")
        self._writer = writer
        self._frame_size = (width, height)
        logger.debug("Disk logger opened", path=str(self.path), width=width, height=height)


def _to_bgr8(frame: NDArray[Any]) -> NDArray[np.uint8]:
    """Convert a mono or RGB frame of any integer depth to 8-bit BGR."""
    data = frame
    if data.dtype == np.uint16:
        data = (data >> 8).astype(np.uint8)
    elif data.dtype != np.uint8:
        data = data.astype(np.uint8)
    if data.ndim == 2:
        return cv2.cvtColor(data, cv2.COLOR_GRAY2BGR)
    return cv2.cvtColor(data, cv2.COLOR_RGB2BGR)
