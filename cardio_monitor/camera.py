"""
Camera frame source.

Wraps OpenCV ``VideoCapture`` to provide BGR frames for the pulse detector.
Anything exposing ``read_frame() -> ndarray | None`` can be used as a frame
source instead (tests use in-memory sources).
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from cardio_monitor.models import AcquisitionError

logger = logging.getLogger(__name__)


class CameraSource:
    """
    Webcam frame source.

    Parameters
    ----------
    camera_index:
        OpenCV device index.
    resolution:
        Requested (width, height) of captured frames.
    fps:
        Requested frame rate.  Actual rate may differ slightly.
    flip_horizontal:
        Mirror the image left-to-right (selfie view).
    warmup_frames:
        Frames discarded after opening so auto-exposure can settle.
    """

    def __init__(
        self,
        camera_index: int = 0,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        flip_horizontal: bool = True,
        warmup_frames: int = 8,
    ) -> None:
        self.camera_index = camera_index
        self.resolution = resolution
        self.fps = fps
        self.flip_horizontal = flip_horizontal
        self.warmup_frames = warmup_frames

        self._cap: Optional[cv2.VideoCapture] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        """Open the capture device.  Raises :class:`AcquisitionError` on failure."""
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise AcquisitionError(
                f"Cannot open video capture device index={self.camera_index} "
                "(camera missing or access denied)"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        for _ in range(self.warmup_frames):
            cap.read()
        self._cap = cap
        logger.info(
            "Camera opened – index=%d resolution=%s fps=%d",
            self.camera_index, self.resolution, self.fps,
        )

    def close(self) -> None:
        """Release the capture device.  Safe to call repeatedly."""
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Camera closed.")

    def __enter__(self) -> "CameraSource":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """
        Capture a single frame.

        Returns
        -------
        numpy.ndarray
            BGR image array (H × W × 3, dtype uint8), or *None* on a dropped frame.
        """
        if self._cap is None:
            raise AcquisitionError("Camera is not open.  Call open() first.")
        ok, frame = self._cap.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        if self.flip_horizontal:
            frame = cv2.flip(frame, 1)
        return frame
