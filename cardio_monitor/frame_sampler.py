"""
Frame sampler.

Reduces a video frame to one scalar per call: the mean intensity of a
colour channel over a region of interest (the forehead by default).
Green carries the strongest haemoglobin absorption signal, so it is the
default channel.

Also provides :class:`RegionQuality`, a lightweight heuristic that explains
*why* a region may carry no pulse (too dark, overexposed, not skin).  The
pulse detector uses it to make signal-loss errors diagnosable.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

Region = Tuple[int, int, int, int]      # x, y, width, height

# BGR channel indices (OpenCV ordering)
BLUE, GREEN, RED = 0, 1, 2

# Default forehead box as fractions of the frame: x, y, width, height
_FOREHEAD = (0.3, 0.1, 0.4, 0.15)


class FrameSampler:
    """
    Stateless region-of-interest averager.

    Parameters
    ----------
    channel:
        BGR channel index to average (default: green).
    region:
        Explicit ``(x, y, w, h)`` region.  When *None* the forehead box
        is derived from each frame's shape.
    """

    def __init__(self, channel: int = GREEN, region: Optional[Region] = None) -> None:
        if channel not in (BLUE, GREEN, RED):
            raise ValueError(f"channel must be 0, 1 or 2, got {channel}")
        self.channel = channel
        self.region = region

    def set_region(self, x: int, y: int, width: int, height: int) -> None:
        self.region = (int(x), int(y), int(width), int(height))

    def roi_for(self, shape: Tuple[int, ...]) -> Region:
        """Return the region applied to a frame of *shape* (H × W [× C])."""
        if self.region is not None:
            return self.region
        h, w = shape[0], shape[1]
        fx, fy, fw, fh = _FOREHEAD
        return int(w * fx), int(h * fy), int(w * fw), int(h * fh)

    def crop(self, frame: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """Return the ROI patch of *frame*, or *None* if it is empty."""
        if frame is None or frame.ndim < 2 or frame.size == 0:
            return None
        x, y, w, h = self.roi_for(frame.shape)
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(frame.shape[1], x + w), min(frame.shape[0], y + h)
        if x1 <= x0 or y1 <= y0:
            return None
        return frame[y0:y1, x0:x1]

    def sample(self, frame: Optional[np.ndarray]) -> Optional[float]:
        """
        Mean intensity of the configured channel over the ROI.

        Returns *None* when the region is empty; the caller should skip
        this frame.
        """
        patch = self.crop(frame)
        if patch is None:
            return None
        if patch.ndim == 2:                  # already single-channel
            return float(np.mean(patch))
        return float(np.mean(patch[:, :, self.channel]))

    def sample_rgb(self, frame: Optional[np.ndarray]) -> Optional[Tuple[float, float, float]]:
        """Mean ``(red, green, blue)`` over the ROI, or *None* when empty."""
        patch = self.crop(frame)
        if patch is None or patch.ndim != 3 or patch.shape[2] < 3:
            return None
        means = patch[:, :, :3].reshape(-1, 3).mean(axis=0)
        return float(means[RED]), float(means[GREEN]), float(means[BLUE])


class RegionQuality:
    """
    Heuristic check of whether a region can carry a usable pulse signal.

    Parameters
    ----------
    min_brightness:
        Mean brightness (0 – 255) below which the scene is too dark.
    max_brightness:
        Mean brightness above which the region is washed out.
    red_dominance:
        Minimum ``mean_red / mean_blue`` expected for skin.  Skin reflects
        noticeably more red than blue under ordinary lighting.
    """

    def __init__(
        self,
        min_brightness: float = 40.0,
        max_brightness: float = 235.0,
        red_dominance: float = 1.05,
    ) -> None:
        self.min_brightness = min_brightness
        self.max_brightness = max_brightness
        self.red_dominance = red_dominance

    def diagnose(self, patch: Optional[np.ndarray]) -> Optional[str]:
        """Return a human-readable problem description, or *None* if the patch looks usable."""
        if patch is None or patch.size == 0:
            return "no face detected in region (empty frame)"
        if patch.ndim != 3 or patch.shape[2] < 3:
            return None

        b_ch = patch[:, :, BLUE].astype(np.float64)
        g_ch = patch[:, :, GREEN].astype(np.float64)
        r_ch = patch[:, :, RED].astype(np.float64)

        mean_r = float(r_ch.mean())
        mean_g = float(g_ch.mean())
        mean_b = float(b_ch.mean())
        brightness = (mean_r + mean_g + mean_b) / 3.0

        if brightness < self.min_brightness:
            return "poor lighting (region too dark)"
        if brightness > self.max_brightness:
            return "poor lighting (region overexposed)"
        if mean_r / (mean_b + 1e-6) < self.red_dominance:
            return "no face detected in region (no skin tone)"
        return None

    def is_usable(self, patch: Optional[np.ndarray]) -> bool:
        return self.diagnose(patch) is None
