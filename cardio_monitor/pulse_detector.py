"""
Pulse detector.

Algorithm
---------
1. Each sampling step reads one frame from the bound source and reduces the
   forehead region to a mean green intensity (see :mod:`frame_sampler`).
2. Samples are kept in a rolling buffer covering ``detector_window_s``.
3. The buffer is resampled onto a uniform grid, mean-removed and passed
   through a zero-phase Butterworth bandpass (default 0.7 – 3.0 Hz,
   42 – 180 BPM) so lighting drift and motion are suppressed.
4. Local maxima are found with :func:`scipy.signal.find_peaks` using a
   refractory distance (300 ms).  Each peak newer than the last emitted beat
   (plus the refractory period) becomes a :class:`BeatEvent`.
5. A peak is scored once the trough after it has been sampled.  Beat
   confidence multiplies peak prominence relative to the signal spread, the
   spectral concentration of the dominant FFT peak and the margin of the
   pulse band over the broadband noise floor.  Beats below
   ``min_beat_confidence`` are still reported but never count as a valid
   pulse, so noise alone ends in signal loss rather than a heart rate.

Detections are queued on an internal FIFO which the session controller
drains; optional ``on_beat`` / ``on_error`` callbacks are invoked as well.

References
----------
- Verkruysse W. et al., "Remote plethysmographic imaging using ambient light."
  Opt Express, 2008.
- Poh M.-Z. et al., "Non-contact, automated cardiac pulse measurements using
  video imaging and blind source separation." Opt Express, 2010.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Tuple, Union

import numpy as np
from scipy.signal import butter, find_peaks, sosfiltfilt

from cardio_monitor.config import DEFAULT_CONFIG, PipelineConfig
from cardio_monitor.frame_sampler import FrameSampler, RegionQuality
from cardio_monitor.models import BeatEvent, IntensitySample, SignalLost, Waveform

logger = logging.getLogger(__name__)

BeatCallback = Callable[[float, float], None]
ErrorCallback = Callable[[str], None]
DetectorEvent = Union[BeatEvent, SignalLost]

_DEFAULT_HINT = "check lighting, hold still and keep your face in the frame"


class PulseDetector:
    """
    Streaming beat detector for camera PPG.

    Parameters
    ----------
    config:
        Pipeline thresholds (sampling rate, band edges, refractory period,
        grace period...).
    sampler:
        Frame-to-scalar reducer used by :meth:`tick`.
    quality:
        Region quality heuristic used to explain signal loss.
    """

    def __init__(
        self,
        config: PipelineConfig = DEFAULT_CONFIG,
        sampler: Optional[FrameSampler] = None,
        quality: Optional[RegionQuality] = None,
    ) -> None:
        self.config = config
        self.sampler = sampler if sampler is not None else FrameSampler()
        self.quality = quality if quality is not None else RegionQuality()

        maxlen = config.buffer_size
        self._samples: Deque[IntensitySample] = deque(maxlen=maxlen)
        self._events: Deque[DetectorEvent] = deque()

        self._sos = self._build_filter()
        self._min_grid = 3 * (2 * len(self._sos) + 1) + 1   # sosfiltfilt pad length

        self._source: Any = None
        self._last_frame: Optional[np.ndarray] = None
        self._on_beat: Optional[BeatCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._running = False
        self._reset_state()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, video_source: Any, region: Optional[Tuple[int, int, int, int]] = None) -> None:
        """Bind a frame source (anything with ``read_frame()``)."""
        if not hasattr(video_source, "read_frame"):
            raise TypeError("video_source must provide read_frame()")
        self._source = video_source
        if region is not None:
            self.sampler.set_region(*region)

    def start(
        self,
        on_beat: Optional[BeatCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Begin processing.  Calling ``start`` while running restarts the
        detector from empty buffers; two runs never overlap.
        """
        if self._running:
            logger.info("Pulse detector already running – restarting.")
            self.stop()
        self._events.clear()
        self._reset_state()
        self._on_beat = on_beat
        self._on_error = on_error
        self._running = True
        logger.info("Pulse detector started.")

    def stop(self) -> None:
        """Halt processing and release sample buffers.  Idempotent."""
        if not self._running:
            return
        self._running = False
        self._samples.clear()
        self._on_beat = None
        self._on_error = None
        logger.info("Pulse detector stopped.")

    def release(self) -> None:
        """Stop and unbind the frame source."""
        self.stop()
        self._events.clear()
        self._source = None
        self._last_frame = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def tick(self, now_ms: float) -> List[BeatEvent]:
        """Run one sampling step against the bound source."""
        if not self._running or self._source is None:
            return []
        try:
            frame = self._source.read_frame()
        except Exception as exc:                          # noqa: BLE001
            logger.warning("Frame read failed: %s", exc)
            self._last_diagnosis = f"frame read failed ({exc})"
            self._check_signal_loss(now_ms)
            return []

        self._last_frame = frame
        patch = self.sampler.crop(frame)
        self._last_diagnosis = self.quality.diagnose(patch)
        value = self.sampler.sample(frame)
        if value is None:
            self._check_signal_loss(now_ms)
            return []
        return self.push_sample(now_ms, value)

    def push_sample(self, timestamp_ms: float, value: float) -> List[BeatEvent]:
        """
        Append one intensity sample and return any beats it completes.

        Non-finite values and non-increasing timestamps are ignored.
        """
        if not self._running:
            return []
        if self._started_ms is None:
            self._started_ms = timestamp_ms
        if not math.isfinite(value) or (self._samples and timestamp_ms <= self._samples[-1].timestamp_ms):
            self._check_signal_loss(timestamp_ms)
            return []

        self._samples.append(IntensitySample(float(timestamp_ms), float(value)))

        beats = self._detect()
        for beat in beats:
            self._events.append(beat)
            if self._on_beat is not None:
                self._on_beat(beat.bpm_estimate, beat.confidence)
        self._check_signal_loss(timestamp_ms)
        return beats

    def drain(self) -> List[DetectorEvent]:
        """Remove and return all queued detector events, oldest first."""
        events = list(self._events)
        self._events.clear()
        return events

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def buffer_fill_ratio(self) -> float:
        """How full the rolling buffer is (0 – 1)."""
        return len(self._samples) / self._samples.maxlen

    @property
    def running_bpm(self) -> Optional[float]:
        """Confidence-weighted running BPM, or *None* before the first confident beat."""
        return self._running_bpm

    @property
    def last_frame(self) -> Optional[np.ndarray]:
        """Most recent frame read by :meth:`tick` (for previews)."""
        return self._last_frame

    def waveform(self) -> Waveform:
        """
        Snapshot of the buffered pulse waveform for charting.

        Samples are resampled onto the uniform detector grid.  ``filtered``
        is *None* until enough data has been collected for the bandpass.
        The returned arrays are copies.
        """
        uniform = self._uniform()
        if uniform is None:
            empty = np.empty(0, dtype=np.float64)
            return Waveform(empty, empty.copy(), None, self.config.sample_rate_hz)
        grid, samples = uniform
        filtered = self._filtered(uniform)
        return Waveform(
            timestamps_ms=grid,
            samples=samples,
            filtered=filtered[1] if filtered is not None else None,
            sample_rate_hz=self.config.sample_rate_hz,
        )

    def spectral_bpm(self) -> Tuple[float, float]:
        """
        Return ``(bpm, concentration)`` from the FFT of the filtered buffer.

        *concentration* is the share of in-band power held by the dominant
        peak and its two neighbouring bins, rescaled so that a flat spectrum
        scores 0 and a single tone scores close to 1.  Returns ``(0.0, 0.0)``
        when there is insufficient data.
        """
        filtered = self._filtered()
        if filtered is None:
            return 0.0, 0.0
        return self._spectrum(filtered[1])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reset_state(self) -> None:
        self._samples.clear()
        self._started_ms: Optional[float] = None
        self._last_beat_ms: Optional[float] = None
        self._last_valid_ms: Optional[float] = None
        self._last_loss_ms: Optional[float] = None
        self._last_diagnosis: Optional[str] = None
        self._running_bpm: Optional[float] = None

    def _build_filter(self) -> np.ndarray:
        """Construct a Butterworth bandpass filter (SOS form)."""
        nyq = self.config.sample_rate_hz / 2.0
        low = self.config.band_low_hz / nyq
        high = self.config.band_high_hz / nyq
        low = max(1e-4, min(low, 0.999))
        high = max(low + 1e-4, min(high, 0.999))
        return butter(self.config.filter_order, [low, high], btype="bandpass", output="sos")

    def _uniform(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Resample the buffer onto a uniform grid at the nominal rate."""
        if len(self._samples) < 2:
            return None
        times = np.array([s.timestamp_ms for s in self._samples], dtype=np.float64)
        values = np.array([s.value for s in self._samples], dtype=np.float64)
        step_ms = 1000.0 / self.config.sample_rate_hz
        grid = np.arange(times[0], times[-1] + step_ms / 2, step_ms)
        return grid, np.interp(grid, times, values)

    def _filtered(
        self, uniform: Optional[Tuple[np.ndarray, np.ndarray]] = None,
    ) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Mean-remove and bandpass the uniform buffer."""
        cfg = self.config
        if len(self._samples) < int(cfg.min_detect_s * cfg.sample_rate_hz):
            return None
        if uniform is None:
            uniform = self._uniform()
        if uniform is None or len(uniform[0]) < self._min_grid:
            return None
        grid, values = uniform
        return grid, sosfiltfilt(self._sos, values - np.mean(values))

    def _spectrum(self, signal: np.ndarray) -> Tuple[float, float]:
        fs = self.config.sample_rate_hz
        freqs = np.fft.rfftfreq(len(signal), d=1.0 / fs)
        power = np.abs(np.fft.rfft(signal)) ** 2

        band_mask = (freqs >= self.config.band_low_hz) & (freqs <= self.config.band_high_hz)
        if not band_mask.any():
            return 0.0, 0.0
        band_power = power[band_mask]
        band_freqs = freqs[band_mask]
        total = float(band_power.sum())
        if total <= 0:
            return 0.0, 0.0

        peak_idx = int(np.argmax(band_power))
        peak_freq = band_freqs[peak_idx]
        # Parabolic interpolation for sub-bin frequency resolution
        if 0 < peak_idx < len(band_power) - 1:
            alpha = band_power[peak_idx - 1]
            beta = band_power[peak_idx]
            gamma = band_power[peak_idx + 1]
            denom = alpha - 2 * beta + gamma
            if denom != 0:
                p = 0.5 * (alpha - gamma) / denom
                peak_freq = band_freqs[peak_idx] + p * (band_freqs[1] - band_freqs[0])

        # Share of band power around the peak, less the share a flat
        # spectrum would give those bins
        lo, hi = max(0, peak_idx - 1), min(len(band_power), peak_idx + 2)
        chance = (hi - lo) / len(band_power)
        if chance >= 1.0:
            return float(peak_freq * 60.0), 0.0
        share = float(band_power[lo:hi].sum() / total)
        concentration = (share - chance) / (1.0 - chance)
        return float(peak_freq * 60.0), max(0.0, min(1.0, concentration))

    def _noise_margin(self, values: np.ndarray) -> float:
        """
        How far the pulse band rises above the broadband noise floor (0 – 1).

        Compares the mean per-bin power of the unfiltered signal inside the
        pulse band with the mean per-bin power above ``noise_floor_hz``.
        White noise has equal densities and scores about 0; a clean pulse
        scores close to 1.  Returns 1.0 when the sampling rate leaves no
        bins above the noise floor.
        """
        cfg = self.config
        freqs = np.fft.rfftfreq(len(values), d=1.0 / cfg.sample_rate_hz)
        power = np.abs(np.fft.rfft(values - np.mean(values))) ** 2
        in_band = (freqs >= cfg.band_low_hz) & (freqs <= cfg.band_high_hz)
        above = freqs > cfg.noise_floor_hz
        if not in_band.any() or not above.any():
            return 1.0
        noise = float(power[above].mean())
        if noise <= 0:
            return 1.0
        ratio = float(power[in_band].mean()) / noise
        if ratio <= 1.0:
            return 0.0
        return 1.0 - 1.0 / ratio

    def _detect(self) -> List[BeatEvent]:
        cfg = self.config
        uniform = self._uniform()
        filtered = self._filtered(uniform)
        if filtered is None:
            return []
        grid, signal = filtered
        if not np.all(np.isfinite(signal)):
            logger.warning("Bandpass produced non-finite output – skipping detection step.")
            return []

        spread = float(np.std(signal))
        if spread < 1e-9:
            return []

        step_ms = 1000.0 / cfg.sample_rate_hz
        distance = max(1, int(round(cfg.refractory_ms / step_ms)))
        peaks, props = find_peaks(signal, distance=distance, prominence=cfg.min_prominence * spread)
        if len(peaks) == 0:
            return []

        spectral_bpm, concentration = self._spectrum(signal)
        quality = concentration * self._noise_margin(uniform[1])

        # Score a peak only once the trough after it is in the buffer
        settle = cfg.peak_settle_ms
        if spectral_bpm > 0:
            settle = max(settle, cfg.settle_periods * 60_000.0 / spectral_bpm)
        oldest_ok = grid[0] + settle
        newest_ok = grid[-1] - settle

        beats: List[BeatEvent] = []
        for idx, prominence in zip(peaks, props["prominences"]):
            t_peak = float(grid[idx])
            if t_peak < oldest_ok or t_peak > newest_ok:
                continue
            if self._last_beat_ms is not None and t_peak <= self._last_beat_ms + cfg.refractory_ms:
                continue

            confidence = min(1.0, prominence / (cfg.prominence_scale * spread)) * quality
            confidence = float(max(0.0, min(1.0, confidence)))

            bpm = spectral_bpm
            if self._last_beat_ms is not None:
                interval = t_peak - self._last_beat_ms
                if cfg.rr_min_ms <= interval <= cfg.rr_max_ms:
                    bpm = 60_000.0 / interval
            self._last_beat_ms = t_peak
            if bpm <= 0:
                continue

            if confidence >= cfg.min_beat_confidence:
                self._update_running_bpm(bpm, confidence)
                self._last_valid_ms = t_peak
            logger.debug("Beat at %.0f ms – %.1f BPM (conf %.2f)", t_peak, bpm, confidence)
            beats.append(BeatEvent(timestamp_ms=t_peak, bpm_estimate=bpm, confidence=confidence))
        return beats

    def _update_running_bpm(self, bpm: float, confidence: float) -> None:
        if self._running_bpm is None:
            self._running_bpm = bpm
            return
        weight = self.config.bpm_smoothing * confidence
        self._running_bpm = (1.0 - weight) * self._running_bpm + weight * bpm

    def _check_signal_loss(self, now_ms: float) -> None:
        """Report once per grace period while no confident beat arrives."""
        if self._started_ms is None:
            self._started_ms = now_ms
        grace = self.config.grace_period_ms
        reference = self._last_valid_ms if self._last_valid_ms is not None else self._started_ms
        if self._last_loss_ms is not None:
            reference = max(reference, self._last_loss_ms)
        if now_ms - reference < grace:
            return

        self._last_loss_ms = now_ms
        hint = self._last_diagnosis or _DEFAULT_HINT
        message = f"No pulse detected for {grace / 1000:.0f} s: {hint}"
        logger.warning(message)
        self._events.append(SignalLost(timestamp_ms=now_ms, message=message))
        if self._on_error is not None:
            self._on_error(message)
