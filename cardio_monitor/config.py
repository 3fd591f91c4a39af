"""
Pipeline configuration.

Every tunable threshold used by the cardiovascular pipeline lives in
:class:`PipelineConfig` so the algorithm stays auditable and can be tuned
without touching the processing code.

Heuristic values (HRV score breakpoints, BP coefficients, risk points) are
screening-grade choices, not clinically calibrated constants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class PipelineConfig:
    # ------------------------------------------------------------------
    # Sampling / pulse detection
    # ------------------------------------------------------------------
    sample_rate_hz:      float = 30.0     # nominal frame cadence
    band_low_hz:         float = 0.7      # 42 BPM
    band_high_hz:        float = 3.0      # 180 BPM
    filter_order:        int   = 3
    detector_window_s:   float = 6.0      # >= two beat periods at 42 BPM
    min_detect_s:        float = 2.0      # samples needed before detection
    refractory_ms:       float = 300.0
    grace_period_ms:     float = 10_000.0
    min_beat_confidence: float = 0.3
    min_prominence:      float = 0.5      # peak prominence floor, in filtered-signal std units
    prominence_scale:    float = 2.0      # prominence / (scale * std) -> 1.0
    peak_settle_ms:      float = 150.0    # minimum distance of a scored peak from either buffer edge
    settle_periods:      float = 0.6      # or this share of the dominant pulse period, if longer
    noise_floor_hz:      float = 3.5      # power above this frequency is treated as sensor noise
    bpm_smoothing:       float = 0.3      # weight of the newest beat in the running BPM

    # ------------------------------------------------------------------
    # RR accumulation
    # ------------------------------------------------------------------
    rr_min_ms:           float = 300.0    # 200 BPM
    rr_max_ms:           float = 2000.0   # 30 BPM
    rr_capacity:         int   = 60
    # Advance the last-beat timestamp even when the interval is rejected.
    # Keeps one missed detection from also discarding the following beat.
    rr_advance_on_reject: bool = True

    # ------------------------------------------------------------------
    # HRV analysis
    # ------------------------------------------------------------------
    hrv_min_intervals:   int = 5
    nn50_threshold_ms:   float = 50.0
    # Piecewise-linear score curves: (metric breakpoints ms, score points).
    rmssd_breakpoints:   Tuple[float, ...] = (0.0, 20.0, 30.0, 50.0, 80.0)
    rmssd_scores:        Tuple[float, ...] = (0.0, 30.0, 60.0, 85.0, 100.0)
    sdnn_breakpoints:    Tuple[float, ...] = (0.0, 20.0, 50.0, 100.0)
    sdnn_scores:         Tuple[float, ...] = (0.0, 30.0, 70.0, 100.0)
    rmssd_weight:        float = 0.7      # sdnn weight is 1 - rmssd_weight
    stress_low_min_score:      float = 60.0
    stress_moderate_min_score: float = 35.0
    low_rmssd_ms:        float = 20.0
    low_sdnn_ms:         float = 20.0

    # ------------------------------------------------------------------
    # Blood-pressure estimation
    # ------------------------------------------------------------------
    bp_base_systolic:    float = 110.0
    bp_base_diastolic:   float = 70.0
    bp_reference_age:    float = 20.0
    bp_age_systolic:     float = 0.5      # mmHg per year above reference
    bp_age_diastolic:    float = 0.3
    bp_reference_bpm:    float = 70.0
    bp_hr_systolic:      float = 0.2      # mmHg per BPM above reference
    bp_hr_diastolic:     float = 0.12
    systolic_range:      Tuple[float, float] = (80.0, 200.0)
    diastolic_range:     Tuple[float, float] = (50.0, 130.0)
    min_pulse_pressure:  float = 20.0

    # ------------------------------------------------------------------
    # Cardiovascular risk
    # Bands are (threshold, points, severity) checked from most to least severe.
    # ------------------------------------------------------------------
    risk_hr_high:        Tuple[Tuple[float, float, str], ...] = (
        (100.0, 20.0, "high"),
        (90.0, 10.0, "moderate"),
    )
    risk_hr_low:         Tuple[float, float, str] = (50.0, 5.0, "low")
    risk_stress_points:  Tuple[Tuple[str, float, str], ...] = (
        ("high", 25.0, "high"),
        ("moderate", 10.0, "moderate"),
    )
    risk_bp_points:      Tuple[Tuple[str, float, str], ...] = (
        ("crisis", 35.0, "high"),
        ("stage2", 30.0, "high"),
        ("stage1", 15.0, "moderate"),
        ("elevated", 5.0, "low"),
    )
    risk_age_bands:      Tuple[Tuple[float, float, str], ...] = (
        (65.0, 20.0, "moderate"),
        (50.0, 12.0, "moderate"),
        (40.0, 6.0, "low"),
    )
    risk_level_cuts:     Tuple[float, float, float] = (30.0, 50.0, 70.0)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    max_duration_s:      float = 60.0
    default_age:         int   = 35

    def __post_init__(self) -> None:
        if not 0 < self.band_low_hz < self.band_high_hz:
            raise ValueError("band_low_hz must be positive and below band_high_hz")
        if not 0 < self.rr_min_ms < self.rr_max_ms:
            raise ValueError("rr_min_ms must be positive and below rr_max_ms")
        if self.noise_floor_hz < self.band_high_hz:
            raise ValueError("noise_floor_hz must not lie inside the pulse band")
        if self.settle_periods < 0:
            raise ValueError("settle_periods must be >= 0")
        if self.rr_capacity < 1:
            raise ValueError("rr_capacity must be >= 1")
        if len(self.rmssd_breakpoints) != len(self.rmssd_scores):
            raise ValueError("rmssd_breakpoints and rmssd_scores differ in length")
        if len(self.sdnn_breakpoints) != len(self.sdnn_scores):
            raise ValueError("sdnn_breakpoints and sdnn_scores differ in length")
        if not self.stress_moderate_min_score < self.stress_low_min_score:
            raise ValueError("stress thresholds must be ordered")
        cuts = self.risk_level_cuts
        if not cuts[0] < cuts[1] < cuts[2]:
            raise ValueError("risk_level_cuts must be strictly increasing")

    @property
    def buffer_size(self) -> int:
        """Number of samples kept by the pulse detector."""
        return int(self.sample_rate_hz * self.detector_window_s)


DEFAULT_CONFIG = PipelineConfig()
