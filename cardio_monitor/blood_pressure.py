"""
Approximate blood-pressure estimation.

This is a screening heuristic, not a calibrated measurement.  The baseline
rises linearly with age, and a faster heart rate (shorter mean RR) pushes both
pressures up.  Results are clamped to a physiological band, and the attached
confidence lets callers flag the uncertainty visibly.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from cardio_monitor.config import DEFAULT_CONFIG, PipelineConfig
from cardio_monitor.models import BPEstimate

logger = logging.getLogger(__name__)


def estimate_bp(
    mean_rr: float,
    detector_confidence: float,
    age: float,
    n_intervals: Optional[int] = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> BPEstimate:
    """
    Estimate ``(systolic, diastolic)`` in mmHg.

    Parameters
    ----------
    mean_rr:
        Mean RR interval in ms.  Values outside the valid RR range are
        clamped into it before use.
    detector_confidence:
        Mean pulse-detector confidence (0 – 1).
    age:
        Subject age in years.
    n_intervals:
        Number of RR intervals behind *mean_rr*.  Scales confidence by how
        full the RR window was; *None* means "full window".

    Never raises: non-finite inputs produce a baseline estimate with
    zero confidence.
    """
    usable = math.isfinite(mean_rr) and math.isfinite(detector_confidence) and math.isfinite(age)
    if not math.isfinite(mean_rr):
        mean_rr = 60_000.0 / config.bp_reference_bpm
    if not math.isfinite(age):
        age = float(config.default_age)
    rr = min(max(mean_rr, config.rr_min_ms), config.rr_max_ms)
    bpm = 60_000.0 / rr

    age_offset = age - config.bp_reference_age
    hr_offset = bpm - config.bp_reference_bpm

    systolic = config.bp_base_systolic + age_offset * config.bp_age_systolic + hr_offset * config.bp_hr_systolic
    diastolic = config.bp_base_diastolic + age_offset * config.bp_age_diastolic + hr_offset * config.bp_hr_diastolic

    sys_lo, sys_hi = config.systolic_range
    dia_lo, dia_hi = config.diastolic_range
    systolic = min(max(systolic, sys_lo), sys_hi)
    diastolic = min(max(diastolic, dia_lo), dia_hi, systolic - config.min_pulse_pressure)

    confidence = 0.0
    if usable:
        sufficiency = 1.0
        if n_intervals is not None:
            sufficiency = min(1.0, max(0, n_intervals) / config.rr_capacity)
        confidence = min(max(detector_confidence, 0.0), 1.0) * sufficiency

    systolic = float(round(systolic))
    diastolic = float(round(diastolic))
    estimate = BPEstimate(
        systolic=systolic,
        diastolic=diastolic,
        confidence=float(confidence),
        category=BP_LABELS[bp_severity(systolic, diastolic)],
    )
    logger.info(
        "BP estimate %.0f/%.0f mmHg (%s, confidence %.2f)",
        estimate.systolic, estimate.diastolic, estimate.category, estimate.confidence,
    )
    return estimate


# AHA categories, most severe first
BP_LABELS = {
    "crisis":   "Hypertensive Crisis",
    "stage2":   "High Blood Pressure (Stage 2)",
    "stage1":   "High Blood Pressure (Stage 1)",
    "elevated": "Elevated",
    "normal":   "Normal",
}


def bp_severity(systolic: float, diastolic: float) -> str:
    """Return the AHA category key (``"normal"`` … ``"crisis"``) for a reading."""
    if systolic >= 180 or diastolic >= 120:
        return "crisis"
    if systolic >= 140 or diastolic >= 90:
        return "stage2"
    if systolic >= 130 or diastolic >= 80:
        return "stage1"
    if systolic >= 120:
        return "elevated"
    return "normal"
