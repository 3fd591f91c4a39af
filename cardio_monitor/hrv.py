"""
Time-domain heart-rate-variability analysis.

Metrics
-------
* meanRR: arithmetic mean of the RR intervals (ms).
* SDNN  : sample standard deviation of the RR intervals (ms).
* RMSSD : root mean square of successive differences (ms); dominated by
  vagal tone and the preferred short-recording HRV metric.
* pNN50 : percentage of successive differences larger than 50 ms.

The HRV score blends piecewise-linear RMSSD and SDNN curves, so it rises
monotonically with both and stays within 0 – 100.  Stress level is read from
score bands in :class:`~cardio_monitor.config.PipelineConfig`.

A one-minute camera recording yields far fewer beats than the clinical
5-minute standard; results are for trend and wellness feedback only.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Union

import numpy as np

from cardio_monitor.config import DEFAULT_CONFIG, PipelineConfig
from cardio_monitor.models import HRVMetrics, InsufficientData

logger = logging.getLogger(__name__)

STRESS_LOW = "low"
STRESS_MODERATE = "moderate"
STRESS_HIGH = "high"

_INTERPRETATIONS = {
    STRESS_LOW: (
        "Good HRV. Your autonomic nervous system shows healthy balance "
        "and recovery capacity."
    ),
    STRESS_MODERATE: (
        "Moderate HRV. Your body shows reasonable stress recovery capacity."
    ),
    STRESS_HIGH: (
        "Reduced HRV detected. Your body may be under elevated stress, "
        "fatigue or strain."
    ),
}

_RECOMMENDATIONS = {
    STRESS_LOW: [
        "Maintain current lifestyle habits",
        "Continue regular exercise",
    ],
    STRESS_MODERATE: [
        "Consider stress management techniques",
        "Ensure adequate sleep (7-9 hours)",
    ],
    STRESS_HIGH: [
        "Prioritize stress reduction and recovery",
        "Improve sleep quality and duration",
        "Consider meditation or mindfulness practices",
    ],
}


def compute_hrv(
    rr_intervals: Sequence[float],
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Union[HRVMetrics, InsufficientData]:
    """
    Compute time-domain HRV metrics from RR intervals in milliseconds.

    Returns :class:`InsufficientData` when fewer than
    ``config.hrv_min_intervals`` finite intervals are available; callers
    must check for it before using the score.
    """
    rr = np.asarray(list(rr_intervals), dtype=np.float64)
    rr = rr[np.isfinite(rr)]
    n = int(rr.size)

    if n < config.hrv_min_intervals:
        logger.warning(
            "Only %d RR intervals available (need %d for HRV).",
            n, config.hrv_min_intervals,
        )
        return InsufficientData(available=n, required=config.hrv_min_intervals)

    mean_rr = float(np.mean(rr))
    sdnn = float(np.std(rr, ddof=1))

    diffs = np.diff(rr)
    rmssd = float(np.sqrt(np.mean(diffs ** 2)))
    pnn50 = float(np.sum(np.abs(diffs) > config.nn50_threshold_ms) / diffs.size * 100.0)

    score = hrv_score(rmssd, sdnn, config)
    stress = stress_level(score, config)

    logger.info(
        "HRV – RMSSD=%.1f ms SDNN=%.1f ms pNN50=%.1f%% meanRR=%.0f ms score=%.0f (%s stress)",
        rmssd, sdnn, pnn50, mean_rr, score, stress,
    )

    return HRVMetrics(
        mean_rr=mean_rr,
        rmssd=rmssd,
        sdnn=sdnn,
        pnn50=pnn50,
        min_rr=float(rr.min()),
        max_rr=float(rr.max()),
        mean_hr=60_000.0 / mean_rr if mean_rr > 0 else 0.0,
        n_intervals=n,
        hrv_score=score,
        stress_level=stress,
        interpretation=_INTERPRETATIONS[stress],
        recommendations=tuple(_recommendations(stress, rmssd, sdnn, config)),
    )


def hrv_score(rmssd: float, sdnn: float, config: PipelineConfig = DEFAULT_CONFIG) -> float:
    """0 – 100 composite, non-decreasing in both RMSSD and SDNN."""
    rmssd_part = float(np.interp(rmssd, config.rmssd_breakpoints, config.rmssd_scores))
    sdnn_part = float(np.interp(sdnn, config.sdnn_breakpoints, config.sdnn_scores))
    weight = config.rmssd_weight
    score = weight * rmssd_part + (1.0 - weight) * sdnn_part
    return max(0.0, min(100.0, score))


def stress_level(score: float, config: PipelineConfig = DEFAULT_CONFIG) -> str:
    if score >= config.stress_low_min_score:
        return STRESS_LOW
    if score >= config.stress_moderate_min_score:
        return STRESS_MODERATE
    return STRESS_HIGH


def _recommendations(stress: str, rmssd: float, sdnn: float, config: PipelineConfig) -> List[str]:
    recs = list(_RECOMMENDATIONS[stress])
    if rmssd < config.low_rmssd_ms:
        recs.append("Practice slow deep-breathing or relaxation exercises")
    if sdnn < config.low_sdnn_ms:
        recs.append("Low variability detected - consider a cardiovascular health check")
    return recs
