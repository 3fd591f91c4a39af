"""
Cardiovascular risk scoring.

Additive-factor model: heart rate, HRV stress, estimated blood pressure and
age each contribute a bounded number of points (bands in
:class:`~cardio_monitor.config.PipelineConfig`).  The total is clamped to
0 – 100 and mapped to a level.  Triggered factors are reported with their
points, most significant first, so every score can be audited.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from cardio_monitor.blood_pressure import BP_LABELS, bp_severity
from cardio_monitor.config import DEFAULT_CONFIG, PipelineConfig
from cardio_monitor.models import BPEstimate, HRVMetrics, RiskAssessment, RiskFactor

logger = logging.getLogger(__name__)

RISK_LEVELS = ("low", "moderate", "high", "very-high")

_FACTOR_ADVICE: Dict[str, List[str]] = {
    "heart_rate_high": ["Consider regular cardiovascular exercise to lower resting heart rate"],
    "heart_rate_low": ["Discuss a low resting heart rate with a clinician unless you train regularly"],
    "hrv": ["Focus on stress management and recovery"],
    "bp": ["Monitor blood pressure regularly with a cuff device",
           "Consider lifestyle modifications (salt, activity, weight)"],
    "age": ["Schedule routine cardiovascular check-ups"],
}

_LEVEL_ADVICE: Dict[str, List[str]] = {
    "low": ["Maintain current healthy habits"],
    "moderate": ["Keep up regular physical activity and a balanced diet"],
    "high": ["Consult a healthcare provider for a comprehensive cardiovascular assessment",
             "Consider regular cardiovascular monitoring"],
    "very-high": ["Consult a healthcare provider soon for a comprehensive cardiovascular assessment",
                  "Consider regular cardiovascular monitoring"],
}


_STRESS_LABELS: Dict[str, str] = {
    "high": "Reduced heart rate variability",
    "moderate": "Below-average heart rate variability",
}


def assess_risk(
    heart_rate: float,
    hrv: HRVMetrics,
    bp: BPEstimate,
    age: float,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> RiskAssessment:
    """Combine heart rate, HRV, blood pressure and age into a :class:`RiskAssessment`."""
    triggered: List[tuple] = []      # (key, RiskFactor)

    hr = _heart_rate_factor(heart_rate, config)
    if hr is not None:
        triggered.append(hr)

    for stress, points, severity in config.risk_stress_points:
        if hrv.stress_level == stress:
            label = _STRESS_LABELS.get(stress, f"Heart rate variability: {stress} stress")
            triggered.append(("hrv", RiskFactor(label, points, severity)))
            break

    bp_key = bp_severity(bp.systolic, bp.diastolic)
    for key, points, severity in config.risk_bp_points:
        if key == bp_key:
            label = f"Estimated blood pressure: {BP_LABELS[key]}"
            triggered.append(("bp", RiskFactor(label, points, severity)))
            break

    for threshold, points, severity in config.risk_age_bands:
        if age >= threshold:
            triggered.append(("age", RiskFactor(f"Age {threshold:.0f}+ risk factor", points, severity)))
            break

    # Stable sort keeps evaluation order for equal points
    triggered.sort(key=lambda item: item[1].points, reverse=True)

    score = min(100.0, max(0.0, sum(f.points for _, f in triggered)))
    level = risk_level(score, config)

    recommendations: List[str] = []
    for key, _ in triggered:
        recommendations.extend(_FACTOR_ADVICE[key])
    recommendations.extend(_LEVEL_ADVICE[level])

    assessment = RiskAssessment(
        risk_score=score,
        risk_level=level,
        factors=tuple(f for _, f in triggered),
        recommendations=tuple(dict.fromkeys(recommendations)),
    )
    logger.info("Cardiovascular risk %.0f (%s), %d factor(s)", score, level, len(triggered))
    return assessment


def risk_level(score: float, config: PipelineConfig = DEFAULT_CONFIG) -> str:
    for cut, level in zip(config.risk_level_cuts, RISK_LEVELS):
        if score < cut:
            return level
    return RISK_LEVELS[-1]


def _heart_rate_factor(heart_rate: float, config: PipelineConfig) -> Optional[tuple]:
    for threshold, points, severity in config.risk_hr_high:
        if heart_rate > threshold:
            return "heart_rate_high", RiskFactor(
                f"Elevated resting heart rate (>{threshold:.0f} BPM)", points, severity,
            )
    low_threshold, low_points, low_severity = config.risk_hr_low
    if 0 < heart_rate < low_threshold:
        return "heart_rate_low", RiskFactor(
            "Low resting heart rate (may be normal for athletes)", low_points, low_severity,
        )
    return None
