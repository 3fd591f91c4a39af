"""
Typed records passed between pipeline stages.

Result snapshots (``HRVMetrics``, ``BPEstimate``, ``RiskAssessment``,
``CardiovascularResult``) are frozen; consumers never mutate them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np


# ---------------------------------------------------------------------------
# Signal-level records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IntensitySample:
    """One ROI mean, as held in the pulse detector buffer."""

    timestamp_ms: float
    value:        float


@dataclass(frozen=True)
class BeatEvent:
    timestamp_ms: float
    bpm_estimate: float
    confidence:   float        # 0 – 1


@dataclass(frozen=True)
class SignalLost:
    timestamp_ms: float
    message:      str


@dataclass(frozen=True, eq=False)
class Waveform:
    """Snapshot of the detector buffer on its uniform sampling grid."""

    timestamps_ms:  np.ndarray
    samples:        np.ndarray             # ROI intensity
    filtered:       Optional[np.ndarray]   # bandpassed, None until enough data
    sample_rate_hz: float

    def __len__(self) -> int:
        return len(self.timestamps_ms)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class FailureKind(Enum):
    ACQUISITION       = "acquisition"
    SIGNAL_LOSS       = "signal-loss"
    INSUFFICIENT_DATA = "insufficient-data"


@dataclass(frozen=True)
class Failure:
    kind:   FailureKind
    reason: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.reason}"


@dataclass(frozen=True)
class InsufficientData:
    """Returned by the HRV analyzer instead of metrics when the window is too small."""

    available: int
    required:  int

    @property
    def reason(self) -> str:
        return (
            f"Insufficient data for HRV analysis: {self.available} valid RR "
            f"intervals, need at least {self.required}."
        )


class AcquisitionError(RuntimeError):
    """Raised when the video source cannot be opened or read."""


# ---------------------------------------------------------------------------
# Analysis snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HRVMetrics:
    mean_rr:         float      # ms
    rmssd:           float      # ms
    sdnn:            float      # ms
    pnn50:           float      # %
    min_rr:          float
    max_rr:          float
    mean_hr:         float      # BPM derived from mean_rr
    n_intervals:     int
    hrv_score:       float      # 0 – 100
    stress_level:    str        # "low" | "moderate" | "high"
    interpretation:  str
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meanRR": round(self.mean_rr),
            "rmssd": round(self.rmssd, 2),
            "sdnn": round(self.sdnn, 2),
            "pnn50": round(self.pnn50, 2),
            "minRR": round(self.min_rr),
            "maxRR": round(self.max_rr),
            "meanHR": round(self.mean_hr, 1),
            "intervals": self.n_intervals,
            "hrvScore": round(self.hrv_score),
            "stressLevel": self.stress_level,
            "interpretation": self.interpretation,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class BPEstimate:
    systolic:   float           # mmHg
    diastolic:  float           # mmHg
    confidence: float           # 0 – 1
    category:   str = "Normal"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systolic": round(self.systolic),
            "diastolic": round(self.diastolic),
            "confidence": round(self.confidence, 2),
            "category": self.category,
        }


@dataclass(frozen=True)
class RiskFactor:
    label:    str
    points:   float
    severity: str               # "low" | "moderate" | "high"

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "points": self.points, "severity": self.severity}


@dataclass(frozen=True)
class RiskAssessment:
    risk_score:      float      # 0 – 100
    risk_level:      str        # "low" | "moderate" | "high" | "very-high"
    factors:         Tuple[RiskFactor, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskScore": round(self.risk_score),
            "riskLevel": self.risk_level,
            "factors": [f.to_dict() for f in self.factors],
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class CardiovascularResult:
    """Completed-session record handed to storage / export layers."""

    timestamp:             str          # ISO-8601, UTC
    heart_rate:            float        # BPM
    hrv_metrics:           HRVMetrics
    estimated_bp:          BPEstimate
    risk_assessment:       RiskAssessment
    test_duration_seconds: float
    confidence:            float
    rr_intervals:          Tuple[float, ...] = field(default=(), repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "heartRate": round(self.heart_rate),
            "hrvMetrics": self.hrv_metrics.to_dict(),
            "estimatedBP": self.estimated_bp.to_dict(),
            "riskAssessment": self.risk_assessment.to_dict(),
            "testDurationSeconds": round(self.test_duration_seconds),
            "confidence": round(self.confidence, 2),
        }
