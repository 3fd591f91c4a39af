"""
Test-session controller.

State machine::

    IDLE ──attach──▶ CAMERA_READY ──start──▶ RECORDING ──stop / 60 s──▶ ANALYZING
                                                                         │
                                                      COMPLETE ◀─────────┤
                                                      ERROR    ◀─────────┘

``ERROR`` is also reachable from ``CAMERA_READY`` and ``RECORDING``.
``COMPLETE`` and ``ERROR`` end a session; the next ``start`` creates a fresh
:class:`TestSession` so no buffer is ever reused.

The controller is single-threaded.  The caller drives it with :meth:`pump`
(one sampling step per frame tick); beat events are drained from the
detector's queue on every pump.  No public method lets an exception escape:
failures are recorded as :class:`~cardio_monitor.models.Failure` values.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional

from cardio_monitor.blood_pressure import estimate_bp
from cardio_monitor.config import DEFAULT_CONFIG, PipelineConfig
from cardio_monitor.hrv import compute_hrv
from cardio_monitor.models import (
    BeatEvent,
    CardiovascularResult,
    Failure,
    FailureKind,
    InsufficientData,
    SignalLost,
)
from cardio_monitor.pulse_detector import PulseDetector
from cardio_monitor.risk import assess_risk
from cardio_monitor.rr_accumulator import RRAccumulator

logger = logging.getLogger(__name__)

_RETRY_HINT = "Please try again with better lighting and keep your face still."


class SessionState(Enum):
    IDLE         = "idle"
    CAMERA_READY = "camera-ready"
    RECORDING    = "recording"
    ANALYZING    = "analyzing"
    COMPLETE     = "complete"
    ERROR        = "error"


@dataclass
class TestSession:
    """Working state of one recording; owned by :class:`SessionController`."""

    __test__ = False          # not a pytest test class

    age:            float
    start_time_ms:  float
    rr:             RRAccumulator
    elapsed_ms:     float = 0.0
    last_beat_ms:   Optional[float] = None
    last_bpm:       Optional[float] = None
    beats:          int = 0
    low_confidence: int = 0
    bpm_weighted:   float = 0.0
    weight_sum:     float = 0.0
    warnings:       List[str] = field(default_factory=list)

    @property
    def heart_rate(self) -> Optional[float]:
        """Confidence-weighted mean BPM over accepted beats."""
        if self.weight_sum <= 0:
            return self.last_bpm
        return self.bpm_weighted / self.weight_sum

    @property
    def mean_confidence(self) -> float:
        accepted = self.beats - self.low_confidence
        return self.weight_sum / accepted if accepted > 0 else 0.0


class SessionController:
    """
    Orchestrates acquisition → recording → analysis for one frame source.

    Parameters
    ----------
    detector:
        Pulse detector instance; a default one is created from *config*.
    config:
        Pipeline thresholds.
    clock:
        Returns the current time in milliseconds (monotonic).  Injected by
        tests to drive sessions without real time passing.
    """

    def __init__(
        self,
        detector: Optional[PulseDetector] = None,
        config: PipelineConfig = DEFAULT_CONFIG,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config
        self.detector = detector if detector is not None else PulseDetector(config)
        self._clock = clock if clock is not None else (lambda: time.monotonic() * 1000.0)

        self.state = SessionState.IDLE
        self.session: Optional[TestSession] = None
        self.failure: Optional[Failure] = None
        self.result: Optional[CardiovascularResult] = None
        self._source: Any = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, source: Any) -> SessionState:
        """Open *source* (if it has ``open()``) and bind it to the detector."""
        if self.state in (SessionState.RECORDING, SessionState.ANALYZING):
            logger.warning("Cannot attach a source while %s.", self.state.value)
            return self.state
        try:
            if hasattr(source, "open"):
                source.open()
            self.detector.initialize(source)
        except Exception as exc:                          # noqa: BLE001
            reason = f"Camera unavailable: {exc}"
            logger.error(reason)
            self.failure = Failure(FailureKind.ACQUISITION, reason)
            return self.state

        self._source = source
        self.failure = None
        self.state = SessionState.CAMERA_READY
        logger.info("Frame source attached.")
        return self.state

    def start(self, age: Optional[float] = None) -> SessionState:
        """
        Begin a fresh recording.  A no-op while already recording; refused
        (with an acquisition failure) when no source is attached.
        """
        if self.state is SessionState.RECORDING:
            logger.info("Recording already in progress – start ignored.")
            return self.state
        if self._source is None:
            self.failure = Failure(FailureKind.ACQUISITION, "No camera attached. Enable the camera first.")
            logger.warning(self.failure.reason)
            return self.state

        self.detector.stop()
        now = self._clock()
        self.session = TestSession(
            age=float(age if age is not None else self.config.default_age),
            start_time_ms=now,
            rr=RRAccumulator(self.config),
        )
        self.failure = None
        self.result = None
        try:
            self.detector.start()
        except Exception as exc:                          # noqa: BLE001
            self._fail(FailureKind.ACQUISITION, f"Pulse detector failed to start: {exc}")
            return self.state
        self.state = SessionState.RECORDING
        logger.info("Recording started (age=%.0f, max %.0f s).", self.session.age, self.config.max_duration_s)
        return self.state

    def pump(self, now_ms: Optional[float] = None) -> SessionState:
        """
        One cooperative step: sample a frame, consume detector events and
        enforce the duration cap.
        """
        if self.state is not SessionState.RECORDING:
            return self.state
        now = self._clock() if now_ms is None else now_ms
        self.detector.tick(now)
        self._drain()
        self.session.elapsed_ms = now - self.session.start_time_ms
        if self.session.elapsed_ms >= self.config.max_duration_s * 1000.0:
            logger.info("Maximum duration reached – stopping.")
            return self.stop(now)
        return self.state

    def on_beat(self, event: BeatEvent) -> bool:
        """Consume one beat.  Returns *True* if it was accepted."""
        if self.state is not SessionState.RECORDING:
            return False
        s = self.session
        s.beats += 1
        if event.confidence < self.config.min_beat_confidence:
            s.low_confidence += 1
            s.rr.skip_beat(event.timestamp_ms)
            logger.debug("Discarded low-confidence beat (%.2f).", event.confidence)
            return False

        s.rr.add_beat(event.timestamp_ms)
        s.last_beat_ms = event.timestamp_ms
        s.last_bpm = event.bpm_estimate
        s.bpm_weighted += event.bpm_estimate * event.confidence
        s.weight_sum += event.confidence
        return True

    def stop(self, now_ms: Optional[float] = None) -> SessionState:
        """Finish recording and analyse.  Safe to call in any state."""
        if self.state is not SessionState.RECORDING:
            return self.state
        now = self._clock() if now_ms is None else now_ms
        self._drain()
        self.detector.stop()
        self.session.elapsed_ms = now - self.session.start_time_ms
        self.state = SessionState.ANALYZING
        logger.info("Recording stopped after %.1f s – analysing.", self.session.elapsed_ms / 1000.0)
        self._analyze()
        return self.state

    def close(self) -> None:
        """Release the detector and the frame source."""
        if self.state is SessionState.RECORDING:
            self.detector.stop()
            self.state = SessionState.IDLE
        self.detector.release()
        source, self._source = self._source, None
        if source is not None and hasattr(source, "close"):
            try:
                source.close()
            except Exception as exc:                      # noqa: BLE001
                logger.warning("Closing frame source failed: %s", exc)
        if self.state is SessionState.CAMERA_READY:
            self.state = SessionState.IDLE

    def __enter__(self) -> "SessionController":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------

    @property
    def elapsed_s(self) -> float:
        return self.session.elapsed_ms / 1000.0 if self.session else 0.0

    @property
    def warnings(self) -> List[str]:
        return list(self.session.warnings) if self.session else []

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _drain(self) -> None:
        for event in self.detector.drain():
            if isinstance(event, BeatEvent):
                self.on_beat(event)
            elif isinstance(event, SignalLost):
                self.session.warnings.append(event.message)

    def _fail(self, kind: FailureKind, reason: str) -> None:
        self.failure = Failure(kind, reason)
        self.state = SessionState.ERROR
        logger.warning("Session failed – %s", self.failure)

    def _analyze(self) -> None:
        s = self.session
        rr = s.rr.window.snapshot()
        if len(rr) < self.config.hrv_min_intervals or s.last_bpm is None:
            if s.warnings:
                self._fail(
                    FailureKind.SIGNAL_LOSS,
                    f"{s.warnings[-1]} (only {len(rr)} valid beat intervals). {_RETRY_HINT}",
                )
                return
            self._fail(
                FailureKind.INSUFFICIENT_DATA,
                f"Insufficient data collected ({len(rr)} valid beat intervals, "
                f"need {self.config.hrv_min_intervals}). {_RETRY_HINT}",
            )
            return

        hrv = compute_hrv(rr, self.config)
        if isinstance(hrv, InsufficientData):
            self._fail(FailureKind.INSUFFICIENT_DATA, f"{hrv.reason} {_RETRY_HINT}")
            return

        try:
            heart_rate = s.heart_rate
            confidence = s.mean_confidence
            bp = estimate_bp(hrv.mean_rr, confidence, s.age, n_intervals=len(rr), config=self.config)
            risk = assess_risk(heart_rate, hrv, bp, s.age, self.config)
        except Exception as exc:                          # noqa: BLE001
            logger.exception("Analysis failed.")
            self._fail(FailureKind.INSUFFICIENT_DATA, f"Analysis failed: {exc}. {_RETRY_HINT}")
            return

        self.result = CardiovascularResult(
            timestamp=datetime.now(timezone.utc).isoformat(),
            heart_rate=heart_rate,
            hrv_metrics=hrv,
            estimated_bp=bp,
            risk_assessment=risk,
            test_duration_seconds=s.elapsed_ms / 1000.0,
            confidence=confidence,
            rr_intervals=rr,
        )
        self.state = SessionState.COMPLETE
        logger.info(
            "Analysis complete – HR %.0f BPM, HRV score %.0f, BP %.0f/%.0f, risk %s.",
            heart_rate, hrv.hrv_score, bp.systolic, bp.diastolic, risk.risk_level,
        )
