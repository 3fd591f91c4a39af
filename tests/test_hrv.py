"""
Unit tests for time-domain HRV analysis.
Run with:  pytest tests/test_hrv.py
"""

from __future__ import annotations

import numpy as np
import pytest

from cardio_monitor.config import PipelineConfig
from cardio_monitor.hrv import compute_hrv, hrv_score, stress_level
from cardio_monitor.models import HRVMetrics, InsufficientData


class TestComputeHRV:

    @pytest.mark.parametrize("n", [0, 1, 2, 3, 4])
    def test_fewer_than_five_intervals_is_insufficient(self, n):
        result = compute_hrv([800.0] * n)
        assert isinstance(result, InsufficientData)
        assert result.available == n
        assert result.required == 5
        assert "Insufficient data" in result.reason

    def test_constant_sequence(self):
        m = compute_hrv([800.0] * 20)
        assert isinstance(m, HRVMetrics)
        assert m.mean_rr == pytest.approx(800.0)
        assert m.sdnn == 0.0
        assert m.rmssd == 0.0
        assert m.pnn50 == 0.0
        assert m.hrv_score == 0.0
        # Zero variability lands in the lowest score band
        assert m.stress_level == "high"
        assert m.mean_hr == pytest.approx(75.0)

    def test_alternating_sequence_pnn50(self):
        m = compute_hrv([600.0, 1000.0] * 5)
        assert m.pnn50 == pytest.approx(100.0)
        assert m.rmssd == pytest.approx(400.0)
        assert m.mean_rr == pytest.approx(800.0)
        assert m.min_rr == 600.0
        assert m.max_rr == 1000.0

    def test_known_values(self):
        rr = [800.0, 810.0, 790.0, 860.0, 800.0, 805.0]
        m = compute_hrv(rr)
        diffs = np.diff(rr)
        assert m.sdnn == pytest.approx(np.std(rr, ddof=1))
        assert m.rmssd == pytest.approx(np.sqrt(np.mean(diffs ** 2)))
        # |70| and |-60| exceed 50 ms out of 5 differences
        assert m.pnn50 == pytest.approx(40.0)
        assert m.n_intervals == 6

    def test_metrics_non_negative_and_rmssd_bounded(self):
        rng = np.random.default_rng(7)
        for _ in range(50):
            rr = rng.uniform(400, 1500, size=rng.integers(5, 60))
            m = compute_hrv(rr)
            assert m.rmssd >= 0.0
            assert m.sdnn >= 0.0
            assert m.rmssd <= np.max(np.abs(np.diff(rr))) + 1e-9
            assert 0.0 <= m.hrv_score <= 100.0
            assert 0.0 <= m.pnn50 <= 100.0

    def test_non_finite_values_dropped(self):
        rr = [800.0, float("nan"), 820.0, 790.0, float("inf"), 810.0]
        result = compute_hrv(rr)
        assert isinstance(result, InsufficientData)
        assert result.available == 4

    def test_low_variability_recommendations(self):
        m = compute_hrv([800.0, 805.0] * 5)
        assert m.stress_level == "high"
        assert any("breathing" in r for r in m.recommendations)
        assert any("cardiovascular health check" in r for r in m.recommendations)
        assert m.interpretation

    def test_high_variability_is_low_stress(self):
        m = compute_hrv([700.0, 780.0, 690.0, 800.0, 720.0, 810.0, 700.0, 790.0])
        assert m.stress_level == "low"
        assert not any("breathing" in r for r in m.recommendations)

    def test_result_is_deterministic(self):
        rr = [780.0, 820.0, 760.0, 840.0, 800.0, 790.0]
        assert compute_hrv(rr) == compute_hrv(list(rr))

    def test_to_dict_keys(self):
        d = compute_hrv([800.0, 850.0] * 4).to_dict()
        for key in ("meanRR", "rmssd", "sdnn", "pnn50", "hrvScore", "stressLevel",
                    "interpretation", "recommendations"):
            assert key in d


class TestScoring:

    def test_score_monotonic_in_rmssd(self):
        scores = [hrv_score(r, 40.0) for r in np.linspace(0, 150, 61)]
        assert all(b >= a for a, b in zip(scores, scores[1:]))

    def test_score_monotonic_in_sdnn(self):
        scores = [hrv_score(30.0, s) for s in np.linspace(0, 200, 81)]
        assert all(b >= a for a, b in zip(scores, scores[1:]))

    def test_score_bounds(self):
        assert hrv_score(0.0, 0.0) == 0.0
        assert hrv_score(500.0, 500.0) == 100.0

    def test_stress_bands(self):
        cfg = PipelineConfig()
        assert stress_level(cfg.stress_low_min_score, cfg) == "low"
        assert stress_level(cfg.stress_moderate_min_score, cfg) == "moderate"
        assert stress_level(cfg.stress_moderate_min_score - 0.1, cfg) == "high"

    def test_custom_thresholds(self):
        cfg = PipelineConfig(stress_low_min_score=90.0, stress_moderate_min_score=80.0)
        assert stress_level(85.0, cfg) == "moderate"
