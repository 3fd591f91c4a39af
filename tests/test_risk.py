"""
Unit tests for the cardiovascular risk calculator.
Run with:  pytest tests/test_risk.py
"""

from __future__ import annotations

import itertools

import pytest

from cardio_monitor.config import PipelineConfig
from cardio_monitor.models import BPEstimate, HRVMetrics
from cardio_monitor.risk import assess_risk, risk_level


def _hrv(stress: str, score: float = 50.0) -> HRVMetrics:
    return HRVMetrics(
        mean_rr=800.0, rmssd=30.0, sdnn=40.0, pnn50=10.0, min_rr=700.0, max_rr=900.0,
        mean_hr=75.0, n_intervals=30, hrv_score=score, stress_level=stress,
        interpretation="", recommendations=(),
    )


def _bp(systolic: float, diastolic: float) -> BPEstimate:
    return BPEstimate(systolic=systolic, diastolic=diastolic, confidence=0.5)


class TestAssessRisk:

    def test_healthy_profile_is_low_risk(self):
        r = assess_risk(68, _hrv("low", 80), _bp(112, 72), age=30)
        assert r.risk_score == 0.0
        assert r.risk_level == "low"
        assert r.factors == ()
        assert "Maintain current healthy habits" in r.recommendations

    def test_worst_profile_is_very_high_and_clamped(self):
        r = assess_risk(130, _hrv("high", 5), _bp(190, 125), age=80)
        assert r.risk_score == 100.0
        assert r.risk_level == "very-high"
        assert len(r.factors) == 4

    def test_factors_sorted_by_points(self):
        r = assess_risk(105, _hrv("moderate"), _bp(145, 85), age=55)
        points = [f.points for f in r.factors]
        assert points == sorted(points, reverse=True)
        assert r.factors[0].label.startswith("Estimated blood pressure")
        assert r.risk_score == pytest.approx(sum(points))

    def test_score_always_bounded(self):
        rates = (0, 40, 75, 95, 150)
        stresses = ("low", "moderate", "high")
        pressures = ((100, 60), (125, 78), (135, 85), (150, 95), (200, 130))
        ages = (18, 45, 55, 70)
        for hr, stress, (s, d), age in itertools.product(rates, stresses, pressures, ages):
            r = assess_risk(hr, _hrv(stress), _bp(s, d), age)
            assert 0.0 <= r.risk_score <= 100.0
            points = [f.points for f in r.factors]
            assert points == sorted(points, reverse=True)
            if r.risk_level in ("high", "very-high"):
                assert r.recommendations

    def test_low_heart_rate_factor(self):
        r = assess_risk(45, _hrv("low"), _bp(110, 70), age=30)
        assert len(r.factors) == 1
        assert "athletes" in r.factors[0].label
        assert r.factors[0].severity == "low"

    def test_recommendations_deduplicated(self):
        r = assess_risk(130, _hrv("high"), _bp(190, 125), age=80)
        assert len(r.recommendations) == len(set(r.recommendations))
        assert any("healthcare provider" in rec for rec in r.recommendations)

    def test_to_dict(self):
        d = assess_risk(105, _hrv("high"), _bp(145, 85), age=55).to_dict()
        assert set(d) == {"riskScore", "riskLevel", "factors", "recommendations"}
        assert d["factors"][0]["points"] >= d["factors"][-1]["points"]


class TestRiskLevel:

    @pytest.mark.parametrize("score,level", [
        (0, "low"), (29.9, "low"), (30, "moderate"), (49.9, "moderate"),
        (50, "high"), (69.9, "high"), (70, "very-high"), (100, "very-high"),
    ])
    def test_default_cut_points(self, score, level):
        assert risk_level(score) == level

    def test_cut_points_must_increase(self):
        with pytest.raises(ValueError):
            PipelineConfig(risk_level_cuts=(50.0, 30.0, 70.0))


class TestConfiguredBands:

    def test_severity_comes_from_config(self):
        cfg = PipelineConfig(
            risk_hr_high=((100.0, 20.0, "moderate"), (90.0, 10.0, "low")),
            risk_age_bands=((65.0, 20.0, "high"),),
        )
        r = assess_risk(110, _hrv("low"), _bp(110, 70), age=70, config=cfg)
        assert [(f.points, f.severity) for f in r.factors] == [(20.0, "moderate"), (20.0, "high")]

    def test_default_severities(self):
        r = assess_risk(95, _hrv("high"), _bp(135, 85), age=45)
        by_points = {f.points: f.severity for f in r.factors}
        assert by_points == {25.0: "high", 15.0: "moderate", 10.0: "moderate", 6.0: "low"}
