# trendcast/forecast/head_to_head.py
"""
Head-to-head analytics from two term forecasts.

Each forecast day is treated as normal with standard deviation recovered from
its 80% band. ``winner_probability`` is P(mean margin B - A > 0) in percent,
using the mean of the per-day deviations (errors of one term are assumed to
move together across days). Values above 50 mean termB is predicted to win.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List

from trendcast.forecast.engine import Z80, TermForecast


@dataclass
class HeadToHead:
    winner_probability: float
    expected_margin_points: float
    lead_change_risk: str
    current_margin: float
    crossover_probability: float
    forecast_horizon: int
    daily_probabilities: List[float] = field(default_factory=list)

    @property
    def predicted_winner(self) -> str:
        return "termB" if self.winner_probability > 50 else "termA"

    def to_dict(self) -> dict:
        return {
            "winnerProbability": self.winner_probability,
            "expectedMarginPoints": self.expected_margin_points,
            "leadChangeRisk": self.lead_change_risk,
            "currentMargin": self.current_margin,
            "crossoverProbability": self.crossover_probability,
            "forecastHorizon": self.forecast_horizon,
            "dailyProbabilities": list(self.daily_probabilities),
        }


def normal_cdf(x: float) -> float:
    return 0.5 * (1.0 + math.erf(x / math.sqrt(2.0)))


def _prob_positive(mean: float, sd: float) -> float:
    if sd <= 0:
        if mean > 0:
            return 1.0
        return 0.0 if mean < 0 else 0.5
    return normal_cdf(mean / sd)


def _band_sd(lower80: float, upper80: float) -> float:
    return max(upper80 - lower80, 0.0) / (2 * Z80)


def lead_change_risk(margin_percent: float, crossover_probability: float, avg_confidence: float) -> str:
    if margin_percent < 0.1 or crossover_probability > 0.3 or avg_confidence < 50:
        return "high"
    if margin_percent < 0.2 or crossover_probability > 0.15 or avg_confidence < 70:
        return "medium"
    return "low"


def compute_head_to_head(forecast_a: TermForecast, forecast_b: TermForecast) -> HeadToHead:
    current_a = forecast_a.last_observed
    current_b = forecast_b.last_observed
    current_margin = round(current_b - current_a, 2)
    horizon = min(len(forecast_a.points), len(forecast_b.points))
    if horizon == 0:
        return HeadToHead(
            winner_probability=50.0,
            expected_margin_points=0.0,
            lead_change_risk="medium",
            current_margin=current_margin,
            crossover_probability=0.0,
            forecast_horizon=0,
        )

    margins: List[float] = []
    sds: List[float] = []
    daily: List[float] = []
    crossover = 0.0
    for pa, pb in zip(forecast_a.points[:horizon], forecast_b.points[:horizon]):
        margin = pb.value - pa.value
        sd = math.hypot(_band_sd(pa.lower80, pa.upper80), _band_sd(pb.lower80, pb.upper80))
        p_b = _prob_positive(margin, sd)
        margins.append(margin)
        sds.append(sd)
        daily.append(round(p_b * 100, 1))
        # chance that this day's margin has the opposite sign of today's
        if current_margin > 0:
            crossover = max(crossover, 1 - p_b)
        elif current_margin < 0:
            crossover = max(crossover, p_b)

    mean_margin = sum(margins) / horizon
    mean_sd = sum(sds) / horizon
    winner_probability = round(_prob_positive(mean_margin, mean_sd) * 100, 1)

    leader = max(current_a, current_b)
    margin_percent = abs(current_margin) / leader if leader > 0 else 0.0
    avg_confidence = (forecast_a.confidence + forecast_b.confidence) / 2

    return HeadToHead(
        winner_probability=winner_probability,
        expected_margin_points=round(mean_margin, 2),
        lead_change_risk=lead_change_risk(margin_percent, crossover, avg_confidence),
        current_margin=current_margin,
        crossover_probability=round(crossover, 4),
        forecast_horizon=horizon,
        daily_probabilities=daily,
    )
