"""
Risk Scorer — multi-dimensional post-operative risk score.

Five sub-scores (0-100) are computed from the current observation and the
patient's prior observations, then combined with fixed weights:

  pain 25% · bleeding 20% · infection 30% · complications 20% · trend 5%

Pure and deterministic: no I/O, no clock, no randomness.  Flags are kept in
detection order and may repeat (two keywords can share a flag).
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from radar.gateway.records import Observation, RiskScore

logger = logging.getLogger("radar.gateway.agents.risk_scorer")

# Weights in whole percent so the weighted sum stays integral
WEIGHTS: dict[str, int] = {
    "pain": 25,
    "bleeding": 20,
    "infection": 30,
    "complications": 20,
    "trend": 5,
}

# ── Pain bands ──
# (minimum pain score, sub-score, flag or None)
PAIN_BANDS: list[tuple[int, int, Optional[str]]] = [
    (9, 90, "SEVERE_PAIN"),
    (7, 70, "HIGH_PAIN"),
    (5, 40, "MODERATE_PAIN"),
    (3, 20, None),
]

# ── Keyword rules (substring match on lower-cased concerns) ──
# (keyword, sub-score, flag)
INFECTION_KEYWORDS: list[tuple[str, int, str]] = [
    ("fever", 80, "FEVER_REPORTED"),
    ("hot", 60, "HEAT_REPORTED"),
    ("burning up", 85, "HIGH_FEVER"),
    ("chills", 70, "CHILLS"),
    ("pus", 90, "PURULENT_DISCHARGE"),
    ("infection", 75, "INFECTION_CONCERN"),
    ("smells bad", 85, "MALODOROUS"),
    ("green discharge", 85, "PURULENT_DISCHARGE"),
    ("yellow discharge", 60, "DISCHARGE_CONCERN"),
]

COMPLICATION_KEYWORDS: list[tuple[str, int, str]] = [
    ("heavy bleeding", 95, "HEAVY_BLEEDING"),
    ("soaked bandage", 85, "EXCESSIVE_BLEEDING"),
    ("won't stop bleeding", 90, "UNCONTROLLED_BLEEDING"),
    ("shortness of breath", 95, "RESPIRATORY_DISTRESS"),
    ("chest pain", 90, "CHEST_PAIN"),
    ("difficulty breathing", 95, "BREATHING_DIFFICULTY"),
    ("swelling worse", 50, "WORSENING_SWELLING"),
    ("much more swollen", 60, "SIGNIFICANT_SWELLING"),
    ("numb", 40, "NUMBNESS"),
    ("can't feel", 50, "LOSS_OF_SENSATION"),
    ("vision problems", 80, "VISION_CHANGES"),
    ("can't see", 90, "VISION_LOSS"),
]

# ── Trend analysis ──
URGENCY_WORDS: tuple[str, ...] = (
    "worse", "bad", "terrible", "emergency", "help", "scared", "worried",
)
TREND_MIN_HISTORY = 2
TREND_PAIN_RISE = 2
TREND_PAIN_RISK = 40
TREND_BLEEDING_REPORTS = 2
TREND_BLEEDING_RISK = 30
TREND_TEXT_MIN_CHARS = 20
TREND_URGENCY_COUNT = 3
TREND_URGENCY_RISK = 35


class RiskScorer:
    """
    Weighted risk scoring over one observation plus history.

    Usage:
        scorer = RiskScorer()
        score = scorer.score(
            pain_score=8, bleeding=True, concerns="some spotting",
            day_index=4, history=prior_observations,
        )
    """

    def score(
        self,
        *,
        pain_score: Optional[int],
        bleeding: Optional[bool],
        concerns: str,
        day_index: int,
        history: Sequence[Observation] = (),
        observation_id: str = "",
    ) -> RiskScore:
        concerns_lower = (concerns or "").lower()
        flags: list[str] = []

        pain_risk = self._pain_risk(pain_score, day_index, flags)
        bleeding_risk = self._bleeding_risk(bleeding, day_index, flags)
        infection_risk = self._keyword_risk(concerns_lower, INFECTION_KEYWORDS, flags)
        complications_risk = self._keyword_risk(concerns_lower, COMPLICATION_KEYWORDS, flags)
        trend_risk = self.trend_risk(history) if len(history) >= TREND_MIN_HISTORY else 0

        weighted = (
            pain_risk * WEIGHTS["pain"]
            + bleeding_risk * WEIGHTS["bleeding"]
            + infection_risk * WEIGHTS["infection"]
            + complications_risk * WEIGHTS["complications"]
            + trend_risk * WEIGHTS["trend"]
        )
        # Round half up
        overall = (weighted + 50) // 100

        confidence = 0.5
        if pain_score is not None:
            confidence += 0.2
        if bleeding is not None:
            confidence += 0.15
        if len(concerns or "") > 10:
            confidence += 0.15
        confidence = min(round(confidence, 2), 1.0)

        logger.debug(
            "Risk score %d (pain=%d bleeding=%d infection=%d complications=%d trend=%d) flags=%s",
            overall, pain_risk, bleeding_risk, infection_risk,
            complications_risk, trend_risk, flags,
        )

        return RiskScore(
            observation_id=observation_id,
            overall_score=overall,
            pain_risk=pain_risk,
            bleeding_risk=bleeding_risk,
            infection_risk=infection_risk,
            complications_risk=complications_risk,
            trend_risk=trend_risk,
            flags=flags,
            confidence=confidence,
        )

    # ── Sub-scores ──

    @staticmethod
    def _pain_risk(pain_score: Optional[int], day_index: int, flags: list[str]) -> int:
        if pain_score is None:
            return 0

        risk = 0
        for minimum, band_risk, flag in PAIN_BANDS:
            if pain_score >= minimum:
                risk = band_risk
                if flag:
                    flags.append(flag)
                break

        # Day-based expectations
        if day_index <= 2 and pain_score >= 8:
            risk = min(risk + 10, 100)
        elif day_index >= 7 and pain_score >= 6:
            risk = min(risk + 20, 100)
            flags.append("PROLONGED_PAIN")
        return risk

    @staticmethod
    def _bleeding_risk(bleeding: Optional[bool], day_index: int, flags: list[str]) -> int:
        if bleeding is not True:
            return 0

        flags.append("ACTIVE_BLEEDING")
        if day_index >= 3:
            flags.append("DELAYED_BLEEDING")
            return 80
        return 60

    @staticmethod
    def _keyword_risk(
        text: str,
        rules: list[tuple[str, int, str]],
        flags: list[str],
    ) -> int:
        risk = 0
        for keyword, keyword_risk, flag in rules:
            if keyword in text:
                risk = max(risk, keyword_risk)
                flags.append(flag)
        return risk

    @staticmethod
    def trend_risk(history: Sequence[Observation]) -> int:
        """
        Worsening patterns across prior observations.

        Takes the highest of: rising pain between the two most recent
        scored entries, repeated bleeding reports, and accumulated urgency
        language in longer messages.
        """
        risk = 0

        # sorted() is stable, so same-day entries keep arrival order
        scored = sorted(
            (o for o in history if o.pain_score is not None),
            key=lambda o: o.day_index,
        )
        if len(scored) >= 2:
            previous, latest = scored[-2], scored[-1]
            if latest.pain_score > previous.pain_score + TREND_PAIN_RISE:
                risk = max(risk, TREND_PAIN_RISK)

        bleeding_reports = sum(1 for o in history if o.bleeding is True)
        if bleeding_reports >= TREND_BLEEDING_REPORTS:
            risk = max(risk, TREND_BLEEDING_RISK)

        urgency = 0
        for observation in history:
            text = observation.concerns.lower()
            if len(text) <= TREND_TEXT_MIN_CHARS:
                continue
            urgency += sum(1 for word in URGENCY_WORDS if word in text)
        if urgency >= TREND_URGENCY_COUNT:
            risk = max(risk, TREND_URGENCY_RISK)

        return risk
