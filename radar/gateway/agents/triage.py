"""
Triage Classifier — one risk tier per observation.

Two evaluations run for every observation:
  1. Score policy: thresholds on the weighted overall risk score
  2. Rule policy: discrete pain / bleeding / fever / keyword rules

The final level is the higher of the two.  Flags are the risk-score flags
followed by the rule flags.  Reasons from both evaluations are grouped
(pain, bleeding, keyword), de-duplicated, and joined with "; ".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from radar.gateway.records import (
    Observation,
    RiskLevel,
    RiskScore,
    Triage,
    staff_queue_for,
)

logger = logging.getLogger("radar.gateway.agents.triage")


class TriageInvariantError(Exception):
    """A non-routine level was produced with nothing to explain it."""


# ── Score policy ──
# (minimum overall score, level)
SCORE_THRESHOLDS: list[tuple[int, RiskLevel]] = [
    (80, RiskLevel.URGENT),
    (50, RiskLevel.REVIEW_TODAY),
    (25, RiskLevel.LOW),
]

# ── Rule policy ──
PAIN_URGENT = 9
PAIN_REVIEW_MIN = 7
PAIN_REVIEW_MAX = 8
FEVER_URGENT_F = 101.0
FEVER_MILD_F = 99.0

TEMPERATURE_PATTERN = re.compile(r"(\d+\.?\d*)\s*(?:degrees?|°|f|fahrenheit)", re.IGNORECASE)

RED_BLEEDING_KEYWORDS: tuple[str, ...] = (
    "heavy bleeding", "soaked bandage", "blood pooling", "bleeding won't stop",
    "bright red blood", "large blood clots", "bleeding through dressing",
)

SWELLING_KEYWORDS: tuple[str, ...] = (
    "swelling worse", "swelling increasing", "more swollen", "swelling getting bigger",
    "face more swollen", "swelling not going down", "new swelling",
)

LIGHT_BLEEDING_KEYWORDS: tuple[str, ...] = (
    "light bleeding", "spotting", "pink drainage", "some blood",
    "bleeding", "small amount of blood", "blood on bandage",
)

CONCERNING_KEYWORDS: tuple[str, ...] = (
    "fever", "hot", "burning up", "chills", "infection",
    "pus", "discharge", "smell", "odor", "oozing",
    "difficulty breathing", "chest pain", "shortness of breath",
    "nausea", "vomiting", "can't keep down", "throwing up",
    "dizzy", "lightheaded", "faint", "passed out",
    "rash", "allergic reaction", "itching all over", "hives",
)


@dataclass
class RuleResult:
    """Outcome of the discrete rule policy, reasons bucketed by topic."""

    level: RiskLevel = RiskLevel.ROUTINE
    flags: list[str] = field(default_factory=list)
    pain_reasons: list[str] = field(default_factory=list)
    bleeding_reasons: list[str] = field(default_factory=list)
    keyword_reasons: list[str] = field(default_factory=list)

    def raise_to(self, level: RiskLevel) -> None:
        self.level = max(self.level, level)


def score_level(overall_score: int) -> RiskLevel:
    for minimum, level in SCORE_THRESHOLDS:
        if overall_score >= minimum:
            return level
    return RiskLevel.ROUTINE


def evaluate_rules(
    pain_score: Optional[int],
    bleeding: Optional[bool],
    concerns: str,
) -> RuleResult:
    result = RuleResult()

    if pain_score is not None:
        if pain_score >= PAIN_URGENT:
            result.raise_to(RiskLevel.URGENT)
            result.flags.append("PAIN_HIGH")
            result.pain_reasons.append(f"Severe pain reported ({pain_score}/10)")
        elif PAIN_REVIEW_MIN <= pain_score <= PAIN_REVIEW_MAX:
            result.raise_to(RiskLevel.REVIEW_TODAY)
            result.flags.append("PAIN_MODERATE")
            result.pain_reasons.append(f"Moderate pain reported ({pain_score}/10)")

    if bleeding is True:
        result.raise_to(RiskLevel.LOW)
        result.flags.append("BLEEDING_YES")
        result.bleeding_reasons.append("Patient reports bleeding")

    text = (concerns or "").lower().strip()
    if not text:
        return result

    for keyword in RED_BLEEDING_KEYWORDS:
        if keyword in text:
            result.raise_to(RiskLevel.URGENT)
            result.flags.append("BLEEDING_HEAVY")
            result.bleeding_reasons.append(f'Concerning bleeding keywords: "{keyword}"')

    if "fever" in text or "temperature" in text:
        match = TEMPERATURE_PATTERN.search(text)
        if match:
            temp = float(match.group(1))
            if temp >= FEVER_URGENT_F:
                result.raise_to(RiskLevel.URGENT)
                result.flags.append("FEVER_HIGH")
                result.keyword_reasons.append(f"High fever reported ({temp:g}°F)")
            elif temp > FEVER_MILD_F:
                result.raise_to(RiskLevel.REVIEW_TODAY)
                result.flags.append("FEVER_MILD")
                result.keyword_reasons.append(f"Mild fever reported ({temp:g}°F)")
        else:
            result.raise_to(RiskLevel.REVIEW_TODAY)
            result.flags.append("FEVER_MENTIONED")
            result.keyword_reasons.append("Fever mentioned without temperature")

    for keyword in SWELLING_KEYWORDS:
        if keyword in text:
            result.raise_to(RiskLevel.REVIEW_TODAY)
            result.flags.append("SWELLING_INCREASED")
            result.keyword_reasons.append(f'Increased swelling: "{keyword}"')

    for keyword in LIGHT_BLEEDING_KEYWORDS:
        if keyword in text:
            result.raise_to(RiskLevel.REVIEW_TODAY)
            result.flags.append("BLEEDING_LIGHT")
            result.bleeding_reasons.append(f'Light bleeding: "{keyword}"')

    for keyword in CONCERNING_KEYWORDS:
        if keyword in text:
            result.raise_to(RiskLevel.REVIEW_TODAY)
            result.flags.append("CONCERNING_SYMPTOMS")
            result.keyword_reasons.append(f'Concerning symptom mentioned: "{keyword}"')

    return result


class TriageClassifier:
    """
    Combines the score policy and the rule policy.

    Usage:
        classifier = TriageClassifier()
        triage = classifier.classify(observation, risk_score)
    """

    def classify(self, observation: Observation, risk: RiskScore) -> Triage:
        from_score = score_level(risk.overall_score)
        rules = evaluate_rules(observation.pain_score, observation.bleeding, observation.concerns)

        level = max(from_score, rules.level)
        method = "rules" if rules.level > from_score else "score"

        pain_reasons = list(rules.pain_reasons)
        bleeding_reasons = list(rules.bleeding_reasons)
        keyword_reasons = list(rules.keyword_reasons)
        if risk.pain_risk:
            pain_reasons.append(f"Pain risk {risk.pain_risk}/100")
        if risk.bleeding_risk:
            bleeding_reasons.append(f"Bleeding risk {risk.bleeding_risk}/100")
        if risk.infection_risk:
            keyword_reasons.append(f"Infection risk {risk.infection_risk}/100")
        if risk.complications_risk:
            keyword_reasons.append(f"Complications risk {risk.complications_risk}/100")

        reasons: list[str] = []
        for reason in pain_reasons + bleeding_reasons + keyword_reasons:
            if reason not in reasons:
                reasons.append(reason)
        if risk.trend_risk:
            reasons.append(f"Worsening trend across recent check-ins ({risk.trend_risk}/100)")
        if level > RiskLevel.ROUTINE and not reasons:
            raise TriageInvariantError(
                f"Level {level} for observation {observation.id} has no supporting reason"
            )

        triage = Triage(
            observation_id=observation.id,
            patient_id=observation.patient_id,
            risk_level=RiskLevel(level),
            flags=list(risk.flags) + rules.flags,
            reasons="; ".join(reasons),
            method=method,
            queue=staff_queue_for(level),
        )
        logger.info(
            "Triage for observation %s: level=%d via %s, flags=%s",
            observation.id, triage.risk_level, method, triage.flags,
        )
        return triage
