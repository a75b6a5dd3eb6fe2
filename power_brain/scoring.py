import math
from typing import Any, Dict, List, Optional, Tuple
from .models import (
    TIER_DISQUALIFIED,
    TIER_EDUCATIONAL,
    TIER_QUALIFIED,
    TIER_WARM,
    GateConfig,
    ScoreResult,
)
from .normalizer import extract_number, resolve, yes_no


# First alias with a non-blank value wins.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "state": ("State", "state"),
    "county": ("County", "county"),
    "owns_property": ("Owns property?", "owns_property", "owns", "own", "homeowner"),
    "avg_monthly_bill": ("Avg monthly bill", "avg_monthly_bill", "bill"),
    "roof_age_years": ("Roof age (years)", "roof_age_years", "roof_age"),
    "sun_exposure": ("Sun exposure", "sun_exposure"),
    "hoa": ("HOA?", "hoa", "has_hoa"),
    "true_up": ("Annual true-up cost", "true_up", "trueup"),
    "property_type": ("Property type", "property_type"),
}

BASE_SCORE = 50
QUALIFIED_MIN = 75
WARM_MIN = 55
REASON_SEP = " | "


def field(lead: Dict[str, Any], name: str) -> Optional[str]:
    return resolve(lead, FIELD_ALIASES[name])


def _disqualified(reject_reasons: List[str]) -> ScoreResult:
    return ScoreResult(
        score=0,
        tier=TIER_DISQUALIFIED,
        lead_temperature="Cold",
        reject_reasons=reject_reasons,
        score_reasons=REASON_SEP.join(reject_reasons),
        marshall_eligible=False,
    )


def geo_reject_reasons(lead: Dict[str, Any], gates: GateConfig) -> List[str]:
    reasons: List[str] = []
    state = field(lead, "state")
    if gates.state_gate and state and state.upper() not in ("CA", "CALIFORNIA"):
        reasons.append("Outside California")
    county = field(lead, "county")
    if gates.county_gate and county and "kern" not in county.lower():
        reasons.append("Outside Kern County")
    return reasons


def bill_points(raw: Optional[str]) -> Tuple[int, str]:
    num = extract_number(raw)
    if num is not None:
        if num >= 250:
            return 18, "High bill"
        if num >= 150:
            return 10, "Mid bill"
        return 2, "Low bill"
    # single-select buckets such as "$150-$250"
    txt = (raw or "").lower()
    if "250" in txt:
        return 18, "High bill"
    if "150" in txt:
        return 10, "Mid bill"
    if txt:
        return 4, "Bill provided"
    return 0, "Bill unknown"


def roof_points(raw: Optional[str]) -> Tuple[int, str]:
    num = extract_number(raw)
    if num is not None:
        if num <= 10:
            return 12, "Roof <= 10 years"
        if num <= 20:
            return 6, "Roof 10–20 years"
        return 0, "Roof > 20 years"
    txt = (raw or "").lower()
    if "under" in txt or "<" in txt or "10" in txt:
        return 12, "Roof likely good"
    if "20" in txt:
        return 6, "Roof maybe"
    return 0, "Roof unknown"


def sun_points(raw: Optional[str]) -> Tuple[int, str]:
    txt = (raw or "").lower()
    if "full" in txt or "great" in txt or "high" in txt:
        return 10, "Good sun exposure"
    if "partial" in txt or "medium" in txt:
        return 5, "Medium sun exposure"
    if txt:
        return 0, "Low/unknown sun exposure"
    return 0, "Sun exposure unknown"


def hoa_points(raw: Optional[str]) -> Tuple[int, str]:
    hoa = yes_no(raw)
    if hoa == "yes":
        return -8, "HOA friction"
    if hoa == "no":
        return 4, "No HOA"
    return -2, "HOA unknown"


def true_up_points(raw: Optional[str]) -> Tuple[int, Optional[str]]:
    num = extract_number(raw)
    if num is not None:
        if num >= 500:
            return 6, "High true-up cost"
        return 2, "Some true-up cost"
    txt = (raw or "").lower()
    if "yes" in txt or "true" in txt:
        return 4, "True-up indicated"
    return 0, None


def property_points(raw: Optional[str]) -> Tuple[int, Optional[str]]:
    txt = (raw or "").lower()
    if "single" in txt:
        return 4, "Single family"
    if "mobile" in txt or "manufact" in txt:
        return -6, "Mobile/manufactured complexity"
    if txt:
        return 0, "Property type noted"
    return 0, None


def assign_tier(score: int) -> Tuple[str, str, bool]:
    if score >= QUALIFIED_MIN:
        return TIER_QUALIFIED, "Hot", True
    if score >= WARM_MIN:
        return TIER_WARM, "Warm", False
    return TIER_EDUCATIONAL, "Cold", False


def clamp(score: float) -> int:
    return max(0, min(100, math.floor(score + 0.5)))


def score_lead(lead: Dict[str, Any], gates: Optional[GateConfig] = None) -> ScoreResult:
    gates = gates or GateConfig()

    rejects = geo_reject_reasons(lead, gates)
    if rejects:
        return _disqualified(rejects)

    if yes_no(field(lead, "owns_property")) != "yes":
        return _disqualified(["Not homeowner"])

    score = BASE_SCORE
    reasons: List[str] = []
    signals = [
        bill_points(field(lead, "avg_monthly_bill")),
        roof_points(field(lead, "roof_age_years")),
        sun_points(field(lead, "sun_exposure")),
        hoa_points(field(lead, "hoa")),
        true_up_points(field(lead, "true_up")),
        property_points(field(lead, "property_type")),
    ]
    for points, reason in signals:
        score += points
        if reason:
            reasons.append(reason)

    final = clamp(score)
    tier, temperature, eligible = assign_tier(final)
    return ScoreResult(
        score=final,
        tier=tier,
        lead_temperature=temperature,
        reject_reasons=[],
        score_reasons=REASON_SEP.join(reasons),
        marshall_eligible=eligible,
    )
