from datetime import datetime
from typing import Any, Dict, Optional, Sequence
from .models import ConsentFlags, IngestMeta, ScoreResult
from .normalizer import iso_utc, normalize_phone, resolve, to_str
from .scoring import REASON_SEP


# Canonical key, Airtable column, then the literal Tally question text.
COLUMN_ALIASES: Dict[str, Sequence[str]] = {
    "Lead name": ("name", "Lead name", "What is your name"),
    "Phone": ("phone", "Phone", "What is your best phone number"),
    "Email": ("email", "Email", "What is your best email"),
    "Address": ("address", "Address", "What is your property address you’re asking in regards to?"),
    "City": ("city", "City"),
    "State": ("state", "State"),
    "Zip": ("zip", "Zip", "Zip/postal code", "Zip/postal code "),
    "Property type": ("property_type", "Property type", "What type of property is this?"),
    "Roof type": ("roof_type", "Roof type", "What is your roof made of?"),
    "Roof age (years)": ("roof_age_years", "Roof age (years)", "How old is your roof?"),
    "Sun exposure": ("sun_exposure", "Sun exposure", "How much sun does your roof get?"),
    "HOA?": ("hoa", "HOA?", "Is your home part of an HOA?"),
    "Owns property?": ("owns_property", "Owns property?", "Do you own this property?"),
    "Avg monthly bill": ("avg_monthly_bill", "Avg monthly bill", "What’s your average monthly electricity bill?"),
    "Annual true-up cost": (
        "true_up",
        "Annual true-up cost",
        "Have you received high true-up bills? (End of year PG&E even with solar)",
    ),
    "What matters most": ("what_matters_most", "What matters most", "What matters MOST to you in a solar investment?"),
    "Approach to home improvement": (
        "approach",
        "Approach to home improvement",
        "Your approach to major home improvements",
    ),
}


def column_value(lead: Dict[str, Any], column: str) -> str:
    return resolve(lead, COLUMN_ALIASES[column]) or ""


def dedupe_keys(lead: Dict[str, Any]) -> Dict[str, str]:
    return {
        "phone": normalize_phone(column_value(lead, "Phone")),
        "email": column_value(lead, "Email"),
        "address": column_value(lead, "Address"),
        "zip": column_value(lead, "Zip"),
    }


def build_airtable_fields(
    lead: Dict[str, Any],
    scored: ScoreResult,
    consent: ConsentFlags,
    meta: IngestMeta,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    outreach = consent.opt_in_email or consent.opt_in_sms
    lead_source = resolve(lead, ("lead_source", "Lead source")) or to_str(meta.source_name) or "Tally"

    fields: Dict[str, Any] = {column: column_value(lead, column) for column in COLUMN_ALIASES}
    fields.update({
        "Score": scored.score,
        "Tier": scored.tier,
        "Lead temperature": scored.lead_temperature,
        "Score reasons": scored.score_reasons,
        "Reject reasons": REASON_SEP.join(scored.reject_reasons),
        "AI tier": scored.tier,
        "Needs scoring": False,
        "Opt-in email?": consent.opt_in_email,
        "Opt-in SMS?": consent.opt_in_sms,
        "Outreach allowed": outreach,
        # no opt-in means do not contact
        "Do not contact": not outreach,
        "Lead source": lead_source,
        "Internal notes": f"[trace:{meta.trace_id}] Scored at {iso_utc(now)}",
    })
    return fields
