from typing import Any, Dict, Sequence
from .models import TIER_QUALIFIED, ConsentFlags, Routing, ScoreResult
from .normalizer import truthy


EMAIL_CONSENT_ALIASES = ("opt_in_email", "Opt-in email?", "Email consent checkbox", "email_consent")
SMS_CONSENT_ALIASES = ("opt_in_sms", "Opt-in SMS?", "SMS consent checkbox", "sms_consent")


def _first_present(lead: Dict[str, Any], aliases: Sequence[str]) -> Any:
    for key in aliases:
        if lead.get(key) is not None:
            return lead[key]
    return None


def extract_consent_flags(lead: Dict[str, Any]) -> ConsentFlags:
    """Accepts booleans, "yes"/"no", and form checkbox values like "checked"/"on"."""
    return ConsentFlags(
        opt_in_email=truthy(_first_present(lead, EMAIL_CONSENT_ALIASES)),
        opt_in_sms=truthy(_first_present(lead, SMS_CONSENT_ALIASES)),
    )


def build_routing(scored: ScoreResult, consent: ConsentFlags) -> Routing:
    outreach = consent.opt_in_sms or consent.opt_in_email
    return Routing(
        route_to_marshall=scored.tier == TIER_QUALIFIED,
        allow_sms=consent.opt_in_sms,
        allow_email=consent.opt_in_email,
        outreach_allowed=outreach,
        do_not_contact=not outreach,
    )
