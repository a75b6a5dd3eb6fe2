from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


TIER_QUALIFIED = "Qualified – Send to Marshall"
TIER_WARM = "Warm – Review Later"
TIER_EDUCATIONAL = "Educational Only"
TIER_DISQUALIFIED = "Disqualified"

Tier = Literal[
    "Qualified – Send to Marshall",
    "Warm – Review Later",
    "Educational Only",
    "Disqualified",
]


class GateConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    state_gate: bool = False
    county_gate: bool = False


class ScoreResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    tier: Tier
    lead_temperature: Literal["Hot", "Warm", "Cold"]
    reject_reasons: List[str] = Field(default_factory=list)
    score_reasons: str = ""
    marshall_eligible: bool = False


class ConsentFlags(BaseModel):
    opt_in_email: bool = False
    opt_in_sms: bool = False


class Routing(BaseModel):
    route_to_marshall: bool
    allow_sms: bool
    allow_email: bool
    outreach_allowed: bool
    do_not_contact: bool


class IngestMeta(BaseModel):
    trace_id: str
    source_name: str = "Make/Tally"
    source_run_id: str = ""


class UpsertResult(BaseModel):
    action: Literal["created", "updated"]
    record_id: str


class ScoreResponse(BaseModel):
    ok: bool = True
    trace_id: str
    scored: ScoreResult
    consent: ConsentFlags
    routing: Routing


class IngestResponse(ScoreResponse):
    airtable: UpsertResult


class ErrorResponse(BaseModel):
    ok: bool = False
    trace_id: Optional[str] = None
    error: str
    detail: Optional[str] = None
