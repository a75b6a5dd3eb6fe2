import io
import json
import logging
import secrets
import time
import uuid
from typing import Any, Dict, Optional, Tuple
import pandas as pd
from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from .airtable import AirtableClient
from .config import Settings, get_settings
from .mapping import build_airtable_fields
from .models import ErrorResponse, IngestMeta, IngestResponse, ScoreResponse
from .normalizer import iso_utc, to_str
from .routing import build_routing, extract_consent_flags
from .scoring import score_lead


SERVICE_NAME = "renew-power-brain"

app = FastAPI(title="Renew Power Lead Brain")


logger = logging.getLogger("app")
logging.basicConfig(level=logging.INFO, format="%(message)s")


class SecretRejected(Exception):
    def __init__(self, status_code: int, error: str) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error


@app.exception_handler(SecretRejected)
async def secret_rejected_handler(request: Request, exc: SecretRejected) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.error})


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.trace_id = rid
    start = time.time()
    response: Response
    try:
        response = await call_next(request)
    finally:
        duration_ms = int((time.time() - start) * 1000)
        logger.info(json.dumps({
            "request_id": rid,
            "endpoint": request.url.path,
            "method": request.method,
            "status": getattr(response, "status_code", 0) if "response" in locals() else 500,
            "latency_ms": duration_ms,
        }))
    response.headers["X-Request-ID"] = rid
    return response


def require_secret(request: Request, settings: Settings = Depends(get_settings)) -> None:
    if not settings.BRAIN_SECRET:
        if settings.is_production:
            raise SecretRejected(500, "Server misconfigured (missing BRAIN_SECRET)")
        return
    secret = request.headers.get("x-brain-secret")
    if not secret or not secrets.compare_digest(secret.encode("utf-8"), settings.BRAIN_SECRET.encode("utf-8")):
        raise SecretRejected(401, "Unauthorized")


def get_airtable_client(settings: Settings = Depends(get_settings)) -> AirtableClient:
    return AirtableClient(settings)


def _unwrap(body: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    body = body if isinstance(body, dict) else {}
    lead = body.get("lead")
    if not isinstance(lead, dict):
        lead = body
    meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}
    return lead, meta


def _meta(trace_id: str, raw: Dict[str, Any]) -> IngestMeta:
    return IngestMeta(
        trace_id=trace_id,
        source_name=to_str(raw.get("source_name")) or "Make/Tally",
        source_run_id=to_str(raw.get("source_run_id")),
    )


@app.get("/")
def root() -> Dict[str, Any]:
    return {"ok": True, "service": SERVICE_NAME, "time": iso_utc()}


@app.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


@app.post("/score", response_model=ScoreResponse, dependencies=[Depends(require_secret)])
def score_endpoint(
    request: Request,
    body: Optional[Dict[str, Any]] = Body(None),
    settings: Settings = Depends(get_settings),
) -> ScoreResponse:
    lead, _ = _unwrap(body)
    scored = score_lead(lead, settings.gate_config())
    consent = extract_consent_flags(lead)
    return ScoreResponse(
        trace_id=request.state.trace_id,
        scored=scored,
        consent=consent,
        routing=build_routing(scored, consent),
    )


@app.post("/ingest", response_model=IngestResponse, dependencies=[Depends(require_secret)])
def ingest_endpoint(
    request: Request,
    body: Optional[Dict[str, Any]] = Body(None),
    settings: Settings = Depends(get_settings),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    trace_id = request.state.trace_id
    lead, raw_meta = _unwrap(body)
    meta = _meta(trace_id, raw_meta)
    try:
        scored = score_lead(lead, settings.gate_config())
        consent = extract_consent_flags(lead)
        upserted = airtable.upsert_lead(lead, scored, meta)
    except Exception as e:
        logger.exception("[%s] ingest error: %s", trace_id, e)
        err = ErrorResponse(
            trace_id=trace_id,
            error="Ingest failed",
            detail=None if settings.is_production else str(e),
        )
        return JSONResponse(status_code=500, content=err.model_dump(exclude_none=True))
    return IngestResponse(
        trace_id=trace_id,
        airtable=upserted,
        scored=scored,
        consent=consent,
        routing=build_routing(scored, consent),
    )


@app.post("/airtable/map", dependencies=[Depends(require_secret)])
def airtable_map(
    request: Request,
    body: Optional[Dict[str, Any]] = Body(None),
    format: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    lead, raw_meta = _unwrap(body)
    scored = score_lead(lead, settings.gate_config())
    row = build_airtable_fields(lead, scored, extract_consent_flags(lead), _meta(request.state.trace_id, raw_meta))
    if format == "csv":
        df = pd.DataFrame([row])
        buf = io.StringIO()
        df.to_csv(buf, index=False)
        buf.seek(0)
        headers = {"Content-Disposition": f"attachment; filename=airtable_{int(time.time())}.csv"}
        return StreamingResponse(iter([buf.getvalue()]), media_type="text/csv", headers=headers)
    return JSONResponse(content=row)


if __name__ == "__main__":
    import uvicorn

    port = get_settings().PORT
    logger.info("Renew Power brain running on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
