import logging
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote
import httpx
from .config import Settings
from .mapping import build_airtable_fields, dedupe_keys
from .models import IngestMeta, ScoreResult, UpsertResult
from .normalizer import lower, to_str
from .routing import extract_consent_flags


logger = logging.getLogger("app")

RETRYABLE_STATUS = (429, 500, 502, 503, 504)
IDEMPOTENT_METHODS = ("GET", "PATCH")


class AirtableError(RuntimeError):
    def __init__(self, method: str, status: int, message: str) -> None:
        super().__init__(f"Airtable {method} failed: {status} {message}")
        self.method = method
        self.status = status


def escape_formula_string(value: Any) -> str:
    return to_str(value).replace("'", "\\'")


def build_dedupe_formula(phone: str = "", email: str = "", address: str = "", zip: str = "") -> str:
    """Phone, then email, then address (+ zip); any match counts."""
    parts = []
    if phone:
        parts.append(f"{{Phone}}='{escape_formula_string(phone)}'")
    if email:
        parts.append(f"LOWER({{Email}})='{escape_formula_string(lower(email))}'")
    if address and zip:
        parts.append(
            f"AND(LOWER({{Address}})='{escape_formula_string(lower(address))}', "
            f"{{Zip}}='{escape_formula_string(zip)}')"
        )
    elif address:
        parts.append(f"LOWER({{Address}})='{escape_formula_string(lower(address))}'")
    if not parts:
        return ""
    return f"OR({','.join(parts)})"


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        if data.get("message"):
            return str(data["message"])
    return resp.text or f"HTTP {resp.status_code}"


def _json_body(resp: httpx.Response) -> Dict[str, Any]:
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text}


class AirtableClient:
    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.sleep = sleep

    def table_url(self, path: str = "") -> str:
        s = self.settings
        return f"{s.AIRTABLE_API_URL}/{s.AIRTABLE_BASE_ID}/{quote(s.AIRTABLE_TABLE_NAME, safe='')}{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.AIRTABLE_API_KEY}",
            "Content-Type": "application/json",
        }

    def _may_resend(self, method: str, exc: Optional[Exception] = None, status: int = 0) -> bool:
        # a create that may have reached Airtable is not resent
        if method.upper() in IDEMPOTENT_METHODS:
            return True
        if exc is not None:
            return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))
        return status == 429

    def request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> Dict[str, Any]:
        self.settings.require_airtable()
        timeout = httpx.Timeout(self.settings.AIRTABLE_TIMEOUT_MS / 1000.0)
        retries = max(0, self.settings.AIRTABLE_MAX_RETRIES)
        attempt = 0
        while True:
            try:
                with httpx.Client(timeout=timeout, transport=self.transport) as client:
                    resp = client.request(method, url, headers=self._headers(), params=params, json=json)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= retries or not self._may_resend(method, exc=e):
                    raise
                cause: Exception = e
            else:
                if resp.is_success:
                    return _json_body(resp)
                err = AirtableError(method, resp.status_code, _error_message(resp))
                retryable = resp.status_code in RETRYABLE_STATUS and self._may_resend(method, status=resp.status_code)
                if attempt >= retries or not retryable:
                    raise err
                cause = err
            logger.warning("airtable %s retry %d after: %s", method, attempt + 1, cause)
            self.sleep(min(5.0, self.settings.AIRTABLE_BACKOFF_S * (2 ** attempt)))
            attempt += 1

    def find_existing(self, phone: str = "", email: str = "", address: str = "", zip: str = "") -> Optional[Dict[str, Any]]:
        formula = build_dedupe_formula(phone, email, address, zip)
        if not formula:
            return None
        data = self.request("GET", self.table_url(), params={"maxRecords": "1", "filterByFormula": formula})
        records = data.get("records") or []
        return records[0] if records else None

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", self.table_url(), json={"fields": fields})

    def update(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PATCH", self.table_url(f"/{record_id}"), json={"fields": fields})

    def upsert_lead(self, lead: Dict[str, Any], scored: ScoreResult, meta: IngestMeta) -> UpsertResult:
        self.settings.require_airtable()
        consent = extract_consent_flags(lead)
        fields = build_airtable_fields(lead, scored, consent, meta)
        existing = self.find_existing(**dedupe_keys(lead))
        if existing and existing.get("id"):
            updated = self.update(existing["id"], fields)
            result = UpsertResult(action="updated", record_id=str(updated.get("id", existing["id"])))
        else:
            created = self.create(fields)
            result = UpsertResult(action="created", record_id=str(created.get("id", "")))
        logger.info("[%s] airtable %s %s", meta.trace_id, result.action, result.record_id)
        return result
