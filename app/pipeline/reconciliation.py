"""
Optional reconciliation through an external structured-extraction service.

The deterministic record is sent as a seed together with the winning text
and the other recovered candidates. The service answers with the same field
set plus an evidence list. Merging is override-if-present: the service can
fill or correct a field but never blank one the parser already found.

Any failure is non-fatal; the caller keeps the seed.
"""

import asyncio
import json
from typing import Any, Optional

import httpx
import structlog

from app.config import settings
from app.errors import ReconciliationUnavailableError
from app.models.enums import ReconciliationOutcome
from app.observability.metrics import reconciliation_total
from app.schemas.contracts import TextCandidate
from app.schemas.records import (
    Evidence, ExtractedRecord, LineItem, NUMERIC_FIELDS, SHIPMENT_FIELDS, TEXT_FIELDS,
)

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = " ".join([
    "You extract shipping fields from noisy PDFs.",
    "Return STRICT JSON that matches the provided JSON Schema.",
    "Prefer exact substrings; do not invent values.",
    "Normalize dates to dd.mm.yyyy if possible; else yyyy-mm-dd.",
    "Leave a field empty if uncertain; do not guess.",
    "Provide evidence snippets for fields you populate.",
])


# ─── Request shaping ──────────────────────────────────────────

def _nullable(kind: str) -> dict:
    return {"type": [kind, "null"]}


def build_response_schema() -> dict:
    """Strict JSON schema: every record field, items, and evidence."""
    properties: dict[str, Any] = {name: _nullable("string") for name in TEXT_FIELDS}
    properties["total_net_kg"] = _nullable("number")
    properties["total_gross_kg"] = _nullable("number")
    properties["total_pkgs"] = _nullable("integer")

    item_props = {
        "product_name": _nullable("string"),
        "net_weight": _nullable("number"),
        "gross_weight": _nullable("number"),
        "package_count": _nullable("integer"),
        "packaging_description": _nullable("string"),
        "pallet_count": _nullable("integer"),
    }
    properties["items"] = {
        "type": "array",
        "items": {
            "type": "object",
            "additionalProperties": False,
            "properties": item_props,
            "required": list(item_props),
        },
    }

    evidence_props = {
        "field": {"type": "string"},
        "value": {"type": "string"},
        "snippet": {"type": "string"},
        "start": _nullable("integer"),
        "end": _nullable("integer"),
        "source": {"type": "string"},
    }
    properties["evidence"] = {
        "type": "array",
        "items": {
            "type": "object",
            "additionalProperties": False,
            "properties": evidence_props,
            "required": list(evidence_props),
        },
    }

    return {
        "name": "ShipmentExtraction",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": properties,
            "required": list(properties),
        },
    }


def build_user_prompt(
    primary: TextCandidate,
    alternates: list[TextCandidate],
    seed: ExtractedRecord,
    max_chars: int,
) -> str:
    parts = ["PRIMARY TEXT:\n<<<", primary.text[:max_chars], ">>>"]
    for alt in alternates[:2]:
        if alt.text:
            parts.append(f"\n\nALT {alt.source.value}:\n<<<{alt.text[:max_chars]}>>>")
    seed_fields = seed.model_dump(include=set(SHIPMENT_FIELDS) | {"items"})
    parts.append("\n\nSEED FIELDS (regex parser output; you may correct):\n")
    parts.append(json.dumps(seed_fields, indent=2, ensure_ascii=False))
    return "".join(parts)


# ─── Merge ────────────────────────────────────────────────────

def merge_reconciled(seed: ExtractedRecord, returned: dict) -> ExtractedRecord:
    """
    Seed is the base. A returned scalar replaces it only when non-null and,
    for strings, non-blank after trimming. Items are replaced wholesale only
    by a non-empty list. Unknown keys are ignored.
    """
    update: dict[str, Any] = {}
    for name in TEXT_FIELDS:
        value = returned.get(name)
        if isinstance(value, str) and value.strip():
            update[name] = value
    for name in NUMERIC_FIELDS:
        value = returned.get(name)
        if value is not None and not isinstance(value, bool):
            update[name] = value

    merged = seed.model_dump()
    merged.update(update)

    items = returned.get("items")
    if isinstance(items, list) and items:
        merged["items"] = [LineItem.model_validate(i) for i in items if isinstance(i, dict)] or merged["items"]

    evidence = returned.get("evidence")
    if isinstance(evidence, list):
        merged["evidence"] = [Evidence.model_validate(e) for e in evidence if isinstance(e, dict) and e.get("field")]

    return ExtractedRecord.model_validate(merged)


# ─── Client ───────────────────────────────────────────────────

class ReconciliationClient:
    """
    OpenAI-compatible chat-completions client with bounded retries.
    Raises ReconciliationUnavailableError on any failure.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        max_chars: Optional[int] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.LLM_API_KEY
        self.api_url = api_url or settings.LLM_API_URL
        self.model = model or settings.LLM_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        self.max_chars = max_chars or settings.RECONCILIATION_MAX_CHARS
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport

    def build_payload(
        self,
        primary: TextCandidate,
        alternates: list[TextCandidate],
        seed: ExtractedRecord,
    ) -> dict:
        return {
            "model": self.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(primary, alternates, seed, self.max_chars)},
            ],
            "response_format": {"type": "json_schema", "json_schema": build_response_schema()},
        }

    async def extract(
        self,
        primary: TextCandidate,
        alternates: list[TextCandidate],
        seed: ExtractedRecord,
    ) -> dict:
        if not self.api_key:
            raise ReconciliationUnavailableError("No API key configured")

        payload = self.build_payload(primary, alternates, seed)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(self.max_retries + 1):
                try:
                    response = await client.post(self.api_url, headers=headers, json=payload)
                    response.raise_for_status()
                    return self._parse(response.json())
                except httpx.HTTPStatusError as e:
                    status = e.response.status_code
                    # 4xx other than rate limiting will not get better on retry
                    if (400 <= status < 500 and status != 429) or attempt >= self.max_retries:
                        raise ReconciliationUnavailableError(f"HTTP {status}: {e.response.text[:300]}") from e
                except httpx.TimeoutException as e:
                    if attempt >= self.max_retries:
                        raise ReconciliationUnavailableError("Timed out") from e
                except httpx.HTTPError as e:
                    if attempt >= self.max_retries:
                        raise ReconciliationUnavailableError(str(e)) from e

                logger.warning("reconciliation_retry", attempt=attempt + 1, url=self.api_url)
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        raise ReconciliationUnavailableError("Retries exhausted")

    @staticmethod
    def _parse(body: dict) -> dict:
        try:
            content = body["choices"][0]["message"]["content"]
            data = json.loads(content) if isinstance(content, str) else content
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ReconciliationUnavailableError(f"Malformed response: {e}") from e
        if not isinstance(data, dict):
            raise ReconciliationUnavailableError("Response is not a JSON object")
        return data


class Reconciler:
    """Wraps the client so callers always get a record back."""

    def __init__(self, client: Optional[ReconciliationClient] = None, enabled: Optional[bool] = None):
        self.client = client or ReconciliationClient()
        self.enabled = settings.reconciliation_enabled if enabled is None else enabled

    async def refine(
        self,
        primary: TextCandidate,
        alternates: list[TextCandidate],
        seed: ExtractedRecord,
    ) -> tuple[ExtractedRecord, ReconciliationOutcome]:
        if not self.enabled:
            reconciliation_total.labels(outcome=ReconciliationOutcome.SKIPPED.value).inc()
            return seed, ReconciliationOutcome.SKIPPED

        try:
            returned = await self.client.extract(primary, alternates, seed)
            merged = merge_reconciled(seed, returned)
        except ReconciliationUnavailableError as e:
            logger.warning("reconciliation_failed", error=e.message)
            reconciliation_total.labels(outcome=ReconciliationOutcome.FAILED.value).inc()
            return seed, ReconciliationOutcome.FAILED
        except ValueError as e:
            # pydantic ValidationError: the service returned values of the wrong shape
            logger.warning("reconciliation_rejected", error=str(e))
            reconciliation_total.labels(outcome=ReconciliationOutcome.FAILED.value).inc()
            return seed, ReconciliationOutcome.FAILED

        logger.info(
            "reconciliation_applied",
            evidence=len(merged.evidence),
            items=len(merged.items),
        )
        reconciliation_total.labels(outcome=ReconciliationOutcome.APPLIED.value).inc()
        return merged, ReconciliationOutcome.APPLIED
