"""
Tests for reconciliation: merge rules, request shaping and the HTTP client.
"""

import json

import httpx
import pytest

from app.errors import ReconciliationUnavailableError
from app.models.enums import ReconciliationOutcome, TextSource
from app.pipeline.reconciliation import (
    ReconciliationClient, Reconciler, build_response_schema, build_user_prompt, merge_reconciled,
)
from app.schemas.contracts import TextCandidate
from app.schemas.records import TEXT_FIELDS


PRIMARY = TextCandidate(source=TextSource.EMBEDDED_TEXT, text="Shipment No.: 1234567")
ALTERNATE = TextCandidate(source=TextSource.OCR_TEXT, text="Shipment N0.: 1234567")


def _completion(payload: dict) -> dict:
    return {"choices": [{"message": {"content": json.dumps(payload)}}]}


def _client(handler, **kwargs) -> ReconciliationClient:
    return ReconciliationClient(
        api_key="test-key",
        api_url="https://llm.test/v1/chat/completions",
        model="test-model",
        retry_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestMerge:

    def test_blank_never_overrides(self, sample_record):
        merged = merge_reconciled(sample_record, {"shipment_no": "  ", "order_no": None})
        assert merged.shipment_no == "1234567"
        assert merged.order_no == "4500123456"

    def test_non_blank_overrides_and_fills(self, sample_record):
        merged = merge_reconciled(sample_record, {"shipment_no": "7654321", "hs_code": "32061100"})
        assert merged.shipment_no == "7654321"
        assert merged.hs_code == "32061100"

    def test_numeric_zero_is_a_value(self, sample_record):
        merged = merge_reconciled(sample_record, {"total_pkgs": 0, "total_net_kg": None})
        assert merged.total_pkgs == 0
        assert merged.total_net_kg == 10000.0

    def test_items_replaced_only_by_non_empty_list(self, sample_record):
        assert len(merge_reconciled(sample_record, {"items": []}).items) == 1
        merged = merge_reconciled(sample_record, {"items": [
            {"product_name": "A", "net_weight": 1.0},
            {"product_name": "B", "net_weight": 2.0},
        ]})
        assert [i.product_name for i in merged.items] == ["A", "B"]

    def test_evidence_needs_field(self, sample_record):
        merged = merge_reconciled(sample_record, {"evidence": [
            {"field": "shipment_no", "value": "1234567", "snippet": "Shipment No.: 1234567"},
            {"value": "orphan"},
        ]})
        assert [e.field for e in merged.evidence] == ["shipment_no"]

    def test_unknown_keys_ignored(self, sample_record):
        merged = merge_reconciled(sample_record, {"not_a_field": "x"})
        assert merged == sample_record


class TestRequestShaping:

    def test_schema_requires_every_field(self):
        schema = build_response_schema()["schema"]
        assert schema["additionalProperties"] is False
        assert set(TEXT_FIELDS) <= set(schema["required"])
        assert {"items", "evidence", "total_pkgs"} <= set(schema["properties"])

    def test_prompt_carries_seed_and_two_alternates(self, sample_record):
        alternates = [
            TextCandidate(source=TextSource.LAYOUT_TEXT, text="alt one"),
            TextCandidate(source=TextSource.OCR_TEXT, text="alt two"),
            TextCandidate(source=TextSource.OCR_TEXT, text="alt three"),
        ]
        prompt = build_user_prompt(PRIMARY, alternates, sample_record, max_chars=1000)
        assert "PRIMARY TEXT:\n<<<Shipment No.: 1234567>>>" in prompt
        assert "alt two" in prompt
        assert "alt three" not in prompt
        assert '"shipment_no": "1234567"' in prompt

    def test_primary_text_truncated(self, sample_record):
        primary = TextCandidate(source=TextSource.EMBEDDED_TEXT, text="x" * 50)
        prompt = build_user_prompt(primary, [], sample_record, max_chars=10)
        assert "<<<" + "x" * 10 + ">>>" in prompt


class TestClient:

    @pytest.mark.asyncio
    async def test_successful_extract(self, sample_record):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion({"shipment_no": "1234567"}))

        data = await _client(handler).extract(PRIMARY, [ALTERNATE], sample_record)
        assert data == {"shipment_no": "1234567"}
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["response_format"]["type"] == "json_schema"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, sample_record):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json=_completion({"order_no": "4500123456"}))

        data = await _client(handler, max_retries=2).extract(PRIMARY, [], sample_record)
        assert data == {"order_no": "4500123456"}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, sample_record):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401, text="bad key")

        with pytest.raises(ReconciliationUnavailableError):
            await _client(handler).extract(PRIMARY, [], sample_record)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_content(self, sample_record):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": [{"message": {"content": "not json"}}]})

        with pytest.raises(ReconciliationUnavailableError):
            await _client(handler).extract(PRIMARY, [], sample_record)

    @pytest.mark.asyncio
    async def test_no_api_key(self, sample_record):
        client = _client(lambda r: httpx.Response(200))
        client.api_key = None
        with pytest.raises(ReconciliationUnavailableError):
            await client.extract(PRIMARY, [], sample_record)


class TestReconciler:

    @pytest.mark.asyncio
    async def test_disabled_skips(self, sample_record):
        record, outcome = await Reconciler(enabled=False).refine(PRIMARY, [], sample_record)
        assert outcome == ReconciliationOutcome.SKIPPED
        assert record is sample_record

    @pytest.mark.asyncio
    async def test_failure_keeps_seed(self, sample_record):
        client = _client(lambda r: httpx.Response(500, text="down"), max_retries=0)
        record, outcome = await Reconciler(client=client, enabled=True).refine(PRIMARY, [], sample_record)
        assert outcome == ReconciliationOutcome.FAILED
        assert record == sample_record

    @pytest.mark.asyncio
    async def test_applied_merges(self, sample_record):
        client = _client(lambda r: httpx.Response(200, json=_completion({
            "delivery_no": "80012345",
            "shipment_no": "",
        })))
        record, outcome = await Reconciler(client=client, enabled=True).refine(PRIMARY, [ALTERNATE], sample_record)
        assert outcome == ReconciliationOutcome.APPLIED
        assert record.delivery_no == "80012345"
        assert record.shipment_no == "1234567"

    @pytest.mark.asyncio
    async def test_wrong_shape_is_a_failure(self, sample_record):
        client = _client(lambda r: httpx.Response(200, json=_completion({
            "items": [{"package_count": {"value": 400}}],
        })))
        record, outcome = await Reconciler(client=client, enabled=True).refine(PRIMARY, [], sample_record)
        assert outcome == ReconciliationOutcome.FAILED
        assert record == sample_record
