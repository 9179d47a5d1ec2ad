"""HTTP-level tests for /process-roster with a stubbed pipeline."""

import asyncio
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import png_base64
from api import create_app
from config import Settings
from gemini_client import GeminiApiError, GeminiTimeoutError
from models import ErrorType, ExtractedContent, ParsedShift, ProcessResult, QuestionGenerationResult, UsageQuota
from roster_store import InMemoryRosterStore

ORIGIN = "http://localhost:5173"
AUTH = {"Authorization": "Bearer good-token"}


class StubPipeline:
    """Returns canned results, or raises/sleeps when told to."""

    def __init__(self, outcome=None):
        self.outcome = outcome
        self.calls = []

    async def _run(self, name, default):
        self.calls.append(name)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        if isinstance(self.outcome, (int, float)):
            await asyncio.sleep(self.outcome)
        return default

    async def generate_questions(self, image, request_id=None):
        return await self._run(
            "questions",
            QuestionGenerationResult(success=True, questions=[], ocr_data=ExtractedContent(), skip_to_extraction=True),
        )

    async def filter_shifts(self, ocr_data, answers, job_configs, job_aliases, pre_analysis=None, identifier=None, request_id=None):
        return await self._run(
            "filter",
            ProcessResult(success=True, shifts=[ParsedShift(id="shift_1", date="2026-01-12", roster_job_name="AM")]),
        )

    async def process(self, image, job_configs, job_aliases, identifier=None, request_id=None):
        return await self._run("process", ProcessResult(success=False, error_type=ErrorType.NO_SHIFTS, error="none"))


@pytest.fixture
def store():
    return InMemoryRosterStore({"good-token": "user-1"}, default_limit=5)


@pytest.fixture
def make_client(store):
    def build(outcome=None, **settings):
        settings.setdefault("cors_allowed_origins", [ORIGIN])
        settings.setdefault("request_timeout_s", 2.0)
        settings.setdefault("log_level", "WARNING")
        pipeline = StubPipeline(outcome)
        app = create_app(Settings(**settings), pipeline=pipeline, store=store)
        return TestClient(app), pipeline

    return build


def this_month():
    return datetime.now(timezone.utc).strftime("%Y-%m")


def questions_body():
    return {"phase": "questions", "imageBase64": png_base64()}


# ── health and CORS ──────────────────────────────────────────────────


def test_health(make_client):
    client, _ = make_client()
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["timestamp"].endswith("Z")
    assert resp.headers["X-Request-ID"] == body["requestId"]


def test_preflight_allowed_origin(make_client):
    client, _ = make_client()
    resp = client.options("/process-roster", headers={"Origin": ORIGIN})
    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == ORIGIN
    assert "authorization" in resp.headers["Access-Control-Allow-Headers"]


def test_preflight_rejected_origin(make_client):
    client, _ = make_client()
    assert client.options("/process-roster", headers={"Origin": "https://evil.example"}).status_code == 403


def test_disallowed_origin_is_rejected_before_auth(make_client):
    client, pipeline = make_client()
    resp = client.post("/process-roster", json=questions_body(), headers={"Origin": "https://evil.example"})
    assert resp.status_code == 403
    assert pipeline.calls == []


def test_allowed_origin_is_echoed(make_client):
    client, _ = make_client()
    resp = client.post("/process-roster", json=questions_body(), headers={**AUTH, "Origin": ORIGIN})
    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == ORIGIN


# ── auth and validation ──────────────────────────────────────────────


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer wrong"}])
def test_bad_credentials_are_401(make_client, headers):
    client, _ = make_client()
    resp = client.post("/process-roster", json=questions_body(), headers=headers)
    assert resp.status_code == 401
    assert resp.json()["errorType"] == "auth"


def test_invalid_json_is_400(make_client):
    client, _ = make_client()
    resp = client.post("/process-roster", content=b"{nope", headers={**AUTH, "Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["errorType"] == "invalid_input"


def test_unknown_phase_is_400(make_client):
    client, _ = make_client()
    resp = client.post("/process-roster", json={"phase": "bogus"}, headers=AUTH)
    assert resp.status_code == 400
    assert "bogus" in resp.json()["error"]


def test_missing_image_is_400(make_client):
    client, pipeline = make_client()
    resp = client.post("/process-roster", json={"phase": "questions"}, headers=AUTH)
    assert resp.status_code == 400
    assert pipeline.calls == []


def test_oversize_image_is_413(make_client):
    client, _ = make_client(max_image_bytes=10)
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 413


def test_filter_without_ocr_data_is_400(make_client):
    client, _ = make_client()
    resp = client.post("/process-roster", json={"phase": "filter"}, headers=AUTH)
    assert resp.status_code == 400


# ── quota ────────────────────────────────────────────────────────────


def test_questions_consume_quota_and_report_usage(make_client, store):
    client, _ = make_client()
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 200
    body = resp.json()
    assert (body["scansUsed"], body["scanLimit"]) == (1, 5)
    assert body["skipToExtraction"] is True
    assert store.quotas["user-1"].scans_used_this_period == 1
    assert store.audit_records[0].phase == "questions"


def test_exhausted_quota_is_429(make_client, store):
    store.quotas["user-1"] = UsageQuota(scans_used_this_period=5, scan_limit=5, period_key=this_month())
    client, pipeline = make_client()
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 429
    body = resp.json()
    assert body["errorType"] == "limit_exceeded"
    assert (body["scansUsed"], body["scanLimit"]) == (5, 5)
    assert pipeline.calls == []


def test_new_month_resets_quota(make_client, store):
    store.quotas["user-1"] = UsageQuota(scans_used_this_period=5, scan_limit=5, period_key="2000-01")
    client, _ = make_client()
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 200
    assert resp.json()["scansUsed"] == 1
    assert store.quotas["user-1"].period_key == this_month()
    assert store.quotas["user-1"].scans_used_this_period == 1


def test_filter_does_not_consume_quota(make_client, store):
    client, pipeline = make_client()
    resp = client.post(
        "/process-roster",
        json={"phase": "filter", "ocrData": {"contentType": "text", "rawText": "Mon 9-5"}, "answers": []},
        headers=AUTH,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["shifts"][0]["rosterJobName"] == "AM"
    assert "scansUsed" not in body
    assert "user-1" not in store.quotas
    assert pipeline.calls == ["filter"]
    assert store.audit_records[0].to_row()["parsed_result"]["phase"] == "filter"


def test_legacy_call_runs_process(make_client, store):
    client, pipeline = make_client()
    resp = client.post("/process-roster", json={"imageBase64": png_base64()}, headers=AUTH)
    assert resp.status_code == 200
    assert resp.json()["errorType"] == "no_shifts"
    assert pipeline.calls == ["process"]
    assert store.quotas["user-1"].scans_used_this_period == 1


# ── upstream failures ────────────────────────────────────────────────


def test_pipeline_timeout_is_504(make_client):
    client, _ = make_client(outcome=1.0, request_timeout_s=0.05)
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 504
    assert resp.json()["errorType"] == "timeout"


def test_model_timeout_is_504(make_client):
    client, _ = make_client(outcome=GeminiTimeoutError("gemini-2.0-flash", 45))
    assert client.post("/process-roster", json=questions_body(), headers=AUTH).status_code == 504


def test_missing_model_is_502_config(make_client):
    client, _ = make_client(outcome=GeminiApiError(404, "gemini-9", "not found"))
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 502
    body = resp.json()
    assert body["errorType"] == "config"
    assert "gemini-9" in body["error"]


def test_upstream_outage_is_502_network(make_client):
    client, _ = make_client(outcome=GeminiApiError(503, "gemini-2.0-flash", "overloaded"))
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 502
    assert resp.json()["errorType"] == "network"


def test_unexpected_error_is_500(make_client):
    client, _ = make_client(outcome=RuntimeError("boom"))
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 500
    body = resp.json()
    assert body["errorType"] == "unknown"
    assert body["error"] == "boom"
    assert resp.headers["X-Request-ID"] == body["requestId"]


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_model_credentials_are_502_auth(make_client, status):
    client, _ = make_client(outcome=GeminiApiError(status, "gemini-2.0-flash", "API key not valid"))
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 502
    assert resp.json()["errorType"] == "auth"


def test_other_client_error_from_model_is_502_unknown(make_client):
    client, _ = make_client(outcome=GeminiApiError(400, "gemini-2.0-flash", "Request contains an invalid argument"))
    resp = client.post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 502
    assert resp.json()["errorType"] == "unknown"


class BrokenAuthStore(InMemoryRosterStore):
    async def verify(self, token):
        raise asyncio.TimeoutError()


def test_auth_backend_failure_is_json_500():
    store = BrokenAuthStore()
    app = create_app(Settings(log_level="WARNING"), pipeline=StubPipeline(), store=store)
    resp = TestClient(app).post("/process-roster", json=questions_body(), headers=AUTH)
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    body = resp.json()
    assert body["errorType"] == "unknown"
    assert body["requestId"] == resp.headers["X-Request-ID"]
