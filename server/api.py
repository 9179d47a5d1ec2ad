from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import Field, ValidationError

from config import Settings, load_settings
from extraction_engine import RosterExtractionEngine
from gemini_client import GeminiApiError, GeminiInvoker, GeminiTimeoutError
from image_processing import ImagePayloadError, decode_image_base64, load_roster_image
from logging_utils import component_logger, configure_logging, current_request_id, log_event, new_request_id
from models import (
    ErrorType,
    ExtractedContent,
    JobAlias,
    JobConfig,
    PreAnalysis,
    QuestionAnswer,
    RosterIdentifier,
    WireModel,
)
from pipeline import RosterPipeline
from roster_store import AuditRecord, AuthenticatedUser, RosterStore, build_store
from security import cors_headers, extract_bearer_token, is_origin_allowed
from usage import UsageDecision, UsageGovernor

PHASES = (None, "questions", "filter")


# ------------------------------------------------------------------------------
# REQUEST MODEL
# ------------------------------------------------------------------------------

class RosterRequest(WireModel):
    phase: Optional[Literal["questions", "filter"]] = None
    image_base64: Optional[str] = None
    ocr_data: Optional[ExtractedContent] = None
    answers: List[QuestionAnswer] = Field(default_factory=list)
    job_configs: List[JobConfig] = Field(default_factory=list)
    job_aliases: List[JobAlias] = Field(default_factory=list)
    pre_analysis: Optional[PreAnalysis] = None
    identifier: Optional[RosterIdentifier] = None


def _gemini_error_type(status: int) -> ErrorType:
    if status == 404:
        return ErrorType.CONFIG
    if status in (401, 403):
        return ErrorType.AUTH
    if status >= 500:
        return ErrorType.NETWORK
    return ErrorType.UNKNOWN


# ------------------------------------------------------------------------------
# APP FACTORY
# ------------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[RosterPipeline] = None,
    store: Optional[RosterStore] = None,
) -> FastAPI:
    settings = settings or load_settings()
    root_logger = configure_logging(settings.log_level, settings.service_name, settings.env, settings.log_file)
    logger = component_logger("api", root_logger)

    store = store or build_store(settings)
    if pipeline is None:
        invoker = GeminiInvoker(
            api_key=settings.gemini_api_key,
            model_candidates=settings.gemini_models,
            timeout=settings.gemini_timeout_s,
            max_attempts=settings.gemini_max_attempts,
        )
        pipeline = RosterPipeline(RosterExtractionEngine(invoker))
    governor = UsageGovernor(store, default_limit=settings.default_scan_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_event(
            logger,
            "service_started",
            models=settings.gemini_models,
            request_timeout_s=settings.request_timeout_s,
            store=type(store).__name__,
        )
        yield
        await store.close()

    app = FastAPI(title="Roster-Intel", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.store = store
    app.state.governor = governor

    # ---------------- request logging (Loki-ready) ----------------

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        rid = new_request_id()
        start = time.time()
        log_event(
            logger,
            "http_request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            log_event(
                logger,
                "http_request_finished",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=int((time.time() - start) * 1000),
            )

    # ---------------- helpers ----------------

    def respond(status: int, payload: Dict[str, Any], cors: Optional[Dict[str, str]] = None) -> JSONResponse:
        payload["requestId"] = current_request_id()
        return JSONResponse(status_code=status, content=payload, headers=cors or {})

    def fail(
        status: int,
        message: str,
        error_type: ErrorType,
        cors: Optional[Dict[str, str]] = None,
        **extra: Any,
    ) -> JSONResponse:
        log_event(
            logger,
            "request_rejected",
            level=logging.WARNING if status < 500 else logging.ERROR,
            status_code=status,
            error_type=error_type.value,
            error=message,
        )
        return respond(status, {"success": False, "error": message, "errorType": error_type.value, **extra}, cors)

    async def after_call(
        user: AuthenticatedUser,
        phase: str,
        result: Dict[str, Any],
        elapsed_ms: int,
        decision: Optional[UsageDecision],
    ) -> None:
        jobs, names = [], []
        if decision is not None:
            jobs.append(governor.record_scan(user.id, decision))
            names.append("quota_increment")
        jobs.append(
            store.record_scan(
                AuditRecord(user_id=user.id, phase=phase, parsed_result=result, processing_time_ms=elapsed_ms)
            )
        )
        names.append("audit_record")

        for name, outcome in zip(names, await asyncio.gather(*jobs, return_exceptions=True)):
            if isinstance(outcome, BaseException):
                log_event(logger, f"{name}_failed", level=logging.WARNING, user_id=user.id, error=str(outcome))

    def elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    # ---------------- routes ----------------

    @app.get("/health")
    async def health() -> JSONResponse:
        return respond(
            200,
            {
                "status": "ok",
                "version": app.version,
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            },
        )

    @app.options("/process-roster")
    async def preflight(request: Request) -> JSONResponse:
        origin = request.headers.get("origin")
        if not is_origin_allowed(
            origin, settings.cors_allowed_origins, settings.cors_preview_suffix, settings.cors_preview_project
        ):
            return fail(403, "Origin not allowed", ErrorType.AUTH)
        return respond(200, {"ok": True}, cors_headers(origin))

    @app.post("/process-roster")
    async def process_roster(request: Request) -> JSONResponse:
        started = time.perf_counter()
        origin = request.headers.get("origin")

        if not is_origin_allowed(
            origin, settings.cors_allowed_origins, settings.cors_preview_suffix, settings.cors_preview_project
        ):
            return fail(403, "Origin not allowed", ErrorType.AUTH)
        cors = cors_headers(origin) if origin else {}

        token = extract_bearer_token(request.headers.get("authorization"))
        if token is None:
            return fail(401, "Missing authorization header", ErrorType.AUTH, cors)
        try:
            user = await store.verify(token)
        except Exception as e:
            logger.exception("Token verification failed")
            return fail(500, str(e) or "Token verification failed", ErrorType.UNKNOWN, cors)
        if user is None:
            return fail(401, "Unauthorized", ErrorType.AUTH, cors)

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return fail(400, "Request body is not valid JSON", ErrorType.INVALID_INPUT, cors)
        if not isinstance(body, dict):
            return fail(400, "Request body must be a JSON object", ErrorType.INVALID_INPUT, cors)

        phase = body.get("phase")
        if phase not in PHASES:
            return fail(400, f"Unknown phase: {phase}", ErrorType.INVALID_INPUT, cors)
        try:
            req = RosterRequest.model_validate(body)
        except ValidationError as e:
            return fail(400, f"Invalid request: {e.error_count()} validation errors", ErrorType.INVALID_INPUT, cors)

        phase_name = phase or "legacy"
        rid = current_request_id()
        log_event(logger, "roster_request_accepted", phase=phase_name, user_id=user.id)

        try:
            if phase == "filter":
                if req.ocr_data is None:
                    return fail(400, "Missing ocrData", ErrorType.INVALID_INPUT, cors)
                result = await asyncio.wait_for(
                    pipeline.filter_shifts(
                        req.ocr_data,
                        req.answers,
                        req.job_configs,
                        req.job_aliases,
                        pre_analysis=req.pre_analysis,
                        identifier=req.identifier,
                        request_id=rid,
                    ),
                    timeout=settings.request_timeout_s,
                )
                payload = result.to_wire()
                await after_call(user, phase_name, payload, elapsed_ms(started), None)
                return respond(200, {**payload, "processingTimeMs": elapsed_ms(started)}, cors)

            image_bytes = decode_image_base64(req.image_base64, settings.max_image_bytes)
            image = await load_roster_image(image_bytes, settings.max_image_dimension, rid)

            decision = await governor.check(user.id)
            if not decision.allowed:
                return fail(
                    429,
                    f"Monthly scan limit ({decision.scan_limit}) reached. Resets next month.",
                    ErrorType.LIMIT_EXCEEDED,
                    cors,
                    scansUsed=decision.scans_used,
                    scanLimit=decision.scan_limit,
                )

            if phase == "questions":
                outcome = pipeline.generate_questions(image, request_id=rid)
            else:
                outcome = pipeline.process(
                    image, req.job_configs, req.job_aliases, identifier=req.identifier, request_id=rid
                )
            result = await asyncio.wait_for(outcome, timeout=settings.request_timeout_s)

            payload = result.to_wire()
            await after_call(user, phase_name, payload, elapsed_ms(started), decision)
            return respond(
                200,
                {
                    **payload,
                    "processingTimeMs": elapsed_ms(started),
                    "scansUsed": decision.scans_used + 1,
                    "scanLimit": decision.scan_limit,
                },
                cors,
            )

        except ImagePayloadError as e:
            return fail(e.status, e.message, ErrorType.INVALID_INPUT, cors)
        except (GeminiTimeoutError, asyncio.TimeoutError):
            return fail(
                504,
                "Request timed out. Please try again.",
                ErrorType.TIMEOUT,
                cors,
                processingTimeMs=elapsed_ms(started),
            )
        except GeminiApiError as e:
            message = (
                f"Gemini model not found ({e.model}). Check GEMINI_MODEL or API access."
                if e.status == 404
                else e.message or "Gemini API error"
            )
            return fail(502, message, _gemini_error_type(e.status), cors, processingTimeMs=elapsed_ms(started))
        except Exception as e:
            logger.exception("Unhandled error while processing roster")
            return fail(
                500,
                str(e) or "An unexpected error occurred",
                ErrorType.UNKNOWN,
                cors,
                processingTimeMs=elapsed_ms(started),
            )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api:app", host="0.0.0.0", port=8000)
