# gemini_client.py
"""
Gemini invocation with ordered model fallback.

Each call walks the configured model candidates. A candidate the API does not
know (404) is skipped; transient upstream failures (429/500/503) are retried
on the same candidate with exponential backoff; anything else is raised as a
``GeminiApiError`` carrying the HTTP status so the API layer can map it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from config import model_candidates as default_model_candidates
from logging_utils import component_logger, current_request_id, log_event

TRANSIENT_STATUSES = frozenset({429, 500, 503})


# ------------------------------------------------------------------------------
# ERRORS
# ------------------------------------------------------------------------------

class GeminiApiError(Exception):
    """Upstream model failure with the HTTP status it maps to."""

    def __init__(
        self,
        status: int,
        model: Optional[str],
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.model = model
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, model={self.model!r}, message={self.message!r})"


class GeminiTimeoutError(GeminiApiError):
    def __init__(self, model: Optional[str], timeout: float) -> None:
        super().__init__(504, model, f"Model call timed out after {timeout:g}s", {"timeout_s": timeout})


class ModelResponseError(ValueError):
    """The model answered, but not with usable JSON."""


class EmptyModelResponse(ModelResponseError):
    pass


class MalformedModelResponse(ModelResponseError):
    pass


def _status_of(exc: BaseException) -> int:
    if isinstance(exc, google_exceptions.GoogleAPICallError):
        return int(exc.code or 500)
    # Transport failures without an HTTP status
    return 503


def _is_transient(exc: BaseException) -> bool:
    return (
        isinstance(exc, GeminiApiError)
        and not isinstance(exc, GeminiTimeoutError)
        and exc.status in TRANSIENT_STATUSES
    )


def _response_text(response: Any) -> str:
    try:
        return response.text or ""
    except ValueError:
        # Blocked or empty candidates: the SDK raises instead of returning ""
        return ""


def _usage(response: Any) -> Dict[str, int]:
    usage = getattr(response, "usage_metadata", None)
    if usage is None:
        return {}
    return {
        "tokens_in": getattr(usage, "prompt_token_count", 0) or 0,
        "tokens_out": getattr(usage, "candidates_token_count", 0) or 0,
        "tokens_total": getattr(usage, "total_token_count", 0) or 0,
    }


# ------------------------------------------------------------------------------
# JSON PAYLOADS
# ------------------------------------------------------------------------------

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def parse_json_payload(text: Optional[str]) -> Dict[str, Any]:
    """Pull the JSON object out of a model reply (fenced or bare)."""
    if not text or not text.strip():
        raise EmptyModelResponse("Model returned an empty response")

    fenced = _FENCED_BLOCK.search(text)
    body = fenced.group(1) if fenced else text.strip()

    data: Any = None
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        start, end = body.find("{"), body.rfind("}")
        if start != -1 and end > start:
            try:
                data = json.loads(body[start:end + 1])
            except json.JSONDecodeError:
                data = None

    if not isinstance(data, dict):
        raise MalformedModelResponse("Model response is not a JSON object")
    return data


# ------------------------------------------------------------------------------
# INVOKER
# ------------------------------------------------------------------------------

class GeminiInvoker:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model_candidates: Optional[Sequence[str]] = None,
        timeout: float = 45.0,
        max_attempts: int = 2,
        backoff_s: float = 1.0,
        model_factory: Optional[Callable[[str], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or component_logger("gemini")
        self.model_candidates: List[str] = (
            list(model_candidates) if model_candidates is not None else default_model_candidates()
        )
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_s = backoff_s
        self._model_factory = model_factory or genai.GenerativeModel

        if api_key:
            genai.configure(api_key=api_key)
        elif model_factory is None:
            self.logger.warning("GEMINI_API_KEY not set; model calls will fail")

    async def _call_once(
        self,
        model_name: str,
        prompt_parts: List[Any],
        timeout: float,
        request_id: Optional[str],
        kwargs: Dict[str, Any],
    ) -> str:
        t0 = time.perf_counter()
        try:
            model = self._model_factory(model_name)
            response = await asyncio.wait_for(
                model.generate_content_async(prompt_parts, **kwargs),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, google_exceptions.DeadlineExceeded) as e:
            log_event(
                self.logger,
                "gemini_call_timeout",
                level=logging.ERROR,
                model=model_name,
                duration_ms=int((time.perf_counter() - t0) * 1000),
                request_id=request_id,
            )
            raise GeminiTimeoutError(model_name, timeout) from e
        except Exception as e:
            status = _status_of(e)
            log_event(
                self.logger,
                "gemini_call_failed",
                level=logging.WARNING if 400 <= status < 500 else logging.ERROR,
                model=model_name,
                status=status,
                error=str(e),
                duration_ms=int((time.perf_counter() - t0) * 1000),
                request_id=request_id,
            )
            raise GeminiApiError(status, model_name, str(e), {"error_class": type(e).__name__}) from e

        text = _response_text(response)
        log_event(
            self.logger,
            "gemini_call_finished",
            model=model_name,
            duration_ms=int((time.perf_counter() - t0) * 1000),
            response_chars=len(text),
            request_id=request_id,
            **_usage(response),
        )
        return text

    async def _call_with_retry(
        self,
        model_name: str,
        prompt_parts: List[Any],
        timeout: float,
        request_id: Optional[str],
        kwargs: Dict[str, Any],
    ) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_s, max=8),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._call_once(model_name, prompt_parts, timeout, request_id, kwargs)
        raise GeminiApiError(500, model_name, "Retry loop exited without a result")

    async def invoke(
        self,
        prompt_parts: List[Any],
        *,
        model_candidates: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        request_id: Optional[str] = None,
        generation_config: Any = None,
        safety_settings: Any = None,
    ) -> str:
        """Return the text of the first candidate model that answers."""
        candidates = list(model_candidates) if model_candidates is not None else self.model_candidates
        timeout = timeout or self.timeout
        request_id = request_id or current_request_id()

        kwargs: Dict[str, Any] = {}
        if generation_config is not None:
            kwargs["generation_config"] = generation_config
        if safety_settings is not None:
            kwargs["safety_settings"] = safety_settings

        last_not_found: Optional[GeminiApiError] = None
        for model_name in candidates:
            try:
                return await self._call_with_retry(model_name, prompt_parts, timeout, request_id, kwargs)
            except GeminiApiError as e:
                if e.status != 404:
                    raise
                last_not_found = e
                log_event(
                    self.logger,
                    "gemini_model_unavailable",
                    level=logging.WARNING,
                    model=model_name,
                    request_id=request_id,
                )

        if last_not_found is not None:
            raise last_not_found
        raise GeminiApiError(500, None, "No Gemini model candidates configured")
