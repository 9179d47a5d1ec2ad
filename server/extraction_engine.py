# extraction_engine.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory
from PIL import Image
from pydantic import ValidationError

from gemini_client import GeminiInvoker, MalformedModelResponse, parse_json_payload
from logging_utils import RosterLogger, component_logger, log_event
from models import (
    AIExtractedShift,
    ExtractedContent,
    IdentifiedPerson,
    PreAnalysis,
    QuestionAnswer,
    QuestionOption,
    RosterIdentifier,
    SmartQuestion,
)
from prompts import (
    TRANSCRIPTION_PROMPT,
    build_analysis_prompt,
    build_extraction_prompt,
    build_text_extraction_prompt,
)

MATCH_TYPES = ("exact", "firstName", "lastName", "initials", "substring", "color", "position")

# Roster photos trip the default filters surprisingly often (names, handwriting).
SAFETY_OFF = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
}


@dataclass
class AnalysisResult:
    is_roster: bool = True
    needs_clarification: bool = False
    questions: List[SmartQuestion] = field(default_factory=list)
    pre_analysis: PreAnalysis = field(default_factory=PreAnalysis)
    notes: Optional[str] = None


@dataclass
class ShiftExtraction:
    success: bool
    shifts: List[Any] = field(default_factory=list)
    identified_person: Optional[IdentifiedPerson] = None
    error: Optional[str] = None


# ------------------------------------------------------------------------------
# COERCION OF UNTRUSTED MODEL JSON
# ------------------------------------------------------------------------------

def coerce_content(data: Dict[str, Any]) -> ExtractedContent:
    """Build ``ExtractedContent`` from a transcription payload."""
    payload = dict(data)
    # Older prompt revisions nested the grid under "structure"
    structure = payload.pop("structure", None)
    if isinstance(structure, dict):
        payload.setdefault("headers", structure.get("headers"))
        payload.setdefault("rows", structure.get("rows"))
    metadata = payload.get("metadata")
    if isinstance(metadata, dict) and "visibleDateRange" in metadata:
        metadata = dict(metadata)
        metadata.setdefault("dateRange", metadata.pop("visibleDateRange"))
        payload["metadata"] = metadata
    try:
        return ExtractedContent.model_validate(payload)
    except ValidationError as e:
        raise MalformedModelResponse(f"Transcription has an unexpected shape: {e.error_count()} errors") from e


def coerce_questions(items: Any) -> List[SmartQuestion]:
    if not isinstance(items, list):
        return []
    questions: List[SmartQuestion] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("question"):
            continue
        options = None
        if isinstance(item.get("options"), list):
            options = [
                QuestionOption(
                    label=str(o["label"]),
                    value=str(o["value"]),
                    description=o.get("description") if isinstance(o.get("description"), str) else None,
                )
                for o in item["options"]
                if isinstance(o, dict) and o.get("label") and o.get("value")
            ]
        questions.append(
            SmartQuestion(
                id=str(item.get("id") or f"q_{uuid.uuid4().hex[:6]}"),
                type=item.get("type") if item.get("type") in ("single_select", "text") else "single_select",
                question=str(item["question"]),
                options=options,
                required=item.get("required") is not False,
            )
        )
    return questions


def coerce_pre_analysis(data: Any) -> PreAnalysis:
    if not isinstance(data, dict):
        return PreAnalysis()
    # Field validators on PreAnalysis drop values of the wrong type
    return PreAnalysis(
        detected_person=data.get("detectedPerson"),
        date_format=data.get("dateFormat"),
        time_format=data.get("timeFormat"),
        shift_patterns=data.get("shiftPatterns"),
    )


def coerce_person(data: Any) -> Optional[IdentifiedPerson]:
    if not isinstance(data, dict):
        return None
    confidence = data.get("confidence")
    if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
        confidence = 0.9
    return IdentifiedPerson(
        name_found=str(data.get("nameFound") or "Unknown"),
        location=str(data.get("location") or "unknown"),
        match_type=data.get("matchType") if data.get("matchType") in MATCH_TYPES else "exact",
        confidence=min(1.0, max(0.0, float(confidence))),
    )


def coerce_shifts(items: Any) -> List[Any]:
    """Mappings become ``AIExtractedShift``; anything else is left for the validator to reject."""
    if not isinstance(items, list):
        return []
    return [AIExtractedShift.model_validate(s) if isinstance(s, dict) else s for s in items]


# ------------------------------------------------------------------------------
# ENGINE
# ------------------------------------------------------------------------------

class RosterExtractionEngine:
    """The three model-backed phases: transcribe, analyze, extract."""

    def __init__(self, invoker: GeminiInvoker, logger: Optional[logging.Logger] = None) -> None:
        self.invoker = invoker
        self.logger = logger or component_logger("extraction_engine")
        self.timer = RosterLogger(self.logger)

    async def _ask(self, stage: str, parts: List[Any], request_id: Optional[str], **kwargs: Any) -> Dict[str, Any]:
        self.timer.start_timer(stage)
        try:
            text = await self.invoker.invoke(parts, request_id=request_id, **kwargs)
        finally:
            self.timer.end_timer(stage)
        return parse_json_payload(text)

    async def transcribe(self, image: Image.Image, request_id: Optional[str] = None) -> ExtractedContent:
        data = await self._ask(
            "transcribe",
            [TRANSCRIPTION_PROMPT, image],
            request_id,
            generation_config=genai.types.GenerationConfig(
                temperature=0.1,
                top_p=0.9,
                top_k=40,
                max_output_tokens=8192,
            ),
            safety_settings=SAFETY_OFF,
        )
        content = coerce_content(data)
        log_event(
            self.logger,
            "transcription_parsed",
            content_type=content.content_type,
            has_multiple_people=content.metadata.has_multiple_people,
            names=len(content.metadata.potential_names),
            uncertain_cells=len(content.uncertain_cells),
            request_id=request_id,
        )
        return content

    async def analyze(self, content: ExtractedContent, today: date, request_id: Optional[str] = None) -> AnalysisResult:
        data = await self._ask(
            "analyze",
            [build_analysis_prompt(content, today)],
            request_id,
            generation_config=genai.types.GenerationConfig(temperature=0.2, max_output_tokens=2048),
        )
        result = AnalysisResult(
            is_roster=data.get("isRoster") is not False,
            needs_clarification=data.get("needsClarification") is True,
            questions=coerce_questions(data.get("questions")),
            pre_analysis=coerce_pre_analysis(data.get("preAnalysis")),
            notes=data.get("analysisNotes") if isinstance(data.get("analysisNotes"), str) else None,
        )
        log_event(
            self.logger,
            "analysis_parsed",
            is_roster=result.is_roster,
            needs_clarification=result.needs_clarification,
            questions=len(result.questions),
            request_id=request_id,
        )
        return result

    async def extract_shifts(
        self,
        content: ExtractedContent,
        answers: List[QuestionAnswer],
        today: date,
        pre_analysis: Optional[PreAnalysis] = None,
        target_person: Optional[str] = None,
        identifier: Optional[RosterIdentifier] = None,
        request_id: Optional[str] = None,
    ) -> ShiftExtraction:
        prompt = build_extraction_prompt(content, answers, today, pre_analysis, target_person, identifier)
        data = await self._ask(
            "extract",
            [prompt],
            request_id,
            generation_config=genai.types.GenerationConfig(temperature=0.1, max_output_tokens=8192),
        )
        if data.get("success") is False:
            error = data.get("error") if isinstance(data.get("error"), str) else None
            return ShiftExtraction(success=False, error=error or "Extraction failed")

        shifts = coerce_shifts(data.get("shifts"))
        log_event(self.logger, "extraction_parsed", shifts=len(shifts), request_id=request_id)
        return ShiftExtraction(
            success=True,
            shifts=shifts,
            identified_person=coerce_person(data.get("identifiedPerson")),
        )

    async def extract_from_text(self, raw_text: str, today: date, request_id: Optional[str] = None) -> List[Any]:
        data = await self._ask(
            "extract_text",
            [build_text_extraction_prompt(raw_text, today)],
            request_id,
            generation_config=genai.types.GenerationConfig(temperature=0.1, max_output_tokens=4096),
        )
        return coerce_shifts(data.get("shifts"))
