# pipeline.py
from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from classifier import is_simple
from extraction_engine import RosterExtractionEngine
from gemini_client import EmptyModelResponse, MalformedModelResponse, ModelResponseError
from job_resolver import resolve_job
from logging_utils import RosterLogger, component_logger, log_event
from models import (
    DATA_CLARIFY_PREFIX,
    PERSON_SELECT_ID,
    AIExtractedShift,
    ErrorType,
    ExtractedContent,
    IdentifiedPerson,
    JobAlias,
    JobConfig,
    ParsedShift,
    PreAnalysis,
    ProcessResult,
    QuestionAnswer,
    QuestionGenerationResult,
    QuestionOption,
    RosterIdentifier,
    SmartQuestion,
    UncertainCell,
    ValidatedShift,
)
from validators import validate_shifts

BASELINE_CONFIDENCE = 0.95
TEXT_FALLBACK_CONFIDENCE = 0.8
MISSING_TIME_PENALTY = 0.25
MISSING_JOB_PENALTY = 0.05
TEXT_FALLBACK_MIN_CHARS = 50

TEXT_FALLBACK_PERSON = IdentifiedPerson(
    name_found="Extracted from text",
    location="text",
    match_type="substring",
    confidence=TEXT_FALLBACK_CONFIDENCE,
)

_ROW = re.compile(r"row\s*(\d+)", re.IGNORECASE)
_COLUMN = re.compile(r"col(?:umn)?\s*(\d+)", re.IGNORECASE)

Confirmation = Tuple[int, UncertainCell, str]


# ------------------------------------------------------------------------------
# HELPERS
# ------------------------------------------------------------------------------

def calculate_total_hours(start: Optional[str], end: Optional[str]) -> Optional[float]:
    """Hours between two HH:MM times, wrapping past midnight."""
    if not start or not end:
        return None
    sh, sm = (int(x) for x in start.split(":"))
    eh, em = (int(x) for x in end.split(":"))
    diff = (eh * 60 + em) - (sh * 60 + sm)
    if diff < 0:
        diff += 24 * 60
    return round(diff / 60, 2)


def shift_confidence(shift: ValidatedShift, baseline: float = BASELINE_CONFIDENCE) -> float:
    confidence = baseline
    if not shift.start_time or not shift.end_time:
        confidence -= MISSING_TIME_PENALTY
    if not shift.job_name:
        confidence -= MISSING_JOB_PENALTY
    return round(min(1.0, max(0.0, confidence)), 2)


def uncertain_cell_questions(content: ExtractedContent, existing: Sequence[SmartQuestion]) -> List[SmartQuestion]:
    """One confirmation question per uncertain cell the model did not already ask about."""
    asked = {q.id for q in existing}
    questions: List[SmartQuestion] = []
    for index, cell in enumerate(content.uncertain_cells):
        qid = f"{DATA_CLARIFY_PREFIX}{index}"
        if qid in asked:
            continue
        where = f" ({cell.location})" if cell.location else ""
        if cell.alternative_value:
            questions.append(
                SmartQuestion(
                    id=qid,
                    type="single_select",
                    question=f'Which reading is correct{where}?',
                    options=[
                        QuestionOption(label=cell.read_value, value=cell.read_value, description=cell.reason or None),
                        QuestionOption(label=cell.alternative_value, value=cell.alternative_value),
                    ],
                    required=True,
                )
            )
        else:
            questions.append(
                SmartQuestion(
                    id=qid,
                    type="text",
                    question=f'Please confirm the value read as "{cell.read_value}"{where}.',
                    required=True,
                )
            )
    return questions


def split_answers(
    content: ExtractedContent, answers: Sequence[QuestionAnswer]
) -> Tuple[List[Confirmation], List[QuestionAnswer]]:
    confirmations: List[Confirmation] = []
    clarifications: List[QuestionAnswer] = []
    for answer in answers:
        if not answer.question_id.startswith(DATA_CLARIFY_PREFIX):
            clarifications.append(answer)
            continue
        suffix = answer.question_id[len(DATA_CLARIFY_PREFIX):]
        if not suffix.isdigit() or int(suffix) >= len(content.uncertain_cells):
            continue
        value = answer.value.strip()
        if value:
            confirmations.append((int(suffix), content.uncertain_cells[int(suffix)], value))
    return confirmations, clarifications


def _locate(location: str) -> Optional[Tuple[int, int]]:
    row, column = _ROW.search(location or ""), _COLUMN.search(location or "")
    if not row or not column:
        return None
    # Locations are written 1-based ("row 2, column 3"); "row 0" is not a cell
    r, c = int(row.group(1)) - 1, int(column.group(1)) - 1
    if r < 0 or c < 0:
        return None
    return r, c


def apply_confirmations(content: ExtractedContent, confirmations: Sequence[Confirmation]) -> ExtractedContent:
    """Copy of ``content`` with confirmed readings written in and their cells resolved."""
    corrected = content.model_copy(deep=True)
    resolved = set()

    for index, cell, value in confirmations:
        resolved.add(index)
        read = cell.read_value
        if not read or value == read:
            continue

        rows = corrected.rows or []
        spot = _locate(cell.location)
        in_grid = spot is not None and 0 <= spot[0] < len(rows) and 0 <= spot[1] < len(rows[spot[0]])
        # A located cell without the reading means the location is wrong
        if in_grid and read in rows[spot[0]][spot[1]]:
            r, c = spot
            rows[r][c] = rows[r][c].replace(read, value)
        else:
            for row in rows:
                for c, text in enumerate(row):
                    if text == read:
                        row[c] = value

        corrected.raw_text = corrected.raw_text.replace(read, value)

    corrected.uncertain_cells = [c for i, c in enumerate(content.uncertain_cells) if i not in resolved]
    return corrected


def apply_confirmed_labels(shifts: List[object], confirmations: Sequence[Confirmation]) -> List[object]:
    replacements: Dict[str, str] = {
        cell.read_value: value for _, cell, value in confirmations if cell.read_value and cell.read_value != value
    }
    if not replacements:
        return shifts
    out: List[object] = []
    for shift in shifts:
        if isinstance(shift, AIExtractedShift):
            updates = {}
            if shift.job_name in replacements:
                updates["job_name"] = replacements[shift.job_name]
            if shift.location in replacements:
                updates["location"] = replacements[shift.location]
            if updates:
                shift = shift.model_copy(update=updates)
        out.append(shift)
    return out


# ------------------------------------------------------------------------------
# PIPELINE
# ------------------------------------------------------------------------------

class RosterPipeline:
    def __init__(
        self,
        engine: RosterExtractionEngine,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.engine = engine
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or component_logger("pipeline")
        self.timer = RosterLogger(self.logger)

    def _to_parsed(
        self,
        shifts: Sequence[ValidatedShift],
        baseline: float,
        job_configs: Sequence[JobConfig],
        job_aliases: Sequence[JobAlias],
    ) -> List[ParsedShift]:
        parsed: List[ParsedShift] = []
        for shift in shifts:
            job_name = shift.job_name or shift.location or "Work"
            parsed.append(
                ParsedShift(
                    id=f"shift_{uuid.uuid4().hex}",
                    date=shift.date,
                    start_time=shift.start_time,
                    end_time=shift.end_time,
                    total_hours=calculate_total_hours(shift.start_time, shift.end_time),
                    roster_job_name=job_name,
                    mapped_job_id=resolve_job(job_name, job_aliases, job_configs),
                    confidence=shift_confidence(shift, baseline),
                )
            )
        return parsed

    # ---------------- phase: questions ----------------

    async def generate_questions(self, image: Image.Image, request_id: Optional[str] = None) -> QuestionGenerationResult:
        self.timer.start_timer("generate_questions")
        try:
            return await self._generate_questions(image, request_id)
        finally:
            self.timer.end_timer("generate_questions")

    async def _generate_questions(self, image: Image.Image, request_id: Optional[str]) -> QuestionGenerationResult:
        try:
            content = await self.engine.transcribe(image, request_id)
        except EmptyModelResponse:
            log_event(self.logger, "transcription_empty", level=logging.WARNING, request_id=request_id)
            return QuestionGenerationResult(
                success=False, error="No content in transcription response", error_type=ErrorType.OCR_FAILED
            )
        except MalformedModelResponse:
            log_event(self.logger, "transcription_unparseable", level=logging.WARNING, request_id=request_id)
            return QuestionGenerationResult(
                success=False, error="Failed to parse transcription result", error_type=ErrorType.PARSE_ERROR
            )

        if is_simple(content):
            names = content.metadata.potential_names
            log_event(self.logger, "questions_skipped", reason="simple_content", request_id=request_id)
            return QuestionGenerationResult(
                success=True,
                questions=[],
                ocr_data=content,
                skip_to_extraction=True,
                pre_analysis=PreAnalysis(
                    detected_person=names[0] if names else None,
                    date_format="auto",
                    time_format="auto",
                ),
            )

        questions: List[SmartQuestion] = []
        pre_analysis = PreAnalysis()
        needs_clarification = False
        try:
            analysis = await self.engine.analyze(content, self.clock().date(), request_id)
        except ModelResponseError:
            log_event(self.logger, "analysis_unparseable", level=logging.WARNING, request_id=request_id)
        else:
            if not analysis.is_roster:
                return QuestionGenerationResult(
                    success=False,
                    ocr_data=content,
                    error=analysis.notes or "The image does not look like a work roster",
                    error_type=ErrorType.NO_SHIFTS,
                )
            questions = list(analysis.questions)
            pre_analysis = analysis.pre_analysis
            needs_clarification = analysis.needs_clarification

        questions += uncertain_cell_questions(content, questions)
        if any(q.required for q in questions):
            needs_clarification = True

        log_event(
            self.logger,
            "questions_generated",
            questions=len(questions),
            needs_clarification=needs_clarification,
            request_id=request_id,
        )
        return QuestionGenerationResult(
            success=True,
            questions=questions,
            ocr_data=content,
            skip_to_extraction=not needs_clarification,
            pre_analysis=pre_analysis,
        )

    # ---------------- phase: filter ----------------

    async def filter_shifts(
        self,
        ocr_data: ExtractedContent,
        answers: Sequence[QuestionAnswer],
        job_configs: Sequence[JobConfig],
        job_aliases: Sequence[JobAlias],
        pre_analysis: Optional[PreAnalysis] = None,
        identifier: Optional[RosterIdentifier] = None,
        request_id: Optional[str] = None,
    ) -> ProcessResult:
        self.timer.start_timer("filter_shifts")
        try:
            return await self._filter_shifts(
                ocr_data, answers, job_configs, job_aliases, pre_analysis, identifier, request_id
            )
        finally:
            self.timer.end_timer("filter_shifts")

    async def _filter_shifts(
        self,
        ocr_data: ExtractedContent,
        answers: Sequence[QuestionAnswer],
        job_configs: Sequence[JobConfig],
        job_aliases: Sequence[JobAlias],
        pre_analysis: Optional[PreAnalysis],
        identifier: Optional[RosterIdentifier],
        request_id: Optional[str],
    ) -> ProcessResult:
        today = self.clock().date()
        confirmations, clarifications = split_answers(ocr_data, answers)
        content = apply_confirmations(ocr_data, confirmations)

        person_answer = next(
            (a.value.strip() for a in clarifications if a.question_id == PERSON_SELECT_ID and a.value.strip()),
            None,
        )
        target_person = (
            person_answer
            or (identifier.name if identifier and identifier.name else None)
            or (pre_analysis.detected_person if pre_analysis else None)
        )

        try:
            extraction = await self.engine.extract_shifts(
                content, clarifications, today, pre_analysis, target_person, identifier, request_id
            )
        except EmptyModelResponse:
            return ProcessResult(
                success=False,
                error="No content in extraction response",
                error_type=ErrorType.EXTRACTION_FAILED,
                ocr_data=content,
            )
        except MalformedModelResponse:
            return ProcessResult(
                success=False,
                error="Failed to parse extraction result",
                error_type=ErrorType.PARSE_ERROR,
                ocr_data=content,
            )

        if not extraction.success:
            log_event(self.logger, "extraction_declined", level=logging.WARNING, error=extraction.error, request_id=request_id)
            return ProcessResult(
                success=False, error=extraction.error, error_type=ErrorType.EXTRACTION_FAILED, ocr_data=content
            )

        raw_shifts = apply_confirmed_labels(extraction.shifts, confirmations)
        validation = validate_shifts(raw_shifts, today.year, today)
        if validation.errors:
            log_event(self.logger, "validation_errors", level=logging.WARNING, errors=validation.errors, request_id=request_id)
        if validation.warnings:
            log_event(self.logger, "validation_warnings", warnings=validation.warnings, request_id=request_id)

        if not validation.valid_shifts:
            return await self._text_fallback(content, validation.errors, job_configs, job_aliases, request_id)

        shifts = self._to_parsed(validation.valid_shifts, BASELINE_CONFIDENCE, job_configs, job_aliases)
        log_event(self.logger, "shifts_extracted", shifts=len(shifts), request_id=request_id)
        return ProcessResult(
            success=True,
            shifts=shifts,
            identified_person=extraction.identified_person,
            ocr_data=content,
        )

    async def _text_fallback(
        self,
        content: ExtractedContent,
        errors: List[str],
        job_configs: Sequence[JobConfig],
        job_aliases: Sequence[JobAlias],
        request_id: Optional[str],
    ) -> ProcessResult:
        today = self.clock().date()
        raw_text = content.raw_text.strip()
        if len(raw_text) > TEXT_FALLBACK_MIN_CHARS:
            log_event(self.logger, "text_fallback_started", chars=len(raw_text), request_id=request_id)
            try:
                raw_shifts = await self.engine.extract_from_text(raw_text, today, request_id)
            except ModelResponseError:
                raw_shifts = []
            fallback = validate_shifts(raw_shifts, today.year, today)
            if fallback.valid_shifts:
                return ProcessResult(
                    success=True,
                    shifts=self._to_parsed(fallback.valid_shifts, TEXT_FALLBACK_CONFIDENCE, job_configs, job_aliases),
                    identified_person=TEXT_FALLBACK_PERSON.model_copy(),
                    ocr_data=content,
                )

        log_event(self.logger, "no_shifts", level=logging.WARNING, request_id=request_id)
        return ProcessResult(
            success=False,
            error=f"No valid shifts extracted. {'; '.join(errors)}".strip(),
            error_type=ErrorType.NO_SHIFTS,
            ocr_data=content,
        )

    # ---------------- legacy: one shot ----------------

    async def process(
        self,
        image: Image.Image,
        job_configs: Sequence[JobConfig],
        job_aliases: Sequence[JobAlias],
        identifier: Optional[RosterIdentifier] = None,
        request_id: Optional[str] = None,
    ) -> ProcessResult:
        questions = await self.generate_questions(image, request_id)
        if not questions.success or questions.ocr_data is None:
            return ProcessResult(
                success=False,
                error=questions.error,
                error_type=questions.error_type,
                ocr_data=questions.ocr_data,
            )
        return await self.filter_shifts(
            questions.ocr_data,
            [],
            job_configs,
            job_aliases,
            pre_analysis=questions.pre_analysis,
            identifier=identifier,
            request_id=request_id,
        )
