# models.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DATA_CLARIFY_PREFIX = "data_clarify_"
PERSON_SELECT_ID = "person_select"

CONTENT_TYPES = ("table", "calendar", "list", "email", "text", "mixed")


class ErrorType(str, Enum):
    AUTH = "auth"
    CONFIG = "config"
    INVALID_INPUT = "invalid_input"
    LIMIT_EXCEEDED = "limit_exceeded"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    OCR_FAILED = "ocr_failed"
    NO_SHIFTS = "no_shifts"
    EXTRACTION_FAILED = "extraction_failed"
    UNKNOWN = "unknown"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _as_text(v: Any) -> Optional[str]:
    """Scalars become strings, anything else becomes None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        return v
    if isinstance(v, (int, float)):
        return str(v)
    return None


# ------------------------------------------------------------------------------
# PHASE 1: TRANSCRIPTION
# ------------------------------------------------------------------------------

class UncertainCell(WireModel):
    location: str = ""
    read_value: str = ""
    alternative_value: Optional[str] = None
    reason: str = ""

    @field_validator("location", "read_value", "reason", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _as_text(v) or ""

    @field_validator("alternative_value", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Optional[str]:
        text = _as_text(v)
        return text if text and text.strip() else None


class ContentMetadata(WireModel):
    title: Optional[str] = None
    has_multiple_people: Optional[bool] = None
    potential_names: List[str] = Field(default_factory=list)
    date_range: Optional[str] = None
    language: str = "en"

    @field_validator("potential_names", mode="before")
    @classmethod
    def _names(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        names = [_as_text(n) for n in v]
        return [n.strip() for n in names if n and n.strip()]

    @field_validator("has_multiple_people", mode="before")
    @classmethod
    def _tri_state(cls, v: Any) -> Optional[bool]:
        return v if isinstance(v, bool) else None

    @field_validator("title", "date_range", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @field_validator("language", mode="before")
    @classmethod
    def _language(cls, v: Any) -> str:
        return _as_text(v) or "en"


class ExtractedContent(WireModel):
    content_type: Literal["table", "calendar", "list", "email", "text", "mixed"] = "text"
    layout_description: Optional[str] = None
    headers: Optional[List[str]] = None
    rows: Optional[List[List[str]]] = None
    raw_text: str = ""
    uncertain_cells: List[UncertainCell] = Field(default_factory=list)
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)

    @field_validator("content_type", mode="before")
    @classmethod
    def _content_type(cls, v: Any) -> str:
        text = (_as_text(v) or "").strip().lower()
        return text if text in CONTENT_TYPES else "text"

    @field_validator("headers", mode="before")
    @classmethod
    def _headers(cls, v: Any) -> Optional[List[str]]:
        if not isinstance(v, list):
            return None
        return [_as_text(h) or "" for h in v]

    @field_validator("rows", mode="before")
    @classmethod
    def _rows(cls, v: Any) -> Optional[List[List[str]]]:
        if not isinstance(v, list):
            return None
        return [[_as_text(c) or "" for c in row] for row in v if isinstance(row, list)]

    @field_validator("raw_text", mode="before")
    @classmethod
    def _raw_text(cls, v: Any) -> str:
        return _as_text(v) or ""

    @field_validator("layout_description", mode="before")
    @classmethod
    def _layout(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @field_validator("uncertain_cells", mode="before")
    @classmethod
    def _cells(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        return [c for c in v if isinstance(c, (dict, UncertainCell))]

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, ContentMetadata)) else {}

    @model_validator(mode="after")
    def _rectangular_grid(self) -> "ExtractedContent":
        if not self.rows:
            return self
        width = max(len(self.headers or []), max(len(r) for r in self.rows))
        if self.headers is not None and len(self.headers) < width:
            self.headers = self.headers + [""] * (width - len(self.headers))
        if self.headers is not None or len({len(r) for r in self.rows}) > 1:
            self.rows = [r + [""] * (width - len(r)) for r in self.rows]
        return self


# ------------------------------------------------------------------------------
# PHASE 2: QUESTIONS
# ------------------------------------------------------------------------------

class QuestionOption(WireModel):
    label: str
    value: str
    description: Optional[str] = None


class SmartQuestion(WireModel):
    id: str
    type: Literal["single_select", "text"] = "single_select"
    question: str
    options: Optional[List[QuestionOption]] = None
    required: bool = True

    @property
    def is_data_clarification(self) -> bool:
        return self.id.startswith(DATA_CLARIFY_PREFIX)


class QuestionAnswer(WireModel):
    question_id: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v: Any) -> str:
        return _as_text(v) or ""


class PreAnalysis(WireModel):
    detected_person: Optional[str] = None
    date_format: str = "unknown"
    time_format: str = "unknown"
    shift_patterns: List[str] = Field(default_factory=list)

    @field_validator("detected_person", mode="before")
    @classmethod
    def _person(cls, v: Any) -> Optional[str]:
        text = _as_text(v)
        return text.strip() if text and text.strip() else None

    @field_validator("date_format", "time_format", mode="before")
    @classmethod
    def _format(cls, v: Any) -> str:
        text = _as_text(v)
        return text if text and text.strip() else "unknown"

    @field_validator("shift_patterns", mode="before")
    @classmethod
    def _patterns(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        return [t for t in (_as_text(p) for p in v) if t]


class QuestionGenerationResult(WireModel):
    success: bool
    questions: List[SmartQuestion] = Field(default_factory=list)
    ocr_data: Optional[ExtractedContent] = None
    skip_to_extraction: Optional[bool] = None
    pre_analysis: Optional[PreAnalysis] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None


# ------------------------------------------------------------------------------
# PHASE 3: SHIFTS
# ------------------------------------------------------------------------------

class AIExtractedShift(WireModel):
    """Untrusted shift exactly as the model produced it."""

    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    job_name: Optional[str] = None
    raw_date_text: Optional[str] = None
    raw_time_text: Optional[str] = None
    note: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalar_text(cls, v: Any) -> Optional[str]:
        return _as_text(v)


class ValidatedShift(WireModel):
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    location: Optional[str] = None
    job_name: Optional[str] = None
    raw_date_text: str = ""
    raw_time_text: str = ""
    note: Optional[str] = None


class ParsedShift(WireModel):
    id: str
    date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    total_hours: Optional[float] = None
    roster_job_name: str
    mapped_job_id: Optional[str] = None
    confidence: float = Field(default=0.95, ge=0, le=1)
    selected: bool = True


class IdentifiedPerson(WireModel):
    name_found: str = "Unknown"
    location: str = "unknown"
    match_type: Literal[
        "exact", "firstName", "lastName", "initials", "substring", "color", "position"
    ] = "exact"
    confidence: float = Field(default=0.9, ge=0, le=1)


class ProcessResult(WireModel):
    success: bool
    shifts: List[ParsedShift] = Field(default_factory=list)
    identified_person: Optional[IdentifiedPerson] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    ocr_data: Optional[ExtractedContent] = None


# ------------------------------------------------------------------------------
# CALLER-SUPPLIED CONTEXT
# ------------------------------------------------------------------------------

class JobConfig(WireModel):
    id: str
    name: str


class JobAlias(WireModel):
    alias: str
    job_config_id: str


class RosterIdentifier(WireModel):
    name: Optional[str] = None
    color: Optional[str] = None
    position: Optional[str] = None
    custom_note: Optional[str] = None


class UsageQuota(WireModel):
    scans_used_this_period: int = 0
    scan_limit: int = 5
    period_key: Optional[str] = None
