# prompts.py
import json
from datetime import date
from typing import List, Optional

from models import ExtractedContent, PreAnalysis, QuestionAnswer, RosterIdentifier

TRANSCRIPTION_PROMPT = """You are an OCR assistant. Transcribe ALL visible text from this image.

The image can be ANY format that contains work schedule information:
- Table/roster with names and shifts
- CALENDAR VIEW (monthly grid with weekday headers like 일요일~토요일 or Sun~Sat)
- Email or message with shift assignments
- Bulleted list of dates and times
- Screenshot from a scheduling app
- Handwritten notes

YOUR TASK:
1. Transcribe ALL visible text exactly as shown
2. Identify the content structure (table, calendar, list, email, text or mixed)
3. Describe the layout in one sentence (where names, dates and times sit)
4. Detect whether multiple people are mentioned
5. For CALENDAR views extract names from CELL CONTENTS, not just headers
6. DO NOT normalize dates or times. Preserve the exact format.

CALENDAR FORMAT:
- Headers are weekday names (일요일, 월요일, ... 토요일 or Sun, Mon, ... Sat)
- Names appear INSIDE cells, e.g.
  - "오픈 8 - 21 수연(13)" -> name is "수연"
  - "Open 8-5 John(9)" -> name is "John"
- Cell pattern: "[shift type] [start] - [end] [NAME](hours)"
- Put ALL unique names into potentialNames

UNCERTAIN READINGS:
If any cell or word is blurry, cut off, handwritten or otherwise hard to read,
DO NOT silently pick a value. Transcribe your best reading AND list it in
uncertainCells with the most likely alternative reading (if any).
Locations count from 1: "row 1, column 1" is the first cell of the first row
below the headers.

OUTPUT FORMAT (JSON only):
{
  "contentType": "table" | "calendar" | "list" | "email" | "text" | "mixed",
  "layoutDescription": "One sentence about the layout",
  "rawText": "Complete word-for-word transcription of all visible text",
  "headers": ["Date", "Name1", ...] or ["일요일", "월요일", ...] or null,
  "rows": [["cell1", "cell2", ...], ...] or null,
  "uncertainCells": [
    {
      "location": "row 2, column 3",
      "readValue": "what you read",
      "alternativeValue": "other plausible reading" | null,
      "reason": "why it is uncertain"
    }
  ],
  "metadata": {
    "title": "Document title if visible (e.g., '2026년 1월')",
    "hasMultiplePeople": true | false,
    "potentialNames": ["수연", "태현", ...],
    "dateRange": "raw date range as shown",
    "language": "en" | "ko" | "other"
  }
}

CRITICAL RULES:
1. Preserve dates EXACTLY as shown ("Thursday 15th January", not "2026-01-15")
2. Preserve times EXACTLY as shown ("9am", "5:00pm", not "09:00")
3. Every row must have one cell per header; use "" for empty cells
4. hasMultiplePeople is true if you see multiple distinct names
5. Include ALL names you see in potentialNames
"""


def _content_json(content: ExtractedContent) -> str:
    return json.dumps(content.to_wire(), ensure_ascii=False, indent=2)


def build_analysis_prompt(content: ExtractedContent, today: date) -> str:
    return f"""Analyze this extracted roster content and decide whether clarification is needed.

CURRENT DATE: {today.isoformat()}
CURRENT YEAR: {today.year}

EXTRACTED CONTENT:
{_content_json(content)}

TASK:
1. Decide whether this is a work schedule/roster at all
2. Decide whether user clarification is needed
3. Generate questions ONLY when truly necessary

ASK WHEN:
- Several people are visible and their shifts are interleaved -> ask who ("person_select")
- A CALENDAR view has several names inside its cells -> ask who ("person_select")
- The date format is genuinely ambiguous (01/02 could be Jan 2 or Feb 1)
- Critical information is missing and cannot be inferred

DO NOT ASK WHEN:
- It is a single person's schedule (email to one person, one name in the text)
- Only one name/column carries shift data
- Dates are unambiguous (full month names, clear context)

UNCERTAIN CELLS:
For uncertainCells[i] ask a question with id "data_clarify_<i>" (zero-based)
offering the read value and the alternative value as options.

QUESTION FORMAT:
{{
  "id": "person_select" | "date_format" | "data_clarify_0" | "custom_...",
  "type": "single_select" | "text",
  "question": "Question in the content's language",
  "options": [{{"label": "...", "value": "...", "description": "..."}}],
  "required": true | false
}}
For person_select use the names themselves as option values.

OUTPUT FORMAT (JSON only):
{{
  "isRoster": true | false,
  "confidence": 0.0-1.0,
  "analysisNotes": "Brief explanation",
  "needsClarification": true | false,
  "questions": [...],
  "preAnalysis": {{
    "detectedPerson": "Name if a single person was detected" | null,
    "dateFormat": "detected format description",
    "timeFormat": "24h" | "12h" | "mixed",
    "shiftPatterns": ["pattern1", ...]
  }}
}}

LANGUAGE: Korean content -> Korean questions. Otherwise match the content's language.
"""


def _identifier_section(identifier: Optional[RosterIdentifier]) -> str:
    if identifier is None:
        return ""
    hints: List[str] = []
    if identifier.color:
        hints.append(f"- Highlight colour: {identifier.color}")
    if identifier.position:
        hints.append(f"- Position in the roster: {identifier.position}")
    if identifier.custom_note:
        hints.append(f"- Note from the user: {identifier.custom_note}")
    if not hints:
        return ""
    return "\nHOW TO FIND THE TARGET PERSON:\n" + "\n".join(hints) + "\n"


def build_extraction_prompt(
    content: ExtractedContent,
    answers: List[QuestionAnswer],
    today: date,
    pre_analysis: Optional[PreAnalysis] = None,
    target_person: Optional[str] = None,
    identifier: Optional[RosterIdentifier] = None,
) -> str:
    clarifications = ""
    if answers:
        lines = "\n".join(f"- {a.question_id}: {a.value}" for a in answers)
        clarifications = f"\nUSER CLARIFICATIONS:\n{lines}\n"

    analysis = ""
    if pre_analysis is not None:
        analysis = (
            "\nPRE-ANALYSIS:\n"
            f"- Detected person: {pre_analysis.detected_person or 'Unknown'}\n"
            f"- Date format: {pre_analysis.date_format}\n"
            f"- Time format: {pre_analysis.time_format}\n"
        )

    target = ""
    if target_person:
        target = (
            f"\n**TARGET PERSON: {target_person}**\n"
            "ONLY extract shifts where this person's name appears.\n"
        )

    return f"""Extract work shifts from this roster content.

CURRENT DATE: {today.isoformat()}
CURRENT YEAR: {today.year}

EXTRACTED CONTENT:
{_content_json(content)}
{clarifications}{analysis}{target}{_identifier_section(identifier)}
CALENDAR VIEWS:
1. The title often carries the month/year ("2026년 1월" = January 2026)
2. Headers are weekday names
3. A cell like "오픈 8 - 21 수연(13)" means jobName "오픈", start 08:00, end 21:00, person "수연"
4. Only extract shifts assigned to the TARGET PERSON
5. Date = month/year from the title + the day number in the cell (or grid position)

DATES (MUST be YYYY-MM-DD):
- "Thursday 15th January 2026" -> "2026-01-15"
- "15th January" (no year) -> "{today.year}-01-15"
- "15/1" -> day/month -> "{today.year}-01-15"
- "Mon", "Tuesday" -> the next such day on or after {today.isoformat()}

TIMES (MUST be HH:MM, 24-hour):
- "9am" -> "09:00", "5:00pm" -> "17:00", "12pm"/"noon" -> "12:00"
- "9-5" -> start "09:00", end "17:00"
- Calendar "8 - 21" -> start "08:00", end "21:00"
- Unknown times -> null. Never invent a time.

JOB / LOCATION:
- location: place text ("746 Swanston", "Main Office")
- jobName: job or shift type ("AM", "Night", "RL", "오픈", "마감")

Always copy the original date and time text into rawDateText and rawTimeText.

OUTPUT FORMAT (JSON only):
{{
  "success": true,
  "shifts": [
    {{
      "date": "YYYY-MM-DD",
      "startTime": "HH:MM" | null,
      "endTime": "HH:MM" | null,
      "location": "location text" | null,
      "jobName": "job/shift type" | null,
      "rawDateText": "original date as shown",
      "rawTimeText": "original time as shown",
      "note": "anything else written on the shift" | null
    }}
  ],
  "identifiedPerson": {{
    "nameFound": "Name as shown",
    "location": "column 2" | "row 3" | "email recipient" | "calendar cells",
    "matchType": "exact" | "firstName" | "lastName" | "initials" | "substring" | "color" | "position",
    "confidence": 0.0-1.0
  }} | null
}}

If extraction is impossible:
{{"success": false, "shifts": [], "error": "Reason for failure"}}
"""


def build_text_extraction_prompt(raw_text: str, today: date) -> str:
    return f"""Extract work shifts from this text.

CURRENT DATE: {today.isoformat()}
CURRENT YEAR: {today.year}

TEXT CONTENT:
{raw_text}

RULES:
1. Dates MUST be YYYY-MM-DD
2. Times MUST be HH:MM, 24-hour, or null when not given

OUTPUT JSON:
{{
  "shifts": [
    {{
      "date": "YYYY-MM-DD",
      "startTime": "HH:MM" | null,
      "endTime": "HH:MM" | null,
      "location": "..." | null,
      "jobName": "..." | null,
      "rawDateText": "original",
      "rawTimeText": "original"
    }}
  ]
}}
"""
