# classifier.py
from typing import List

from models import ExtractedContent

METADATA_COLUMN_KEYWORDS = (
    "date", "day", "roster", "notes", "events", "memo", "날짜", "요일", "메모", "week",
)


def is_metadata_column(header: str) -> bool:
    lowered = (header or "").lower()
    return any(keyword in lowered for keyword in METADATA_COLUMN_KEYWORDS)


def _distinct_names(content: ExtractedContent) -> List[str]:
    seen: List[str] = []
    for name in content.metadata.potential_names:
        key = name.strip().lower()
        if key and key not in seen:
            seen.append(key)
    return seen


def is_simple(content: ExtractedContent) -> bool:
    """
    Decide whether a transcription can go straight to extraction.

    Rules are checked in order and the first one that applies decides.
    Uncertain readings always need a question round.
    """
    if content.uncertain_cells:
        return False

    if content.content_type in ("text", "email"):
        return True

    if content.metadata.has_multiple_people is False:
        return True

    if len(_distinct_names(content)) <= 1:
        return True

    if content.content_type == "calendar":
        return False

    if content.headers:
        person_columns = [h for h in content.headers if not is_metadata_column(h)]
        return len(person_columns) <= 1

    return False
