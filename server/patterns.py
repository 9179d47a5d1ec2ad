# patterns.py
import re

_WEEKDAY = r"(?:mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)[a-z]*\.?"
_ORDINAL = r"(?:st|nd|rd|th)?"


class Patterns:
    # Dates (all anchored, matched against lower-cased, trimmed input)
    DATE_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
    DATE_DAY_MONTH_YEAR = re.compile(
        rf"^(?:{_WEEKDAY},?\s+)?(\d{{1,2}}){_ORDINAL}\s+([a-z]+)\.?,?\s+(\d{{4}})$"
    )
    DATE_DAY_MONTH = re.compile(rf"^(?:{_WEEKDAY},?\s+)?(\d{{1,2}}){_ORDINAL}\s+([a-z]+)\.?$")
    DATE_MONTH_DAY = re.compile(
        rf"^(?:{_WEEKDAY},?\s+)?([a-z]+)\.?\s+(\d{{1,2}}){_ORDINAL}(?:,?\s+(\d{{4}}))?$"
    )
    DATE_DAY_DASH_MONTH = re.compile(r"^(\d{1,2})-([a-z]{3,})(?:-(\d{4}))?$")
    DATE_MONTH_DASH_DAY = re.compile(r"^([a-z]{3,})-(\d{1,2})(?:-(\d{4}))?$")
    DATE_SLASH_DM = re.compile(r"^(\d{1,2})/(\d{1,2})$")
    DATE_SLASH_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
    DATE_SLASH_YMD = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
    DATE_KOREAN = re.compile(r"^(?:(\d{4})년\s*)?(\d{1,2})월\s*(\d{1,2})일?$")
    WEEKDAY_ONLY = re.compile(rf"^({_WEEKDAY})$")

    # Times (matched against lower-cased, trimmed input)
    TIME_24H = re.compile(r"^(\d{1,2}):(\d{2})$")
    TIME_MERIDIEM = re.compile(r"^(\d{1,2})(?::(\d{2}))?(am|pm)$")
    TIME_MERIDIEM_SPACED = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s+(am|pm)$")
    TIME_MILITARY = re.compile(r"^(\d{3,4})$")
    TIME_NOON = re.compile(r"^(?:noon|midday|12\s*noon)$")
    TIME_MIDNIGHT = re.compile(r"^midnight$")
    TIME_KOREAN = re.compile(r"^(오전|오후)\s*(\d{1,2})시(?:\s*(\d{1,2})분)?$")
    TIME_BARE_HOUR = re.compile(r"^(\d{1,2})$")  # only inside a range: "8 - 21"
    TIME_RANGE = re.compile(r"^(.+?)\s*(?:-|–|—|~|\bto\b)\s*(.+)$")


patterns = Patterns()

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

WEEKDAYS = {
    "mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6,
}
