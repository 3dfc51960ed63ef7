from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any

from pydantic import BeforeValidator


class Weekday(str, Enum):
    monday = "MONDAY"
    tuesday = "TUESDAY"
    wednesday = "WEDNESDAY"
    thursday = "THURSDAY"
    friday = "FRIDAY"


DAY_VALUES = tuple(item.value for item in Weekday)

DAY_ALIASES = {
    "MON": "MONDAY",
    "TUE": "TUESDAY",
    "TUES": "TUESDAY",
    "WED": "WEDNESDAY",
    "THU": "THURSDAY",
    "THUR": "THURSDAY",
    "THURS": "THURSDAY",
    "FRI": "FRIDAY",
    # Day numbers 1..5, as produced by older solvers.
    "1": "MONDAY",
    "2": "TUESDAY",
    "3": "WEDNESDAY",
    "4": "THURSDAY",
    "5": "FRIDAY",
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


def normalize_day(value: Any) -> str:
    if isinstance(value, Weekday):
        return value.value
    key = str(value).strip().upper()
    key = DAY_ALIASES.get(key, key)
    if key not in DAY_VALUES:
        raise ValueError(f"Invalid day value: {value!r}")
    return key


def parse_time_to_minutes(value: str) -> int:
    match = TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError("Time must be in HH:MM 24-hour format")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def normalize_time(value: Any) -> str:
    return minutes_to_time(parse_time_to_minutes(str(value)))


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


# Identifiers arrive as integers from some data sources and as UUID strings from others.
Identifier = Annotated[str, BeforeValidator(_coerce_identifier)]
DayValue = Annotated[str, BeforeValidator(normalize_day)]
TimeValue = Annotated[str, BeforeValidator(normalize_time)]
