"""
pickup_api/core/hours.py
Store-hours parsing, kept pure: callers pass the current instant in.

Apple publishes hours as rows of (days, timings) in the region's language,
e.g. {"storeDays": "週一至週五:", "storeTimings": "上午10:00 - 下午9:00"}.
"""

import re
from datetime import datetime
from typing import Optional

from pickup_api.core.config import STORE_TZ

# Weekday index: 0 = Sunday … 6 = Saturday (the order Apple TW lists them)
_ZH_DAY_CHARS = {"日": 0, "天": 0, "一": 1, "二": 2, "三": 3, "四": 4, "五": 5, "六": 6}
_EN_DAYS      = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}

_DAY        = r"(?:週|星期)[日天一二三四五六]|(?:sun|mon|tue|wed|thu|fri|sat)[a-z]*"
_DAY_RANGE  = re.compile(rf"({_DAY})(?:[-–~至]({_DAY}))?", re.I)
_DAY_SPLIT  = re.compile(r"[,，、]")
_TIME_SPLIT = re.compile(r"\s*[-–~至]\s*")
_HOUR_MIN   = re.compile(r"(\d{1,2})(?::(\d{2}))?")


def local_now(tz=STORE_TZ) -> datetime:
    return datetime.now(tz)


def _day_index(name: str) -> int:
    if name[0] in "週星":
        return _ZH_DAY_CHARS[name[-1]]
    return _EN_DAYS[name[:3].lower()]


def expand_days(text) -> set[int]:
    """'週一至週五' → {1, 2, 3, 4, 5}; '週六、週日' → {6, 0}; ranges wrap past Saturday."""
    if not text:
        return set()
    clean = re.sub(r"[：:\s]", "", str(text))
    days: set[int] = set()
    for token in filter(None, _DAY_SPLIT.split(clean)):
        m = _DAY_RANGE.search(token)
        if not m:
            continue
        a = _day_index(m.group(1))
        if m.group(2) is None:
            days.add(a)
            continue
        b = _day_index(m.group(2))
        days.add(a)
        while a != b:
            a = (a + 1) % 7
            days.add(a)
    return days


def parse_time_token(token) -> Optional[int]:
    """'下午9:00' → 1260, '10:00 AM' → 600, '12am' → 0. None if unreadable."""
    t = re.sub(r"\s+", "", str(token or ""))
    if not t:
        return None
    low = t.lower()
    am = "上午" in t or "am" in low
    pm = "下午" in t or "晚上" in t or "pm" in low
    m = _HOUR_MIN.search(t)
    if not m:
        return None
    h, mins = int(m.group(1)), int(m.group(2) or 0)
    if pm and h < 12:
        h += 12
    if am and h == 12:
        h = 0
    if h > 24 or mins > 59:
        return None
    return h * 60 + mins


def _span(row: dict) -> Optional[tuple[int, int, str]]:
    bounds = _TIME_SPLIT.split(str(row.get("storeTimings") or "").strip(), maxsplit=1)
    if len(bounds) != 2:
        return None
    start_raw, end_raw = bounds[0].strip(), bounds[1].strip()
    start, end = parse_time_token(start_raw), parse_time_token(end_raw)
    if start is None or end is None:
        return None
    return start, end, f"{start_raw} - {end_raw}"


def _first_span(rows: list[dict], weekday: int) -> Optional[tuple[int, int, str]]:
    for row in rows:
        if weekday not in expand_days(row.get("storeDays")):
            continue
        span = _span(row)
        if span:
            return span
    return None


def compute_open_now(rows: list[dict], now: datetime) -> tuple[bool, Optional[str]]:
    """
    (is_open, today_hours) for the first row covering now's weekday.
    A range whose end precedes its start runs past midnight into the next
    day, so the previous weekday's row can still hold the store open. End is
    inclusive.
    """
    if now.tzinfo is not None:
        now = now.astimezone(STORE_TZ)
    weekday = (now.weekday() + 1) % 7
    minutes = now.hour * 60 + now.minute

    today = _first_span(rows, weekday)
    is_open = False
    if today:
        start, end, _ = today
        is_open = start <= minutes <= end if end >= start else minutes >= start

    if not is_open:
        yesterday = _first_span(rows, (weekday - 1) % 7)
        if yesterday:
            start, end, _ = yesterday
            is_open = end < start and minutes <= end

    return is_open, today[2] if today else None
