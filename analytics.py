from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from models import LogType, MovementLog, Resident
from occupancy import parse_timestamp, shelter_tz, utcnow

DATE_RANGES = {
    "7d": ("Past Week", 7),
    "30d": ("Past Month", 30),
    "all": ("All Time", None),
}

DEFAULT_RANGE = "7d"
SERIES_DAYS = 7


@dataclass(frozen=True)
class DayBucket:
    label: str
    ins: int = 0
    outs: int = 0


@dataclass
class AnalyticsReport:
    date_range: str
    check_ins: int
    check_outs: int
    average_stay_hours: float
    occupancy_rate: float
    checked_in: int
    checked_out: int
    series: list[DayBucket] = field(default_factory=list)
    recent: list[MovementLog] = field(default_factory=list)

    @property
    def chart_max(self) -> int:
        return max([1] + [b.ins for b in self.series] + [b.outs for b in self.series])


def normalize_range(date_range: Optional[str]) -> str:
    return date_range if date_range in DATE_RANGES else DEFAULT_RANGE


def _when(log: MovementLog, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    return parse_timestamp(log.timestamp, tz)


def filter_range(
    logs: list[MovementLog],
    date_range: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> list[MovementLog]:
    days = DATE_RANGES[normalize_range(date_range)][1]
    if days is None:
        return list(logs)

    cutoff = (now or utcnow()) - timedelta(days=days)
    out = []
    for log in logs:
        when = _when(log, tz)
        if when is not None and when >= cutoff:
            out.append(log)
    return out


def counts(logs: list[MovementLog]) -> dict[str, int]:
    return {
        "check_ins": sum(1 for log in logs if log.type == LogType.CHECK_IN),
        "check_outs": sum(1 for log in logs if log.type == LogType.CHECK_OUT),
    }


def chronological(logs: list[MovementLog], tz: Optional[tzinfo] = None) -> list[tuple[datetime, MovementLog]]:
    timed = [(_when(log, tz), log) for log in logs]
    return sorted(((when, log) for when, log in timed if when is not None), key=lambda pair: pair[0])


def average_stay_hours(logs: list[MovementLog], tz: Optional[tzinfo] = None) -> float:
    """Mean time between each check-out and the resident's nearest earlier check-in.

    Check-outs with no earlier check-in in the retained history are left out.
    """
    ordered = chronological(logs, tz)
    total = timedelta(0)
    pairs = 0

    for index, (when, log) in enumerate(ordered):
        if log.type != LogType.CHECK_OUT:
            continue
        for prev_when, prev in reversed(ordered[:index]):
            if prev.resident_id == log.resident_id and prev.type == LogType.CHECK_IN:
                total += when - prev_when
                pairs += 1
                break

    if pairs == 0:
        return 0.0
    return total.total_seconds() / 3600 / pairs


def occupancy_rate(residents: list[Resident]) -> float:
    if not residents:
        return 0.0
    inside = sum(1 for r in residents if r.is_checked_in)
    return inside / len(residents) * 100


def day_label(day: date) -> str:
    return f"{day.strftime('%b')} {day.day}"


def daily_series(logs: list[MovementLog], tz: Optional[tzinfo] = None) -> list[DayBucket]:
    tz = tz or shelter_tz()
    groups: dict[date, list[int]] = {}

    for when, log in chronological(logs, tz):
        if log.type not in (LogType.CHECK_IN, LogType.CHECK_OUT):
            continue
        bucket = groups.setdefault(when.astimezone(tz).date(), [0, 0])
        if log.type == LogType.CHECK_IN:
            bucket[0] += 1
        else:
            bucket[1] += 1

    series = [DayBucket(label=day_label(day), ins=v[0], outs=v[1]) for day, v in groups.items()]
    return series[-SERIES_DAYS:]


def build_report(
    logs: list[MovementLog],
    residents: list[Resident],
    date_range: Optional[str] = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> AnalyticsReport:
    date_range = normalize_range(date_range)
    filtered = filter_range(logs, date_range, now, tz)
    totals = counts(filtered)
    inside = sum(1 for r in residents if r.is_checked_in)

    return AnalyticsReport(
        date_range=date_range,
        check_ins=totals["check_ins"],
        check_outs=totals["check_outs"],
        average_stay_hours=average_stay_hours(logs, tz),
        occupancy_rate=occupancy_rate(residents),
        checked_in=inside,
        checked_out=len(residents) - inside,
        series=daily_series(filtered, tz),
        recent=filtered[:3],
    )
