from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

from models import CheckedIn, CheckedOut, LogType, MovementLog, Resident, StatusKind

DEFAULT_TIMEZONE = "America/Chicago"


class CheckoutError(ValueError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def utcnow_iso() -> str:
    return utcnow().isoformat()


def shelter_tz() -> tzinfo:
    name = DEFAULT_TIMEZONE
    if has_app_context():
        name = current_app.config.get("SHELTER_TIMEZONE") or DEFAULT_TIMEZONE
    return ZoneInfo(name)


def parse_timestamp(value: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are read as shelter-local time."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz or shelter_tz())
    return dt


def parse_time_of_day(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        parsed = time.fromisoformat(value.strip())
    except ValueError:
        return None
    return parsed.strftime("%H:%M")


def parse_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError:
        return None


def expected_return_at(
    expected_date: Optional[str],
    expected_time: Optional[str],
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    day = parse_date(expected_date)
    hhmm = parse_time_of_day(expected_time)
    if not day or not hhmm:
        return None
    combined = datetime.combine(date.fromisoformat(day), time.fromisoformat(hhmm))
    return combined.replace(tzinfo=tz or shelter_tz())


def _was_overdue(resident: Resident, now: datetime, tz: Optional[tzinfo]) -> bool:
    if resident.is_checked_in:
        return False
    due = expected_return_at(resident.expected_return_date, resident.expected_return_time, tz)
    if due is None:
        return False
    return now > due


def check_in(
    resident: Resident,
    now: Optional[datetime] = None,
    performer: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> tuple[Resident, MovementLog]:
    now = now or utcnow()
    stamp = now.isoformat()

    log = MovementLog(
        resident_id=resident.id,
        resident_name=resident.name,
        type=LogType.CHECK_IN,
        timestamp=stamp,
        performer_name=performer or None,
        expected_return_time=resident.expected_return_time,
        expected_return_date=resident.expected_return_date,
        is_late=_was_overdue(resident, now, tz),
    )
    updated = replace(resident, occupancy=CheckedIn(), last_action_at=stamp)
    return updated, log


def check_out(
    resident: Resident,
    destination: str,
    eta: str,
    return_date: Optional[str] = None,
    now: Optional[datetime] = None,
    performer: Optional[str] = None,
) -> tuple[Resident, MovementLog]:
    destination = (destination or "").strip()
    if not destination:
        raise CheckoutError("Destination is required.")

    hhmm = parse_time_of_day(eta)
    if not hhmm:
        raise CheckoutError("Enter a valid return time.")

    day = None
    if return_date:
        day = parse_date(return_date)
        if not day:
            raise CheckoutError("Enter a valid return date.")

    now = now or utcnow()
    stamp = now.isoformat()

    updated = replace(
        resident,
        occupancy=CheckedOut(destination=destination, expected_return_time=hhmm, expected_return_date=day),
        last_action_at=stamp,
    )
    log = MovementLog(
        resident_id=resident.id,
        resident_name=resident.name,
        type=LogType.CHECK_OUT,
        timestamp=stamp,
        performer_name=performer or None,
        destination=destination,
        expected_return_time=hhmm,
        expected_return_date=day,
    )
    return updated, log


def profile_update(resident: Resident, now: Optional[datetime] = None, performer: Optional[str] = None) -> MovementLog:
    return MovementLog(
        resident_id=resident.id,
        resident_name=resident.name,
        type=LogType.PROFILE_UPDATE,
        timestamp=(now or utcnow()).isoformat(),
        performer_name=performer or None,
    )


def apply_destination_edit(
    resident: Resident,
    destination: str,
    eta: Optional[str],
    return_date: Optional[str],
    now: Optional[datetime] = None,
) -> Resident:
    """Occupancy as set from the staff editor: a destination means out, none means in."""
    destination = (destination or "").strip()
    if destination:
        occupancy = CheckedOut(
            destination=destination,
            expected_return_time=parse_time_of_day(eta),
            expected_return_date=parse_date(return_date),
        )
    else:
        occupancy = CheckedIn()

    if occupancy == resident.occupancy:
        return resident
    return replace(resident, occupancy=occupancy, last_action_at=(now or utcnow()).isoformat())


def is_overdue(resident: Resident, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> bool:
    return _was_overdue(resident, now or utcnow(), tz)


def is_blackout(resident: Resident) -> bool:
    return not resident.is_checked_in and resident.status.kind == StatusKind.BLACKOUT


def late_delta(
    actual_timestamp: Optional[str],
    expected_date: Optional[str],
    expected_time: Optional[str],
    tz: Optional[tzinfo] = None,
) -> Optional[str]:
    expected = expected_return_at(expected_date, expected_time, tz)
    actual = parse_timestamp(actual_timestamp, tz)
    if expected is None or actual is None:
        return None

    diff = actual - expected
    if diff <= timedelta(0):
        return None

    minutes = int(diff.total_seconds() // 60)
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m late"
    return f"{mins}m late"


def dashboard_order(residents: list[Resident], now: Optional[datetime] = None) -> list[Resident]:
    now = now or utcnow()
    return sorted(
        residents,
        key=lambda r: (not is_overdue(r, now), not is_blackout(r), r.name.lower()),
    )
