from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

STATUS_COLORS = ["red", "blue", "green", "yellow", "purple", "gray"]

STATUS_COLOR_HEX = {
    "red": "#fee2e2",
    "blue": "#dbeafe",
    "green": "#dcfce7",
    "yellow": "#fef9c3",
    "purple": "#f3e8ff",
    "gray": "#f3f4f6",
}

GENDER_OPTIONS = ["Male", "Female", "Non-binary", "Other", "Prefer not to say"]

MAX_PIN_LENGTH = 6

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def make_id(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class Role(str, Enum):
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class LogType(str, Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    PROFILE_UPDATE = "PROFILE_UPDATE"


class StatusKind(Enum):
    STANDARD = "standard"
    BLACKOUT = "blackout"


@dataclass(frozen=True)
class Status:
    text: str = "New"
    color: str = "blue"

    @property
    def kind(self) -> StatusKind:
        if self.text.lower() == StatusKind.BLACKOUT.value:
            return StatusKind.BLACKOUT
        return StatusKind.STANDARD


@dataclass(frozen=True)
class CheckedIn:
    pass


@dataclass(frozen=True)
class CheckedOut:
    destination: str = ""
    expected_return_time: Optional[str] = None
    expected_return_date: Optional[str] = None


Occupancy = Union[CheckedIn, CheckedOut]


def _opt(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class Resident:
    id: str
    name: str
    last_action_at: str
    photo_url: str = ""
    status: Status = field(default_factory=Status)
    bio: str = ""
    gender: str = "Other"
    custom_field_label: str = ""
    custom_field_value: str = ""
    notes: str = ""
    occupancy: Occupancy = field(default_factory=CheckedIn)

    @property
    def is_checked_in(self) -> bool:
        return isinstance(self.occupancy, CheckedIn)

    @property
    def current_destination(self) -> Optional[str]:
        if isinstance(self.occupancy, CheckedOut):
            return self.occupancy.destination or None
        return None

    @property
    def expected_return_time(self) -> Optional[str]:
        if isinstance(self.occupancy, CheckedOut):
            return self.occupancy.expected_return_time
        return None

    @property
    def expected_return_date(self) -> Optional[str]:
        if isinstance(self.occupancy, CheckedOut):
            return self.occupancy.expected_return_date
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "photoUrl": self.photo_url,
            "statusText": self.status.text,
            "statusColor": self.status.color,
            "bio": self.bio,
            "gender": self.gender,
            "customFieldLabel": self.custom_field_label,
            "customFieldValue": self.custom_field_value,
            "isCheckedIn": self.is_checked_in,
            "lastActionAt": self.last_action_at,
            "notes": self.notes,
        }
        if isinstance(self.occupancy, CheckedOut):
            if self.occupancy.destination:
                data["currentDestination"] = self.occupancy.destination
            if self.occupancy.expected_return_time:
                data["expectedReturnTime"] = self.occupancy.expected_return_time
            if self.occupancy.expected_return_date:
                data["expectedReturnDate"] = self.occupancy.expected_return_date
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Resident":
        color = data.get("statusColor") or "gray"
        if color not in STATUS_COLORS:
            color = "gray"

        occupancy: Occupancy
        if data.get("isCheckedIn", True):
            occupancy = CheckedIn()
        else:
            occupancy = CheckedOut(
                destination=(data.get("currentDestination") or "").strip(),
                expected_return_time=_opt(data.get("expectedReturnTime")),
                expected_return_date=_opt(data.get("expectedReturnDate")),
            )

        return cls(
            id=str(data.get("id") or make_id()),
            name=data.get("name") or "",
            last_action_at=data.get("lastActionAt") or "",
            photo_url=data.get("photoUrl") or "",
            status=Status(text=data.get("statusText") or "", color=color),
            bio=data.get("bio") or "",
            gender=data.get("gender") or "Other",
            custom_field_label=data.get("customFieldLabel") or "",
            custom_field_value=data.get("customFieldValue") or "",
            notes=data.get("notes") or "",
            occupancy=occupancy,
        )


def new_resident(now_iso: str) -> Resident:
    return Resident(
        id=make_id(),
        name="",
        last_action_at=now_iso,
        photo_url=f"https://picsum.photos/seed/{make_id()}/200",
        status=Status(text="New", color="blue"),
        gender="Other",
        custom_field_label="Notes",
    )


@dataclass(frozen=True)
class MovementLog:
    resident_id: str
    resident_name: str
    type: LogType
    timestamp: str
    id: str = ""
    performer_name: Optional[str] = None
    destination: Optional[str] = None
    expected_return_time: Optional[str] = None
    expected_return_date: Optional[str] = None
    is_late: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "residentId": self.resident_id,
            "residentName": self.resident_name,
            "type": self.type.value,
            "timestamp": self.timestamp,
        }
        optional = {
            "performerName": self.performer_name,
            "destination": self.destination,
            "expectedReturnTime": self.expected_return_time,
            "expectedReturnDate": self.expected_return_date,
            "isLate": self.is_late,
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MovementLog":
        try:
            log_type = LogType(data.get("type"))
        except ValueError:
            log_type = LogType.PROFILE_UPDATE

        is_late = data.get("isLate")
        return cls(
            id=str(data.get("id") or ""),
            resident_id=str(data.get("residentId") or ""),
            resident_name=data.get("residentName") or "",
            type=log_type,
            timestamp=data.get("timestamp") or "",
            performer_name=_opt(data.get("performerName")),
            destination=_opt(data.get("destination")),
            expected_return_time=_opt(data.get("expectedReturnTime")),
            expected_return_date=_opt(data.get("expectedReturnDate")),
            is_late=None if is_late is None else bool(is_late),
        )


@dataclass(frozen=True)
class AuthUser:
    id: str
    username: str
    pin: str
    role: Role
    name: str
    photo_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "pin": self.pin,
            "role": self.role.value,
            "name": self.name,
            "photoUrl": self.photo_url or "",
            "phone": self.phone or "",
            "email": self.email or "",
            "notes": self.notes or "",
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthUser":
        try:
            role = Role(data.get("role"))
        except ValueError:
            role = Role.STAFF

        return cls(
            id=str(data.get("id") or make_id()),
            username=data.get("username") or "",
            pin=str(data.get("pin") or ""),
            role=role,
            name=data.get("name") or "",
            photo_url=_opt(data.get("photoUrl")),
            phone=_opt(data.get("phone")),
            email=_opt(data.get("email")),
            notes=_opt(data.get("notes")),
        )


def clamp_opacity(value: Any) -> float:
    try:
        opacity = float(value)
    except (TypeError, ValueError):
        return 0.5
    return min(1.0, max(0.0, opacity))


@dataclass(frozen=True)
class KioskSettings:
    title: str = "Resident Check Point"
    subtitle: str = "Please tap your name to check in or out."
    background_url: str = ""
    overlay_opacity: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "backgroundUrl": self.background_url,
            "overlayOpacity": self.overlay_opacity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KioskSettings":
        defaults = cls()
        return cls(
            title=data.get("title") or defaults.title,
            subtitle=data.get("subtitle") if data.get("subtitle") is not None else defaults.subtitle,
            background_url=data.get("backgroundUrl") or "",
            overlay_opacity=clamp_opacity(data.get("overlayOpacity", defaults.overlay_opacity)),
        )
