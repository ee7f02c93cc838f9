from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional

from models import MAX_PIN_LENGTH, AuthUser, Role, make_id


class PermissionDenied(Exception):
    pass


def login(staff: list[AuthUser], username: str, pin: str) -> Optional[AuthUser]:
    username = (username or "").strip()
    for user in staff:
        if user.username == username and user.pin == pin:
            return user
    return None


def is_admin(user: Optional[AuthUser]) -> bool:
    return user is not None and user.role == Role.ADMIN


def can_edit_staff(actor: Optional[AuthUser], target: AuthUser) -> bool:
    return is_admin(actor) or (actor is not None and actor.id == target.id)


def can_view_pin(actor: Optional[AuthUser], target: AuthUser) -> bool:
    return can_edit_staff(actor, target)


def can_change_role(actor: Optional[AuthUser]) -> bool:
    return is_admin(actor)


def can_delete_staff(actor: Optional[AuthUser], target: AuthUser) -> bool:
    return is_admin(actor) and actor.id != target.id


def can_manage_settings(actor: Optional[AuthUser]) -> bool:
    return is_admin(actor)


def can_delete_resident(actor: Optional[AuthUser]) -> bool:
    return is_admin(actor)


def _clean(form: Mapping[str, Any], name: str) -> str:
    return (form.get(name) or "").strip()


def validate_pin(pin: str) -> str:
    if not pin:
        raise ValueError("PIN is required.")
    if len(pin) > MAX_PIN_LENGTH:
        raise ValueError(f"PIN must be at most {MAX_PIN_LENGTH} characters.")
    return pin


def new_staff_account(actor: Optional[AuthUser], form: Mapping[str, Any]) -> AuthUser:
    if not is_admin(actor):
        raise PermissionDenied("Admin only.")

    username = _clean(form, "username")
    name = _clean(form, "name")
    if not username or not name:
        raise ValueError("Name and username are required.")

    try:
        role = Role(_clean(form, "role") or Role.STAFF.value)
    except ValueError:
        raise ValueError("Invalid role.") from None

    return AuthUser(
        id=make_id(),
        username=username,
        pin=validate_pin(_clean(form, "pin") or "1234"),
        role=role,
        name=name,
        photo_url=_clean(form, "photo_url") or f"https://api.dicebear.com/7.x/avataaars/svg?seed={make_id()}",
        phone=_clean(form, "phone") or None,
        email=_clean(form, "email") or None,
        notes=_clean(form, "notes") or None,
    )


def apply_staff_edit(actor: Optional[AuthUser], target: AuthUser, form: Mapping[str, Any]) -> AuthUser:
    """Apply a staff profile form on behalf of ``actor``.

    Staff may only edit themselves and never their own role; the submitted
    role is ignored for them rather than rejected.
    """
    if not can_edit_staff(actor, target):
        raise PermissionDenied("You can only edit your own profile.")

    username = _clean(form, "username")
    name = _clean(form, "name")
    if not username or not name:
        raise ValueError("Name and username are required.")

    role = target.role
    if can_change_role(actor) and form.get("role"):
        try:
            role = Role(_clean(form, "role"))
        except ValueError:
            raise ValueError("Invalid role.") from None

    pin = target.pin
    if form.get("pin"):
        pin = validate_pin(_clean(form, "pin"))

    return replace(
        target,
        username=username,
        name=name,
        role=role,
        pin=pin,
        photo_url=_clean(form, "photo_url") or target.photo_url,
        phone=_clean(form, "phone") or None,
        email=_clean(form, "email") or None,
        notes=_clean(form, "notes") or None,
    )
