from __future__ import annotations

import base64
from dataclasses import replace
from functools import wraps
from typing import Any, Optional

from flask import Flask, flash, g, redirect, render_template, request, session, url_for

import storage
from analytics import DATE_RANGES, build_report
from auth import (
    PermissionDenied,
    apply_staff_edit,
    can_change_role,
    can_delete_resident,
    can_delete_staff,
    can_edit_staff,
    can_manage_settings,
    can_view_pin,
    login,
    new_staff_account,
)
from bio import improve_bio
from config import Config
from models import (
    GENDER_OPTIONS,
    MAX_PIN_LENGTH,
    STATUS_COLOR_HEX,
    STATUS_COLORS,
    KioskSettings,
    Resident,
    Role,
    Status,
    clamp_opacity,
    new_resident,
)
from occupancy import (
    CheckoutError,
    apply_destination_edit,
    check_in,
    check_out,
    dashboard_order,
    is_blackout,
    is_overdue,
    late_delta,
    parse_timestamp,
    profile_update,
    shelter_tz,
    utcnow,
    utcnow_iso,
)

app = Flask(__name__)
app.config.from_object(Config)
app.secret_key = app.config["SECRET_KEY"]
storage.init_app(app)


def fmt_dt(dt_iso: Optional[str]) -> str:
    dt = parse_timestamp(dt_iso)
    if dt is None:
        return dt_iso or ""
    return dt.astimezone(shelter_tz()).strftime("%m/%d/%Y %I:%M %p")


def fmt_time_only(dt_iso: Optional[str]) -> str:
    dt = parse_timestamp(dt_iso)
    if dt is None:
        return ""
    return dt.astimezone(shelter_tz()).strftime("%I:%M %p")


def current_user():
    return g.get("current_user")


def performer_name() -> Optional[str]:
    user = current_user()
    return user.name if user else None


@app.before_request
def load_session_user():
    storage.init_db()
    g.current_user = None

    user_id = session.get("staff_user_id")
    if not user_id:
        return

    user = storage.find_staff(user_id)
    if user is None:
        session.clear()
        return
    g.current_user = user


@app.context_processor
def inject_footer():
    residents = storage.get_residents()
    inside = sum(1 for r in residents if r.is_checked_in)
    return {
        "current_user": current_user(),
        "can_manage_settings": can_manage_settings(current_user()),
        "footer_total": len(residents),
        "footer_in": inside,
        "footer_out": len(residents) - inside,
        "status_hex": STATUS_COLOR_HEX,
    }


def require_login(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user() is None:
            return redirect(url_for("staff_login"))
        return fn(*args, **kwargs)

    return wrapper


def require_admin(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = current_user()
        if user is None or user.role != Role.ADMIN:
            flash("Admin only.", "error")
            return redirect(url_for("staff_residents"))
        return fn(*args, **kwargs)

    return wrapper


def _replace_resident(updated: Resident) -> None:
    residents = storage.get_residents()
    storage.save_residents([updated if r.id == updated.id else r for r in residents])


def _record_movement(updated: Resident, log) -> None:
    _replace_resident(updated)
    storage.add_log(log)


def _uploaded_photo() -> Optional[str]:
    upload = request.files.get("photo_file")
    if not upload or not upload.filename:
        return None

    mimetype = upload.mimetype or ""
    if not mimetype.startswith("image/"):
        flash("Photo must be an image.", "error")
        return None

    encoded = base64.b64encode(upload.read()).decode("ascii")
    return f"data:{mimetype};base64,{encoded}"


def _resident_from_form(base: Resident) -> tuple[Resident, list[str]]:
    form = request.form
    errors: list[str] = []

    name = (form.get("name") or "").strip()
    if not name:
        errors.append("Name is required.")

    gender = (form.get("gender") or "").strip()
    if gender not in GENDER_OPTIONS:
        gender = base.gender

    color = (form.get("status_color") or "").strip()
    if color not in STATUS_COLORS:
        color = base.status.color

    photo_url = _uploaded_photo() or (form.get("photo_url") or "").strip() or base.photo_url

    draft = replace(
        base,
        name=name,
        gender=gender,
        status=Status(text=(form.get("status_text") or "").strip(), color=color),
        photo_url=photo_url,
        bio=(form.get("bio") or "").strip(),
        notes=(form.get("notes") or "").strip(),
        custom_field_label=(form.get("custom_field_label") or "").strip(),
        custom_field_value=(form.get("custom_field_value") or "").strip(),
    )
    draft = apply_destination_edit(
        draft,
        form.get("destination") or "",
        form.get("expected_return_time"),
        form.get("expected_return_date"),
    )
    return draft, errors


def _render_resident_editor(resident: Resident, is_new: bool, status: int = 200):
    return render_template(
        "staff_resident_edit.html",
        resident=resident,
        is_new=is_new,
        genders=GENDER_OPTIONS,
        colors=STATUS_COLORS,
    ), status


def _new_draft() -> Resident:
    # unsaved drafts keep the id handed out with the empty form across re-renders
    base = new_resident(utcnow_iso())
    draft_id = (request.form.get("draft_id") or "").strip()
    if draft_id.isalnum() and storage.find_resident(draft_id) is None:
        return replace(base, id=draft_id)
    return base


@app.route("/")
def public_home():
    return redirect(url_for("kiosk"))


@app.route("/kiosk")
def kiosk():
    search = (request.args.get("q") or "").strip()
    residents = sorted(storage.get_residents(), key=lambda r: r.name.lower())
    if search:
        residents = [r for r in residents if search.lower() in r.name.lower()]

    return render_template(
        "kiosk.html",
        residents=residents,
        settings=storage.get_kiosk_settings(),
        search=search,
    )


@app.route("/kiosk/<resident_id>/check-in", methods=["POST"])
def kiosk_check_in(resident_id: str):
    resident = storage.find_resident(resident_id)
    if resident is None or resident.is_checked_in:
        return redirect(url_for("kiosk"))

    updated, log = check_in(resident)
    _record_movement(updated, log)
    flash(f"Welcome back, {resident.name.split(' ')[0]}!", "ok")
    return redirect(url_for("kiosk"))


@app.route("/kiosk/<resident_id>/check-out", methods=["GET", "POST"])
def kiosk_check_out(resident_id: str):
    resident = storage.find_resident(resident_id)
    if resident is None or not resident.is_checked_in:
        return redirect(url_for("kiosk"))

    if request.method == "GET":
        return render_template("kiosk_checkout.html", resident=resident, settings=storage.get_kiosk_settings())

    destination = (request.form.get("destination") or "").strip()
    eta = (request.form.get("eta") or "").strip()

    try:
        updated, log = check_out(resident, destination, eta)
    except CheckoutError as e:
        flash(str(e), "error")
        return render_template(
            "kiosk_checkout.html",
            resident=resident,
            settings=storage.get_kiosk_settings(),
            destination=destination,
            eta=eta,
        ), 400

    _record_movement(updated, log)
    flash(f"Stay safe out there, {resident.name.split(' ')[0]}!", "ok")
    return redirect(url_for("kiosk"))


@app.route("/staff/login", methods=["GET", "POST"])
def staff_login():
    if request.method == "GET":
        if current_user() is not None:
            return redirect(url_for("staff_residents"))
        return render_template("staff_login.html", username="", max_pin=MAX_PIN_LENGTH)

    username = (request.form.get("username") or "").strip()
    pin = (request.form.get("pin") or "").strip()

    user = login(storage.get_staff(), username, pin)
    if user is None:
        app.logger.info("Failed login for %s", username)
        flash("Invalid credentials. Please try again.", "error")
        return render_template("staff_login.html", username=username, max_pin=MAX_PIN_LENGTH), 401

    session.clear()
    session["staff_user_id"] = user.id
    app.logger.info("Login %s", user.username)
    return redirect(url_for("staff_residents"))


@app.route("/staff/logout")
@require_login
def staff_logout():
    username = current_user().username
    session.clear()
    app.logger.info("Logout %s", username)
    return redirect(url_for("kiosk"))


@app.route("/staff")
@require_login
def staff_home():
    return redirect(url_for("staff_residents"))


@app.route("/staff/residents")
@require_login
def staff_residents():
    search = (request.args.get("q") or "").strip().lower()
    now = utcnow()

    residents = dashboard_order(storage.get_residents(), now)
    if search:
        residents = [r for r in residents if search in r.name.lower() or search in r.gender.lower()]

    rows = [
        {
            "resident": r,
            "overdue": is_overdue(r, now),
            "blackout": is_blackout(r),
        }
        for r in residents
    ]
    return render_template(
        "staff_residents.html",
        rows=rows,
        search=request.args.get("q") or "",
        can_delete=can_delete_resident(current_user()),
        fmt_dt=fmt_dt,
    )


@app.route("/staff/residents/new", methods=["GET", "POST"])
@require_login
def staff_resident_new():
    if request.method == "GET":
        return _render_resident_editor(new_resident(utcnow_iso()), is_new=True)

    draft, errors = _resident_from_form(_new_draft())

    if request.form.get("action") == "enhance":
        draft = replace(draft, bio=_enhanced_bio(draft, draft.id))
        return _render_resident_editor(draft, is_new=True)

    if errors:
        for e in errors:
            flash(e, "error")
        return _render_resident_editor(draft, is_new=True, status=400)

    storage.save_residents([draft] + storage.get_residents())
    flash("Resident added.", "ok")
    return redirect(url_for("staff_residents"))


@app.route("/staff/residents/<resident_id>/edit", methods=["GET", "POST"])
@require_login
def staff_resident_edit(resident_id: str):
    resident = storage.find_resident(resident_id)
    if resident is None:
        return redirect(url_for("staff_residents"))

    if request.method == "GET":
        return _render_resident_editor(resident, is_new=False)

    draft, errors = _resident_from_form(resident)

    if request.form.get("action") == "enhance":
        draft = replace(draft, bio=_enhanced_bio(draft, resident.id))
        return _render_resident_editor(draft, is_new=False)

    if errors:
        for e in errors:
            flash(e, "error")
        return _render_resident_editor(draft, is_new=False, status=400)

    _record_movement(draft, profile_update(draft, performer=performer_name()))
    flash("Resident updated.", "ok")
    return redirect(url_for("staff_residents"))


def _enhanced_bio(draft: Resident, editor_key: str) -> str:
    if not draft.bio:
        flash("Write a bio first.", "error")
        return draft.bio

    improved = improve_bio(
        draft.bio,
        draft.name,
        api_key=app.config.get("OPENAI_API_KEY"),
        model=app.config["BIO_MODEL"],
        editor_key=editor_key,
    )
    if improved == draft.bio:
        flash("Bio enhancement unavailable. Bio left unchanged.", "error")
    return improved


@app.route("/staff/residents/<resident_id>/check-in", methods=["POST"])
@require_login
def staff_resident_check_in(resident_id: str):
    resident = storage.find_resident(resident_id)
    if resident is None or resident.is_checked_in:
        return redirect(url_for("staff_residents"))

    updated, log = check_in(resident, performer=performer_name())
    _record_movement(updated, log)
    flash(f"{resident.name} checked in.", "ok")
    return redirect(url_for("staff_residents"))


@app.route("/staff/residents/<resident_id>/delete", methods=["POST"])
@require_login
@require_admin
def staff_resident_delete(resident_id: str):
    residents = storage.get_residents()
    remaining = [r for r in residents if r.id != resident_id]
    if len(remaining) == len(residents):
        return redirect(url_for("staff_residents"))

    storage.save_residents(remaining)
    flash("Resident deleted.", "ok")
    return redirect(url_for("staff_residents"))


@app.route("/staff/logs")
@require_login
def staff_logs():
    return render_template(
        "staff_logs.html",
        logs=storage.get_logs(),
        fmt_dt=fmt_dt,
        late_delta=late_delta,
    )


@app.route("/staff/analytics")
@require_login
def staff_analytics():
    report = build_report(
        storage.get_logs(),
        storage.get_residents(),
        request.args.get("range"),
        tz=shelter_tz(),
    )
    return render_template(
        "staff_analytics.html",
        report=report,
        ranges=DATE_RANGES,
        fmt_time=fmt_time_only,
    )


@app.route("/staff/team")
@require_login
def staff_team():
    user = current_user()
    rows = [
        {
            "account": s,
            "can_edit": can_edit_staff(user, s),
            "can_view_pin": can_view_pin(user, s),
            "can_delete": can_delete_staff(user, s),
        }
        for s in storage.get_staff()
    ]
    return render_template("staff_team.html", rows=rows)


def _render_staff_editor(account: Any, is_new: bool, status: int = 200):
    user = current_user()
    return render_template(
        "staff_team_edit.html",
        account=account,
        is_new=is_new,
        show_pin=is_new or can_view_pin(user, account),
        show_role=is_new or can_change_role(user),
        roles=[r.value for r in Role],
        max_pin=MAX_PIN_LENGTH,
    ), status


@app.route("/staff/team/new", methods=["GET", "POST"])
@require_login
@require_admin
def staff_team_new():
    if request.method == "GET":
        return _render_staff_editor(None, is_new=True)

    try:
        account = new_staff_account(current_user(), request.form)
    except ValueError as e:
        flash(str(e), "error")
        return _render_staff_editor(None, is_new=True, status=400)

    storage.save_staff(storage.get_staff() + [account])
    flash(f"Staff account '{account.username}' created.", "ok")
    return redirect(url_for("staff_team"))


@app.route("/staff/team/<user_id>/edit", methods=["GET", "POST"])
@require_login
def staff_team_edit(user_id: str):
    target = storage.find_staff(user_id)
    if target is None:
        return redirect(url_for("staff_team"))

    if not can_edit_staff(current_user(), target):
        flash("You can only edit your own profile.", "error")
        return redirect(url_for("staff_team"))

    if request.method == "GET":
        return _render_staff_editor(target, is_new=False)

    try:
        updated = apply_staff_edit(current_user(), target, request.form)
    except PermissionDenied as e:
        flash(str(e), "error")
        return redirect(url_for("staff_team"))
    except ValueError as e:
        flash(str(e), "error")
        return _render_staff_editor(target, is_new=False, status=400)

    storage.save_staff([updated if s.id == updated.id else s for s in storage.get_staff()])
    flash("Profile saved.", "ok")
    return redirect(url_for("staff_team"))


@app.route("/staff/team/<user_id>/delete", methods=["POST"])
@require_login
@require_admin
def staff_team_delete(user_id: str):
    target = storage.find_staff(user_id)
    if target is None:
        return redirect(url_for("staff_team"))

    if not can_delete_staff(current_user(), target):
        flash("You cannot delete your own account.", "error")
        return redirect(url_for("staff_team"))

    storage.save_staff([s for s in storage.get_staff() if s.id != user_id])
    flash(f"User '{target.username}' deleted.", "ok")
    return redirect(url_for("staff_team"))


@app.route("/staff/settings", methods=["GET", "POST"])
@require_login
@require_admin
def staff_settings():
    if request.method == "GET":
        return render_template("staff_settings.html", settings=storage.get_kiosk_settings())

    defaults = KioskSettings()
    settings = KioskSettings(
        title=(request.form.get("title") or "").strip() or defaults.title,
        subtitle=(request.form.get("subtitle") or "").strip(),
        background_url=(request.form.get("background_url") or "").strip(),
        overlay_opacity=clamp_opacity(request.form.get("overlay_opacity")),
    )
    storage.save_kiosk_settings(settings)
    flash("Kiosk settings saved.", "ok")
    return redirect(url_for("staff_settings"))


if __name__ == "__main__":
    with app.app_context():
        storage.init_db()
    app.run(host="127.0.0.1", port=5000)
