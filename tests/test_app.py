from dataclasses import replace
from datetime import datetime, timedelta

import storage
from conftest import login_as
from models import CheckedOut, LogType, Role
from occupancy import shelter_tz


def test_home_redirects_to_kiosk(client):
    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/kiosk")


def test_kiosk_lists_and_filters_residents(client):
    page = client.get("/kiosk").get_data(as_text=True)
    assert "Resident Check Point" in page
    assert "John Doe" in page
    assert "Jane Smith" in page

    page = client.get("/kiosk?q=jane").get_data(as_text=True)
    assert "Jane Smith" in page
    assert "John Doe" not in page


def test_kiosk_check_out_and_back_in(client, ctx):
    response = client.post("/kiosk/1/check-out", data={"destination": "Library", "eta": "17:30"})
    assert response.status_code == 302

    john = storage.find_resident("1")
    assert not john.is_checked_in
    assert john.current_destination == "Library"
    assert john.expected_return_time == "17:30"
    assert john.expected_return_date is None

    logs = storage.get_logs()
    assert logs[0].type == LogType.CHECK_OUT
    assert logs[0].destination == "Library"

    client.post("/kiosk/1/check-in")
    john = storage.find_resident("1")
    assert john.is_checked_in
    assert john.current_destination is None
    assert storage.get_logs()[0].type == LogType.CHECK_IN
    assert storage.get_logs()[0].performer_name is None
    assert not storage.get_logs()[0].is_late


def test_kiosk_check_out_requires_destination(client, ctx):
    response = client.post("/kiosk/1/check-out", data={"destination": " ", "eta": "17:30"})
    assert response.status_code == 400
    assert "Destination is required." in response.get_data(as_text=True)
    assert storage.find_resident("1").is_checked_in
    assert storage.get_logs() == []


def test_kiosk_unknown_resident_is_ignored(client, ctx):
    response = client.post("/kiosk/nobody/check-in")
    assert response.status_code == 302
    assert storage.get_logs() == []


def test_management_requires_login(client):
    for path in ["/staff/residents", "/staff/logs", "/staff/analytics", "/staff/team", "/staff/settings"]:
        response = client.get(path)
        assert response.status_code == 302
        assert "/staff/login" in response.headers["Location"]


def test_login_failure_is_generic(client):
    response = login_as(client, "admin", "0000")
    page = response.get_data(as_text=True)
    assert response.status_code == 401
    assert "Invalid credentials" in page
    assert 'name="pin" required maxlength="6" value=""' in page


def test_login_and_logout(client):
    response = login_as(client)
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/staff/residents")

    page = client.get("/staff/residents").get_data(as_text=True)
    assert "System Admin" in page
    assert "CONNECTED (ADMIN)" in page

    client.get("/staff/logout")
    assert client.get("/staff/residents").status_code == 302


def test_overdue_resident_is_flagged_and_late_check_in_logged(client, ctx):
    yesterday = (datetime.now(shelter_tz()) - timedelta(days=1)).date().isoformat()
    residents = storage.get_residents()
    jane = residents[1]
    late_jane = replace(jane, occupancy=CheckedOut("Court", "09:00", yesterday))
    storage.save_residents([residents[0], late_jane])

    login_as(client)
    page = client.get("/staff/residents").get_data(as_text=True)
    assert "Overdue Return" in page

    client.post(f"/staff/residents/{jane.id}/check-in")
    log = storage.get_logs()[0]
    assert log.type == LogType.CHECK_IN
    assert log.is_late is True
    assert log.performer_name == "System Admin"

    page = client.get("/staff/logs").get_data(as_text=True)
    assert "Late" in page
    assert "Returned" in page


def test_add_and_edit_resident(client, ctx):
    login_as(client)
    response = client.post(
        "/staff/residents/new",
        data={"action": "save", "name": "Alex Rivera", "gender": "Non-binary", "status_text": "New", "status_color": "purple"},
    )
    assert response.status_code == 302

    residents = storage.get_residents()
    alex = residents[0]
    assert alex.name == "Alex Rivera"
    assert alex.gender == "Non-binary"
    assert alex.status.color == "purple"
    assert alex.is_checked_in

    response = client.post(
        f"/staff/residents/{alex.id}/edit",
        data={
            "action": "save",
            "name": "Alex Rivera",
            "gender": "Non-binary",
            "status_text": "Blackout",
            "status_color": "red",
            "destination": "Unknown",
        },
    )
    assert response.status_code == 302

    alex = storage.find_resident(alex.id)
    assert not alex.is_checked_in
    assert alex.current_destination == "Unknown"
    log = storage.get_logs()[0]
    assert log.type == LogType.PROFILE_UPDATE
    assert log.performer_name == "System Admin"


def test_new_resident_requires_name(client, ctx):
    login_as(client)
    before = len(storage.get_residents())
    response = client.post("/staff/residents/new", data={"action": "save", "name": ""})
    assert response.status_code == 400
    assert len(storage.get_residents()) == before


def test_enhance_bio_without_service_keeps_text(client, ctx):
    login_as(client)
    response = client.post(
        "/staff/residents/1/edit",
        data={"action": "enhance", "name": "John Doe", "bio": "Likes chess."},
    )
    page = response.get_data(as_text=True)
    assert response.status_code == 200
    assert "Likes chess." in page
    assert storage.get_logs() == []


def test_new_resident_drafts_enhance_under_their_own_ids(client, ctx, monkeypatch):
    import app as app_module

    keys = []

    def fake_improve(current_bio, name, api_key, model, editor_key=None):
        keys.append(editor_key)
        return current_bio + " Improved."

    monkeypatch.setattr(app_module, "improve_bio", fake_improve)
    login_as(client)

    page = client.get("/staff/residents/new").get_data(as_text=True)
    assert 'name="draft_id"' in page

    for draft_id, name in [("draftA1", "Ann Lee"), ("draftB2", "Bo Park")]:
        response = client.post(
            "/staff/residents/new",
            data={"action": "enhance", "draft_id": draft_id, "name": name, "bio": "Quiet."},
        )
        assert response.status_code == 200
        assert f'value="{draft_id}"' in response.get_data(as_text=True)

    assert keys == ["draftA1", "draftB2"]

    client.post("/staff/residents/new", data={"action": "save", "draft_id": "draftA1", "name": "Ann Lee"})
    assert storage.find_resident("draftA1").name == "Ann Lee"


def test_staff_cannot_delete_residents(client, staff_member):
    login_as(client, "casey", "4321")
    response = client.post("/staff/residents/1/delete")
    assert response.status_code == 302
    assert storage.find_resident("1") is not None


def test_admin_deletes_resident(client, ctx):
    login_as(client)
    client.post("/staff/residents/1/delete")
    assert storage.find_resident("1") is None

    response = client.post("/staff/residents/1/delete")
    assert response.status_code == 302


def test_staff_cannot_see_other_pins_or_promote_self(client, staff_member):
    login_as(client, "casey", "4321")

    page = client.get("/staff/team").get_data(as_text=True)
    assert "<code>4321</code>" in page
    assert "<code>1234</code>" not in page

    response = client.get("/staff/team/admin1/edit")
    assert response.status_code == 302

    page = client.get("/staff/team/staff1/edit").get_data(as_text=True)
    assert 'name="role"' not in page

    client.post(
        "/staff/team/staff1/edit",
        data={"name": "Casey Staff", "username": "casey", "pin": "1111", "role": "ADMIN"},
    )
    casey = storage.find_staff("staff1")
    assert casey.role == Role.STAFF
    assert casey.pin == "1111"

    assert client.get("/staff/team/new").status_code == 302
    client.post("/staff/team/admin1/delete")
    assert storage.find_staff("admin1") is not None


def test_admin_manages_staff(client, staff_member):
    login_as(client)

    page = client.get("/staff/team").get_data(as_text=True)
    assert "<code>4321</code>" in page

    client.post("/staff/team/staff1/edit", data={"name": "Casey Staff", "username": "casey", "role": "ADMIN"})
    assert storage.find_staff("staff1").role == Role.ADMIN

    client.post("/staff/team/new", data={"name": "Sam", "username": "sam", "pin": "2468", "role": "STAFF"})
    assert any(s.username == "sam" for s in storage.get_staff())

    client.post("/staff/team/admin1/delete")
    assert storage.find_staff("admin1") is not None

    client.post("/staff/team/staff1/delete")
    assert storage.find_staff("staff1") is None


def test_deleted_account_is_logged_out(client, staff_member):
    login_as(client, "casey", "4321")
    storage.save_staff([s for s in storage.get_staff() if s.id != "staff1"])
    assert client.get("/staff/residents").status_code == 302


def test_kiosk_settings_are_admin_only(client, staff_member):
    login_as(client, "casey", "4321")
    response = client.post("/staff/settings", data={"title": "Hacked"})
    assert response.status_code == 302
    assert storage.get_kiosk_settings().title == "Resident Check Point"

    client.get("/staff/logout")
    login_as(client)
    client.post(
        "/staff/settings",
        data={"title": "Front Door", "subtitle": "Tap in", "background_url": "", "overlay_opacity": "0.7"},
    )
    settings = storage.get_kiosk_settings()
    assert settings.title == "Front Door"
    assert settings.overlay_opacity == 0.7
    assert "Front Door" in client.get("/kiosk").get_data(as_text=True)


def test_analytics_page(client, ctx):
    client.post("/kiosk/1/check-out", data={"destination": "Library", "eta": "17:30"})
    client.post("/kiosk/1/check-in")

    login_as(client)
    page = client.get("/staff/analytics?range=30d").get_data(as_text=True)
    assert "Occupancy Rate" in page
    assert "Movement Trends" in page
    assert "Past Month" in page


def test_templates_load_from_beside_the_app_module(app):
    for name in ("base.html", "kiosk.html", "staff_resident_edit.html", "staff_analytics.html"):
        assert app.jinja_env.get_template(name) is not None
