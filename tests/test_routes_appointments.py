"""Tests for /appointments routes."""

from datetime import timedelta

import pytest

from clinic_api.deps import get_reminder_dispatcher
from clinic_api.reminders import ReminderDispatcher
from tests.conftest import auth


@pytest.fixture
def booking(client, dentist, patient, monday):
    """Returns a function that books with the fixture dentist on ``monday``."""
    _, dentist_id = dentist
    token, patient_id = patient

    def _book(start="09:00", end="09:30", on=None, as_token=None, patient_id=patient_id):
        return client.post(
            "/appointments",
            json={
                "patient_id": patient_id,
                "dentist_id": dentist_id,
                "appointment_date": (on or monday).isoformat(),
                "start_time": start,
                "end_time": end,
                "type": "consultation",
                "reason": "Tooth pain",
                "notes_before": "Left side",
            },
            headers=auth(as_token or token),
        )

    return _book


@pytest.fixture
def appointment(booking):
    response = booking()
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateAppointment:
    def test_create(self, appointment, monday):
        assert appointment["status"] == "scheduled"
        assert appointment["duration"] == 30
        assert appointment["start_time"] == "09:00"
        assert appointment["appointment_date"] == monday.isoformat()
        assert appointment["appointment_code"].startswith("APT")
        assert appointment["notes"]["before_appointment"] == "Left side"
        assert appointment["status_color"] == "blue"

    def test_overlap_is_rejected(self, booking, appointment):
        response = booking("09:15", "09:45")
        assert response.status_code == 409
        assert response.json()["detail"] == "Appointment time conflicts with existing appointment"

    def test_back_to_back_is_allowed(self, booking, appointment):
        assert booking("09:30", "10:00").status_code == 201

    def test_outside_working_hours(self, booking):
        response = booking("11:45", "12:15")
        assert response.status_code == 409
        assert "working hours" in response.json()["detail"]

    def test_closed_day(self, booking, monday):
        response = booking(on=monday + timedelta(days=1))
        assert response.status_code == 409

    def test_end_before_start(self, booking):
        assert booking("10:00", "09:30").status_code == 400

    def test_too_short(self, booking):
        assert booking("10:00", "10:10").status_code == 400

    def test_seconds_rejected(self, booking):
        assert booking("09:00:59", "09:30").status_code == 422

    def test_past_date(self, booking, monday):
        assert booking(on=monday - timedelta(days=14)).status_code == 400

    def test_patient_books_only_for_self(self, booking, register):
        other_token, _ = register("other@clinic.test")
        assert booking(as_token=other_token).status_code == 403

    def test_staff_books_for_patient(self, booking, staff):
        assert booking(as_token=staff).status_code == 201

    def test_unknown_patient(self, booking, staff):
        assert booking(as_token=staff, patient_id=999).status_code == 404

    def test_inactive_dentist(self, client, booking, dentist, staff):
        _, dentist_id = dentist
        client.put(f"/dentists/{dentist_id}/status", json={"status": "on-leave"}, headers=auth(staff))
        assert booking().status_code == 400

    def test_codes_are_sequential(self, booking, appointment):
        second = booking("10:30", "11:00").json()
        assert int(second["appointment_code"][-3:]) == int(appointment["appointment_code"][-3:]) + 1


class TestLifecycleRoutes:
    def test_cancel_frees_the_slot(self, client, booking, patient, appointment):
        token, _ = patient
        response = client.put(
            f"/appointments/{appointment['id']}/cancel",
            json={"reason": "Feeling better"},
            headers=auth(token),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancellation"]["cancelled_by"] == "patient"
        assert data["cancellation"]["reason"] == "Feeling better"

        assert booking().status_code == 201

    def test_cancel_twice(self, client, patient, appointment):
        token, _ = patient
        url = f"/appointments/{appointment['id']}/cancel"
        assert client.put(url, json={}, headers=auth(token)).status_code == 200
        response = client.put(url, json={}, headers=auth(token))
        assert response.status_code == 400
        assert response.json()["detail"] == "Appointment is already cancelled"

    def test_other_patient_cannot_cancel(self, client, register, appointment):
        other_token, _ = register("other@clinic.test")
        response = client.put(f"/appointments/{appointment['id']}/cancel", json={}, headers=auth(other_token))
        assert response.status_code == 403

    def test_reschedule(self, client, patient, appointment):
        token, _ = patient
        response = client.put(
            f"/appointments/{appointment['id']}/reschedule",
            json={"new_date": appointment["appointment_date"], "new_start_time": "10:30", "new_end_time": "11:00", "reason": "Meeting"},
            headers=auth(token),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["start_time"] == "10:30"
        assert data["rescheduling"]["original_time"] == "09:00"
        assert data["rescheduling"]["rescheduled_by"] == "patient"
        assert data["id"] == appointment["id"]

    def test_reschedule_into_conflict(self, client, booking, patient, appointment):
        token, _ = patient
        booking("10:30", "11:00")
        response = client.put(
            f"/appointments/{appointment['id']}/reschedule",
            json={"new_date": appointment["appointment_date"], "new_start_time": "10:45", "new_end_time": "11:15"},
            headers=auth(token),
        )
        assert response.status_code == 409
        current = client.get(f"/appointments/{appointment['id']}", headers=auth(token)).json()
        assert current["start_time"] == "09:00"

    def test_confirm_is_staff_only(self, client, patient, dentist, appointment):
        patient_token, _ = patient
        dentist_token, _ = dentist
        url = f"/appointments/{appointment['id']}/confirm"
        assert client.put(url, headers=auth(patient_token)).status_code == 403

        response = client.put(url, headers=auth(dentist_token))
        assert response.json()["status"] == "confirmed"
        assert client.put(url, headers=auth(dentist_token)).status_code == 400

    def test_complete(self, client, dentist, appointment):
        token, _ = dentist
        response = client.put(
            f"/appointments/{appointment['id']}/complete",
            json={
                "treatments": [{"name": "Filling", "duration": 30, "cost": 120}],
                "notes": {"dentist_notes": "Done"},
                "actual_cost": 120,
            },
            headers=auth(token),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["total_cost"] == 120
        assert data["treatments"][0]["id"]

        cancel = client.put(f"/appointments/{appointment['id']}/cancel", json={}, headers=auth(token))
        assert cancel.status_code == 400
        assert cancel.json()["detail"] == "Cannot cancel completed appointment"

    def test_no_show_releases_slot(self, client, booking, dentist, appointment):
        token, _ = dentist
        response = client.put(f"/appointments/{appointment['id']}/no-show", headers=auth(token))
        assert response.json()["status"] == "no-show"
        assert booking().status_code == 201

    def test_reminder_uses_dispatcher(self, client, dentist, appointment):
        sent = []

        class Recorder(ReminderDispatcher):
            def send(self, appointment, reminder):
                sent.append((appointment.id, reminder.type))

        client.app.dependency_overrides[get_reminder_dispatcher] = Recorder
        token, _ = dentist
        response = client.post(f"/appointments/{appointment['id']}/reminder", json={"type": "sms"}, headers=auth(token))
        assert response.status_code == 200
        assert response.json()["status"] == "sent"
        assert sent == [(appointment["id"], "sms")]

        stored = client.get(f"/appointments/{appointment['id']}", headers=auth(token)).json()
        assert len(stored["reminders"]) == 1


class TestUpdateAndQueries:
    def test_patient_may_edit_symptoms(self, client, patient, appointment):
        token, _ = patient
        response = client.put(f"/appointments/{appointment['id']}", json={"symptoms": ["swelling"]}, headers=auth(token))
        assert response.status_code == 200
        assert response.json()["symptoms"] == ["swelling"]

    def test_patient_cannot_edit_reason(self, client, patient, appointment):
        token, _ = patient
        response = client.put(f"/appointments/{appointment['id']}", json={"reason": "Other"}, headers=auth(token))
        assert response.status_code == 403

    def test_staff_moves_appointment(self, client, staff, appointment):
        response = client.put(
            f"/appointments/{appointment['id']}",
            json={"start_time": "11:00", "end_time": "11:45"},
            headers=auth(staff),
        )
        assert response.status_code == 200
        assert response.json()["duration"] == 45

    def test_staff_move_outside_hours(self, client, staff, appointment):
        response = client.put(
            f"/appointments/{appointment['id']}",
            json={"start_time": "13:00", "end_time": "13:30"},
            headers=auth(staff),
        )
        assert response.status_code == 409

    def test_list_is_scoped_to_patient(self, client, booking, staff, register, appointment):
        other_token, _ = register("other@clinic.test")
        assert client.get("/appointments", headers=auth(other_token)).json()["items"] == []

        booking("10:30", "11:00", as_token=staff)
        data = client.get("/appointments", params={"status": "scheduled"}, headers=auth(staff)).json()
        assert data["pagination"]["total_items"] == 2
        assert [a["start_time"] for a in data["items"]] == ["09:00", "10:30"]

    def test_date_range(self, client, staff, appointment, monday):
        params = {"start_date": monday.isoformat(), "end_date": monday.isoformat()}
        found = client.get("/appointments/date-range", params=params, headers=auth(staff)).json()
        assert [a["id"] for a in found] == [appointment["id"]]

        missing = client.get("/appointments/date-range", params={"start_date": monday.isoformat()}, headers=auth(staff))
        assert missing.status_code == 422

    def test_stats(self, client, staff, patient, appointment):
        token, _ = patient
        client.put(f"/appointments/{appointment['id']}/cancel", json={}, headers=auth(token))
        stats = client.get("/appointments/stats", headers=auth(staff)).json()
        assert stats["total_appointments"] == 1
        assert stats["cancelled_appointments"] == 1
        assert stats["cancellation_rate"] == 100
        assert stats["appointments_by_type"] == {"consultation": 1}

    def test_delete_admin_only(self, client, staff, admin, appointment):
        url = f"/appointments/{appointment['id']}"
        assert client.delete(url, headers=auth(staff)).status_code == 403
        assert client.delete(url, headers=auth(admin)).status_code == 204
        assert client.get(url, headers=auth(admin)).status_code == 404
