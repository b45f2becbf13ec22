from datetime import date, time, timedelta

from clinic_scheduler.models import Doctor


def _create_doctor(client, **overrides) -> dict:
    payload = {"name": "Dr. Ann Abel", "specialty": "Cardiology", "officeLocation": "A-1"}
    payload.update(overrides)
    response = client.post("/api/admin/doctors", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def test_doctor_crud(client, db):
    created = _create_doctor(client)
    assert created["isActive"] is True

    fetched = client.get(f"/api/admin/doctors/{created['id']}").json()
    assert fetched["data"]["name"] == "Dr. Ann Abel"

    updated = client.put(
        f"/api/admin/doctors/{created['id']}", json={"specialty": "Neurology", "phone": "555-0199"}
    ).json()
    assert updated["data"]["specialty"] == "Neurology"
    assert updated["data"]["phone"] == "555-0199"
    assert updated["data"]["name"] == "Dr. Ann Abel"

    assert client.get("/api/admin/doctors/999").status_code == 404


def test_doctor_create_requires_name(client, db):
    response = client.post("/api/admin/doctors", json={"specialty": "Cardiology"})

    assert response.status_code == 400
    assert response.json()["message"] == "Missing required fields."


def test_doctor_list_filters_and_pagination(client, add_doctor):
    add_doctor(name="Dr. Ann Abel", specialty="Cardiology")
    add_doctor(name="Dr. Bea Brown", specialty="Dermatology")
    add_doctor(name="Dr. Cal Chase", specialty="Cardiology", is_active=False)

    page = client.get("/api/admin/doctors", params={"page": 2, "limit": 2}).json()
    assert [d["name"] for d in page["data"]] == ["Dr. Cal Chase"]
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    cardiology = client.get("/api/admin/doctors", params={"specialty": "cardiology"}).json()
    assert [d["name"] for d in cardiology["data"]] == ["Dr. Ann Abel", "Dr. Cal Chase"]

    active = client.get("/api/admin/doctors", params={"active": "false"}).json()
    assert [d["name"] for d in active["data"]] == ["Dr. Cal Chase"]

    search = client.get("/api/admin/doctors", params={"search": "BROWN"}).json()
    assert [d["name"] for d in search["data"]] == ["Dr. Bea Brown"]


def test_delete_doctor_without_appointments_removes_row(client, db, add_doctor):
    doctor = add_doctor()

    response = client.delete(f"/api/admin/doctors/{doctor.id}")

    assert response.status_code == 200
    assert response.json()["message"] == "Doctor deleted"
    assert client.get(f"/api/admin/doctors/{doctor.id}").status_code == 404


def test_delete_doctor_with_appointments_deactivates(client, db, add_doctor, add_appointment, booking_day):
    doctor = add_doctor()
    add_appointment(doctor, booking_day, time(10, 0))

    body = client.delete(f"/api/admin/doctors/{doctor.id}").json()

    assert body["data"]["isActive"] is False
    db.expire_all()
    assert db.get(Doctor, doctor.id).is_active is False
    assert client.post("/api/select-doctor", json={"doctorId": doctor.id}).status_code == 404


def test_delete_doctor_with_only_past_appointments_deactivates(client, db, add_doctor, add_appointment):
    doctor = add_doctor()
    add_appointment(doctor, date.today() - timedelta(days=30), time(10, 0), status="completed")

    body = client.delete(f"/api/admin/doctors/{doctor.id}").json()

    assert body["data"]["isActive"] is False


def test_availability_window_crud(client, add_doctor, booking_day):
    doctor = add_doctor(days=[])
    base = f"/api/admin/doctors/{doctor.id}/availability"
    day = (booking_day.weekday() + 1) % 7

    created = client.post(base, json={"dayOfWeek": day, "startTime": "09:00", "endTime": "10:00"})
    assert created.status_code == 201
    window = created.json()["data"]
    assert window["startTime"] == "09:00:00"

    slots = client.get("/api/availability", params={"doctorId": doctor.id, "date": booking_day.isoformat()}).json()
    assert [s["time"] for s in slots] == ["09:00:00", "09:30:00"]

    updated = client.put(f"{base}/{window['id']}", json={"endTime": "11:00"}).json()
    assert updated["data"]["endTime"] == "11:00:00"

    listed = client.get(base).json()
    assert [w["id"] for w in listed["data"]] == [window["id"]]

    assert client.delete(f"{base}/{window['id']}").status_code == 200
    assert client.get(base).json()["data"] == []
    assert client.delete(f"{base}/{window['id']}").status_code == 404


def test_availability_window_rejects_inverted_range(client, add_doctor):
    doctor = add_doctor(days=[1])
    base = f"/api/admin/doctors/{doctor.id}/availability"

    response = client.post(base, json={"dayOfWeek": 1, "startTime": "12:00", "endTime": "09:00"})
    assert response.status_code == 400
    assert response.json()["success"] is False

    window_id = client.get(base).json()["data"][0]["id"]
    response = client.put(f"{base}/{window_id}", json={"startTime": "18:00"})
    assert response.status_code == 400


def test_availability_window_rejects_bad_weekday(client, add_doctor):
    doctor = add_doctor()

    response = client.post(
        f"/api/admin/doctors/{doctor.id}/availability",
        json={"dayOfWeek": 7, "startTime": "09:00", "endTime": "10:00"},
    )

    assert response.status_code == 400


def test_blocked_slot_hides_times(client, add_doctor, booking_day):
    doctor = add_doctor()
    base = f"/api/admin/doctors/{doctor.id}/blocked-slots"
    params = {"doctorId": doctor.id, "date": booking_day.isoformat()}

    created = client.post(
        base,
        json={"blockedDate": booking_day.isoformat(), "startTime": "10:00", "endTime": "11:00", "reason": "Surgery"},
    )
    assert created.status_code == 201
    block = created.json()["data"]

    times = {s["time"] for s in client.get("/api/availability", params=params).json()}
    assert not times & {"10:00:00", "10:30:00", "11:00:00"}
    assert "09:30:00" in times

    listed = client.get(base, params={"dateFrom": booking_day.isoformat()}).json()
    assert [b["reason"] for b in listed["data"]] == ["Surgery"]
    later = client.get(base, params={"dateFrom": (booking_day + timedelta(days=1)).isoformat()}).json()
    assert later["data"] == []

    assert client.delete(f"{base}/{block['id']}").status_code == 200
    times = {s["time"] for s in client.get("/api/availability", params=params).json()}
    assert "10:30:00" in times


def test_patient_create_search_and_update(client, db):
    created = client.post(
        "/api/admin/patients", json={"name": "Jane Doe", "email": "Jane@Example.com", "phone": "555-0101"}
    )
    assert created.status_code == 201
    patient = created.json()["data"]
    assert patient["email"] == "jane@example.com"

    duplicate = client.post("/api/admin/patients", json={"name": "Other", "email": "jane@example.com"})
    assert duplicate.status_code == 409

    other = client.post("/api/admin/patients", json={"name": "Sam Smith", "email": "sam@example.com"}).json()["data"]

    found = client.get("/api/admin/patients", params={"search": "sam"}).json()
    assert [p["id"] for p in found["data"]] == [other["id"]]
    assert found["pagination"]["total"] == 1

    clash = client.put(f"/api/admin/patients/{other['id']}", json={"email": "jane@example.com"})
    assert clash.status_code == 409

    renamed = client.put(f"/api/admin/patients/{other['id']}", json={"name": "Samuel Smith"}).json()
    assert renamed["data"]["name"] == "Samuel Smith"
    assert renamed["data"]["email"] == "sam@example.com"

    assert client.put("/api/admin/patients/999", json={"name": "Nobody"}).status_code == 404


def test_patient_detail_includes_appointments(client, add_doctor, add_appointment, booking_day):
    doctor = add_doctor()
    first = add_appointment(doctor, booking_day, time(9, 0))
    second = add_appointment(doctor, booking_day + timedelta(days=1), time(9, 0))

    detail = client.get(f"/api/admin/patients/{first.patient_id}").json()["data"]

    assert detail["email"] == "pat@example.com"
    assert [a["id"] for a in detail["appointments"]] == [second.id, first.id]
    assert client.get("/api/admin/patients/999").status_code == 404


def test_appointment_list_filters(client, add_doctor, add_appointment, booking_day):
    cardio = add_doctor()
    derm = add_doctor(name="Dr. Emily Rodriguez", specialty="Dermatology")
    add_appointment(cardio, booking_day, time(9, 0))
    add_appointment(derm, booking_day, time(9, 0), status="cancelled")
    add_appointment(derm, booking_day + timedelta(days=2), time(9, 0))

    everything = client.get("/api/admin/appointments").json()
    assert everything["pagination"]["total"] == 3
    assert everything["data"][0]["appointmentDate"] == (booking_day + timedelta(days=2)).isoformat()
    assert everything["data"][0]["doctorName"] == "Dr. Emily Rodriguez"
    assert everything["data"][0]["patientEmail"] == "pat@example.com"

    by_doctor = client.get("/api/admin/appointments", params={"doctorId": derm.id}).json()
    assert by_doctor["pagination"]["total"] == 2

    cancelled = client.get("/api/admin/appointments", params={"status": "cancelled"}).json()
    assert [a["status"] for a in cancelled["data"]] == ["cancelled"]

    window = client.get(
        "/api/admin/appointments",
        params={"dateFrom": booking_day.isoformat(), "dateTo": booking_day.isoformat()},
    ).json()
    assert window["pagination"]["total"] == 2


def test_appointment_status_updates(client, add_doctor, add_appointment, booking_day):
    doctor = add_doctor()
    appointment = add_appointment(doctor, booking_day, time(9, 0))
    url = f"/api/admin/appointments/{appointment.id}/status"

    confirmed = client.put(url, json={"status": "confirmed"})
    assert confirmed.status_code == 200
    assert confirmed.json()["data"]["status"] == "confirmed"

    assert client.put(url, json={"status": "scheduled"}).status_code == 409
    assert client.put(url, json={"status": "done"}).status_code == 400
    assert client.put("/api/admin/appointments/999/status", json={"status": "confirmed"}).status_code == 404

    assert client.put(url, json={"status": "no-show"}).json()["data"]["status"] == "no-show"
    assert client.put(url, json={"status": "cancelled"}).status_code == 409


def test_stats(client, add_doctor, add_appointment, booking_day):
    doctor = add_doctor()
    add_doctor(name="Dr. Retired", is_active=False)
    add_appointment(doctor, date.today(), time(23, 30))
    add_appointment(doctor, booking_day, time(9, 0), status="confirmed")
    add_appointment(doctor, booking_day, time(9, 30), status="cancelled", email="other@example.com")

    data = client.get("/api/admin/stats").json()["data"]

    assert data["activeDoctors"] == 1
    assert data["totalPatients"] == 2
    assert data["totalAppointments"] == 3
    assert data["appointmentsByStatus"] == {
        "scheduled": 1,
        "confirmed": 1,
        "completed": 0,
        "cancelled": 1,
        "no-show": 0,
    }
    assert data["appointmentsToday"] == 1
    assert data["upcomingAppointments"] == 2
