from datetime import UTC, date, datetime, time

from clinic_scheduler.models import Appointment, AppointmentType, Doctor, Patient
from clinic_scheduler.services.calendar import build_ics, calendar_filename


def _appointment(**overrides) -> Appointment:
    doctor = Doctor(id=1, name="Dr. Sarah Johnson", specialty="Cardiology", office_location="Building A, Room 101")
    patient = Patient(id=7, name="Jane Doe", email="jane@example.com")
    appointment = Appointment(
        id=42,
        doctor=doctor,
        patient=patient,
        appointment_type=AppointmentType(id=1, name="General Consultation", duration_minutes=30),
        appointment_date=date(2025, 9, 16),
        appointment_time=time(14, 0),
        status="scheduled",
        confirmation_number="APT-1A2B3C4D",
        reason_for_visit="Follow-up; blood pressure",
    )
    for key, value in overrides.items():
        setattr(appointment, key, value)
    return appointment


def test_event_times_encode_date_and_time():
    ics = build_ics(_appointment(), now=datetime(2025, 9, 1, 12, 0, tzinfo=UTC))

    assert "DTSTART:20250916T140000\r\n" in ics
    assert "DTEND:20250916T143000\r\n" in ics
    assert "DTSTAMP:20250901T120000Z\r\n" in ics


def test_calendar_structure_and_line_endings():
    ics = build_ics(_appointment())

    assert ics.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n")
    assert ics.endswith("END:VEVENT\r\nEND:VCALENDAR\r\n")
    assert "UID:apt-1a2b3c4d@clinic-scheduler" in ics
    assert "STATUS:TENTATIVE" in ics
    assert "SUMMARY:General Consultation with Dr. Sarah Johnson" in ics


def test_text_values_are_escaped():
    ics = build_ics(_appointment())

    assert "LOCATION:Building A\\, Room 101" in ics
    unfolded = ics.replace("\r\n ", "")
    assert "Reason: Follow-up\\; blood pressure" in unfolded
    assert "\\nPatient: Jane Doe" in unfolded


def test_long_lines_are_folded():
    ics = build_ics(_appointment(reason_for_visit="x" * 200))

    assert all(len(line) <= 75 for line in ics.split("\r\n"))


def test_folding_counts_utf8_octets():
    reason = "Contrôle après opération, médecin référent: Dr. Müller " * 4
    ics = build_ics(_appointment(reason_for_visit=reason))

    assert all(len(line.encode("utf-8")) <= 75 for line in ics.split("\r\n"))
    unfolded = ics.replace("\r\n ", "")
    assert "Reason: Contrôle après opération\\, médecin référent: Dr. Müller" in unfolded


def test_duration_follows_appointment_type():
    appointment = _appointment(
        appointment_type=AppointmentType(id=3, name="Annual Physical", duration_minutes=60)
    )

    assert "DTEND:20250916T150000" in build_ics(appointment)


def test_confirmed_status_and_filename():
    appointment = _appointment(status="confirmed")

    assert "STATUS:CONFIRMED" in build_ics(appointment)
    assert calendar_filename(appointment) == "appointment-APT-1A2B3C4D.ics"
