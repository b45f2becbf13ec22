from datetime import UTC, datetime, timedelta

from ..models import Appointment

PRODUCT_ID = "-//Clinic Scheduler//Appointments//EN"
DEFAULT_DURATION_MINUTES = 30

ICS_STATUS = {
    "scheduled": "TENTATIVE",
    "confirmed": "CONFIRMED",
    "completed": "CONFIRMED",
    "cancelled": "CANCELLED",
    "no-show": "CANCELLED",
}


def _escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str) -> list[str]:
    # RFC 5545 limits content lines to 75 octets; continuation lines start with a space
    parts: list[str] = []
    current = ""
    size = 0
    for char in line:
        width = len(char.encode("utf-8"))
        limit = 74 if parts else 75
        if size + width > limit:
            parts.append(current)
            current, size = "", 0
        current += char
        size += width
    parts.append(current)
    return parts[:1] + [" " + part for part in parts[1:]]


def _format_local(value: datetime) -> str:
    return value.strftime("%Y%m%dT%H%M%S")


def build_ics(appointment: Appointment, now: datetime | None = None) -> str:
    doctor = appointment.doctor
    patient = appointment.patient
    appointment_type = appointment.appointment_type
    duration = (
        appointment_type.duration_minutes if appointment_type else DEFAULT_DURATION_MINUTES
    )
    type_name = appointment_type.name if appointment_type else "Appointment"

    start = datetime.combine(appointment.appointment_date, appointment.appointment_time)
    end = start + timedelta(minutes=duration)
    stamp = (now or datetime.now(UTC)).astimezone(UTC)

    description_lines = [
        f"Confirmation: {appointment.confirmation_number}",
        f"Patient: {patient.name}",
        f"Doctor: {doctor.name} ({doctor.specialty})",
    ]
    if appointment.reason_for_visit:
        description_lines.append(f"Reason: {appointment.reason_for_visit}")

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODUCT_ID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{appointment.confirmation_number.lower()}@clinic-scheduler",
        f"DTSTAMP:{stamp.strftime('%Y%m%dT%H%M%SZ')}",
        f"DTSTART:{_format_local(start)}",
        f"DTEND:{_format_local(end)}",
        f"SUMMARY:{_escape(f'{type_name} with {doctor.name}')}",
        f"LOCATION:{_escape(doctor.office_location or 'Clinic')}",
        f"DESCRIPTION:{_escape(chr(10).join(description_lines))}",
        f"STATUS:{ICS_STATUS.get(appointment.status, 'TENTATIVE')}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    folded = [part for line in lines for part in _fold(line)]
    return "\r\n".join(folded) + "\r\n"


def calendar_filename(appointment: Appointment) -> str:
    return f"appointment-{appointment.confirmation_number}.ics"
