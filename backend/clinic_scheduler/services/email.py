import logging
import smtplib
from email.message import EmailMessage

from ..config import settings
from ..models import Appointment
from .calendar import build_ics, calendar_filename

logger = logging.getLogger(__name__)

CONFIRMATION_SUBJECT = "Your appointment is confirmed"


def format_slot(appointment: Appointment) -> str:
    day = appointment.appointment_date.strftime("%A, %B %d, %Y")
    at = appointment.appointment_time.strftime("%I:%M %p").lstrip("0")
    return f"{day} at {at}"


def build_confirmation_body(appointment: Appointment) -> str:
    doctor = appointment.doctor
    location = doctor.office_location or "To be confirmed by the clinic."
    return (
        f"Hello {appointment.patient.name},\n\n"
        f"Your appointment with {doctor.name} ({doctor.specialty}) is booked for "
        f"{format_slot(appointment)}.\n"
        f"Location: {location}\n"
        f"Confirmation number: {appointment.confirmation_number}\n\n"
        "Please arrive 15 minutes early. Contact the clinic if you need to reschedule or cancel."
    )


def send_confirmation_email(
    to_address: str,
    subject: str,
    body: str,
    ics: tuple[str, str] | None = None,
) -> bool:
    if not (settings.smtp_host and settings.smtp_from):
        logger.info("email_disabled missing smtp_host or smtp_from")
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.smtp_from
    message["To"] = to_address
    message.set_content(body)
    if ics:
        filename, content = ics
        message.add_attachment(
            content.encode("utf-8"), maintype="text", subtype="calendar", filename=filename
        )

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("email_send_failed to=%s error=%s", to_address, exc)
        return False
    return True


def send_appointment_confirmation(appointment: Appointment) -> bool:
    if appointment.patient.email == settings.guest_patient_email:
        logger.info("email_skipped appointment_id=%s reason=guest_patient", appointment.id)
        return False
    return send_confirmation_email(
        appointment.patient.email,
        CONFIRMATION_SUBJECT,
        build_confirmation_body(appointment),
        ics=(calendar_filename(appointment), build_ics(appointment)),
    )
