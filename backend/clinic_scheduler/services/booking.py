import logging
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import InvalidTransitionError, NotFoundError, SlotUnavailableError
from ..models import (
    DEFAULT_APPOINTMENT_TYPE_ID,
    Appointment,
    AppointmentType,
    Patient,
)
from .availability import check_slot_availability, suggest_alternatives

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    "scheduled": {"confirmed", "cancelled"},
    "confirmed": {"completed", "no-show", "cancelled"},
    "completed": set(),
    "cancelled": set(),
    "no-show": set(),
}

UNAVAILABLE_MESSAGE = "Sorry, that time slot is no longer available."


@dataclass
class BookingRequest:
    patient_name: str
    email: str
    doctor_id: int
    appointment_date: date
    appointment_time: time
    phone: str | None = None
    appointment_type_id: int | None = None
    reason_for_visit: str | None = None


def find_patient_by_email(db: Session, email: str) -> Patient | None:
    stmt = select(Patient).where(func.lower(Patient.email) == email.strip().lower())
    return db.scalars(stmt).first()


def find_or_create_patient(db: Session, name: str, email: str, phone: str | None = None) -> Patient:
    patient = find_patient_by_email(db, email)
    if patient:
        return patient

    patient = Patient(name=name.strip(), email=email.strip().lower(), phone=phone)
    db.add(patient)
    db.flush()
    logger.info("patient_created patient_id=%s", patient.id)
    return patient


def _resolve_appointment_type(db: Session, appointment_type_id: int | None) -> int:
    if appointment_type_id and db.get(AppointmentType, appointment_type_id):
        return appointment_type_id
    return DEFAULT_APPOINTMENT_TYPE_ID


def _unavailable(db: Session, doctor_id: int, reason: str | None) -> SlotUnavailableError:
    alternatives = [slot.as_dict() for slot in suggest_alternatives(db, doctor_id)]
    return SlotUnavailableError(UNAVAILABLE_MESSAGE, reason=reason, alternatives=alternatives)


def book_appointment(db: Session, request: BookingRequest, now: datetime | None = None) -> Appointment:
    """Re-validate the slot, find or create the patient and insert a scheduled appointment.

    The availability check and the insert are not serialized; the partial
    unique index on active appointments rejects the losing insert of two
    concurrent bookings, which is reported the same way as a failed check.
    A rejected insert is retried once: when the slot is still free the
    conflict came from a concurrent first booking with the same email, and
    the retry picks up that patient record.
    """
    retried = False
    while True:
        availability = check_slot_availability(
            db, request.doctor_id, request.appointment_date, request.appointment_time, now=now
        )
        if not availability["available"]:
            raise _unavailable(db, request.doctor_id, availability["reason"])

        try:
            patient = find_or_create_patient(db, request.patient_name, request.email, request.phone)
            appointment = Appointment(
                patient_id=patient.id,
                doctor_id=request.doctor_id,
                appointment_type_id=_resolve_appointment_type(db, request.appointment_type_id),
                appointment_date=request.appointment_date,
                appointment_time=request.appointment_time,
                reason_for_visit=request.reason_for_visit,
                status="scheduled",
            )
            db.add(appointment)
            db.flush()
            db.commit()
            break
        except IntegrityError as exc:
            db.rollback()
            logger.warning(
                "booking_conflict doctor_id=%s date=%s time=%s retried=%s error=%s",
                request.doctor_id,
                request.appointment_date,
                request.appointment_time,
                retried,
                exc.orig,
            )
            if retried:
                raise _unavailable(db, request.doctor_id, "already_booked") from exc
            retried = True

    db.refresh(appointment)
    logger.info(
        "appointment_booked appointment_id=%s confirmation=%s doctor_id=%s",
        appointment.id,
        appointment.confirmation_number,
        appointment.doctor_id,
    )
    return appointment


def update_appointment_status(db: Session, appointment_id: int, status: str) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")

    if status != appointment.status and status not in STATUS_TRANSITIONS.get(appointment.status, set()):
        raise InvalidTransitionError(
            f"Cannot change appointment status from {appointment.status} to {status}"
        )

    appointment.status = status
    db.commit()
    db.refresh(appointment)
    logger.info("appointment_status appointment_id=%s status=%s", appointment.id, status)
    return appointment
