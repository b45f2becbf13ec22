from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_session
from ..errors import SlotUnavailableError
from ..models import Doctor
from ..schemas import (
    AppointmentOut,
    BookingResponse,
    ChatReply,
    ChatRequest,
    ChatResponse,
    CompleteBookingRequest,
    SelectAppointmentRequest,
    SelectDoctorRequest,
)
from ..services.availability import check_slot_availability, open_slots, suggest_alternatives
from ..services.booking import UNAVAILABLE_MESSAGE, BookingRequest, book_appointment
from ..services.email import build_confirmation_body, format_slot, send_appointment_confirmation
from ..services.interpreter import build_clinic_snapshot, interpret_message

router = APIRouter()


def _slot_actions(slots: list[dict]) -> list[dict]:
    return [
        {
            "type": "select_date",
            "text": f"{slot['date']} at {slot['time'][:5]}",
            "data": slot["ref"],
        }
        for slot in slots
    ]


def _unavailable_response(alternatives: list[dict]) -> BookingResponse:
    content = UNAVAILABLE_MESSAGE
    if alternatives:
        content += " Here are some other open times:"
    return BookingResponse(
        success=False,
        message=UNAVAILABLE_MESSAGE,
        alternatives=alternatives,
        response=ChatReply(content=content, actions=_slot_actions(alternatives)),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest, db: Session = Depends(get_session)) -> ChatResponse:
    snapshot = build_clinic_snapshot(db)
    reply = await interpret_message(payload.message, snapshot)
    return ChatResponse(success=True, response=reply)


@router.post("/select-doctor", response_model=ChatResponse)
def select_doctor(payload: SelectDoctorRequest, db: Session = Depends(get_session)) -> ChatResponse:
    doctor = db.get(Doctor, payload.doctor_id)
    if not doctor or not doctor.is_active:
        raise HTTPException(status_code=404, detail="Doctor not found")

    slots = [slot.as_dict() for slot in open_slots(db, doctor_id=doctor.id, limit=settings.selection_slot_limit)]
    if not slots:
        content = (
            f"{doctor.name} has no open appointments in the next {settings.availability_days} days. "
            "Would you like to choose another doctor?"
        )
        return ChatResponse(response=ChatReply(content=content, actions=[]))

    content = f"Here are the next available appointments with {doctor.name} ({doctor.specialty}):"
    return ChatResponse(response=ChatReply(content=content, actions=_slot_actions(slots)))


@router.post("/select-appointment", response_model=BookingResponse, response_model_exclude_none=True)
def select_appointment(
    payload: SelectAppointmentRequest, db: Session = Depends(get_session)
) -> BookingResponse:
    ref = payload.appointment_data
    availability = check_slot_availability(db, ref.doctor_id, ref.slot_date, ref.slot_time)
    if not availability["available"]:
        alternatives = [slot.as_dict() for slot in suggest_alternatives(db, ref.doctor_id)]
        return _unavailable_response(alternatives)

    doctor = db.get(Doctor, ref.doctor_id)
    content = (
        f"Great choice! {ref.slot_date.strftime('%A, %B %d')} at "
        f"{ref.slot_time.strftime('%I:%M %p').lstrip('0')} with {doctor.name} is available. "
        "Please share your name, email and phone number to complete the booking."
    )
    actions = [{"type": "collect_info", "text": "Complete booking", "data": ref.composite}]
    return BookingResponse(
        success=True,
        message="Slot is available.",
        response=ChatReply(content=content, actions=actions),
    )


@router.post("/complete-booking", response_model=BookingResponse, response_model_exclude_none=True)
def complete_booking(
    payload: CompleteBookingRequest, db: Session = Depends(get_session)
) -> BookingResponse:
    ref = payload.appointment_data
    request = BookingRequest(
        patient_name=payload.patient_name or settings.guest_patient_name,
        email=payload.email or settings.guest_patient_email,
        phone=payload.phone,
        doctor_id=ref.doctor_id,
        appointment_date=ref.slot_date,
        appointment_time=ref.slot_time,
        reason_for_visit=payload.reason_for_visit or "Booked via chat assistant",
    )
    try:
        appointment = book_appointment(db, request)
    except SlotUnavailableError as exc:
        return _unavailable_response(exc.alternatives)

    send_appointment_confirmation(appointment)
    doctor = appointment.doctor
    content = (
        f"Your appointment with {doctor.name} is booked for {format_slot(appointment)}. "
        f"Confirmation number: {appointment.confirmation_number}."
    )
    actions = [
        {
            "type": "download_calendar",
            "text": "Add to calendar",
            "data": f"{settings.public_base_url.rstrip('/')}/api/calendar/{appointment.id}",
        },
        {"type": "show_email", "text": "View confirmation", "data": build_confirmation_body(appointment)},
        {"type": "start_over", "text": "Book another appointment", "data": ""},
    ]
    return BookingResponse(
        success=True,
        message="Appointment booked successfully!",
        appointment=AppointmentOut.model_validate(appointment),
        response=ChatReply(content=content, actions=actions),
    )
