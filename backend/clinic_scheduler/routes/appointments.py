from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_session
from ..errors import SlotUnavailableError
from ..models import Appointment
from ..schemas import AppointmentOut, BookAppointmentRequest, BookingResponse, SlotOut
from ..services.availability import open_slots
from ..services.booking import BookingRequest, book_appointment
from ..services.calendar import build_ics, calendar_filename
from ..services.email import send_appointment_confirmation

router = APIRouter()


@router.post("/book-appointment", response_model=BookingResponse, response_model_exclude_none=True)
def book(payload: BookAppointmentRequest, db: Session = Depends(get_session)) -> BookingResponse:
    request = BookingRequest(
        patient_name=payload.patient_name,
        email=payload.email,
        phone=payload.phone,
        doctor_id=payload.doctor_id,
        appointment_type_id=payload.appointment_type_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        reason_for_visit=payload.reason_for_visit,
    )
    try:
        appointment = book_appointment(db, request)
    except SlotUnavailableError as exc:
        return BookingResponse(success=False, message=str(exc), alternatives=exc.alternatives)

    send_appointment_confirmation(appointment)
    return BookingResponse(
        success=True,
        message="Appointment booked successfully!",
        appointment=AppointmentOut.model_validate(appointment),
    )


@router.get("/calendar/{appointment_id}")
def download_calendar(appointment_id: int, db: Session = Depends(get_session)) -> Response:
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")

    return Response(
        content=build_ics(appointment),
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{calendar_filename(appointment)}"'},
    )


@router.get("/availability", response_model=list[SlotOut])
def list_availability(
    doctor_id: int | None = Query(default=None, alias="doctorId"),
    on_date: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_session),
) -> list[SlotOut]:
    if on_date:
        slots = open_slots(db, doctor_id=doctor_id, start_date=on_date, days=1)
    else:
        slots = open_slots(db, doctor_id=doctor_id, days=settings.availability_days)
    return [SlotOut.model_validate(slot.as_dict()) for slot in slots]
