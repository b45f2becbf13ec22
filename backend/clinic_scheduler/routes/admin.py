import logging
import math
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from ..db import get_session
from ..errors import InvalidTransitionError, NotFoundError
from ..models import (
    ACTIVE_STATUSES,
    APPOINTMENT_STATUSES,
    Appointment,
    BlockedSlot,
    Doctor,
    DoctorAvailability,
    Patient,
)
from ..schemas import (
    AdminAppointmentOut,
    AppointmentOut,
    AppointmentStatus,
    AvailabilityWindowIn,
    AvailabilityWindowOut,
    AvailabilityWindowUpdate,
    BlockedSlotIn,
    BlockedSlotOut,
    DoctorCreate,
    DoctorOut,
    DoctorUpdate,
    Envelope,
    Pagination,
    PatientCreate,
    PatientDetailOut,
    PatientOut,
    PatientUpdate,
    StatsOut,
    StatusUpdate,
)
from ..services.booking import find_patient_by_email, update_appointment_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin")


def _paginate(db: Session, stmt: Select, page: int, limit: int) -> tuple[list, Pagination]:
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    items = db.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()
    pagination = Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)
    return list(items), pagination


def _get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")
    return doctor


def _appointment_row(appointment: Appointment) -> AdminAppointmentOut:
    base = AppointmentOut.model_validate(appointment).model_dump()
    return AdminAppointmentOut(
        **base,
        doctor_name=appointment.doctor.name,
        patient_name=appointment.patient.name,
        patient_email=appointment.patient.email,
    )


# ---- doctors ----


@router.get("/doctors", response_model=Envelope[list[DoctorOut]])
def list_doctors(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    specialty: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    db: Session = Depends(get_session),
) -> Envelope[list[DoctorOut]]:
    stmt = select(Doctor)
    if specialty:
        stmt = stmt.where(func.lower(Doctor.specialty) == specialty.lower())
    if active is not None:
        stmt = stmt.where(Doctor.is_active.is_(active))
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(func.lower(Doctor.name).like(pattern), func.lower(Doctor.specialty).like(pattern))
        )
    doctors, pagination = _paginate(db, stmt.order_by(Doctor.name, Doctor.id), page, limit)
    return Envelope(data=[DoctorOut.model_validate(d) for d in doctors], pagination=pagination)


@router.get("/doctors/{doctor_id}", response_model=Envelope[DoctorOut])
def get_doctor(doctor_id: int, db: Session = Depends(get_session)) -> Envelope[DoctorOut]:
    return Envelope(data=DoctorOut.model_validate(_get_doctor(db, doctor_id)))


@router.post("/doctors", response_model=Envelope[DoctorOut], status_code=201)
def create_doctor(payload: DoctorCreate, db: Session = Depends(get_session)) -> Envelope[DoctorOut]:
    doctor = Doctor(**payload.model_dump())
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    logger.info("doctor_created doctor_id=%s", doctor.id)
    return Envelope(data=DoctorOut.model_validate(doctor), message="Doctor created")


@router.put("/doctors/{doctor_id}", response_model=Envelope[DoctorOut])
def update_doctor(
    doctor_id: int, payload: DoctorUpdate, db: Session = Depends(get_session)
) -> Envelope[DoctorOut]:
    doctor = _get_doctor(db, doctor_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "specialty", "is_active"):
            continue
        setattr(doctor, field, value)
    db.commit()
    db.refresh(doctor)
    return Envelope(data=DoctorOut.model_validate(doctor), message="Doctor updated")


@router.delete("/doctors/{doctor_id}", response_model=Envelope[DoctorOut])
def delete_doctor(doctor_id: int, db: Session = Depends(get_session)) -> Envelope[DoctorOut]:
    doctor = _get_doctor(db, doctor_id)
    has_future = db.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date >= date.today(),
            Appointment.status.in_(ACTIVE_STATUSES),
        )
    )
    has_history = db.scalar(
        select(func.count()).select_from(Appointment).where(Appointment.doctor_id == doctor_id)
    )
    data = DoctorOut.model_validate(doctor)
    if has_future or has_history:
        # appointment rows reference the doctor; keep the record and hide it
        doctor.is_active = False
        db.commit()
        db.refresh(doctor)
        logger.info("doctor_deactivated doctor_id=%s future_appointments=%s", doctor_id, has_future)
        return Envelope(
            data=DoctorOut.model_validate(doctor),
            message="Doctor has appointments and was deactivated",
        )

    db.delete(doctor)
    db.commit()
    logger.info("doctor_deleted doctor_id=%s", doctor_id)
    return Envelope(data=data, message="Doctor deleted")


# ---- availability windows ----


@router.get("/doctors/{doctor_id}/availability", response_model=Envelope[list[AvailabilityWindowOut]])
def list_windows(doctor_id: int, db: Session = Depends(get_session)) -> Envelope[list[AvailabilityWindowOut]]:
    _get_doctor(db, doctor_id)
    windows = db.scalars(
        select(DoctorAvailability)
        .where(DoctorAvailability.doctor_id == doctor_id)
        .order_by(DoctorAvailability.day_of_week, DoctorAvailability.start_time)
    ).all()
    return Envelope(data=[AvailabilityWindowOut.model_validate(w) for w in windows])


@router.post(
    "/doctors/{doctor_id}/availability",
    response_model=Envelope[AvailabilityWindowOut],
    status_code=201,
)
def create_window(
    doctor_id: int, payload: AvailabilityWindowIn, db: Session = Depends(get_session)
) -> Envelope[AvailabilityWindowOut]:
    _get_doctor(db, doctor_id)
    window = DoctorAvailability(doctor_id=doctor_id, **payload.model_dump())
    db.add(window)
    db.commit()
    db.refresh(window)
    return Envelope(data=AvailabilityWindowOut.model_validate(window), message="Availability added")


def _get_window(db: Session, doctor_id: int, window_id: int) -> DoctorAvailability:
    window = db.get(DoctorAvailability, window_id)
    if not window or window.doctor_id != doctor_id:
        raise HTTPException(status_code=404, detail="Availability window not found")
    return window


@router.put(
    "/doctors/{doctor_id}/availability/{window_id}",
    response_model=Envelope[AvailabilityWindowOut],
)
def update_window(
    doctor_id: int,
    window_id: int,
    payload: AvailabilityWindowUpdate,
    db: Session = Depends(get_session),
) -> Envelope[AvailabilityWindowOut]:
    window = _get_window(db, doctor_id, window_id)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    start = changes.get("start_time", window.start_time)
    end = changes.get("end_time", window.end_time)
    if start >= end:
        raise HTTPException(status_code=400, detail="start_time must be before end_time")
    for field, value in changes.items():
        setattr(window, field, value)
    db.commit()
    db.refresh(window)
    return Envelope(data=AvailabilityWindowOut.model_validate(window), message="Availability updated")


@router.delete(
    "/doctors/{doctor_id}/availability/{window_id}",
    response_model=Envelope[AvailabilityWindowOut],
)
def delete_window(
    doctor_id: int, window_id: int, db: Session = Depends(get_session)
) -> Envelope[AvailabilityWindowOut]:
    window = _get_window(db, doctor_id, window_id)
    data = AvailabilityWindowOut.model_validate(window)
    db.delete(window)
    db.commit()
    return Envelope(data=data, message="Availability removed")


# ---- blocked slots ----


@router.get("/doctors/{doctor_id}/blocked-slots", response_model=Envelope[list[BlockedSlotOut]])
def list_blocked_slots(
    doctor_id: int,
    date_from: date | None = Query(default=None, alias="dateFrom"),
    db: Session = Depends(get_session),
) -> Envelope[list[BlockedSlotOut]]:
    _get_doctor(db, doctor_id)
    stmt = select(BlockedSlot).where(BlockedSlot.doctor_id == doctor_id)
    if date_from:
        stmt = stmt.where(BlockedSlot.blocked_date >= date_from)
    blocks = db.scalars(stmt.order_by(BlockedSlot.blocked_date, BlockedSlot.start_time)).all()
    return Envelope(data=[BlockedSlotOut.model_validate(b) for b in blocks])


@router.post(
    "/doctors/{doctor_id}/blocked-slots",
    response_model=Envelope[BlockedSlotOut],
    status_code=201,
)
def create_blocked_slot(
    doctor_id: int, payload: BlockedSlotIn, db: Session = Depends(get_session)
) -> Envelope[BlockedSlotOut]:
    _get_doctor(db, doctor_id)
    block = BlockedSlot(doctor_id=doctor_id, **payload.model_dump())
    db.add(block)
    db.commit()
    db.refresh(block)
    logger.info(
        "slot_blocked doctor_id=%s date=%s start=%s end=%s",
        doctor_id,
        block.blocked_date,
        block.start_time,
        block.end_time,
    )
    return Envelope(data=BlockedSlotOut.model_validate(block), message="Time blocked")


@router.delete(
    "/doctors/{doctor_id}/blocked-slots/{block_id}",
    response_model=Envelope[BlockedSlotOut],
)
def delete_blocked_slot(
    doctor_id: int, block_id: int, db: Session = Depends(get_session)
) -> Envelope[BlockedSlotOut]:
    block = db.get(BlockedSlot, block_id)
    if not block or block.doctor_id != doctor_id:
        raise HTTPException(status_code=404, detail="Blocked slot not found")
    data = BlockedSlotOut.model_validate(block)
    db.delete(block)
    db.commit()
    return Envelope(data=data, message="Block removed")


# ---- patients ----


@router.get("/patients", response_model=Envelope[list[PatientOut]])
def list_patients(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = None,
    db: Session = Depends(get_session),
) -> Envelope[list[PatientOut]]:
    stmt = select(Patient)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Patient.name).like(pattern),
                func.lower(Patient.email).like(pattern),
                Patient.phone.like(f"%{search}%"),
            )
        )
    patients, pagination = _paginate(db, stmt.order_by(Patient.name, Patient.id), page, limit)
    return Envelope(data=[PatientOut.model_validate(p) for p in patients], pagination=pagination)


@router.get("/patients/{patient_id}", response_model=Envelope[PatientDetailOut])
def get_patient(patient_id: int, db: Session = Depends(get_session)) -> Envelope[PatientDetailOut]:
    patient = db.get(Patient, patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    appointments = sorted(
        patient.appointments, key=lambda a: (a.appointment_date, a.appointment_time), reverse=True
    )
    detail = PatientDetailOut(
        **PatientOut.model_validate(patient).model_dump(),
        appointments=[AppointmentOut.model_validate(a) for a in appointments],
    )
    return Envelope(data=detail)


@router.post("/patients", response_model=Envelope[PatientOut], status_code=201)
def create_patient(payload: PatientCreate, db: Session = Depends(get_session)) -> Envelope[PatientOut]:
    if find_patient_by_email(db, payload.email):
        raise HTTPException(status_code=409, detail="A patient with this email already exists")
    patient = Patient(name=payload.name, email=payload.email.strip().lower(), phone=payload.phone)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return Envelope(data=PatientOut.model_validate(patient), message="Patient created")


@router.put("/patients/{patient_id}", response_model=Envelope[PatientOut])
def update_patient(
    patient_id: int, payload: PatientUpdate, db: Session = Depends(get_session)
) -> Envelope[PatientOut]:
    patient = db.get(Patient, patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    changes = payload.model_dump(exclude_unset=True)
    if "email" in changes and changes["email"] is not None:
        changes["email"] = changes["email"].strip().lower()
        existing = find_patient_by_email(db, changes["email"])
        if existing and existing.id != patient.id:
            raise HTTPException(status_code=409, detail="A patient with this email already exists")
    for field, value in changes.items():
        if value is not None:
            setattr(patient, field, value)
    db.commit()
    db.refresh(patient)
    return Envelope(data=PatientOut.model_validate(patient), message="Patient updated")


# ---- appointments ----


@router.get("/appointments", response_model=Envelope[list[AdminAppointmentOut]])
def list_appointments(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: AppointmentStatus | None = None,
    doctor_id: int | None = Query(default=None, alias="doctorId"),
    date_from: date | None = Query(default=None, alias="dateFrom"),
    date_to: date | None = Query(default=None, alias="dateTo"),
    db: Session = Depends(get_session),
) -> Envelope[list[AdminAppointmentOut]]:
    stmt = select(Appointment)
    if status:
        stmt = stmt.where(Appointment.status == status)
    if doctor_id is not None:
        stmt = stmt.where(Appointment.doctor_id == doctor_id)
    if date_from:
        stmt = stmt.where(Appointment.appointment_date >= date_from)
    if date_to:
        stmt = stmt.where(Appointment.appointment_date <= date_to)
    stmt = stmt.order_by(
        Appointment.appointment_date.desc(), Appointment.appointment_time.desc(), Appointment.id.desc()
    )
    appointments, pagination = _paginate(db, stmt, page, limit)
    return Envelope(data=[_appointment_row(a) for a in appointments], pagination=pagination)


@router.put("/appointments/{appointment_id}/status", response_model=Envelope[AdminAppointmentOut])
def set_appointment_status(
    appointment_id: int, payload: StatusUpdate, db: Session = Depends(get_session)
) -> Envelope[AdminAppointmentOut]:
    try:
        appointment = update_appointment_status(db, appointment_id, payload.status)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return Envelope(data=_appointment_row(appointment), message=f"Appointment {payload.status}")


@router.get("/stats", response_model=Envelope[StatsOut])
def stats(db: Session = Depends(get_session)) -> Envelope[StatsOut]:
    today = date.today()
    by_status = {status: 0 for status in APPOINTMENT_STATUSES}
    rows = db.execute(
        select(Appointment.status, func.count()).group_by(Appointment.status)
    ).all()
    for status, count in rows:
        by_status[status] = count

    active_today = db.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(Appointment.appointment_date == today, Appointment.status.in_(ACTIVE_STATUSES))
    )
    upcoming = db.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(
            Appointment.appointment_date >= today,
            Appointment.appointment_date <= today + timedelta(days=7),
            Appointment.status.in_(ACTIVE_STATUSES),
        )
    )
    data = StatsOut(
        active_doctors=db.scalar(
            select(func.count()).select_from(Doctor).where(Doctor.is_active.is_(True))
        ) or 0,
        total_patients=db.scalar(select(func.count()).select_from(Patient)) or 0,
        total_appointments=sum(by_status.values()),
        appointments_by_status=by_status,
        appointments_today=active_today or 0,
        upcoming_appointments=upcoming or 0,
    )
    return Envelope(data=data)
