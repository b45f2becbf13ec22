"""Open-slot computation over the doctors' recurring weekly availability.

A slot is a (doctor, date, time) derived from an active availability window.
Windows are split into ``slot_duration_minutes`` steps, the window start is
always a slot. A slot is open when no scheduled/confirmed appointment sits on
it and no blocked range for that doctor and date covers it (boundaries
inclusive). Only slot start times on that grid can be booked.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..models import ACTIVE_STATUSES, Appointment, BlockedSlot, Doctor, DoctorAvailability


@dataclass(frozen=True)
class OpenSlot:
    doctor_id: int
    doctor_name: str
    specialty: str
    slot_date: date
    slot_time: time

    @property
    def ref(self) -> str:
        return f"{self.doctor_id},{self.slot_date.isoformat()},{self.slot_time.strftime('%H:%M:%S')}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "doctorId": self.doctor_id,
            "doctorName": self.doctor_name,
            "specialty": self.specialty,
            "date": self.slot_date.isoformat(),
            "time": self.slot_time.strftime("%H:%M:%S"),
            "ref": self.ref,
        }


def day_of_week(day: date) -> int:
    """Day number with Sunday as 0, matching the stored availability windows."""
    return (day.weekday() + 1) % 7


def window_slot_times(start: time, end: time, minutes: int) -> list[time]:
    times = [start]
    if minutes <= 0:
        return times
    step = timedelta(minutes=minutes)
    end_dt = datetime.combine(date.min, end)
    current = datetime.combine(date.min, start) + step
    while current + step <= end_dt:
        times.append(current.time())
        current += step
    return times


def _is_blocked(ranges: Iterable[tuple[time, time]], at_time: time) -> bool:
    return any(start <= at_time <= end for start, end in ranges)


def compute_open_slots(
    doctors: Iterable[Any],
    windows: Iterable[Any],
    taken: set[tuple[int, date, time]],
    blocked: dict[tuple[int, date], list[tuple[time, time]]],
    start_date: date,
    days: int,
    slot_minutes: int,
    limit: int,
    now: datetime | None = None,
) -> list[OpenSlot]:
    doctor_by_id = {doctor.id: doctor for doctor in doctors if doctor.is_active}
    windows_by_day: dict[int, list[Any]] = defaultdict(list)
    for window in windows:
        if window.is_active and window.doctor_id in doctor_by_id:
            windows_by_day[window.day_of_week].append(window)

    slots: list[OpenSlot] = []
    for offset in range(days):
        day = start_date + timedelta(days=offset)
        for window in windows_by_day.get(day_of_week(day), []):
            doctor = doctor_by_id[window.doctor_id]
            block_ranges = blocked.get((doctor.id, day), [])
            for slot_time in window_slot_times(window.start_time, window.end_time, slot_minutes):
                if now is not None and datetime.combine(day, slot_time) < now:
                    continue
                if (doctor.id, day, slot_time) in taken:
                    continue
                if _is_blocked(block_ranges, slot_time):
                    continue
                slots.append(
                    OpenSlot(
                        doctor_id=doctor.id,
                        doctor_name=doctor.name,
                        specialty=doctor.specialty,
                        slot_date=day,
                        slot_time=slot_time,
                    )
                )

    slots = sorted(set(slots), key=lambda s: (s.slot_date, s.slot_time, s.doctor_name, s.doctor_id))
    return slots[:limit]


def open_slots(
    db: Session,
    doctor_id: int | None = None,
    start_date: date | None = None,
    days: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[OpenSlot]:
    now = now or datetime.now()
    start_date = start_date or now.date()
    days = settings.availability_days if days is None else days
    limit = settings.availability_limit if limit is None else limit
    end_date = start_date + timedelta(days=max(days - 1, 0))

    doctor_stmt = select(Doctor).where(Doctor.is_active.is_(True))
    window_stmt = select(DoctorAvailability).where(DoctorAvailability.is_active.is_(True))
    appointment_stmt = select(
        Appointment.doctor_id, Appointment.appointment_date, Appointment.appointment_time
    ).where(
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.appointment_date >= start_date,
        Appointment.appointment_date <= end_date,
    )
    block_stmt = select(BlockedSlot).where(
        BlockedSlot.blocked_date >= start_date,
        BlockedSlot.blocked_date <= end_date,
    )
    if doctor_id is not None:
        doctor_stmt = doctor_stmt.where(Doctor.id == doctor_id)
        window_stmt = window_stmt.where(DoctorAvailability.doctor_id == doctor_id)
        appointment_stmt = appointment_stmt.where(Appointment.doctor_id == doctor_id)
        block_stmt = block_stmt.where(BlockedSlot.doctor_id == doctor_id)

    taken = {tuple(row) for row in db.execute(appointment_stmt).all()}
    blocked: dict[tuple[int, date], list[tuple[time, time]]] = defaultdict(list)
    for block in db.scalars(block_stmt).all():
        blocked[(block.doctor_id, block.blocked_date)].append((block.start_time, block.end_time))

    return compute_open_slots(
        doctors=db.scalars(doctor_stmt).all(),
        windows=db.scalars(window_stmt).all(),
        taken=taken,
        blocked=blocked,
        start_date=start_date,
        days=days,
        slot_minutes=settings.slot_duration_minutes,
        limit=limit,
        now=now,
    )


def check_slot_availability(
    db: Session,
    doctor_id: int,
    on_date: date,
    at_time: time,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or datetime.now()
    doctor = db.get(Doctor, doctor_id)
    if not doctor or not doctor.is_active:
        return {"available": False, "reason": "doctor_unavailable"}

    if datetime.combine(on_date, at_time) < now:
        return {"available": False, "reason": "in_past"}

    windows = db.scalars(
        select(DoctorAvailability).where(
            DoctorAvailability.doctor_id == doctor_id,
            DoctorAvailability.day_of_week == day_of_week(on_date),
            DoctorAvailability.is_active.is_(True),
        )
    ).all()
    if not any(w.start_time <= at_time <= w.end_time for w in windows):
        return {"available": False, "reason": "outside_hours"}
    slot_minutes = settings.slot_duration_minutes
    if not any(at_time in window_slot_times(w.start_time, w.end_time, slot_minutes) for w in windows):
        return {"available": False, "reason": "off_grid"}

    conflict = db.scalars(
        select(Appointment.id).where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == on_date,
            Appointment.appointment_time == at_time,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
    ).first()
    if conflict is not None:
        return {"available": False, "reason": "already_booked"}

    block = db.scalars(
        select(BlockedSlot.id).where(
            BlockedSlot.doctor_id == doctor_id,
            BlockedSlot.blocked_date == on_date,
            BlockedSlot.start_time <= at_time,
            BlockedSlot.end_time >= at_time,
        )
    ).first()
    if block is not None:
        return {"available": False, "reason": "blocked"}

    return {"available": True, "reason": None}


def suggest_alternatives(
    db: Session, doctor_id: int, limit: int | None = None, now: datetime | None = None
) -> list[OpenSlot]:
    limit = settings.alternatives_limit if limit is None else limit
    return open_slots(db, doctor_id=doctor_id, limit=limit, now=now)
