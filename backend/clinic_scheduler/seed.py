import logging
from datetime import time

from faker import Faker
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import settings
from .db import SessionLocal
from .models import AppointmentType, Doctor, DoctorAvailability, Patient

logger = logging.getLogger(__name__)

APPOINTMENT_TYPES = [
    ("General Consultation", 30, "Standard visit with a doctor"),
    ("Follow-up", 20, "Follow-up on a previous visit"),
    ("Annual Physical", 60, "Yearly preventive check-up"),
]

DOCTORS = [
    ("Dr. Sarah Johnson", "Cardiology", "Building A, Room 101"),
    ("Dr. Michael Chen", "Cardiology", "Building A, Room 105"),
    ("Dr. Emily Rodriguez", "Dermatology", "Building B, Room 202"),
    ("Dr. James Wilson", "Pediatrics", "Building C, Room 301"),
    ("Dr. Priya Patel", "Family Medicine", "Building B, Room 210"),
    ("Dr. David Kim", "Orthopedics", "Building D, Room 410"),
]

# (day_of_week with Sunday as 0, start, end)
WEEKDAY_HOURS = [(day, time(9, 0), time(12, 0)) for day in range(1, 6)] + [
    (day, time(13, 0), time(17, 0)) for day in range(1, 6)
]


def seed_reference_data(db: Session) -> None:
    if not db.scalar(select(func.count()).select_from(AppointmentType)):
        db.add_all(
            AppointmentType(name=name, duration_minutes=minutes, description=description)
            for name, minutes, description in APPOINTMENT_TYPES
        )


def seed_demo_data(db: Session) -> None:
    doctor_count = db.scalar(select(func.count()).select_from(Doctor))
    if not doctor_count:
        for name, specialty, office in DOCTORS:
            doctor = Doctor(name=name, specialty=specialty, office_location=office, is_active=True)
            doctor.availability = [
                DoctorAvailability(day_of_week=day, start_time=start, end_time=end, is_active=True)
                for day, start, end in WEEKDAY_HOURS
            ]
            db.add(doctor)

    patient_count = db.scalar(select(func.count()).select_from(Patient))
    if not patient_count:
        fake = Faker()
        patients = []
        for _ in range(10):
            patients.append(
                Patient(
                    name=fake.name(),
                    email=fake.unique.email().lower(),
                    phone=fake.phone_number(),
                )
            )
        db.add_all(patients)


def seed_data() -> None:
    db = SessionLocal()
    try:
        seed_reference_data(db)
        if settings.seed_demo_data:
            seed_demo_data(db)
        db.commit()
        logger.info("seed_complete demo=%s", settings.seed_demo_data)
    finally:
        db.close()
