import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["INFERENCE_BEARER_TOKEN"] = "test-token"
os.environ["INFERENCE_API_BASE"] = "http://inference.test"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["SMTP_HOST"] = ""

from datetime import date, time, timedelta

import pytest
from fastapi.testclient import TestClient

from clinic_scheduler.db import Base, SessionLocal, engine
from clinic_scheduler.main import app
from clinic_scheduler.models import Appointment, Doctor, DoctorAvailability, Patient
from clinic_scheduler.seed import seed_reference_data

ALL_DAYS = range(7)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_reference_data(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def booking_day() -> date:
    return date.today() + timedelta(days=3)


@pytest.fixture
def add_doctor(db):
    def _add(
        name: str = "Dr. Sarah Johnson",
        specialty: str = "Cardiology",
        office: str | None = "Building A, Room 101",
        days=ALL_DAYS,
        start: time = time(9, 0),
        end: time = time(17, 0),
        is_active: bool = True,
    ) -> Doctor:
        doctor = Doctor(name=name, specialty=specialty, office_location=office, is_active=is_active)
        doctor.availability = [
            DoctorAvailability(day_of_week=day, start_time=start, end_time=end, is_active=True)
            for day in days
        ]
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _add


@pytest.fixture
def add_appointment(db):
    def _add(doctor: Doctor, on_date: date, at_time: time, status: str = "scheduled", email: str = "pat@example.com") -> Appointment:
        patient = db.query(Patient).filter_by(email=email).first()
        if not patient:
            patient = Patient(name="Pat Example", email=email, phone="555-0100")
            db.add(patient)
            db.flush()
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_type_id=1,
            appointment_date=on_date,
            appointment_time=at_time,
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _add
