from datetime import date, datetime, time
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

AppointmentStatus = Literal["scheduled", "confirmed", "completed", "cancelled", "no-show"]
ActionType = Literal[
    "select_doctor", "select_date", "collect_info", "download_calendar", "show_email", "start_over"
]

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SlotRef(ApiModel):
    """A (doctor, date, time) reference passed between the chat endpoints."""

    doctor_id: int = Field(gt=0)
    slot_date: date = Field(alias="date")
    slot_time: time = Field(alias="time")

    @staticmethod
    def split_composite(value: str) -> dict[str, str]:
        parts = [part.strip() for part in value.split(",")]
        if len(parts) != 3 or not all(parts):
            raise ValueError("appointment data must look like 'doctorId,YYYY-MM-DD,HH:MM:SS'")
        return {"doctorId": parts[0], "date": parts[1], "time": parts[2]}

    @classmethod
    def from_composite(cls, value: str) -> "SlotRef":
        return cls.model_validate(cls.split_composite(value))

    @property
    def composite(self) -> str:
        return f"{self.doctor_id},{self.slot_date.isoformat()},{self.slot_time.strftime('%H:%M:%S')}"


class Action(ApiModel):
    type: ActionType
    text: str
    data: str = ""


class ChatReply(ApiModel):
    content: str
    actions: list[Action] = []


class ChatRequest(ApiModel):
    message: str = Field(min_length=1, max_length=2000)


class ChatResponse(ApiModel):
    success: bool = True
    response: ChatReply


class SelectDoctorRequest(ApiModel):
    doctor_id: int


class SelectAppointmentRequest(ApiModel):
    appointment_data: SlotRef

    @field_validator("appointment_data", mode="before")
    @classmethod
    def _parse_composite(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SlotRef.split_composite(value)
        return value


class CompleteBookingRequest(SelectAppointmentRequest):
    patient_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    reason_for_visit: Optional[str] = Field(default=None, max_length=500)


class BookAppointmentRequest(ApiModel):
    patient_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=200)
    phone: Optional[str] = None
    doctor_id: int
    appointment_type_id: Optional[int] = None
    appointment_date: date
    appointment_time: time
    reason_for_visit: Optional[str] = Field(default=None, max_length=500)


class SlotOut(ApiModel):
    doctor_id: int
    doctor_name: str
    specialty: str
    slot_date: date = Field(alias="date")
    slot_time: time = Field(alias="time")
    ref: str


class AppointmentOut(ApiModel):
    id: int
    confirmation_number: str
    patient_id: int
    doctor_id: int
    appointment_type_id: int
    appointment_date: date
    appointment_time: time
    status: str
    reason_for_visit: Optional[str] = None
    created_at: datetime | None = None


class BookingResponse(ApiModel):
    success: bool
    message: str
    appointment: Optional[AppointmentOut] = None
    alternatives: Optional[list[SlotOut]] = None
    response: Optional[ChatReply] = None


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    pages: int


class Envelope(ApiModel, Generic[T]):
    success: bool = True
    data: T
    pagination: Optional[Pagination] = None
    message: Optional[str] = None


class DoctorCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    specialty: str = Field(min_length=1, max_length=100)
    office_location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True


class DoctorUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    specialty: Optional[str] = Field(default=None, min_length=1, max_length=100)
    office_location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


class DoctorOut(ApiModel):
    id: int
    name: str
    specialty: str
    office_location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool


class AvailabilityWindowIn(ApiModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_active: bool = True

    @model_validator(mode="after")
    def _check_range(self) -> "AvailabilityWindowIn":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AvailabilityWindowUpdate(ApiModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_active: Optional[bool] = None


class AvailabilityWindowOut(ApiModel):
    id: int
    doctor_id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool


class BlockedSlotIn(ApiModel):
    blocked_date: date
    start_time: time
    end_time: time
    reason: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _check_range(self) -> "BlockedSlotIn":
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self


class BlockedSlotOut(ApiModel):
    id: int
    doctor_id: int
    blocked_date: date
    start_time: time
    end_time: time
    reason: Optional[str] = None


class PatientCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=200)
    phone: Optional[str] = None


class PatientUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, min_length=3, max_length=200)
    phone: Optional[str] = None


class PatientOut(ApiModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    created_at: datetime | None = None


class AdminAppointmentOut(AppointmentOut):
    doctor_name: str
    patient_name: str
    patient_email: str


class PatientDetailOut(PatientOut):
    appointments: list[AppointmentOut] = []


class StatusUpdate(ApiModel):
    status: AppointmentStatus


class StatsOut(ApiModel):
    active_doctors: int
    total_patients: int
    total_appointments: int
    appointments_by_status: dict[str, int]
    appointments_today: int
    upcoming_appointments: int
