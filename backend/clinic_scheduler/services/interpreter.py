"""Chat turn interpretation.

Each turn is stateless: the clinic snapshot is rebuilt from the database, the
hosted model is asked for a ``{content, actions}`` reply and, when the call
fails or the reply is unusable, a keyword heuristic builds the same shape from
the snapshot.
"""

import asyncio
import json
import logging
import re
import time
import uuid
from datetime import date, datetime, timedelta
from typing import Any

import httpx
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import ACTIVE_STATUSES, Appointment, Doctor
from ..schemas import SlotRef
from .availability import open_slots

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the scheduling assistant of a medical clinic.
Help the patient pick a doctor and an open appointment time using ONLY the
doctors and availability in the database context below. Never invent doctors,
dates or times, and never give medical advice.

Reply with a single JSON object and nothing else:
{"content": "<message to the patient>", "actions": [{"type": "...", "text": "<button label>", "data": "..."}]}

Action types:
- "select_doctor": data is the doctor id, e.g. "3".
- "select_date": data is "doctorId,YYYY-MM-DD,HH:MM:SS" taken from upcoming_availability.
Use an empty actions list when no choice is needed.

## CURRENT DATABASE CONTEXT:
"""

ACTION_TYPES = {
    "select_doctor",
    "select_date",
    "collect_info",
    "download_calendar",
    "show_email",
    "start_over",
}

BOOKING_WORDS = ("appointment", "schedule", "book", "doctor", "visit", "see someone")
MIN_REVERSE_MATCH = 4

SPECIALTY_HINTS = {
    "cardio": ("heart", "chest pain", "blood pressure", "palpitation"),
    "dermat": ("skin", "rash", "acne", "mole", "eczema"),
    "pediatr": ("child", "kid", "baby", "infant", "toddler"),
    "orthop": ("bone", "joint", "fracture", "knee", "sprain"),
    "neuro": ("headache", "migraine", "seizure", "numbness"),
    "general": ("checkup", "check-up", "physical", "primary care", "flu", "fever"),
    "family": ("checkup", "check-up", "physical", "primary care", "flu", "fever"),
    "internal": ("checkup", "check-up", "physical"),
    "gastro": ("stomach", "digest", "nausea"),
    "psychiat": ("anxiety", "depression", "mental health"),
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

GREETING = (
    "Hello! I'm here to help you schedule medical appointments. "
    "Tell me which doctor or specialty you need, or ask to book an appointment."
)


def build_clinic_snapshot(db: Session, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now()
    today = now.date()
    snapshot: dict[str, Any] = {
        "doctors": [],
        "upcoming_availability": [],
        "existing_appointments": [],
        "current_date": today.isoformat(),
        "tomorrow_date": (today + timedelta(days=1)).isoformat(),
    }
    try:
        doctors = db.scalars(
            select(Doctor).where(Doctor.is_active.is_(True)).order_by(Doctor.name)
        ).all()
        snapshot["doctors"] = [
            {
                "id": doctor.id,
                "name": doctor.name,
                "specialty": doctor.specialty,
                "office_location": doctor.office_location,
            }
            for doctor in doctors
        ]
        snapshot["upcoming_availability"] = [slot.as_dict() for slot in open_slots(db, now=now)]
        rows = db.execute(
            select(Appointment.appointment_date, Appointment.appointment_time, Doctor.name)
            .join(Doctor, Appointment.doctor_id == Doctor.id)
            .where(
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.appointment_date >= today,
                Appointment.appointment_date <= today + timedelta(days=settings.availability_days),
            )
            .order_by(Appointment.appointment_date, Appointment.appointment_time)
        ).all()
        snapshot["existing_appointments"] = [
            {
                "date": row[0].isoformat(),
                "time": row[1].strftime("%H:%M:%S"),
                "doctor_name": row[2],
            }
            for row in rows
        ]
    except SQLAlchemyError as exc:
        logger.error("snapshot_failed error=%s", exc)
    return snapshot


def _extract_first_json(text: str) -> dict[str, Any] | None:
    start = None
    depth = 0
    for idx, char in enumerate(text):
        if char == "{":
            if depth == 0:
                start = idx
            depth += 1
        elif char == "}":
            if depth > 0:
                depth -= 1
                if depth == 0 and start is not None:
                    candidate = text[start : idx + 1]
                    try:
                        return json.loads(candidate)
                    except json.JSONDecodeError:
                        return None
    return None


def _extract_reply_text(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    output = data.get("output") or {}
    content = (output.get("message") or {}).get("content")
    if isinstance(content, list) and content:
        first = content[0] or {}
        if isinstance(first.get("text"), str):
            return first["text"]
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        message = (choices[0] or {}).get("message") or {}
        if isinstance(message.get("content"), str):
            return message["content"]
    return None


def _normalize_action(action: Any, doctor_ids: set[int]) -> dict[str, str] | None:
    if not isinstance(action, dict):
        return None
    action_type = action.get("type")
    if action_type not in ACTION_TYPES:
        action_type = action.get("action")
    if action_type not in ACTION_TYPES:
        return None
    text = action.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    data = "" if action.get("data") is None else str(action.get("data")).strip()

    if action_type == "select_doctor":
        if not data.isdigit() or int(data) not in doctor_ids:
            return None
    elif action_type in ("select_date", "collect_info"):
        try:
            ref = SlotRef.from_composite(data)
        except (ValueError, ValidationError):
            return None
        if ref.doctor_id not in doctor_ids:
            return None
        data = ref.composite
    return {"type": action_type, "text": text.strip(), "data": data}


def _normalize_reply(payload: dict[str, Any], doctor_ids: set[int]) -> dict[str, Any] | None:
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        return None
    raw_actions = payload.get("actions") or []
    if not isinstance(raw_actions, list):
        return None
    actions = []
    for raw in raw_actions:
        action = _normalize_action(raw, doctor_ids)
        if action:
            actions.append(action)
    return {"content": content.strip(), "actions": actions}


def _format_slot_label(slot: dict[str, Any], with_doctor: bool) -> str:
    slot_dt = datetime.combine(date.fromisoformat(slot["date"]), datetime.strptime(slot["time"], "%H:%M:%S").time())
    label = slot_dt.strftime("%a, %b %d at %I:%M %p").replace(" 0", " ")
    if with_doctor:
        label = f"{label} with {slot['doctorName']}"
    return label


def _slot_actions(slots: list[dict[str, Any]], limit: int, with_doctor: bool) -> list[dict[str, str]]:
    return [
        {
            "type": "select_date",
            "text": _format_slot_label(slot, with_doctor),
            "data": slot["ref"],
        }
        for slot in slots[:limit]
    ]


def _doctor_actions(doctors: list[dict[str, Any]], limit: int | None = None) -> list[dict[str, str]]:
    chosen = doctors if limit is None else doctors[:limit]
    return [
        {
            "type": "select_doctor",
            "text": f"{doctor['name']} ({doctor['specialty']})",
            "data": str(doctor["id"]),
        }
        for doctor in chosen
    ]


def _strip_title(text: str) -> str:
    return re.sub(r"\bdr\.?\s+", "", " ".join(text.lower().split()))


def _doctor_aliases(name: str) -> set[str]:
    lowered = " ".join(name.lower().split())
    return {lowered, _strip_title(lowered)}


def _surname(name: str) -> str:
    tokens = re.findall(r"[a-z'-]+", _strip_title(name))
    return tokens[-1] if tokens else ""


def match_doctors_by_name(message: str, doctors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    lowered = _strip_title(message)
    if not lowered:
        return []
    matched = []
    for doctor in doctors:
        surname = _surname(doctor["name"])
        if len(surname) >= MIN_REVERSE_MATCH and re.search(rf"\b{re.escape(surname)}\b", lowered):
            matched.append(doctor)
            continue
        for alias in _doctor_aliases(doctor["name"]):
            if alias in lowered or (len(lowered) >= MIN_REVERSE_MATCH and lowered in alias):
                matched.append(doctor)
                break
    return matched


def _specialty_keywords(specialty: str) -> set[str]:
    lowered = specialty.lower().strip()
    stem = lowered[:-1] if lowered.endswith("s") else lowered
    stem = stem[:-1] if stem.endswith("y") else stem
    keywords = {lowered, stem}
    for key, hints in SPECIALTY_HINTS.items():
        if key in lowered:
            keywords.add(key)
            keywords.update(hints)
    return keywords


def match_doctors_by_specialty(message: str, doctors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    lowered = message.lower()
    return [
        doctor
        for doctor in doctors
        if any(keyword in lowered for keyword in _specialty_keywords(doctor["specialty"]))
    ]


def match_date(message: str, today: date) -> date | None:
    lowered = message.lower()
    iso = re.search(r"\b(\d{4}-\d{2}-\d{2})\b", lowered)
    if iso:
        try:
            return date.fromisoformat(iso.group(1))
        except ValueError:
            return None
    if "tomorrow" in lowered:
        return today + timedelta(days=1)
    if "today" in lowered:
        return today
    for idx, name in enumerate(WEEKDAYS):
        if name in lowered:
            return today + timedelta(days=(idx - today.weekday()) % 7)
    return None


def fallback_response(
    message: str,
    doctors: list[dict[str, Any]],
    availability: list[dict[str, Any]],
    today: date | None = None,
    slot_limit: int | None = None,
    menu_limit: int | None = None,
) -> dict[str, Any]:
    today = today or date.today()
    slot_limit = settings.selection_slot_limit if slot_limit is None else slot_limit
    menu_limit = settings.menu_doctor_limit if menu_limit is None else menu_limit
    lowered = message.lower()
    wanted_date = match_date(message, today)

    def slots_for(doctor_ids: set[int] | None) -> list[dict[str, Any]]:
        return [
            slot
            for slot in availability
            if (doctor_ids is None or slot["doctorId"] in doctor_ids)
            and (wanted_date is None or slot["date"] == wanted_date.isoformat())
        ]

    by_name = match_doctors_by_name(message, doctors)
    if len(by_name) == 1:
        doctor = by_name[0]
        slots = slots_for({doctor["id"]})
        if slots:
            return {
                "content": f"Here are the next available times with {doctor['name']}. Which works best for you?",
                "actions": _slot_actions(slots, slot_limit, with_doctor=False),
            }
        others = [d for d in doctors if d["id"] != doctor["id"] and d["specialty"] == doctor["specialty"]]
        return {
            "content": f"{doctor['name']} has no open times in that period. Would you like to see another doctor?",
            "actions": _doctor_actions(others or [d for d in doctors if d["id"] != doctor["id"]], menu_limit),
        }
    if by_name:
        return {
            "content": "I found more than one matching doctor. Which one would you like to see?",
            "actions": _doctor_actions(by_name),
        }

    by_specialty = match_doctors_by_specialty(message, doctors)
    if by_specialty:
        specialties = sorted({doctor["specialty"] for doctor in by_specialty})
        return {
            "content": (
                f"We have {len(by_specialty)} {' / '.join(specialties)} "
                f"{'doctor' if len(by_specialty) == 1 else 'doctors'} available. "
                "Which one would you like to see?"
            ),
            "actions": _doctor_actions(by_specialty),
        }

    if wanted_date is not None:
        slots = slots_for(None)
        if slots:
            return {
                "content": f"Here are the open times on {wanted_date.strftime('%A, %B %d')}.",
                "actions": _slot_actions(slots, slot_limit, with_doctor=True),
            }
        return {
            "content": f"There are no open times on {wanted_date.strftime('%A, %B %d')}. Which doctor would you like to see?",
            "actions": _doctor_actions(doctors, menu_limit),
        }

    if any(word in lowered for word in BOOKING_WORDS):
        return {
            "content": "I'd be happy to help you schedule an appointment! Which doctor would you like to see?",
            "actions": _doctor_actions(doctors, menu_limit),
        }

    return {"content": GREETING, "actions": []}


async def _call_model(
    message: str, snapshot: dict[str, Any], transport: httpx.AsyncBaseTransport | None = None
) -> str | None:
    payload = {
        "system": [{"text": SYSTEM_PROMPT + json.dumps(snapshot, indent=2, default=str)}],
        "messages": [{"role": "user", "content": [{"text": message}]}],
        "inferenceConfig": {
            "maxTokens": settings.inference_max_tokens,
            "temperature": settings.inference_temperature,
            "topP": settings.inference_top_p,
        },
    }
    headers = {
        "authorization": f"Bearer {settings.inference_bearer_token}",
        "accept": "application/json",
        "content-type": "application/json",
    }
    url = f"{settings.inference_api_base.rstrip('/')}/model/{settings.inference_model_id}/converse"

    async with httpx.AsyncClient(timeout=settings.inference_timeout_seconds, transport=transport) as client:
        response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return _extract_reply_text(response.json())


async def interpret_message(
    message: str,
    snapshot: dict[str, Any],
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    request_id = uuid.uuid4().hex
    start = time.perf_counter()
    used_fallback = False
    fallback_reason = None
    today = date.fromisoformat(snapshot["current_date"])

    def fallback(reason: str) -> dict[str, Any]:
        nonlocal used_fallback, fallback_reason
        used_fallback = True
        fallback_reason = reason
        return fallback_response(
            message, snapshot["doctors"], snapshot["upcoming_availability"], today=today
        )

    try:
        if not settings.inference_bearer_token:
            return fallback("missing_api_key")

        text = await asyncio.wait_for(
            _call_model(message, snapshot, transport=transport),
            timeout=settings.inference_timeout_seconds,
        )
        if not text:
            return fallback("empty_reply")

        parsed = _extract_first_json(text)
        if not isinstance(parsed, dict):
            return fallback("json_parse_failed")

        doctor_ids = {doctor["id"] for doctor in snapshot["doctors"]}
        normalized = _normalize_reply(parsed, doctor_ids)
        if not normalized:
            return fallback("normalize_failed")

        return normalized
    except Exception as exc:
        return fallback(f"exception:{type(exc).__name__}")
    finally:
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "model_route request_id=%s latency_ms=%s fallback=%s reason=%s",
            request_id,
            latency_ms,
            used_fallback,
            fallback_reason,
        )
