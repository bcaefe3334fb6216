import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field

from config import get_settings
from domain import Doctor, FailureReason, Patient, Slot, Token, TokenKind
from engine import DispatchEngine
from simulation import seed_demo

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

engine = DispatchEngine(
    queue_capacity=settings.ROUTINE_QUEUE_CAPACITY,
    token_start=settings.TOKEN_ID_START,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    if settings.SEED_DEMO_DATA:
        seed_demo(engine)
        logger.info("Demo doctors and patients loaded")
    yield


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)


class SlotRequest(BaseModel):
    id: int
    start: str  # e.g. "09:00"
    end: str

    class Config:
        extra = "forbid"


class SlotBody(SlotRequest):
    booked: bool = False


class CreateDoctorRequest(BaseModel):
    id: int
    name: str
    specialization: str
    slots: List[SlotRequest] = []


class DoctorResponse(BaseModel):
    id: int
    name: str
    specialization: str
    slots: List[SlotBody]


class PatientBody(BaseModel):
    id: int
    name: str
    age: int = Field(ge=0)
    severity: int = Field(default=0, description="lower = more urgent")


class BookRoutineRequest(BaseModel):
    patient_id: int
    doctor_id: int


class TriageRequest(BaseModel):
    patient_id: int


class TokenResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    slot_id: int
    kind: TokenKind


class UndoResponse(BaseModel):
    detail: str


class DoctorLoadResponse(BaseModel):
    doctor_id: int
    name: str
    specialization: str
    pending_slots: int
    booked_slots: int
    next_free_slot: Optional[SlotBody] = None


class SummaryResponse(BaseModel):
    served: int
    pending: int
    doctors: List[DoctorLoadResponse]


def to_token_response(t: Token) -> TokenResponse:
    return TokenResponse(
        id=t.id,
        patient_id=t.patient_id,
        doctor_id=t.doctor_id,
        slot_id=t.slot_id,
        kind=t.kind,
    )


def to_slot_body(s: Slot) -> SlotBody:
    return SlotBody(id=s.id, start=s.start, end=s.end, booked=s.booked)


def to_doctor_response(d: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=d.id,
        name=d.name,
        specialization=d.specialization,
        slots=[to_slot_body(s) for s in d.slots],
    )


BOOKING_FAILURES = {
    FailureReason.DOCTOR_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Doctor not found"),
    FailureReason.NO_FREE_SLOT: (status.HTTP_409_CONFLICT, "No free slot for this doctor"),
    FailureReason.QUEUE_FULL: (status.HTTP_409_CONFLICT, "Routine queue is full"),
}


@app.post("/doctors", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(body: CreateDoctorRequest) -> DoctorResponse:
    if engine.get_doctor(body.id) is not None:
        raise HTTPException(status_code=409, detail=f"Doctor {body.id} already exists")
    doctor = Doctor(id=body.id, name=body.name, specialization=body.specialization)
    for s in body.slots:
        doctor.add_slot(Slot(id=s.id, start=s.start, end=s.end))
    try:
        engine.add_doctor(doctor)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_doctor_response(doctor)


@app.get("/doctors", response_model=List[DoctorResponse])
def list_doctors() -> List[DoctorResponse]:
    return [to_doctor_response(d) for d in engine.list_doctors()]


@app.post("/doctors/{doctor_id}/slots", response_model=SlotBody, status_code=status.HTTP_201_CREATED)
def add_slot(doctor_id: int, body: SlotRequest) -> SlotBody:
    if engine.get_doctor(doctor_id) is None:
        raise HTTPException(status_code=404, detail=f"Doctor {doctor_id} not found")
    try:
        slot = engine.add_slot(doctor_id, Slot(id=body.id, start=body.start, end=body.end))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_slot_body(slot)


@app.delete("/doctors/{doctor_id}/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_slot(doctor_id: int, slot_id: int) -> None:
    if not engine.cancel_slot(doctor_id, slot_id):
        raise HTTPException(status_code=404, detail="Slot not found")


@app.post("/patients", response_model=PatientBody)
def register_patient(body: PatientBody) -> PatientBody:
    engine.register(Patient(id=body.id, name=body.name, age=body.age, severity=body.severity))
    return body


@app.get("/patients/top", response_model=List[int])
def top_patients(k: int = Query(default=settings.TOP_K_DEFAULT, ge=0)) -> List[int]:
    return engine.top_k_frequent_patients(k)


@app.get("/patients/{patient_id}", response_model=PatientBody)
def get_patient(patient_id: int) -> PatientBody:
    patient = engine.get_patient(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
    return PatientBody(id=patient.id, name=patient.name, age=patient.age, severity=patient.severity)


@app.post("/tokens/routine", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def book_routine(body: BookRoutineRequest) -> TokenResponse:
    result = engine.book_routine(body.patient_id, body.doctor_id)
    if not result:
        code, detail = BOOKING_FAILURES[result.reason]
        raise HTTPException(status_code=code, detail=detail)
    return to_token_response(result.token)


@app.post("/tokens/emergency", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def triage(body: TriageRequest) -> TokenResponse:
    result = engine.triage_insert(body.patient_id)
    if not result:
        raise HTTPException(status_code=404, detail=f"Patient {body.patient_id} not found")
    return to_token_response(result.token)


@app.post("/serve", response_model=TokenResponse)
def serve_next() -> TokenResponse:
    token = engine.serve_next()
    if token is None:
        raise HTTPException(status_code=404, detail="No patients waiting")
    return to_token_response(token)


@app.post("/undo", response_model=UndoResponse)
def undo() -> UndoResponse:
    return UndoResponse(detail=engine.undo())


@app.get("/summary", response_model=SummaryResponse)
def summary() -> SummaryResponse:
    s = engine.summary()
    return SummaryResponse(
        served=s.served,
        pending=s.pending,
        doctors=[
            DoctorLoadResponse(
                doctor_id=load.doctor_id,
                name=load.name,
                specialization=load.specialization,
                pending_slots=load.pending_slots,
                booked_slots=load.booked_slots,
                next_free_slot=to_slot_body(load.next_free_slot) if load.next_free_slot else None,
            )
            for load in s.doctors
        ],
    )


@app.post("/admin/reset")
def reset_all() -> dict:
    """Reset in-memory data (useful during development / simulation)."""
    engine.reset()
    return {"detail": "State cleared"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
