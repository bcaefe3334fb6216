from __future__ import annotations

import logging
import sys
import threading
from collections import Counter
from typing import Dict, List, Optional

from domain import (
    Book,
    DispatchResult,
    DispatchSummary,
    Doctor,
    DoctorLoad,
    FailureReason,
    InvariantViolation,
    Patient,
    Register,
    Serve,
    Slot,
    Token,
    TokenKind,
    Triage,
)
from structures import PatientDirectory, RoutineQueue, TriageQueue, UndoLog

logger = logging.getLogger(__name__)

NOTHING_TO_UNDO = "Nothing to undo"
UNKNOWN_PATIENT_SEVERITY = sys.maxsize


class TokenSequence:
    """Monotonic token id source, safe to call from several threads."""

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


class DispatchEngine:
    """
    In-memory patient dispatch engine.

    Responsibilities:
    - Books routine visits into the first free slot of a doctor and queues them.
    - Queues emergencies by the patient's current severity.
    - Serves triage before routine, always.
    - Reverses the most recent mutation, keeping slots, queues and counters in step.

    Every public method runs under one engine-wide lock.
    """

    def __init__(self, queue_capacity: int = 20, token_start: int = 1) -> None:
        self.queue_capacity = queue_capacity
        self.token_start = token_start
        self._lock = threading.RLock()
        self._init_state()

    def _init_state(self) -> None:
        self.doctors: Dict[int, Doctor] = {}
        self.patients = PatientDirectory()
        self.routine_queue = RoutineQueue(self.queue_capacity)
        self.triage_queue = TriageQueue(self._severity_of)
        self.undo_log = UndoLog()
        self._tokens = TokenSequence(self.token_start)
        self._served: List[Token] = []
        self.served_count = 0
        self.pending_count = 0

    def reset(self) -> None:
        with self._lock:
            self._init_state()
        logger.info("Dispatch state cleared")

    def _severity_of(self, token: Token) -> int:
        patient = self.patients.get(token.patient_id)
        if patient is None:
            return UNKNOWN_PATIENT_SEVERITY
        return patient.severity

    # Setup

    def add_doctor(self, doctor: Doctor) -> Doctor:
        slot_ids = [slot.id for slot in doctor.slots]
        if len(set(slot_ids)) != len(slot_ids):
            raise ValueError(f"Duplicate slot id for doctor {doctor.id}")
        with self._lock:
            if doctor.id in self.doctors:
                raise ValueError(f"Doctor {doctor.id} already exists")
            self.doctors[doctor.id] = doctor
        logger.info("Added doctor %s (%s)", doctor.id, doctor.name)
        return doctor

    def get_doctor(self, doctor_id: int) -> Optional[Doctor]:
        with self._lock:
            return self.doctors.get(doctor_id)

    def list_doctors(self) -> List[Doctor]:
        with self._lock:
            return list(self.doctors.values())

    def add_slot(self, doctor_id: int, slot: Slot) -> Slot:
        with self._lock:
            doctor = self.doctors.get(doctor_id)
            if doctor is None:
                raise ValueError(f"Doctor {doctor_id} not found")
            if doctor.find(slot.id) is not None:
                raise ValueError(f"Slot {slot.id} already exists for doctor {doctor_id}")
            doctor.add_slot(slot)
        return slot

    def cancel_slot(self, doctor_id: int, slot_id: int) -> bool:
        with self._lock:
            doctor = self.doctors.get(doctor_id)
            if doctor is None:
                return False
            cancelled = doctor.cancel(slot_id)
        if cancelled:
            logger.info("Cancelled slot %s of doctor %s", slot_id, doctor_id)
        return cancelled

    # Patients

    def register(self, patient: Patient) -> Patient:
        with self._lock:
            self.patients.upsert(patient)
            self.triage_queue.reorder()
            self.undo_log.record(Register(patient.id))
        logger.info("Registered patient %s", patient.id)
        return patient

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        with self._lock:
            return self.patients.get(patient_id)

    # Dispatch

    def book_routine(self, patient_id: int, doctor_id: int) -> DispatchResult:
        with self._lock:
            doctor = self.doctors.get(doctor_id)
            if doctor is None:
                logger.warning("Booking rejected: doctor %s not found", doctor_id)
                return DispatchResult.failure(FailureReason.DOCTOR_NOT_FOUND)

            slot = doctor.find_next_free()
            if slot is None or not doctor.book(slot.id):
                logger.warning("Booking rejected: doctor %s has no free slot", doctor_id)
                return DispatchResult.failure(FailureReason.NO_FREE_SLOT)

            token = Token(
                id=self._tokens.next_id(),
                patient_id=patient_id,
                kind=TokenKind.ROUTINE,
                doctor_id=doctor_id,
                slot_id=slot.id,
            )
            if not self.routine_queue.enqueue(token):
                doctor.unbook(slot.id)
                logger.warning(
                    "Booking rejected: routine queue full (capacity %s), slot %s released",
                    self.routine_queue.capacity,
                    slot.id,
                )
                return DispatchResult.failure(FailureReason.QUEUE_FULL)

            self.pending_count += 1
            self.undo_log.record(Book(token))
        logger.info("Booked token %s: patient %s, doctor %s, slot %s", token.id, patient_id, doctor_id, slot.id)
        return DispatchResult.success(token)

    def triage_insert(self, patient_id: int) -> DispatchResult:
        with self._lock:
            if patient_id not in self.patients:
                logger.warning("Triage rejected: patient %s not found", patient_id)
                return DispatchResult.failure(FailureReason.PATIENT_NOT_FOUND)

            token = Token(id=self._tokens.next_id(), patient_id=patient_id, kind=TokenKind.EMERGENCY)
            self.triage_queue.insert(token)
            self.pending_count += 1
            self.undo_log.record(Triage(token))
        logger.info("Triaged token %s for patient %s", token.id, patient_id)
        return DispatchResult.success(token)

    def serve_next(self) -> Optional[Token]:
        with self._lock:
            if len(self.triage_queue) > 0:
                token = self.triage_queue.extract_min()
            else:
                token = self.routine_queue.dequeue()
            if token is None:
                return None

            self._served.append(token)
            self.served_count += 1
            self.pending_count = max(0, self.pending_count - 1)
            self.undo_log.record(Serve(token))
        logger.info("Served %s token %s (patient %s)", token.kind.value, token.id, token.patient_id)
        return token

    def undo(self) -> str:
        with self._lock:
            action = self.undo_log.pop()
            if action is None:
                return NOTHING_TO_UNDO

            if isinstance(action, Book):
                message = self._undo_book(action.token)
            elif isinstance(action, Triage):
                message = self._undo_triage(action.token)
            elif isinstance(action, Serve):
                message = self._undo_serve(action.token)
            elif isinstance(action, Register):
                self.patients.delete(action.patient_id)
                self.triage_queue.reorder()
                message = f"Undid patient register {action.patient_id}"
            else:
                raise InvariantViolation(f"Unknown undo action {action!r}")
        logger.info(message)
        return message

    def _undo_book(self, token: Token) -> str:
        if self.routine_queue.remove(token.id) is None:
            raise InvariantViolation(f"Booked token {token.id} is not in the routine queue")
        doctor = self.doctors.get(token.doctor_id)
        if doctor is None or not doctor.unbook(token.slot_id):
            logger.warning("Slot %s of doctor %s was cancelled, nothing to release", token.slot_id, token.doctor_id)
        self.pending_count = max(0, self.pending_count - 1)
        return f"Undid booking {token.id}"

    def _undo_triage(self, token: Token) -> str:
        if self.triage_queue.remove(token.id) is None:
            raise InvariantViolation(f"Triaged token {token.id} is not in the triage queue")
        self.pending_count = max(0, self.pending_count - 1)
        return f"Undid triage {token.id}"

    def _undo_serve(self, token: Token) -> str:
        if token.kind is TokenKind.ROUTINE:
            self.routine_queue.push_front(token)
        else:
            self.triage_queue.insert(token)
        if self._served and self._served[-1].id == token.id:
            self._served.pop()
        self.served_count = max(0, self.served_count - 1)
        self.pending_count += 1
        return f"Undid serve {token.id}"

    # Queries

    def routine_tokens(self) -> List[Token]:
        with self._lock:
            return list(self.routine_queue)

    def triage_tokens(self) -> List[Token]:
        with self._lock:
            return self.triage_queue.snapshot()

    def served_tokens(self) -> List[Token]:
        with self._lock:
            return list(self._served)

    def summary(self) -> DispatchSummary:
        with self._lock:
            loads = [
                DoctorLoad(
                    doctor_id=doctor.id,
                    name=doctor.name,
                    specialization=doctor.specialization,
                    pending_slots=doctor.free_slot_count(),
                    booked_slots=doctor.booked_slot_count(),
                    next_free_slot=doctor.find_next_free(),
                )
                for doctor in self.doctors.values()
            ]
            return DispatchSummary(served=self.served_count, pending=self.pending_count, doctors=loads)

    def top_k_frequent_patients(self, k: int) -> List[int]:
        """
        Patient ids with the most queued tokens, most frequent first.

        Routine tokens are counted in FIFO order, then triage tokens in serve
        order; equal counts keep the order in which patients were first seen.
        """
        if k <= 0:
            return []
        with self._lock:
            freq = Counter(token.patient_id for token in self.routine_queue)
            freq.update(token.patient_id for token in self.triage_queue.snapshot())
        return [patient_id for patient_id, _ in freq.most_common(k)]

    def check_invariants(self) -> None:
        with self._lock:
            live = len(self.routine_queue) + len(self.triage_queue)
            if self.pending_count != live:
                raise InvariantViolation(f"pending_count={self.pending_count} but {live} tokens are queued")
            if self.served_count != len(self._served):
                raise InvariantViolation(
                    f"served_count={self.served_count} but {len(self._served)} tokens were served"
                )

            holders: Counter = Counter()
            for token in self.routine_queue:
                if token.kind is not TokenKind.ROUTINE:
                    raise InvariantViolation(f"Token {token.id} of kind {token.kind.value} in routine queue")
                doctor = self.doctors.get(token.doctor_id)
                if doctor is None or doctor.find(token.slot_id) is None:
                    raise InvariantViolation(
                        f"Token {token.id} references missing slot {token.slot_id} of doctor {token.doctor_id}"
                    )
                holders[(token.doctor_id, token.slot_id)] += 1
            for token in self.triage_queue.snapshot():
                if token.kind is not TokenKind.EMERGENCY:
                    raise InvariantViolation(f"Token {token.id} of kind {token.kind.value} in triage queue")
            for token in self._served:
                if token.kind is TokenKind.ROUTINE:
                    holders[(token.doctor_id, token.slot_id)] += 1

            for doctor in self.doctors.values():
                for slot in doctor.slots:
                    count = holders[(doctor.id, slot.id)]
                    if count > 1 or slot.booked != (count == 1):
                        raise InvariantViolation(
                            f"Slot {slot.id} of doctor {doctor.id} booked={slot.booked} "
                            f"but referenced by {count} tokens"
                        )
