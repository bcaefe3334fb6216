from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

NO_DOCTOR = -1
NO_SLOT = -1


class TokenKind(str, Enum):
    ROUTINE = "routine"
    EMERGENCY = "emergency"


class FailureReason(str, Enum):
    DOCTOR_NOT_FOUND = "doctor_not_found"
    NO_FREE_SLOT = "no_free_slot"
    QUEUE_FULL = "queue_full"
    PATIENT_NOT_FOUND = "patient_not_found"


class InvariantViolation(RuntimeError):
    """Raised when the dispatch structures disagree with each other.

    This is a programming error, never a business outcome.
    """


@dataclass
class Patient:
    id: int
    name: str
    age: int
    severity: int = 0


@dataclass
class Slot:
    id: int
    start: str
    end: str
    booked: bool = False


@dataclass(frozen=True)
class Token:
    id: int
    patient_id: int
    kind: TokenKind
    doctor_id: int = NO_DOCTOR
    slot_id: int = NO_SLOT


@dataclass
class Doctor:
    """
    A doctor and the ledger of appointment slots it owns.

    Slots keep insertion order; allocation always takes the first free one.
    """

    id: int
    name: str
    specialization: str
    _slots: List[Slot] = field(default_factory=list, repr=False)

    @property
    def slots(self) -> List[Slot]:
        return list(self._slots)

    def add_slot(self, slot: Slot) -> None:
        self._slots.append(slot)

    def find(self, slot_id: int) -> Optional[Slot]:
        for slot in self._slots:
            if slot.id == slot_id:
                return slot
        return None

    def find_next_free(self) -> Optional[Slot]:
        for slot in self._slots:
            if not slot.booked:
                return slot
        return None

    def book(self, slot_id: int) -> bool:
        slot = self.find(slot_id)
        if slot is None or slot.booked:
            return False
        slot.booked = True
        return True

    def unbook(self, slot_id: int) -> bool:
        slot = self.find(slot_id)
        if slot is None or not slot.booked:
            return False
        slot.booked = False
        return True

    def cancel(self, slot_id: int) -> bool:
        """Remove a slot whether or not it is booked. Not reversible."""
        for idx, slot in enumerate(self._slots):
            if slot.id == slot_id:
                del self._slots[idx]
                return True
        return False

    def free_slot_count(self) -> int:
        return sum(1 for slot in self._slots if not slot.booked)

    def booked_slot_count(self) -> int:
        return sum(1 for slot in self._slots if slot.booked)


@dataclass(frozen=True)
class Register:
    patient_id: int


@dataclass(frozen=True)
class Book:
    token: Token


@dataclass(frozen=True)
class Triage:
    token: Token


@dataclass(frozen=True)
class Serve:
    token: Token


UndoAction = Union[Register, Book, Triage, Serve]


@dataclass
class DispatchResult:
    ok: bool
    token: Optional[Token] = None
    reason: Optional[FailureReason] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, token: Token) -> "DispatchResult":
        return cls(ok=True, token=token)

    @classmethod
    def failure(cls, reason: FailureReason) -> "DispatchResult":
        return cls(ok=False, reason=reason)


@dataclass
class DoctorLoad:
    doctor_id: int
    name: str
    specialization: str
    pending_slots: int
    booked_slots: int
    next_free_slot: Optional[Slot]


@dataclass
class DispatchSummary:
    served: int
    pending: int
    doctors: List[DoctorLoad] = field(default_factory=list)
