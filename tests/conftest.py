import pytest

from domain import Doctor, Patient, Slot
from engine import DispatchEngine


def make_engine(capacity=10, slots=(101, 102)):
    engine = DispatchEngine(queue_capacity=capacity)
    engine.add_doctor(Doctor(1, "Dr. Rao", "General"))
    for i, slot_id in enumerate(slots):
        engine.add_slot(1, Slot(slot_id, f"09:{i * 15:02d}", f"09:{i * 15 + 15:02d}"))
    engine.register(Patient(1, "Alice", 30, severity=5))
    engine.register(Patient(2, "Bob", 45, severity=2))
    engine.register(Patient(3, "Charlie", 25, severity=1))
    return engine


@pytest.fixture
def engine():
    return make_engine()
