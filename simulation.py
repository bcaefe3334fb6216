from domain import DispatchSummary, Doctor, Patient, Slot
from engine import DispatchEngine


def seed_demo(engine: DispatchEngine) -> None:
    """Load two doctors with morning slots and three patients."""
    rao = engine.add_doctor(Doctor(1, "Dr. Rao", "General"))
    engine.add_slot(rao.id, Slot(101, "09:00", "09:15"))
    engine.add_slot(rao.id, Slot(102, "09:15", "09:30"))
    engine.add_slot(rao.id, Slot(103, "09:30", "09:45"))

    mehta = engine.add_doctor(Doctor(2, "Dr. Mehta", "Pediatrics"))
    engine.add_slot(mehta.id, Slot(201, "09:00", "09:20"))
    engine.add_slot(mehta.id, Slot(202, "09:20", "09:40"))

    engine.register(Patient(1, "Alice", 30, severity=5))
    engine.register(Patient(2, "Bob", 45, severity=2))
    engine.register(Patient(3, "Charlie", 10, severity=1))


def format_summary(summary: DispatchSummary) -> str:
    lines = [
        "=== SUMMARY ===",
        f"Served: {summary.served}",
        f"Pending: {summary.pending}",
        "Doctors:",
    ]
    for load in summary.doctors:
        lines.append(f"  #{load.doctor_id} {load.name} [{load.specialization}]")
        if load.next_free_slot is not None:
            slot = load.next_free_slot
            lines.append(f"    Next slot: {slot.id} ({slot.start}-{slot.end})")
        else:
            lines.append("    Next slot: none")
        lines.append(f"    Pending slots: {load.pending_slots}  Booked: {load.booked_slots}")
    return "\n".join(lines)


def run_simulation() -> None:
    """
    Walk through one short clinic session.

    Demonstrates:
    - Routine booking into the first free slot.
    - Emergency triage pre-empting the routine queue.
    - Undo of a serve putting the token back where it was.
    """
    engine = DispatchEngine(queue_capacity=20)
    seed_demo(engine)

    res = engine.book_routine(1, 1)
    print("Book Alice with Dr. Rao:", res.ok, res.token)

    res = engine.triage_insert(2)
    print("Emergency triage for Bob:", res.ok, res.token)

    print("Serve next (Bob, triage first):", engine.serve_next())
    print("Serve next (Alice):", engine.serve_next())
    print()
    print(format_summary(engine.summary()))

    print()
    print("Undo:", engine.undo())
    print("Queued again:", engine.routine_tokens())
    print("Top 3 frequent patients:", engine.top_k_frequent_patients(3))
    print()
    print(format_summary(engine.summary()))


if __name__ == "__main__":
    run_simulation()
