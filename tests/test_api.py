import pytest
from fastapi.testclient import TestClient

from main import app, engine


@pytest.fixture
def client():
    engine.reset()
    with TestClient(app) as c:
        r = c.post(
            "/doctors",
            json={
                "id": 1,
                "name": "Dr. Rao",
                "specialization": "General",
                "slots": [
                    {"id": 101, "start": "09:00", "end": "09:15"},
                    {"id": 102, "start": "09:15", "end": "09:30"},
                ],
            },
        )
        assert r.status_code == 201
        c.post("/patients", json={"id": 1, "name": "Alice", "age": 30, "severity": 5})
        c.post("/patients", json={"id": 2, "name": "Bob", "age": 45, "severity": 2})
        yield c
    engine.reset()


def test_list_doctors(client):
    r = client.get("/doctors")
    assert r.status_code == 200
    (doctor,) = r.json()
    assert [s["id"] for s in doctor["slots"]] == [101, 102]


def test_create_doctor_with_duplicate_slots_registers_nothing(client):
    r = client.post(
        "/doctors",
        json={
            "id": 2,
            "name": "Dr. Mehta",
            "specialization": "Pediatrics",
            "slots": [
                {"id": 201, "start": "09:00", "end": "09:20"},
                {"id": 201, "start": "09:20", "end": "09:40"},
            ],
        },
    )
    assert r.status_code == 400
    assert [d["id"] for d in client.get("/doctors").json()] == [1]


def test_recreating_doctor_is_rejected(client):
    client.post("/tokens/routine", json={"patient_id": 1, "doctor_id": 1})
    r = client.post("/doctors", json={"id": 1, "name": "Dr. Rao", "specialization": "General"})
    assert r.status_code == 409
    (doctor,) = client.get("/doctors").json()
    assert [s["booked"] for s in doctor["slots"]] == [True, False]
    engine.check_invariants()


def test_slot_input_rejects_booked_flag(client):
    r = client.post("/doctors/1/slots", json={"id": 103, "start": "09:30", "end": "09:45", "booked": True})
    assert r.status_code == 422
    r = client.post(
        "/doctors",
        json={
            "id": 2,
            "name": "Dr. Mehta",
            "specialization": "Pediatrics",
            "slots": [{"id": 201, "start": "09:00", "end": "09:20", "booked": True}],
        },
    )
    assert r.status_code == 422
    assert [s["id"] for s in client.get("/doctors").json()[0]["slots"]] == [101, 102]


def test_book_triage_serve_flow(client):
    r = client.post("/tokens/routine", json={"patient_id": 1, "doctor_id": 1})
    assert r.status_code == 201
    routine = r.json()
    assert routine["kind"] == "routine" and routine["slot_id"] == 101

    r = client.post("/tokens/emergency", json={"patient_id": 2})
    assert r.status_code == 201
    emergency = r.json()
    assert emergency["doctor_id"] == -1

    assert client.post("/serve").json()["id"] == emergency["id"]
    assert client.post("/serve").json()["id"] == routine["id"]
    r = client.post("/serve")
    assert r.status_code == 404


def test_booking_failures(client):
    r = client.post("/tokens/routine", json={"patient_id": 1, "doctor_id": 9})
    assert r.status_code == 404
    client.post("/tokens/routine", json={"patient_id": 1, "doctor_id": 1})
    client.post("/tokens/routine", json={"patient_id": 2, "doctor_id": 1})
    r = client.post("/tokens/routine", json={"patient_id": 1, "doctor_id": 1})
    assert r.status_code == 409
    assert r.json()["detail"] == "No free slot for this doctor"


def test_triage_unknown_patient(client):
    r = client.post("/tokens/emergency", json={"patient_id": 77})
    assert r.status_code == 404


def test_undo_and_summary(client):
    client.post("/tokens/routine", json={"patient_id": 1, "doctor_id": 1})
    summary = client.get("/summary").json()
    assert summary["pending"] == 1
    assert summary["doctors"][0]["next_free_slot"]["id"] == 102

    r = client.post("/undo")
    assert r.json()["detail"].startswith("Undid booking")
    summary = client.get("/summary").json()
    assert summary["pending"] == 0
    assert summary["doctors"][0]["pending_slots"] == 2


def test_patient_lookup_and_undo_register(client):
    assert client.get("/patients/2").json()["severity"] == 2
    client.post("/undo")
    assert client.get("/patients/2").status_code == 404


def test_top_patients(client):
    client.post("/tokens/routine", json={"patient_id": 2, "doctor_id": 1})
    client.post("/tokens/emergency", json={"patient_id": 2})
    client.post("/tokens/emergency", json={"patient_id": 1})
    assert client.get("/patients/top", params={"k": 1}).json() == [2]
    assert client.get("/patients/top").json() == [2, 1]


def test_slot_management(client):
    r = client.post("/doctors/1/slots", json={"id": 103, "start": "09:30", "end": "09:45"})
    assert r.status_code == 201
    assert client.post("/doctors/1/slots", json={"id": 103, "start": "x", "end": "y"}).status_code == 400
    assert client.post("/doctors/5/slots", json={"id": 1, "start": "x", "end": "y"}).status_code == 404
    assert client.delete("/doctors/1/slots/103").status_code == 204
    assert client.delete("/doctors/1/slots/103").status_code == 404


def test_reset(client):
    assert client.post("/admin/reset").json() == {"detail": "State cleared"}
    assert client.get("/doctors").json() == []
    assert client.post("/undo").json() == {"detail": "Nothing to undo"}
