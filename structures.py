from __future__ import annotations

import heapq
import itertools
import logging
from collections import deque
from typing import Callable, Deque, Dict, Iterator, List, Optional

from domain import InvariantViolation, Patient, Token, UndoAction

logger = logging.getLogger(__name__)

PriorityFn = Callable[[Token], int]


class PatientDirectory:
    """Patient records keyed by patient id."""

    def __init__(self) -> None:
        self._patients: Dict[int, Patient] = {}

    def upsert(self, patient: Patient) -> None:
        self._patients[patient.id] = patient

    def get(self, patient_id: int) -> Optional[Patient]:
        return self._patients.get(patient_id)

    def delete(self, patient_id: int) -> bool:
        return self._patients.pop(patient_id, None) is not None

    def __contains__(self, patient_id: object) -> bool:
        return patient_id in self._patients

    def __len__(self) -> int:
        return len(self._patients)


class RoutineQueue:
    """
    Fixed-capacity FIFO of routine tokens.

    A full queue rejects the enqueue instead of growing or evicting, so
    callers can roll back whatever they reserved for the token.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("Routine queue capacity must be positive")
        self.capacity = capacity
        self._items: Deque[Token] = deque()

    def enqueue(self, token: Token) -> bool:
        if self.is_full():
            return False
        self._items.append(token)
        return True

    def dequeue(self) -> Optional[Token]:
        if not self._items:
            return None
        return self._items.popleft()

    def peek(self) -> Optional[Token]:
        if not self._items:
            return None
        return self._items[0]

    def is_full(self) -> bool:
        return len(self._items) >= self.capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Token]:
        return iter(list(self._items))

    def _drain(self) -> List[Token]:
        drained = []
        while True:
            token = self.dequeue()
            if token is None:
                return drained
            drained.append(token)

    def remove(self, token_id: int) -> Optional[Token]:
        """Drop one token by id, keeping everyone else in FIFO order."""
        removed = None
        for token in self._drain():
            if removed is None and token.id == token_id:
                removed = token
                continue
            self.enqueue(token)
        logger.debug("Routine queue rebuilt without token %s (found=%s)", token_id, removed is not None)
        return removed

    def push_front(self, token: Token) -> None:
        """Put a token back at the head of the queue."""
        rest = self._drain()
        if len(rest) + 1 > self.capacity:
            for item in rest:
                self.enqueue(item)
            raise InvariantViolation(
                f"Routine queue is full, cannot restore token {token.id} to the front"
            )
        self.enqueue(token)
        for item in rest:
            self.enqueue(item)
        logger.debug("Routine queue rebuilt with token %s at the front", token.id)


class _HeapEntry:
    __slots__ = ("token", "seq", "_priority")

    def __init__(self, token: Token, seq: int, priority: PriorityFn) -> None:
        self.token = token
        self.seq = seq
        self._priority = priority

    def __lt__(self, other: "_HeapEntry") -> bool:
        mine, theirs = self._priority(self.token), self._priority(other.token)
        if mine != theirs:
            return mine < theirs
        return self.seq < other.seq


class TriageQueue:
    """
    Min-heap of emergency tokens.

    Priority is looked up through the injected ``priority`` callable every
    time two entries are compared, so a patient's current severity decides
    the order. Equal priorities fall back to the queue's own insertion
    sequence; a token put back during undo draws a fresh sequence number.
    """

    def __init__(self, priority: PriorityFn) -> None:
        self._priority = priority
        self._heap: List[_HeapEntry] = []
        self._seq = itertools.count()

    def insert(self, token: Token) -> None:
        heapq.heappush(self._heap, _HeapEntry(token, next(self._seq), self._priority))

    def extract_min(self) -> Optional[Token]:
        if not self._heap:
            return None
        return heapq.heappop(self._heap).token

    def peek_min(self) -> Optional[Token]:
        if not self._heap:
            return None
        return self._heap[0].token

    def reorder(self) -> None:
        """Restore heap order after priorities changed underneath the entries."""
        heapq.heapify(self._heap)

    def snapshot(self) -> List[Token]:
        """Tokens in the order they would be served, without touching the heap."""
        return [entry.token for entry in sorted(self._heap)]

    def __len__(self) -> int:
        return len(self._heap)

    def remove(self, token_id: int) -> Optional[Token]:
        """Drop one token by id and re-insert the rest one by one."""
        removed = None
        keep: List[Token] = []
        while True:
            token = self.extract_min()
            if token is None:
                break
            if removed is None and token.id == token_id:
                removed = token
            else:
                keep.append(token)
        for token in keep:
            self.insert(token)
        logger.debug("Triage queue rebuilt without token %s (found=%s)", token_id, removed is not None)
        return removed


class UndoLog:
    """Stack of reversible actions, most recent on top."""

    def __init__(self) -> None:
        self._actions: List[UndoAction] = []

    def record(self, action: UndoAction) -> None:
        self._actions.append(action)

    def pop(self) -> Optional[UndoAction]:
        if not self._actions:
            return None
        return self._actions.pop()

    def __len__(self) -> int:
        return len(self._actions)
