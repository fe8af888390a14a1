"""
Commitment persistence used when onboarding completes.

The real app writes to Postgres; the onboarding flow only needs create and
list, so it talks to this protocol and gets a store injected.
"""

import threading
import uuid
from datetime import date, timedelta
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from schemas import Cadence, ProofMode

COMMITMENT_LENGTH_DAYS = 90


class NewCommitment(BaseModel):
    title: str = "My streak"
    description: str = ""
    category: Optional[str] = None
    cadence: Cadence = "daily"
    proof_mode: ProofMode = "photo_optional"
    start_date: date = Field(default_factory=date.today)
    end_date: Optional[date] = None


class Commitment(NewCommitment):
    id: str
    user_id: str


class CommitmentStore(Protocol):
    def create_commitment(self, user_id: str, commitment: NewCommitment) -> Commitment:
        ...

    def list_commitments(self, user_id: str) -> List[Commitment]:
        ...


class InMemoryCommitmentStore:
    """Process-local store for tests and local runs."""

    def __init__(self) -> None:
        self._by_user: Dict[str, List[Commitment]] = {}
        self._lock = threading.Lock()

    def create_commitment(self, user_id: str, commitment: NewCommitment) -> Commitment:
        if not user_id:
            raise ValueError("user_id is required")

        data = commitment.model_dump()
        if not data["title"].strip():
            data["title"] = "My streak"
        if data["end_date"] is None:
            data["end_date"] = data["start_date"] + timedelta(days=COMMITMENT_LENGTH_DAYS)

        stored = Commitment(id=str(uuid.uuid4()), user_id=user_id, **data)
        with self._lock:
            self._by_user.setdefault(user_id, []).append(stored)
        return stored

    def list_commitments(self, user_id: str) -> List[Commitment]:
        with self._lock:
            return list(self._by_user.get(user_id, []))
