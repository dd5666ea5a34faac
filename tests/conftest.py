from __future__ import annotations

import os
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

# Keep tracing local and quiet before the app module reads its settings.
os.environ.setdefault("ER_OTEL_ENABLED", "false")
os.environ.setdefault("ER_SESSION_SECRET", "test-session-secret")

import bcrypt
import pytest
from fastapi.testclient import TestClient

from ella_rises.main import app
from ella_rises.services.repository import (
    DonationKey,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    UserCredentialRecord,
    get_repository,
)

ADMIN_PASSWORD = "admin-pass"
STAFF_PASSWORD = "staff-pass"


def _hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


class FakeRepository:
    """In-memory stand-in covering the operations the routing and authorization tests touch."""

    def __init__(self) -> None:
        self.users: dict[str, UserCredentialRecord] = {
            "admin": UserCredentialRecord(user_id=1, username="admin", role="admin", password_hash=_hash(ADMIN_PASSWORD)),
            "staff": UserCredentialRecord(user_id=2, username="staff", role="user", password_hash=_hash(STAFF_PASSWORD)),
        }
        self.milestones: dict[int, dict[str, Any]] = {
            1: {"id": 1, "title": "First Event Attended", "description": "Came to a first workshop"},
            2: {"id": 2, "title": "College Application", "description": None},
        }
        self.participants: dict[int, dict[str, Any]] = {
            10: {"id": 10, "first_name": "Maria", "last_name": "Lopez", "email": "maria@example.org"},
        }
        self.assignments: dict[tuple[int, int], date] = {
            (10, 1): date(2024, 3, 1),
            (10, 2): date(2024, 5, 1),
        }
        self.donations: list[dict[str, Any]] = []
        self.survey_counts: dict[int, int] = {10: 2}
        self.failing_listings = False
        self.pinged = False

    async def ping(self) -> None:
        self.pinged = True

    async def close(self) -> None:
        return None

    async def get_user_credentials(self, *, username: str) -> UserCredentialRecord | None:
        return self.users.get(username)

    async def list_milestones(self, *, q: str | None = None) -> list[dict[str, Any]]:
        if self.failing_listings:
            raise RepositoryUnavailableError("database unavailable")
        rows = sorted(self.milestones.values(), key=lambda row: (row["title"], row["id"]))
        if q:
            rows = [row for row in rows if q.lower() in row["title"].lower()]
        return rows

    async def get_milestone(self, *, milestone_id: int) -> dict[str, Any]:
        if milestone_id not in self.milestones:
            raise RepositoryNotFoundError("Milestone not found.")
        return {**self.milestones[milestone_id], "achievers": []}

    async def delete_milestone(self, *, milestone_id: int) -> int:
        if milestone_id not in self.milestones:
            raise RepositoryNotFoundError("Milestone not found.")
        removed = [key for key in self.assignments if key[1] == milestone_id]
        for key in removed:
            del self.assignments[key]
        del self.milestones[milestone_id]
        return len(removed)

    async def list_participants(self, *, q: str | None = None) -> list[dict[str, Any]]:
        return [
            {**row, "city": None, "role": "participant", "events_count": 0, "donations_count": 0}
            for row in self.participants.values()
        ]

    async def delete_participant(self, *, participant_id: int) -> int:
        if participant_id not in self.participants:
            raise RepositoryNotFoundError("Participant not found.")
        for key in [key for key in self.assignments if key[0] == participant_id]:
            del self.assignments[key]
        del self.participants[participant_id]
        return self.survey_counts.pop(participant_id, 0)

    async def find_or_create_participant(self, *, first_name: str, last_name: str, email: str) -> dict[str, Any]:
        normalized = email.strip().lower()
        for participant in self.participants.values():
            if (participant.get("email") or "").lower() == normalized:
                return {"participant_id": participant["id"], "created": False}
        participant_id = max(self.participants, default=0) + 1
        self.participants[participant_id] = {
            "id": participant_id,
            "first_name": first_name,
            "last_name": last_name,
            "email": normalized,
            "role": "donor",
        }
        return {"participant_id": participant_id, "created": True}

    async def create_donation(
        self,
        *,
        participant_id: int | None,
        amount: Decimal,
        donation_date: date | None = None,
    ) -> DonationKey:
        numbers = [row["donation_number"] for row in self.donations if row["participant_id"] == participant_id]
        key = DonationKey(participant_id=participant_id, donation_number=max(numbers, default=0) + 1)
        self.donations.append(
            {
                "participant_id": participant_id,
                "donation_number": key.donation_number,
                "amount": amount,
                "donation_date": donation_date or date.today(),
            }
        )
        return key

    async def list_upcoming_event_instances(self, *, since: datetime, limit: int | None = None) -> list[dict[str, Any]]:
        rows = [
            {
                "id": 1,
                "name": "STEAM Saturday",
                "type": "Workshop",
                "description": None,
                "location": None,
                "start_time": datetime(since.year, 6, 1, 15, 0, tzinfo=timezone.utc),
            }
        ]
        return rows if limit is None else rows[:limit]

    async def count_attended_participants(self) -> int:
        return 1

    async def average_response(self, *, question_number: int) -> Decimal | None:
        return None

    async def count_milestone_assignments(self) -> int:
        return len(self.assignments)

    async def total_donations(self) -> Decimal:
        return sum((row["amount"] for row in self.donations), Decimal("0"))


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def client(fake_repo: FakeRepository) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: fake_repo

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client: TestClient):
    def _login(username: str, password: str) -> None:
        response = client.post(
            "/login",
            data={"username": username, "password": password},
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/dashboard"

    return _login
