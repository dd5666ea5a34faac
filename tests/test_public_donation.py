from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient


def _donate(client: TestClient, **fields: str):
    return client.post("/donations/public", data=fields, follow_redirects=False)


def test_repeat_donor_is_matched_by_email_and_numbered_in_sequence(client: TestClient, fake_repo) -> None:
    first = _donate(
        client,
        donor_first_name="Jane",
        donor_last_name="Doe",
        donor_email="jane@example.com",
        amount="25",
    )
    assert first.status_code == 303
    assert first.headers["location"] == "/donate"
    assert "Thank you for your support!" in client.get("/donate").text

    second = _donate(
        client,
        donor_first_name="Jane",
        donor_last_name="Doe",
        donor_email="  JANE@example.com ",
        amount="40.50",
    )
    assert second.status_code == 303

    donors = [row for row in fake_repo.participants.values() if row.get("email") == "jane@example.com"]
    assert len(donors) == 1
    assert donors[0]["role"] == "donor"

    jane_id = donors[0]["id"]
    jane_donations = [row for row in fake_repo.donations if row["participant_id"] == jane_id]
    assert [row["donation_number"] for row in jane_donations] == [1, 2]
    assert [row["amount"] for row in jane_donations] == [Decimal("25"), Decimal("40.50")]


def test_existing_participant_email_is_reused(client: TestClient, fake_repo) -> None:
    _donate(
        client,
        donor_first_name="Maria",
        donor_last_name="Lopez",
        donor_email="maria@example.org",
        amount="10",
    )
    assert len(fake_repo.participants) == 1
    assert fake_repo.donations[0]["participant_id"] == 10


def test_donation_without_email_is_anonymous(client: TestClient, fake_repo) -> None:
    _donate(client, donor_first_name="Sam", donor_last_name="Smith", amount="5")
    _donate(client, donor_first_name="Alex", donor_last_name="Lee", amount="7")

    assert len(fake_repo.participants) == 1
    assert [(row["participant_id"], row["donation_number"]) for row in fake_repo.donations] == [(None, 1), (None, 2)]


def test_invalid_amount_is_rejected_with_a_notice(client: TestClient, fake_repo) -> None:
    response = _donate(client, donor_first_name="Jane", donor_last_name="Doe", amount="-3")
    assert response.headers["location"] == "/donate"
    assert "Please enter a valid donation amount." in client.get("/donate").text
    assert fake_repo.donations == []


def test_missing_first_name_is_rejected_with_a_notice(client: TestClient, fake_repo) -> None:
    _donate(client, donor_first_name="  ", donor_last_name="Doe", amount="3")
    assert "Please enter your first name." in client.get("/donate").text
    assert fake_repo.donations == []
