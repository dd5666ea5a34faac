from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable, Coroutine
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from ella_rises.services.reporting import load_impact_stats
from ella_rises.services.repository import (
    DonationKey,
    PostgresRepository,
    RepositoryBlockedError,
    RepositoryConflictError,
    RepositoryNotFoundError,
)
from ella_rises.services.schema import SCHEMA_STATEMENTS, TABLES_IN_DELETE_ORDER

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("ER_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require ER_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset_database(database_url))


def test_participant_email_conflict_is_case_insensitive(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        first = await repository.create_participant(first_name="Ana", last_name="Ruiz", email="ana@example.com")
        with pytest.raises(RepositoryConflictError):
            await repository.create_participant(first_name="Other", last_name="Person", email="ANA@Example.com ")

        second = await repository.create_participant(first_name="Bea", last_name="Diaz", email="bea@example.com")
        with pytest.raises(RepositoryConflictError):
            await repository.update_participant(
                participant_id=second,
                first_name="Bea",
                last_name="Diaz",
                email="Ana@example.com",
            )

        untouched = await repository.get_participant(participant_id=second)
        assert untouched["email"] == "bea@example.com"
        assert untouched["first_name"] == "Bea"

        # Re-saving a participant with its own email is not a conflict.
        await repository.update_participant(
            participant_id=first,
            first_name="Ana Maria",
            last_name="Ruiz",
            email="ANA@example.com",
        )
        assert (await repository.get_participant(participant_id=first))["first_name"] == "Ana Maria"

    _with_repository(database_url, scenario)


def test_participant_phone_conflict(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        await repository.create_participant(first_name="Ana", last_name="Ruiz", phone="801-555-0100")
        with pytest.raises(RepositoryConflictError, match="phone"):
            await repository.create_participant(first_name="Bea", last_name="Diaz", phone=" 801-555-0100 ")
        assert await repository.count_rows(table="participant") == 1

    _with_repository(database_url, scenario)


def test_participant_delete_blocked_by_donations(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        participant_id = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        await repository.create_donation(participant_id=participant_id, amount=Decimal("20.00"))

        with pytest.raises(RepositoryBlockedError):
            await repository.delete_participant(participant_id=participant_id)

        assert (await repository.get_participant(participant_id=participant_id))["donations_count"] == 1

    _with_repository(database_url, scenario)


def test_participant_delete_cascades_dependents(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> int:
        participant_id = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        milestone_id = await repository.create_milestone(title="First Event")
        await repository.assign_milestone(participant_id=participant_id, milestone_id=milestone_id)
        event_id = await repository.create_event_template(name="Workshop")
        instance_id = await repository.create_event_instance(
            event_id=event_id,
            start_time=datetime(2030, 1, 1, 17, 0, tzinfo=timezone.utc),
        )
        await repository.create_survey(
            participant_id=participant_id,
            event_instance_id=instance_id,
            responses={1: 5},
            comment="Loved it",
        )
        await _execute(
            database_url,
            "insert into event_registration (participant_id, event_instance_id, registration_attended_flag) values ($1, $2, true)",
            participant_id,
            instance_id,
        )

        assert await repository.delete_participant(participant_id=participant_id) == 1
        with pytest.raises(RepositoryNotFoundError):
            await repository.get_participant(participant_id=participant_id)
        return milestone_id

    milestone_id = _with_repository(database_url, scenario)
    for table in ("participant_milestone", "event_registration", "survey_submission", "survey_response", "survey_comment"):
        assert _run(_fetchval(database_url, f"select count(*) from {table}")) == 0, table
    assert _run(_fetchval(database_url, "select count(*) from milestone where milestone_id = $1", milestone_id)) == 1


def test_donation_numbers_are_sequential_per_scope_when_interleaved(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> list[DonationKey]:
        a = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        b = await repository.create_participant(first_name="Bea", last_name="Diaz")
        keys = []
        for owner in (a, b, a, None, a, None, b):
            keys.append(await repository.create_donation(participant_id=owner, amount=Decimal("1.00")))
        return keys

    keys = _with_repository(database_url, scenario)
    by_scope: dict[int | None, list[int]] = {}
    for key in keys:
        by_scope.setdefault(key.participant_id, []).append(key.donation_number)
    assert sorted(by_scope.values()) == [[1, 2], [1, 2], [1, 2, 3]]
    assert by_scope[None] == [1, 2]


def test_concurrent_donations_never_share_a_number(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> list[int]:
        participant_id = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        keys = await asyncio.gather(
            *(repository.create_donation(participant_id=participant_id, amount=Decimal("2.00")) for _ in range(12)),
            *(repository.create_donation(participant_id=None, amount=Decimal("3.00")) for _ in range(6)),
        )
        return sorted(key.donation_number for key in keys if key.participant_id is not None)

    assert _with_repository(database_url, scenario, max_pool_size=6) == list(range(1, 13))
    anonymous = _run(
        _fetchval(
            database_url,
            "select array_agg(donation_number order by donation_number) from donation where participant_id is null",
        )
    )
    assert list(anonymous) == [1, 2, 3, 4, 5, 6]


def test_public_donor_scenario_reuses_participant(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> list[DonationKey]:
        keys = []
        for amount in ("25.00", "40.00"):
            donor = await repository.find_or_create_participant(
                first_name="Jane",
                last_name="Doe",
                email="Jane@Example.com",
            )
            keys.append(await repository.create_donation(participant_id=donor["participant_id"], amount=Decimal(amount)))
        return keys

    keys = _with_repository(database_url, scenario)
    assert _run(_fetchval(database_url, "select count(*) from participant where participant_email = 'jane@example.com'")) == 1
    assert _run(_fetchval(database_url, "select participant_role from participant")) == "donor"
    assert [key.donation_number for key in keys] == [1, 2]
    assert keys[0].participant_id == keys[1].participant_id


def test_concurrent_find_or_create_yields_one_participant(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> set[int]:
        results = await asyncio.gather(
            *(
                repository.find_or_create_participant(first_name="Jane", last_name="Doe", email="jane@example.com")
                for _ in range(5)
            )
        )
        return {result["participant_id"] for result in results}

    assert len(_with_repository(database_url, scenario, max_pool_size=5)) == 1
    assert _run(_fetchval(database_url, "select count(*) from participant")) == 1


def test_move_donation_renumbers_in_new_scope(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        a = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        b = await repository.create_participant(first_name="Bea", last_name="Diaz")
        first = await repository.create_donation(
            participant_id=a,
            amount=Decimal("10.00"),
            donation_date=date(2024, 1, 5),
        )
        await repository.create_donation(participant_id=a, amount=Decimal("11.00"))
        await repository.create_donation(participant_id=b, amount=Decimal("12.00"))

        moved = await repository.move_donation(key=first, new_participant_id=b)
        assert moved == DonationKey(participant_id=b, donation_number=2)
        row = await repository.get_donation(key=moved)
        assert row["amount"] == Decimal("10.00")
        assert row["donation_date"] == date(2024, 1, 5)
        with pytest.raises(RepositoryNotFoundError):
            await repository.get_donation(key=first)

        anonymous = await repository.update_donation(key=moved, participant_id=None, amount=Decimal("15.00"))
        assert anonymous == DonationKey(participant_id=None, donation_number=1)
        assert (await repository.get_donation(key=anonymous))["donor"] == "Anonymous"

        # Same owner: amount changes in place, key unchanged.
        same = await repository.update_donation(
            key=DonationKey(participant_id=a, donation_number=2),
            participant_id=a,
            amount=Decimal("99.00"),
        )
        assert same == DonationKey(participant_id=a, donation_number=2)
        assert (await repository.get_donation(key=same))["amount"] == Decimal("99.00")

        with pytest.raises(RepositoryNotFoundError):
            await repository.move_donation(key=DonationKey(participant_id=a, donation_number=42), new_participant_id=b)

    _with_repository(database_url, scenario)


def test_average_satisfaction_empty_then_rounded(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> tuple[Any, Any]:
        empty = await load_impact_stats(repository)
        participant_id = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        for score in (5, 4, 5):
            await repository.create_survey(
                participant_id=participant_id,
                event_instance_id=None,
                responses={1: score, 4: 3},
            )
        return empty, await load_impact_stats(repository)

    empty, filled = _with_repository(database_url, scenario)
    assert empty.avg_satisfaction is None
    assert empty.avg_recommend is None
    assert filled.avg_satisfaction == 4.7
    assert filled.avg_recommend == 3.0


def test_milestone_delete_removes_assignments(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> int:
        milestone_id = await repository.create_milestone(title="Graduated", description="High school")
        other_id = await repository.create_milestone(title="Internship")
        for name in ("Ana", "Bea"):
            participant_id = await repository.create_participant(first_name=name, last_name="Ruiz")
            await repository.assign_milestone(participant_id=participant_id, milestone_id=milestone_id)
            await repository.assign_milestone(participant_id=participant_id, milestone_id=other_id)

        with pytest.raises(RepositoryConflictError):
            await repository.assign_milestone(participant_id=participant_id, milestone_id=other_id)

        removed = await repository.delete_milestone(milestone_id=milestone_id)
        with pytest.raises(RepositoryNotFoundError):
            await repository.get_milestone(milestone_id=milestone_id)
        counts = await repository.milestone_assignment_counts()
        assert [(row["title"], row["count"]) for row in counts] == [("Internship", 2)]
        return removed

    assert _with_repository(database_url, scenario) == 2


def test_deleting_last_instance_removes_template(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        event_id = await repository.create_event_template(name="Summit", default_capacity=40)
        start = datetime(2030, 3, 1, 16, 0, tzinfo=timezone.utc)
        first = await repository.create_event_instance(event_id=event_id, start_time=start)
        second = await repository.create_event_instance(event_id=event_id, start_time=start + timedelta(days=7), capacity=10)

        assert (await repository.get_event_instance(instance_id=first))["capacity"] == 40
        assert (await repository.get_event_instance(instance_id=second))["capacity"] == 10

        with pytest.raises(RepositoryBlockedError):
            await repository.delete_event_template(event_id=event_id)

        assert await repository.delete_event_instance(instance_id=first) is False
        assert (await repository.get_event_template(event_id=event_id))["instances_count"] == 1

        participant_id = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        survey_id = await repository.create_survey(
            participant_id=participant_id,
            event_instance_id=second,
            responses={2: 4},
        )
        with pytest.raises(RepositoryBlockedError):
            await repository.delete_event_instance(instance_id=second)

        await repository.delete_survey(survey_id=survey_id)
        assert await repository.delete_event_instance(instance_id=second) is True
        with pytest.raises(RepositoryNotFoundError):
            await repository.get_event_template(event_id=event_id)

    _with_repository(database_url, scenario)


def test_survey_round_trip_with_batched_responses(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        participant_id = await repository.create_participant(first_name="Ana", last_name="Ruiz")
        event_id = await repository.create_event_template(name="STEAM Night", type="Workshop")
        instance_id = await repository.create_event_instance(
            event_id=event_id,
            start_time=datetime(2030, 5, 1, 1, 0, tzinfo=timezone.utc),
        )
        survey_id = await repository.create_survey(
            participant_id=participant_id,
            event_instance_id=instance_id,
            responses={1: 5, 2: 4, 4: 5},
            comment="Great mentors",
        )
        await repository.create_survey(participant_id=participant_id, event_instance_id=None, responses={1: 2})

        listed = await repository.list_surveys(q="steam")
        assert [row["id"] for row in listed] == [survey_id]
        assert (listed[0]["satisfaction"], listed[0]["usefulness"], listed[0]["recommend"]) == (5, 4, 5)

        await repository.update_survey(
            survey_id=survey_id,
            participant_id=participant_id,
            event_instance_id=instance_id,
            responses={2: 1},
            comment="  ",
        )
        survey = await repository.get_survey(survey_id=survey_id)
        assert (survey["satisfaction"], survey["usefulness"], survey["recommend"]) == (5, 1, 5)
        assert survey["comment"] is None
        assert survey["event_name"] == "STEAM Night"

    _with_repository(database_url, scenario)
    assert _run(_fetchval(database_url, "select count(*) from survey_response where question_number = 3")) == 0


def test_user_projections_never_expose_password(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        user_id = await repository.create_user(
            username="director",
            email="dir@example.org",
            role="admin",
            password_hash="$2b$04$abcdefghijklmnopqrstuuabcdefghijklmnopqrstuvwxyzABCDE",
        )
        with pytest.raises(RepositoryConflictError):
            await repository.create_user(username="director", email=None, role="user", password_hash="x")

        listed = await repository.list_users(q="DIR")
        assert [set(row) for row in listed] == [{"id", "username", "email", "role"}]
        assert set(await repository.get_user(user_id=user_id)) == {"id", "username", "email", "role"}

        credentials = await repository.get_user_credentials(username="director")
        assert credentials is not None
        assert credentials.password_hash.startswith("$2b$")

        await repository.update_user(user_id=user_id, username="director", email=None, role="user")
        assert (await repository.get_user_credentials(username="director")).password_hash == credentials.password_hash
        await repository.delete_user(user_id=user_id)
        assert await repository.get_user_credentials(username="director") is None

    _with_repository(database_url, scenario)


def test_search_is_case_insensitive_substring_with_stable_order(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        await repository.create_participant(first_name="Ana", last_name="Zamora", city="Provo")
        await repository.create_participant(first_name="Bea", last_name="Alvarez", city="Orem")
        await repository.create_participant(first_name="Cata", last_name="Morales", city="Provo")

        everyone = await repository.list_participants()
        assert [row["last_name"] for row in everyone] == ["Alvarez", "Morales", "Zamora"]

        provo = await repository.list_participants(q="PROV")
        assert [row["last_name"] for row in provo] == ["Morales", "Zamora"]
        assert [row["last_name"] for row in await repository.list_participants(q="ana zam")] == ["Zamora"]
        assert await repository.list_participants(q="100%") == []

    _with_repository(database_url, scenario)


def _with_repository(
    database_url: str,
    scenario: Callable[[PostgresRepository], Awaitable[T]],
    *,
    max_pool_size: int = 2,
) -> T:
    async def runner() -> T:
        repository = PostgresRepository(database_url=database_url, min_pool_size=1, max_pool_size=max_pool_size)
        try:
            return await scenario(repository)
        finally:
            await repository.close()

    return _run(runner())


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _reset_database(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
        await conn.execute(f"truncate table {', '.join(TABLES_IN_DELETE_ORDER)} restart identity cascade")
    finally:
        await conn.close()


async def _fetchval(database_url: str, query: str, *args: Any) -> Any:
    conn = await asyncpg.connect(database_url)
    try:
        return await conn.fetchval(query, *args)
    finally:
        await conn.close()


async def _execute(database_url: str, query: str, *args: Any) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(query, *args)
    finally:
        await conn.close()
