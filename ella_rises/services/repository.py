from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from ella_rises.core.config import get_settings
from ella_rises.schemas.donations import ANONYMOUS_DONOR, ANONYMOUS_TOKEN
from ella_rises.schemas.surveys import PRIMARY_COMMENT_NUMBER, SurveyQuestion
from ella_rises.services.schema import apply_schema

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write would violate a uniqueness rule."""


class RepositoryBlockedError(RepositoryError):
    """Raised when a referential guard refuses a destructive operation."""


class RepositoryValidationError(RepositoryError):
    """Raised when input is malformed before or during persistence."""


@dataclass(slots=True)
class UserCredentialRecord:
    user_id: int
    username: str
    role: str
    password_hash: str


ANONYMOUS_SCOPE = 0
# First key of the two-int advisory lock used to serialize donation numbering per scope.
DONATION_SEQUENCE_LOCK = 7201



@dataclass(slots=True, frozen=True)
class DonationKey:
    participant_id: int | None
    donation_number: int

    @property
    def scope(self) -> int:
        return ANONYMOUS_SCOPE if self.participant_id is None else self.participant_id

    @property
    def participant_token(self) -> str:
        return ANONYMOUS_TOKEN if self.participant_id is None else str(self.participant_id)

    @classmethod
    def parse(cls, participant_token: str, donation_number: int | str) -> DonationKey:
        token = participant_token.strip().lower()
        participant_id: int | None
        if token == ANONYMOUS_TOKEN:
            participant_id = None
        else:
            try:
                participant_id = int(token)
            except ValueError as exc:
                raise RepositoryValidationError("invalid donation participant") from exc
            if participant_id <= 0:
                raise RepositoryValidationError("invalid donation participant")
        try:
            number = int(donation_number)
        except (TypeError, ValueError) as exc:
            raise RepositoryValidationError("invalid donation number") from exc
        if number <= 0:
            raise RepositoryValidationError("invalid donation number")
        return cls(participant_id=participant_id, donation_number=number)


def _search_condition(q: str | None, columns: tuple[str, ...], params: list[Any]) -> str | None:
    """OR a case-insensitive substring match across ``columns``; None when there is no term."""
    normalized = PostgresRepository._coerce_text(q)
    if not normalized:
        return None
    escaped = normalized.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    params.append(f"%{escaped}%")
    token = f"${len(params)}"
    return "(" + " or ".join(f"coalesce({column}, '') ilike {token}" for column in columns) + ")"


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout: float = 15.0,
        ssl_required: bool = False,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max(min_pool_size, max_pool_size)
        self.command_timeout = command_timeout
        self.ssl_required = ssl_required
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> None:
        pool = await self._get_pool()
        try:
            await pool.fetchval("select 1")
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await apply_schema(conn)

    # Users

    async def list_users(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(q, ("username", "email", "role"), params)
        rows = await pool.fetch(
            f"""
            select user_id as id, username, email, role
            from users
            where {search or 'true'}
            order by username asc, user_id asc
            """,
            *params,
        )
        return [dict(row) for row in rows]

    async def get_user(self, *, user_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            "select user_id as id, username, email, role from users where user_id = $1",
            user_id,
        )
        if not row:
            raise RepositoryNotFoundError("User not found.")
        return dict(row)

    async def get_user_credentials(self, *, username: str) -> UserCredentialRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            "select user_id, username, role, password from users where username = $1",
            username,
        )
        if not row:
            return None
        return UserCredentialRecord(
            user_id=row["user_id"],
            username=row["username"],
            role=row["role"],
            password_hash=row["password"],
        )

    async def create_user(self, *, username: str, email: str | None, role: str, password_hash: str) -> int:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await self._ensure_username_available(conn, username=username, exclude_user_id=None)
                    user_id = await conn.fetchval(
                        """
                        insert into users (username, email, role, password)
                        values ($1, $2, $3, $4)
                        returning user_id
                        """,
                        username,
                        email,
                        role,
                        password_hash,
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("A user with this username already exists.") from exc
        logger.info("created user id=%s role=%s", user_id, role)
        return user_id

    async def update_user(
        self,
        *,
        user_id: int,
        username: str,
        email: str | None,
        role: str,
        password_hash: str | None = None,
    ) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval("select 1 from users where user_id = $1 for update", user_id)
                    if not exists:
                        raise RepositoryNotFoundError("User not found.")
                    await self._ensure_username_available(conn, username=username, exclude_user_id=user_id)
                    await conn.execute(
                        """
                        update users
                        set username = $2,
                            email = $3,
                            role = $4,
                            password = coalesce($5, password)
                        where user_id = $1
                        """,
                        user_id,
                        username,
                        email,
                        role,
                        password_hash,
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("A user with this username already exists.") from exc

    async def delete_user(self, *, user_id: int) -> None:
        pool = await self._get_pool()
        deleted = await pool.fetchval("delete from users where user_id = $1 returning user_id", user_id)
        if deleted is None:
            raise RepositoryNotFoundError("User not found.")
        logger.info("deleted user id=%s", user_id)

    @staticmethod
    async def _ensure_username_available(
        conn: asyncpg.Connection,
        *,
        username: str,
        exclude_user_id: int | None,
    ) -> None:
        taken = await conn.fetchval(
            "select 1 from users where username = $1 and user_id is distinct from $2::int",
            username,
            exclude_user_id,
        )
        if taken:
            raise RepositoryConflictError("A user with this username already exists.")

    # Participants

    async def list_participants(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(
            q,
            (
                "concat(p.participant_first_name, ' ', p.participant_last_name)",
                "p.participant_email",
                "p.participant_city",
            ),
            params,
        )
        rows = await pool.fetch(
            f"""
            select
              p.participant_id as id,
              p.participant_first_name as first_name,
              p.participant_last_name as last_name,
              p.participant_email as email,
              p.participant_city as city,
              p.participant_role as role,
              (
                select count(distinct er.event_instance_id)
                from event_registration er
                where er.participant_id = p.participant_id
                  and er.registration_attended_flag = true
              ) as events_count,
              (
                select count(*)
                from donation d
                where d.participant_id = p.participant_id
              ) as donations_count
            from participant p
            where {search or 'true'}
            order by p.participant_last_name asc, p.participant_first_name asc, p.participant_id asc
            """,
            *params,
        )
        return [dict(row) for row in rows]

    async def list_participant_options(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              participant_id as id,
              participant_first_name as first_name,
              participant_last_name as last_name
            from participant
            order by participant_last_name asc, participant_first_name asc, participant_id asc
            """
        )
        return [dict(row) for row in rows]

    async def get_participant(self, *, participant_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              participant_id as id,
              participant_first_name as first_name,
              participant_last_name as last_name,
              participant_email as email,
              participant_phone as phone,
              participant_city as city,
              participant_state as state,
              participant_zip as zip_code,
              participant_school_or_employer as school,
              participant_field_of_interest as field_of_interest,
              participant_role as role
            from participant
            where participant_id = $1
            """,
            participant_id,
        )
        if not row:
            raise RepositoryNotFoundError("Participant not found.")

        milestones, donations_count = await asyncio.gather(
            pool.fetch(
                """
                select m.milestone_id, m.milestone_title as title, pm.milestone_date as achieved_date
                from participant_milestone pm
                join milestone m on m.milestone_id = pm.milestone_id
                where pm.participant_id = $1
                order by pm.milestone_date desc, m.milestone_title asc
                """,
                participant_id,
            ),
            pool.fetchval("select count(*) from donation where participant_id = $1", participant_id),
        )
        participant = dict(row)
        participant["milestones"] = [dict(milestone) for milestone in milestones]
        participant["donations_count"] = donations_count or 0
        return participant

    async def create_participant(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str | None = None,
        phone: str | None = None,
        city: str | None = None,
        state: str | None = None,
        zip_code: str | None = None,
        school: str | None = None,
        field_of_interest: str | None = None,
        role: str = "participant",
    ) -> int:
        email = self._normalize_email(email)
        phone = self._coerce_text(phone)
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await self._ensure_contact_available(conn, email=email, phone=phone, exclude_participant_id=None)
                    participant_id = await conn.fetchval(
                        """
                        insert into participant (
                          participant_first_name,
                          participant_last_name,
                          participant_email,
                          participant_phone,
                          participant_city,
                          participant_state,
                          participant_zip,
                          participant_school_or_employer,
                          participant_field_of_interest,
                          participant_role
                        )
                        values ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                        returning participant_id
                        """,
                        self._coerce_text(first_name),
                        self._coerce_text(last_name),
                        email,
                        phone,
                        self._coerce_text(city),
                        self._coerce_text(state),
                        self._coerce_text(zip_code),
                        self._coerce_text(school),
                        self._coerce_text(field_of_interest),
                        role,
                    )
        except pg_exc.UniqueViolationError as exc:
            raise self._contact_conflict(exc) from exc
        except (pg_exc.NotNullViolationError, pg_exc.CheckViolationError) as exc:
            raise RepositoryValidationError("Participant details are incomplete or invalid.") from exc
        logger.info("created participant id=%s role=%s", participant_id, role)
        return participant_id

    async def update_participant(
        self,
        *,
        participant_id: int,
        first_name: str,
        last_name: str,
        email: str | None = None,
        phone: str | None = None,
        city: str | None = None,
        state: str | None = None,
        zip_code: str | None = None,
        school: str | None = None,
        field_of_interest: str | None = None,
    ) -> None:
        email = self._normalize_email(email)
        phone = self._coerce_text(phone)
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "select 1 from participant where participant_id = $1 for update",
                        participant_id,
                    )
                    if not exists:
                        raise RepositoryNotFoundError("Participant not found.")
                    await self._ensure_contact_available(
                        conn,
                        email=email,
                        phone=phone,
                        exclude_participant_id=participant_id,
                    )
                    await conn.execute(
                        """
                        update participant
                        set
                          participant_first_name = $2,
                          participant_last_name = $3,
                          participant_email = $4,
                          participant_phone = $5,
                          participant_city = $6,
                          participant_state = $7,
                          participant_zip = $8,
                          participant_school_or_employer = $9,
                          participant_field_of_interest = $10
                        where participant_id = $1
                        """,
                        participant_id,
                        self._coerce_text(first_name),
                        self._coerce_text(last_name),
                        email,
                        phone,
                        self._coerce_text(city),
                        self._coerce_text(state),
                        self._coerce_text(zip_code),
                        self._coerce_text(school),
                        self._coerce_text(field_of_interest),
                    )
        except pg_exc.UniqueViolationError as exc:
            raise self._contact_conflict(exc) from exc
        except (pg_exc.NotNullViolationError, pg_exc.CheckViolationError) as exc:
            raise RepositoryValidationError("Participant details are incomplete or invalid.") from exc

    async def delete_participant(self, *, participant_id: int) -> int:
        """Delete a participant and their dependents; returns how many survey submissions went with them."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    "select 1 from participant where participant_id = $1 for update",
                    participant_id,
                )
                if not exists:
                    raise RepositoryNotFoundError("Participant not found.")
                donations = await conn.fetchval(
                    "select count(*) from donation where participant_id = $1",
                    participant_id,
                )
                if donations:
                    raise RepositoryBlockedError(
                        "Cannot delete participant. This participant has donations associated with them. "
                        "Please remove or reassign donations before deleting."
                    )
                await conn.execute(
                    """
                    delete from survey_comment
                    where survey_submission_id in (
                      select survey_submission_id from survey_submission where participant_id = $1
                    )
                    """,
                    participant_id,
                )
                await conn.execute(
                    """
                    delete from survey_response
                    where survey_submission_id in (
                      select survey_submission_id from survey_submission where participant_id = $1
                    )
                    """,
                    participant_id,
                )
                surveys_status = await conn.execute(
                    "delete from survey_submission where participant_id = $1",
                    participant_id,
                )
                await conn.execute("delete from event_registration where participant_id = $1", participant_id)
                await conn.execute("delete from participant_milestone where participant_id = $1", participant_id)
                await conn.execute("delete from participant where participant_id = $1", participant_id)
        surveys_removed = self._affected_rows(surveys_status)
        logger.info("deleted participant id=%s surveys_removed=%s", participant_id, surveys_removed)
        return surveys_removed

    async def find_or_create_participant(self, *, first_name: str, last_name: str, email: str) -> dict[str, Any]:
        """Return the participant owning ``email``, creating a donor record when there is none."""
        normalized_email = self._normalize_email(email)
        if not normalized_email:
            raise RepositoryValidationError("An email address is required to record a donor.")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                participant_id = await conn.fetchval(
                    """
                    insert into participant (
                      participant_first_name,
                      participant_last_name,
                      participant_email,
                      participant_role
                    )
                    values ($1, $2, $3, 'donor')
                    on conflict ((lower(participant_email))) where participant_email is not null
                    do nothing
                    returning participant_id
                    """,
                    self._coerce_text(first_name),
                    self._coerce_text(last_name),
                    normalized_email,
                )
                created = participant_id is not None
                if not created:
                    participant_id = await conn.fetchval(
                        "select participant_id from participant where lower(participant_email) = $1",
                        normalized_email,
                    )
                if participant_id is None:
                    raise RepositoryConflictError("Failed to create or retrieve participant record.")
        if created:
            logger.info("created donor participant id=%s", participant_id)
        return {"participant_id": participant_id, "created": created}

    async def assign_milestone(
        self,
        *,
        participant_id: int,
        milestone_id: int,
        achieved_date: date | None = None,
    ) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    participant_exists = await conn.fetchval(
                        "select 1 from participant where participant_id = $1",
                        participant_id,
                    )
                    if not participant_exists:
                        raise RepositoryNotFoundError("Participant not found.")
                    milestone_exists = await conn.fetchval(
                        "select 1 from milestone where milestone_id = $1",
                        milestone_id,
                    )
                    if not milestone_exists:
                        raise RepositoryNotFoundError("Milestone not found.")
                    await conn.execute(
                        """
                        insert into participant_milestone (participant_id, milestone_id, milestone_date)
                        values ($1, $2, coalesce($3::date, current_date))
                        """,
                        participant_id,
                        milestone_id,
                        achieved_date,
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("This milestone is already assigned to the participant.") from exc

    async def unassign_milestone(self, *, participant_id: int, milestone_id: int) -> None:
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            """
            delete from participant_milestone
            where participant_id = $1 and milestone_id = $2
            returning milestone_id
            """,
            participant_id,
            milestone_id,
        )
        if deleted is None:
            raise RepositoryNotFoundError("Milestone assignment not found.")

    async def _ensure_contact_available(
        self,
        conn: asyncpg.Connection,
        *,
        email: str | None,
        phone: str | None,
        exclude_participant_id: int | None,
    ) -> None:
        if email:
            taken = await conn.fetchval(
                """
                select 1 from participant
                where lower(participant_email) = $1
                  and participant_id is distinct from $2::int
                """,
                email,
                exclude_participant_id,
            )
            if taken:
                raise RepositoryConflictError("A participant with this email already exists.")
        if phone:
            taken = await conn.fetchval(
                """
                select 1 from participant
                where participant_phone = $1
                  and participant_id is distinct from $2::int
                """,
                phone,
                exclude_participant_id,
            )
            if taken:
                raise RepositoryConflictError("A participant with this phone number already exists.")

    @staticmethod
    def _contact_conflict(exc: pg_exc.UniqueViolationError) -> RepositoryConflictError:
        constraint = getattr(exc, "constraint_name", None) or ""
        if "phone" in constraint:
            return RepositoryConflictError("A participant with this phone number already exists.")
        return RepositoryConflictError("A participant with this email already exists.")

    # Milestones

    async def list_milestones(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(q, ("milestone_title", "milestone_description"), params)
        rows = await pool.fetch(
            f"""
            select milestone_id as id, milestone_title as title, milestone_description as description
            from milestone
            where {search or 'true'}
            order by milestone_title asc, milestone_id asc
            """,
            *params,
        )
        return [dict(row) for row in rows]

    async def get_milestone(self, *, milestone_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row, achievers = await asyncio.gather(
            pool.fetchrow(
                """
                select milestone_id as id, milestone_title as title, milestone_description as description
                from milestone
                where milestone_id = $1
                """,
                milestone_id,
            ),
            pool.fetch(
                """
                select
                  p.participant_id,
                  concat_ws(' ', p.participant_first_name, p.participant_last_name) as name,
                  pm.milestone_date as achieved_date
                from participant_milestone pm
                join participant p on p.participant_id = pm.participant_id
                where pm.milestone_id = $1
                order by pm.milestone_date desc, p.participant_last_name asc
                """,
                milestone_id,
            ),
        )
        if not row:
            raise RepositoryNotFoundError("Milestone not found.")
        milestone = dict(row)
        milestone["achievers"] = [dict(achiever) for achiever in achievers]
        return milestone

    async def create_milestone(self, *, title: str, description: str | None = None) -> int:
        pool = await self._get_pool()
        return await pool.fetchval(
            """
            insert into milestone (milestone_title, milestone_description)
            values ($1, $2)
            returning milestone_id
            """,
            self._coerce_text(title),
            self._coerce_text(description),
        )

    async def update_milestone(self, *, milestone_id: int, title: str, description: str | None = None) -> None:
        pool = await self._get_pool()
        updated = await pool.fetchval(
            """
            update milestone
            set milestone_title = $2, milestone_description = $3
            where milestone_id = $1
            returning milestone_id
            """,
            milestone_id,
            self._coerce_text(title),
            self._coerce_text(description),
        )
        if updated is None:
            raise RepositoryNotFoundError("Milestone not found.")

    async def delete_milestone(self, *, milestone_id: int) -> int:
        """Delete a milestone and its assignments; returns how many assignments went with it."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    "select 1 from milestone where milestone_id = $1 for update",
                    milestone_id,
                )
                if not exists:
                    raise RepositoryNotFoundError("Milestone not found.")
                status = await conn.execute("delete from participant_milestone where milestone_id = $1", milestone_id)
                await conn.execute("delete from milestone where milestone_id = $1", milestone_id)
        removed = self._affected_rows(status)
        logger.info("deleted milestone id=%s assignments_removed=%s", milestone_id, removed)
        return removed

    # Event templates

    async def list_event_templates(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(q, ("e.event_name", "e.event_type", "e.event_description"), params)
        rows = await pool.fetch(
            f"""
            select
              e.event_id as id,
              e.event_name as name,
              e.event_type as type,
              e.event_description as description,
              e.event_default_capacity as default_capacity,
              (select count(*) from event_instance ei where ei.event_id = e.event_id) as instances_count
            from event e
            where {search or 'true'}
            order by e.event_name asc, e.event_id asc
            """,
            *params,
        )
        return [dict(row) for row in rows]

    async def list_event_template_options(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch("select event_id as id, event_name as name from event order by event_name asc, event_id asc")
        return [dict(row) for row in rows]

    async def get_event_template(self, *, event_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              e.event_id as id,
              e.event_name as name,
              e.event_type as type,
              e.event_description as description,
              e.event_default_capacity as default_capacity,
              (select count(*) from event_instance ei where ei.event_id = e.event_id) as instances_count
            from event e
            where e.event_id = $1
            """,
            event_id,
        )
        if not row:
            raise RepositoryNotFoundError("Event template not found.")
        return dict(row)

    async def create_event_template(
        self,
        *,
        name: str,
        type: str | None = None,
        description: str | None = None,
        default_capacity: int | None = None,
    ) -> int:
        pool = await self._get_pool()
        try:
            return await pool.fetchval(
                """
                insert into event (event_name, event_type, event_description, event_default_capacity)
                values ($1, $2, $3, $4)
                returning event_id
                """,
                self._coerce_text(name),
                self._coerce_text(type),
                self._coerce_text(description),
                default_capacity,
            )
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError("Default capacity must not be negative.") from exc

    async def update_event_template(
        self,
        *,
        event_id: int,
        name: str,
        type: str | None = None,
        description: str | None = None,
        default_capacity: int | None = None,
    ) -> None:
        pool = await self._get_pool()
        try:
            updated = await pool.fetchval(
                """
                update event
                set event_name = $2, event_type = $3, event_description = $4, event_default_capacity = $5
                where event_id = $1
                returning event_id
                """,
                event_id,
                self._coerce_text(name),
                self._coerce_text(type),
                self._coerce_text(description),
                default_capacity,
            )
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError("Default capacity must not be negative.") from exc
        if updated is None:
            raise RepositoryNotFoundError("Event template not found.")

    async def delete_event_template(self, *, event_id: int) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval("select 1 from event where event_id = $1 for update", event_id)
                if not exists:
                    raise RepositoryNotFoundError("Event template not found.")
                instances = await conn.fetchval("select count(*) from event_instance where event_id = $1", event_id)
                if instances:
                    raise RepositoryBlockedError(
                        "Cannot delete event template. This template has event instances associated with it. "
                        "Please delete or reassign instances before deleting."
                    )
                await conn.execute("delete from event where event_id = $1", event_id)

    # Event instances

    async def list_event_instances(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(q, ("e.event_name", "e.event_type", "ei.event_location"), params)
        rows = await pool.fetch(
            f"""
            select
              ei.event_instance_id as id,
              ei.event_id,
              e.event_name as name,
              e.event_type as type,
              ei.event_location as location,
              ei.event_date_start_time as start_time,
              ei.event_capacity as capacity
            from event_instance ei
            left join event e on e.event_id = ei.event_id
            where {search or 'true'}
            order by ei.event_date_start_time desc, ei.event_instance_id desc
            """,
            *params,
        )
        return [dict(row) for row in rows]

    async def list_upcoming_event_instances(self, *, since: datetime, limit: int | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              ei.event_instance_id as id,
              e.event_name as name,
              e.event_type as type,
              e.event_description as description,
              ei.event_location as location,
              ei.event_date_start_time as start_time
            from event_instance ei
            left join event e on e.event_id = ei.event_id
            where ei.event_date_start_time >= $1
            order by ei.event_date_start_time asc, ei.event_instance_id asc
            limit $2
            """,
            since,
            limit,
        )
        return [dict(row) for row in rows]

    async def list_event_instance_options(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select ei.event_instance_id as id, e.event_name as name, ei.event_date_start_time as start_time
            from event_instance ei
            join event e on e.event_id = ei.event_id
            order by ei.event_date_start_time desc, ei.event_instance_id desc
            """
        )
        return [dict(row) for row in rows]

    async def get_event_instance(self, *, instance_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              ei.event_instance_id as id,
              ei.event_id,
              e.event_name,
              e.event_type,
              e.event_description,
              ei.event_date_start_time as start_time,
              ei.event_date_end_time as end_time,
              ei.event_location as location,
              ei.event_capacity as capacity
            from event_instance ei
            join event e on e.event_id = ei.event_id
            where ei.event_instance_id = $1
            """,
            instance_id,
        )
        if not row:
            raise RepositoryNotFoundError("Event not found.")
        return dict(row)

    async def create_event_instance(
        self,
        *,
        event_id: int,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        location: str | None = None,
        capacity: int | None = None,
    ) -> int:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                default_capacity = await self._template_default_capacity(conn, event_id=event_id)
                instance_id = await conn.fetchval(
                    """
                    insert into event_instance (
                      event_id,
                      event_date_start_time,
                      event_date_end_time,
                      event_location,
                      event_capacity
                    )
                    values ($1, $2, $3, $4, $5)
                    returning event_instance_id
                    """,
                    event_id,
                    start_time or datetime.now(timezone.utc),
                    end_time,
                    self._coerce_text(location),
                    capacity if capacity is not None else default_capacity,
                )
        logger.info("created event instance id=%s event_id=%s", instance_id, event_id)
        return instance_id

    async def update_event_instance(
        self,
        *,
        instance_id: int,
        event_id: int,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        location: str | None = None,
        capacity: int | None = None,
    ) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    "select 1 from event_instance where event_instance_id = $1 for update",
                    instance_id,
                )
                if not exists:
                    raise RepositoryNotFoundError("Event not found.")
                default_capacity = await self._template_default_capacity(conn, event_id=event_id)
                # Omitted timestamps keep their stored values.
                await conn.execute(
                    """
                    update event_instance
                    set
                      event_id = $2,
                      event_date_start_time = coalesce($3, event_date_start_time),
                      event_date_end_time = coalesce($4, event_date_end_time),
                      event_location = $5,
                      event_capacity = $6
                    where event_instance_id = $1
                    """,
                    instance_id,
                    event_id,
                    start_time,
                    end_time,
                    self._coerce_text(location),
                    capacity if capacity is not None else default_capacity,
                )

    async def delete_event_instance(self, *, instance_id: int) -> bool:
        """Delete an event instance; returns True when its template went with it."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                event_id = await conn.fetchval(
                    "select event_id from event_instance where event_instance_id = $1 for update",
                    instance_id,
                )
                if event_id is None:
                    raise RepositoryNotFoundError("Event not found.")
                # Serialize against concurrent instance writes for the same template.
                await conn.execute("select 1 from event where event_id = $1 for update", event_id)
                surveys = await conn.fetchval(
                    "select count(*) from survey_submission where event_instance_id = $1",
                    instance_id,
                )
                if surveys:
                    raise RepositoryBlockedError(
                        "Cannot delete event. Survey submissions reference it; delete those surveys first."
                    )
                await conn.execute("delete from event_registration where event_instance_id = $1", instance_id)
                await conn.execute("delete from event_instance where event_instance_id = $1", instance_id)
                remaining = await conn.fetchval("select count(*) from event_instance where event_id = $1", event_id)
                template_deleted = remaining == 0
                if template_deleted:
                    await conn.execute("delete from event where event_id = $1", event_id)
        logger.info(
            "deleted event instance id=%s event_id=%s template_deleted=%s",
            instance_id,
            event_id,
            template_deleted,
        )
        return template_deleted

    @staticmethod
    async def _template_default_capacity(conn: asyncpg.Connection, *, event_id: int) -> int | None:
        row = await conn.fetchrow("select event_default_capacity from event where event_id = $1", event_id)
        if not row:
            raise RepositoryNotFoundError("Event template not found.")
        return row["event_default_capacity"]

    # Surveys

    async def list_surveys(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(
            q,
            ("concat(p.participant_first_name, ' ', p.participant_last_name)", "e.event_name"),
            params,
        )
        rows = await pool.fetch(
            f"""
            select
              ss.survey_submission_id as id,
              ss.survey_submission_date as submitted_at,
              concat_ws(' ', p.participant_first_name, p.participant_last_name) as participant_name,
              e.event_name
            from survey_submission ss
            join participant p on p.participant_id = ss.participant_id
            left join event_instance ei on ei.event_instance_id = ss.event_instance_id
            left join event e on e.event_id = ei.event_id
            where {search or 'true'}
            order by ss.survey_submission_date desc, ss.survey_submission_id desc
            """,
            *params,
        )
        surveys = [dict(row) for row in rows]
        if not surveys:
            return surveys

        # One batched read for every visible submission instead of a query per row.
        responses = await pool.fetch(
            """
            select survey_submission_id, question_number, question_response
            from survey_response
            where survey_submission_id = any($1::int[])
            """,
            [survey["id"] for survey in surveys],
        )
        answers = self._group_responses(responses)
        for survey in surveys:
            survey.update(self._named_answers(answers.get(survey["id"], {})))
        return surveys

    async def get_survey(self, *, survey_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              ss.survey_submission_id as id,
              ss.participant_id,
              ss.event_instance_id,
              ss.survey_submission_date as submitted_at,
              concat_ws(' ', p.participant_first_name, p.participant_last_name) as participant_name,
              e.event_name
            from survey_submission ss
            join participant p on p.participant_id = ss.participant_id
            left join event_instance ei on ei.event_instance_id = ss.event_instance_id
            left join event e on e.event_id = ei.event_id
            where ss.survey_submission_id = $1
            """,
            survey_id,
        )
        if not row:
            raise RepositoryNotFoundError("Survey not found.")

        responses, comment = await asyncio.gather(
            pool.fetch(
                """
                select survey_submission_id, question_number, question_response
                from survey_response
                where survey_submission_id = $1
                """,
                survey_id,
            ),
            pool.fetchval(
                """
                select comment_text
                from survey_comment
                where survey_submission_id = $1
                order by comment_number asc
                limit 1
                """,
                survey_id,
            ),
        )
        survey = dict(row)
        survey.update(self._named_answers(self._group_responses(responses).get(survey_id, {})))
        survey["comment"] = comment
        return survey

    async def create_survey(
        self,
        *,
        participant_id: int,
        event_instance_id: int | None,
        responses: dict[int, int],
        comment: str | None = None,
    ) -> int:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    survey_id = await conn.fetchval(
                        """
                        insert into survey_submission (participant_id, event_instance_id, survey_submission_date)
                        values ($1, $2, now())
                        returning survey_submission_id
                        """,
                        participant_id,
                        event_instance_id,
                    )
                    await self._write_responses(conn, survey_id=survey_id, responses=responses)
                    await self._replace_comment(conn, survey_id=survey_id, comment=comment)
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryValidationError("The selected participant or event does not exist.") from exc
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError("Survey answers must be between 1 and 5.") from exc
        logger.info("created survey id=%s participant_id=%s", survey_id, participant_id)
        return survey_id

    async def update_survey(
        self,
        *,
        survey_id: int,
        participant_id: int,
        event_instance_id: int | None,
        responses: dict[int, int],
        comment: str | None = None,
    ) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    updated = await conn.fetchval(
                        """
                        update survey_submission
                        set participant_id = $2, event_instance_id = $3
                        where survey_submission_id = $1
                        returning survey_submission_id
                        """,
                        survey_id,
                        participant_id,
                        event_instance_id,
                    )
                    if updated is None:
                        raise RepositoryNotFoundError("Survey not found.")
                    # Answers left blank keep their stored values; a blank comment removes it.
                    await self._write_responses(conn, survey_id=survey_id, responses=responses)
                    await self._replace_comment(conn, survey_id=survey_id, comment=comment)
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryValidationError("The selected participant or event does not exist.") from exc
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError("Survey answers must be between 1 and 5.") from exc

    async def delete_survey(self, *, survey_id: int) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("delete from survey_comment where survey_submission_id = $1", survey_id)
                await conn.execute("delete from survey_response where survey_submission_id = $1", survey_id)
                deleted = await conn.fetchval(
                    "delete from survey_submission where survey_submission_id = $1 returning survey_submission_id",
                    survey_id,
                )
                if deleted is None:
                    raise RepositoryNotFoundError("Survey not found.")

    @staticmethod
    async def _write_responses(conn: asyncpg.Connection, *, survey_id: int, responses: dict[int, int]) -> None:
        if not responses:
            return
        await conn.executemany(
            """
            insert into survey_response (survey_submission_id, question_number, question_response)
            values ($1, $2, $3)
            on conflict (survey_submission_id, question_number)
            do update set question_response = excluded.question_response
            """,
            [(survey_id, question, answer) for question, answer in sorted(responses.items())],
        )

    async def _replace_comment(self, conn: asyncpg.Connection, *, survey_id: int, comment: str | None) -> None:
        await conn.execute("delete from survey_comment where survey_submission_id = $1", survey_id)
        text = self._coerce_text(comment)
        if text:
            await conn.execute(
                """
                insert into survey_comment (survey_submission_id, comment_number, comment_text)
                values ($1, $2, $3)
                """,
                survey_id,
                PRIMARY_COMMENT_NUMBER,
                text,
            )

    @staticmethod
    def _group_responses(rows: list[asyncpg.Record]) -> dict[int, dict[int, int]]:
        grouped: dict[int, dict[int, int]] = {}
        for row in rows:
            grouped.setdefault(row["survey_submission_id"], {})[row["question_number"]] = row["question_response"]
        return grouped

    @staticmethod
    def _named_answers(answers: dict[int, int]) -> dict[str, int | None]:
        return {
            "satisfaction": answers.get(SurveyQuestion.SATISFACTION),
            "usefulness": answers.get(SurveyQuestion.USEFULNESS),
            "recommend": answers.get(SurveyQuestion.RECOMMEND),
        }

    # Donations

    async def list_donations(self, *, q: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        search = _search_condition(
            q,
            ("p.participant_email", "p.participant_first_name", "p.participant_last_name"),
            params,
        )
        rows = await pool.fetch(
            f"""
            select
              d.participant_id,
              d.donation_number,
              d.donation_amount as amount,
              d.donation_date,
              p.participant_first_name as first_name,
              p.participant_last_name as last_name,
              p.participant_email as email
            from donation d
            left join participant p on p.participant_id = d.participant_id
            where {search or 'true'}
            order by d.donation_date desc, coalesce(d.participant_id, 0) asc, d.donation_number desc
            """,
            *params,
        )
        return [self._donation_row_to_dict(row) for row in rows]

    async def get_donation(self, *, key: DonationKey) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              d.participant_id,
              d.donation_number,
              d.donation_amount as amount,
              d.donation_date,
              p.participant_first_name as first_name,
              p.participant_last_name as last_name,
              p.participant_email as email
            from donation d
            left join participant p on p.participant_id = d.participant_id
            where coalesce(d.participant_id, 0) = $1 and d.donation_number = $2
            """,
            key.scope,
            key.donation_number,
        )
        if not row:
            raise RepositoryNotFoundError("Donation not found.")
        return self._donation_row_to_dict(row)

    async def create_donation(
        self,
        *,
        participant_id: int | None,
        amount: Decimal,
        donation_date: date | None = None,
    ) -> DonationKey:
        self._validate_amount(amount)
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await self._ensure_donor_exists(conn, participant_id=participant_id)
                    key = await self._insert_donation(
                        conn,
                        participant_id=participant_id,
                        amount=amount,
                        donation_date=donation_date or date.today(),
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("A concurrent donation claimed the same number; please retry.") from exc
        logger.info(
            "recorded donation participant=%s number=%s",
            key.participant_token,
            key.donation_number,
        )
        return key

    async def update_donation(
        self,
        *,
        key: DonationKey,
        participant_id: int | None,
        amount: Decimal | None = None,
        donation_date: date | None = None,
    ) -> DonationKey:
        """Update amount/date; a new owner re-keys the donation through :meth:`move_donation` semantics."""
        if amount is not None:
            self._validate_amount(amount)
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if participant_id != key.participant_id:
                        key = await self._move_donation(conn, key=key, new_participant_id=participant_id)
                    updated = await conn.fetchval(
                        """
                        update donation
                        set
                          donation_amount = coalesce($3, donation_amount),
                          donation_date = coalesce($4, donation_date)
                        where coalesce(participant_id, 0) = $1 and donation_number = $2
                        returning donation_number
                        """,
                        key.scope,
                        key.donation_number,
                        amount,
                        donation_date,
                    )
                    if updated is None:
                        raise RepositoryNotFoundError("Donation not found.")
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("A concurrent donation claimed the same number; please retry.") from exc
        return key

    async def move_donation(self, *, key: DonationKey, new_participant_id: int | None) -> DonationKey:
        """Re-home a donation under another participant scope; returns its new composite key."""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    new_key = await self._move_donation(conn, key=key, new_participant_id=new_participant_id)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("A concurrent donation claimed the same number; please retry.") from exc
        return new_key

    async def delete_donation(self, *, key: DonationKey) -> None:
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            """
            delete from donation
            where coalesce(participant_id, 0) = $1 and donation_number = $2
            returning donation_number
            """,
            key.scope,
            key.donation_number,
        )
        if deleted is None:
            raise RepositoryNotFoundError("Donation not found.")
        logger.info("deleted donation participant=%s number=%s", key.participant_token, key.donation_number)

    async def _move_donation(
        self,
        conn: asyncpg.Connection,
        *,
        key: DonationKey,
        new_participant_id: int | None,
    ) -> DonationKey:
        if new_participant_id == key.participant_id:
            return key
        await self._ensure_donor_exists(conn, participant_id=new_participant_id)
        new_scope = ANONYMOUS_SCOPE if new_participant_id is None else new_participant_id
        # Lock both scopes in a fixed order so two opposite moves cannot deadlock.
        for scope in sorted({key.scope, new_scope}):
            await self._lock_donation_scope(conn, scope)
        existing = await conn.fetchrow(
            """
            delete from donation
            where coalesce(participant_id, 0) = $1 and donation_number = $2
            returning donation_amount, donation_date
            """,
            key.scope,
            key.donation_number,
        )
        if not existing:
            raise RepositoryNotFoundError("Donation not found.")
        new_key = await self._insert_donation(
            conn,
            participant_id=new_participant_id,
            amount=existing["donation_amount"],
            donation_date=existing["donation_date"],
        )
        logger.info(
            "moved donation from participant=%s number=%s to participant=%s number=%s",
            key.participant_token,
            key.donation_number,
            new_key.participant_token,
            new_key.donation_number,
        )
        return new_key

    async def _insert_donation(
        self,
        conn: asyncpg.Connection,
        *,
        participant_id: int | None,
        amount: Decimal,
        donation_date: date,
    ) -> DonationKey:
        donation_number = await self._next_donation_number(conn, participant_id=participant_id)
        await conn.execute(
            """
            insert into donation (participant_id, donation_number, donation_amount, donation_date)
            values ($1, $2, $3, $4)
            """,
            participant_id,
            donation_number,
            amount,
            donation_date,
        )
        return DonationKey(participant_id=participant_id, donation_number=donation_number)

    async def _next_donation_number(self, conn: asyncpg.Connection, *, participant_id: int | None) -> int:
        """max(donation_number) + 1 within the scope; callers must hold an open transaction."""
        scope = ANONYMOUS_SCOPE if participant_id is None else participant_id
        await self._lock_donation_scope(conn, scope)
        current = await conn.fetchval(
            "select max(donation_number) from donation where coalesce(participant_id, 0) = $1",
            scope,
        )
        return (current or 0) + 1

    @staticmethod
    async def _lock_donation_scope(conn: asyncpg.Connection, scope: int) -> None:
        # Held until commit/rollback; re-acquiring within one transaction is a no-op.
        await conn.execute("select pg_advisory_xact_lock($1::int, $2::int)", DONATION_SEQUENCE_LOCK, scope)

    @staticmethod
    async def _ensure_donor_exists(conn: asyncpg.Connection, *, participant_id: int | None) -> None:
        if participant_id is None:
            return
        exists = await conn.fetchval("select 1 from participant where participant_id = $1", participant_id)
        if not exists:
            raise RepositoryNotFoundError("Participant not found.")

    @staticmethod
    def _validate_amount(amount: Decimal) -> None:
        if not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
            raise RepositoryValidationError("Please enter a valid donation amount.")

    @staticmethod
    def _donation_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        participant_id = row["participant_id"]
        if participant_id is None:
            donor = ANONYMOUS_DONOR
        else:
            donor = " ".join(part for part in (row["first_name"], row["last_name"]) if part) or "Unknown"
        return {
            "participant_id": participant_id,
            "donation_number": row["donation_number"],
            "donor": donor,
            "email": row["email"],
            "amount": row["amount"],
            "donation_date": row["donation_date"],
        }

    # Aggregates

    async def count_attended_participants(self) -> int:
        pool = await self._get_pool()
        value = await pool.fetchval(
            """
            select count(distinct participant_id)
            from event_registration
            where registration_attended_flag = true
            """
        )
        return value or 0

    async def average_response(self, *, question_number: int) -> Decimal | None:
        pool = await self._get_pool()
        return await pool.fetchval(
            "select avg(question_response) from survey_response where question_number = $1",
            question_number,
        )

    async def count_milestone_assignments(self) -> int:
        pool = await self._get_pool()
        return await pool.fetchval("select count(*) from participant_milestone") or 0

    async def total_donations(self) -> Decimal:
        pool = await self._get_pool()
        return await pool.fetchval("select coalesce(sum(donation_amount), 0) from donation")

    async def milestone_assignment_counts(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select m.milestone_id, m.milestone_title as title, count(pm.participant_id) as count
            from milestone m
            left join participant_milestone pm on pm.milestone_id = m.milestone_id
            group by m.milestone_id, m.milestone_title
            order by m.milestone_title asc, m.milestone_id asc
            """
        )
        return [dict(row) for row in rows]

    async def count_rows(self, *, table: str) -> int:
        if table not in COUNTABLE_TABLES:
            raise RepositoryValidationError(f"unsupported table: {table}")
        pool = await self._get_pool()
        return await pool.fetchval(f"select count(*) from {table}") or 0

    async def list_event_types(self) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "select distinct event_type from event where event_type is not null order by event_type asc"
        )
        return [row["event_type"] for row in rows]

    async def list_participant_cities(self) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select distinct participant_city
            from participant
            where participant_city is not null
            order by participant_city asc
            """
        )
        return [row["participant_city"] for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("database is not configured")

        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is not None:
                return self._pool
            try:
                self._pool = await asyncpg.create_pool(
                    dsn=self.database_url,
                    min_size=self.min_pool_size,
                    max_size=self.max_pool_size,
                    command_timeout=self.command_timeout,
                    ssl=self._ssl_context() if self.ssl_required else None,
                )
            except Exception as exc:  # pragma: no cover - depends on environment
                raise RepositoryUnavailableError("database unavailable") from exc
            return self._pool

    @staticmethod
    def _ssl_context() -> ssl.SSLContext:
        # Managed hosts present certificates from their own CA bundle; traffic is still encrypted.
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    @staticmethod
    def _affected_rows(status: str) -> int:
        try:
            return int(status.rsplit(" ", 1)[-1])
        except (AttributeError, ValueError):
            return 0

    @staticmethod
    def _normalize_email(value: Any) -> str | None:
        text = PostgresRepository._coerce_text(value)
        return text.lower() if text else None

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)


COUNTABLE_TABLES = frozenset({"participant", "event_instance", "survey_submission"})


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.resolved_database_url(),
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout=settings.database_command_timeout_seconds,
        ssl_required=settings.ssl_required,
    )
