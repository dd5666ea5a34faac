"""Relational schema for the Ella Rises database.

Statements are idempotent so they can be replayed against an existing
database. Integrity rules the application layer also checks (optional-field
uniqueness, per-scope donation numbering) are backed here by unique indexes so
a lost race surfaces as a unique violation instead of corrupt data.
"""

from __future__ import annotations

import asyncpg  # type: ignore[import-untyped]

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    create table if not exists users (
      user_id serial primary key,
      username text not null unique,
      password text not null,
      role text not null default 'user' check (role in ('admin', 'user')),
      email text
    )
    """,
    """
    create table if not exists participant (
      participant_id serial primary key,
      participant_first_name text not null,
      participant_last_name text not null,
      participant_email text,
      participant_phone text,
      participant_city text,
      participant_state text,
      participant_zip text,
      participant_school_or_employer text,
      participant_field_of_interest text,
      participant_role text not null default 'participant'
        check (participant_role in ('participant', 'donor'))
    )
    """,
    """
    create unique index if not exists participant_email_unique
      on participant ((lower(participant_email)))
      where participant_email is not null
    """,
    """
    create unique index if not exists participant_phone_unique
      on participant (participant_phone)
      where participant_phone is not null
    """,
    """
    create table if not exists milestone (
      milestone_id serial primary key,
      milestone_title text not null,
      milestone_description text
    )
    """,
    """
    create table if not exists participant_milestone (
      participant_id integer not null references participant (participant_id),
      milestone_id integer not null references milestone (milestone_id),
      milestone_date date not null default current_date,
      primary key (participant_id, milestone_id)
    )
    """,
    """
    create table if not exists event (
      event_id serial primary key,
      event_name text not null,
      event_type text,
      event_description text,
      event_default_capacity integer check (event_default_capacity >= 0)
    )
    """,
    """
    create table if not exists event_instance (
      event_instance_id serial primary key,
      event_id integer not null references event (event_id),
      event_date_start_time timestamptz not null,
      event_date_end_time timestamptz,
      event_location text,
      event_capacity integer check (event_capacity >= 0)
    )
    """,
    """
    create index if not exists event_instance_event_id_idx on event_instance (event_id)
    """,
    """
    create table if not exists event_registration (
      participant_id integer not null references participant (participant_id),
      event_instance_id integer not null references event_instance (event_instance_id),
      registration_attended_flag boolean not null default false,
      primary key (participant_id, event_instance_id)
    )
    """,
    """
    create table if not exists survey_submission (
      survey_submission_id serial primary key,
      participant_id integer not null references participant (participant_id),
      event_instance_id integer references event_instance (event_instance_id),
      survey_submission_date timestamptz not null default now()
    )
    """,
    """
    create table if not exists survey_response (
      survey_submission_id integer not null references survey_submission (survey_submission_id),
      question_number smallint not null check (question_number in (1, 2, 3, 4)),
      question_response smallint not null check (question_response between 1 and 5),
      primary key (survey_submission_id, question_number)
    )
    """,
    """
    create table if not exists survey_comment (
      survey_submission_id integer not null references survey_submission (survey_submission_id),
      comment_number smallint not null default 1 check (comment_number > 0),
      comment_text text not null,
      primary key (survey_submission_id, comment_number)
    )
    """,
    """
    create table if not exists donation (
      participant_id integer references participant (participant_id),
      donation_number integer not null check (donation_number > 0),
      donation_amount numeric(12, 2) not null check (donation_amount > 0),
      donation_date date not null default current_date
    )
    """,
    """
    create unique index if not exists donation_scope_number_unique
      on donation ((coalesce(participant_id, 0)), donation_number)
    """,
)

# Child tables first so truncation and teardown never trip a foreign key.
TABLES_IN_DELETE_ORDER: tuple[str, ...] = (
    "survey_comment",
    "survey_response",
    "survey_submission",
    "event_registration",
    "participant_milestone",
    "donation",
    "event_instance",
    "event",
    "milestone",
    "participant",
    "users",
)


async def apply_schema(conn: asyncpg.Connection) -> None:
    async with conn.transaction():
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
