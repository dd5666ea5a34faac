"""Read-only aggregates behind the public home, impact, dashboard and 404 pages.

Every aggregate is independent and side-effect free, so each batch is gathered
concurrently; the pool hands each query its own connection.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ella_rises.core.telemetry import tracer
from ella_rises.schemas.events import PublicEventOut
from ella_rises.schemas.milestones import MilestoneCountOut
from ella_rises.schemas.reports import DashboardSummary, HomePage, ImpactStats, KpiOut
from ella_rises.schemas.surveys import SurveyQuestion
from ella_rises.services.repository import PostgresRepository

_ONE_DECIMAL = Decimal("0.1")


def round_average(value: Any) -> float | None:
    """Round half-up to one decimal place; ``None`` stays ``None`` (no responses yet)."""
    if value is None:
        return None
    return float(Decimal(str(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def start_of_current_year(now: datetime | None = None) -> datetime:
    current = now or datetime.now(timezone.utc)
    return datetime(current.year, 1, 1, tzinfo=timezone.utc)


async def load_impact_stats(repository: PostgresRepository) -> ImpactStats:
    with tracer().start_as_current_span("reporting.impact"):
        participants, satisfaction, recommend, milestones, donations = await asyncio.gather(
            repository.count_attended_participants(),
            repository.average_response(question_number=int(SurveyQuestion.SATISFACTION)),
            repository.average_response(question_number=int(SurveyQuestion.RECOMMEND)),
            repository.count_milestone_assignments(),
            repository.total_donations(),
        )
    return ImpactStats(
        participants_count=participants,
        avg_satisfaction=round_average(satisfaction),
        avg_recommend=round_average(recommend),
        milestones_achieved=milestones,
        total_donations=donations or Decimal("0"),
    )


async def load_upcoming_events(
    repository: PostgresRepository,
    *,
    limit: int | None,
    now: datetime | None = None,
) -> list[PublicEventOut]:
    rows = await repository.list_upcoming_event_instances(since=start_of_current_year(now), limit=limit)
    return [PublicEventOut.model_validate(row) for row in rows]


async def load_home_page(repository: PostgresRepository, *, events_limit: int) -> HomePage:
    events, impact = await asyncio.gather(
        load_upcoming_events(repository, limit=events_limit),
        load_impact_stats(repository),
    )
    return HomePage(upcoming_events=events, impact=impact)


async def load_dashboard(repository: PostgresRepository) -> DashboardSummary:
    with tracer().start_as_current_span("reporting.dashboard"):
        (
            participants,
            instances,
            surveys,
            donations,
            milestone_counts,
            event_types,
            cities,
        ) = await asyncio.gather(
            repository.count_rows(table="participant"),
            repository.count_rows(table="event_instance"),
            repository.count_rows(table="survey_submission"),
            repository.total_donations(),
            repository.milestone_assignment_counts(),
            repository.list_event_types(),
            repository.list_participant_cities(),
        )
    return DashboardSummary(
        kpis=[
            KpiOut(label="Participants", value=participants),
            KpiOut(label="Events", value=instances),
            KpiOut(label="Surveys", value=surveys),
            KpiOut(label="Donations", value=donations or Decimal("0")),
        ],
        milestone_counts=[MilestoneCountOut.model_validate(row) for row in milestone_counts],
        event_types=event_types,
        cities=cities,
    )
