from decimal import Decimal

from pydantic import BaseModel, Field

from ella_rises.schemas.events import PublicEventOut
from ella_rises.schemas.milestones import MilestoneCountOut


class ImpactStats(BaseModel):
    participants_count: int = 0
    avg_satisfaction: float | None = None
    avg_recommend: float | None = None
    milestones_achieved: int = 0
    total_donations: Decimal = Decimal("0")


class HomePage(BaseModel):
    upcoming_events: list[PublicEventOut] = Field(default_factory=list)
    impact: ImpactStats = Field(default_factory=ImpactStats)


class KpiOut(BaseModel):
    label: str
    value: int | Decimal


class DashboardSummary(BaseModel):
    kpis: list[KpiOut] = Field(default_factory=list)
    milestone_counts: list[MilestoneCountOut] = Field(default_factory=list)
    event_types: list[str] = Field(default_factory=list)
    cities: list[str] = Field(default_factory=list)
