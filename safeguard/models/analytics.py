from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from safeguard.models.enums import RecommendationPriority, TriggerType


class Hotspot(BaseModel):
    """A geographic cluster of historical events."""

    latitude: float  # running centroid
    longitude: float
    member_count: int
    radius_meters: float
    event_ids: list[int] = Field(default_factory=list)
    description: str | None = None  # address of the first member, if known


class SafetyRecommendation(BaseModel):
    id: str
    priority: RecommendationPriority
    title: str
    description: str


class SafetyInsights(BaseModel):
    """Aggregate view over the event history, recomputed on demand."""

    total_events: int
    events_in_window: int
    score: int
    peak_hour: int | None
    peak_hours: list[int] = Field(default_factory=list)
    peak_weekdays: list[int] = Field(default_factory=list)  # Monday=0
    streak_days: int
    most_used_trigger: TriggerType | None = None
    hotspots: list[Hotspot] = Field(default_factory=list)
    recommendations: list[SafetyRecommendation] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
