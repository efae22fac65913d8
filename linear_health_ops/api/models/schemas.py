from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str
    services: Dict[str, str]


class LatestSnapshotEntry(_CamelModel):
    level: str
    level_id: Optional[str] = Field(default=None, alias="levelId")
    snapshot: Dict[str, Any]
    captured_at: str = Field(alias="capturedAt")


class LatestMetricsResponse(_CamelModel):
    success: bool = True
    snapshot: Optional[Dict[str, Any]] = None
    snapshots: Optional[List[LatestSnapshotEntry]] = None
    # team_key -> team_name, only with all=true
    team_names: Optional[Dict[str, str]] = Field(default=None, alias="teamNames")


class TrendTeamHealth(_CamelModel):
    healthy_workload_percent: float = Field(alias="healthyWorkloadPercent")
    healthy_ic_count: int = Field(alias="healthyIcCount")
    total_ic_count: int = Field(alias="totalIcCount")
    wip_violation_count: int = Field(alias="wipViolationCount")
    multi_project_violation_count: int = Field(alias="multiProjectViolationCount")
    impacted_project_count: int = Field(alias="impactedProjectCount")
    total_project_count: int = Field(alias="totalProjectCount")
    status: str


class TrendVelocityHealth(_CamelModel):
    on_track_percent: float = Field(alias="onTrackPercent")
    at_risk_percent: float = Field(alias="atRiskPercent")
    off_track_percent: float = Field(alias="offTrackPercent")
    on_track_count: int = Field(alias="onTrackCount")
    at_risk_count: int = Field(alias="atRiskCount")
    off_track_count: int = Field(alias="offTrackCount")
    total_project_count: int = Field(alias="totalProjectCount")
    status: str


class TrendProductivity(_CamelModel):
    true_throughput: Optional[float] = Field(default=None, alias="trueThroughput")
    engineer_count: Optional[int] = Field(default=None, alias="engineerCount")
    true_throughput_per_engineer: Optional[float] = Field(
        default=None, alias="trueThroughputPerEngineer"
    )
    status: str


class TrendQuality(_CamelModel):
    composite_score: int = Field(alias="compositeScore")
    open_bug_count: int = Field(alias="openBugCount")
    bugs_opened_in_period: int = Field(alias="bugsOpenedInPeriod")
    bugs_closed_in_period: int = Field(alias="bugsClosedInPeriod")
    net_bug_change: int = Field(alias="netBugChange")
    average_bug_age_days: float = Field(alias="averageBugAgeDays")
    max_bug_age_days: float = Field(alias="maxBugAgeDays")
    status: str


class TrendHygiene(_CamelModel):
    hygiene_score: int = Field(alias="hygieneScore")
    total_gaps: int = Field(alias="totalGaps")
    engineers_with_gaps: int = Field(alias="engineersWithGaps")
    total_engineers: int = Field(alias="totalEngineers")
    projects_with_gaps: int = Field(alias="projectsWithGaps")
    total_projects: int = Field(alias="totalProjects")
    status: str


class TrendDataPoint(_CamelModel):
    captured_at: str = Field(alias="capturedAt")
    team_health: TrendTeamHealth = Field(alias="teamHealth")
    velocity_health: TrendVelocityHealth = Field(alias="velocityHealth")
    productivity: TrendProductivity
    quality: TrendQuality
    # Missing on snapshots captured before hygiene tracking.
    linear_hygiene: Optional[TrendHygiene] = Field(default=None, alias="linearHygiene")


class TrendsResponse(_CamelModel):
    success: bool = True
    level: str
    level_id: Optional[str] = Field(default=None, alias="levelId")
    data_points: List[TrendDataPoint] = Field(default_factory=list, alias="dataPoints")
