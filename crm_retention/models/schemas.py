"""
Pydantic request/response models for the retention analytics backend.

This module provides type-safe data validation and serialization for the
record streams the engine reads (leads, revenues, interactions, client links),
the health score fact rows it writes, and the cohort, funnel and dashboard
structures it serves.

Record models use the database's snake_case column names; dashboard-facing
models use the camelCase keys the frontend consumes.

All models use Pydantic v2 syntax.
"""

from datetime import datetime, date as DateType
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crm_retention.models.enums import (
    LeadStatus,
    RiskClassification,
    RiskSeverity,
    ScoreTrend,
)


# =============================================================================
# Input Records
# =============================================================================


class RevenueRecord(BaseModel):
    """One imported revenue line. Immutable once imported."""
    client_id: str = Field(..., description="Client that generated the revenue")
    date: DateType = Field(..., description="Revenue date (day granularity)")
    our_share: float = Field(..., ge=0, description="Firm's share of the revenue")


class InteractionRecord(BaseModel):
    """One advisor-client touch from the append-only interaction log."""
    client_id: str = Field(..., description="Client that was contacted")
    created_at: datetime = Field(..., description="When the interaction was logged")


class LeadRecord(BaseModel):
    """
    A pipeline lead with its resolved status.

    converted_at is only meaningful for converted leads, and only trusted when
    it is not earlier than created_at and not before the year 2000.
    """
    id: str = Field(..., description="Lead identifier")
    created_at: datetime = Field(..., description="When the lead entered the pipeline")
    status: LeadStatus = Field(..., description="Current pipeline status")
    converted_at: Optional[datetime] = Field(
        default=None,
        description="Conversion timestamp, set only when status is converted"
    )
    assessor_id: Optional[str] = Field(default=None, description="Advisor the lead is assigned to")


class ClientFromLead(BaseModel):
    """Link between a client and the lead it was converted from."""
    client_id: str = Field(..., description="Client created by the conversion")
    converted_from_lead_id: str = Field(..., description="Lead that was converted")


# =============================================================================
# Health Score Models
# =============================================================================


class HealthScoreComponents(BaseModel):
    """Five independent 0-100 sub-scores of the health model."""
    recency: int = Field(..., ge=0, le=100, description="How recently the client generated revenue")
    frequency: int = Field(..., ge=0, le=100, description="Revenue records per month, last 6 months")
    monetary: int = Field(..., ge=0, le=100, description="Average monthly revenue versus the median client")
    trend: int = Field(..., ge=0, le=100, description="Month-over-month revenue growth")
    engagement: int = Field(..., ge=0, le=100, description="Interactions in the last 90 days")


class ClientHealthScore(BaseModel):
    """
    One row of the append-only client_health_scores fact table.

    The current score of a client is its most recent row.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "6d1f0f5e-7a43-4b8e-9a55-2b1f1c0f9a10",
                "client_id": "c0a8012e-0000-4000-8000-000000000001",
                "score": 88,
                "classification": "healthy",
                "components": {
                    "recency": 100,
                    "frequency": 75,
                    "monetary": 100,
                    "trend": 75,
                    "engagement": 75
                },
                "calculated_at": "2026-10-19T09:30:00-03:00"
            }
        }
    )

    id: Optional[str] = Field(default=None, description="Row identifier (assigned on insert)")
    client_id: str = Field(..., description="Scored client")
    score: int = Field(..., ge=0, le=100, description="Blended health score")
    classification: RiskClassification = Field(..., description="Classification of the score")
    components: HealthScoreComponents = Field(..., description="Sub-score breakdown")
    calculated_at: datetime = Field(..., description="When the score was computed")


class HealthScoreSummary(BaseModel):
    """Classification counts over each active client's current score."""
    healthy: int = Field(default=0, ge=0)
    attention: int = Field(default=0, ge=0)
    critical: int = Field(default=0, ge=0)
    lost: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    averageScore: float = Field(default=0.0, ge=0, le=100)


class BulkScoreResponse(BaseModel):
    """Result of a bulk health score run."""
    scored: int = Field(..., ge=0, description="Number of clients scored")
    calculatedAt: datetime = Field(..., description="Timestamp stamped on every inserted row")


class ChurnRiskFactor(BaseModel):
    """One weak health score component (or a falling score) behind a churn risk."""
    factor: str = Field(..., description="Component or signal name")
    severity: RiskSeverity
    description: str


class ChurnRisk(BaseModel):
    """
    Churn risk of one client derived from its recent health score history.

    churnProbability starts from the newest row's classification band
    (5/25/60/85) and moves -10 when the score is improving or +15 when it is
    declining, clamped to 0..100. A client with no score rows has
    probability 0 and no latest score.
    """
    client_id: str
    churnProbability: int = Field(..., ge=0, le=100)
    riskFactors: List[ChurnRiskFactor] = Field(default_factory=list)
    trend: ScoreTrend = ScoreTrend.STABLE
    latestScore: Optional[int] = Field(default=None, ge=0, le=100)
    latestClassification: Optional[RiskClassification] = None


# =============================================================================
# Cohort Retention Models
# =============================================================================


class CohortRetention(BaseModel):
    """Retention of one cohort in one month after its entry month."""
    month: int = Field(..., ge=0, description="Months after the cohort's entry month")
    converted: int = Field(..., ge=0, description="Tracked converted leads of the cohort")
    retained: int = Field(..., ge=0, description="Tracked clients with revenue in that month")
    retentionRate: float = Field(..., ge=0, le=100, description="retained / converted * 100")
    isFuture: bool = Field(..., description="True if the evaluated month has not started yet")


class CohortData(BaseModel):
    """Conversion and retention summary of the leads that entered in one month."""
    cohort: str = Field(..., description="Display label, e.g. 'Jan/26'")
    cohortDate: DateType = Field(..., description="First day of the entry month")
    totalLeads: int = Field(..., ge=0)
    convertedLeads: int = Field(..., ge=0, description="All converted leads, tracked or not")
    trackedLeads: int = Field(..., ge=0, description="Converted leads with a resolvable client")
    retention: List[CohortRetention] = Field(default_factory=list)
    finalConversionRate: float = Field(..., ge=0, le=100)
    avgTimeToConvert: Optional[float] = Field(
        default=None,
        description="Mean days from creation to conversion, None if no trusted dates"
    )


class CohortReport(BaseModel):
    """Cohorts of a reporting window plus the derived headline numbers."""
    periodStart: DateType
    periodEnd: DateType
    cohorts: List[CohortData] = Field(default_factory=list)
    bestCohort: Optional[CohortData] = Field(
        default=None,
        description="Best cohort by month-3 retention, falling back to conversion rate"
    )
    avgRetentionMonth3: float = Field(default=0.0, ge=0, le=100)


# =============================================================================
# Funnel Models
# =============================================================================


class FunnelStage(BaseModel):
    """Lead count of one pipeline status."""
    status: LeadStatus
    label: str
    count: int = Field(..., ge=0)
    percentage: float = Field(..., ge=0, le=100)


class MonthlyLeadCounts(BaseModel):
    """Leads created in one month, by outcome."""
    month: str = Field(..., description="Display label, e.g. 'Jan/26'")
    new: int = Field(default=0, ge=0)
    converted: int = Field(default=0, ge=0)
    lost: int = Field(default=0, ge=0)


class AssessorConversion(BaseModel):
    """Leads and conversions of one assessor inside the funnel window."""
    assessor: str = Field(..., description="Assessor id, or 'unassigned'")
    count: int = Field(..., ge=0)
    converted: int = Field(..., ge=0)
    rate: float = Field(..., ge=0, le=100, description="converted / count * 100")


class FunnelMetrics(BaseModel):
    """Lead funnel over a trailing window of months."""
    stages: List[FunnelStage] = Field(default_factory=list)
    totalLeads: int = Field(default=0, ge=0)
    convertedLeads: int = Field(default=0, ge=0)
    lostLeads: int = Field(default=0, ge=0)
    conversionRate: float = Field(default=0.0, ge=0, le=100)
    avgConversionDays: float = Field(default=0.0, ge=0)
    leadsByMonth: List[MonthlyLeadCounts] = Field(default_factory=list)
    leadsByAssessor: List[AssessorConversion] = Field(
        default_factory=list,
        description="Per-assessor conversion, highest rate first"
    )


# =============================================================================
# Dashboard Models
# =============================================================================


class RetentionDashboard(BaseModel):
    """Everything the retention dashboard renders in one payload."""
    healthSummary: HealthScoreSummary
    cohortReport: CohortReport
    funnel: FunnelMetrics
    generatedAt: datetime
