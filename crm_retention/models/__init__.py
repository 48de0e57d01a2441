"""
Package initialization file for backend models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from crm_retention.models directly.

Usage:
    from crm_retention.models import (
        LeadStatus,
        RiskClassification,
        ClientHealthScore,
        CohortData,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from crm_retention.models.enums import (
    LeadStatus,
    RiskClassification,
    RiskSeverity,
    ScoreTrend,
)


# =============================================================================
# Schemas
# =============================================================================

from crm_retention.models.schemas import (
    # Input records
    RevenueRecord,
    InteractionRecord,
    LeadRecord,
    ClientFromLead,
    # Health score models
    HealthScoreComponents,
    ClientHealthScore,
    HealthScoreSummary,
    BulkScoreResponse,
    ChurnRiskFactor,
    ChurnRisk,
    # Cohort retention models
    CohortRetention,
    CohortData,
    CohortReport,
    # Funnel models
    FunnelStage,
    MonthlyLeadCounts,
    AssessorConversion,
    FunnelMetrics,
    # Dashboard models
    RetentionDashboard,
)


__all__ = [
    # Enums
    'LeadStatus',
    'RiskClassification',
    'RiskSeverity',
    'ScoreTrend',
    # Input records
    'RevenueRecord',
    'InteractionRecord',
    'LeadRecord',
    'ClientFromLead',
    # Health score models
    'HealthScoreComponents',
    'ClientHealthScore',
    'HealthScoreSummary',
    'BulkScoreResponse',
    'ChurnRiskFactor',
    'ChurnRisk',
    # Cohort retention models
    'CohortRetention',
    'CohortData',
    'CohortReport',
    # Funnel models
    'FunnelStage',
    'MonthlyLeadCounts',
    'AssessorConversion',
    'FunnelMetrics',
    # Dashboard models
    'RetentionDashboard',
]
