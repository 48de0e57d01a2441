"""
Retention Services Module

This module contains the business logic of the retention analytics engine.
Pure computations are kept apart from the async functions that read and write
through DataAccess, so the math can be tested without a database.

Services:
- score_components: The five 0-100 health sub-scores (pure)
- health_score: Weighted score, classification, single-client and bulk scoring
- churn_risk: Churn probability and risk factors from the score history
- cohort_builder: Lead cohorts, monthly retention, best cohort (pure)
- funnel: Lead funnel report (pure)
- retention_report: Dashboard report assembly over DataAccess
- calendar_windows: Month/day window helpers in the report time zone

All services are designed to be consumed by the API layer (crm_retention/api/)
and the daily jobs (crm_retention/jobs/).
"""

# =============================================================================
# Score Component Exports
# =============================================================================

from crm_retention.services.score_components import (
    SCORE_WINDOW_MONTHS,
    calc_recency,
    calc_frequency,
    calc_monetary,
    calc_trend,
    calc_engagement,
)

# =============================================================================
# Health Score Exports
# Weighted blend, classification, and the single/bulk scoring entry points
# =============================================================================

from crm_retention.services.health_score import (
    WEIGHTS,
    HEALTH_SCORES_CACHE_FAMILY,
    ScoreWindows,
    calculate_health_score,
    classify_score,
    compute_score_windows,
    compute_median_monthly_revenue,
    compute_components,
    build_health_score,
    get_client_health_score,
    calculate_bulk_health_scores,
)

# =============================================================================
# Churn Risk Exports
# =============================================================================

from crm_retention.services.churn_risk import (
    assess_churn_risk,
    get_client_churn_risk,
)

# =============================================================================
# Cohort Exports
# =============================================================================

from crm_retention.services.cohort_builder import (
    BENCHMARK_MONTH,
    is_trusted_conversion,
    build_revenue_month_index,
    build_cohorts,
    select_best_cohort,
    average_retention_at_month,
)

# =============================================================================
# Funnel Exports
# =============================================================================

from crm_retention.services.funnel import (
    DEFAULT_FUNNEL_MONTHS,
    funnel_window,
    build_funnel_metrics,
)

# =============================================================================
# Report Assembly Exports
# =============================================================================

from crm_retention.services.retention_report import (
    build_cohort_report,
    build_funnel_report,
    get_health_score_summary,
    build_retention_dashboard,
)


__all__ = [
    # score_components
    "SCORE_WINDOW_MONTHS",
    "calc_recency",
    "calc_frequency",
    "calc_monetary",
    "calc_trend",
    "calc_engagement",
    # health_score
    "WEIGHTS",
    "HEALTH_SCORES_CACHE_FAMILY",
    "ScoreWindows",
    "calculate_health_score",
    "classify_score",
    "compute_score_windows",
    "compute_median_monthly_revenue",
    "compute_components",
    "build_health_score",
    "get_client_health_score",
    "calculate_bulk_health_scores",
    # churn_risk
    "assess_churn_risk",
    "get_client_churn_risk",
    # cohort_builder
    "BENCHMARK_MONTH",
    "is_trusted_conversion",
    "build_revenue_month_index",
    "build_cohorts",
    "select_best_cohort",
    "average_retention_at_month",
    # funnel
    "DEFAULT_FUNNEL_MONTHS",
    "funnel_window",
    "build_funnel_metrics",
    # retention_report
    "build_cohort_report",
    "build_funnel_report",
    "get_health_score_summary",
    "build_retention_dashboard",
]
