"""
Retention Report Assembler

Thin aggregation layer between DataAccess and the dashboards: reads the
record streams each report needs (independent reads run concurrently),
converts rows into records, and hands them to the cohort, funnel and health
score services.

Reports:
- build_cohort_report(): cohorts of a created_at window, best cohort and
  average month-3 retention
- build_funnel_report(): lead funnel over a trailing window of months
- get_health_score_summary(): backend-side aggregation over each active
  client's newest health score row, cached under ("health_scores", "summary")
- build_retention_dashboard(): all three in one payload
"""

import asyncio
import logging
from datetime import date, datetime, time
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from crm_retention.core.cache import SummaryCache, summary_cache
from crm_retention.core.config import get_settings
from crm_retention.core.data_access import DataAccess, RecordFilters
from crm_retention.models.enums import LeadStatus
from crm_retention.models.schemas import (
    ClientFromLead,
    CohortReport,
    FunnelMetrics,
    HealthScoreSummary,
    LeadRecord,
    RetentionDashboard,
)
from crm_retention.services.calendar_windows import (
    add_months,
    resolve_as_of,
    start_of_month,
)
from crm_retention.services.cohort_builder import (
    average_retention_at_month,
    build_cohorts,
    build_revenue_month_index,
    select_best_cohort,
)
from crm_retention.services.funnel import (
    DEFAULT_FUNNEL_MONTHS,
    build_funnel_metrics,
    funnel_window,
)
from crm_retention.services.health_score import HEALTH_SCORES_CACHE_FAMILY


logger = logging.getLogger(__name__)


LEAD_COLUMNS = ("id", "created_at", "status", "converted_at", "assessor_id")
LINK_COLUMNS = ("id", "converted_from_lead_id")
REVENUE_MONTH_COLUMNS = ("client_id", "date")

HEALTH_SUMMARY_CACHE_KEY = (HEALTH_SCORES_CACHE_FAMILY, "summary")


# =============================================================================
# Row Conversion
# =============================================================================

def parse_lead_rows(rows: Iterable[Mapping[str, Any]]) -> List[LeadRecord]:
    """Convert lead rows to records, skipping rows with an unknown status."""
    leads = []
    unknown = 0
    for row in rows:
        try:
            status = LeadStatus(row["status"])
        except ValueError:
            unknown += 1
            continue
        leads.append(LeadRecord(
            id=str(row["id"]),
            created_at=row["created_at"],
            status=status,
            converted_at=row.get("converted_at"),
            assessor_id=str(row["assessor_id"]) if row.get("assessor_id") is not None else None,
        ))
    if unknown:
        logger.warning(f"Skipped {unknown} lead row(s) with an unknown status")
    return leads


def parse_link_rows(rows: Iterable[Mapping[str, Any]]) -> List[ClientFromLead]:
    """Client rows to lead links; clients not created from a lead are dropped."""
    return [
        ClientFromLead(
            client_id=str(row["id"]),
            converted_from_lead_id=str(row["converted_from_lead_id"]),
        )
        for row in rows
        if row.get("converted_from_lead_id") is not None
    ]


# =============================================================================
# Reports
# =============================================================================

def default_cohort_period(as_of: datetime, months: int) -> Tuple[date, date]:
    """Default cohort window: the `months` calendar months ending with as_of's month."""
    start = add_months(start_of_month(as_of.date()), -(months - 1))
    return start, as_of.date()


async def build_cohort_report(
    data_access: DataAccess,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
    as_of: Optional[datetime] = None,
) -> CohortReport:
    """
    Build cohorts for the leads created between period_start and period_end.

    Args:
        data_access: Data access layer.
        period_start: First created_at day (inclusive). Defaults to the start
            of the default window.
        period_end: Last created_at day (inclusive). Defaults to as_of's day.
        as_of: Reference time for future-month detection. Defaults to now.

    Raises:
        ValueError: If period_start is after period_end.
        asyncpg.PostgresError: Any read failure.
    """
    settings = get_settings()
    as_of = resolve_as_of(as_of, settings.tzinfo)
    months = settings.cohort_retention_months

    default_start, default_end = default_cohort_period(as_of, months)
    period_start = period_start or default_start
    period_end = period_end or default_end
    if period_start > period_end:
        raise ValueError(f"period_start {period_start} is after period_end {period_end}")

    tz = as_of.tzinfo
    lead_rows, client_rows, revenue_rows = await asyncio.gather(
        data_access.fetch_all(
            "leads",
            LEAD_COLUMNS,
            RecordFilters(
                gte={"created_at": datetime.combine(period_start, time.min, tzinfo=tz)},
                lte={"created_at": datetime.combine(period_end, time.max, tzinfo=tz)},
            ),
        ),
        data_access.fetch_all("clients", LINK_COLUMNS),
        data_access.fetch_all(
            "revenues",
            REVENUE_MONTH_COLUMNS,
            RecordFilters(gte={"date": start_of_month(period_start)}),
        ),
    )

    leads = parse_lead_rows(lead_rows)
    links = parse_link_rows(client_rows)
    revenue_months = build_revenue_month_index(
        revenue_rows,
        client_ids={link.client_id for link in links},
    )

    cohorts = build_cohorts(leads, links, revenue_months, as_of, months)
    report = CohortReport(
        periodStart=period_start,
        periodEnd=period_end,
        cohorts=cohorts,
        bestCohort=select_best_cohort(cohorts),
        avgRetentionMonth3=average_retention_at_month(cohorts),
    )

    logger.info(
        f"Cohort report {period_start}..{period_end}: {len(cohorts)} cohort(s), "
        f"{len(leads)} lead(s)"
    )
    return report


async def build_funnel_report(
    data_access: DataAccess,
    months: int = DEFAULT_FUNNEL_MONTHS,
    as_of: Optional[datetime] = None,
) -> FunnelMetrics:
    """
    Build the lead funnel for the trailing `months` calendar months.

    Raises:
        ValueError: If months is not positive.
    """
    as_of = resolve_as_of(as_of, get_settings().tzinfo)
    start, end = funnel_window(months, as_of)

    rows = await data_access.fetch_all(
        "leads",
        LEAD_COLUMNS,
        RecordFilters(gte={"created_at": start}, lte={"created_at": end}),
    )
    return build_funnel_metrics(parse_lead_rows(rows), months, as_of)


async def get_health_score_summary(
    data_access: DataAccess,
    cache: SummaryCache = summary_cache,
) -> HealthScoreSummary:
    """Classification counts over each active client's current score."""
    cached = cache.get(HEALTH_SUMMARY_CACHE_KEY)
    if cached is not None:
        return cached

    row = await data_access.fetch_health_score_summary()
    summary = HealthScoreSummary(
        healthy=row.get("healthy") or 0,
        attention=row.get("attention") or 0,
        critical=row.get("critical") or 0,
        lost=row.get("lost") or 0,
        total=row.get("total") or 0,
        averageScore=float(row.get("average_score") or 0),
    )
    cache.set(HEALTH_SUMMARY_CACHE_KEY, summary)
    return summary


async def build_retention_dashboard(
    data_access: DataAccess,
    as_of: Optional[datetime] = None,
    funnel_months: int = DEFAULT_FUNNEL_MONTHS,
    cache: SummaryCache = summary_cache,
) -> RetentionDashboard:
    """Health summary, default cohort report and funnel, read concurrently."""
    as_of = resolve_as_of(as_of, get_settings().tzinfo)

    health_summary, cohort_report, funnel = await asyncio.gather(
        get_health_score_summary(data_access, cache=cache),
        build_cohort_report(data_access, as_of=as_of),
        build_funnel_report(data_access, months=funnel_months, as_of=as_of),
    )
    return RetentionDashboard(
        healthSummary=health_summary,
        cohortReport=cohort_report,
        funnel=funnel,
        generatedAt=as_of,
    )


__all__ = [
    "parse_lead_rows",
    "parse_link_rows",
    "default_cohort_period",
    "build_cohort_report",
    "build_funnel_report",
    "get_health_score_summary",
    "build_retention_dashboard",
]
