"""
Cohort Builder Service

Groups leads by the calendar month they entered the pipeline and tracks, for
each month after entry, whether the clients those leads became generated
revenue.

A converted lead is "tracked" when its converted_at is trusted (present, not
earlier than created_at, year >= 2000) and it links to a client. Converted
leads without a link still count toward convertedLeads and the conversion
rate; they are only left out of retention.

Retention rows cover months 0..N-1 where month 0 is the cohort's own entry
month. A lead only counts as retained in a month at or after its conversion
month, while `converted` on every row equals the cohort's tracked count so the
dashboard can draw future rows as placeholders with consistent totals.

All month arithmetic happens in the time zone of as_of.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, tzinfo
from typing import Dict, Iterable, List, Mapping, Optional, Set

import numpy as np

from crm_retention.models.enums import LeadStatus
from crm_retention.models.schemas import (
    ClientFromLead,
    CohortData,
    CohortRetention,
    LeadRecord,
)
from crm_retention.services.calendar_windows import (
    add_months,
    month_key,
    month_label,
    start_of_month,
)


logger = logging.getLogger(__name__)


DEFAULT_RETENTION_MONTHS: int = 6

# Month whose retention rate ranks cohorts and feeds the dashboard average
BENCHMARK_MONTH: int = 3

# converted_at values before this year are import artifacts
MIN_TRUSTED_YEAR: int = 2000


# =============================================================================
# Helpers
# =============================================================================

def is_trusted_conversion(lead: LeadRecord) -> bool:
    """True if the lead's converted_at can be used in time-based aggregates."""
    converted_at = lead.converted_at
    if converted_at is None:
        return False
    return converted_at >= lead.created_at and converted_at.year >= MIN_TRUSTED_YEAR


def local_date(moment: datetime, tz: Optional[tzinfo]) -> date:
    """Calendar date of a timestamp in the report zone (naive timestamps taken as local)."""
    if tz is not None and moment.tzinfo is not None:
        return moment.astimezone(tz).date()
    return moment.date()


def build_revenue_month_index(
    revenues: Iterable[Mapping],
    client_ids: Optional[Set[str]] = None,
) -> Dict[str, Set[str]]:
    """
    Map client id -> set of 'yyyy-mm' months with at least one revenue record.

    Args:
        revenues: Revenue rows or records exposing client_id and date.
        client_ids: If given, only these clients are indexed.
    """
    index: Dict[str, Set[str]] = defaultdict(set)
    for revenue in revenues:
        client_id = revenue["client_id"]
        if client_id is None:
            continue
        client_id = str(client_id)
        if client_ids is not None and client_id not in client_ids:
            continue
        index[client_id].add(month_key(revenue["date"]))
    return dict(index)


# =============================================================================
# Cohorts
# =============================================================================

def _build_retention_rows(
    cohort_date: date,
    tracked: List[LeadRecord],
    lead_clients: Mapping[str, str],
    revenue_months: Mapping[str, Set[str]],
    as_of: datetime,
    months: int,
) -> List[CohortRetention]:
    tz = as_of.tzinfo
    today = as_of.date()
    tracked_count = len(tracked)
    conversion_months = {
        lead.id: start_of_month(local_date(lead.converted_at, tz)) for lead in tracked
    }

    rows = []
    for month in range(months):
        check_month = add_months(cohort_date, month)

        if check_month > today:
            rows.append(CohortRetention(
                month=month,
                converted=tracked_count,
                retained=0,
                retentionRate=0.0,
                isFuture=True,
            ))
            continue

        check_key = month_key(check_month)
        retained = sum(
            1
            for lead in tracked
            if conversion_months[lead.id] <= check_month
            and check_key in revenue_months.get(lead_clients[lead.id], ())
        )
        rate = retained / tracked_count * 100 if tracked_count > 0 else 0.0
        rows.append(CohortRetention(
            month=month,
            converted=tracked_count,
            retained=retained,
            retentionRate=rate,
            isFuture=False,
        ))

    return rows


def build_cohorts(
    leads: Iterable[LeadRecord],
    links: Iterable[ClientFromLead],
    revenue_months: Mapping[str, Set[str]],
    as_of: datetime,
    months: int = DEFAULT_RETENTION_MONTHS,
) -> List[CohortData]:
    """
    Build one CohortData per entry month, in ascending month order.

    Args:
        leads: Leads to group (typically those created in the report window).
        links: Client-from-lead links.
        revenue_months: Client id -> 'yyyy-mm' months with revenue.
        as_of: Reference time; months starting after it are marked future.
        months: Retention rows per cohort, entry month included.

    Returns:
        Cohorts sorted by cohortDate.
    """
    tz = as_of.tzinfo
    lead_clients = {link.converted_from_lead_id: link.client_id for link in links}

    grouped: Dict[date, List[LeadRecord]] = defaultdict(list)
    for lead in leads:
        grouped[start_of_month(local_date(lead.created_at, tz))].append(lead)

    cohorts = []
    for cohort_date in sorted(grouped):
        cohort_leads = grouped[cohort_date]
        converted = [lead for lead in cohort_leads if lead.status == LeadStatus.CONVERTED]
        trusted = [lead for lead in converted if is_trusted_conversion(lead)]
        tracked = [lead for lead in trusted if lead.id in lead_clients]

        if len(trusted) < len(converted):
            logger.warning(
                f"Cohort {month_key(cohort_date)}: {len(converted) - len(trusted)} converted "
                f"lead(s) with missing or implausible converted_at"
            )

        avg_time_to_convert = None
        if trusted:
            avg_time_to_convert = float(np.mean(
                [(lead.converted_at - lead.created_at).days for lead in trusted]
            ))

        total = len(cohort_leads)
        cohorts.append(CohortData(
            cohort=month_label(cohort_date),
            cohortDate=cohort_date,
            totalLeads=total,
            convertedLeads=len(converted),
            trackedLeads=len(tracked),
            retention=_build_retention_rows(
                cohort_date, tracked, lead_clients, revenue_months, as_of, months
            ),
            finalConversionRate=len(converted) / total * 100 if total > 0 else 0.0,
            avgTimeToConvert=avg_time_to_convert,
        ))

    logger.debug(f"Built {len(cohorts)} cohort(s) as of {as_of.date()}")
    return cohorts


# =============================================================================
# Cohort Ranking
# =============================================================================

def _matured_rate(cohort: CohortData, month: int) -> Optional[float]:
    """Retention rate at `month`, or None if the row is missing or still future."""
    if month >= len(cohort.retention):
        return None
    row = cohort.retention[month]
    if row.isFuture:
        return None
    return row.retentionRate


def select_best_cohort(
    cohorts: Iterable[CohortData],
    month: int = BENCHMARK_MONTH,
) -> Optional[CohortData]:
    """
    Pick the best cohort.

    Matured cohorts are ranked by their month-3 retention rate; cohorts whose
    month-3 row is still in the future are ranked by finalConversionRate. Both
    values share the 0-100 scale and are compared directly. Ties keep the
    earliest cohort.
    """
    best: Optional[CohortData] = None
    best_value = -1.0
    for cohort in cohorts:
        rate = _matured_rate(cohort, month)
        value = rate if rate is not None else cohort.finalConversionRate
        if value > best_value:
            best, best_value = cohort, value
    return best


def average_retention_at_month(
    cohorts: Iterable[CohortData],
    month: int = BENCHMARK_MONTH,
) -> float:
    """Mean retention rate at `month` over cohorts where that month has started; 0.0 if none."""
    rates = [rate for rate in (_matured_rate(c, month) for c in cohorts) if rate is not None]
    if not rates:
        return 0.0
    return float(np.mean(rates))


__all__ = [
    "DEFAULT_RETENTION_MONTHS",
    "BENCHMARK_MONTH",
    "is_trusted_conversion",
    "local_date",
    "build_revenue_month_index",
    "build_cohorts",
    "select_best_cohort",
    "average_retention_at_month",
]
