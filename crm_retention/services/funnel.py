"""
Lead Funnel Service

Stage counts, conversion rate, average days to convert, monthly lead volume
and per-assessor conversion for the leads created in a trailing window of
calendar months.

The window runs from the first day of the month (months - 1) before as_of
through the last instant of as_of's month, so months=6 covers the current
month plus the five before it.
"""

import logging
from collections import Counter
from datetime import datetime, time
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from crm_retention.models.enums import LeadStatus
from crm_retention.models.schemas import (
    AssessorConversion,
    FunnelMetrics,
    FunnelStage,
    LeadRecord,
    MonthlyLeadCounts,
)
from crm_retention.services.calendar_windows import (
    add_months,
    end_of_month,
    month_key,
    month_label,
    start_of_month,
)
from crm_retention.services.cohort_builder import is_trusted_conversion, local_date


logger = logging.getLogger(__name__)


DEFAULT_FUNNEL_MONTHS: int = 6

# Bucket for leads without an assessor
UNASSIGNED_ASSESSOR: str = "unassigned"

# Display order of the pipeline stages
STAGE_LABELS: Dict[LeadStatus, str] = {
    LeadStatus.NEW: "New",
    LeadStatus.IN_CONTACT: "In Contact",
    LeadStatus.ASSESSOR_SWITCH: "Assessor Switch",
    LeadStatus.CONVERTED: "Converted",
    LeadStatus.LOST: "Lost",
}


def funnel_window(months: int, as_of: datetime) -> Tuple[datetime, datetime]:
    """
    Inclusive created_at bounds of the funnel window, in as_of's zone.

    Raises:
        ValueError: If months is not positive.
    """
    if months < 1:
        raise ValueError(f"months must be >= 1, got {months}")

    first_month = add_months(start_of_month(as_of.date()), -(months - 1))
    start = datetime.combine(first_month, time.min, tzinfo=as_of.tzinfo)
    end = datetime.combine(end_of_month(as_of.date()), time.max, tzinfo=as_of.tzinfo)
    return start, end


def build_assessor_conversion(leads: Sequence[LeadRecord]) -> List[AssessorConversion]:
    """
    Lead count, conversions and conversion rate per assessor.

    The rate is converted over all of the assessor's leads (lost included).
    Sorted by rate, highest first; equal rates keep first-seen order.
    """
    counts: Dict[str, List[int]] = {}
    for lead in leads:
        bucket = counts.setdefault(lead.assessor_id or UNASSIGNED_ASSESSOR, [0, 0])
        bucket[0] += 1
        if lead.status == LeadStatus.CONVERTED:
            bucket[1] += 1

    rows = [
        AssessorConversion(
            assessor=assessor,
            count=count,
            converted=converted,
            rate=converted / count * 100,
        )
        for assessor, (count, converted) in counts.items()
    ]
    return sorted(rows, key=lambda row: row.rate, reverse=True)


def build_funnel_metrics(
    leads: Iterable[LeadRecord],
    months: int,
    as_of: datetime,
) -> FunnelMetrics:
    """
    Build the funnel report from the leads of the window.

    Args:
        leads: Leads created inside funnel_window(months, as_of).
        months: Number of calendar months in the window.
        as_of: Reference time.

    Returns:
        FunnelMetrics with one stage per status and one leadsByMonth entry
        per month of the window (months with no leads included).
    """
    tz = as_of.tzinfo
    leads = list(leads)
    total = len(leads)
    status_counts = Counter(lead.status for lead in leads)

    stages = [
        FunnelStage(
            status=status,
            label=label,
            count=status_counts.get(status, 0),
            percentage=status_counts.get(status, 0) / total * 100 if total > 0 else 0.0,
        )
        for status, label in STAGE_LABELS.items()
    ]

    converted = status_counts.get(LeadStatus.CONVERTED, 0)
    lost = status_counts.get(LeadStatus.LOST, 0)
    active = total - lost
    conversion_rate = converted / active * 100 if active > 0 else 0.0

    conversion_days = [
        (lead.converted_at - lead.created_at).days
        for lead in leads
        if lead.status == LeadStatus.CONVERTED and is_trusted_conversion(lead)
    ]
    avg_conversion_days = float(np.mean(conversion_days)) if conversion_days else 0.0

    first_month = add_months(start_of_month(as_of.date()), -(months - 1))
    monthly: Dict[str, MonthlyLeadCounts] = {}
    for offset in range(months):
        month_start = add_months(first_month, offset)
        monthly[month_key(month_start)] = MonthlyLeadCounts(month=month_label(month_start))

    outside = 0
    for lead in leads:
        bucket = monthly.get(month_key(local_date(lead.created_at, tz)))
        if bucket is None:
            outside += 1
            continue
        bucket.new += 1
        if lead.status == LeadStatus.CONVERTED:
            bucket.converted += 1
        elif lead.status == LeadStatus.LOST:
            bucket.lost += 1

    if outside:
        logger.warning(f"{outside} lead(s) created outside the {months}-month funnel window")

    return FunnelMetrics(
        stages=stages,
        totalLeads=total,
        convertedLeads=converted,
        lostLeads=lost,
        conversionRate=conversion_rate,
        avgConversionDays=avg_conversion_days,
        leadsByMonth=list(monthly.values()),
        leadsByAssessor=build_assessor_conversion(leads),
    )


__all__ = [
    "DEFAULT_FUNNEL_MONTHS",
    "STAGE_LABELS",
    "UNASSIGNED_ASSESSOR",
    "funnel_window",
    "build_assessor_conversion",
    "build_funnel_metrics",
]
