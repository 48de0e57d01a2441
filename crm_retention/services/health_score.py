"""
Health Score Calculator Service

Blends the five ScoreComponents sub-scores into a single 0-100 client health
score, classifies it, and persists it to the append-only client_health_scores
fact table.

Two entry points:
- get_client_health_score(): single client. Reuses the client's newest row if
  it was calculated today (report time zone), otherwise computes and inserts a
  fresh row. The monetary component compares the client against the median of
  all clients, so even this path scans the full 6-month revenue window.
- calculate_bulk_health_scores(): every active client. Three bulk paginated
  reads (clients, revenues, interactions) run in parallel, everything is
  grouped in memory, and rows are inserted in batches of
  settings.health_score_batch_size. The number of round trips depends on
  record volume, never on client count.

Score windows (all relative to as_of, evaluated in the report time zone):
- six_months_ago: first day of the month six months back (frequency/monetary)
- last_month / two_months_ago: first days of the two previous months (trend)
- ninety_days_ago: midnight of the as_of day minus 90 days (engagement)
"""

import asyncio
import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from crm_retention.core.cache import SummaryCache, summary_cache
from crm_retention.core.config import get_settings
from crm_retention.core.data_access import DataAccess, RecordFilters
from crm_retention.models.enums import RiskClassification
from crm_retention.models.schemas import (
    ClientHealthScore,
    HealthScoreComponents,
    InteractionRecord,
    RevenueRecord,
)
from crm_retention.services.calendar_windows import (
    add_months,
    month_key,
    resolve_as_of,
    start_of_day,
    start_of_month,
)
from crm_retention.services.score_components import (
    SCORE_WINDOW_MONTHS,
    calc_engagement,
    calc_frequency,
    calc_monetary,
    calc_recency,
    calc_trend,
)
from crm_retention.sql.retention_queries import (
    HEALTH_SCORE_INSERT_COLUMNS,
    HEALTH_SCORE_TABLE,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Component weights; they sum to 1.0 so the blended score stays in 0..100
WEIGHTS: Dict[str, float] = {
    "recency": 0.30,
    "frequency": 0.25,
    "monetary": 0.20,
    "trend": 0.15,
    "engagement": 0.10,
}

# Inclusive lower bounds, checked in descending order
CLASSIFICATION_THRESHOLDS: Tuple[Tuple[int, RiskClassification], ...] = (
    (75, RiskClassification.HEALTHY),
    (50, RiskClassification.ATTENTION),
    (25, RiskClassification.CRITICAL),
)

ENGAGEMENT_WINDOW_DAYS: int = 90

# Summary cache family invalidated after every bulk run
HEALTH_SCORES_CACHE_FAMILY: str = "health_scores"

REVENUE_COLUMNS: Tuple[str, ...] = ("client_id", "date", "our_share")
INTERACTION_COLUMNS: Tuple[str, ...] = ("client_id", "created_at")
CLIENT_COLUMNS: Tuple[str, ...] = ("id", "name")


# =============================================================================
# Score Math
# =============================================================================

def calculate_health_score(components: HealthScoreComponents) -> int:
    """
    Blend the sub-scores into the 0-100 health score.

    Rounds half up (87.5 -> 88, 8.5 -> 9). Python's round() rounds half to
    even and would give 8 for 8.5.
    """
    total = (
        components.recency * WEIGHTS["recency"]
        + components.frequency * WEIGHTS["frequency"]
        + components.monetary * WEIGHTS["monetary"]
        + components.trend * WEIGHTS["trend"]
        + components.engagement * WEIGHTS["engagement"]
    )
    # Guard against float error pushing an exact .5 just below the boundary
    return int(math.floor(round(total, 9) + 0.5))


def classify_score(score: int) -> RiskClassification:
    """Map a 0-100 score to its classification (75/50/25 inclusive bounds)."""
    for lower_bound, classification in CLASSIFICATION_THRESHOLDS:
        if score >= lower_bound:
            return classification
    return RiskClassification.LOST


@dataclass(frozen=True)
class ScoreWindows:
    """Time boundaries of one scoring run."""
    as_of: datetime
    six_months_ago: date
    last_month: date
    two_months_ago: date
    ninety_days_ago: datetime


def compute_score_windows(as_of: datetime) -> ScoreWindows:
    """Derive every scoring window from an as_of timestamp in the report zone."""
    month_start = start_of_month(as_of.date())
    engagement_start = datetime.combine(
        as_of.date() - timedelta(days=ENGAGEMENT_WINDOW_DAYS),
        time.min,
        tzinfo=as_of.tzinfo,
    )
    return ScoreWindows(
        as_of=as_of,
        six_months_ago=add_months(month_start, -SCORE_WINDOW_MONTHS),
        last_month=add_months(month_start, -1),
        two_months_ago=add_months(month_start, -2),
        ninety_days_ago=engagement_start,
    )


def revenue_window_filters(windows: ScoreWindows) -> RecordFilters:
    """Revenues from six_months_ago through as_of's day; later rows are ignored."""
    return RecordFilters(
        gte={"date": windows.six_months_ago},
        lte={"date": windows.as_of.date()},
    )


def interaction_window_filters(
    windows: ScoreWindows,
    client_id: Optional[str] = None,
) -> RecordFilters:
    """Interactions from ninety_days_ago through as_of, optionally for one client."""
    return RecordFilters(
        eq={"client_id": client_id} if client_id is not None else {},
        gte={"created_at": windows.ninety_days_ago},
        lte={"created_at": windows.as_of},
    )


def group_revenues_by_client(
    revenues: Iterable[RevenueRecord],
) -> Dict[str, List[RevenueRecord]]:
    grouped: Dict[str, List[RevenueRecord]] = defaultdict(list)
    for revenue in revenues:
        grouped[revenue.client_id].append(revenue)
    return dict(grouped)


def count_interactions_by_client(interactions: Iterable[InteractionRecord]) -> Dict[str, int]:
    return dict(Counter(interaction.client_id for interaction in interactions))


def compute_median_monthly_revenue(
    revenues_by_client: Mapping[str, Sequence[RevenueRecord]],
) -> float:
    """
    Median of average monthly revenue across clients with revenue in the window.

    Uses the upper-middle element (sorted[n // 2]) for even counts rather than
    averaging the two middle values. Returns 0.0 when no client has revenue.

    Args:
        revenues_by_client: 6-month revenue records grouped by client id.
    """
    averages = np.array(
        [
            sum(r.our_share for r in records) / SCORE_WINDOW_MONTHS
            for records in revenues_by_client.values()
            if records
        ],
        dtype=float,
    )
    if averages.size == 0:
        return 0.0
    averages.sort()
    return float(averages[averages.size // 2])


def compute_components(
    revenues: Sequence[RevenueRecord],
    interaction_count: int,
    median_revenue: float,
    windows: ScoreWindows,
) -> HealthScoreComponents:
    """
    Compute the five sub-scores of one client.

    Args:
        revenues: The client's revenue records since windows.six_months_ago.
        interaction_count: The client's interactions since windows.ninety_days_ago.
        median_revenue: Cross-client median average monthly revenue.
        windows: Score windows of the run.
    """
    days_since_last: Optional[int] = None
    if revenues:
        newest = max(r.date for r in revenues)
        days_since_last = (windows.as_of.date() - newest).days

    total_revenue = sum(r.our_share for r in revenues)
    avg_monthly_revenue = total_revenue / SCORE_WINDOW_MONTHS

    current_key = month_key(windows.last_month)
    previous_key = month_key(windows.two_months_ago)
    current_month_revenue = sum(r.our_share for r in revenues if month_key(r.date) == current_key)
    previous_month_revenue = sum(r.our_share for r in revenues if month_key(r.date) == previous_key)

    return HealthScoreComponents(
        recency=calc_recency(days_since_last),
        frequency=calc_frequency(len(revenues)),
        monetary=calc_monetary(avg_monthly_revenue, median_revenue),
        trend=calc_trend(current_month_revenue, previous_month_revenue),
        engagement=calc_engagement(interaction_count),
    )


def build_health_score(
    client_id: str,
    revenues: Sequence[RevenueRecord],
    interaction_count: int,
    median_revenue: float,
    windows: ScoreWindows,
) -> ClientHealthScore:
    """Compute a complete (not yet persisted) health score row for one client."""
    components = compute_components(revenues, interaction_count, median_revenue, windows)
    score = calculate_health_score(components)
    return ClientHealthScore(
        client_id=client_id,
        score=score,
        classification=classify_score(score),
        components=components,
        calculated_at=windows.as_of,
    )


# =============================================================================
# Row Conversion
# =============================================================================

def _revenue_from_row(row: Mapping[str, Any]) -> RevenueRecord:
    return RevenueRecord(
        client_id=str(row["client_id"]),
        date=row["date"],
        our_share=float(row["our_share"] or 0),
    )


def _interaction_from_row(row: Mapping[str, Any]) -> InteractionRecord:
    return InteractionRecord(client_id=str(row["client_id"]), created_at=row["created_at"])


def parse_revenue_rows(rows: Iterable[Mapping[str, Any]]) -> List[RevenueRecord]:
    """Convert revenue rows to records, skipping rows without a client."""
    records = []
    skipped = 0
    for row in rows:
        if row.get("client_id") is None:
            skipped += 1
            continue
        records.append(_revenue_from_row(row))
    if skipped:
        logger.warning(f"Skipped {skipped} revenue row(s) without client_id")
    return records


def parse_interaction_rows(rows: Iterable[Mapping[str, Any]]) -> List[InteractionRecord]:
    return [_interaction_from_row(row) for row in rows if row.get("client_id") is not None]


def score_from_row(row: Mapping[str, Any]) -> ClientHealthScore:
    """Convert a client_health_scores row to its model (UUIDs become strings)."""
    return ClientHealthScore(
        id=str(row["id"]) if row.get("id") is not None else None,
        client_id=str(row["client_id"]),
        score=row["score"],
        classification=row["classification"],
        components=row["components"],
        calculated_at=row["calculated_at"],
    )


def score_to_values(score: ClientHealthScore) -> Tuple[Any, ...]:
    """Insert values in HEALTH_SCORE_INSERT_COLUMNS order."""
    return (
        score.client_id,
        score.score,
        score.classification.value,
        score.components.model_dump(),
        score.calculated_at,
    )


# =============================================================================
# Single Client
# =============================================================================

async def get_client_health_score(
    client_id: str,
    data_access: DataAccess,
    as_of: Optional[datetime] = None,
) -> ClientHealthScore:
    """
    Get the current health score of one client, computing it if needed.

    A row calculated at or after the start of as_of's calendar day (report
    time zone) is returned as-is. Otherwise a new score is computed and one
    row is inserted.

    Args:
        client_id: Client to score.
        data_access: Data access layer.
        as_of: Reference time. Defaults to now.

    Returns:
        The cached or freshly inserted ClientHealthScore.

    Raises:
        asyncpg.PostgresError: Any read or write failure, unchanged.
    """
    settings = get_settings()
    as_of = resolve_as_of(as_of, settings.tzinfo)

    cached = await data_access.fetch_latest_health_score(client_id, start_of_day(as_of))
    if cached is not None:
        logger.debug(f"Health score cache hit for client {client_id}")
        return score_from_row(cached)

    windows = compute_score_windows(as_of)
    revenue_rows, interaction_rows = await asyncio.gather(
        data_access.fetch_all(
            "revenues",
            REVENUE_COLUMNS,
            revenue_window_filters(windows),
        ),
        data_access.fetch_all(
            "interactions",
            INTERACTION_COLUMNS,
            interaction_window_filters(windows, client_id=client_id),
        ),
    )

    revenues_by_client = group_revenues_by_client(parse_revenue_rows(revenue_rows))
    median_revenue = compute_median_monthly_revenue(revenues_by_client)

    score = build_health_score(
        client_id,
        revenues_by_client.get(client_id, []),
        len(interaction_rows),
        median_revenue,
        windows,
    )
    stored = await data_access.insert_health_score(score_to_values(score))

    logger.info(
        f"Computed health score for client {client_id}: "
        f"{score.score} ({score.classification.value})"
    )
    return score_from_row(stored)


# =============================================================================
# Bulk
# =============================================================================

async def calculate_bulk_health_scores(
    data_access: DataAccess,
    as_of: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    cache: SummaryCache = summary_cache,
) -> int:
    """
    Score every active client and append one row per client.

    Args:
        data_access: Data access layer.
        as_of: Reference time stamped on every row. Defaults to now.
        batch_size: Rows per insert batch. Defaults to settings.health_score_batch_size.
        cache: Summary cache to invalidate once rows are written.

    Returns:
        Number of clients scored.

    Raises:
        asyncpg.PostgresError: Any read failure, or the first failing insert
            batch (later batches are not attempted).
    """
    settings = get_settings()
    as_of = resolve_as_of(as_of, settings.tzinfo)
    batch_size = batch_size or settings.health_score_batch_size
    windows = compute_score_windows(as_of)

    client_rows, revenue_rows, interaction_rows = await asyncio.gather(
        data_access.fetch_all(
            "clients",
            CLIENT_COLUMNS,
            RecordFilters(eq={"active": True}),
        ),
        data_access.fetch_all(
            "revenues",
            REVENUE_COLUMNS,
            revenue_window_filters(windows),
        ),
        data_access.fetch_all(
            "interactions",
            INTERACTION_COLUMNS,
            interaction_window_filters(windows),
        ),
    )

    revenues_by_client = group_revenues_by_client(parse_revenue_rows(revenue_rows))
    interactions_by_client = count_interactions_by_client(parse_interaction_rows(interaction_rows))
    median_revenue = compute_median_monthly_revenue(revenues_by_client)

    scores = []
    for client in client_rows:
        client_id = str(client["id"])
        scores.append(
            build_health_score(
                client_id,
                revenues_by_client.get(client_id, []),
                interactions_by_client.get(client_id, 0),
                median_revenue,
                windows,
            )
        )

    await data_access.insert_many(
        HEALTH_SCORE_TABLE,
        HEALTH_SCORE_INSERT_COLUMNS,
        [score_to_values(score) for score in scores],
        batch_size,
    )
    cache.invalidate(HEALTH_SCORES_CACHE_FAMILY)

    logger.info(
        f"Bulk health scoring complete: {len(scores)} clients, "
        f"median monthly revenue {median_revenue:.2f}"
    )
    return len(scores)


__all__ = [
    "WEIGHTS",
    "HEALTH_SCORES_CACHE_FAMILY",
    "ScoreWindows",
    "calculate_health_score",
    "classify_score",
    "compute_score_windows",
    "revenue_window_filters",
    "interaction_window_filters",
    "group_revenues_by_client",
    "count_interactions_by_client",
    "compute_median_monthly_revenue",
    "compute_components",
    "build_health_score",
    "parse_revenue_rows",
    "parse_interaction_rows",
    "score_from_row",
    "score_to_values",
    "get_client_health_score",
    "calculate_bulk_health_scores",
]
