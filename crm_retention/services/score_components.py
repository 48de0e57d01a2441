"""
Health Score Component Functions

Pure functions converting raw client facts into the five 0-100 sub-scores of the
health model (Recency/Frequency/Monetary extended with Trend and Engagement).

Every function is total and bucketed: thresholds are inclusive lower bounds
checked in descending order, the first match wins, and there is no
interpolation, so identical inputs always yield identical scores. Missing facts
(no revenue, no interactions) score 0; they are never errors.
"""

from typing import Optional


# Months in the frequency/monetary window
SCORE_WINDOW_MONTHS: int = 6


def calc_recency(days_since_last_revenue: Optional[int]) -> int:
    """
    Score how recently the client generated revenue.

    Args:
        days_since_last_revenue: Days since the newest revenue record, or None
            if the client has no revenue in the window.

    Returns:
        100 (<=30 days), 75 (<=60), 50 (<=90), 25 (<=180), otherwise 0.
    """
    if days_since_last_revenue is None:
        return 0
    if days_since_last_revenue <= 30:
        return 100
    if days_since_last_revenue <= 60:
        return 75
    if days_since_last_revenue <= 90:
        return 50
    if days_since_last_revenue <= 180:
        return 25
    return 0


def calc_frequency(revenue_count_last_6_months: int) -> int:
    """
    Score how often the client operates, as revenue records per month.

    Args:
        revenue_count_last_6_months: Revenue records in the 6-month window.

    Returns:
        100 (>=4/month), 75 (>=2), 50 (>=1), 25 (>=0.5), otherwise 0.
    """
    avg_per_month = revenue_count_last_6_months / SCORE_WINDOW_MONTHS
    if avg_per_month >= 4:
        return 100
    if avg_per_month >= 2:
        return 75
    if avg_per_month >= 1:
        return 50
    if avg_per_month >= 0.5:
        return 25
    return 0


def calc_monetary(avg_monthly_revenue: float, median_revenue: float) -> int:
    """
    Score average monthly revenue relative to the median client.

    Args:
        avg_monthly_revenue: Client's 6-month revenue divided by 6.
        median_revenue: Median of the same figure across all clients with revenue.

    Returns:
        With a zero median: 75 if the client has any revenue, else 0.
        Otherwise by ratio avg/median: 100 (>=2), 75 (>=1), 50 (>=0.5),
        25 (>0), otherwise 0.
    """
    if median_revenue == 0:
        return 75 if avg_monthly_revenue > 0 else 0

    ratio = avg_monthly_revenue / median_revenue
    if ratio >= 2:
        return 100
    if ratio >= 1:
        return 75
    if ratio >= 0.5:
        return 50
    if ratio > 0:
        return 25
    return 0


def calc_trend(current_month_revenue: float, previous_month_revenue: float) -> int:
    """
    Score month-over-month revenue growth.

    Args:
        current_month_revenue: Revenue of the most recent complete month.
        previous_month_revenue: Revenue of the month before it.

    Returns:
        50 when both months are empty (no signal, not penalized), 100 when
        revenue starts from nothing, 0 when it drops to nothing. Otherwise by
        growth percentage: 100 (>=20%), 75 (>=0%), 50 (>=-20%), 25 (>=-50%),
        else 0.
    """
    if previous_month_revenue == 0 and current_month_revenue == 0:
        return 50
    if previous_month_revenue == 0 and current_month_revenue > 0:
        return 100
    if previous_month_revenue > 0 and current_month_revenue == 0:
        return 0

    growth = (current_month_revenue - previous_month_revenue) / previous_month_revenue * 100
    if growth >= 20:
        return 100
    if growth >= 0:
        return 75
    if growth >= -20:
        return 50
    if growth >= -50:
        return 25
    return 0


def calc_engagement(interactions_last_90_days: int) -> int:
    """Score advisor touches in the last 90 days: 100 (>=6), 75 (>=4), 50 (>=2), 25 (>=1), else 0."""
    if interactions_last_90_days >= 6:
        return 100
    if interactions_last_90_days >= 4:
        return 75
    if interactions_last_90_days >= 2:
        return 50
    if interactions_last_90_days >= 1:
        return 25
    return 0


__all__ = [
    "SCORE_WINDOW_MONTHS",
    "calc_recency",
    "calc_frequency",
    "calc_monetary",
    "calc_trend",
    "calc_engagement",
]
