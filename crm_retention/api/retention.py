"""
FastAPI router module for retention reports.

Implements GET /retention/cohorts (cohort retention for a created_at window),
GET /retention/funnel (lead funnel over trailing months), and
GET /retention/dashboard (health summary, cohorts and funnel in one payload).
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from crm_retention.core.dependencies import DataAccessDep
from crm_retention.models.schemas import CohortReport, FunnelMetrics, RetentionDashboard
from crm_retention.services.funnel import DEFAULT_FUNNEL_MONTHS
from crm_retention.services.retention_report import (
    build_cohort_report,
    build_funnel_report,
    build_retention_dashboard,
)


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    '/cohorts',
    response_model=CohortReport,
    summary="Get Cohort Retention",
    description="""
    Group the leads created between start and end by entry month and report,
    for each cohort, conversion and the share of tracked clients with revenue
    in each of the following months. Months that have not started yet are
    flagged isFuture.

    Defaults to the last 6 calendar months including the current one.
    """
)
async def get_cohorts(
    data_access: DataAccessDep,
    start: Optional[date] = Query(default=None, description="First lead creation day (inclusive)"),
    end: Optional[date] = Query(default=None, description="Last lead creation day (inclusive)"),
) -> CohortReport:
    if start is not None and end is not None and start > end:
        raise HTTPException(
            status_code=400,
            detail=f"start ({start}) must not be after end ({end})"
        )

    try:
        return await build_cohort_report(data_access, period_start=start, period_end=end)
    except ValueError as e:
        # Only one bound given and it falls outside the default window
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error building cohort report: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to build cohort report: {str(e)}"
        )


@router.get(
    '/funnel',
    response_model=FunnelMetrics,
    summary="Get Lead Funnel",
    description="""
    Stage counts, conversion rate (converted over non-lost leads), average
    days to convert and monthly lead volume for the leads created in the
    trailing `months` calendar months.
    """
)
async def get_funnel(
    data_access: DataAccessDep,
    months: int = Query(default=DEFAULT_FUNNEL_MONTHS, ge=1, le=36, description="Months in the window"),
) -> FunnelMetrics:
    try:
        return await build_funnel_report(data_access, months=months)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error building funnel report: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to build funnel report: {str(e)}"
        )


@router.get(
    '/dashboard',
    response_model=RetentionDashboard,
    summary="Get Retention Dashboard",
)
async def get_dashboard(data_access: DataAccessDep) -> RetentionDashboard:
    """Health summary, default cohort report and 6-month funnel."""
    try:
        return await build_retention_dashboard(data_access)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error building retention dashboard: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to build retention dashboard: {str(e)}"
        )
