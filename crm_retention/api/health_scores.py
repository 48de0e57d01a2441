"""
FastAPI router module for client health scores.

Implements GET /health-scores/summary (classification counts over current
scores), GET /health-scores/{client_id} (today's score, computed on demand),
GET /health-scores/{client_id}/churn-risk (churn risk from the score history)
and POST /health-scores/bulk (score every active client).

Scores are append-only: every computation inserts a new client_health_scores
row and the newest row per client is its current score.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from crm_retention.core.dependencies import DataAccessDep, SettingsDep
from crm_retention.models.schemas import (
    BulkScoreResponse,
    ChurnRisk,
    ClientHealthScore,
    HealthScoreSummary,
)
from crm_retention.services.calendar_windows import resolve_as_of
from crm_retention.services.churn_risk import get_client_churn_risk
from crm_retention.services.health_score import (
    calculate_bulk_health_scores,
    get_client_health_score,
)
from crm_retention.services.retention_report import get_health_score_summary


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# API Endpoints
# =============================================================================

@router.get(
    '/summary',
    response_model=HealthScoreSummary,
    summary="Get Health Score Summary",
    description="""
    Count active clients per classification using each client's most recent
    health score row, plus the average score.

    The result is cached in-process and invalidated whenever a bulk run
    writes new scores.
    """
)
async def get_summary(data_access: DataAccessDep) -> HealthScoreSummary:
    try:
        return await get_health_score_summary(data_access)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching health score summary: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch health score summary: {str(e)}"
        )


@router.get(
    '/{client_id}',
    response_model=ClientHealthScore,
    summary="Get Client Health Score",
    description="""
    Return the client's health score for today (report time zone).

    If a score was already calculated today it is returned unchanged;
    otherwise a new score is computed from the last 6 months of revenue and
    the last 90 days of interactions, stored, and returned.
    """
)
async def get_client_score(
    client_id: str,
    data_access: DataAccessDep,
) -> ClientHealthScore:
    try:
        return await get_client_health_score(client_id, data_access)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing health score for client={client_id}: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute health score: {str(e)}"
        )


@router.get(
    '/{client_id}/churn-risk',
    response_model=ChurnRisk,
    summary="Get Client Churn Risk",
    description="""
    Estimate the client's churn probability from its three newest health
    score rows: a base probability per classification, adjusted by the score
    trend, plus one risk factor per weak component.

    Does not compute a new score; a client that was never scored returns
    probability 0.
    """
)
async def get_churn_risk(
    client_id: str,
    data_access: DataAccessDep,
) -> ChurnRisk:
    try:
        return await get_client_churn_risk(client_id, data_access)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error assessing churn risk for client={client_id}: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to assess churn risk: {str(e)}"
        )


@router.post(
    '/bulk',
    response_model=BulkScoreResponse,
    summary="Score All Active Clients",
    description="""
    Recompute the health score of every active client and append one row per
    client, in batches. A failing batch aborts the remaining ones; batches
    already written stay committed.
    """
)
async def bulk_score(
    data_access: DataAccessDep,
    settings: SettingsDep,
    as_of: Optional[datetime] = Query(
        default=None,
        description="Reference timestamp (defaults to now)"
    ),
) -> BulkScoreResponse:
    try:
        as_of = resolve_as_of(as_of, settings.tzinfo)
        scored = await calculate_bulk_health_scores(data_access, as_of=as_of)
        logger.info(f"Bulk health score run scored {scored} clients")
        return BulkScoreResponse(scored=scored, calculatedAt=as_of)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error running bulk health scores: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to run bulk health scores: {str(e)}"
        )
