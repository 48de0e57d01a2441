"""
Retention API package initialization.

This package contains FastAPI router modules for the retention analytics engine:
- health_scores: Client health scores (summary, single client, churn risk, bulk run)
- retention: Cohort retention, lead funnel and the combined dashboard
"""

from fastapi import APIRouter

# Import router modules
from crm_retention.api.health_scores import router as health_scores_router
from crm_retention.api.retention import router as retention_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(health_scores_router, prefix="/health-scores", tags=["health-scores"])
api_router.include_router(retention_router, prefix="/retention", tags=["retention"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "health_scores_router",
    "retention_router",
]
