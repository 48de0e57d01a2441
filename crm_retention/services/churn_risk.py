"""
Client Churn Risk Service

Estimates how likely a client is to churn from its recent health score
history. The append-only client_health_scores table keeps every computation,
so the newest rows of a client show both where it stands and which way it is
moving.

- The newest row's score picks a base probability per classification band.
- The change from the previous row sets the trend: more than +5 points is
  improving (-10), more than -5 points is declining (+15).
- Every component under 50 becomes a risk factor, high severity under 25.
"""

import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from crm_retention.core.data_access import DataAccess
from crm_retention.models.enums import RiskClassification, RiskSeverity, ScoreTrend
from crm_retention.models.schemas import ChurnRisk, ChurnRiskFactor
from crm_retention.services.health_score import classify_score


logger = logging.getLogger(__name__)


# Rows of history read per client
CHURN_HISTORY_ROWS: int = 3

BASE_CHURN_PROBABILITY: Dict[RiskClassification, int] = {
    RiskClassification.HEALTHY: 5,
    RiskClassification.ATTENTION: 25,
    RiskClassification.CRITICAL: 60,
    RiskClassification.LOST: 85,
}

# Score change (points) beyond which the trend is no longer stable
TREND_THRESHOLD: int = 5
IMPROVING_ADJUSTMENT: int = -10
DECLINING_ADJUSTMENT: int = 15

WEAK_COMPONENT_BELOW: int = 50
HIGH_SEVERITY_BELOW: int = 25

# component -> (factor, description, severity when 25 <= value < 50)
COMPONENT_FACTORS: Tuple[Tuple[str, str, str, RiskSeverity], ...] = (
    ("recency", "Recency", "No recent revenue from this client", RiskSeverity.MEDIUM),
    ("frequency", "Frequency", "Few revenue records in the last 6 months", RiskSeverity.MEDIUM),
    ("monetary", "Monetary value", "Revenue below the median client", RiskSeverity.MEDIUM),
    ("trend", "Revenue trend", "Revenue falling against the previous month", RiskSeverity.MEDIUM),
    ("engagement", "Engagement", "Few interactions in the last 90 days", RiskSeverity.LOW),
)


def score_trend(latest_score: int, previous_score: int) -> ScoreTrend:
    diff = latest_score - previous_score
    if diff > TREND_THRESHOLD:
        return ScoreTrend.IMPROVING
    if diff < -TREND_THRESHOLD:
        return ScoreTrend.DECLINING
    return ScoreTrend.STABLE


def component_risk_factors(components: Mapping[str, Any]) -> List[ChurnRiskFactor]:
    """Risk factors for every component scored under 50; missing components are skipped."""
    factors = []
    for component, factor, description, mid_severity in COMPONENT_FACTORS:
        value = components.get(component)
        if value is None or value >= WEAK_COMPONENT_BELOW:
            continue
        factors.append(ChurnRiskFactor(
            factor=factor,
            severity=RiskSeverity.HIGH if value < HIGH_SEVERITY_BELOW else mid_severity,
            description=description,
        ))
    return factors


def assess_churn_risk(client_id: str, rows: Sequence[Mapping[str, Any]]) -> ChurnRisk:
    """
    Churn risk from a client's health score rows.

    Args:
        client_id: Client the rows belong to.
        rows: client_health_scores rows, newest first. Only the first two
            are used: the newest for the level, the second for the trend.

    Returns:
        ChurnRisk; probability 0 and no latest score when rows is empty.
    """
    if not rows:
        return ChurnRisk(client_id=client_id, churnProbability=0)

    latest = rows[0]
    latest_score = int(latest["score"])
    probability = BASE_CHURN_PROBABILITY[classify_score(latest_score)]

    trend = ScoreTrend.STABLE
    if len(rows) >= 2:
        trend = score_trend(latest_score, int(rows[1]["score"]))
        if trend == ScoreTrend.IMPROVING:
            probability = max(0, probability + IMPROVING_ADJUSTMENT)
        elif trend == ScoreTrend.DECLINING:
            probability = min(100, probability + DECLINING_ADJUSTMENT)

    risk_factors = component_risk_factors(latest.get("components") or {})
    if trend == ScoreTrend.DECLINING:
        risk_factors.append(ChurnRiskFactor(
            factor="Score trend",
            severity=RiskSeverity.HIGH,
            description="Health score falling between calculations",
        ))

    return ChurnRisk(
        client_id=client_id,
        churnProbability=probability,
        riskFactors=risk_factors,
        trend=trend,
        latestScore=latest_score,
        latestClassification=RiskClassification(latest["classification"]),
    )


async def get_client_churn_risk(client_id: str, data_access: DataAccess) -> ChurnRisk:
    """
    Read the client's newest score rows and assess its churn risk.

    Raises:
        asyncpg.PostgresError: If the read fails, unchanged.
    """
    rows = await data_access.fetch_recent_health_scores(client_id, CHURN_HISTORY_ROWS)
    risk = assess_churn_risk(client_id, rows)
    logger.info(
        f"Churn risk for client {client_id}: {risk.churnProbability}% "
        f"({risk.trend.value}, {len(risk.riskFactors)} factor(s))"
    )
    return risk


__all__ = [
    "CHURN_HISTORY_ROWS",
    "BASE_CHURN_PROBABILITY",
    "score_trend",
    "component_risk_factors",
    "assess_churn_risk",
    "get_client_churn_risk",
]
