"""
Enumeration definitions for the retention analytics backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization and
deserialization in API responses. Values match the strings stored in the
CRM database.
"""

from enum import Enum


class LeadStatus(str, Enum):
    """
    Pipeline status of a lead.

    A lead moves through the pipeline over time; converted_at is only set once
    the status becomes CONVERTED.

    - new: Just entered the pipeline
    - in_contact: An advisor is working the lead
    - assessor_switch: Prospect is moving over from another advisory firm
    - converted: Became a client
    - lost: Dropped out of the pipeline
    """
    NEW = "new"
    IN_CONTACT = "in_contact"
    ASSESSOR_SWITCH = "assessor_switch"
    CONVERTED = "converted"
    LOST = "lost"


class RiskClassification(str, Enum):
    """
    Health classification derived from the blended 0-100 health score.

    Lower bounds are inclusive:
    - healthy: score >= 75
    - attention: 50 <= score < 75
    - critical: 25 <= score < 50
    - lost: score < 25
    """
    HEALTHY = "healthy"
    ATTENTION = "attention"
    CRITICAL = "critical"
    LOST = "lost"


class ScoreTrend(str, Enum):
    """
    Direction of a client's health score between its two newest rows.

    - improving: score rose by more than 5 points
    - stable: changed by 5 points or less (or only one row exists)
    - declining: score fell by more than 5 points
    """
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RiskSeverity(str, Enum):
    """Severity of a single churn risk factor."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
