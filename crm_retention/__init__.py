"""
Client Retention Analytics Backend Package.

FastAPI service layer for the advisory CRM retention analytics: per-client
health scores and lead cohort retention curves.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, data access and caching
    - models: Pydantic schemas and enums
    - services: Scoring, cohort and funnel business logic
    - jobs: Daily automation jobs
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
