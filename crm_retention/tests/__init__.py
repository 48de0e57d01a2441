'''
CRM Retention Backend Test Suite

Test Modules:
-------------
- test_score_components.py: Bucket boundaries of the five health sub-scores
- test_health_score.py: Weighted score, classification, scoring windows,
  on-demand and bulk scoring over FakeDataAccess
- test_churn_risk.py: Churn probability bands, score trend boundaries,
  risk factors, empty history
- test_data_access.py: Query builders, paging, batched inserts
- test_cohort_builder.py: Conversion trust rules, cohort retention, best cohort
- test_funnel.py: Funnel window, stages, conversion rate, monthly volume
- test_retention_report.py: Report assembly, summary cache, dashboard
- test_jobs.py: Daily health digest idempotency and Slack delivery
- test_api.py: Route registration and HTTP contract

Running Tests:
--------------
    pip install -e ".[test]"
    pytest crm_retention/tests/ -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
