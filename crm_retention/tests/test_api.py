"""
API contract tests for the health score and retention routers.

Routes are exercised through FastAPI's TestClient with get_data_access
overridden by FakeDataAccess; the lifespan (database pool) is not started.
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from crm_retention.core.cache import summary_cache
from crm_retention.core.dependencies import get_data_access
from crm_retention.main import app
from crm_retention.tests.conftest import FakeDataAccess, client_row, revenue_row


@pytest.fixture
def fake_data() -> FakeDataAccess:
    return FakeDataAccess(
        tables={
            'clients': [client_row('c1'), client_row('c2')],
            'revenues': [revenue_row('c1', date.today() - timedelta(days=2), 100.0)],
        },
        summary_row={
            'healthy': 1, 'attention': 0, 'critical': 0, 'lost': 1,
            'total': 2, 'average_score': 48,
        },
    )


@pytest.fixture
def client(fake_data: FakeDataAccess):
    app.dependency_overrides[get_data_access] = lambda: fake_data
    summary_cache.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    summary_cache.clear()


class TestRoutesRegistered:
    """Every public route is mounted."""

    def test_paths(self) -> None:
        paths = {route.path for route in app.routes if hasattr(route, 'path')}

        assert '/health' in paths
        assert '/health-scores/summary' in paths
        assert '/health-scores/{client_id}' in paths
        assert '/health-scores/bulk' in paths
        assert '/health-scores/{client_id}/churn-risk' in paths
        assert '/retention/cohorts' in paths
        assert '/retention/funnel' in paths
        assert '/retention/dashboard' in paths
        assert '/' not in paths


class TestHealthScoreRoutes:
    """/health-scores"""

    def test_health(self, client: TestClient) -> None:
        assert client.get('/health').json() == {'status': 'healthy'}

    def test_cors_allows_dashboard_origin(self, client: TestClient) -> None:
        response = client.options(
            '/health-scores/summary',
            headers={
                'Origin': 'http://localhost:5173',
                'Access-Control-Request-Method': 'GET',
            },
        )

        assert response.status_code == 200
        assert response.headers['access-control-allow-origin'] == 'http://localhost:5173'

    def test_summary(self, client: TestClient) -> None:
        response = client.get('/health-scores/summary')

        assert response.status_code == 200
        assert response.json()['total'] == 2
        assert response.json()['averageScore'] == 48.0

    def test_client_score(self, client: TestClient, fake_data: FakeDataAccess) -> None:
        response = client.get('/health-scores/c1')

        assert response.status_code == 200
        body = response.json()
        assert body['client_id'] == 'c1'
        assert set(body['components']) == {'recency', 'frequency', 'monetary', 'trend', 'engagement'}
        assert len(fake_data.tables['client_health_scores']) == 1

    def test_bulk(self, client: TestClient, fake_data: FakeDataAccess) -> None:
        response = client.post('/health-scores/bulk')

        assert response.status_code == 200
        assert response.json()['scored'] == 2
        assert len(fake_data.tables['client_health_scores']) == 2

    def test_churn_risk_never_scored(self, client: TestClient, fake_data: FakeDataAccess) -> None:
        response = client.get('/health-scores/c1/churn-risk')

        assert response.status_code == 200
        assert response.json()['churnProbability'] == 0
        assert response.json()['latestScore'] is None
        assert fake_data.tables['client_health_scores'] == []

    def test_churn_risk_after_scoring(self, client: TestClient) -> None:
        client.get('/health-scores/c2')

        response = client.get('/health-scores/c2/churn-risk')

        assert response.status_code == 200
        body = response.json()
        assert body['latestClassification'] == 'lost'
        assert body['churnProbability'] == 85
        assert body['trend'] == 'stable'

    def test_database_error_is_500(self, client: TestClient) -> None:
        with patch(
            'crm_retention.api.health_scores.get_health_score_summary',
            new=AsyncMock(side_effect=RuntimeError('pool closed')),
        ):
            response = client.get('/health-scores/summary')

        assert response.status_code == 500
        assert 'pool closed' in response.json()['detail']


class TestRetentionRoutes:
    """/retention"""

    def test_cohorts_default(self, client: TestClient) -> None:
        response = client.get('/retention/cohorts')

        assert response.status_code == 200
        assert response.json()['cohorts'] == []
        assert response.json()['bestCohort'] is None

    def test_cohorts_start_after_end(self, client: TestClient) -> None:
        response = client.get('/retention/cohorts', params={'start': '2026-06-01', 'end': '2026-05-01'})

        assert response.status_code == 400

    def test_funnel(self, client: TestClient) -> None:
        response = client.get('/retention/funnel', params={'months': 3})

        assert response.status_code == 200
        assert len(response.json()['leadsByMonth']) == 3
        assert len(response.json()['stages']) == 5

    def test_funnel_rejects_zero_months(self, client: TestClient) -> None:
        assert client.get('/retention/funnel', params={'months': 0}).status_code == 422

    def test_dashboard(self, client: TestClient) -> None:
        response = client.get('/retention/dashboard')

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {'healthSummary', 'cohortReport', 'funnel', 'generatedAt'}
