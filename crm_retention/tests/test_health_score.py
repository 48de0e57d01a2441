"""
Pytest test module for the health score calculator.

Covers the weighted blend and its half-up rounding, classification
boundaries, score windows, the cross-client median, the two end-to-end
client scenarios, the single-client "reuse today's row" policy, and the bulk
job (batching, failure propagation, cache invalidation, idempotence).

All windows are pinned through the as_of fixture (2026-10-19 10:00,
America/Sao_Paulo).
"""

from datetime import date, datetime, timedelta
from typing import List

import pytest

from crm_retention.models.enums import RiskClassification
from crm_retention.models.schemas import HealthScoreComponents, RevenueRecord
from crm_retention.services.health_score import (
    HEALTH_SCORES_CACHE_FAMILY,
    build_health_score,
    calculate_bulk_health_scores,
    calculate_health_score,
    classify_score,
    compute_components,
    compute_median_monthly_revenue,
    compute_score_windows,
    get_client_health_score,
    group_revenues_by_client,
    interaction_window_filters,
    revenue_window_filters,
)
from crm_retention.tests.conftest import (
    REPORT_TZ,
    FakeDataAccess,
    client_row,
    interaction_row,
    local_dt,
    revenue_row,
)


def _revenues(client_id: str, entries) -> List[RevenueRecord]:
    return [RevenueRecord(client_id=client_id, date=day, our_share=amount) for day, amount in entries]


# Twelve records (2/month), newest 10 days before as_of,
# Aug total 900 -> Sep total 1000 (+11%), window total 2900
HEALTHY_CLIENT_REVENUE = [
    (date(2026, 4, 10), 100.0),
    (date(2026, 5, 10), 100.0),
    (date(2026, 5, 20), 100.0),
    (date(2026, 6, 10), 100.0),
    (date(2026, 6, 20), 100.0),
    (date(2026, 7, 10), 100.0),
    (date(2026, 7, 20), 100.0),
    (date(2026, 8, 5), 450.0),
    (date(2026, 8, 20), 450.0),
    (date(2026, 9, 5), 500.0),
    (date(2026, 9, 20), 500.0),
    (date(2026, 10, 9), 300.0),
]


class TestCalculateHealthScore:
    """Weighted blend with half-up rounding."""

    def test_weighted_blend_rounds_half_up(self) -> None:
        components = HealthScoreComponents(
            recency=100, frequency=75, monetary=100, trend=75, engagement=75
        )
        # 30 + 18.75 + 20 + 11.25 + 7.5 = 87.5
        assert calculate_health_score(components) == 88

    def test_neutral_trend_only_rounds_up(self) -> None:
        components = HealthScoreComponents(
            recency=0, frequency=0, monetary=0, trend=50, engagement=0
        )
        # 7.5
        assert calculate_health_score(components) == 8

    def test_all_max_is_100(self) -> None:
        components = HealthScoreComponents(
            recency=100, frequency=100, monetary=100, trend=100, engagement=100
        )
        assert calculate_health_score(components) == 100

    def test_deterministic(self) -> None:
        components = HealthScoreComponents(
            recency=25, frequency=50, monetary=75, trend=25, engagement=50
        )
        results = {calculate_health_score(components) for _ in range(50)}
        assert len(results) == 1


class TestClassifyScore:
    """Inclusive lower bounds at 75/50/25."""

    @pytest.mark.parametrize('score,expected', [
        (100, RiskClassification.HEALTHY),
        (75, RiskClassification.HEALTHY),
        (74, RiskClassification.ATTENTION),
        (50, RiskClassification.ATTENTION),
        (49, RiskClassification.CRITICAL),
        (25, RiskClassification.CRITICAL),
        (24, RiskClassification.LOST),
        (0, RiskClassification.LOST),
    ])
    def test_boundaries(self, score: int, expected: RiskClassification) -> None:
        assert classify_score(score) == expected


class TestScoreWindows:
    """Windows derived from as_of in the report time zone."""

    def test_windows(self, as_of: datetime) -> None:
        windows = compute_score_windows(as_of)

        assert windows.six_months_ago == date(2026, 4, 1)
        assert windows.last_month == date(2026, 9, 1)
        assert windows.two_months_ago == date(2026, 8, 1)
        assert windows.ninety_days_ago == datetime(2026, 7, 21, 0, 0, tzinfo=REPORT_TZ)

    def test_windows_cross_year(self) -> None:
        windows = compute_score_windows(datetime(2026, 2, 3, 8, 0, tzinfo=REPORT_TZ))

        assert windows.six_months_ago == date(2025, 8, 1)
        assert windows.last_month == date(2026, 1, 1)
        assert windows.two_months_ago == date(2025, 12, 1)

    def test_read_filters_end_at_as_of(self, as_of: datetime) -> None:
        windows = compute_score_windows(as_of)

        revenue_filters = revenue_window_filters(windows)
        assert revenue_filters.gte == {'date': date(2026, 4, 1)}
        assert revenue_filters.lte == {'date': date(2026, 10, 19)}

        interaction_filters = interaction_window_filters(windows, client_id='c1')
        assert interaction_filters.eq == {'client_id': 'c1'}
        assert interaction_filters.lte == {'created_at': as_of}
        assert interaction_window_filters(windows).eq == {}


class TestMedianMonthlyRevenue:
    """Median of per-client 6-month totals divided by 6."""

    def test_empty_is_zero(self) -> None:
        assert compute_median_monthly_revenue({}) == 0.0

    def test_odd_count_takes_middle(self) -> None:
        grouped = group_revenues_by_client(
            _revenues('a', [(date(2026, 9, 1), 60.0)])
            + _revenues('b', [(date(2026, 9, 1), 600.0)])
            + _revenues('c', [(date(2026, 9, 1), 120.0), (date(2026, 8, 1), 60.0)])
        )
        # averages 10, 100, 30 -> sorted [10, 30, 100]
        assert compute_median_monthly_revenue(grouped) == pytest.approx(30.0)

    def test_even_count_takes_upper_middle(self) -> None:
        grouped = group_revenues_by_client(
            _revenues('a', [(date(2026, 9, 1), 60.0)])
            + _revenues('b', [(date(2026, 9, 1), 120.0)])
            + _revenues('c', [(date(2026, 9, 1), 180.0)])
            + _revenues('d', [(date(2026, 9, 1), 240.0)])
        )
        # averages 10, 20, 30, 40 -> sorted[2]
        assert compute_median_monthly_revenue(grouped) == pytest.approx(30.0)


@pytest.mark.parity
class TestEndToEndScenarios:
    """Full component computation for representative clients."""

    def test_healthy_client(self, as_of: datetime) -> None:
        windows = compute_score_windows(as_of)
        revenues = _revenues('c1', HEALTHY_CLIENT_REVENUE)
        median = (2900.0 / 6) / 2

        score = build_health_score('c1', revenues, 5, median, windows)

        assert score.components == HealthScoreComponents(
            recency=100, frequency=75, monetary=100, trend=75, engagement=75
        )
        assert score.score == 88
        assert score.classification == RiskClassification.HEALTHY
        assert score.calculated_at == as_of

    def test_client_without_any_activity(self, as_of: datetime) -> None:
        windows = compute_score_windows(as_of)

        score = build_health_score('c2', [], 0, 250.0, windows)

        assert score.components == HealthScoreComponents(
            recency=0, frequency=0, monetary=0, trend=50, engagement=0
        )
        assert score.score == 8
        assert score.classification == RiskClassification.LOST

    def test_recency_uses_whole_days(self, as_of: datetime) -> None:
        windows = compute_score_windows(as_of)
        revenues = _revenues('c3', [(as_of.date() - timedelta(days=31), 10.0)])

        components = compute_components(revenues, 0, 10.0, windows)

        assert components.recency == 75


@pytest.mark.asyncio
class TestGetClientHealthScore:
    """Single client: reuse today's row or compute and insert one."""

    async def test_cache_hit_returns_todays_row(self, as_of: datetime) -> None:
        earlier_today = as_of.replace(hour=7)
        data_access = FakeDataAccess(tables={'client_health_scores': [{
            'id': 'row-1',
            'client_id': 'c1',
            'score': 61,
            'classification': 'attention',
            'components': {
                'recency': 75, 'frequency': 50, 'monetary': 50, 'trend': 75, 'engagement': 25
            },
            'calculated_at': earlier_today,
        }]})

        score = await get_client_health_score('c1', data_access, as_of=as_of)

        assert score.id == 'row-1'
        assert score.score == 61
        assert 'fetch_all' not in data_access.call_names()
        assert 'insert_health_score' not in data_access.call_names()

    async def test_lookup_starts_at_local_midnight(self, as_of: datetime) -> None:
        data_access = FakeDataAccess()

        await get_client_health_score('c1', data_access, as_of=as_of)

        _, client_id, since = data_access.calls[0]
        assert client_id == 'c1'
        assert since == datetime(2026, 10, 19, 0, 0, tzinfo=REPORT_TZ)

    async def test_yesterdays_row_is_recomputed(self, as_of: datetime) -> None:
        data_access = FakeDataAccess(tables={
            'client_health_scores': [{
                'id': 'old',
                'client_id': 'c1',
                'score': 10,
                'classification': 'lost',
                'components': {
                    'recency': 0, 'frequency': 0, 'monetary': 0, 'trend': 50, 'engagement': 0
                },
                'calculated_at': as_of - timedelta(days=1),
            }],
            'revenues': [revenue_row('c1', day, amount) for day, amount in HEALTHY_CLIENT_REVENUE],
        })

        score = await get_client_health_score('c1', data_access, as_of=as_of)

        assert score.id != 'old'
        assert score.calculated_at == as_of
        assert len(data_access.tables['client_health_scores']) == 2

    async def test_cache_miss_computes_and_inserts(self, as_of: datetime) -> None:
        revenues = [revenue_row('c1', day, amount) for day, amount in HEALTHY_CLIENT_REVENUE]
        # Second client sets the median to half of c1's average
        revenues += [revenue_row('c2', date(2026, 9, 10), 1450.0)]
        # Small third client so the median lands on c2 (sorted[n // 2])
        revenues += [revenue_row('c3', date(2026, 9, 10), 60.0)]
        # Out of window: ignored by both the client and the median
        revenues += [revenue_row('c2', date(2026, 3, 31), 99999.0)]
        interactions = [interaction_row('c1', local_dt(2026, 10, d)) for d in (1, 3, 5, 7, 9)]
        interactions += [interaction_row('c1', local_dt(2026, 7, 20))]
        interactions += [interaction_row('c2', local_dt(2026, 10, 1))]

        data_access = FakeDataAccess(tables={
            'revenues': revenues,
            'interactions': interactions,
        })

        score = await get_client_health_score('c1', data_access, as_of=as_of)

        assert score.id is not None
        assert score.client_id == 'c1'
        assert score.components.engagement == 75
        assert score.components.monetary == 100
        assert score.score == 88
        assert score.classification == RiskClassification.HEALTHY
        assert len(data_access.tables['client_health_scores']) == 1

    async def test_second_call_same_day_reuses_row(self, as_of: datetime) -> None:
        data_access = FakeDataAccess()

        first = await get_client_health_score('c1', data_access, as_of=as_of)
        second = await get_client_health_score('c1', data_access, as_of=as_of + timedelta(hours=5))

        assert second.id == first.id
        assert len(data_access.tables['client_health_scores']) == 1

    async def test_activity_after_as_of_is_ignored(self, as_of: datetime) -> None:
        data_access = FakeDataAccess(tables={
            'revenues': [revenue_row('c1', date(2026, 10, 25), 5000.0)],
            'interactions': [interaction_row('c1', local_dt(2026, 10, d)) for d in (20, 21, 22)],
        })

        score = await get_client_health_score('c1', data_access, as_of=as_of)

        assert score.components.recency == 0
        assert score.components.frequency == 0
        assert score.components.engagement == 0

    async def test_read_errors_propagate(self, as_of: datetime) -> None:
        class FailingDataAccess(FakeDataAccess):
            async def fetch_all(self, table, columns, filters=None):
                raise RuntimeError('connection reset')

        with pytest.raises(RuntimeError, match='connection reset'):
            await get_client_health_score('c1', FailingDataAccess(), as_of=as_of)


@pytest.mark.asyncio
class TestBulkHealthScores:
    """Bulk job over every active client."""

    @pytest.fixture
    def populated(self) -> FakeDataAccess:
        return FakeDataAccess(tables={
            'clients': [
                client_row('c1'),
                client_row('c2'),
                client_row('c3'),
                client_row('inactive', active=False),
            ],
            'revenues': (
                [revenue_row('c1', day, amount) for day, amount in HEALTHY_CLIENT_REVENUE]
                + [revenue_row('c2', date(2026, 9, 10), 1450.0)]
                + [revenue_row('inactive', date(2026, 9, 10), 10.0)]
            ),
            'interactions': [
                interaction_row('c1', local_dt(2026, 10, d)) for d in (1, 3, 5, 7, 9)
            ],
        })

    async def test_scores_every_active_client(
        self,
        populated: FakeDataAccess,
        summary_cache,
        as_of: datetime,
    ) -> None:
        scored = await calculate_bulk_health_scores(populated, as_of=as_of, cache=summary_cache)

        assert scored == 3
        rows = populated.tables['client_health_scores']
        assert sorted(row['client_id'] for row in rows) == ['c1', 'c2', 'c3']
        assert all(row['calculated_at'] == as_of for row in rows)

        by_client = {row['client_id']: row for row in rows}
        assert by_client['c3']['score'] == 8
        assert by_client['c3']['classification'] == 'lost'

    async def test_uses_configured_batch_size(
        self,
        populated: FakeDataAccess,
        summary_cache,
        as_of: datetime,
    ) -> None:
        await calculate_bulk_health_scores(populated, as_of=as_of, cache=summary_cache)

        insert_calls = [call for call in populated.calls if call[0] == 'insert_many']
        assert insert_calls == [('insert_many', 'client_health_scores', 3, 500)]

    async def test_reads_are_bulk(
        self,
        populated: FakeDataAccess,
        summary_cache,
        as_of: datetime,
    ) -> None:
        await calculate_bulk_health_scores(populated, as_of=as_of, cache=summary_cache)

        tables_read = sorted(call[1] for call in populated.calls if call[0] == 'fetch_all')
        assert tables_read == ['clients', 'interactions', 'revenues']

    async def test_invalidates_summary_cache(
        self,
        populated: FakeDataAccess,
        summary_cache,
        as_of: datetime,
    ) -> None:
        summary_cache.set((HEALTH_SCORES_CACHE_FAMILY, 'summary'), 'stale')
        summary_cache.set(('other', 'summary'), 'kept')

        await calculate_bulk_health_scores(populated, as_of=as_of, cache=summary_cache)

        assert summary_cache.get((HEALTH_SCORES_CACHE_FAMILY, 'summary')) is None
        assert summary_cache.get(('other', 'summary')) == 'kept'

    async def test_insert_failure_propagates(
        self,
        populated: FakeDataAccess,
        summary_cache,
        as_of: datetime,
    ) -> None:
        populated.fail_insert = RuntimeError('batch failed')
        summary_cache.set((HEALTH_SCORES_CACHE_FAMILY, 'summary'), 'cached')

        with pytest.raises(RuntimeError, match='batch failed'):
            await calculate_bulk_health_scores(populated, as_of=as_of, cache=summary_cache)

        assert populated.tables['client_health_scores'] == []
        assert summary_cache.get((HEALTH_SCORES_CACHE_FAMILY, 'summary')) == 'cached'

    async def test_rerun_appends_identical_scores(
        self,
        populated: FakeDataAccess,
        summary_cache,
        as_of: datetime,
    ) -> None:
        await calculate_bulk_health_scores(populated, as_of=as_of, cache=summary_cache)
        await calculate_bulk_health_scores(
            populated, as_of=as_of + timedelta(minutes=30), cache=summary_cache
        )

        rows = populated.tables['client_health_scores']
        assert len(rows) == 6
        for client_id in ('c1', 'c2', 'c3'):
            first, second = [row for row in rows if row['client_id'] == client_id]
            assert first['score'] == second['score']
            assert first['classification'] == second['classification']
            assert first['components'] == second['components']
            assert first['calculated_at'] != second['calculated_at']

    async def test_no_active_clients(self, summary_cache, as_of: datetime) -> None:
        data_access = FakeDataAccess()

        scored = await calculate_bulk_health_scores(data_access, as_of=as_of, cache=summary_cache)

        assert scored == 0

    async def test_backdated_run_ignores_later_revenue(self, summary_cache) -> None:
        as_of = local_dt(2026, 6, 15, hour=10)
        data_access = FakeDataAccess(tables={
            'clients': [client_row('c1')],
            'revenues': [revenue_row('c1', date(2026, 10, 1), 800.0)],
            'interactions': [interaction_row('c1', local_dt(2026, 9, 1))],
        })

        await calculate_bulk_health_scores(data_access, as_of=as_of, cache=summary_cache)

        (row,) = data_access.tables['client_health_scores']
        assert row['components']['recency'] == 0
        assert row['components']['frequency'] == 0
        assert row['components']['monetary'] == 0
        assert row['components']['engagement'] == 0
        assert row['score'] == 8
