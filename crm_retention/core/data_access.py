"""
Data access layer for the retention analytics engine.

The retention engine reads four flat record streams (leads, clients, revenues,
interactions) and appends rows to client_health_scores. The backend caps every
single read at a fixed row count, so DataAccess.fetch_all() pages internally
until a page comes back shorter than the page size; callers always receive the
complete result set or an exception, never a partial list.

No retry or backoff happens here. asyncpg errors propagate unchanged to the
caller; the pool's command_timeout is the only timeout.

Usage:
    data_access = DataAccess()
    revenues = await data_access.fetch_all(
        'revenues',
        ['client_id', 'date', 'our_share'],
        RecordFilters(gte={'date': date(2026, 4, 1)}),
    )
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from asyncpg import Pool

from crm_retention.core.config import get_settings
from crm_retention.core.database import get_db_pool
from crm_retention.sql.retention_queries import (
    HEALTH_SCORE_INSERT_COLUMNS,
    HEALTH_SCORE_TABLE,
    get_health_score_summary_query,
    get_insert_query,
    get_latest_health_score_query,
    get_paged_select_query,
    get_recent_health_scores_query,
)


logger = logging.getLogger(__name__)


@dataclass
class RecordFilters:
    """
    Filters applied to a paginated table read.

    Attributes:
        eq: Equality filters {column: value}.
        gte: Inclusive lower bounds {column: value}.
        lte: Inclusive upper bounds {column: value}.
    """
    eq: Dict[str, Any] = field(default_factory=dict)
    gte: Dict[str, Any] = field(default_factory=dict)
    lte: Dict[str, Any] = field(default_factory=dict)


class DataAccess:
    """
    Paginated reads and batched writes over the CRM tables.

    Args:
        pool: asyncpg pool to use. Defaults to the application pool.
        page_size: Rows per page. Defaults to settings.fetch_page_size.
    """

    def __init__(self, pool: Optional[Pool] = None, page_size: Optional[int] = None):
        self._pool = pool
        self.page_size = page_size or get_settings().fetch_page_size

    async def _get_pool(self) -> Pool:
        if self._pool is None:
            self._pool = await get_db_pool()
        return self._pool

    async def fetch_all(
        self,
        table: str,
        columns: Sequence[str],
        filters: Optional[RecordFilters] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read every row of a table that matches the filters.

        Args:
            table: Whitelisted table name.
            columns: Columns to return.
            filters: Optional eq/gte/lte filters.

        Returns:
            List of row dicts in id order.

        Raises:
            ValueError: If the table or a column is unknown.
            asyncpg.PostgresError: If any page read fails.
        """
        filters = filters or RecordFilters()
        pool = await self._get_pool()

        rows: List[Dict[str, Any]] = []
        offset = 0
        pages = 0

        async with pool.acquire() as conn:
            while True:
                query, args = get_paged_select_query(
                    table,
                    columns,
                    eq=filters.eq,
                    gte=filters.gte,
                    lte=filters.lte,
                    limit=self.page_size,
                    offset=offset,
                )
                page = await conn.fetch(query, *args)
                pages += 1
                rows.extend(dict(record) for record in page)

                if len(page) < self.page_size:
                    break
                offset += self.page_size

        logger.debug(f"Fetched {len(rows)} rows from {table} in {pages} page(s)")
        return rows

    async def insert_many(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        batch_size: int,
    ) -> int:
        """
        Insert rows in fixed-size batches, one transaction per batch.

        A failing batch rolls back on its own and aborts every later batch; the
        error is re-raised. Batches committed before the failure stay committed.

        Args:
            table: Whitelisted table name.
            columns: Column order of each row tuple.
            rows: Row value tuples.
            batch_size: Maximum rows per batch.

        Returns:
            Number of rows inserted.
        """
        if not rows:
            return 0

        query = get_insert_query(table, columns)
        pool = await self._get_pool()
        inserted = 0

        async with pool.acquire() as conn:
            for start in range(0, len(rows), batch_size):
                batch = rows[start:start + batch_size]
                try:
                    async with conn.transaction():
                        await conn.executemany(query, batch)
                except Exception:
                    logger.error(
                        f"Insert into {table} failed at batch starting row {start}; "
                        f"{inserted} row(s) already committed, remaining batches aborted"
                    )
                    raise
                inserted += len(batch)

        return inserted

    async def fetch_latest_health_score(
        self,
        client_id: str,
        since: datetime,
    ) -> Optional[Dict[str, Any]]:
        """Newest client_health_scores row for a client with calculated_at >= since."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(get_latest_health_score_query(), client_id, since)
        return dict(row) if row is not None else None

    async def fetch_recent_health_scores(
        self,
        client_id: str,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """The client's newest `limit` client_health_scores rows, newest first."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(get_recent_health_scores_query(), client_id, limit)
        return [dict(row) for row in rows]

    async def insert_health_score(self, values: Sequence[Any]) -> Dict[str, Any]:
        """
        Insert a single health score row and return it as stored.

        Args:
            values: Values in HEALTH_SCORE_INSERT_COLUMNS order.
        """
        query = get_insert_query(HEALTH_SCORE_TABLE, HEALTH_SCORE_INSERT_COLUMNS, returning=True)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(query, *values)
        return dict(row)

    async def fetch_health_score_summary(self) -> Dict[str, Any]:
        """Backend-side aggregation of the latest score per active client."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(get_health_score_summary_query())
        return dict(row) if row is not None else {}
