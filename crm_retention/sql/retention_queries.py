"""
Retention Queries Module for the retention analytics backend.

Provides parameterized PostgreSQL queries for the four record streams the
retention engine reads (leads, clients, revenues, interactions) and for the
append-only client_health_scores fact table it writes.

Identifiers (table and column names) cannot be bound as query parameters, so
every identifier is checked against TABLE_COLUMNS before it is interpolated.
Values are always bound positionally ($1, $2, ...).

This module follows the Repository Pattern for clean separation between
business logic and data access.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


# =============================================================================
# CONSTANTS
# =============================================================================

# Readable/writable columns per table. Every table has an "id" primary key used
# for stable pagination order.
TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    'leads': ('id', 'created_at', 'status', 'converted_at', 'assessor_id'),
    'clients': ('id', 'name', 'active', 'converted_from_lead_id'),
    'revenues': ('id', 'client_id', 'date', 'our_share'),
    'interactions': ('id', 'client_id', 'created_at'),
    'client_health_scores': (
        'id', 'client_id', 'score', 'classification', 'components', 'calculated_at',
    ),
}

HEALTH_SCORE_TABLE: str = 'client_health_scores'

# Columns written by the health score calculator; id is generated by the database
HEALTH_SCORE_INSERT_COLUMNS: Tuple[str, ...] = (
    'client_id', 'score', 'classification', 'components', 'calculated_at',
)


# =============================================================================
# IDENTIFIER VALIDATION
# =============================================================================

def validate_identifiers(table: str, columns: Sequence[str]) -> None:
    """
    Ensure a table and its columns are known before building SQL.

    Args:
        table: Table name.
        columns: Column names referenced by the query (select list or filters).

    Raises:
        ValueError: If the table or any column is not whitelisted.
    """
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"Unknown table: {table}")

    unknown = [c for c in columns if c not in allowed]
    if unknown:
        raise ValueError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


# =============================================================================
# PAGED SELECT QUERY
# =============================================================================

def get_paged_select_query(
    table: str,
    columns: Sequence[str],
    eq: Optional[Mapping[str, Any]] = None,
    gte: Optional[Mapping[str, Any]] = None,
    lte: Optional[Mapping[str, Any]] = None,
    limit: int = 1000,
    offset: int = 0,
) -> Tuple[str, List[Any]]:
    """
    Generate one page of a filtered SELECT over a whitelisted table.

    Args:
        table: Table to read.
        columns: Columns to return.
        eq: Equality filters {column: value}.
        gte: Inclusive lower bounds {column: value}.
        lte: Inclusive upper bounds {column: value}.
        limit: Page size.
        offset: Number of rows to skip.

    Returns:
        Tuple of (query string, positional argument list).

    Note:
        Rows are ordered by id so consecutive pages never overlap or skip rows
        while the underlying data is unchanged.
    """
    eq = eq or {}
    gte = gte or {}
    lte = lte or {}

    validate_identifiers(table, list(columns) + list(eq) + list(gte) + list(lte))

    conditions: List[str] = []
    args: List[Any] = []

    for operator, filters in (('=', eq), ('>=', gte), ('<=', lte)):
        for column, value in filters.items():
            args.append(value)
            conditions.append(f"{column} {operator} ${len(args)}")

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    args.extend([limit, offset])
    query = f"""
    SELECT {', '.join(columns)}
    FROM {table}
    {where_clause}
    ORDER BY id
    LIMIT ${len(args) - 1} OFFSET ${len(args)}
    """
    return query, args


# =============================================================================
# INSERT QUERY
# =============================================================================

def get_insert_query(
    table: str,
    columns: Sequence[str],
    returning: bool = False,
) -> str:
    """
    Generate a single-row INSERT for a whitelisted table.

    Used with executemany() for batches and with fetchrow() when returning=True.

    Args:
        table: Target table.
        columns: Columns to insert, in argument order.
        returning: Append RETURNING with every known column of the table.
    """
    validate_identifiers(table, columns)

    placeholders = ', '.join(f"${i}" for i in range(1, len(columns) + 1))
    query = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    if returning:
        query += f" RETURNING {', '.join(TABLE_COLUMNS[table])}"
    return query


# =============================================================================
# HEALTH SCORE QUERIES
# =============================================================================

def get_latest_health_score_query() -> str:
    """
    Most recent health score row for one client calculated at or after $2.

    Parameters:
        $1: client_id
        $2: lower bound for calculated_at (start of the current report day)
    """
    return f"""
    SELECT {', '.join(TABLE_COLUMNS[HEALTH_SCORE_TABLE])}
    FROM {HEALTH_SCORE_TABLE}
    WHERE client_id = $1
      AND calculated_at >= $2
    ORDER BY calculated_at DESC
    LIMIT 1
    """


def get_recent_health_scores_query() -> str:
    """
    Newest health score rows of one client, newest first.

    Parameters:
        $1: client_id
        $2: maximum number of rows
    """
    return f"""
    SELECT {', '.join(TABLE_COLUMNS[HEALTH_SCORE_TABLE])}
    FROM {HEALTH_SCORE_TABLE}
    WHERE client_id = $1
    ORDER BY calculated_at DESC
    LIMIT $2
    """


def get_health_score_summary_query() -> str:
    """
    Classification counts and average score over each active client's latest row.

    The fact table is append-only, so "current" is resolved with DISTINCT ON
    the newest calculated_at per client.
    """
    return f"""
    WITH latest AS (
        SELECT DISTINCT ON (hs.client_id)
            hs.client_id,
            hs.score,
            hs.classification
        FROM {HEALTH_SCORE_TABLE} hs
        JOIN clients c ON c.id = hs.client_id
        WHERE c.active = TRUE
        ORDER BY hs.client_id, hs.calculated_at DESC
    )
    SELECT
        COUNT(*) FILTER (WHERE classification = 'healthy') AS healthy,
        COUNT(*) FILTER (WHERE classification = 'attention') AS attention,
        COUNT(*) FILTER (WHERE classification = 'critical') AS critical,
        COUNT(*) FILTER (WHERE classification = 'lost') AS lost,
        COUNT(*) AS total,
        COALESCE(ROUND(AVG(score)), 0) AS average_score
    FROM latest
    """
