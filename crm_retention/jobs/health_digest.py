"""
Daily client health digest job.

Runs the bulk health score job for every active client, then posts the
resulting classification summary to Slack using the WebhookClient from
slack-sdk.

Idempotency Guarantees:
- At most one digest per report date (report time zone)
- Persisted state tracks sent dates in the job_digest_state table under
  job_type 'health_digest'
- force=True bypasses the idempotency check (and rescoring appends another
  set of same-day rows, which is harmless: the newest row per client wins)

Environment Requirements:
- SLACK_WEBHOOK_URL: Slack incoming webhook URL for posting daily digests
  Format: https://hooks.slack.com/services/xxx/yyy/zzz

Usage:
    # Score everyone and send today's digest
    result = await run_daily_health_digest()

    # Force re-send even if already sent
    result = await run_daily_health_digest(force=True)

    # Get digest status
    status = await get_digest_status()
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from slack_sdk.webhook import WebhookClient

from crm_retention.core.config import get_settings
from crm_retention.core.data_access import DataAccess
from crm_retention.core.database import get_db_pool
from crm_retention.models.schemas import HealthScoreSummary
from crm_retention.services.calendar_windows import resolve_as_of
from crm_retention.services.health_score import calculate_bulk_health_scores
from crm_retention.services.retention_report import get_health_score_summary


logger = logging.getLogger(__name__)


JOB_TYPE = 'health_digest'


# =============================================================================
# Idempotency Functions
# =============================================================================

async def check_already_sent(digest_date: date) -> bool:
    """
    Check if a health digest has already been sent for the specified date.

    Args:
        digest_date: Report date to check.

    Returns:
        True if a digest was already sent for this date.
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            SELECT digest_date, sent_at
            FROM job_digest_state
            WHERE job_type = $1
              AND digest_date = $2
            """,
            JOB_TYPE,
            digest_date
        )

        return row is not None


async def mark_digest_sent(digest_date: date) -> None:
    """
    Record that the digest for digest_date was sent.

    Upserts so a forced re-send bumps sent_at and digest_count instead of
    failing on the (job_type, digest_date) key.
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO job_digest_state (job_type, digest_date, sent_at, digest_count)
            VALUES ($1, $2, $3, 1)
            ON CONFLICT (job_type, digest_date)
            DO UPDATE SET
                sent_at = EXCLUDED.sent_at,
                digest_count = job_digest_state.digest_count + 1
            """,
            JOB_TYPE,
            digest_date,
            datetime.now(timezone.utc)
        )


# =============================================================================
# Message Formatting
# =============================================================================

def _share(count: int, total: int) -> str:
    if total <= 0:
        return "0%"
    return f"{count / total * 100:.0f}%"


def format_slack_message(
    digest_date: date,
    summary: HealthScoreSummary,
    scored: int,
) -> List[Dict[str, Any]]:
    """
    Format the health summary into Slack Block Kit blocks.

    Args:
        digest_date: Report date of the digest.
        summary: Classification counts after the bulk run.
        scored: Number of clients scored by the bulk run.

    Returns:
        List of Block Kit block dicts ready to send via WebhookClient.
    """
    blocks: List[Dict[str, Any]] = []

    date_str = digest_date.strftime('%B %d, %Y')
    blocks.append({
        "type": "header",
        "text": {
            "type": "plain_text",
            "text": f"Client Health Digest - {date_str}",
            "emoji": True
        }
    })

    blocks.append({"type": "divider"})

    total = summary.total
    summary_text = (
        f"*Client Health Summary*\n\n"
        f"Active clients scored: *{scored:,}*  |  "
        f"Average score: *{summary.averageScore:.0f}*\n\n"
        f"🟢 Healthy: *{summary.healthy:,}* ({_share(summary.healthy, total)})  |  "
        f"🟡 Attention: *{summary.attention:,}* ({_share(summary.attention, total)})  |  "
        f"🟠 Critical: *{summary.critical:,}* ({_share(summary.critical, total)})  |  "
        f"🔴 Lost: *{summary.lost:,}* ({_share(summary.lost, total)})"
    )
    blocks.append({
        "type": "section",
        "text": {
            "type": "mrkdwn",
            "text": summary_text
        }
    })

    at_risk = summary.critical + summary.lost
    if at_risk > 0:
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"*⚠️ {at_risk:,} client(s) need outreach*\n"
                    f"Critical and lost clients have had little recent revenue "
                    f"or advisor contact."
                )
            }
        })

    timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
    blocks.append({
        "type": "context",
        "elements": [
            {
                "type": "mrkdwn",
                "text": f"Generated at {timestamp} | CRM Retention"
            }
        ]
    })

    return blocks


# =============================================================================
# Main Entry Points
# =============================================================================

async def run_daily_health_digest(
    as_of: Optional[datetime] = None,
    force: bool = False,
    data_access: Optional[DataAccess] = None,
) -> Dict[str, Any]:
    """
    Score every active client and post the health digest to Slack.

    Args:
        as_of: Reference time for scoring; its report-zone date is the
            digest date. Defaults to now.
        force: Send even if a digest was already sent for the date.
        data_access: Data access layer (defaults to one bound to the app pool).

    Returns:
        Dict with:
        - success: True if the digest was sent or skipped appropriately
        - skipped / reason: Set when skipped by idempotency
        - date: The digest date as string
        - scored: Clients scored (if the bulk run completed)
        - error: Error message (if failed)

    Raises:
        No exceptions are raised - all errors are captured in the return dict.
    """
    settings = get_settings()

    if not settings.slack_webhook_url:
        return {
            'success': False,
            'error': 'SLACK_WEBHOOK_URL not configured. Set this environment variable to enable the health digest.'
        }

    as_of = resolve_as_of(as_of, settings.tzinfo)
    digest_date = as_of.date()

    if not force:
        try:
            if await check_already_sent(digest_date):
                return {
                    'success': True,
                    'skipped': True,
                    'reason': f'Digest already sent for {digest_date}',
                    'date': str(digest_date)
                }
        except Exception as e:
            # First deployment may not have the state table yet
            logger.warning(f"Could not check digest state for {digest_date}: {e}")

    data_access = data_access or DataAccess()

    try:
        scored = await calculate_bulk_health_scores(data_access, as_of=as_of)
        summary = await get_health_score_summary(data_access)
    except Exception as e:
        logger.error(f"Health digest scoring failed for {digest_date}: {e}")
        return {
            'success': False,
            'error': f'Failed to score clients: {str(e)}',
            'date': str(digest_date)
        }

    if scored == 0:
        return {
            'success': True,
            'skipped': True,
            'reason': f'No active clients to score for {digest_date}',
            'date': str(digest_date)
        }

    blocks = format_slack_message(digest_date, summary, scored)

    try:
        client = WebhookClient(settings.slack_webhook_url)
        response = client.send(blocks=blocks)
    except Exception as e:
        logger.error(f"Failed to send health digest for {digest_date}: {e}")
        return {
            'success': False,
            'error': f'Failed to send Slack message: {str(e)}',
            'date': str(digest_date),
            'scored': scored
        }

    if response.status_code != 200:
        return {
            'success': False,
            'error': f'Slack API returned status {response.status_code}: {response.body}',
            'date': str(digest_date),
            'scored': scored
        }

    try:
        await mark_digest_sent(digest_date)
    except Exception as e:
        # The message is out; worst case a retry sends a duplicate
        logger.warning(f"Health digest sent but state not recorded for {digest_date}: {e}")

    logger.info(f"Health digest sent for {digest_date}: {scored} clients scored")
    return {
        'success': True,
        'date': str(digest_date),
        'scored': scored,
        'healthy': summary.healthy,
        'attention': summary.attention,
        'critical': summary.critical,
        'lost': summary.lost
    }


async def get_digest_status() -> Dict[str, Any]:
    """
    Get the current status of the health digest job.

    Returns:
        Dict with:
        - last_successful_date: Most recent digest date (or None)
        - total_digest_count: Total number of digests sent
        - recent_dates: Recent digest dates (up to 7)
        - configured: Whether SLACK_WEBHOOK_URL is configured
        - error: Set if the state table could not be read
    """
    settings = get_settings()
    configured = bool(settings.slack_webhook_url)

    try:
        pool = await get_db_pool()

        async with pool.acquire() as conn:
            recent = await conn.fetch(
                """
                SELECT digest_date, sent_at
                FROM job_digest_state
                WHERE job_type = $1
                ORDER BY digest_date DESC
                LIMIT 7
                """,
                JOB_TYPE
            )

            count_row = await conn.fetchrow(
                """
                SELECT COALESCE(SUM(digest_count), 0) as total
                FROM job_digest_state
                WHERE job_type = $1
                """,
                JOB_TYPE
            )
    except Exception as e:
        logger.warning(f"Could not read health digest state: {e}")
        return {
            'last_successful_date': None,
            'total_digest_count': 0,
            'recent_dates': [],
            'configured': configured,
            'error': str(e)
        }

    recent_dates = [str(row['digest_date']) for row in recent]
    return {
        'last_successful_date': recent_dates[0] if recent_dates else None,
        'total_digest_count': int(count_row['total']) if count_row else 0,
        'recent_dates': recent_dates,
        'configured': configured
    }
