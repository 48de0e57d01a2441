"""
Daily Automation Jobs for the retention analytics engine.

This module provides scheduled job functions:
- Client health digest (health_digest.py): rescore every active client and
  post the classification summary to Slack

Idempotency Guarantees:
-----------------------
- Health digest: Never duplicates digests for the same report date. Sent
  dates are tracked in the job_digest_state table.
- Force flag (force=True) allows intentional re-execution for manual
  corrections.

Environment Requirements:
-------------------------
- SLACK_WEBHOOK_URL: Slack incoming webhook URL in format:
  https://hooks.slack.com/services/xxx/yyy/zzz

Usage Examples:
---------------
    from crm_retention.jobs import run_daily_health_digest, get_digest_status

    result = await run_daily_health_digest()
    status = await get_digest_status()
"""

# =============================================================================
# Health Digest Exports
# =============================================================================

from crm_retention.jobs.health_digest import (
    # Main job function
    run_daily_health_digest,
    # Idempotency check function
    check_already_sent,
    # Status monitoring function
    get_digest_status,
)


__all__ = [
    'run_daily_health_digest',  # Score all clients and send the Slack digest
    'check_already_sent',       # Check if digest already sent (idempotency)
    'get_digest_status',        # Query digest send status
]
