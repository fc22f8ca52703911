"""Usage-based expiration.

A receipt expires when none of its triggers (bundle ids or paths) has been
seen in the foreground for ``expiration`` days. The clock starts at the
later of the install time and the latest observation, so installing or
using a title restarts its window.
"""

import logging
import subprocess
from datetime import datetime, timedelta

from fleetsync.core.store import UsageLedger
from fleetsync.models.receipt import Receipt
from fleetsync.scanners.base import ForegroundApp, ForegroundScanner
from fleetsync.utils.shell import run_command

logger = logging.getLogger(__name__)


def observe_foreground(
    scanner: ForegroundScanner | None, ledger: UsageLedger, at: datetime
) -> ForegroundApp | None:
    """Record the frontmost application as used at ``at``.

    Returns:
        The observed application, or None if nothing could be observed.
    """
    if scanner is None or not scanner.is_available():
        return None
    app = scanner.frontmost()
    if app is None:
        return None
    for trigger in app.triggers:
        ledger.observe(trigger, at)
    logger.debug("Observed %s in the foreground", app.bundle_id or app.path)
    return app


def last_activity(receipt: Receipt, ledger: UsageLedger) -> datetime:
    """When the expiration window of ``receipt`` last restarted."""
    seen = ledger.last_seen(receipt.expiration_triggers)
    if seen is None or seen < receipt.installed_at:
        return receipt.installed_at
    return seen


def is_expired(receipt: Receipt, ledger: UsageLedger, now: datetime) -> bool:
    """Check if ``receipt`` is due for expiration at ``now``.

    Frozen, non-removable and trigger-less receipts, and receipts with a
    zero window, never expire.
    """
    if not receipt.expires:
        return False
    return now - last_activity(receipt, ledger) >= timedelta(days=receipt.expiration)


def notify(command: list[str], titles: list[str]) -> bool:
    """Run a notification command once with ``titles`` appended.

    Returns:
        True if the command ran successfully. Failures are logged only.
    """
    if not command or not titles:
        return False
    try:
        result = run_command([*command, *titles], timeout=60.0)
    except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
        logger.warning("Notification command failed: %s", e)
        return False
    if not result.success:
        logger.warning("Notification command failed: %s", result.error_text)
        return False
    return True
