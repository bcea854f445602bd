"""
PM Scheduler Daemon

Runs a preventive maintenance pass across all tenants every
PM_POLL_INTERVAL_SECONDS. A failed pass is logged and retried on the next
tick; evaluation is re-derived from stored state each time, so killing the
daemon mid-pass is safe.
"""

import logging
import time

from core.config import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [pm_scheduler] %(levelname)s %(message)s",
)
log = logging.getLogger("pm.daemon")

POLL_INTERVAL = settings.pm_poll_interval_seconds


def run_once(registry=None):
    """One pass; returns the RunReport, or None if the pass failed."""
    from modules.pm.engine import run_pm_scheduler

    try:
        return run_pm_scheduler(registry=registry)
    except Exception as e:
        log.error(f"PM pass failed: {e}", exc_info=True)
        return None


def main_loop():
    """Main polling loop."""
    from core.app import build_registry
    from core.db import init_db

    log.info(f"PM scheduler daemon started (interval {POLL_INTERVAL}s)")
    init_db()
    registry = build_registry()
    if not registry.validate_dependencies():
        log.error("PM scheduler daemon has unsatisfied dependencies; passes will fail until they are registered")

    while True:
        report = run_once(registry)
        if report is not None and report.errors:
            for err in report.errors:
                if err.rule_id is not None:
                    log.warning(f"Condition rule {err.rule_id}: {err.kind}: {err.message}")
                else:
                    log.warning(f"Task {err.task_id} assignment {err.assignment_id}: {err.kind}: {err.message}")

        time.sleep(POLL_INTERVAL)


if __name__ == "__main__":
    main_loop()
