# send_reminders.py
"""
Scheduled reminder run (cron entry point).

Usage:
    python send_reminders.py                 # everything
    python send_reminders.py --only audits   # audit plan due-date reminders
    python send_reminders.py --only actions  # overdue sweep + corrective action reminders
"""
import argparse
import asyncio
import sys

import structlog

from api.corrective_actions import db_manager as ca_manager
from core.clock import Clock, system_clock
from core.deps import get_mailer
from core.logging import setup_logging
from db import AsyncSessionLocal
from notifications.audit_plans import AuditNotificationService
from notifications.corrective_actions import CorrectiveActionNotificationService
from notifications.mailer import MailTransport

log = structlog.get_logger(__name__)


async def run_reminders(
    session_factory=AsyncSessionLocal,
    mailer: MailTransport | None = None,
    clock: Clock = system_clock,
    only: str | None = None,
) -> dict:
    mailer = mailer or get_mailer()
    summary: dict = {}

    async with session_factory() as db:
        if only in (None, "audits"):
            service = AuditNotificationService(db, mailer, clock)
            summary["audit_reminders_sent"] = await service.send_reminders()

        if only in (None, "actions"):
            summary["marked_overdue"] = await ca_manager.mark_overdue_actions(db, clock)
            service = CorrectiveActionNotificationService(db, mailer, clock)
            overdue = await service.send_overdue_reminders()
            scheduled = await service.send_scheduled_reminders()
            summary["overdue_employees_notified"] = overdue.employees_notified
            summary["scheduled_employees_notified"] = scheduled.employees_notified

    log.info("reminder_run_done", **summary)
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Send audit and corrective action reminders")
    parser.add_argument("--only", choices=["audits", "actions"], default=None)
    args = parser.parse_args()

    setup_logging()
    try:
        asyncio.run(run_reminders(only=args.only))
    except Exception as exc:
        log.error("reminder_run_failed", error=str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
