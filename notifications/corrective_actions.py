# notifications/corrective_actions.py
"""
Corrective action mail.

Actions are grouped by recipient before anything is sent, so one run mails
each employee at most once, listing all of their actions in order. The
recipient is the action's `assigned_to`, falling back to the owner of the
audited asset. Actions with neither are dropped with a warning.
"""
import asyncio
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, system_clock
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from db_models.audit_plan import AuditPlan
from db_models.corrective_action import CorrectiveAction
from db_models.employee import Employee
from notifications.mailer import MailTransport
from notifications import queries

log = structlog.get_logger(__name__)


@dataclass
class ActionContext:
    action: CorrectiveAction
    audit_asset: AuditAsset
    asset: Asset
    plan: AuditPlan

    @property
    def recipient_id(self) -> int | None:
        return self.action.assigned_to or self.asset.user_id

    def payload(self) -> dict:
        ca = self.action
        return {
            "id": ca.id,
            "issue": ca.issue,
            "action": ca.action,
            "priority": ca.priority,
            "status": ca.status,
            "due_date": ca.due_date.isoformat() if ca.due_date else None,
            "asset_id": self.asset.asset_id,
            "location": self.audit_asset.original_location or self.asset.location,
            "plan_name": self.plan.name,
        }


@dataclass
class EmployeeNotificationResult:
    employee_id: int
    success: bool
    action_count: int
    message: str


@dataclass
class NotificationRunResult:
    total_actions: int = 0
    employees_notified: int = 0
    results: list[EmployeeNotificationResult] = field(default_factory=list)
    dropped: list[int] = field(default_factory=list)


def group_by_recipient(
    contexts: list[ActionContext],
) -> tuple[dict[int, list[ActionContext]], list[int]]:
    """Split actions per recipient id, keeping input order. Also returns dropped action ids."""
    groups: dict[int, list[ActionContext]] = {}
    dropped: list[int] = []
    for ctx in contexts:
        recipient = ctx.recipient_id
        if recipient is None:
            log.warning("corrective_action_no_recipient", corrective_action_id=ctx.action.id)
            dropped.append(ctx.action.id)
            continue
        groups.setdefault(recipient, []).append(ctx)
    return groups, dropped


class CorrectiveActionNotificationService:
    def __init__(
        self,
        db: AsyncSession,
        mailer: MailTransport,
        clock: Clock = system_clock,
    ) -> None:
        self.db = db
        self.mailer = mailer
        self.clock = clock

    async def send_overdue_reminders(self) -> NotificationRunResult:
        stmt = queries.select_overdue_actions(self.clock.today())
        return await self._notify(await self._load(stmt), reason="overdue")

    async def send_scheduled_reminders(self) -> NotificationRunResult:
        stmt = queries.select_scheduled_actions(self.clock.today())
        return await self._notify(await self._load(stmt), reason="reminder")

    async def send_bulk_notifications(self, action_ids: list[int]) -> NotificationRunResult:
        if not action_ids:
            return NotificationRunResult()
        contexts = await self._load(queries.select_actions_by_ids(action_ids))
        found = {ctx.action.id for ctx in contexts}
        for missing in [i for i in action_ids if i not in found]:
            log.warning("corrective_action_not_found", corrective_action_id=missing)
        return await self._notify(contexts, reason=None)

    async def send_corrective_action_notification(
        self, action: CorrectiveAction
    ) -> NotificationRunResult:
        """Mail one action on its own, using the same recipient rules."""
        contexts = await self._load(queries.select_actions_by_ids([action.id]))
        return await self._notify(contexts, reason=None, individual=True)

    async def _load(self, stmt) -> list[ActionContext]:
        result = await self.db.execute(stmt)
        return [ActionContext(*row) for row in result.all()]

    async def _notify(
        self,
        contexts: list[ActionContext],
        *,
        reason: str | None,
        individual: bool = False,
    ) -> NotificationRunResult:
        groups, dropped = group_by_recipient(contexts)
        run = NotificationRunResult(total_actions=len(contexts), dropped=dropped)
        if not groups:
            return run

        # Load recipients up front; the sends below never touch the session.
        result = await self.db.execute(queries.select_employees_by_ids(list(groups)))
        employees = {e.id: e for e in result.scalars().all()}

        sends = [
            self._send_to_employee(employee_id, employees.get(employee_id), group, reason, individual)
            for employee_id, group in groups.items()
        ]
        run.results = list(await asyncio.gather(*sends))
        run.employees_notified = sum(1 for r in run.results if r.success)

        log.info(
            "corrective_action_notifications_sent",
            reason=reason,
            total_actions=run.total_actions,
            employees=len(groups),
            employees_notified=run.employees_notified,
            dropped=len(dropped),
        )
        return run

    async def _send_to_employee(
        self,
        employee_id: int,
        employee: Employee | None,
        group: list[ActionContext],
        reason: str | None,
        individual: bool,
    ) -> EmployeeNotificationResult:
        count = len(group)
        if employee is None:
            log.warning("notification_employee_missing", employee_id=employee_id)
            return EmployeeNotificationResult(employee_id, False, count, "Employee not found")
        if not employee.email:
            log.warning("notification_employee_no_email", employee_id=employee_id)
            return EmployeeNotificationResult(employee_id, False, count, "Employee has no email address")

        if individual:
            template = "corrective_action"
            data = {
                "employee_name": employee.name,
                "plan_name": group[0].plan.name,
                "action": group[0].payload(),
            }
        else:
            template = "consolidated_corrective_action"
            data = {
                "employee_name": employee.name,
                "reason": reason,
                "actions": [ctx.payload() for ctx in group],
            }

        try:
            await self.mailer.send(employee.email, template, data)
        except Exception as exc:
            log.warning(
                "notification_failed",
                template=template,
                employee_id=employee_id,
                action_count=count,
                error=str(exc),
            )
            return EmployeeNotificationResult(employee_id, False, count, f"Failed to send: {exc}")

        return EmployeeNotificationResult(employee_id, True, count, f"Sent {count} action(s)")
