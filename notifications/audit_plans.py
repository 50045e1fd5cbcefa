# notifications/audit_plans.py
"""
Kickoff, reminder and portal-access mail for audit plans.

Every send is caught on its own: a failed recipient is logged and counted,
never raised to the caller.
"""
from collections import defaultdict
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.clock import Clock, system_clock
from core.statuses import AssetStatus
from db_models.asset import Asset
from db_models.audit_plan import AuditPlan
from db_models.employee import Employee
from notifications.mailer import MailTransport
from notifications import queries

log = structlog.get_logger(__name__)


def asset_payload(asset: Asset) -> dict:
    status = AssetStatus.try_parse(asset.status)
    return {
        "asset_id": asset.asset_id,
        "type": asset.type,
        "model": asset.model,
        "location": asset.location,
        "status": status.english if status else asset.status,
    }


class AuditNotificationService:
    def __init__(
        self,
        db: AsyncSession,
        mailer: MailTransport,
        clock: Clock = system_clock,
        reminder_days: list[int] | None = None,
        frontend_url: str | None = None,
    ) -> None:
        self.db = db
        self.mailer = mailer
        self.clock = clock
        self.reminder_days = reminder_days if reminder_days is not None else settings.AUDIT_REMINDER_DAYS
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip("/")

    @property
    def portal_url(self) -> str:
        return f"{self.frontend_url}/employee-audits"

    async def send_initial_notifications(
        self,
        plan: AuditPlan,
        auditor_ids: list[int],
        location_ids: list[int],
    ) -> int:
        """
        Email every owner of an asset in the plan's locations and every
        listed auditor, once each. Returns the number of successful sends.
        """
        result = await self.db.execute(queries.select_location_names(location_ids))
        location_names = list(result.scalars().all())

        assets_by_owner: dict[int, list[Asset]] = defaultdict(list)
        if location_names:
            result = await self.db.execute(queries.select_owned_assets_in_locations(location_names))
            for asset in result.scalars().all():
                assets_by_owner[asset.user_id].append(asset)

        # Owners first, then auditors; dict keys keep first-seen order
        recipient_ids = list(dict.fromkeys([*assets_by_owner, *auditor_ids]))
        if not recipient_ids:
            log.warning("audit_kickoff_no_recipients", audit_plan_id=plan.id)
            return 0

        employees = await self._load_employees(recipient_ids)
        auditors = set(auditor_ids)

        sent = 0
        for employee_id in recipient_ids:
            employee = employees.get(employee_id)
            if employee is None:
                log.warning("audit_kickoff_employee_missing", audit_plan_id=plan.id, employee_id=employee_id)
                continue
            data = {
                "employee_name": employee.name,
                "plan_name": plan.name,
                "description": plan.description,
                "start_date": plan.start_date.isoformat(),
                "due_date": plan.due_date.isoformat(),
                "is_auditor": employee_id in auditors,
                "assets": [asset_payload(a) for a in assets_by_owner.get(employee_id, [])],
                "portal_url": self.portal_url,
            }
            if await self._send(employee, "audit_plan_kickoff", data, audit_plan_id=plan.id):
                sent += 1

        log.info(
            "audit_kickoff_sent",
            audit_plan_id=plan.id,
            recipients=len(recipient_ids),
            sent=sent,
        )
        return sent

    async def send_reminders(self) -> int:
        """
        Remind owners with unaudited assets in each active plan.

        A plan is only considered on the exact days listed in
        `reminder_days` before its due date.
        """
        today = self.clock.today()
        result = await self.db.execute(queries.select_active_plans(today))
        plans = list(result.scalars().all())

        sent = 0
        for plan in plans:
            days_remaining = (plan.due_date - today).days
            if days_remaining not in self.reminder_days:
                continue
            sent += await self._send_plan_reminders(plan, days_remaining)

        log.info("audit_reminders_done", plans=len(plans), sent=sent)
        return sent

    async def _send_plan_reminders(self, plan: AuditPlan, days_remaining: int) -> int:
        result = await self.db.execute(queries.select_pending_owned_assets(plan.id))
        pending: dict[int, list[Asset]] = defaultdict(list)
        for _audit_asset, asset in result.all():
            pending[asset.user_id].append(asset)

        if not pending:
            return 0

        employees = await self._load_employees(list(pending))
        sent = 0
        for employee_id, assets in pending.items():
            employee = employees.get(employee_id)
            if employee is None:
                continue
            data = {
                "employee_name": employee.name,
                "plan_name": plan.name,
                "due_date": plan.due_date.isoformat(),
                "days_remaining": days_remaining,
                "pending_assets": [asset_payload(a) for a in assets],
                "portal_url": self.portal_url,
            }
            if await self._send(employee, "audit_reminder", data, audit_plan_id=plan.id):
                sent += 1
        return sent

    async def send_access_email(
        self,
        employee: Employee,
        plan: AuditPlan,
        access_url: str,
        expires_at: datetime,
    ) -> bool:
        data = {
            "employee_name": employee.name,
            "plan_name": plan.name,
            "access_url": access_url,
            "expires_at": expires_at.isoformat(timespec="minutes"),
        }
        return await self._send(employee, "audit_access", data, audit_plan_id=plan.id)

    async def _load_employees(self, employee_ids: list[int]) -> dict[int, Employee]:
        result = await self.db.execute(queries.select_employees_by_ids(employee_ids))
        return {e.id: e for e in result.scalars().all()}

    async def _send(self, employee: Employee, template: str, data: dict, **context) -> bool:
        try:
            await self.mailer.send(employee.email, template, data)
        except Exception as exc:
            log.warning(
                "notification_failed",
                template=template,
                employee_id=employee.id,
                error=str(exc),
                **context,
            )
            return False
        return True
