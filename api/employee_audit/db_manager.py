# api/employee_audit/db_manager.py
"""
Employee self-service portal.

Employees never log in. They request an access link by email; the token in
the link maps to {employee_id, audit_plan_id, expires_at} in the token
cache. The stored expiry is checked on every use, whatever the cache TTL.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from api.audit_assets import db_manager as audit_assets_manager
from api.audit_assets.db_manager import ChangeReport
from api.audit_plans import db_manager as audit_plans_manager
from api.corrective_actions import db_manager as ca_manager
from config import settings
from core.clock import Clock
from core.errors import EmployeeNotFoundError, ForbiddenError, TokenError
from core.token_cache import TokenCache
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from db_models.audit_plan import AuditPlan
from db_models.corrective_action import CorrectiveAction
from db_models.employee import Employee
from notifications import queries as notification_queries
from notifications.audit_plans import AuditNotificationService
from notifications.mailer import MailTransport
from . import queries

log = structlog.get_logger(__name__)

TOKEN_KEY_PREFIX = "employee_audit_access:"


class InvalidTokenError(TokenError):
    pass


class ExpiredTokenError(TokenError):
    pass


class PlanNotActiveError(ForbiddenError):
    pass


class AccessDeniedError(ForbiddenError):
    pass


class AssetNotVisibleError(ForbiddenError):
    pass


class NotAssigneeError(ForbiddenError):
    pass


@dataclass
class AccessGrant:
    employee_id: int
    audit_plan_id: int
    expires_at: datetime


@dataclass
class AccessRequestResult:
    employee_id: int
    audit_plan_id: int
    expires_at: datetime
    email_sent: bool
    # Only handed back when the email could not be delivered
    access_url: str | None


def token_key(token: str) -> str:
    return f"{TOKEN_KEY_PREFIX}{token}"


async def list_available_plans(db: AsyncSession, clock: Clock) -> list[AuditPlan]:
    result = await db.execute(notification_queries.select_active_plans(clock.today()))
    return list(result.scalars().all())


async def _has_plan_access(db: AsyncSession, plan: AuditPlan, employee: Employee) -> bool:
    result = await db.execute(queries.select_auditor_location_names(plan.id, employee.id))
    if result.first() is not None:
        return True

    owned = (await db.execute(queries.count_owned_audit_assets(plan.id, employee.id))).scalar_one()
    if owned:
        return True

    assignments = (await db.execute(queries.count_plan_assignments(plan.id))).scalar_one()
    if assignments == 0 and settings.ALLOW_ACCESS_WITHOUT_ASSIGNMENTS:
        log.warning(
            "portal_access_without_assignments",
            audit_plan_id=plan.id,
            employee_id=employee.id,
        )
        return True
    return False


async def request_access(
    db: AsyncSession,
    *,
    email: str,
    audit_plan_id: int,
    cache: TokenCache,
    mailer: MailTransport,
    clock: Clock,
) -> AccessRequestResult:
    """
    Issue a portal token for an employee taking part in an active plan and
    email the link. A failed email still grants access.

    Raises:
        EmployeeNotFoundError: No employee with this email
        AuditPlanNotFoundError: Unknown plan
        PlanNotActiveError: Plan completed or past its due date
        AccessDeniedError: Employee neither audits nor owns anything in the plan
    """
    result = await db.execute(queries.select_employee_by_email(email))
    employee = result.scalars().first()
    if employee is None:
        raise EmployeeNotFoundError(f"No employee found with email {email}")

    plan = await audit_plans_manager.get_plan_or_raise(db, audit_plan_id)
    if not plan.is_active(clock.today()):
        raise PlanNotActiveError(f"Audit plan '{plan.name}' is not active")

    if not await _has_plan_access(db, plan, employee):
        raise AccessDeniedError(f"You have no assets or assignments in audit plan '{plan.name}'")

    token = secrets.token_urlsafe(32)
    ttl = timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES)
    expires_at = clock.now() + ttl
    await cache.put(
        token_key(token),
        {
            "employee_id": employee.id,
            "audit_plan_id": plan.id,
            "expires_at": expires_at.isoformat(),
        },
        ttl_seconds=ttl.total_seconds(),
    )

    access_url = f"{settings.FRONTEND_URL.rstrip('/')}/employee-audits/access/{token}"
    service = AuditNotificationService(db, mailer, clock)
    email_sent = await service.send_access_email(employee, plan, access_url, expires_at)
    if not email_sent:
        log.warning("portal_access_email_failed", employee_id=employee.id, audit_plan_id=plan.id)

    log.info("portal_access_granted", employee_id=employee.id, audit_plan_id=plan.id)
    return AccessRequestResult(
        employee_id=employee.id,
        audit_plan_id=plan.id,
        expires_at=expires_at,
        email_sent=email_sent,
        access_url=None if email_sent else access_url,
    )


async def resolve_access_token(cache: TokenCache, token: str, clock: Clock) -> AccessGrant:
    key = token_key(token)
    value = await cache.get(key)
    if value is None:
        raise InvalidTokenError("Invalid or expired access token")

    expires_at = datetime.fromisoformat(value["expires_at"])
    if clock.now() >= expires_at:
        await cache.forget(key)
        raise ExpiredTokenError("Access token has expired")

    return AccessGrant(
        employee_id=value["employee_id"],
        audit_plan_id=value["audit_plan_id"],
        expires_at=expires_at,
    )


async def get_employee(db: AsyncSession, employee_id: int) -> Employee:
    result = await db.execute(queries.select_employee_by_id(employee_id))
    employee = result.scalar_one_or_none()
    if employee is None:
        raise EmployeeNotFoundError(f"Employee {employee_id} not found")
    return employee


async def _auditor_locations(db: AsyncSession, grant: AccessGrant) -> list[str]:
    result = await db.execute(queries.select_auditor_location_names(grant.audit_plan_id, grant.employee_id))
    return list(result.scalars().all())


async def list_visible_assets(
    db: AsyncSession,
    grant: AccessGrant,
) -> tuple[bool, list[tuple[AuditAsset, Asset]]]:
    """Returns (is_auditor, rows)."""
    locations = await _auditor_locations(db, grant)
    result = await db.execute(
        queries.select_visible_audit_assets(grant.audit_plan_id, grant.employee_id, locations)
    )
    return bool(locations), [(audit_asset, asset) for audit_asset, asset in result.all()]


async def update_asset_status(
    db: AsyncSession,
    grant: AccessGrant,
    *,
    audit_asset_id: int,
    status: str,
    notes: str | None,
    reassign_user_id: int | None,
    mailer: MailTransport,
    clock: Clock,
) -> tuple[AuditAsset, ChangeReport, CorrectiveAction | None]:
    plan = await audit_plans_manager.get_plan_or_raise(db, grant.audit_plan_id)
    if not plan.is_active(clock.today()):
        raise PlanNotActiveError(f"Audit plan '{plan.name}' is not active")

    locations = await _auditor_locations(db, grant)
    result = await db.execute(
        queries.select_visible_audit_assets(
            grant.audit_plan_id, grant.employee_id, locations, audit_asset_id=audit_asset_id
        )
    )
    if result.first() is None:
        raise AssetNotVisibleError(f"Audit asset {audit_asset_id} is not available to you")

    employee = await get_employee(db, grant.employee_id)
    audit_asset, report = await audit_assets_manager.submit_status(
        db,
        audit_asset_id,
        status=status,
        notes=notes,
        reassign_user_id=reassign_user_id,
        actor=employee.name,
        clock=clock,
    )
    action = await ca_manager.raise_for_discrepancy(db, audit_asset, mailer=mailer, clock=clock)
    return audit_asset, report, action


async def list_employee_corrective_actions(
    db: AsyncSession,
    grant: AccessGrant,
) -> list[CorrectiveAction]:
    result = await db.execute(queries.select_employee_actions(grant.audit_plan_id, grant.employee_id))
    return list(result.scalars().all())


async def update_employee_corrective_action(
    db: AsyncSession,
    grant: AccessGrant,
    action_id: int,
    *,
    status: str,
    notes: str | None,
    clock: Clock,
) -> CorrectiveAction:
    action = await ca_manager.get_action_or_raise(db, action_id)
    if action.audit_plan_id != grant.audit_plan_id or action.assigned_to != grant.employee_id:
        raise NotAssigneeError(f"Corrective action {action_id} is not assigned to you")

    employee = await get_employee(db, grant.employee_id)
    return await ca_manager.update_status(
        db, action_id, status, notes, clock=clock, actor=employee.name
    )
