# api/audit_plans/db_manager.py
from dataclasses import dataclass
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock
from core.errors import ConflictError, NotFoundError, ValidationFailedError
from core.statuses import AuditPlanStatus, CorrectiveActionStatus
from db_models.audit_asset import AuditAsset
from db_models.audit_assignment import AuditAssignment
from db_models.audit_log import AuditLog
from db_models.audit_plan import AuditPlan
from . import queries

log = structlog.get_logger(__name__)


class AuditPlanNotFoundError(NotFoundError):
    pass


class AssignmentNotFoundError(NotFoundError):
    pass


class InvalidPlanTransitionError(ConflictError):
    pass


# Allowed forward moves; anything else is rejected.
_PLAN_TRANSITIONS = {
    AuditPlanStatus.PLANNING.value: AuditPlanStatus.IN_PROGRESS.value,
    AuditPlanStatus.IN_PROGRESS.value: AuditPlanStatus.COMPLETED.value,
}


@dataclass
class PlanCreation:
    plan: AuditPlan
    location_ids: list[int]
    auditor_ids: list[int]
    assignments_created: int
    audit_assets_created: int


def _unique(ids: list[int]) -> list[int]:
    return list(dict.fromkeys(ids))


async def get_plan_or_raise(db: AsyncSession, plan_id: int) -> AuditPlan:
    result = await db.execute(queries.select_plan_by_id(plan_id))
    plan = result.scalar_one_or_none()
    if plan is None:
        raise AuditPlanNotFoundError(f"Audit plan {plan_id} not found")
    return plan


async def list_plans(db: AsyncSession, status: str | None = None) -> list[AuditPlan]:
    result = await db.execute(queries.select_plans(status))
    return list(result.scalars().all())


async def create_audit_plan(
    db: AsyncSession,
    *,
    name: str | None,
    start_date: date | None,
    due_date: date | None,
    description: str | None,
    location_ids: list[int],
    auditor_ids: list[int],
    created_by: int | None = None,
) -> PlanCreation:
    """
    Create a plan with its assignments and asset snapshots in one transaction.

    Every location is paired with every auditor. Each asset whose location
    name belongs to a selected location gets one AuditAsset snapshot.

    Raises:
        ValidationFailedError: with all violations found
    """
    location_ids = _unique(location_ids or [])
    auditor_ids = _unique(auditor_ids or [])
    name = (name or "").strip()

    errors: list[str] = []
    if not name:
        errors.append("Name is required")
    if start_date is None:
        errors.append("Start date is required")
    if due_date is None:
        errors.append("Due date is required")
    if start_date is not None and due_date is not None and due_date <= start_date:
        errors.append("Due date must be after start date")
    if not location_ids:
        errors.append("At least one location is required")
    if not auditor_ids:
        errors.append("At least one auditor is required")

    locations = []
    if location_ids:
        result = await db.execute(queries.select_locations_by_ids(location_ids))
        by_id = {loc.id: loc for loc in result.scalars().all()}
        missing = [i for i in location_ids if i not in by_id]
        if missing:
            errors.append(f"Unknown location ids: {', '.join(map(str, missing))}")
        locations = [by_id[i] for i in location_ids if i in by_id]

    if auditor_ids:
        result = await db.execute(queries.select_employee_ids(auditor_ids))
        found = set(result.scalars().all())
        missing = [i for i in auditor_ids if i not in found]
        if missing:
            errors.append(f"Unknown auditor ids: {', '.join(map(str, missing))}")

    if errors:
        raise ValidationFailedError(errors)

    try:
        plan = AuditPlan(
            name=name,
            description=description,
            start_date=start_date,
            due_date=due_date,
            status=AuditPlanStatus.PLANNING.value,
            created_by=created_by,
        )
        db.add(plan)
        await db.flush()

        for location in locations:
            for auditor_id in auditor_ids:
                db.add(AuditAssignment(
                    audit_plan_id=plan.id,
                    location_id=location.id,
                    auditor_id=auditor_id,
                ))

        location_names = [loc.name for loc in locations]
        result = await db.execute(queries.select_assets_in_locations(location_names))
        assets = list(result.scalars().all())

        owner_ids = {a.user_id for a in assets if a.user_id is not None}
        owner_names: dict[int, str] = {}
        if owner_ids:
            result = await db.execute(queries.select_employee_names(list(owner_ids)))
            owner_names = dict(result.all())

        for asset in assets:
            owner = owner_names.get(asset.user_id) if asset.user_id is not None else None
            db.add(AuditAsset(
                audit_plan_id=plan.id,
                asset_id=asset.id,
                original_location=asset.location,
                original_user=owner,
                current_status=asset.status,
                current_location=asset.location,
                current_user=owner,
                audit_status=False,
                resolved=False,
            ))

        if not assets:
            log.warning(
                "audit_plan_without_assets",
                audit_plan_id=plan.id,
                locations=location_names,
            )

        db.add(AuditLog(
            audit_plan_id=plan.id,
            action="created",
            details=(
                f"Audit plan '{name}' created with {len(locations)} location(s) "
                f"and {len(assets)} asset(s)"
            ),
            user_id=created_by,
        ))

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(plan)
    log.info(
        "audit_plan_created",
        audit_plan_id=plan.id,
        locations=len(locations),
        auditors=len(auditor_ids),
        audit_assets=len(assets),
    )
    return PlanCreation(
        plan=plan,
        location_ids=[loc.id for loc in locations],
        auditor_ids=auditor_ids,
        assignments_created=len(locations) * len(auditor_ids),
        audit_assets_created=len(assets),
    )


async def update_plan_status(
    db: AsyncSession,
    plan_id: int,
    new_status: str,
    *,
    user_id: int | None = None,
) -> AuditPlan:
    plan = await get_plan_or_raise(db, plan_id)
    if plan.status == new_status:
        return plan
    if _PLAN_TRANSITIONS.get(plan.status) != new_status:
        raise InvalidPlanTransitionError(
            f"Cannot move audit plan from '{plan.status}' to '{new_status}'"
        )

    old_status = plan.status
    plan.status = new_status
    db.add(AuditLog(
        audit_plan_id=plan.id,
        action="status_changed",
        details=f"Status changed from '{old_status}' to '{new_status}'",
        user_id=user_id,
    ))
    await db.commit()
    await db.refresh(plan)
    return plan


def mark_in_progress(db: AsyncSession, plan: AuditPlan, *, actor: str | None = None) -> bool:
    """
    Advance a Planning plan on its first submission. Caller commits.

    Returns True when the status changed.
    """
    if plan.status != AuditPlanStatus.PLANNING.value:
        return False
    plan.status = AuditPlanStatus.IN_PROGRESS.value
    db.add(AuditLog(
        audit_plan_id=plan.id,
        action="status_changed",
        details=f"Audit started by {actor or 'unknown'}",
    ))
    return True


def _percent(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 2) if whole else 0.0


async def get_plan_summary(db: AsyncSession, plan_id: int) -> dict:
    plan = await get_plan_or_raise(db, plan_id)

    total, audited, resolved = (await db.execute(queries.count_audit_assets(plan_id))).one()
    result = await db.execute(queries.count_actions_by_status(plan_id))
    by_status = dict(result.all())

    action_total = sum(by_status.values())
    completed = by_status.get(CorrectiveActionStatus.COMPLETED.value, 0)

    return {
        "plan_id": plan.id,
        "status": plan.status,
        "total_assets": total,
        "audited_assets": audited,
        "pending_assets": total - audited,
        "resolved_assets": resolved,
        "audit_progress": _percent(audited, total),
        "resolution_progress": _percent(resolved, total),
        "corrective_actions": {
            "total": action_total,
            "pending": by_status.get(CorrectiveActionStatus.PENDING.value, 0),
            "in_progress": by_status.get(CorrectiveActionStatus.IN_PROGRESS.value, 0),
            "completed": completed,
            "overdue": by_status.get(CorrectiveActionStatus.OVERDUE.value, 0),
            "completion_rate": _percent(completed, action_total),
        },
    }


async def get_statistics(db: AsyncSession, clock: Clock) -> dict:
    by_status = dict((await db.execute(queries.count_plans_by_status())).all())
    active = (await db.execute(queries.count_active_plans(clock.today()))).scalar_one()
    audited, pending = (await db.execute(queries.count_all_audit_assets())).one()
    open_actions = (await db.execute(queries.count_open_actions())).scalar_one()

    return {
        "total_plans": sum(by_status.values()),
        "active_plans": active,
        "plans_by_status": {s.value: by_status.get(s.value, 0) for s in AuditPlanStatus},
        "audited_assets": audited,
        "pending_assets": pending,
        "open_corrective_actions": open_actions,
    }


async def list_assignments(
    db: AsyncSession,
    plan_id: int,
    auditor_id: int | None = None,
) -> list[dict]:
    await get_plan_or_raise(db, plan_id)
    result = await db.execute(queries.select_assignments(plan_id, auditor_id))
    return [
        {
            "id": a.id,
            "audit_plan_id": a.audit_plan_id,
            "location_id": a.location_id,
            "location_name": location_name,
            "auditor_id": a.auditor_id,
            "auditor_name": auditor_name,
            "status": a.status,
            "notes": a.notes,
            "assigned_at": a.assigned_at,
        }
        for a, location_name, auditor_name in result.all()
    ]


async def update_assignment(
    db: AsyncSession,
    assignment_id: int,
    *,
    status: str | None = None,
    notes: str | None = None,
) -> AuditAssignment:
    result = await db.execute(queries.select_assignment_by_id(assignment_id))
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise AssignmentNotFoundError(f"Audit assignment {assignment_id} not found")

    if status is not None:
        assignment.status = status
    if notes is not None:
        assignment.notes = notes
    await db.commit()
    await db.refresh(assignment)
    return assignment
