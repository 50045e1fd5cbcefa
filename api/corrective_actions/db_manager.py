# api/corrective_actions/db_manager.py
"""
Corrective action lifecycle.

CorrectiveAction.status is the only status that is ever set directly. The
status, started_at and completed_at of its CorrectiveActionAssignment rows
are rewritten from it on every status change.
"""
from datetime import date, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.audit_assets import db_manager as audit_assets_manager
from api.audit_assets import queries as audit_asset_queries
from api.audit_assets.db_manager import AuditAssetResolvedError
from config import settings
from core.clock import Clock
from core.errors import (
    AuditError,
    ConflictError,
    EmployeeNotFoundError,
    NotFoundError,
    ValidationFailedError,
)
from core.statuses import (
    DISCREPANCY_STATUSES,
    AssetStatus,
    CorrectiveActionStatus,
    Priority,
    resolution_status,
)
from db_models.audit_asset import AuditAsset
from db_models.corrective_action import CorrectiveAction
from db_models.corrective_action_assignment import CorrectiveActionAssignment
from db_models.employee import Employee
from notifications.corrective_actions import CorrectiveActionNotificationService
from notifications.mailer import MailTransport
from . import queries

log = structlog.get_logger(__name__)

COMPLETED = CorrectiveActionStatus.COMPLETED.value
IN_PROGRESS = CorrectiveActionStatus.IN_PROGRESS.value
OVERDUE = CorrectiveActionStatus.OVERDUE.value


class CorrectiveActionNotFoundError(NotFoundError):
    pass


class ActionAssignmentNotFoundError(NotFoundError):
    pass


class NoAuditAssignmentError(NotFoundError):
    pass


class DuplicateAssignmentError(ConflictError):
    pass


class ActionAlreadyCompletedError(ConflictError):
    pass


# Default remediation raised for each discrepancy status
_DISCREPANCY_ACTIONS = {
    AssetStatus.MISSING: (Priority.HIGH, "Locate the asset or file a loss report"),
    AssetStatus.BROKEN: (Priority.MEDIUM, "Arrange repair or replacement of the asset"),
    AssetStatus.ABOLISHED: (Priority.LOW, "Confirm disposal or reactivate the asset"),
}


async def get_action_or_raise(db: AsyncSession, action_id: int) -> CorrectiveAction:
    result = await db.execute(queries.select_action_by_id(action_id))
    action = result.scalar_one_or_none()
    if action is None:
        raise CorrectiveActionNotFoundError(f"Corrective action {action_id} not found")
    return action


async def list_corrective_actions(
    db: AsyncSession,
    plan_id: int | None = None,
    status: str | None = None,
    priority: str | None = None,
    assigned_to: int | None = None,
) -> list[CorrectiveAction]:
    result = await db.execute(queries.select_actions(plan_id, status, priority, assigned_to))
    return list(result.scalars().all())


async def list_overdue(db: AsyncSession, clock: Clock) -> list[CorrectiveAction]:
    result = await db.execute(queries.select_overdue(clock.today()))
    return list(result.scalars().all())


async def _ensure_employee(db: AsyncSession, employee_id: int) -> None:
    result = await db.execute(select(Employee.id).where(Employee.id == employee_id))
    if result.scalar_one_or_none() is None:
        raise EmployeeNotFoundError(f"Employee {employee_id} not found")


async def _find_audit_assignment(db: AsyncSession, audit_asset: AuditAsset):
    """The plan's assignment for the asset's location, else the plan's first one."""
    result = await db.execute(queries.select_plan_assignments_with_location(audit_asset.audit_plan_id))
    rows = result.all()
    if not rows:
        raise NoAuditAssignmentError(
            f"No audit assignment found for location: {audit_asset.original_location}"
        )
    for assignment, location_name in rows:
        if location_name == audit_asset.original_location:
            return assignment
    return rows[0][0]


async def create_corrective_action(
    db: AsyncSession,
    *,
    audit_asset_id: int,
    issue: str,
    action: str,
    clock: Clock,
    assigned_to: int | None = None,
    priority: str = Priority.MEDIUM.value,
    due_date: date | None = None,
    notes: str | None = None,
    default_to_auditor: bool = False,
) -> CorrectiveAction:
    """
    Raise a pending action against an audit asset, with its primary
    assignment bound to the auditor responsible for the asset's location.

    Sends nothing; callers notify explicitly with `notify_action`.
    """
    errors = []
    if not (issue or "").strip():
        errors.append("Issue is required")
    if not (action or "").strip():
        errors.append("Action is required")
    if priority not in {p.value for p in Priority}:
        errors.append(f"Invalid priority '{priority}'")
    if errors:
        raise ValidationFailedError(errors)

    audit_asset = await audit_assets_manager.get_audit_asset_or_raise(db, audit_asset_id)
    if audit_asset.resolved:
        raise AuditAssetResolvedError(f"Audit asset {audit_asset_id} is already resolved")
    audit_assignment = await _find_audit_assignment(db, audit_asset)

    if assigned_to is not None:
        await _ensure_employee(db, assigned_to)
    elif default_to_auditor:
        assigned_to = audit_assignment.auditor_id

    now = clock.now()
    ca = CorrectiveAction(
        audit_asset_id=audit_asset.id,
        audit_plan_id=audit_asset.audit_plan_id,
        issue=issue.strip(),
        action=action.strip(),
        assigned_to=assigned_to,
        priority=priority,
        status=CorrectiveActionStatus.PENDING.value,
        due_date=due_date,
        notes=[],
    )
    if notes:
        ca.append_note(notes, now)
    db.add(ca)
    await db.flush()

    db.add(CorrectiveActionAssignment(
        corrective_action_id=ca.id,
        audit_assignment_id=audit_assignment.id,
        assigned_to_employee_id=audit_assignment.auditor_id,
        status=CorrectiveActionStatus.PENDING.value,
        progress_notes=[],
    ))
    await db.commit()

    log.info(
        "corrective_action_created",
        corrective_action_id=ca.id,
        audit_asset_id=audit_asset.id,
        assigned_to=assigned_to,
        priority=priority,
    )
    return await get_action_or_raise(db, ca.id)


async def notify_action(
    db: AsyncSession,
    action: CorrectiveAction,
    *,
    mailer: MailTransport,
    clock: Clock,
) -> bool:
    """Individual notification for one action. Never raises."""
    try:
        service = CorrectiveActionNotificationService(db, mailer, clock)
        run = await service.send_corrective_action_notification(action)
    except Exception as exc:
        log.error("corrective_action_notify_failed", corrective_action_id=action.id, error=str(exc))
        return False
    return run.employees_notified > 0


async def raise_for_discrepancy(
    db: AsyncSession,
    audit_asset: AuditAsset,
    *,
    mailer: MailTransport,
    clock: Clock,
) -> CorrectiveAction | None:
    """
    Raise and notify one pending action when the reported status is a
    discrepancy and the audit asset has no open action yet.
    """
    if not settings.AUTO_RAISE_CORRECTIVE_ACTIONS:
        return None
    reported = AssetStatus.try_parse(audit_asset.current_status)
    if reported not in DISCREPANCY_STATUSES:
        return None

    result = await db.execute(queries.select_open_action_for_audit_asset(audit_asset.id))
    if result.scalar_one_or_none() is not None:
        return None

    asset = (await db.execute(audit_asset_queries.select_asset_by_id(audit_asset.asset_id))).scalar_one()
    priority, remedy = _DISCREPANCY_ACTIONS[reported]
    try:
        action = await create_corrective_action(
            db,
            audit_asset_id=audit_asset.id,
            issue=f"Asset {asset.asset_id} reported as {reported.english} ({reported.value})",
            action=remedy,
            assigned_to=asset.user_id,
            priority=priority.value,
            due_date=clock.today() + timedelta(days=settings.CORRECTIVE_ACTION_DUE_DAYS),
            notes=audit_asset.auditor_notes,
            clock=clock,
            default_to_auditor=True,
        )
    except NoAuditAssignmentError as exc:
        log.warning("corrective_action_not_raised", audit_asset_id=audit_asset.id, error=str(exc))
        return None

    await notify_action(db, action, mailer=mailer, clock=clock)
    return action


async def update_corrective_action(
    db: AsyncSession,
    action_id: int,
    *,
    clock: Clock,
    issue: str | None = None,
    action: str | None = None,
    assigned_to: int | None = None,
    priority: str | None = None,
    due_date: date | None = None,
    note: str | None = None,
) -> tuple[CorrectiveAction, bool]:
    """Returns (action, assignee_changed); a new assignee is the caller's to notify."""
    ca = await get_action_or_raise(db, action_id)

    assignee_changed = assigned_to is not None and assigned_to != ca.assigned_to
    if assignee_changed:
        await _ensure_employee(db, assigned_to)
        ca.assigned_to = assigned_to
    if issue is not None:
        ca.issue = issue
    if action is not None:
        ca.action = action
    if priority is not None:
        ca.priority = priority
    if due_date is not None:
        ca.due_date = due_date
    if note:
        ca.append_note(note, clock.now())

    await db.commit()
    if assignee_changed:
        log.info("corrective_action_reassigned", corrective_action_id=ca.id, assigned_to=assigned_to)
    return await get_action_or_raise(db, action_id), assignee_changed


def _status_note(old: str, new: str, notes: str | None, actor: str | None) -> str:
    text = f"Status changed from {old} to {new}"
    if actor:
        text += f" by {actor}"
    if notes:
        text += f": {notes}"
    return text


def _sync_assignments(ca: CorrectiveAction, now) -> None:
    """Mirror the action's status onto its assignments."""
    for assignment in ca.assignments:
        assignment.status = ca.status
        if ca.status == IN_PROGRESS and assignment.started_at is None:
            assignment.started_at = now
        if ca.status == COMPLETED:
            assignment.started_at = assignment.started_at or now
            assignment.completed_at = assignment.completed_at or now
        else:
            assignment.completed_at = None


async def _complete(
    db: AsyncSession,
    ca: CorrectiveAction,
    notes: str | None,
    *,
    actor: str | None,
    clock: Clock,
) -> None:
    if ca.is_completed():
        raise ActionAlreadyCompletedError(f"Corrective action {ca.id} is already completed")

    now = clock.now()
    old = ca.status
    ca.status = COMPLETED
    ca.completed_date = clock.today()
    ca.append_note(_status_note(old, COMPLETED, notes, actor), now)
    _sync_assignments(ca, now)

    audit_asset = await audit_assets_manager.get_audit_asset_or_raise(
        db, ca.audit_asset_id, for_update=True
    )
    reported = AssetStatus.try_parse(audit_asset.current_status)
    if reported is not None:
        target = resolution_status(
            reported,
            location_changed=audit_asset.has_location_changed(),
            user_changed=audit_asset.has_user_changed(),
        )
        line = (
            f"{now:%Y-%m-%d %H:%M:%S} - Corrective action #{ca.id} completed. "
            f"Resolution status: {target.value} ({target.english})"
        )
        if notes:
            line += f"\nResolution notes: {notes}"
        existing = audit_asset.auditor_notes
        audit_asset.auditor_notes = f"{existing}\n{line}" if existing else line

    # The open-action count below must see this completion
    await db.flush()

    if not audit_asset.resolved:
        await audit_assets_manager.update_main_asset(
            db, audit_asset, actor=actor or "system", clock=clock
        )


async def _apply_status(
    db: AsyncSession,
    ca: CorrectiveAction,
    status: str,
    notes: str | None,
    *,
    actor: str | None,
    clock: Clock,
) -> None:
    if status not in {s.value for s in CorrectiveActionStatus}:
        raise ValidationFailedError([f"Invalid status '{status}'"])
    if status == COMPLETED:
        await _complete(db, ca, notes, actor=actor, clock=clock)
        return

    audit_asset = await audit_assets_manager.get_audit_asset_or_raise(db, ca.audit_asset_id)
    if audit_asset.resolved:
        raise AuditAssetResolvedError(
            f"Corrective action {ca.id} belongs to resolved audit asset {audit_asset.id}"
        )

    old = ca.status
    ca.completed_date = None
    ca.status = status
    # A past-due action can only be reopened as overdue
    if ca.is_overdue(clock.today()):
        ca.status = status = OVERDUE
    now = clock.now()
    ca.append_note(_status_note(old, status, notes, actor), now)
    _sync_assignments(ca, now)


async def update_status(
    db: AsyncSession,
    action_id: int,
    status: str,
    notes: str | None = None,
    *,
    clock: Clock,
    actor: str | None = None,
) -> CorrectiveAction:
    ca = await get_action_or_raise(db, action_id)
    await _apply_status(db, ca, status, notes, actor=actor, clock=clock)
    await db.commit()
    log.info("corrective_action_status_updated", corrective_action_id=ca.id, status=ca.status)
    return await get_action_or_raise(db, action_id)


async def mark_completed(
    db: AsyncSession,
    action_id: int,
    notes: str | None = None,
    *,
    clock: Clock,
    actor: str | None = None,
) -> CorrectiveAction:
    """
    Complete an action. When it was the last open action on its audit
    asset, the findings are written back to the canonical asset in the same
    commit.
    """
    return await update_status(db, action_id, COMPLETED, notes, clock=clock, actor=actor)


async def bulk_update_status(
    db: AsyncSession,
    action_ids: list[int],
    status: str,
    notes: str | None = None,
    *,
    clock: Clock,
    actor: str | None = None,
) -> list[dict]:
    """
    Apply one status to many actions. Each action is committed on its own,
    so a failure is reported for that id and the rest still go through.
    """
    results = []
    for action_id in action_ids:
        try:
            await update_status(db, action_id, status, notes, clock=clock, actor=actor)
        except AuditError as exc:
            await db.rollback()
            results.append({"id": action_id, "success": False, "message": str(exc)})
            continue
        except Exception as exc:
            await db.rollback()
            log.error("bulk_status_update_failed", corrective_action_id=action_id, error=str(exc))
            results.append({"id": action_id, "success": False, "message": "Update failed"})
            continue
        results.append({"id": action_id, "success": True, "message": f"Status updated to {status}"})
    return results


async def mark_overdue_actions(db: AsyncSession, clock: Clock) -> int:
    """Turn past-due pending/in-progress actions overdue. Returns the count."""
    result = await db.execute(queries.select_past_due_open(clock.today()))
    actions = list(result.scalars().all())
    now = clock.now()
    for ca in actions:
        old = ca.status
        ca.status = OVERDUE
        ca.append_note(_status_note(old, OVERDUE, "due date passed", None), now)
        _sync_assignments(ca, now)
    await db.commit()
    if actions:
        log.info("corrective_actions_marked_overdue", count=len(actions))
    return len(actions)


async def assign_corrective_action(
    db: AsyncSession,
    action_id: int,
    employee_id: int,
    *,
    clock: Clock,
    notes: str | None = None,
) -> CorrectiveActionAssignment:
    ca = await get_action_or_raise(db, action_id)
    await _ensure_employee(db, employee_id)

    result = await db.execute(queries.select_assignment_for_employee(action_id, employee_id))
    if result.scalar_one_or_none() is not None:
        raise DuplicateAssignmentError(
            f"Employee {employee_id} is already assigned to corrective action {action_id}"
        )

    now = clock.now()
    assignment = CorrectiveActionAssignment(
        corrective_action_id=ca.id,
        assigned_to_employee_id=employee_id,
        status=ca.status,
        progress_notes=[],
    )
    if ca.status in (IN_PROGRESS, COMPLETED):
        assignment.started_at = now
    if ca.status == COMPLETED:
        assignment.completed_at = now
    if notes:
        assignment.append_progress_note(notes, now)
    db.add(assignment)
    await db.commit()
    await db.refresh(assignment)
    return assignment


async def get_assignment_or_raise(db: AsyncSession, assignment_id: int) -> CorrectiveActionAssignment:
    result = await db.execute(queries.select_assignment_by_id(assignment_id))
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise ActionAssignmentNotFoundError(f"Corrective action assignment {assignment_id} not found")
    return assignment


async def update_assignment_status(
    db: AsyncSession,
    assignment_id: int,
    *,
    clock: Clock,
    status: str | None = None,
    progress_note: str | None = None,
    actor: str | None = None,
) -> CorrectiveActionAssignment:
    """
    Record progress on an assignment. A status change is applied to the
    parent action, which then rewrites every assignment's status.
    """
    assignment = await get_assignment_or_raise(db, assignment_id)
    # Loading the action reloads its assignments, so write the note afterwards
    ca = await get_action_or_raise(db, assignment.corrective_action_id)
    if progress_note:
        assignment.append_progress_note(progress_note, clock.now())

    if status is not None:
        await _apply_status(db, ca, status, progress_note, actor=actor, clock=clock)

    await db.commit()
    await db.refresh(assignment)
    return assignment


async def delete_assignment(db: AsyncSession, assignment_id: int) -> None:
    assignment = await get_assignment_or_raise(db, assignment_id)
    await db.delete(assignment)
    await db.commit()
