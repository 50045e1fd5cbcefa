# api/corrective_actions/queries.py
"""
SQLAlchemy query builders for corrective actions and their assignments.
"""
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from core.statuses import CorrectiveActionStatus
from db_models.audit_assignment import AuditAssignment
from db_models.corrective_action import CorrectiveAction
from db_models.corrective_action_assignment import CorrectiveActionAssignment
from db_models.location import Location


def _with_assignments(stmt):
    # Collections are never lazy-loaded under asyncio; always reload them here.
    return stmt.options(selectinload(CorrectiveAction.assignments)).execution_options(
        populate_existing=True
    )


def select_action_by_id(action_id: int):
    return _with_assignments(select(CorrectiveAction).where(CorrectiveAction.id == action_id))


def select_actions(
    plan_id: int | None = None,
    status: str | None = None,
    priority: str | None = None,
    assigned_to: int | None = None,
):
    stmt = select(CorrectiveAction).order_by(CorrectiveAction.id)
    if plan_id is not None:
        stmt = stmt.where(CorrectiveAction.audit_plan_id == plan_id)
    if status is not None:
        stmt = stmt.where(CorrectiveAction.status == status)
    if priority is not None:
        stmt = stmt.where(CorrectiveAction.priority == priority)
    if assigned_to is not None:
        stmt = stmt.where(CorrectiveAction.assigned_to == assigned_to)
    return _with_assignments(stmt)


def select_overdue(today: date):
    return _with_assignments(
        select(CorrectiveAction)
        .where(
            CorrectiveAction.due_date < today,
            CorrectiveAction.status != CorrectiveActionStatus.COMPLETED.value,
        )
        .order_by(CorrectiveAction.due_date, CorrectiveAction.id)
    )


def select_past_due_open(today: date):
    """Pending or in-progress actions whose due date has passed."""
    return _with_assignments(
        select(CorrectiveAction).where(
            CorrectiveAction.due_date < today,
            CorrectiveAction.status.in_(
                (CorrectiveActionStatus.PENDING.value, CorrectiveActionStatus.IN_PROGRESS.value)
            ),
        )
    )


def select_open_action_for_audit_asset(audit_asset_id: int):
    return (
        select(CorrectiveAction.id)
        .where(
            CorrectiveAction.audit_asset_id == audit_asset_id,
            CorrectiveAction.status != CorrectiveActionStatus.COMPLETED.value,
        )
        .limit(1)
    )


def select_plan_assignments_with_location(plan_id: int):
    """(AuditAssignment, location name) rows, oldest first."""
    return (
        select(AuditAssignment, Location.name)
        .join(Location, Location.id == AuditAssignment.location_id)
        .where(AuditAssignment.audit_plan_id == plan_id)
        .order_by(AuditAssignment.id)
    )


def select_assignment_by_id(assignment_id: int):
    return select(CorrectiveActionAssignment).where(CorrectiveActionAssignment.id == assignment_id)


def select_assignment_for_employee(action_id: int, employee_id: int):
    return select(CorrectiveActionAssignment).where(
        CorrectiveActionAssignment.corrective_action_id == action_id,
        CorrectiveActionAssignment.assigned_to_employee_id == employee_id,
    )
