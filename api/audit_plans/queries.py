# api/audit_plans/queries.py
"""
SQLAlchemy query builders for audit plans and their assignments.
"""
from datetime import date

from sqlalchemy import select, func

from core.statuses import ACTIVE_PLAN_STATUSES, OPEN_ACTION_STATUSES
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from db_models.audit_assignment import AuditAssignment
from db_models.audit_plan import AuditPlan
from db_models.corrective_action import CorrectiveAction
from db_models.employee import Employee
from db_models.location import Location


def select_plan_by_id(plan_id: int):
    return select(AuditPlan).where(AuditPlan.id == plan_id)


def select_plans(status: str | None = None):
    """Newest first."""
    stmt = select(AuditPlan).order_by(AuditPlan.created_at.desc(), AuditPlan.id.desc())
    if status is not None:
        stmt = stmt.where(AuditPlan.status == status)
    return stmt


def select_locations_by_ids(location_ids: list[int]):
    return select(Location).where(Location.id.in_(location_ids))


def select_employee_ids(employee_ids: list[int]):
    return select(Employee.id).where(Employee.id.in_(employee_ids))


def select_assets_in_locations(location_names: list[str]):
    return select(Asset).where(Asset.location.in_(location_names)).order_by(Asset.id)


def select_employee_names(employee_ids: list[int]):
    return select(Employee.id, Employee.name).where(Employee.id.in_(employee_ids))


def count_audit_assets(plan_id: int):
    """Row of (total, audited, resolved) for one plan."""
    return select(
        func.count(AuditAsset.id),
        func.count(AuditAsset.audited_at),
        func.count(AuditAsset.id).filter(AuditAsset.resolved.is_(True)),
    ).where(AuditAsset.audit_plan_id == plan_id)


def count_actions_by_status(plan_id: int):
    return (
        select(CorrectiveAction.status, func.count(CorrectiveAction.id))
        .where(CorrectiveAction.audit_plan_id == plan_id)
        .group_by(CorrectiveAction.status)
    )


def count_plans_by_status():
    return select(AuditPlan.status, func.count(AuditPlan.id)).group_by(AuditPlan.status)


def count_active_plans(today: date):
    return select(func.count(AuditPlan.id)).where(
        AuditPlan.status.in_(ACTIVE_PLAN_STATUSES),
        AuditPlan.due_date > today,
    )


def count_all_audit_assets():
    """Row of (audited, pending) across every plan."""
    return select(
        func.count(AuditAsset.id).filter(AuditAsset.audit_status.is_(True)),
        func.count(AuditAsset.id).filter(AuditAsset.audit_status.is_(False)),
    )


def count_open_actions():
    return select(func.count(CorrectiveAction.id)).where(
        CorrectiveAction.status.in_(OPEN_ACTION_STATUSES)
    )


def select_assignments(plan_id: int, auditor_id: int | None = None):
    """(AuditAssignment, location name, auditor name) rows."""
    stmt = (
        select(AuditAssignment, Location.name, Employee.name)
        .join(Location, Location.id == AuditAssignment.location_id)
        .join(Employee, Employee.id == AuditAssignment.auditor_id)
        .where(AuditAssignment.audit_plan_id == plan_id)
        .order_by(AuditAssignment.id)
    )
    if auditor_id is not None:
        stmt = stmt.where(AuditAssignment.auditor_id == auditor_id)
    return stmt


def select_assignment_by_id(assignment_id: int):
    return select(AuditAssignment).where(AuditAssignment.id == assignment_id)
