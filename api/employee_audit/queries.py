# api/employee_audit/queries.py
"""
SQLAlchemy query builders for the token-gated employee portal.
"""
from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload

from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from db_models.audit_assignment import AuditAssignment
from db_models.corrective_action import CorrectiveAction
from db_models.corrective_action_assignment import CorrectiveActionAssignment
from db_models.employee import Employee
from db_models.location import Location


def select_employee_by_email(email: str):
    return select(Employee).where(func.lower(Employee.email) == email.strip().lower())


def select_employee_by_id(employee_id: int):
    return select(Employee).where(Employee.id == employee_id)


def select_auditor_location_names(plan_id: int, employee_id: int):
    return (
        select(Location.name)
        .join(AuditAssignment, AuditAssignment.location_id == Location.id)
        .where(
            AuditAssignment.audit_plan_id == plan_id,
            AuditAssignment.auditor_id == employee_id,
        )
        .distinct()
    )


def count_plan_assignments(plan_id: int):
    return select(func.count(AuditAssignment.id)).where(AuditAssignment.audit_plan_id == plan_id)


def count_owned_audit_assets(plan_id: int, employee_id: int):
    return (
        select(func.count(AuditAsset.id))
        .join(Asset, Asset.id == AuditAsset.asset_id)
        .where(
            AuditAsset.audit_plan_id == plan_id,
            Asset.user_id == employee_id,
        )
    )


def select_visible_audit_assets(
    plan_id: int,
    employee_id: int,
    location_names: list[str],
    audit_asset_id: int | None = None,
):
    """
    (AuditAsset, Asset) rows an employee may see: their own assets, plus
    everything originally in locations they audit.
    """
    visible = Asset.user_id == employee_id
    if location_names:
        visible = or_(visible, AuditAsset.original_location.in_(location_names))
    stmt = (
        select(AuditAsset, Asset)
        .join(Asset, Asset.id == AuditAsset.asset_id)
        .where(AuditAsset.audit_plan_id == plan_id, visible)
        .order_by(AuditAsset.id)
    )
    if audit_asset_id is not None:
        stmt = stmt.where(AuditAsset.id == audit_asset_id)
    return stmt


def select_employee_actions(plan_id: int, employee_id: int):
    assigned_via_assignment = select(CorrectiveActionAssignment.corrective_action_id).where(
        CorrectiveActionAssignment.assigned_to_employee_id == employee_id
    )
    return (
        select(CorrectiveAction)
        .where(
            CorrectiveAction.audit_plan_id == plan_id,
            or_(
                CorrectiveAction.assigned_to == employee_id,
                CorrectiveAction.id.in_(assigned_via_assignment),
            ),
        )
        .options(selectinload(CorrectiveAction.assignments))
        .order_by(CorrectiveAction.id)
    )
