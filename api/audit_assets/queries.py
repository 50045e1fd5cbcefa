# api/audit_assets/queries.py
"""
SQLAlchemy query builders for audit assets and the canonical asset writeback.
"""
from sqlalchemy import select, func

from core.statuses import CorrectiveActionStatus
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from db_models.audit_plan import AuditPlan
from db_models.corrective_action import CorrectiveAction
from db_models.employee import Employee


def select_audit_asset_by_id(audit_asset_id: int, *, for_update: bool = False):
    stmt = select(AuditAsset).where(AuditAsset.id == audit_asset_id)
    if for_update:
        # Re-read the row under lock even if it is already in the identity map
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return stmt


def select_asset_by_id(asset_id: int, *, for_update: bool = False):
    stmt = select(Asset).where(Asset.id == asset_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return stmt


def select_plan_by_id(plan_id: int):
    return select(AuditPlan).where(AuditPlan.id == plan_id)


def select_employee_by_id(employee_id: int):
    return select(Employee).where(Employee.id == employee_id)


def select_employee_by_name(name: str):
    """Exact match; the lowest id wins when names repeat."""
    return select(Employee).where(Employee.name == name).order_by(Employee.id).limit(1)


def count_open_actions(audit_asset_id: int):
    return select(func.count(CorrectiveAction.id)).where(
        CorrectiveAction.audit_asset_id == audit_asset_id,
        CorrectiveAction.status != CorrectiveActionStatus.COMPLETED.value,
    )


def count_actions_by_status(audit_asset_id: int):
    return (
        select(CorrectiveAction.status, func.count(CorrectiveAction.id))
        .where(CorrectiveAction.audit_asset_id == audit_asset_id)
        .group_by(CorrectiveAction.status)
    )


def select_audit_assets_with_asset(
    plan_id: int | None = None,
    audited: bool | None = None,
    resolved: bool | None = None,
):
    """(AuditAsset, Asset) rows."""
    stmt = (
        select(AuditAsset, Asset)
        .join(Asset, Asset.id == AuditAsset.asset_id)
        .order_by(AuditAsset.id)
    )
    if plan_id is not None:
        stmt = stmt.where(AuditAsset.audit_plan_id == plan_id)
    if audited is not None:
        stmt = stmt.where(AuditAsset.audit_status.is_(audited))
    if resolved is not None:
        stmt = stmt.where(AuditAsset.resolved.is_(resolved))
    return stmt
