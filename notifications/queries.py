# notifications/queries.py
"""
SQLAlchemy query builders used by the notification services.
"""
from datetime import date

from sqlalchemy import select

from core.statuses import ACTIVE_PLAN_STATUSES, CorrectiveActionStatus
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from db_models.audit_plan import AuditPlan
from db_models.corrective_action import CorrectiveAction
from db_models.employee import Employee
from db_models.location import Location


def select_location_names(location_ids: list[int]):
    return select(Location.name).where(Location.id.in_(location_ids))


def select_owned_assets_in_locations(location_names: list[str]):
    """Assets with an owner inside the given locations."""
    return (
        select(Asset)
        .where(
            Asset.location.in_(location_names),
            Asset.user_id.is_not(None),
        )
        .order_by(Asset.id)
    )


def select_employees_by_ids(employee_ids: list[int]):
    return select(Employee).where(Employee.id.in_(employee_ids))


def select_active_plans(today: date):
    return (
        select(AuditPlan)
        .where(
            AuditPlan.status.in_(ACTIVE_PLAN_STATUSES),
            AuditPlan.due_date > today,
        )
        .order_by(AuditPlan.id)
    )


def select_pending_owned_assets(audit_plan_id: int):
    """(AuditAsset, Asset) pairs not yet audited whose asset has an owner."""
    return (
        select(AuditAsset, Asset)
        .join(Asset, Asset.id == AuditAsset.asset_id)
        .where(
            AuditAsset.audit_plan_id == audit_plan_id,
            AuditAsset.audit_status.is_(False),
            Asset.user_id.is_not(None),
        )
        .order_by(AuditAsset.id)
    )


def select_actions_with_context():
    """
    Corrective actions joined to the audit asset and canonical asset.

    Rows are (CorrectiveAction, AuditAsset, Asset, AuditPlan).
    """
    return (
        select(CorrectiveAction, AuditAsset, Asset, AuditPlan)
        .join(AuditAsset, AuditAsset.id == CorrectiveAction.audit_asset_id)
        .join(Asset, Asset.id == AuditAsset.asset_id)
        .join(AuditPlan, AuditPlan.id == CorrectiveAction.audit_plan_id)
        .order_by(CorrectiveAction.id)
    )


def select_overdue_actions(today: date):
    return select_actions_with_context().where(
        CorrectiveAction.due_date < today,
        CorrectiveAction.status != CorrectiveActionStatus.COMPLETED.value,
    )


def select_scheduled_actions(today: date):
    return select_actions_with_context().where(
        CorrectiveAction.status.in_(
            (CorrectiveActionStatus.PENDING.value, CorrectiveActionStatus.IN_PROGRESS.value)
        ),
        CorrectiveAction.due_date >= today,
    )


def select_actions_by_ids(action_ids: list[int]):
    return select_actions_with_context().where(CorrectiveAction.id.in_(action_ids))
