# api/audit_assets/db_manager.py
"""
Audit asset state machine and the canonical asset writeback.

    Unaudited (audited_at is NULL)
        -> Audited (audited_at set, resolved False)
        -> Resolved (resolved True, terminal)

Functions below flush but leave the final commit to the caller unless they
say otherwise, so a submission and its follow-up writes land together.
"""
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from api.audit_plans.db_manager import mark_in_progress
from core.clock import Clock
from core.errors import ConflictError, EmployeeNotFoundError, NotFoundError, ValidationFailedError
from core.statuses import AssetStatus, CorrectiveActionStatus, resolution_status
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from . import queries

log = structlog.get_logger(__name__)


class AuditAssetNotFoundError(NotFoundError):
    pass


class AuditAssetResolvedError(ConflictError):
    pass


class AuditAssetNotAuditedError(ConflictError):
    pass


class ReassignmentConflictError(ConflictError):
    pass


@dataclass
class ChangeReport:
    location_changed: bool = False
    user_changed: bool = False
    user_assigned: bool = False
    main_asset_updated: bool = False


async def get_audit_asset_or_raise(
    db: AsyncSession,
    audit_asset_id: int,
    *,
    for_update: bool = False,
) -> AuditAsset:
    result = await db.execute(queries.select_audit_asset_by_id(audit_asset_id, for_update=for_update))
    audit_asset = result.scalar_one_or_none()
    if audit_asset is None:
        raise AuditAssetNotFoundError(f"Audit asset {audit_asset_id} not found")
    return audit_asset


async def _get_asset(db: AsyncSession, asset_id: int, *, for_update: bool = False) -> Asset:
    result = await db.execute(queries.select_asset_by_id(asset_id, for_update=for_update))
    asset = result.scalar_one_or_none()
    if asset is None:
        raise NotFoundError(f"Asset {asset_id} not found")
    return asset


async def all_corrective_actions_completed(db: AsyncSession, audit_asset: AuditAsset) -> bool:
    """True when no action on this audit asset is still open (vacuously true with none)."""
    result = await db.execute(queries.count_open_actions(audit_asset.id))
    return result.scalar_one() == 0


async def is_fully_resolved(db: AsyncSession, audit_asset: AuditAsset) -> bool:
    return audit_asset.is_audited() and await all_corrective_actions_completed(db, audit_asset)


async def submit_status(
    db: AsyncSession,
    audit_asset_id: int,
    *,
    status: str,
    actor: str,
    clock: Clock,
    notes: str | None = None,
    location: str | None = None,
    reassign_user_id: int | None = None,
) -> tuple[AuditAsset, ChangeReport]:
    """
    Record a reported status (Unaudited/Audited -> Audited) and commit.

    The audit asset is re-read under a row lock before the resolved guard,
    so a concurrent resolution cannot be overwritten.

    Raises:
        AuditAssetNotFoundError: Unknown audit asset
        AuditAssetResolvedError: The audit asset is already resolved
        ValidationFailedError: Status outside the vocabulary
        ReassignmentConflictError: The asset already has a user
        EmployeeNotFoundError: Unknown reassignment target
    """
    audit_asset = await get_audit_asset_or_raise(db, audit_asset_id, for_update=True)
    if audit_asset.resolved:
        raise AuditAssetResolvedError(f"Audit asset {audit_asset_id} is already resolved")

    reported = AssetStatus.try_parse(status)
    if reported is None:
        raise ValidationFailedError([f"Invalid status '{status}'"])

    asset = await _get_asset(db, audit_asset.asset_id, for_update=True)

    employee = None
    if reassign_user_id is not None:
        if asset.user_id is not None or audit_asset.current_user:
            raise ReassignmentConflictError(
                f"Asset {asset.asset_id} is already assigned; reassignment is only "
                f"allowed for unassigned assets"
            )
        result = await db.execute(queries.select_employee_by_id(reassign_user_id))
        employee = result.scalar_one_or_none()
        if employee is None:
            raise EmployeeNotFoundError(f"Employee {reassign_user_id} not found")

    now = clock.now()
    audit_asset.current_status = reported.value
    if notes is not None:
        audit_asset.auditor_notes = notes
    if location:
        audit_asset.current_location = location
    audit_asset.audited_at = now
    audit_asset.audited_by = actor
    audit_asset.audit_status = True

    report = ChangeReport()
    if employee is not None:
        audit_asset.current_user = employee.name
        # Ownership is mirrored at once, ahead of the full writeback
        asset.user_id = employee.id
        report.user_assigned = True

    # The reported status is mirrored onto the canonical asset immediately
    asset.status = reported.value
    asset.updated_at = now
    report.main_asset_updated = True

    report.location_changed = audit_asset.has_location_changed()
    report.user_changed = audit_asset.has_user_changed()

    plan = (await db.execute(queries.select_plan_by_id(audit_asset.audit_plan_id))).scalar_one()
    mark_in_progress(db, plan, actor=actor)

    await db.commit()
    log.info(
        "audit_asset_submitted",
        audit_asset_id=audit_asset.id,
        status=reported.value,
        actor=actor,
        location_changed=report.location_changed,
        user_assigned=report.user_assigned,
    )
    return audit_asset, report


async def resolve_user_id(db: AsyncSession, user: str | None) -> int | None:
    """
    Map a snapshot user value to an employee id.

    Numeric strings are taken as ids; anything else must match an employee
    name exactly. A miss returns None and is logged.
    """
    if not user or not user.strip():
        return None
    value = user.strip()
    if value.isdigit():
        return int(value)

    result = await db.execute(queries.select_employee_by_name(value))
    employee = result.scalar_one_or_none()
    if employee is None:
        log.warning("resolution_user_not_found", user=value)
        return None
    return employee.id


def _writeback_note_lines(audit_asset: AuditAsset, plan_name: str) -> list[str]:
    prefix = f"[{plan_name}]"
    lines = [
        f"{prefix} {line.strip()}"
        for line in (audit_asset.auditor_notes or "").splitlines()
        if line.strip()
    ]
    if audit_asset.has_location_changed():
        lines.append(
            f"{prefix} Location changed from {audit_asset.original_location or 'unknown'} "
            f"to {audit_asset.current_location}"
        )
    if audit_asset.has_user_changed():
        lines.append(
            f"{prefix} User changed from {audit_asset.original_user or 'unassigned'} "
            f"to {audit_asset.current_user}"
        )
    return list(dict.fromkeys(lines))


def _merge_notes(existing: str | None, lines: list[str]) -> str | None:
    """Append the lines not already present in `existing`."""
    present = set((existing or "").splitlines())
    new = [line for line in lines if line not in present]
    if not new:
        return existing
    return "\n".join([existing, *new]) if existing else "\n".join(new)


async def update_main_asset(
    db: AsyncSession,
    audit_asset: AuditAsset,
    *,
    actor: str,
    clock: Clock,
) -> bool:
    """Write back only when audited and every corrective action is complete."""
    if not await is_fully_resolved(db, audit_asset):
        return False
    await update_main_asset_directly(db, audit_asset, actor=actor, clock=clock)
    return True


async def update_main_asset_directly(
    db: AsyncSession,
    audit_asset: AuditAsset,
    *,
    actor: str,
    clock: Clock,
) -> Asset:
    """
    Copy the audit findings onto the canonical asset and mark the audit
    asset resolved. Does not commit.

    Repeating the call without new findings changes nothing: note lines
    already on the asset are not appended again, and the timestamps only
    move when a field actually changes.
    """
    asset = await _get_asset(db, audit_asset.asset_id, for_update=True)
    plan = (await db.execute(queries.select_plan_by_id(audit_asset.audit_plan_id))).scalar_one()

    location_changed = audit_asset.has_location_changed()
    user_changed = audit_asset.has_user_changed()

    reported = AssetStatus.try_parse(audit_asset.current_status)
    if reported is None:
        new_status = asset.status
    else:
        new_status = resolution_status(
            reported,
            location_changed=location_changed,
            user_changed=user_changed,
        ).value

    new_location = audit_asset.current_location or asset.location
    new_user_id = asset.user_id
    target_user = audit_asset.current_user or audit_asset.original_user
    if target_user:
        resolved_id = await resolve_user_id(db, target_user)
        if resolved_id is not None:
            new_user_id = resolved_id

    new_notes = _merge_notes(asset.notes, _writeback_note_lines(audit_asset, plan.name))

    changed = (
        new_status != asset.status
        or new_location != asset.location
        or new_user_id != asset.user_id
        or new_notes != asset.notes
    )
    if changed:
        asset.status = new_status
        asset.location = new_location
        asset.user_id = new_user_id
        asset.notes = new_notes
        asset.last_updated = clock.now()
        asset.updated_by = actor

    # The canonical row must be written before the audit asset is marked resolved
    await db.flush()
    audit_asset.resolved = True
    await db.flush()

    log.info(
        "main_asset_updated",
        audit_asset_id=audit_asset.id,
        asset_id=asset.id,
        status=asset.status,
        changed=changed,
    )
    return asset


async def resolve_audit_asset(
    db: AsyncSession,
    audit_asset_id: int,
    *,
    actor: str,
    clock: Clock,
) -> AuditAsset:
    """Explicit Audited -> Resolved, regardless of open actions. Commits."""
    audit_asset = await get_audit_asset_or_raise(db, audit_asset_id, for_update=True)
    if audit_asset.resolved:
        raise AuditAssetResolvedError(f"Audit asset {audit_asset_id} is already resolved")
    if not audit_asset.is_audited():
        raise AuditAssetNotAuditedError(f"Audit asset {audit_asset_id} has not been audited yet")

    await update_main_asset_directly(db, audit_asset, actor=actor, clock=clock)
    await db.commit()
    return audit_asset


async def list_audit_assets(
    db: AsyncSession,
    plan_id: int | None = None,
    audited: bool | None = None,
    resolved: bool | None = None,
) -> list[tuple[AuditAsset, Asset]]:
    result = await db.execute(queries.select_audit_assets_with_asset(plan_id, audited, resolved))
    return [(audit_asset, asset) for audit_asset, asset in result.all()]


async def get_audit_asset_with_asset(db: AsyncSession, audit_asset_id: int) -> tuple[AuditAsset, Asset]:
    audit_asset = await get_audit_asset_or_raise(db, audit_asset_id)
    asset = await _get_asset(db, audit_asset.asset_id)
    return audit_asset, asset


async def get_audit_asset_summary(db: AsyncSession, audit_asset_id: int) -> dict:
    audit_asset, asset = await get_audit_asset_with_asset(db, audit_asset_id)

    result = await db.execute(queries.count_actions_by_status(audit_asset.id))
    by_status = dict(result.all())
    total = sum(by_status.values())
    completed = by_status.get(CorrectiveActionStatus.COMPLETED.value, 0)

    reported = AssetStatus.try_parse(audit_asset.current_status)
    target = None
    if reported is not None:
        target = resolution_status(
            reported,
            location_changed=audit_asset.has_location_changed(),
            user_changed=audit_asset.has_user_changed(),
        ).value

    return {
        "audit_asset_id": audit_asset.id,
        "asset_id": asset.asset_id,
        "is_audited": audit_asset.is_audited(),
        "resolved": audit_asset.resolved,
        "location_changed": audit_asset.has_location_changed(),
        "user_changed": audit_asset.has_user_changed(),
        "corrective_actions_total": total,
        "corrective_actions_completed": completed,
        "all_corrective_actions_completed": total == completed,
        "resolution_status": target,
    }
