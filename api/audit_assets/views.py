# api/audit_assets/views.py
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from api.corrective_actions import db_manager as ca_manager
from core.deps import AdminUser, AuditorOrAdmin, ClockDep, CurrentUser, MailerDep
from core.errors import AuditError, http_error
from .models import (
    AssetInfo,
    AuditAssetDetail,
    AuditAssetResponse,
    AuditAssetSummary,
    ChangeReportResponse,
    StatusSubmission,
    SubmissionResponse,
)
from . import db_manager

router = APIRouter(
    prefix="/audit-assets",
    tags=["audit-assets"],
)


@router.get("", response_model=list[AuditAssetDetail], summary="List audit assets")
async def list_audit_assets_endpoint(
    current_user: CurrentUser,
    plan_id: int | None = Query(None),
    audited: bool | None = Query(None),
    resolved: bool | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> list[AuditAssetDetail]:
    rows = await db_manager.list_audit_assets(db, plan_id, audited, resolved)
    return [
        AuditAssetDetail(
            audit_asset=AuditAssetResponse.model_validate(audit_asset),
            asset=AssetInfo.model_validate(asset),
        )
        for audit_asset, asset in rows
    ]


@router.get("/{audit_asset_id}", response_model=AuditAssetDetail, summary="Get an audit asset")
async def get_audit_asset_endpoint(
    audit_asset_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AuditAssetDetail:
    try:
        audit_asset, asset = await db_manager.get_audit_asset_with_asset(db, audit_asset_id)
    except AuditError as exc:
        raise http_error(exc) from exc
    return AuditAssetDetail(
        audit_asset=AuditAssetResponse.model_validate(audit_asset),
        asset=AssetInfo.model_validate(asset),
    )


@router.get(
    "/{audit_asset_id}/summary",
    response_model=AuditAssetSummary,
    summary="Audit and corrective action state of one audit asset",
)
async def get_audit_asset_summary_endpoint(
    audit_asset_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AuditAssetSummary:
    try:
        summary = await db_manager.get_audit_asset_summary(db, audit_asset_id)
    except AuditError as exc:
        raise http_error(exc) from exc
    return AuditAssetSummary(**summary)


@router.post(
    "/{audit_asset_id}/submit",
    response_model=SubmissionResponse,
    summary="Record the observed status of an audit asset",
)
async def submit_status_endpoint(
    audit_asset_id: int,
    payload: StatusSubmission,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> SubmissionResponse:
    """
    Returns 409 when the audit asset is already resolved or the reassignment
    target asset already has a user.
    """
    try:
        audit_asset, report = await db_manager.submit_status(
            db,
            audit_asset_id,
            status=payload.status,
            notes=payload.notes,
            location=payload.location,
            reassign_user_id=payload.reassign_user_id,
            actor=current_user.full_name,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc

    action = await ca_manager.raise_for_discrepancy(
        db, audit_asset, mailer=mailer, clock=clock
    )

    return SubmissionResponse(
        audit_asset=AuditAssetResponse.model_validate(audit_asset),
        changes=ChangeReportResponse(**asdict(report)),
        corrective_action_id=action.id if action else None,
    )


@router.post(
    "/{audit_asset_id}/resolve",
    response_model=AuditAssetResponse,
    summary="Resolve an audited asset and write the findings back",
)
async def resolve_audit_asset_endpoint(
    audit_asset_id: int,
    current_user: AdminUser,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> AuditAssetResponse:
    try:
        audit_asset = await db_manager.resolve_audit_asset(
            db, audit_asset_id, actor=current_user.full_name, clock=clock
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return AuditAssetResponse.model_validate(audit_asset)
