# api/employee_audit/views.py
"""
Token-gated endpoints for employees. No user login is involved; every call
after `request-access` carries the emailed token in the path.
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from api.audit_assets import db_manager as audit_assets_manager
from api.audit_assets.models import ChangeReportResponse
from api.audit_plans import db_manager as audit_plans_manager
from api.corrective_actions.models import CorrectiveActionResponse
from core.deps import ClockDep, MailerDep, TokenCacheDep
from core.errors import AuditError, http_error
from db_models.asset import Asset
from db_models.audit_asset import AuditAsset
from .models import (
    AccessRequest,
    AccessRequestResponse,
    AssetStatusUpdate,
    AssetStatusUpdateResponse,
    AvailablePlan,
    EmployeeActionList,
    EmployeeActionUpdate,
    PortalAsset,
    PortalView,
)
from . import db_manager

router = APIRouter(
    prefix="/employee-audits",
    tags=["employee-audits"],
)


def _portal_asset(audit_asset: AuditAsset, asset: Asset) -> PortalAsset:
    return PortalAsset(
        audit_asset_id=audit_asset.id,
        asset_id=asset.asset_id,
        type=asset.type,
        model=asset.model,
        original_location=audit_asset.original_location,
        original_user=audit_asset.original_user,
        current_status=audit_asset.current_status,
        current_location=audit_asset.current_location,
        current_user=audit_asset.current_user,
        auditor_notes=audit_asset.auditor_notes,
        audited_at=audit_asset.audited_at,
        resolved=audit_asset.resolved,
    )


@router.get("/available-plans", response_model=list[AvailablePlan], summary="Plans open for submissions")
async def available_plans_endpoint(
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> list[AvailablePlan]:
    plans = await db_manager.list_available_plans(db, clock)
    return [AvailablePlan.model_validate(p) for p in plans]


@router.post("/request-access", response_model=AccessRequestResponse, summary="Email a portal link")
async def request_access_endpoint(
    payload: AccessRequest,
    cache: TokenCacheDep,
    mailer: MailerDep,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> AccessRequestResponse:
    try:
        grant = await db_manager.request_access(
            db,
            email=payload.email,
            audit_plan_id=payload.audit_plan_id,
            cache=cache,
            mailer=mailer,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc

    message = (
        "Access link sent to your email"
        if grant.email_sent
        else "Access granted, but the email could not be sent; use the link below"
    )
    return AccessRequestResponse(
        message=message,
        email_sent=grant.email_sent,
        expires_at=grant.expires_at,
        access_url=grant.access_url,
    )


@router.get("/access/{token}", response_model=PortalView, summary="Open the portal with a token")
async def access_portal_endpoint(
    token: str,
    cache: TokenCacheDep,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> PortalView:
    try:
        grant = await db_manager.resolve_access_token(cache, token, clock)
        employee = await db_manager.get_employee(db, grant.employee_id)
        plan = await audit_plans_manager.get_plan_or_raise(db, grant.audit_plan_id)
        is_auditor, rows = await db_manager.list_visible_assets(db, grant)
    except AuditError as exc:
        raise http_error(exc) from exc

    return PortalView(
        employee_id=employee.id,
        employee_name=employee.name,
        audit_plan=AvailablePlan.model_validate(plan),
        expires_at=grant.expires_at,
        is_auditor=is_auditor,
        assets=[_portal_asset(audit_asset, asset) for audit_asset, asset in rows],
    )


@router.put(
    "/update-asset/{token}",
    response_model=AssetStatusUpdateResponse,
    summary="Submit the observed status of one asset",
)
async def update_asset_endpoint(
    token: str,
    payload: AssetStatusUpdate,
    cache: TokenCacheDep,
    mailer: MailerDep,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> AssetStatusUpdateResponse:
    try:
        grant = await db_manager.resolve_access_token(cache, token, clock)
        audit_asset, report, action = await db_manager.update_asset_status(
            db,
            grant,
            audit_asset_id=payload.asset_id,
            status=payload.status,
            notes=payload.notes,
            reassign_user_id=payload.reassign_user_id,
            mailer=mailer,
            clock=clock,
        )
        _, asset = await audit_assets_manager.get_audit_asset_with_asset(db, audit_asset.id)
    except AuditError as exc:
        raise http_error(exc) from exc

    return AssetStatusUpdateResponse(
        asset=_portal_asset(audit_asset, asset),
        changes=ChangeReportResponse(**asdict(report)),
        corrective_action_id=action.id if action else None,
    )


@router.get(
    "/corrective-actions/{token}",
    response_model=EmployeeActionList,
    summary="Corrective actions assigned to the token holder",
)
async def list_actions_endpoint(
    token: str,
    cache: TokenCacheDep,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> EmployeeActionList:
    try:
        grant = await db_manager.resolve_access_token(cache, token, clock)
    except AuditError as exc:
        raise http_error(exc) from exc
    actions = await db_manager.list_employee_corrective_actions(db, grant)
    return EmployeeActionList(actions=[CorrectiveActionResponse.model_validate(a) for a in actions])


@router.put(
    "/corrective-actions/{token}/{action_id}",
    response_model=CorrectiveActionResponse,
    summary="Update the status of an action assigned to the token holder",
)
async def update_action_endpoint(
    token: str,
    action_id: int,
    payload: EmployeeActionUpdate,
    cache: TokenCacheDep,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> CorrectiveActionResponse:
    try:
        grant = await db_manager.resolve_access_token(cache, token, clock)
        action = await db_manager.update_employee_corrective_action(
            db,
            grant,
            action_id,
            status=payload.status.value,
            notes=payload.notes,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return CorrectiveActionResponse.model_validate(action)
