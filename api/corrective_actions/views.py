# api/corrective_actions/views.py
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser, AuditorOrAdmin, ClockDep, CurrentUser, MailerDep
from core.errors import AuditError, http_error
from core.statuses import CorrectiveActionStatus, Priority
from notifications.corrective_actions import CorrectiveActionNotificationService
from .models import (
    ActionAssignmentResponse,
    AssignmentStatusUpdate,
    AssignRequest,
    BulkNotifyRequest,
    BulkStatusResponse,
    BulkStatusUpdate,
    CompleteRequest,
    CorrectiveActionCreate,
    CorrectiveActionResponse,
    CorrectiveActionUpdate,
    NotificationRunResponse,
    OverdueSweepResponse,
    StatusUpdate,
)
from . import db_manager

router = APIRouter(
    prefix="/corrective-actions",
    tags=["corrective-actions"],
)


@router.get("", response_model=list[CorrectiveActionResponse], summary="List corrective actions")
async def list_corrective_actions_endpoint(
    current_user: CurrentUser,
    plan_id: int | None = Query(None),
    status_filter: CorrectiveActionStatus | None = Query(None, alias="status"),
    priority: Priority | None = Query(None),
    assigned_to: int | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> list[CorrectiveActionResponse]:
    actions = await db_manager.list_corrective_actions(
        db,
        plan_id=plan_id,
        status=status_filter.value if status_filter else None,
        priority=priority.value if priority else None,
        assigned_to=assigned_to,
    )
    return [CorrectiveActionResponse.model_validate(a) for a in actions]


@router.get("/overdue", response_model=list[CorrectiveActionResponse], summary="Past-due open actions")
async def list_overdue_endpoint(
    current_user: CurrentUser,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> list[CorrectiveActionResponse]:
    actions = await db_manager.list_overdue(db, clock)
    return [CorrectiveActionResponse.model_validate(a) for a in actions]


@router.post(
    "",
    response_model=CorrectiveActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise a corrective action against an audit asset",
)
async def create_corrective_action_endpoint(
    payload: CorrectiveActionCreate,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> CorrectiveActionResponse:
    try:
        action = await db_manager.create_corrective_action(
            db,
            audit_asset_id=payload.audit_asset_id,
            issue=payload.issue,
            action=payload.action,
            assigned_to=payload.assigned_to,
            priority=payload.priority.value,
            due_date=payload.due_date,
            notes=payload.notes,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc

    await db_manager.notify_action(db, action, mailer=mailer, clock=clock)
    return CorrectiveActionResponse.model_validate(action)


@router.post("/bulk-status", response_model=BulkStatusResponse, summary="Update many statuses")
async def bulk_update_status_endpoint(
    payload: BulkStatusUpdate,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> BulkStatusResponse:
    results = await db_manager.bulk_update_status(
        db,
        payload.ids,
        payload.status.value,
        payload.notes,
        clock=clock,
        actor=current_user.full_name,
    )
    updated = sum(1 for r in results if r["success"])
    return BulkStatusResponse(results=results, updated=updated, failed=len(results) - updated)


@router.post("/mark-overdue", response_model=OverdueSweepResponse, summary="Flag past-due actions")
async def mark_overdue_endpoint(
    current_user: AdminUser,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> OverdueSweepResponse:
    return OverdueSweepResponse(marked_overdue=await db_manager.mark_overdue_actions(db, clock))


# --- Notification triggers ---

@router.post(
    "/notifications/overdue",
    response_model=NotificationRunResponse,
    summary="Email every employee with overdue actions, once each",
)
async def notify_overdue_endpoint(
    current_user: AdminUser,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> NotificationRunResponse:
    run = await CorrectiveActionNotificationService(db, mailer, clock).send_overdue_reminders()
    return NotificationRunResponse.model_validate(asdict(run))


@router.post(
    "/notifications/scheduled",
    response_model=NotificationRunResponse,
    summary="Email every employee with open actions that are not yet due",
)
async def notify_scheduled_endpoint(
    current_user: AdminUser,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> NotificationRunResponse:
    run = await CorrectiveActionNotificationService(db, mailer, clock).send_scheduled_reminders()
    return NotificationRunResponse.model_validate(asdict(run))


@router.post(
    "/notifications/bulk",
    response_model=NotificationRunResponse,
    summary="Email the recipients of selected actions, one email per employee",
)
async def notify_bulk_endpoint(
    payload: BulkNotifyRequest,
    current_user: AdminUser,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> NotificationRunResponse:
    service = CorrectiveActionNotificationService(db, mailer, clock)
    run = await service.send_bulk_notifications(payload.ids)
    return NotificationRunResponse.model_validate(asdict(run))


# --- Assignments ---

@router.patch(
    "/assignments/{assignment_id}",
    response_model=ActionAssignmentResponse,
    summary="Record progress on an assignment",
)
async def update_assignment_endpoint(
    assignment_id: int,
    payload: AssignmentStatusUpdate,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> ActionAssignmentResponse:
    try:
        assignment = await db_manager.update_assignment_status(
            db,
            assignment_id,
            status=payload.status.value if payload.status else None,
            progress_note=payload.progress_note,
            actor=current_user.full_name,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return ActionAssignmentResponse.model_validate(assignment)


@router.delete(
    "/assignments/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove an assignment",
)
async def delete_assignment_endpoint(
    assignment_id: int,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> None:
    try:
        await db_manager.delete_assignment(db, assignment_id)
    except AuditError as exc:
        raise http_error(exc) from exc


# --- Single action ---

@router.get("/{action_id}", response_model=CorrectiveActionResponse, summary="Get a corrective action")
async def get_corrective_action_endpoint(
    action_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> CorrectiveActionResponse:
    try:
        action = await db_manager.get_action_or_raise(db, action_id)
    except AuditError as exc:
        raise http_error(exc) from exc
    return CorrectiveActionResponse.model_validate(action)


@router.put("/{action_id}", response_model=CorrectiveActionResponse, summary="Edit a corrective action")
async def update_corrective_action_endpoint(
    action_id: int,
    payload: CorrectiveActionUpdate,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> CorrectiveActionResponse:
    try:
        action, assignee_changed = await db_manager.update_corrective_action(
            db,
            action_id,
            issue=payload.issue,
            action=payload.action,
            assigned_to=payload.assigned_to,
            priority=payload.priority.value if payload.priority else None,
            due_date=payload.due_date,
            note=payload.note,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc

    if assignee_changed:
        await db_manager.notify_action(db, action, mailer=mailer, clock=clock)
    return CorrectiveActionResponse.model_validate(action)


@router.patch(
    "/{action_id}/status",
    response_model=CorrectiveActionResponse,
    summary="Change the status of a corrective action",
)
async def update_status_endpoint(
    action_id: int,
    payload: StatusUpdate,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> CorrectiveActionResponse:
    try:
        action = await db_manager.update_status(
            db,
            action_id,
            payload.status.value,
            payload.notes,
            actor=current_user.full_name,
            clock=clock,
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return CorrectiveActionResponse.model_validate(action)


@router.post(
    "/{action_id}/complete",
    response_model=CorrectiveActionResponse,
    summary="Complete a corrective action",
)
async def complete_corrective_action_endpoint(
    action_id: int,
    payload: CompleteRequest,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> CorrectiveActionResponse:
    """
    When this was the last open action on its audit asset, the audit
    findings are written back to the canonical asset.
    """
    try:
        action = await db_manager.mark_completed(
            db, action_id, payload.notes, actor=current_user.full_name, clock=clock
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return CorrectiveActionResponse.model_validate(action)


@router.post(
    "/{action_id}/assignments",
    response_model=ActionAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign an additional employee",
)
async def assign_corrective_action_endpoint(
    action_id: int,
    payload: AssignRequest,
    current_user: AuditorOrAdmin,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> ActionAssignmentResponse:
    try:
        assignment = await db_manager.assign_corrective_action(
            db, action_id, payload.employee_id, notes=payload.notes, clock=clock
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return ActionAssignmentResponse.model_validate(assignment)
