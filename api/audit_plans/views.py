# api/audit_plans/views.py
import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser, AuditorOrAdmin, ClockDep, CurrentUser, MailerDep
from core.errors import AuditError, http_error
from core.statuses import AuditPlanStatus
from notifications.audit_plans import AuditNotificationService
from .models import (
    AssignmentResponse,
    AssignmentUpdate,
    AuditPlanCreate,
    AuditPlanCreateResponse,
    AuditPlanListResponse,
    AuditPlanResponse,
    AuditPlanSummary,
    AuditStatistics,
    PlanStatusUpdate,
    ReminderRunResponse,
)
from . import db_manager

log = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/audit-plans",
    tags=["audit-plans"],
)


@router.post(
    "",
    response_model=AuditPlanCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an audit plan with its assignments and asset snapshots",
)
async def create_audit_plan_endpoint(
    payload: AuditPlanCreate,
    current_user: AdminUser,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> AuditPlanCreateResponse:
    """
    All validation errors are returned together in one 400 response.
    Kickoff emails go out after the plan is committed; a mail failure never
    undoes the plan.
    """
    try:
        created = await db_manager.create_audit_plan(
            db,
            name=payload.name,
            start_date=payload.start_date,
            due_date=payload.due_date,
            description=payload.description,
            location_ids=payload.location_ids,
            auditor_ids=payload.auditor_ids,
            created_by=current_user.id,
        )
    except AuditError as exc:
        raise http_error(exc) from exc

    notifications_sent = 0
    try:
        service = AuditNotificationService(db, mailer, clock)
        notifications_sent = await service.send_initial_notifications(
            created.plan, created.auditor_ids, created.location_ids
        )
    except Exception as exc:
        log.error("audit_kickoff_failed", audit_plan_id=created.plan.id, error=str(exc))

    return AuditPlanCreateResponse(
        plan=AuditPlanResponse.model_validate(created.plan),
        assignments_created=created.assignments_created,
        audit_assets_created=created.audit_assets_created,
        notifications_sent=notifications_sent,
    )


@router.get("", response_model=AuditPlanListResponse, summary="List audit plans")
async def list_audit_plans_endpoint(
    current_user: CurrentUser,
    status_filter: AuditPlanStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
) -> AuditPlanListResponse:
    plans = await db_manager.list_plans(db, status_filter.value if status_filter else None)
    return AuditPlanListResponse(
        plans=[AuditPlanResponse.model_validate(p) for p in plans],
        total=len(plans),
    )


@router.get("/statistics", response_model=AuditStatistics, summary="Audit statistics across plans")
async def get_statistics_endpoint(
    current_user: CurrentUser,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> AuditStatistics:
    return AuditStatistics(**await db_manager.get_statistics(db, clock))


@router.post(
    "/reminders",
    response_model=ReminderRunResponse,
    summary="Send due-date reminders for active plans",
)
async def send_reminders_endpoint(
    current_user: AdminUser,
    clock: ClockDep,
    mailer: MailerDep,
    db: AsyncSession = Depends(get_session),
) -> ReminderRunResponse:
    service = AuditNotificationService(db, mailer, clock)
    return ReminderRunResponse(reminders_sent=await service.send_reminders())


@router.get("/{plan_id}", response_model=AuditPlanResponse, summary="Get an audit plan")
async def get_audit_plan_endpoint(
    plan_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AuditPlanResponse:
    try:
        plan = await db_manager.get_plan_or_raise(db, plan_id)
    except AuditError as exc:
        raise http_error(exc) from exc
    return AuditPlanResponse.model_validate(plan)


@router.patch("/{plan_id}/status", response_model=AuditPlanResponse, summary="Advance plan status")
async def update_plan_status_endpoint(
    plan_id: int,
    payload: PlanStatusUpdate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> AuditPlanResponse:
    try:
        plan = await db_manager.update_plan_status(
            db, plan_id, payload.status.value, user_id=current_user.id
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return AuditPlanResponse.model_validate(plan)


@router.get("/{plan_id}/summary", response_model=AuditPlanSummary, summary="Progress summary")
async def get_plan_summary_endpoint(
    plan_id: int,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AuditPlanSummary:
    try:
        summary = await db_manager.get_plan_summary(db, plan_id)
    except AuditError as exc:
        raise http_error(exc) from exc
    return AuditPlanSummary(**summary)


@router.get(
    "/{plan_id}/assignments",
    response_model=list[AssignmentResponse],
    summary="List auditor/location assignments",
)
async def list_assignments_endpoint(
    plan_id: int,
    current_user: CurrentUser,
    auditor_id: int | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> list[AssignmentResponse]:
    try:
        rows = await db_manager.list_assignments(db, plan_id, auditor_id)
    except AuditError as exc:
        raise http_error(exc) from exc
    return [AssignmentResponse(**row) for row in rows]


@router.patch(
    "/assignments/{assignment_id}",
    response_model=AssignmentResponse,
    summary="Update an assignment's status or notes",
)
async def update_assignment_endpoint(
    assignment_id: int,
    payload: AssignmentUpdate,
    current_user: AuditorOrAdmin,
    db: AsyncSession = Depends(get_session),
) -> AssignmentResponse:
    try:
        assignment = await db_manager.update_assignment(
            db,
            assignment_id,
            status=payload.status.value if payload.status else None,
            notes=payload.notes,
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return AssignmentResponse(
        id=assignment.id,
        audit_plan_id=assignment.audit_plan_id,
        location_id=assignment.location_id,
        auditor_id=assignment.auditor_id,
        status=assignment.status,
        notes=assignment.notes,
        assigned_at=assignment.assigned_at,
    )
