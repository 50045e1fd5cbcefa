# api/audit_plans/models.py
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from core.statuses import AuditAssignmentStatus, AuditPlanStatus


class AuditPlanCreate(BaseModel):
    # Optional fields; missing values are reported with the other violations
    name: str | None = None
    description: str | None = None
    start_date: date | None = None
    due_date: date | None = None
    location_ids: list[int] = Field(default_factory=list)
    auditor_ids: list[int] = Field(default_factory=list)


class AuditPlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    start_date: date
    due_date: date
    status: str
    created_by: int | None = None
    created_at: datetime


class AuditPlanCreateResponse(BaseModel):
    plan: AuditPlanResponse
    assignments_created: int
    audit_assets_created: int
    notifications_sent: int


class AuditPlanListResponse(BaseModel):
    plans: list[AuditPlanResponse]
    total: int


class PlanStatusUpdate(BaseModel):
    status: AuditPlanStatus


class CorrectiveActionTotals(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0
    completion_rate: float = 0.0


class AuditPlanSummary(BaseModel):
    plan_id: int
    status: str
    total_assets: int
    audited_assets: int
    pending_assets: int
    resolved_assets: int
    audit_progress: float
    resolution_progress: float
    corrective_actions: CorrectiveActionTotals


class AuditStatistics(BaseModel):
    total_plans: int
    active_plans: int
    plans_by_status: dict[str, int]
    audited_assets: int
    pending_assets: int
    open_corrective_actions: int


class AssignmentResponse(BaseModel):
    id: int
    audit_plan_id: int
    location_id: int
    location_name: str | None = None
    auditor_id: int
    auditor_name: str | None = None
    status: str
    notes: str | None = None
    assigned_at: datetime


class AssignmentUpdate(BaseModel):
    status: AuditAssignmentStatus | None = None
    notes: str | None = None


class ReminderRunResponse(BaseModel):
    reminders_sent: int
