# api/corrective_actions/models.py
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from core.statuses import CorrectiveActionStatus, Priority


class NoteEntry(BaseModel):
    at: str
    text: str


class ActionAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    corrective_action_id: int
    audit_assignment_id: int | None = None
    assigned_to_employee_id: int
    status: str
    assigned_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    progress_notes: list[NoteEntry] = Field(default_factory=list)


class CorrectiveActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    audit_asset_id: int
    audit_plan_id: int
    issue: str
    action: str
    assigned_to: int | None = None
    priority: str
    status: str
    due_date: date | None = None
    completed_date: date | None = None
    notes: list[NoteEntry] = Field(default_factory=list)
    created_at: datetime
    assignments: list[ActionAssignmentResponse] = Field(default_factory=list)


class CorrectiveActionCreate(BaseModel):
    audit_asset_id: int
    issue: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    assigned_to: int | None = None
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None
    notes: str | None = None


class CorrectiveActionUpdate(BaseModel):
    issue: str | None = Field(None, min_length=1)
    action: str | None = Field(None, min_length=1)
    assigned_to: int | None = None
    priority: Priority | None = None
    due_date: date | None = None
    note: str | None = None


class StatusUpdate(BaseModel):
    status: CorrectiveActionStatus
    notes: str | None = None


class CompleteRequest(BaseModel):
    notes: str | None = None


class BulkStatusUpdate(BaseModel):
    ids: list[int] = Field(..., min_length=1)
    status: CorrectiveActionStatus
    notes: str | None = None


class BulkResultItem(BaseModel):
    id: int
    success: bool
    message: str


class BulkStatusResponse(BaseModel):
    results: list[BulkResultItem]
    updated: int
    failed: int


class AssignRequest(BaseModel):
    employee_id: int
    notes: str | None = None


class AssignmentStatusUpdate(BaseModel):
    status: CorrectiveActionStatus | None = None
    progress_note: str | None = None


class BulkNotifyRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class EmployeeResult(BaseModel):
    employee_id: int
    success: bool
    action_count: int
    message: str


class NotificationRunResponse(BaseModel):
    total_actions: int
    employees_notified: int
    results: list[EmployeeResult]
    dropped: list[int]


class OverdueSweepResponse(BaseModel):
    marked_overdue: int
