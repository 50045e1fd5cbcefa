# api/employee_audit/models.py
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from api.audit_assets.models import ChangeReportResponse
from api.corrective_actions.models import CorrectiveActionResponse
from core.statuses import CorrectiveActionStatus


class AvailablePlan(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    start_date: date
    due_date: date
    status: str


class AccessRequest(BaseModel):
    email: EmailStr
    audit_plan_id: int


class AccessRequestResponse(BaseModel):
    message: str
    email_sent: bool
    expires_at: datetime
    access_url: str | None = None


class PortalAsset(BaseModel):
    audit_asset_id: int
    asset_id: str
    type: str | None = None
    model: str | None = None
    original_location: str | None = None
    original_user: str | None = None
    current_status: str | None = None
    current_location: str | None = None
    current_user: str | None = None
    auditor_notes: str | None = None
    audited_at: datetime | None = None
    resolved: bool


class PortalView(BaseModel):
    employee_id: int
    employee_name: str
    audit_plan: AvailablePlan
    expires_at: datetime
    is_auditor: bool
    assets: list[PortalAsset]


class AssetStatusUpdate(BaseModel):
    """Employee status submission: {assetId, status, notes?, reassignUserId?}."""

    model_config = ConfigDict(populate_by_name=True)

    asset_id: int = Field(..., alias="assetId")
    status: str = Field(..., min_length=1)
    notes: str | None = None
    reassign_user_id: int | None = Field(None, alias="reassignUserId")


class AssetStatusUpdateResponse(BaseModel):
    asset: PortalAsset
    changes: ChangeReportResponse
    corrective_action_id: int | None = None


class EmployeeActionUpdate(BaseModel):
    status: CorrectiveActionStatus
    notes: str | None = None


class EmployeeActionList(BaseModel):
    actions: list[CorrectiveActionResponse]
