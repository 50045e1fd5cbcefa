# api/audit_assets/models.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class AuditAssetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    audit_plan_id: int
    asset_id: int
    original_location: str | None = None
    original_user: str | None = None
    current_status: str | None = None
    current_location: str | None = None
    current_user: str | None = None
    auditor_notes: str | None = None
    audited_at: datetime | None = None
    audited_by: str | None = None
    audit_status: bool
    resolved: bool


class AssetInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_id: str
    type: str | None = None
    model: str | None = None
    location: str | None = None
    status: str | None = None
    user_id: int | None = None
    notes: str | None = None


class AuditAssetDetail(BaseModel):
    audit_asset: AuditAssetResponse
    asset: AssetInfo


class StatusSubmission(BaseModel):
    status: str = Field(..., min_length=1)
    notes: str | None = None
    location: str | None = None
    reassign_user_id: int | None = None


class ChangeReportResponse(BaseModel):
    location_changed: bool
    user_changed: bool
    user_assigned: bool
    main_asset_updated: bool


class SubmissionResponse(BaseModel):
    audit_asset: AuditAssetResponse
    changes: ChangeReportResponse
    corrective_action_id: int | None = None


class AuditAssetSummary(BaseModel):
    audit_asset_id: int
    asset_id: str
    is_audited: bool
    resolved: bool
    location_changed: bool
    user_changed: bool
    corrective_actions_total: int
    corrective_actions_completed: int
    all_corrective_actions_completed: bool
    resolution_status: str | None = None
