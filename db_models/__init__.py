# db_models/__init__.py
# Importing the package registers every table on Base.metadata.
from db_models.user import User, UserRole
from db_models.employee import Employee
from db_models.location import Location
from db_models.asset import Asset
from db_models.audit_plan import AuditPlan
from db_models.audit_assignment import AuditAssignment
from db_models.audit_asset import AuditAsset
from db_models.corrective_action import CorrectiveAction
from db_models.corrective_action_assignment import CorrectiveActionAssignment
from db_models.audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Employee",
    "Location",
    "Asset",
    "AuditPlan",
    "AuditAssignment",
    "AuditAsset",
    "CorrectiveAction",
    "CorrectiveActionAssignment",
    "AuditLog",
]
