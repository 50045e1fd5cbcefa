# core/statuses.py
"""
Status vocabularies for assets and corrective actions.

Asset statuses arrive in either Japanese or English. The canonical (stored)
value is the Japanese form; `AssetStatus.parse` accepts both, so callers
compare enum members and never raw strings.
"""
from enum import Enum


class AssetStatus(str, Enum):
    IN_USE = "利用中"
    MISSING = "欠落"
    BROKEN = "故障中"
    IN_STORAGE = "保管中"
    RETURNED = "返却済"
    ABOLISHED = "廃止"
    ON_LOAN = "貸出中"
    RESERVED = "利用予約"
    IN_STORAGE_UNUSED = "保管(使用無)"

    @property
    def english(self) -> str:
        return _ENGLISH[self]

    @classmethod
    def parse(cls, value: "str | AssetStatus") -> "AssetStatus":
        """
        Resolve a Japanese or English status name.

        Raises:
            ValueError: If the value is not part of the vocabulary
        """
        if isinstance(value, AssetStatus):
            return value
        text = (value or "").strip()
        try:
            return cls(text)
        except ValueError:
            pass
        member = _BY_ENGLISH.get(text.lower())
        if member is None:
            raise ValueError(f"Unknown asset status: {value!r}")
        return member

    @classmethod
    def try_parse(cls, value: "str | AssetStatus | None") -> "AssetStatus | None":
        if value is None:
            return None
        try:
            return cls.parse(value)
        except ValueError:
            return None


_ENGLISH = {
    AssetStatus.IN_USE: "In Use",
    AssetStatus.MISSING: "Missing",
    AssetStatus.BROKEN: "Broken",
    AssetStatus.IN_STORAGE: "In Storage",
    AssetStatus.RETURNED: "Returned",
    AssetStatus.ABOLISHED: "Abolished",
    AssetStatus.ON_LOAN: "On Loan",
    AssetStatus.RESERVED: "Reserved",
    AssetStatus.IN_STORAGE_UNUSED: "In Storage-Unused",
}

_BY_ENGLISH = {label.lower(): member for member, label in _ENGLISH.items()}

# Statuses that describe a problem with the asset itself and need remediation.
DISCREPANCY_STATUSES = frozenset(
    {AssetStatus.MISSING, AssetStatus.BROKEN, AssetStatus.ABOLISHED}
)

_RESOLUTION_TABLE = {
    AssetStatus.MISSING: AssetStatus.IN_STORAGE,
    AssetStatus.BROKEN: AssetStatus.IN_USE,
    AssetStatus.ABOLISHED: AssetStatus.IN_STORAGE,
}


def statuses_equivalent(a: "str | None", b: "str | None") -> bool:
    """True when both strings name the same status in either language."""
    left, right = AssetStatus.try_parse(a), AssetStatus.try_parse(b)
    if left is None or right is None:
        return a == b
    return left is right


def is_discrepancy(status: "str | AssetStatus | None") -> bool:
    return AssetStatus.try_parse(status) in DISCREPANCY_STATUSES


def resolution_status(
    status: "str | AssetStatus",
    *,
    location_changed: bool = False,
    user_changed: bool = False,
) -> AssetStatus:
    """
    Status the canonical asset takes once the discrepancy is resolved.

    Missing assets that turn up go back to storage, repaired assets go back
    into use, and reactivated assets go to storage. An asset whose only
    finding is a new location or user stays in use. Anything else keeps the
    status that was reported.
    """
    member = AssetStatus.parse(status)
    if member in _RESOLUTION_TABLE:
        return _RESOLUTION_TABLE[member]
    if location_changed or user_changed:
        return AssetStatus.IN_USE
    return member


class CorrectiveActionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


OPEN_ACTION_STATUSES = (
    CorrectiveActionStatus.PENDING.value,
    CorrectiveActionStatus.IN_PROGRESS.value,
    CorrectiveActionStatus.OVERDUE.value,
)


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AuditPlanStatus(str, Enum):
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


ACTIVE_PLAN_STATUSES = (
    AuditPlanStatus.PLANNING.value,
    AuditPlanStatus.IN_PROGRESS.value,
)


class AuditAssignmentStatus(str, Enum):
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
