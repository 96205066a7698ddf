from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from enum import Enum

from .user import User, unit_identifier

# Unit Model
class Unit(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    buildingNum: str
    unitNum: str
    floor: Optional[Any] = None
    developer: Optional[str] = None

    @property
    def unit_id(self) -> str:
        return unit_identifier(self.buildingNum, self.unitNum)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Unit":
        data = dict(doc)
        data["id"] = data.get("id") or data.get("_doc_id")
        data.pop("_doc_id", None)
        # Imported units sometimes carry numeric building/unit numbers
        data["buildingNum"] = str(data.get("buildingNum", ""))
        data["unitNum"] = str(data.get("unitNum", ""))
        return cls(**data)


class UnitOccupants(BaseModel):
    owners: List[User] = Field(default_factory=list)
    family: List[User] = Field(default_factory=list)


# Unit joined with its occupants; derived, never persisted
class EnrichedUnit(Unit):
    unitId: str
    ownersCount: int = 0
    familyCount: int = 0
    owners: List[User] = Field(default_factory=list)
    family: List[User] = Field(default_factory=list)
    isOccupied: bool = False


class UnitRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Unit Request Model
class UnitRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    userId: str
    userName: Optional[str] = None
    userEmail: Optional[str] = None
    projectId: str
    projectName: Optional[str] = None
    unit: str
    role: Optional[str] = None
    status: str = Field(default=UnitRequestStatus.PENDING.value)  # pending, approved, rejected
    requestedAt: Optional[datetime] = None
    approvedAt: Optional[datetime] = None
    approvedBy: Optional[str] = None
    rejectedAt: Optional[datetime] = None
    rejectedBy: Optional[str] = None
    rejectionReason: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]):
        data = {k: v for k, v in doc.items() if k != "_doc_id"}
        data["id"] = doc.get("id") or doc.get("_doc_id")
        return cls(**data)

    @property
    def is_terminal(self) -> bool:
        return self.status != UnitRequestStatus.PENDING.value


# Device Key Reset Request Model
class DeviceResetRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    userId: str
    projectId: Optional[str] = None
    status: str = Field(default="pending")  # pending, approved, rejected
    requestedAt: Optional[datetime] = None
    resolvedAt: Optional[datetime] = None
    resolvedBy: Optional[str] = None
    adminNotes: Optional[str] = None
    # Annotated from the user directory when listed
    userName: Optional[str] = None
    userEmail: Optional[str] = None
    userUnit: Optional[str] = None
    userRole: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]):
        data = {k: v for k, v in doc.items() if k != "_doc_id"}
        data["id"] = doc.get("id") or doc.get("_doc_id")
        return cls(**data)



# ──────────────────────────────────────────────────────────────────────────────
# Bulk actions
# ──────────────────────────────────────────────────────────────────────────────

class BulkTargetKind(str, Enum):
    UNIT = "unit"
    BUILDING = "building"


class BulkActionType(str, Enum):
    NOTIFY = "notify"
    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"


class BulkTarget(BaseModel):
    # Callers pass building and unit numbers as numbers or strings
    model_config = ConfigDict(coerce_numbers_to_str=True)

    kind: BulkTargetKind
    buildingNum: str
    unitNum: Optional[str] = None


class BulkActionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # notify
    title: Optional[str] = None
    message: Optional[str] = None
    titleLocalized: Optional[str] = None
    messageLocalized: Optional[str] = None
    # suspend
    reason: Optional[str] = None
    type: Optional[Literal["temporary", "permanent"]] = None
    durationDays: Optional[int] = Field(default=None, alias="days")


class BulkActionResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    cancelled_count: int = 0
    occupant_count: int = 0
    no_op: bool = False
    failures: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.no_op:
            return "No occupants found for the selected target"
        text = f"{self.success_count} succeeded, {self.failure_count} failed"
        if self.cancelled_count:
            text += f", {self.cancelled_count} cancelled"
        return text
