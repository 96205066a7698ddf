from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union
from enum import Enum
from datetime import datetime

# ──────────────────────────────────────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────────────────────────────────────

class MembershipRole(str, Enum):
    OWNER = "owner"
    FAMILY = "family"
    TENANT = "tenant"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SuspensionType(str, Enum):
    TEMPORARY = "temporary"
    PERMANENT = "permanent"


UNIT_SEPARATOR = "-"


def unit_identifier(building_num: Any, unit_num: Any) -> str:
    """Composite key joining units to memberships, e.g. '7-12'"""
    return f"{building_num}{UNIT_SEPARATOR}{unit_num}"


def building_of(unit_id: Optional[str]) -> Optional[str]:
    """Building token of a unit identifier ('7-12' -> '7')"""
    if not unit_id:
        return None
    return unit_id.split(UNIT_SEPARATOR, 1)[0]


# ──────────────────────────────────────────────────────────────────────────────
# Membership: one entry of a user's `projects` array
# ──────────────────────────────────────────────────────────────────────────────

class Membership(BaseModel):
    # Unknown keys written by the mobile app are preserved on write-back
    model_config = ConfigDict(extra="allow")

    projectId: str
    unit: Optional[str] = None
    role: Optional[str] = None
    approvalStatus: Optional[str] = None
    isSuspended: bool = False
    suspensionReason: Optional[str] = None
    suspensionType: Optional[str] = None
    suspensionEndDate: Optional[datetime] = None
    suspendedAt: Optional[datetime] = None
    suspendedBy: Optional[str] = None

    def matches(self, project_id: str, unit: Optional[str] = None) -> bool:
        if self.projectId != project_id:
            return False
        return unit is None or self.unit == unit

    @property
    def building(self) -> Optional[str]:
        return building_of(self.unit)


# ──────────────────────────────────────────────────────────────────────────────
# User directory record
# ──────────────────────────────────────────────────────────────────────────────

class User(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    fullName: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    nationalId: Optional[str] = None
    dateOfBirth: Optional[Union[datetime, str]] = None
    gender: Optional[str] = None

    # Stored as `projects` in the directory
    memberships: List[Membership] = Field(default_factory=list, alias="projects")

    approvalStatus: Optional[str] = None
    registrationStatus: Optional[str] = None
    isDeleted: bool = False
    migrated: bool = False
    oldId: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        if self.firstName or self.lastName:
            return f"{self.firstName or ''} {self.lastName or ''}".strip()
        return self.fullName or ""

    @property
    def needs_migration(self) -> bool:
        """Legacy record that has not been reconciled yet"""
        return bool(self.oldId) and self.migrated is not True

    def memberships_for(self, project_id: str, unit: Optional[str] = None) -> List[Membership]:
        return [m for m in self.memberships if m.matches(project_id, unit)]

    def memberships_payload(self, memberships: Optional[List[Membership]] = None) -> List[Dict[str, Any]]:
        """Serialize a membership list the way it is stored on the user document"""
        items = self.memberships if memberships is None else memberships
        return [m.model_dump(exclude_none=True) for m in items]

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "User":
        data = dict(doc)
        data["id"] = data.get("id") or data.get("_doc_id")
        data.pop("_doc_id", None)
        data["projects"] = [p for p in (data.get("projects") or []) if isinstance(p, dict) and p.get("projectId")]
        return cls(**data)
