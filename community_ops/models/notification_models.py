"""
Notification models for the community console.
A notification is queued as a document under projects/{projectId}/notifications
and carries English and Arabic text.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from enum import Enum


class NotificationType(str, Enum):
    """Severity/category shown by the mobile app"""

    ALERT = "alert"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


class NotificationSource(str, Enum):
    """Which console workflow produced the notification"""

    STATUS_UPDATE = "status_update"
    BULK_ACTION = "bulk_action"
    UNIT_REQUEST = "unit_request"
    DEVICE_RESET = "device_reset"


class NotificationAudience(BaseModel):
    all: bool = False
    uids: List[str] = Field(default_factory=list)
    topic: Optional[str] = None


class NotificationRequest(BaseModel):
    """One send request to a single user"""

    user_id: str
    project_id: str
    title: str
    body: str
    title_localized: Optional[str] = None
    body_localized: Optional[str] = None
    notification_type: NotificationType = NotificationType.ALERT
    source: NotificationSource = NotificationSource.STATUS_UPDATE
    data: Dict[str, Any] = Field(default_factory=dict)
