from typing import Dict, Optional, Tuple
from datetime import datetime, timezone
import logging

from ..core.config import settings
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS, project_collection
from ..models.notification_models import (
    NotificationAudience,
    NotificationRequest,
    NotificationSource,
    NotificationType,
)
from .fcm_service import fcm_service

logger = logging.getLogger(__name__)

class NotificationService:
    """
    Sends a notification to one user of one project.

    The notification is queued as a document in projects/{projectId}/notifications,
    which the mobile backend's Cloud Function picks up and delivers. Every call
    succeeds or fails on its own; callers that fan out count the outcomes.
    """

    def __init__(self, db=None, fcm=None):
        self.db = db or database_service
        self.fcm = fcm or fcm_service
        self._project_names: Dict[str, str] = {}

    async def get_project_name(self, project_id: str) -> str:
        if project_id in self._project_names:
            return self._project_names[project_id]

        name = settings.DEFAULT_PROJECT_NAME
        try:
            success, project, error = await self.db.get_document(COLLECTIONS['projects'], project_id)
            if success and project and project.get('name'):
                name = project['name']
        except Exception as e:
            logger.warning(f"Could not fetch project name for {project_id}: {str(e)}")

        self._project_names[project_id] = name
        return name

    async def send(self, request: NotificationRequest) -> Tuple[bool, Optional[str], Optional[str]]:
        """Queue one notification. Returns (success, notification_id, error)."""
        try:
            project_name = await self.get_project_name(request.project_id)

            notification_doc = {
                "projectId": request.project_id,
                "projectName": project_name,
                "title_en": request.title,
                # Arabic falls back to English when no translation is supplied
                "title_ar": request.title_localized or request.title,
                "body_en": request.body,
                "body_ar": request.body_localized or request.body,
                "type": request.notification_type.value,
                "sendNow": True,
                "scheduledAt": None,
                "audience": NotificationAudience(uids=[request.user_id]).model_dump(),
                "createdBy": "system",
                "createdAt": datetime.now(timezone.utc),
                "status": "pending",
                "sentAt": None,
                "meta": {
                    "image": None,
                    "deepLink": None,
                    "adminName": "System",
                    "source": request.source.value,
                    **request.data,
                },
            }

            success, notification_id, error = await self.db.create_document(
                project_collection(request.project_id, 'notifications'),
                notification_doc
            )

            if not success:
                logger.error(f"Failed to queue notification for user {request.user_id}: {error}")
                return False, None, error

            if settings.SEND_DIRECT_PUSH:
                try:
                    await self.fcm.send_notification_to_user(request.user_id, request.title, request.body, {
                        "type": request.notification_type.value,
                        "projectId": request.project_id,
                        "notificationId": notification_id,
                    })
                except Exception as e:
                    logger.error(f"Failed to send FCM notification: {str(e)}")

            logger.info(f"Notification {notification_id} queued for user {request.user_id}")
            return True, notification_id, None

        except Exception as e:
            logger.error(f"Failed to send notification to {request.user_id}: {str(e)}")
            return False, None, str(e)

    async def send_status_notification(
        self,
        project_id: str,
        user_id: str,
        title_en: str,
        body_en: str,
        title_ar: Optional[str] = None,
        body_ar: Optional[str] = None,
        notification_type: NotificationType = NotificationType.ALERT,
        source: NotificationSource = NotificationSource.STATUS_UPDATE,
    ) -> Tuple[bool, Optional[str], Optional[str]]:
        """Shorthand for a bilingual status-change notification"""
        return await self.send(NotificationRequest(
            user_id=user_id,
            project_id=project_id,
            title=title_en,
            body=body_en,
            title_localized=title_ar,
            body_localized=body_ar,
            notification_type=notification_type,
            source=source,
        ))


notification_service = NotificationService()
