from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging

from ..database.database_service import database_service
from ..database.collections import COLLECTIONS, project_collection
from ..models.database_models import UnitRequest, UnitRequestStatus
from ..models.notification_models import NotificationSource, NotificationType
from ..models.user import ApprovalStatus, Membership, User
from .notification_service import notification_service

logger = logging.getLogger(__name__)


class UnitRequestStateError(ValueError):
    """Raised when a request that is already approved or rejected is resolved again"""


class UnitRequestService:
    """
    pending -> approved | rejected. Both transitions update the request, then
    the requester's membership, then notify the requester. The notification
    is fire-and-forget: its failure never undoes the first two steps.
    """

    def __init__(self, db=None, notifier=None):
        self.db = db or database_service
        self.notifier = notifier or notification_service

    async def get_request(self, project_id: str, request_id: str) -> UnitRequest:
        success, doc, error = await self.db.get_document(project_collection(project_id, 'unit_requests'), request_id)
        if not success or not doc:
            raise LookupError(f"Unit request {request_id} not found")
        return UnitRequest.from_document(doc)

    async def list_requests(self, project_id: str, status: Optional[str] = None) -> List[UnitRequest]:
        filters = [("status", "==", status)] if status and status != "all" else None
        success, docs, error = await self.db.query_documents(
            project_collection(project_id, 'unit_requests'), filters=filters
        )
        if not success:
            logger.error(f"Failed to load unit requests for {project_id}: {error}")
            return []

        requests = [UnitRequest.from_document(doc) for doc in docs]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        requests.sort(key=lambda r: _aware(r.requestedAt) or oldest, reverse=True)
        return requests

    async def approve(self, project_id: str, request_id: str, approved_by: str) -> Dict[str, Any]:
        request = await self._load_pending(project_id, request_id)
        # A missing requester must fail before the request turns terminal
        user = await self._load_requester(request)
        now = datetime.now(timezone.utc)

        await self._update_request(project_id, request_id, {
            "status": UnitRequestStatus.APPROVED.value,
            "approvedAt": now,
            "approvedBy": approved_by,
        })

        def _approve(memberships: List[Membership]) -> List[Membership]:
            updated, matched = [], False
            for m in memberships:
                if m.matches(request.projectId, request.unit):
                    matched = True
                    m = m.model_copy(update={"approvalStatus": ApprovalStatus.APPROVED.value})
                updated.append(m)
            if not matched:
                # Membership was removed or edited since the request was made
                logger.info(f"No membership for {request.unit} on user {request.userId}; creating it")
                updated.append(Membership(
                    projectId=request.projectId,
                    unit=request.unit,
                    role=request.role,
                    approvalStatus=ApprovalStatus.APPROVED.value,
                ))
            return updated

        await self._write_memberships(user, _approve(user.memberships))
        logger.info(f"Unit request {request_id} approved by {approved_by}")

        notification_sent = await self._notify(
            request,
            title_en="Unit Request Approved",
            body_en=f"Your request for unit {request.unit} has been approved.",
            title_ar="تمت الموافقة على طلب الوحدة",
            body_ar=f"تمت الموافقة على طلبك للوحدة {request.unit}.",
            notification_type=NotificationType.SUCCESS,
        )
        return self._outcome(request_id, UnitRequestStatus.APPROVED, notification_sent)

    async def reject(self, project_id: str, request_id: str, rejected_by: str, reason: str) -> Dict[str, Any]:
        if not (reason or "").strip():
            raise ValueError("A rejection reason is required")
        reason = reason.strip()

        request = await self._load_pending(project_id, request_id)
        user = await self._load_requester(request)

        await self._update_request(project_id, request_id, {
            "status": UnitRequestStatus.REJECTED.value,
            "rejectedAt": datetime.now(timezone.utc),
            "rejectedBy": rejected_by,
            "rejectionReason": reason,
        })
        remaining = [m for m in user.memberships if not m.matches(request.projectId, request.unit)]
        await self._write_memberships(user, remaining)
        logger.info(f"Unit request {request_id} rejected by {rejected_by}")

        notification_sent = await self._notify(
            request,
            title_en="Unit Request Rejected",
            body_en=f"Your request for unit {request.unit} has been rejected. Reason: {reason}",
            title_ar="تم رفض طلب الوحدة",
            body_ar=f"تم رفض طلبك للوحدة {request.unit}. السبب: {reason}",
            notification_type=NotificationType.ALERT,
        )
        return self._outcome(request_id, UnitRequestStatus.REJECTED, notification_sent)

    async def _load_pending(self, project_id: str, request_id: str) -> UnitRequest:
        request = await self.get_request(project_id, request_id)
        if request.is_terminal:
            raise UnitRequestStateError(f"Unit request {request_id} is already {request.status}")
        return request

    async def _update_request(self, project_id: str, request_id: str, fields: Dict[str, Any]):
        success, error = await self.db.update_document(project_collection(project_id, 'unit_requests'), request_id, fields)
        if not success:
            raise Exception(f"Failed to update unit request: {error}")

    async def _load_requester(self, request: UnitRequest) -> User:
        success, doc, error = await self.db.get_document(COLLECTIONS['users'], request.userId)
        if not success or not doc:
            raise LookupError(f"Requester {request.userId} not found")
        return User.from_document(doc)

    async def _write_memberships(self, user: User, memberships: List[Membership]):
        success, error = await self.db.update_document(COLLECTIONS['users'], user.id, {
            "projects": user.memberships_payload(memberships),
            "updatedAt": datetime.now(timezone.utc),
        })
        if not success:
            raise Exception(f"Failed to update memberships of {user.id}: {error}")

    async def _notify(self, request: UnitRequest, **message) -> bool:
        try:
            success, _, error = await self.notifier.send_status_notification(
                request.projectId,
                request.userId,
                source=NotificationSource.UNIT_REQUEST,
                **message,
            )
            if not success:
                logger.warning(f"Unit request notification to {request.userId} failed: {error}")
            return success
        except Exception as e:
            logger.warning(f"Unit request notification to {request.userId} failed: {str(e)}")
            return False

    @staticmethod
    def _outcome(request_id: str, status: UnitRequestStatus, notification_sent: bool) -> Dict[str, Any]:
        message = f"Request {status.value}"
        message += " and user notified" if notification_sent else ", but the notification could not be sent"
        return {
            "request_id": request_id,
            "status": status.value,
            "notification_sent": notification_sent,
            "message": message,
        }


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


unit_request_service = UnitRequestService()
