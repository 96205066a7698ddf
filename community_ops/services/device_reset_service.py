"""
Device key reset requests raised from the mobile app.

Requests live in projects/{projectId}/deviceKeyResetRequests. The console
lists them annotated with the requester's name, email, unit and role, and
keeps the list (and the pending badge) current through a live subscription.
"""
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from datetime import datetime, timezone
import asyncio
import logging

from ..database.database_service import database_service
from ..database.collections import project_collection
from ..models.database_models import DeviceResetRequest
from ..models.notification_models import NotificationSource, NotificationType
from ..models.user import User
from .directory_service import directory_service
from .notification_service import notification_service

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_NOTE = "Request rejected by admin"

UpdateCallback = Callable[[List[DeviceResetRequest], int], Optional[Awaitable[None]]]


class DeviceResetStateError(ValueError):
    """Raised when a request that is no longer pending is resolved again"""


def annotate_requests(docs: Iterable[Dict[str, Any]], users: Dict[str, Optional[User]]) -> List[DeviceResetRequest]:
    requests = []
    for doc in docs:
        request = DeviceResetRequest.from_document(doc)
        user = users.get(request.userId)
        if user is not None:
            membership = next(iter(user.memberships_for(request.projectId)), None) if request.projectId else None
            request.userName = user.display_name or "Unknown"
            request.userEmail = user.email or ""
            request.userUnit = membership.unit if membership and membership.unit else "N/A"
            request.userRole = membership.role if membership and membership.role else "N/A"
        requests.append(request)
    return requests


def filter_and_sort(requests: List[DeviceResetRequest], status: Optional[str] = None) -> List[DeviceResetRequest]:
    """Status filter ('all' or None keeps everything), newest first"""
    if status and status != "all":
        requests = [r for r in requests if r.status == status]

    def _key(request: DeviceResetRequest) -> float:
        if request.requestedAt is None:
            return 0
        value = request.requestedAt
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()

    return sorted(requests, key=_key, reverse=True)


class DeviceResetService:
    def __init__(self, db=None, directory=None, notifier=None):
        self.db = db or database_service
        self.directory = directory or directory_service
        self.notifier = notifier or notification_service

    async def _users_for(self, docs: List[Dict[str, Any]]) -> Dict[str, Optional[User]]:
        user_ids = list(dict.fromkeys(doc.get("userId") for doc in docs if doc.get("userId")))

        async def _load(user_id: str) -> Optional[User]:
            try:
                return await self.directory.load_user(user_id)
            except Exception as e:
                logger.error(f"Error fetching requester {user_id}: {str(e)}")
                return None

        users = await asyncio.gather(*(_load(user_id) for user_id in user_ids))
        return dict(zip(user_ids, users))

    async def build_view(self, docs: List[Dict[str, Any]], status: Optional[str] = None) -> List[DeviceResetRequest]:
        users = await self._users_for(docs)
        return filter_and_sort(annotate_requests(docs, users), status)

    async def load(self, project_id: str, status: Optional[str] = None) -> List[DeviceResetRequest]:
        docs = await self.directory.load_collection(project_collection(project_id, 'device_reset_requests'))
        return await self.build_view(docs, status)

    def subscribe(
        self,
        project_id: str,
        on_update: UpdateCallback,
        status: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Callable[[], None]:
        """
        Push the annotated list and the pending count to ``on_update`` on
        every change of the collection. Snapshots arrive on the listener
        thread and are processed on ``loop`` (the running loop when omitted).
        Returns the unsubscribe callable.
        """
        loop = loop or asyncio.get_running_loop()

        async def _process(docs: List[Dict[str, Any]]):
            requests = await self.build_view(docs, status)
            # The badge counts every pending request, whatever the list filter
            count = sum(1 for doc in docs if doc.get("status") == "pending")
            result = on_update(requests, count)
            if asyncio.iscoroutine(result):
                await result
            logger.debug(f"Device reset requests for {project_id} updated: {len(requests)} listed, {count} pending")

        def _on_done(future):
            if future.cancelled():
                return
            error = future.exception()
            if error is not None:
                logger.error(f"Failed to process device reset update for {project_id}: {str(error)}")

        def _on_change(docs: List[Dict[str, Any]]):
            asyncio.run_coroutine_threadsafe(_process(docs), loop).add_done_callback(_on_done)

        def _on_error(error: Exception):
            logger.error(f"Device reset listener for {project_id} failed: {str(error)}")

        return self.db.listen(project_collection(project_id, 'device_reset_requests'), _on_change, _on_error)

    async def approve(self, project_id: str, request_id: str, resolved_by: str) -> DeviceResetRequest:
        return await self._resolve(project_id, request_id, resolved_by, "approved")

    async def reject(self, project_id: str, request_id: str, resolved_by: str, admin_notes: Optional[str] = None) -> DeviceResetRequest:
        notes = (admin_notes or "").strip() or DEFAULT_REJECTION_NOTE
        return await self._resolve(project_id, request_id, resolved_by, "rejected", notes)

    async def _resolve(self, project_id: str, request_id: str, resolved_by: str, status: str,
                       admin_notes: Optional[str] = None) -> DeviceResetRequest:
        collection = project_collection(project_id, 'device_reset_requests')
        success, doc, error = await self.db.get_document(collection, request_id)
        if not success or not doc:
            raise LookupError(f"Device reset request {request_id} not found")

        request = DeviceResetRequest.from_document(doc)
        if request.status != "pending":
            raise DeviceResetStateError(f"Device reset request {request_id} is already {request.status}")

        updates: Dict[str, Any] = {
            "status": status,
            "resolvedAt": datetime.now(timezone.utc),
            "resolvedBy": resolved_by,
        }
        if admin_notes is not None:
            updates["adminNotes"] = admin_notes

        success, error = await self.db.update_document(collection, request_id, updates)
        if not success:
            raise Exception(f"Failed to update device reset request: {error}")
        logger.info(f"Device reset request {request_id} {status} by {resolved_by}")

        await self._notify(project_id, request, status, admin_notes)
        return request.model_copy(update=updates)

    async def _notify(self, project_id: str, request: DeviceResetRequest, status: str, admin_notes: Optional[str]):
        if status == "approved":
            message = dict(
                title_en="Device Reset Approved",
                body_en="Your device key reset request has been approved. You can now sign in on your new device.",
                title_ar="تمت الموافقة على إعادة تعيين الجهاز",
                body_ar="تمت الموافقة على طلب إعادة تعيين مفتاح جهازك. يمكنك الآن تسجيل الدخول من جهازك الجديد.",
                notification_type=NotificationType.SUCCESS,
            )
        else:
            message = dict(
                title_en="Device Reset Rejected",
                body_en=f"Your device key reset request has been rejected. {admin_notes}",
                title_ar="تم رفض إعادة تعيين الجهاز",
                body_ar=f"تم رفض طلب إعادة تعيين مفتاح جهازك. {admin_notes}",
                notification_type=NotificationType.ALERT,
            )
        try:
            await self.notifier.send_status_notification(
                project_id, request.userId, source=NotificationSource.DEVICE_RESET, **message
            )
        except Exception as e:
            logger.warning(f"Device reset notification to {request.userId} failed: {str(e)}")


device_reset_service = DeviceResetService()
