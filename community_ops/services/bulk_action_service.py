from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from datetime import datetime, timedelta, timezone
import asyncio
import logging

from ..core.config import settings
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.database_models import (
    BulkActionPayload,
    BulkActionResult,
    BulkActionType,
    BulkTarget,
    BulkTargetKind,
)
from ..models.notification_models import NotificationRequest, NotificationSource, NotificationType
from ..models.user import Membership, SuspensionType, User, building_of, unit_identifier
from .directory_service import directory_service
from .membership_index import MembershipIndex
from .notification_service import notification_service

logger = logging.getLogger(__name__)

# A target user with the memberships the action applies to
Occupant = Tuple[User, List[Membership]]

_CANCELLED = object()


def resolve_occupants(users: List[User], project_id: str, target: BulkTarget) -> List[Occupant]:
    """
    Users holding a membership of ``project_id`` in the target. A unit target
    matches the exact identifier; a building target matches on the building
    token of the identifier. Each user appears once.
    """
    index = MembershipIndex.from_users([u for u in users if not u.isDeleted], project_id)

    if target.kind == BulkTargetKind.UNIT:
        if not target.unitNum:
            raise ValueError("unitNum is required for a unit target")
        unit_ids = [unit_identifier(target.buildingNum, target.unitNum)]
    else:
        building = str(target.buildingNum)
        unit_ids = [unit_id for unit_id in index.unit_ids() if building_of(unit_id) == building]

    grouped: Dict[str, Occupant] = {}
    for unit_id in unit_ids:
        for user, membership in index.lookup(project_id, unit_id):
            grouped.setdefault(user.id, (user, []))[1].append(membership)
    return list(grouped.values())


def validate_payload(action: BulkActionType, payload: BulkActionPayload):
    """Refuse to start an action with missing input; names the missing field."""
    if action == BulkActionType.NOTIFY:
        if not (payload.message or "").strip():
            raise ValueError("message is required for a notification")
    elif action == BulkActionType.SUSPEND:
        if not (payload.reason or "").strip():
            raise ValueError("reason is required for a suspension")
        if payload.type not in [t.value for t in SuspensionType]:
            raise ValueError("type must be 'temporary' or 'permanent'")
        if payload.type == SuspensionType.TEMPORARY.value and (not payload.durationDays or payload.durationDays <= 0):
            raise ValueError("days must be a positive number for a temporary suspension")


class BulkActionService:
    """
    Applies one action to every occupant of a unit or building.

    Occupants are processed concurrently (bounded by BULK_MAX_CONCURRENCY) and
    independently: one failure never stops the rest, and the result counts
    every outcome. Setting ``cancel_event`` stops occupants that have not
    started yet; they are reported as cancelled.
    """

    def __init__(self, db=None, notifier=None, directory=None, max_concurrency: Optional[int] = None):
        self.db = db or database_service
        self.notifier = notifier or notification_service
        self.directory = directory or directory_service
        self.max_concurrency = max_concurrency or settings.BULK_MAX_CONCURRENCY

    async def execute(
        self,
        project_id: str,
        target: BulkTarget,
        action: BulkActionType,
        payload: BulkActionPayload,
        performed_by: str,
        cancel_event: Optional[asyncio.Event] = None,
        users: Optional[List[User]] = None,
    ) -> BulkActionResult:
        action = BulkActionType(action)
        validate_payload(action, payload)

        if users is None:
            users = await self.directory.load_project_users(project_id)
        occupants = resolve_occupants(users, project_id, target)

        if not occupants:
            logger.info(f"Bulk {action.value} on {target.kind.value} {target.buildingNum}: no occupants")
            return BulkActionResult(no_op=True)

        operation = self._operation_for(action, project_id, target, payload, performed_by)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _run(occupant: Occupant):
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return _CANCELLED
                return await operation(*occupant)

        outcomes = await asyncio.gather(*(_run(o) for o in occupants), return_exceptions=True)

        result = BulkActionResult(occupant_count=len(occupants))
        for (user, _), outcome in zip(occupants, outcomes):
            if outcome is _CANCELLED:
                result.cancelled_count += 1
            elif isinstance(outcome, BaseException):
                result.failure_count += 1
                result.failures.append({"userId": user.id, "error": str(outcome)})
                logger.warning(f"Bulk {action.value} failed for user {user.id}: {str(outcome)}")
            else:
                result.success_count += 1

        logger.info(f"Bulk {action.value} on {target.kind.value} {target.buildingNum} in {project_id}: {result.summary}")
        return result

    def _operation_for(
        self,
        action: BulkActionType,
        project_id: str,
        target: BulkTarget,
        payload: BulkActionPayload,
        performed_by: str,
    ) -> Callable[[User, List[Membership]], Awaitable[None]]:
        if action == BulkActionType.NOTIFY:
            default_title = "Unit Notification" if target.kind == BulkTargetKind.UNIT else "Building Notification"
            request_fields = {
                "project_id": project_id,
                "title": (payload.title or "").strip() or default_title,
                "body": payload.message,
                "title_localized": payload.titleLocalized,
                "body_localized": payload.messageLocalized,
                "notification_type": NotificationType.INFO,
                "source": NotificationSource.BULK_ACTION,
            }

            async def _notify(user: User, memberships: List[Membership]):
                success, _, error = await self.notifier.send(NotificationRequest(user_id=user.id, **request_fields))
                if not success:
                    raise Exception(error or "notification failed")

            return _notify

        if action == BulkActionType.SUSPEND:
            now = datetime.now(timezone.utc)
            fields = {
                "isSuspended": True,
                "suspensionReason": payload.reason.strip(),
                "suspensionType": payload.type,
                "suspendedAt": now,
                "suspendedBy": performed_by,
                "suspensionEndDate": now + timedelta(days=payload.durationDays) if payload.type == SuspensionType.TEMPORARY.value else None,
            }
        else:
            fields = {
                "isSuspended": False,
                "suspensionReason": None,
                "suspensionType": None,
                "suspendedAt": None,
                "suspendedBy": None,
                "suspensionEndDate": None,
            }

        async def _update(user: User, memberships: List[Membership]):
            await self._update_memberships(user, memberships, fields)

        return _update

    async def _update_memberships(self, user: User, targets: List[Membership], fields: dict):
        """Merge ``fields`` into the targeted memberships only and persist the whole list."""
        updated = [
            m.model_copy(update=fields) if any(m is t for t in targets) else m
            for m in user.memberships
        ]
        success, error = await self.db.update_document(COLLECTIONS['users'], user.id, {
            "projects": user.memberships_payload(updated),
            "updatedAt": datetime.now(timezone.utc),
        })
        if not success:
            raise Exception(f"Failed to update memberships: {error}")


bulk_action_service = BulkActionService()
