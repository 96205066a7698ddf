from typing import Any, Dict, Iterable, Optional
from datetime import datetime, timezone
import logging

from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.user import User
from .directory_service import directory_service

logger = logging.getLogger(__name__)


def needs_migration(user: User) -> bool:
    return user.needs_migration


def project_user_stats(users: Iterable[User], project_id: Optional[str] = None) -> Dict[str, int]:
    """Counters shown above the user list. Deleted users only count towards ``deleted``."""
    stats = {"total": 0, "active": 0, "pending": 0, "suspended": 0, "needsMigration": 0, "deleted": 0}
    for user in users:
        if user.isDeleted:
            stats["deleted"] += 1
            continue
        stats["total"] += 1
        if user.registrationStatus == "completed":
            stats["active"] += 1
        elif user.registrationStatus == "pending":
            stats["pending"] += 1
        memberships = user.memberships_for(project_id) if project_id else user.memberships
        if any(m.isSuspended for m in memberships):
            stats["suspended"] += 1
        if user.needs_migration:
            stats["needsMigration"] += 1
    return stats


class UserService:
    def __init__(self, db=None, directory=None):
        self.db = db or database_service
        self.directory = directory or directory_service

    async def _require_user(self, user_id: str) -> User:
        user = await self.directory.load_user(user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        return user

    async def soft_delete_user(self, user_id: str, deleted_by: str) -> Dict[str, Any]:
        """
        Mark the user deleted and clear every membership. The record stays so
        it can still be listed under the deleted filter of its former projects.
        """
        user = await self._require_user(user_id)
        if user.isDeleted:
            raise ValueError(f"User {user_id} is already deleted")

        now = datetime.now(timezone.utc)
        previous = sorted({m.projectId for m in user.memberships} | set(getattr(user, "previousProjectIds", None) or []))
        updates = {
            "isDeleted": True,
            "deletedAt": now,
            "deletedBy": deleted_by,
            "projects": [],
            "previousProjectIds": previous,
            "updatedAt": now,
        }
        success, error = await self.db.update_document(COLLECTIONS['users'], user_id, updates)
        if not success:
            raise Exception(f"Failed to delete user: {error}")

        logger.info(f"User {user_id} soft-deleted by {deleted_by}")
        return {"user_id": user_id, "removed_memberships": len(user.memberships)}

    async def remove_from_project(self, user_id: str, project_id: str, removed_by: str) -> Dict[str, Any]:
        """Drop the user's memberships of one project, keeping the others."""
        user = await self._require_user(user_id)
        remaining = [m for m in user.memberships if m.projectId != project_id]
        removed = len(user.memberships) - len(remaining)
        if removed == 0:
            raise ValueError(f"User {user_id} is not a member of project {project_id}")

        success, error = await self.db.update_document(COLLECTIONS['users'], user_id, {
            "projects": user.memberships_payload(remaining),
            "updatedAt": datetime.now(timezone.utc),
        })
        if not success:
            raise Exception(f"Failed to remove user from project: {error}")

        logger.info(f"User {user_id} removed from project {project_id} by {removed_by}")
        return {"user_id": user_id, "project_id": project_id, "removed_memberships": removed}

    async def get_project_stats(self, project_id: str) -> Dict[str, int]:
        users = await self.directory.load_project_users(project_id)
        return project_user_stats(users, project_id)


user_service = UserService()
