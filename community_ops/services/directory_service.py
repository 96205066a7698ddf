from typing import Any, Dict, Iterable, List, Optional
import asyncio
import logging

from ..core.config import settings
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS, project_collection
from ..models.user import User

logger = logging.getLogger(__name__)

class DirectoryService:
    """
    Reads the directory collections a project screen works from.

    A failed read never propagates: the affected collection comes back empty
    and the failure is logged, so one unavailable collection cannot take the
    rest of the dashboard down with it.
    """

    def __init__(self, db=None):
        self.db = db or database_service

    async def load_collection(self, path: str, filters: Optional[list] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        try:
            success, docs, error = await self.db.query_documents(path, filters=filters, limit=limit)
        except Exception as e:
            success, docs, error = False, [], str(e)

        if not success:
            logger.error(f"Failed to load {path}, continuing with an empty list: {error}")
            return []
        return docs

    async def load_project_user_documents(self, project_id: str, cap: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Raw user documents of a project, newest first, bounded by USER_FETCH_CAP.
        Soft-deleted users that used to belong to the project are included so the
        deletion filter of the user list can show them.
        """
        cap = cap or settings.USER_FETCH_CAP
        try:
            success, docs, error = await self.db.query_documents(
                COLLECTIONS['users'],
                limit=cap,
                order_by=['createdAt'],
                direction='desc',
            )
        except Exception as e:
            success, docs, error = False, [], str(e)

        if not success:
            logger.error(f"Failed to load users for project {project_id}: {error}")
            return []

        if len(docs) >= cap:
            logger.warning(f"User directory hit the fetch cap of {cap}; older users are not loaded")

        return [doc for doc in docs if _belongs_to_project(doc, project_id)]

    async def load_project_users(self, project_id: str, cap: Optional[int] = None) -> List[User]:
        docs = await self.load_project_user_documents(project_id, cap)
        users = []
        for doc in docs:
            try:
                users.append(User.from_document(doc))
            except Exception as e:
                logger.warning(f"Skipping malformed user document {doc.get('id')}: {str(e)}")
        return users

    async def load_user(self, user_id: str) -> Optional[User]:
        success, doc, error = await self.db.get_document(COLLECTIONS['users'], user_id)
        if not success or not doc:
            logger.warning(f"User {user_id} not found: {error}")
            return None
        return User.from_document(doc)

    async def load_badge_collections(self, project_id: str, domains: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Fetch every collection the badge rules need, concurrently and independently."""
        domains = list(dict.fromkeys(domains))

        async def _load(domain: str) -> List[Dict[str, Any]]:
            if domain == 'users':
                return await self.load_project_user_documents(project_id)
            if domain == 'pending_admins':
                return await self.load_collection(COLLECTIONS['pending_admins'])
            return await self.load_collection(project_collection(project_id, domain))

        results = await asyncio.gather(*(_load(domain) for domain in domains))
        return dict(zip(domains, results))


def _belongs_to_project(doc: Dict[str, Any], project_id: str) -> bool:
    for membership in doc.get('projects') or []:
        if isinstance(membership, dict) and membership.get('projectId') == project_id:
            return True
    return project_id in (doc.get('previousProjectIds') or [])


directory_service = DirectoryService()
