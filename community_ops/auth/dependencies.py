from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .firebase_auth import firebase_auth
from ..core.config import settings
from ..database.collections import COLLECTIONS
from ..database.database_service import database_service
import logging

security = HTTPBearer()
logger = logging.getLogger(__name__)

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """
    Verify Firebase authentication token and return the caller.
    The role comes from the caller's admins/{uid} document (accountType);
    callers without one get no role. Raises 401 if token is invalid.
    """
    try:
        token = credentials.credentials
        user_data = await firebase_auth.verify_token(token)

        if not user_data:
            logger.warning("[Auth] Token verification failed - invalid token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )

        uid = user_data.get("uid")
        success, admin, error = await database_service.get_document(COLLECTIONS['admins'], uid)
        if success and admin and admin.get("isActive", True):
            account_type = admin.get("accountType")
            user_data["role"] = settings.SUPER_ADMIN_ROLE if account_type == settings.SUPER_ADMIN_ROLE else "admin"
            user_data["assignedProjects"] = admin.get("assignedProjects") or []
        else:
            user_data["role"] = None

        logger.info(f"[Auth] Authenticated user: {user_data.get('email')} with role: {user_data.get('role')}")

        return user_data
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[Auth] Authentication error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Authentication failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

async def require_admin(current_user: dict = Depends(get_current_user)):
    user_role = current_user.get("role")

    if user_role not in settings.ADMIN_ROLES:
        logger.warning(f"[Auth] Admin access denied: user role '{user_role}' is not admin")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Admin access required. Current role: {user_role}"
        )
    return current_user

async def require_project_admin(project_id: str, current_user: dict = Depends(require_admin)):
    """Admins only reach their assigned projects; a super admin reaches every project."""
    if current_user.get("role") == settings.SUPER_ADMIN_ROLE:
        return current_user

    if project_id in (current_user.get("assignedProjects") or []):
        return current_user

    logger.warning(f"[Auth] Project access denied: user '{current_user.get('uid')}' is not assigned to '{project_id}'")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"No access to project {project_id}"
    )
