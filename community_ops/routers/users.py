from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from ..auth.dependencies import require_project_admin
from ..services.directory_service import directory_service
from ..services.pagination_service import UserFilters, UserListView
from ..services.user_service import user_service

router = APIRouter(prefix="/projects/{project_id}/users", tags=["users"])

logger = logging.getLogger(__name__)

@router.get("")
async def list_users(
    project_id: str,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None),
    deletion: str = Query("active", description="active, deleted or all"),
    search: str = Query(""),
    search_field: str = Query("all", description="all, name, email, mobile or nationalId"),
    approval_status: Optional[str] = None,
    registration_status: Optional[str] = None,
    role: Optional[str] = None,
    unit: Optional[str] = None,
    building: Optional[str] = None,
    suspended: Optional[bool] = None,
    needs_migration: Optional[bool] = None,
    current_user: dict = Depends(require_project_admin),
):
    """Filter and page the project's users in memory."""
    try:
        users = await directory_service.load_project_users(project_id)

        view = UserListView(project_id, users)
        view.apply_filters(UserFilters(
            deletion=deletion,
            search=search,
            search_field=search_field,
            approval_status=approval_status,
            registration_status=registration_status,
            role=role,
            unit=unit,
            building=building,
            suspended=suspended,
            needs_migration=needs_migration,
        ))
        if page_size is not None:
            view.set_page_size(page_size)
        view.set_page(page)

        return view.to_response()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error listing users for {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to list users: {str(e)}")

@router.get("/stats")
async def get_user_stats(project_id: str, current_user: dict = Depends(require_project_admin)):
    try:
        return await user_service.get_project_stats(project_id)
    except Exception as e:
        logger.error(f"Error computing user stats for {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to compute user stats: {str(e)}")

@router.delete("/{user_id}")
async def delete_user(project_id: str, user_id: str, current_user: dict = Depends(require_project_admin)):
    """Soft delete: the user is flagged deleted and loses every membership."""
    try:
        result = await user_service.soft_delete_user(user_id, current_user.get("uid"))
        return {"message": "User deleted", **result}
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to delete user: {str(e)}")

@router.post("/{user_id}/remove")
async def remove_user_from_project(project_id: str, user_id: str, current_user: dict = Depends(require_project_admin)):
    try:
        result = await user_service.remove_from_project(user_id, project_id, current_user.get("uid"))
        return {"message": "User removed from project", **result}
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error removing user {user_id} from {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to remove user: {str(e)}")
