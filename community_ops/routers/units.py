from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from ..auth.dependencies import require_project_admin
from ..services.directory_service import directory_service
from ..services.membership_index import build_membership_index, enrich_units
from ..services.pagination_service import fetch_unit_page

router = APIRouter(prefix="/projects/{project_id}/units", tags=["units"])

logger = logging.getLogger(__name__)

@router.get("")
async def list_units(
    project_id: str,
    search: Optional[str] = Query(None, description="Unit number prefix; 2+ characters switches to search"),
    after: Optional[str] = Query(None, description="nextCursor of the previous page (id of the last unit loaded)"),
    current_user: dict = Depends(require_project_admin),
):
    """
    Browse units 50 at a time (pass the returned cursor to load more) or
    search them by unit number prefix. Each unit carries its owners and family.
    """
    try:
        page = await fetch_unit_page(project_id, search=search, cursor=after)
        users = await directory_service.load_project_users(project_id)
        units = enrich_units(page["units"], build_membership_index(users, project_id))

        return {
            "units": units,
            "count": len(units),
            "mode": page["mode"],
            "hasMore": page["hasMore"],
            "nextCursor": page["nextCursor"],
        }
    except Exception as e:
        logger.error(f"Error listing units for {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to list units: {str(e)}")
