from fastapi import APIRouter, HTTPException, Depends
import logging

from ..auth.dependencies import require_project_admin
from ..services.badge_service import compute_project_badges

router = APIRouter(prefix="/projects/{project_id}", tags=["dashboard"])

logger = logging.getLogger(__name__)

@router.get("/badges")
async def get_badges(project_id: str, current_user: dict = Depends(require_project_admin)):
    """
    Pending-work counters per section plus the dashboard total.
    A section whose collection cannot be read counts as 0.
    """
    try:
        return await compute_project_badges(project_id, role=current_user.get("role"))
    except Exception as e:
        logger.error(f"Error computing badges for {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to compute badges: {str(e)}")
