from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
import logging

from ..auth.dependencies import require_project_admin
from ..models.database_models import BulkActionPayload, BulkActionType, BulkTarget
from ..services.bulk_action_service import bulk_action_service

router = APIRouter(prefix="/projects/{project_id}/bulk-actions", tags=["bulk-actions"])

logger = logging.getLogger(__name__)

# Request Models
class BulkActionRequest(BaseModel):
    target: BulkTarget
    action: BulkActionType  # notify, suspend, unsuspend
    payload: BulkActionPayload = Field(default_factory=BulkActionPayload)

@router.post("")
async def run_bulk_action(
    project_id: str,
    request: BulkActionRequest,
    current_user: dict = Depends(require_project_admin),
):
    """
    Notify, suspend or unsuspend every occupant of a unit or a building.
    Per-occupant failures are counted in the result, not raised.
    """
    try:
        result = await bulk_action_service.execute(
            project_id,
            request.target,
            request.action,
            request.payload,
            performed_by=current_user.get("uid"),
        )
        return {
            "success_count": result.success_count,
            "failure_count": result.failure_count,
            "cancelled_count": result.cancelled_count,
            "occupant_count": result.occupant_count,
            "no_op": result.no_op,
            "failures": result.failures,
            "message": result.summary,
        }
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Bulk {request.action.value} failed in {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Bulk action failed: {str(e)}")
