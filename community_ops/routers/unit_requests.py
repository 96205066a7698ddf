from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from typing import Optional
import logging

from ..auth.dependencies import require_project_admin
from ..services.unit_request_service import UnitRequestStateError, unit_request_service

router = APIRouter(prefix="/projects/{project_id}/unit-requests", tags=["unit-requests"])

logger = logging.getLogger(__name__)

# Request Models
class RejectUnitRequest(BaseModel):
    reason: str

@router.get("")
async def list_unit_requests(
    project_id: str,
    status: Optional[str] = Query(None, description="pending, approved, rejected or all"),
    current_user: dict = Depends(require_project_admin),
):
    try:
        requests = await unit_request_service.list_requests(project_id, status)
        return {"requests": requests, "count": len(requests)}
    except Exception as e:
        logger.error(f"Error listing unit requests for {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to list unit requests: {str(e)}")

@router.post("/{request_id}/approve")
async def approve_unit_request(project_id: str, request_id: str, current_user: dict = Depends(require_project_admin)):
    try:
        return await unit_request_service.approve(project_id, request_id, current_user.get("uid"))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnitRequestStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error approving unit request {request_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to approve unit request: {str(e)}")

@router.post("/{request_id}/reject")
async def reject_unit_request(
    project_id: str,
    request_id: str,
    body: RejectUnitRequest,
    current_user: dict = Depends(require_project_admin),
):
    try:
        return await unit_request_service.reject(project_id, request_id, current_user.get("uid"), body.reason)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnitRequestStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error rejecting unit request {request_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to reject unit request: {str(e)}")
