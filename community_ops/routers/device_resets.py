from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from typing import Optional
import logging

from ..auth.dependencies import require_project_admin
from ..services.device_reset_service import DeviceResetStateError, device_reset_service

router = APIRouter(prefix="/projects/{project_id}/device-reset-requests", tags=["device-reset-requests"])

logger = logging.getLogger(__name__)

class RejectDeviceResetRequest(BaseModel):
    admin_notes: Optional[str] = None

@router.get("")
async def list_device_reset_requests(
    project_id: str,
    status: Optional[str] = Query(None, description="pending, approved, rejected or all"),
    current_user: dict = Depends(require_project_admin),
):
    try:
        requests = await device_reset_service.load(project_id, status)
        return {"requests": requests, "count": len(requests)}
    except Exception as e:
        logger.error(f"Error listing device reset requests for {project_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to list device reset requests: {str(e)}")

@router.post("/{request_id}/approve")
async def approve_device_reset(project_id: str, request_id: str, current_user: dict = Depends(require_project_admin)):
    try:
        request = await device_reset_service.approve(project_id, request_id, current_user.get("uid"))
        return {"message": "Device key reset request approved", "request": request}
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DeviceResetStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error approving device reset {request_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to approve request: {str(e)}")

@router.post("/{request_id}/reject")
async def reject_device_reset(
    project_id: str,
    request_id: str,
    body: Optional[RejectDeviceResetRequest] = None,
    current_user: dict = Depends(require_project_admin),
):
    try:
        notes = body.admin_notes if body else None
        request = await device_reset_service.reject(project_id, request_id, current_user.get("uid"), notes)
        return {"message": "Device key reset request rejected", "request": request}
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DeviceResetStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error rejecting device reset {request_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to reject request: {str(e)}")
