"""Admin moderation endpoints for pending models."""

import logging
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status, Depends, Security
from pydantic import BaseModel

from auth import require_admin
from listings import ListingManager, ListingNotFoundError, get_listing_manager, STATUS_PENDING, STATUS_APPROVED
from moderation import ModerationWorkflow, InvalidStatusError, get_workflow

logger = logging.getLogger(__name__)

# Create router without prefix since it will be included in the main models router
router = APIRouter()

class StatusUpdate(BaseModel):
    """Moderation decision: approved or rejected."""
    status: str

@router.get("/pending")
async def get_pending_models(
    admin: Dict[str, Any] = Security(require_admin),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Models awaiting moderation, newest first."""
    try:
        return await listings.list_by_status(STATUS_PENDING)
    except Exception as e:
        logger.error(f"Error fetching pending models: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error fetching pending models", "error": str(e)}
        )

@router.patch("/status/{model_id}")
async def update_model_status(
    model_id: str,
    update: StatusUpdate,
    admin: Dict[str, Any] = Security(require_admin),
    workflow: ModerationWorkflow = Depends(get_workflow)
):
    """Approve a pending model, or reject it and delete it with its file."""
    logger.info(f"Updating model status: {model_id} to {update.status}")

    try:
        result = await workflow.set_status(model_id, update.status)
    except InvalidStatusError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid status"
        )
    except ListingNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Model not found"
        )
    except Exception as e:
        logger.error(f"Error in model status update: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error updating model status", "error": str(e)}
        )

    if update.status == STATUS_APPROVED:
        response = {
            "message": "Model approved successfully",
            "model": result.listing
        }
    else:
        response = {
            "message": "Model rejected successfully" if result.warnings
                       else "Model rejected and deleted successfully",
            "deletedModel": result.listing_id
        }

    if result.warning:
        response["warning"] = result.warning
    return response
