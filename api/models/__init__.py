"""Model catalog API endpoints."""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, HTTPException, Query, status, Depends, Security

from auth import get_current_user
from listings import (
    ListingManager, get_listing_manager,
    ListingNotFoundError, ListingNotAvailableError, AlreadyPurchasedError
)
from moderation import ModerationWorkflow, ForbiddenError, get_workflow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/models",
    tags=["Models"]
)

# Import moderation endpoints
from .moderation import router as moderation_router

# Admin endpoints are registered first so their fixed paths win over /{model_id}
router.include_router(moderation_router)

""" Public Endpoints - No Authentication Required """
@router.get("")
async def list_models(
    status_filter: Optional[str] = Query(None, alias="status"),
    listings: ListingManager = Depends(get_listing_manager)
):
    """All models, optionally filtered by status."""
    try:
        return await listings.list_all(status_filter)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error fetching models", "error": str(e)}
        )

@router.get("/public")
async def list_public_models(listings: ListingManager = Depends(get_listing_manager)):
    """The public catalog: approved models with creator and buyer names."""
    try:
        return await listings.list_public()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error fetching models", "error": str(e)}
        )

""" Protected Endpoints - Authentication Required """
@router.get("/creator/{creator_id}")
async def get_creator_models(
    creator_id: str,
    user: Dict[str, Any] = Security(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Models uploaded by one creator."""
    try:
        return await listings.list_by_owner(creator_id)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error fetching models", "error": str(e)}
        )

@router.post("/{model_id}/purchase")
async def purchase_model(
    model_id: str,
    user: Dict[str, Any] = Security(get_current_user),
    listings: ListingManager = Depends(get_listing_manager)
):
    """Buy an approved model."""
    try:
        model = await listings.add_purchase(model_id, user['id'])
        return {"message": "Purchase successful", "model": model}
    except ListingNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Model not found"
        )
    except (ListingNotAvailableError, AlreadyPurchasedError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error purchasing model", "error": str(e)}
        )

@router.delete("/{model_id}")
async def delete_model(
    model_id: str,
    user: Dict[str, Any] = Security(get_current_user),
    workflow: ModerationWorkflow = Depends(get_workflow)
):
    """Delete one of the caller's own models along with its file."""
    logger.info(f"Delete request received for model: {model_id}")

    try:
        result = await workflow.owner_delete(user, model_id)
    except ListingNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Model not found"
        )
    except ForbiddenError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Error in delete operation: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error during delete operation", "error": str(e)}
        )

    response = {
        "message": "Model deleted successfully",
        "deletedModel": result.listing_id
    }
    if result.warning:
        response["warning"] = result.warning
    return response

# Export the router
__all__ = ['router']
