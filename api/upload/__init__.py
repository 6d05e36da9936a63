"""Model upload endpoint."""

import logging
from typing import Dict, Any, List, Optional

from fastapi import APIRouter, HTTPException, status, Depends, Security, UploadFile, File, Form

from auth import require_artist
from listings import InvalidListingError
from moderation import ModerationWorkflow, get_workflow
from storage import InvalidAssetError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])

@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_model(
    file: Optional[List[UploadFile]] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    user: Dict[str, Any] = Security(require_artist),
    workflow: ModerationWorkflow = Depends(get_workflow)
):
    """Upload a single .stl file with its listing details.

    The listing starts out pending until an admin approves it.
    """
    files = file or []
    try:
        if not files or not files[0].filename:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No file uploaded"
            )
        if len(files) > 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only one file may be uploaded"
            )

        upload = files[0]
        try:
            result = await workflow.upload(
                user,
                upload,
                upload.filename,
                title=title,
                description=description,
                price=price
            )
            return {
                "message": "File uploaded successfully",
                "model": result.listing
            }
        except (InvalidAssetError, InvalidListingError) as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )
        except Exception as e:
            logger.error(f"Upload error: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": "Error uploading file", "error": str(e)}
            )
    finally:
        for f in files:
            await f.close()

__all__ = ['router']
