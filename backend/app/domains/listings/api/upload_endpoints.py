from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from app.domains.accounts.api.user_endpoints import get_current_user
from app.shared.exceptions import UploadRejectedException
from ..services.upload_service import UploadService, get_upload_service

router = APIRouter()


@router.post("/")
async def upload_images(
    request: Request,
    images: Optional[List[UploadFile]] = File(None),
    current_user=Depends(get_current_user),
    uploads: UploadService = Depends(get_upload_service)
):
    """Store images ahead of listing creation and hand back their public URLs."""
    if not images:
        raise UploadRejectedException("images", "no files uploaded")
    stored = await uploads.save_images(images, str(request.base_url))
    return {
        "success": True,
        "urls": [item.url for item in stored],
        "files": [item.filename for item in stored],
    }
