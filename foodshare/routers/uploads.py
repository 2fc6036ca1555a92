# foodshare/routers/uploads.py
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile

from foodshare.core.config import settings
from foodshare.core.errors import PartialUploadError, ValidationError
from foodshare.deps import Services, gated_user, get_services

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


@router.post("/images", status_code=201)
async def upload_images(images: List[UploadFile] = File(...), user=Depends(gated_user),
                        services: Services = Depends(get_services)):
    if len(images) > settings.max_images:
        raise ValidationError(f"You can only upload up to {settings.max_images} images.",
                              fields=["images"])
    files = [(f.filename or "image", await f.read()) for f in images]
    try:
        urls = await services.objects.upload_many(user["id"], files)
    except PartialUploadError as ex:
        return {"urls": ex.succeeded, "failed": ex.failed}
    return {"urls": urls, "failed": []}
