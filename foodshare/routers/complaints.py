# foodshare/routers/complaints.py
from fastapi import APIRouter, Depends

from foodshare.deps import Services, get_services, require_scopes
from foodshare.schemas import ComplaintIn

router = APIRouter(prefix="/api/complaints", tags=["complaints"])


@router.post("", status_code=201)
async def file_complaint(body: ComplaintIn, user=Depends(require_scopes(["complaints:create"])),
                         services: Services = Depends(get_services)):
    return await services.complaints.file_complaint(user["id"], body.donation_id, body.reason)
