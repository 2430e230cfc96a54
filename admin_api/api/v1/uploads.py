# admin_api/api/v1/uploads.py
"""
Protected image upload endpoint.
- Accepts JSON {filename, dataUrl} with a base64 data URL
- Stores the image through the configured asset backend (S3/R2 or local uploads dir)
- Returns the public URL
"""

from fastapi import APIRouter, Depends

from admin_api.api.v1.auth import get_current_admin, get_services
from admin_api.api.v1.schemas import AssetUploadIn, AssetUploadOut
from admin_api.services.audit import audit_log
from admin_api.services.container import AppServices

router = APIRouter()


@router.post("/admin/assets/upload", status_code=201, response_model=AssetUploadOut)
async def upload_asset(
    payload: AssetUploadIn,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_current_admin),
):
    uploaded = await services.assets.upload(payload.filename, payload.dataUrl)
    audit_log("upload", "assets", uploaded.id, actor)
    return uploaded.body()
