# admin_api/api/v1/routes.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from admin_api.api.v1.auth import get_services
from admin_api.core.http import NO_CACHE_HEADERS
from admin_api.services.container import CONTENT_KINDS, AppServices
from admin_api.services.site_settings import read_site_settings

router = APIRouter()


@router.get("/health")
async def health():
    return {"ok": True}


def _register_public_list(kind: str) -> None:
    @router.get(f"/public/{kind}", name=f"public_{kind}")
    async def public_list(services: AppServices = Depends(get_services)):
        items = await services.repositories[kind].list()
        return JSONResponse(items, headers=NO_CACHE_HEADERS)


for _kind in CONTENT_KINDS:
    _register_public_list(_kind)


@router.get("/public/site-settings")
async def public_site_settings(services: AppServices = Depends(get_services)):
    value = await read_site_settings(services.store, services.site_settings_ref)
    return JSONResponse(value, headers=NO_CACHE_HEADERS)
