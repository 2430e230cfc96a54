# admin_api/api/v1/crud_routes.py
from typing import Any

from fastapi import APIRouter, Body, Depends

from admin_api.api.v1.auth import get_current_admin, get_services
from admin_api.api.v1.schemas import DeleteOut
from admin_api.models.content import SiteSettings
from admin_api.repositories.collections import CollectionRepository
from admin_api.services.audit import audit_log
from admin_api.services.container import CONTENT_KINDS, AppServices
from admin_api.services.site_settings import read_site_settings, write_site_settings

router = APIRouter(prefix="/admin", dependencies=[Depends(get_current_admin)])


def _register_crud_routes(kind: str) -> None:
    """Add list/create/update/delete routes for one content kind."""

    def repository(services: AppServices = Depends(get_services)) -> CollectionRepository:
        return services.repositories[kind]

    @router.get(f"/{kind}", name=f"list_{kind}")
    async def list_items(repo: CollectionRepository = Depends(repository)):
        return await repo.list()

    @router.post(f"/{kind}", status_code=201, name=f"create_{kind}")
    async def create_item(
        payload: Any = Body(None),
        repo: CollectionRepository = Depends(repository),
        actor: str = Depends(get_current_admin),
    ):
        # validated by the repository so violations come back as 400 with every field listed
        return await repo.create(payload, actor)

    @router.put(f"/{kind}/{{item_id}}", name=f"update_{kind}")
    async def update_item(
        item_id: str,
        payload: Any = Body(None),
        repo: CollectionRepository = Depends(repository),
        actor: str = Depends(get_current_admin),
    ):
        return await repo.update(item_id, payload, actor)

    @router.delete(f"/{kind}/{{item_id}}", response_model=DeleteOut, name=f"delete_{kind}")
    async def delete_item(
        item_id: str,
        repo: CollectionRepository = Depends(repository),
        actor: str = Depends(get_current_admin),
    ):
        removed = await repo.delete(item_id, actor)
        return {"ok": True, "removed": removed}


for _kind in CONTENT_KINDS:
    _register_crud_routes(_kind)


@router.get("/settings")
async def get_settings(services: AppServices = Depends(get_services)):
    return await read_site_settings(services.store, services.site_settings_ref)


@router.put("/settings")
async def put_settings(
    payload: SiteSettings,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_current_admin),
):
    saved = await write_site_settings(services.store, services.site_settings_ref, payload.model_dump())
    audit_log("update", "settings", "site-settings", actor)
    return saved
