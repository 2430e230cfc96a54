# admin_api/services/container.py
"""Wires the storage backend, repositories, session manager and asset store once per app."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from admin_api.core.config import Settings
from admin_api.models.content import DocumentItem, Project, Vacancy
from admin_api.repositories.collections import CollectionRepository
from admin_api.services.assets import AssetStore, build_asset_backend
from admin_api.services.experience import ExperienceMerger
from admin_api.services.sessions import SessionManager, SessionStore
from admin_api.services.storage import (
    OBJECT,
    CollectionRef,
    CollectionStore,
    StorageBackend,
    build_storage_backend,
    collection_ref,
)

CONTENT_KINDS = ("projects", "vacancies", "documents")


@dataclass
class AppServices:
    settings: Settings
    store: CollectionStore
    sessions: SessionManager
    assets: AssetStore
    merger: ExperienceMerger
    site_settings_ref: CollectionRef
    repositories: Dict[str, CollectionRepository] = field(default_factory=dict)

    async def close(self) -> None:
        for resource in (self.store.backend, self.sessions.store):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()


def build_services(
    settings: Settings,
    backend: Optional[StorageBackend] = None,
    session_store: Optional[SessionStore] = None,
    asset_store: Optional[AssetStore] = None,
) -> AppServices:
    store = CollectionStore(backend or build_storage_backend(settings))

    projects_ref = collection_ref(settings, "projects", "projects.json")
    vacancies_ref = collection_ref(settings, "vacancies", "vacancies.json")
    documents_ref = collection_ref(settings, "documents", "documents.json")
    experience_ref = collection_ref(settings, "experience", "experience.json")
    site_settings_ref = collection_ref(settings, "site-settings", "siteSettings.json", shape=OBJECT)

    merger = ExperienceMerger(store, projects_ref, experience_ref)
    repositories = {
        "projects": CollectionRepository(
            store, projects_ref, Project, unique_fields=["slug"], reader=merger.read_projects
        ),
        "vacancies": CollectionRepository(store, vacancies_ref, Vacancy, unique_fields=["slug"]),
        "documents": CollectionRepository(store, documents_ref, DocumentItem),
    }

    return AppServices(
        settings=settings,
        store=store,
        sessions=SessionManager.from_settings(settings, store=session_store),
        assets=asset_store or AssetStore(build_asset_backend(settings)),
        merger=merger,
        site_settings_ref=site_settings_ref,
        repositories=repositories,
    )
