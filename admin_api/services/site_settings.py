# admin_api/services/site_settings.py
import copy
import logging
from typing import Any, Dict

from pydantic import ValidationError

from admin_api.core.errors import AdminApiError, ErrorKind
from admin_api.models.content import SiteSettings
from admin_api.services.experience import normalize_space
from admin_api.services.storage import CollectionRef, CollectionStore

logger = logging.getLogger(__name__)

DEFAULT_SITE_SETTINGS: Dict[str, Any] = {
    "careers": {
        "vacanciesEnabled": True,
        "attractionTitle": "Присоединяйтесь к команде СтройНефтеГаз",
        "attractionText": (
            "Мы формируем кадровый резерв для будущих производственных запусков. "
            "Предлагаем конкурентный доход, прозрачные премиальные механики и долгосрочную "
            "занятость на инфраструктурных проектах."
        ),
        "attractionHighlights": [
            "Конкурентный уровень оплаты труда и премии за результат",
            "Официальное трудоустройство и стабильные выплаты",
            "Работа на стратегически значимых промышленных объектах",
            "Профессиональный рост в команде с сильной инженерной экспертизой",
        ],
    },
}


def default_site_settings() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_SITE_SETTINGS)


def normalize_site_settings(value: Any) -> Dict[str, Any]:
    """
    Overlay whatever is stored on top of the defaults, collapse whitespace in
    the text fields and validate. Anything that does not validate yields the
    defaults instead of an error.
    """
    if not isinstance(value, dict):
        return default_site_settings()
    careers = value.get("careers", {})
    if not isinstance(careers, dict):
        return default_site_settings()

    merged = {**DEFAULT_SITE_SETTINGS["careers"], **careers}
    highlights = merged.get("attractionHighlights")
    normalized = {
        "careers": {
            **merged,
            "attractionTitle": normalize_space(merged.get("attractionTitle")),
            "attractionText": normalize_space(merged.get("attractionText")),
            "attractionHighlights": (
                [text for text in (normalize_space(item) for item in highlights) if text]
                if isinstance(highlights, list)
                else []
            ),
        }
    }

    try:
        return SiteSettings.model_validate(normalized).model_dump()
    except ValidationError:
        logger.warning("Stored site settings are invalid; using defaults")
        return default_site_settings()


async def read_site_settings(store: CollectionStore, ref: CollectionRef) -> Dict[str, Any]:
    try:
        value = await store.read(ref)
    except AdminApiError as exc:
        # a broken local file is replaced by the defaults; remote failures still surface
        if exc.kind != ErrorKind.CORRUPT_DATA:
            raise
        logger.warning("%s: %s; using defaults", ref.label, exc.message)
        return default_site_settings()
    return normalize_site_settings(value)


async def write_site_settings(store: CollectionStore, ref: CollectionRef, value: Any) -> Dict[str, Any]:
    normalized = normalize_site_settings(value)
    await store.write(ref, normalized)
    return normalized
