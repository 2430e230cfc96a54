# admin_api/services/experience.py
"""
Derive project cards from the experience ledger and merge them into the
project collection.

Classification is keyword containment over the lower-cased ``subject`` and
``work`` texts. Each rule list is evaluated top to bottom; the order is the
tie-break (e.g. "итсо" must be checked before "тсо", "грс" before "кс").

Exports:
- detect_object_type / detect_region / detect_work_types / detect_competency_ids
- project_from_experience(row, index) -> dict
- merge_projects_with_experience(projects, rows) -> (list, added)
- ExperienceMerger: runs the merge on every project-list read
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from admin_api.core.errors import AdminApiError, ErrorKind
from admin_api.models.content import ExperienceItem
from admin_api.services.storage import CollectionRef, CollectionStore, LocalFileBackend

logger = logging.getLogger(__name__)

Rule = Tuple[Tuple[str, ...], str]

DEFAULT_PROJECT_IMAGE = "/images/background-project.png"
DEFAULT_CONTRACTOR = "ООО «СтройНефтеГаз»"
DEFAULT_INN = "1655282573"
DEFAULT_OBJECT_TYPE = "Промышленный объект"
DEFAULT_REGION = "Регионы РФ"
DEFAULT_WORK_TYPE = "Комплекс работ"
DEFAULT_COMPETENCY = "comp-construction"

OBJECT_TYPE_RULES: List[Rule] = [
    (("грс",), "ГРС"),
    (("гис",), "ГИС"),
    (("м-7", "автомобильной дороги"), "Автодорога"),
    (("нпс", "лпдс", "рну"), "Нефтепроводная инфраструктура"),
    (("кс",), "Компрессорная станция"),
    (("итсо", "тсо", "охраны"), "ИТСО/ТСО"),
]

# matched against subject only
REGION_RULES: List[Rule] = [
    (("татарстан", "казань", "альметьев"), "Республика Татарстан"),
    (("чебоксар", "чуваш"), "Чувашская Республика"),
    (("удмурт", "увин"), "Удмуртская Республика"),
    (("перм", "чайковск"), "Пермский край"),
    (("иванов",), "Ивановская область"),
    (("владимир",), "Владимирская область"),
    (("нижегород", "нижний новгород"), "Нижегородская область"),
    (("марий",), "Республика Марий Эл"),
    (("башкир", "салават", "туймаз"), "Республика Башкортостан"),
    (("курган",), "Курганская область"),
]

_AUTOMATION = ("автомат", "асу", "кип", "телемехан")
_CONSTRUCTION = ("монтаж", "строител")

WORK_TYPE_RULES: List[Rule] = [
    (("пнр", "пуско"), "ПНР"),
    (_AUTOMATION, "Автоматизация"),
    (("шеф",), "Шеф-монтаж"),
    (_CONSTRUCTION, "СМР"),
    (("итсо",), "ИТСО"),
    (("тсо", "сигнализац"), "ТСО"),
]

COMPETENCY_RULES: List[Rule] = [
    (("шеф",), "comp-supervision"),
    (("пнр", "пуско"), "comp-commissioning"),
    (_AUTOMATION, "comp-automation"),
    (("итсо", "тсо", "сигнализац", "охраны"), "comp-security"),
    (_CONSTRUCTION, "comp-construction"),
]

PROJECT_TASKS = [
    "Выполнить строительно-монтажные и/или наладочные работы в согласованные сроки.",
    "Обеспечить соответствие работ техническим требованиям заказчика.",
    "Подготовить комплект исполнительной и отчетной документации.",
]
PROJECT_SOLUTIONS = [
    "Сформирован поэтапный план производства работ и технического контроля.",
    "Организована координация инженерных и производственных служб на площадке.",
    "Проведены необходимые испытания и верификация параметров.",
]
PROJECT_RESULTS = [
    "Работы завершены и переданы заказчику в установленном порядке.",
    "Подтверждена работоспособность систем по итогам приемо-сдаточных процедур.",
    "Сформирован комплект материалов для тендерного и эксплуатационного архива.",
]

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_TOKEN_RE = re.compile(r"[^a-z0-9-]+")
# ASCII word boundaries: a Cyrillic letter next to the digits still counts as a boundary
_INN_RE = re.compile(r"\b\d{10}\b", re.ASCII)


def normalize_space(value: Any) -> str:
    text = "" if value is None else str(value)
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_text(value: Any, max_length: int) -> str:
    text = normalize_space(value)
    if len(text) <= max_length:
        return text
    return text[: max_length - 1].rstrip() + "…"


def to_safe_token(value: Any, fallback: str) -> str:
    token = _UNSAFE_TOKEN_RE.sub("-", normalize_space(value).lower()).strip("-")
    return token or fallback


def extract_customer_name(customer: Any) -> str:
    text = "" if customer is None else str(customer)
    name = text.split(",")[0]
    return normalize_space(name or text or "Заказчик")


def extract_inn(customer: Any) -> str:
    match = _INN_RE.search("" if customer is None else str(customer))
    return match.group(0) if match else DEFAULT_INN


def _matches(source: str, keywords: Sequence[str]) -> bool:
    return any(keyword in source for keyword in keywords)


def first_match(source: str, rules: Sequence[Rule], default: str) -> str:
    for keywords, tag in rules:
        if _matches(source, keywords):
            return tag
    return default


def all_matches(source: str, rules: Sequence[Rule]) -> List[str]:
    tags: List[str] = []
    for keywords, tag in rules:
        if _matches(source, keywords) and tag not in tags:
            tags.append(tag)
    return tags


def _combined(subject: Any, work: Any) -> str:
    return f"{normalize_space(subject)} {normalize_space(work)}".lower()


def detect_object_type(subject: Any, work: Any) -> str:
    return first_match(_combined(subject, work), OBJECT_TYPE_RULES, DEFAULT_OBJECT_TYPE)


def detect_region(subject: Any) -> str:
    return first_match(normalize_space(subject).lower(), REGION_RULES, DEFAULT_REGION)


def detect_work_types(subject: Any, work: Any) -> List[str]:
    tags = all_matches(_combined(subject, work), WORK_TYPE_RULES)
    if not tags:
        first_segment = normalize_space(("" if work is None else str(work)).split(",")[0])
        return [first_segment or DEFAULT_WORK_TYPE]
    return tags


def detect_competency_ids(subject: Any, work: Any) -> List[str]:
    return all_matches(_combined(subject, work), COMPETENCY_RULES) or [DEFAULT_COMPETENCY]


def _row_year(value: Any) -> int:
    try:
        return int(float(value))
    # NaN raises ValueError, infinities raise OverflowError
    except (TypeError, ValueError, OverflowError):
        return datetime.now().year


def project_from_experience(row: ExperienceItem, index: int) -> Dict[str, Any]:
    token = to_safe_token(row.id, f"exp-{index + 1}")
    year = _row_year(row.year)
    subject = normalize_space(row.subject or "Проект из реестра опыта")
    work = normalize_space(row.work or DEFAULT_WORK_TYPE)
    customer = normalize_space(row.customer or "Заказчик")
    object_type = detect_object_type(subject, work)
    work_types = detect_work_types(subject, work)
    customer_name = truncate_text(extract_customer_name(customer), 300)

    return {
        "id": f"exp-project-{token}",
        "slug": f"experience-{token}",
        "year": year,
        "title": truncate_text(subject, 220),
        "shortTitle": truncate_text(", ".join(work_types), 200),
        "excerpt": truncate_text(f"Выполнены работы: {work}. Заказчик: {customer_name}.", 500),
        "heroImage": DEFAULT_PROJECT_IMAGE,
        "gallery": [DEFAULT_PROJECT_IMAGE],
        "region": detect_region(subject),
        "objectType": object_type,
        "workTypes": work_types,
        "passport": {
            "period": str(year),
            "status": "Завершен",
            "customer": customer_name,
            "contractor": DEFAULT_CONTRACTOR,
            "inn": extract_inn(customer),
            "location": truncate_text(subject, 260),
            "objectType": truncate_text(object_type, 180),
            "workScope": truncate_text(work, 280),
        },
        "tasks": list(PROJECT_TASKS),
        "solutions": list(PROJECT_SOLUTIONS),
        "results": list(PROJECT_RESULTS),
        "files": [],
        "relatedCompetencyIds": detect_competency_ids(subject, work),
    }


def _parse_rows(rows: Sequence[Any]) -> List[Tuple[int, ExperienceItem]]:
    parsed = []
    for index, row in enumerate(rows):
        try:
            parsed.append((index, ExperienceItem.model_validate(row)))
        except ValidationError:
            logger.warning("Skipping malformed experience row #%d", index + 1)
    return parsed


def _year_key(item: Any) -> float:
    try:
        return float(item.get("year"))
    except (AttributeError, TypeError, ValueError):
        return 0.0


def merge_projects_with_experience(
    projects: List[Dict[str, Any]], rows: Sequence[Any]
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Add one derived project per ledger row unless its id or slug is already
    taken. Existing projects are never replaced. When anything was added the
    result is sorted by year, newest first.
    """
    existing_ids = {item.get("id") for item in projects if isinstance(item, dict)}
    existing_slugs = {item.get("slug") for item in projects if isinstance(item, dict)}
    additions = []

    for index, row in _parse_rows(rows):
        candidate = project_from_experience(row, index)
        if candidate["id"] in existing_ids or candidate["slug"] in existing_slugs:
            continue
        additions.append(candidate)
        existing_ids.add(candidate["id"])
        existing_slugs.add(candidate["slug"])

    if not additions:
        return projects, 0

    merged = sorted([*projects, *additions], key=_year_key, reverse=True)
    return merged, len(additions)


class ExperienceMerger:
    def __init__(
        self,
        store: CollectionStore,
        projects_ref: CollectionRef,
        ledger_ref: CollectionRef,
        ledger_backend: Optional[LocalFileBackend] = None,
    ):
        self.store = store
        self.projects_ref = projects_ref
        self.ledger_ref = ledger_ref
        # the ledger always ships with the code, so it is read from disk
        self.ledger_backend = ledger_backend or LocalFileBackend()

    async def read_projects(self) -> List[Dict[str, Any]]:
        projects = await self.store.read(self.projects_ref)

        try:
            rows = await self.ledger_backend.read(self.ledger_ref)
        except (AdminApiError, OSError):
            logger.exception("Failed to read %s", self.ledger_ref.label)
            return projects

        merged, added = merge_projects_with_experience(projects, rows)
        if not added:
            return merged

        try:
            await self.store.write(self.projects_ref, merged)
        except AdminApiError as exc:
            if exc.kind in (ErrorKind.READ_ONLY_STORAGE, ErrorKind.KV_UNAVAILABLE):
                logger.warning("Derived projects not persisted (%s); serving merged list", exc.kind.value)
                return merged
            raise

        logger.info("Merged %d derived project(s) from %s", added, self.ledger_ref.label)
        return merged
