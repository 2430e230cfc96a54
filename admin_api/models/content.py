# admin_api/models/content.py
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt, ValidationInfo, field_validator

ID_PATTERN = r"^[A-Za-z0-9-]{2,120}$"
SLUG_PATTERN = r"^[a-z0-9-]{2,160}$"
DATE_PATTERN = r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$"

RecordId = Annotated[str, Field(pattern=ID_PATTERN)]
Slug = Annotated[str, Field(pattern=SLUG_PATTERN)]
IsoDate = Annotated[str, Field(pattern=DATE_PATTERN)]


def _text(min_length: int, max_length: int):
    return Annotated[str, Field(min_length=min_length, max_length=max_length)]


Url = _text(1, 500)
Paragraph = _text(1, 2000)

DocumentCategory = Literal[
    "Учредительные",
    "СРО и лицензии",
    "Политики и регламенты",
    "Сертификаты",
    "Презентационные материалы",
]


class ProjectFile(BaseModel):
    name: _text(1, 200)
    type: _text(1, 100)
    size: _text(1, 40)
    url: Url


class ProjectPassport(BaseModel):
    period: _text(1, 200)
    status: _text(1, 200)
    customer: _text(1, 300)
    contractor: _text(1, 300)
    inn: _text(1, 24)
    location: _text(1, 260)
    objectType: _text(1, 180)
    workScope: _text(1, 280)


class Project(BaseModel):
    id: RecordId
    slug: Slug
    year: Annotated[StrictInt, Field(ge=2000, le=2100)]
    title: _text(3, 300)
    shortTitle: _text(3, 200)
    excerpt: _text(3, 1500)
    heroImage: Url
    gallery: List[Url] = Field(max_length=40)
    region: _text(1, 160)
    objectType: _text(1, 160)
    workTypes: List[_text(1, 160)] = Field(max_length=20)
    passport: ProjectPassport
    tasks: List[Paragraph] = Field(max_length=80)
    solutions: List[Paragraph] = Field(max_length=80)
    results: List[Paragraph] = Field(max_length=80)
    files: List[ProjectFile] = Field(max_length=40)
    relatedCompetencyIds: List[RecordId] = Field(max_length=40)


Salary = Annotated[StrictInt, Field(ge=0, le=1_000_000_000)]


class Vacancy(BaseModel):
    id: RecordId
    slug: Slug
    title: _text(3, 220)
    city: _text(1, 120)
    format: Literal["office", "hybrid", "remote"]
    dept: _text(1, 180)
    employment: Literal["full", "part", "rotation"]
    experience: Literal["0", "1-3", "3-6", "6+"]
    salaryFrom: Salary
    salaryTo: Salary
    currency: Literal["RUB"]
    postedAt: IsoDate
    priority: StrictBool
    keywords: List[_text(1, 120)] = Field(max_length=40)
    summary: _text(3, 2000)
    responsibilities: List[Paragraph] = Field(max_length=100)
    requirements: List[Paragraph] = Field(max_length=100)
    conditions: List[Paragraph] = Field(max_length=100)

    @field_validator("salaryTo")
    @classmethod
    def _salary_range(cls, value: int, info: ValidationInfo) -> int:
        salary_from = info.data.get("salaryFrom")
        if salary_from is not None and value < salary_from:
            raise ValueError("salaryTo must not be less than salaryFrom")
        return value


class DocumentItem(BaseModel):
    id: RecordId
    title: _text(3, 260)
    date: IsoDate
    type: _text(1, 30)
    size: _text(1, 30)
    category: DocumentCategory
    url: Url


class CareersSettings(BaseModel):
    vacanciesEnabled: StrictBool
    attractionTitle: _text(3, 200)
    attractionText: _text(3, 3000)
    attractionHighlights: List[_text(2, 180)] = Field(min_length=1, max_length=12)


class SiteSettings(BaseModel):
    careers: CareersSettings


class ExperienceItem(BaseModel):
    """One row of the read-only experience ledger. Loosely typed: rows are hand-maintained."""
    id: Optional[Union[str, int]] = None
    year: Optional[Union[int, float, str]] = None
    customer: Optional[str] = None
    subject: Optional[str] = None
    work: Optional[str] = None

    @field_validator("customer", "subject", "work", mode="before")
    @classmethod
    def _stringify_numbers(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value
