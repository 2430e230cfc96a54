# tests/conftest.py
import os
from http.cookies import SimpleCookie

# admin_api.main builds a module-level app at import time; give it an identity
os.environ.setdefault("ADMIN_PASSWORD", "import-time-password")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ADMIN_JWT_SECRET", "test-access-secret")
os.environ.setdefault("ADMIN_REFRESH_SECRET", "test-refresh-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from admin_api.api.v1.auth import REFRESH_COOKIE_NAME
from admin_api.core.config import Settings
from admin_api.main import create_app

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return Settings(
        _env_file=None,
        APP_ENV="test",
        DATA_DIR=str(data_dir),
        UPLOADS_DIR=str(tmp_path / "uploads"),
        ADMIN_USERNAME=ADMIN_USERNAME,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        ADMIN_PASSWORD_HASH=None,
        BCRYPT_ROUNDS=4,
        ADMIN_JWT_SECRET="unit-access-secret",
        ADMIN_REFRESH_SECRET="unit-refresh-secret",
        KV_URL=None,
        S3_BUCKET=None,
        SERVERLESS=False,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest_asyncio.fixture
async def auth_headers(client):
    r = await client.post("/api/admin/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['accessToken']}"}


@pytest.fixture
def refresh_cookie():
    """Return a helper that extracts the refresh cookie morsel from a response (or None)."""
    def _extract(response):
        for header in response.headers.get_list("set-cookie"):
            cookie = SimpleCookie()
            cookie.load(header)
            if REFRESH_COOKIE_NAME in cookie:
                return cookie[REFRESH_COOKIE_NAME]
        return None
    return _extract


def cookie_header(token: str) -> dict:
    return {"Cookie": f"{REFRESH_COOKIE_NAME}={token}"}


@pytest.fixture
def with_refresh():
    return cookie_header


def project_payload(**overrides):
    payload = {
        "id": "gis-kazan",
        "slug": "gis-kazan",
        "year": 2024,
        "title": "Реконструкция ГИС Казань",
        "shortTitle": "ГИС Казань",
        "excerpt": "Комплекс СМР и ПНР на газоизмерительной станции.",
        "heroImage": "/images/gis.jpg",
        "gallery": ["/images/gis.jpg"],
        "region": "Республика Татарстан",
        "objectType": "ГИС",
        "workTypes": ["СМР", "ПНР"],
        "passport": {
            "period": "2024",
            "status": "Завершен",
            "customer": "ООО «Газпром трансгаз Казань»",
            "contractor": "ООО «СтройНефтеГаз»",
            "inn": "1655282573",
            "location": "г. Казань",
            "objectType": "ГИС",
            "workScope": "СМР, ПНР",
        },
        "tasks": ["Выполнить СМР"],
        "solutions": ["Поэтапный план работ"],
        "results": ["Объект сдан"],
        "files": [{"name": "Паспорт", "type": "PDF", "size": "1 MB", "url": "/files/passport.pdf"}],
        "relatedCompetencyIds": ["comp-construction"],
    }
    payload.update(overrides)
    return payload


def vacancy_payload(**overrides):
    payload = {
        "id": "vac-welder",
        "slug": "welder",
        "title": "Электрогазосварщик",
        "city": "Казань",
        "format": "office",
        "dept": "Производственный участок",
        "employment": "rotation",
        "experience": "1-3",
        "salaryFrom": 90000,
        "salaryTo": 140000,
        "currency": "RUB",
        "postedAt": "2025-03-01",
        "priority": False,
        "keywords": ["сварка", "НАКС"],
        "summary": "Сварочные работы на объектах трубопроводного транспорта.",
        "responsibilities": ["Сварка трубопроводов"],
        "requirements": ["Удостоверение НАКС"],
        "conditions": ["Вахта 30/30"],
    }
    payload.update(overrides)
    return payload


def document_payload(**overrides):
    payload = {
        "id": "doc-charter",
        "title": "Устав общества",
        "date": "2023-05-17",
        "type": "PDF",
        "size": "850 KB",
        "category": "Учредительные",
        "url": "/documents/charter.pdf",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payloads():
    return {"projects": project_payload, "vacancies": vacancy_payload, "documents": document_payload}
