# tests/test_crud_api.py
import json

import pytest


def _stored(settings, filename):
    return json.loads((settings.data_dir / filename).read_text(encoding="utf-8"))


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", ["projects", "vacancies", "documents"])
async def test_create_then_list(client, auth_headers, payloads, kind):
    payload = payloads[kind]()
    r = await client.post(f"/api/admin/{kind}", json=payload, headers=auth_headers)
    assert r.status_code == 201, r.text
    assert r.json()["id"] == payload["id"]

    r = await client.get(f"/api/admin/{kind}", headers=auth_headers)
    assert r.status_code == 200
    assert [item["id"] for item in r.json()] == [payload["id"]]

    r = await client.get(f"/api/public/{kind}")
    assert r.status_code == 200
    assert r.json()[0]["id"] == payload["id"]


@pytest.mark.asyncio
async def test_duplicate_id_is_rejected_and_collection_unchanged(client, auth_headers, payloads, settings):
    doc = payloads["documents"]()
    assert (await client.post("/api/admin/documents", json=doc, headers=auth_headers)).status_code == 201

    r = await client.post("/api/admin/documents", json=dict(doc, title="Другой документ"), headers=auth_headers)
    assert r.status_code == 409
    assert "doc-charter" in r.json()["detail"]
    assert len(_stored(settings, "documents.json")) == 1


@pytest.mark.asyncio
async def test_duplicate_slug_is_rejected(client, auth_headers, payloads):
    first = payloads["vacancies"]()
    assert (await client.post("/api/admin/vacancies", json=first, headers=auth_headers)).status_code == 201

    r = await client.post("/api/admin/vacancies", json=dict(first, id="vac-welder-2"), headers=auth_headers)
    assert r.status_code == 409
    assert "slug" in r.json()["detail"]


@pytest.mark.asyncio
async def test_update_cannot_take_another_records_slug(client, auth_headers, payloads):
    await client.post("/api/admin/projects", json=payloads["projects"](), headers=auth_headers)
    other = payloads["projects"](id="gis-ufa", slug="gis-ufa")
    await client.post("/api/admin/projects", json=other, headers=auth_headers)

    r = await client.put("/api/admin/projects/gis-ufa", json=dict(other, slug="gis-kazan"), headers=auth_headers)
    assert r.status_code == 409

    # keeping its own slug is fine
    r = await client.put("/api/admin/projects/gis-ufa", json=dict(other, title="ГИС Уфа, этап 2"), headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["title"] == "ГИС Уфа, этап 2"


@pytest.mark.asyncio
async def test_update_id_mismatch_leaves_storage_untouched(client, auth_headers, payloads, settings):
    doc = payloads["documents"]()
    await client.post("/api/admin/documents", json=doc, headers=auth_headers)
    before = _stored(settings, "documents.json")

    r = await client.put("/api/admin/documents/doc-charter", json=dict(doc, id="doc-other"), headers=auth_headers)
    assert r.status_code == 400
    assert _stored(settings, "documents.json") == before


@pytest.mark.asyncio
async def test_update_and_delete_unknown_id(client, auth_headers, payloads):
    doc = payloads["documents"](id="doc-missing")
    r = await client.put("/api/admin/documents/doc-missing", json=doc, headers=auth_headers)
    assert r.status_code == 404

    r = await client.delete("/api/admin/documents/doc-missing", headers=auth_headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_update_replaces_in_place(client, auth_headers, payloads, settings):
    await client.post("/api/admin/documents", json=payloads["documents"](), headers=auth_headers)
    await client.post("/api/admin/documents", json=payloads["documents"](id="doc-iso"), headers=auth_headers)

    r = await client.put(
        "/api/admin/documents/doc-charter",
        json=payloads["documents"](title="Устав (ред. 2024)"),
        headers=auth_headers,
    )
    assert r.status_code == 200
    stored = _stored(settings, "documents.json")
    assert [item["id"] for item in stored] == ["doc-charter", "doc-iso"]
    assert stored[0]["title"] == "Устав (ред. 2024)"


@pytest.mark.asyncio
async def test_delete_returns_removed_record(client, auth_headers, payloads, settings):
    doc = payloads["documents"]()
    await client.post("/api/admin/documents", json=doc, headers=auth_headers)

    r = await client.delete("/api/admin/documents/doc-charter", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["removed"]["id"] == "doc-charter"
    assert _stored(settings, "documents.json") == []


@pytest.mark.asyncio
async def test_vacancy_salary_range_is_validated(client, auth_headers, payloads, settings):
    bad = payloads["vacancies"](salaryFrom=150000, salaryTo=100000)
    r = await client.post("/api/admin/vacancies", json=bad, headers=auth_headers)
    assert r.status_code == 400
    assert "salaryTo" in r.json()["detail"]
    assert not (settings.data_dir / "vacancies.json").exists()


@pytest.mark.asyncio
async def test_validation_lists_every_bad_field(client, auth_headers, payloads):
    bad = payloads["documents"](id="x", category="Прочее", date="17.05.2023")
    r = await client.post("/api/admin/documents", json=bad, headers=auth_headers)
    assert r.status_code == 400
    detail = r.json()["detail"]
    for field in ("id", "date", "category"):
        assert field in detail


@pytest.mark.asyncio
async def test_strict_types_are_not_coerced(client, auth_headers, payloads):
    r = await client.post("/api/admin/projects", json=payloads["projects"](year="2024"), headers=auth_headers)
    assert r.status_code == 400

    r = await client.post("/api/admin/vacancies", json=payloads["vacancies"](priority="true"), headers=auth_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_missing_body_is_a_validation_error(client, auth_headers):
    r = await client.post("/api/admin/documents", headers=auth_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_corrupt_collection_file_surfaces_as_server_error(client, auth_headers, settings):
    (settings.data_dir / "vacancies.json").write_text('{"not": "an array"}', encoding="utf-8")
    r = await client.get("/api/admin/vacancies", headers=auth_headers)
    assert r.status_code == 500
    assert "vacancies.json" in r.json()["detail"]
