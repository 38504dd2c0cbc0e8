"""End-to-end HTTP flow against real services on an in-memory database."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio

from sitejo.core.config import Settings
from sitejo.main import build_services, create_app, install_services
from sitejo.tickets.numbering import LETTER_NUMBER_PATTERN

from tests.helpers import TEST_PASSWORD


@pytest_asyncio.fixture
async def client(engine, session_factory, people, tmp_path):
    settings = Settings(
        jwt_secret_key="flow-secret",
        password_hash_rounds=4,
        storage_root=str(tmp_path / "uploads"),
    )
    app = create_app()
    install_services(app, build_services(settings, engine, session_factory))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


async def _login(client: httpx.AsyncClient, identifier: str) -> dict[str, str]:
    response = await client.post("/auth/login", json={"identifier": identifier, "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["token_type"] == "Bearer"
    return {"Authorization": f"Bearer {data['token']}"}


@pytest.mark.asyncio
async def test_ticket_flow_over_http(client, people):
    student = await _login(client, "2115061001")
    admin = await _login(client, "admin@sitejo.com")
    lecturer = await _login(client, "197001012000031001")

    me = await client.get("/auth/me", headers=student)
    assert me.json()["data"]["id"] == people.student.id

    lecturers = await client.get("/tickets/lecturers", headers=student)
    assert [item["id"] for item in lecturers.json()["data"]] == [people.lecturer.id, people.other_lecturer.id]

    created = await client.post(
        "/tickets",
        headers=student,
        json={
            "lecturer_id": people.lecturer.id,
            "title": "Surat rekomendasi beasiswa",
            "description": "Beasiswa unggulan",
            "type": "surat_rekomendasi",
            "priority": "high",
        },
    )
    assert created.status_code == 201, created.text
    ticket = created.json()["data"]
    ticket_id = ticket["id"]
    assert ticket["status"] == "pending"
    assert ticket["histories"][0]["action"] == "created"

    uploaded = await client.post(
        f"/tickets/{ticket_id}/documents",
        headers=student,
        files={"file": ("khs.pdf", b"%PDF-1.4 khs", "application/pdf")},
        data={"document_type": "attachment"},
    )
    assert uploaded.status_code == 201, uploaded.text
    document = uploaded.json()["data"]
    assert document["file_size"] == len(b"%PDF-1.4 khs")

    hidden = await client.get(f"/tickets/{ticket_id}", headers=lecturer)
    assert hidden.status_code == 403
    assert hidden.json()["message"] == "Ticket not yet sent to lecturer"

    early = await client.post(f"/tickets/{ticket_id}/approve", headers=lecturer)
    assert early.status_code == 409

    sent = await client.post(f"/tickets/{ticket_id}/send-to-lecturer", headers=admin, json={"admin_notes": "Cek"})
    assert sent.status_code == 200
    assert sent.json()["data"]["status"] == "in_review"

    approved = await client.post(f"/tickets/{ticket_id}/approve", headers=lecturer, json={"lecturer_notes": "Setuju"})
    assert approved.status_code == 200, approved.text
    letter_number = approved.json()["data"]["nomor_surat"]
    assert LETTER_NUMBER_PATTERN.fullmatch(letter_number)
    assert "/SRK/" in letter_number

    verified = await client.get(f"/verify-letter/{letter_number}")
    assert verified.status_code == 200
    assert verified.json()["data"]["ticket"]["student"]["nim_nip"] == "2115061001"
    by_query = await client.get("/verify-letter", params={"nomor": letter_number})
    assert by_query.status_code == 200

    downloaded = await client.get(f"/documents/{document['id']}/download", headers=lecturer)
    assert downloaded.status_code == 200
    assert downloaded.content == b"%PDF-1.4 khs"
    assert "khs.pdf" in downloaded.headers["content-disposition"]

    revise = await client.put(f"/tickets/{ticket_id}", headers=student, json={"title": "Ubah"})
    assert revise.status_code == 409

    completed = await client.post(f"/tickets/{ticket_id}/complete", headers=admin)
    assert completed.status_code == 200
    detail = completed.json()["data"]
    assert detail["status"] == "completed"
    assert [entry["action"] for entry in detail["histories"]] == [
        "created",
        "document_uploaded",
        "sent_to_lecturer",
        "approved",
        "completed",
    ]

    stats = await client.get("/tickets/statistics", headers=student)
    assert stats.json()["data"]["by_status"]["completed"] == 1

    listed = await client.get("/tickets", headers=lecturer)
    assert listed.json()["data"]["total"] == 1


@pytest.mark.asyncio
async def test_logout_revokes_token_over_http(client, people):
    student = await _login(client, "budi@students.unila.ac.id")
    assert (await client.post("/auth/logout", headers=student)).status_code == 200
    response = await client.get("/auth/me", headers=student)
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_login_is_unprocessable(client, people):
    response = await client.post("/auth/login", json={"identifier": "2115061001", "password": "wrong"})
    assert response.status_code == 422
    assert response.json()["errors"] == {"identifier": ["NPM/Email/Username atau password salah."]}


@pytest.mark.asyncio
async def test_user_administration_is_admin_only(client, people):
    admin = await _login(client, "ADMIN001")
    student = await _login(client, "2115061001")

    forbidden = await client.get("/users", headers=student)
    assert forbidden.status_code == 403

    lecturers = await client.get("/users", headers=admin, params={"role": "lecturer"})
    assert {item["id"] for item in lecturers.json()["data"]} == {people.lecturer.id, people.other_lecturer.id}

    created = await client.post(
        "/users",
        headers=admin,
        json={
            "name": "Rina",
            "email": "rina@students.unila.ac.id",
            "nim_nip": "2115061003",
            "role": "student",
            "password": "password123",
        },
    )
    assert created.status_code == 201
    user_id = created.json()["data"]["id"]

    duplicate = await client.post(
        "/users",
        headers=admin,
        json={
            "name": "Rina 2",
            "email": "rina@students.unila.ac.id",
            "nim_nip": "2115061004",
            "role": "student",
            "password": "password123",
        },
    )
    assert duplicate.status_code == 422
    assert "email" in duplicate.json()["errors"]

    deleted = await client.delete(f"/users/{user_id}", headers=admin)
    assert deleted.status_code == 200
    missing = await client.get(f"/users/{user_id}", headers=admin)
    assert missing.status_code == 404
