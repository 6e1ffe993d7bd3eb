"""
API Endpoint Tests
"""

import pytest
from httpx import AsyncClient

from conftest import EPISODE, LANG
from transcript_desk.models.editor import Editor

PREFIX = "/api/v1"
TRANSCRIPT_URL = f"{PREFIX}/transcripts/{EPISODE}/{LANG}"


@pytest.mark.asyncio
async def test_login_and_me(client: AsyncClient):
    response = await client.post(
        f"{PREFIX}/auth/login",
        json={"email": " Zoe@Example.com ", "name": "Zoe Quinn"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["token_type"] == "bearer"
    assert data["editor"]["email"] == "zoe@example.com"

    me = await client.get(
        f"{PREFIX}/auth/me",
        headers={"Authorization": f"Bearer {data['access_token']}"},
    )
    assert me.status_code == 200
    assert me.json()["id"] == data["editor"]["id"]


@pytest.mark.asyncio
async def test_login_rejects_non_latin_name(client: AsyncClient):
    response = await client.post(
        f"{PREFIX}/auth/login",
        json={"email": "zoe@example.com", "name": "Zoë"},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "invalid_format"
    assert body["error"]["details"]["field"] == "name"


@pytest.mark.asyncio
async def test_me_without_token(client: AsyncClient):
    response = await client.get(f"{PREFIX}/auth/me")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "authentication_required"


@pytest.mark.asyncio
async def test_list_editors(client: AsyncClient, auth_headers):
    await client.post(f"{PREFIX}/auth/login", json={"email": "bob@example.com", "name": "Bob"})

    response = await client.get(f"{PREFIX}/editors")
    assert response.status_code == 200
    assert [e["email"] for e in response.json()] == ["bob@example.com", "alice@example.com"]


@pytest.mark.asyncio
async def test_operation_requires_login(client: AsyncClient, seeded_transcript):
    response = await client.post(
        f"{TRANSCRIPT_URL}/operations",
        json={"operation": {"type": "delete", "segment_id": "s1"}, "confirmed": True},
    )
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "authentication_required"
    assert body["error"]["details"]["operation"] == "delete"


@pytest.mark.asyncio
async def test_split_round_trip_through_api(client: AsyncClient, auth_headers, seeded_transcript):
    response = await client.post(
        f"{TRANSCRIPT_URL}/operations",
        json={"operation": {"type": "split", "segment_id": "s1", "cursor_position": 6}, "confirmed": True},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["operation_type"] == "split"
    assert [s["text"] for s in data["segments"]][:2] == ["hello", "world"]
    assert data["history_entry_id"]

    transcript = await client.get(TRANSCRIPT_URL)
    assert len(transcript.json()["utterances"]) == 4


@pytest.mark.asyncio
async def test_destructive_operation_asks_for_confirmation(client: AsyncClient, auth_headers, seeded_transcript):
    response = await client.post(
        f"{TRANSCRIPT_URL}/operations",
        json={"operation": {"type": "merge", "segment_id": "s2"}},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["confirmation_required"] is True
    assert data["history_entry_id"] is None
    assert len(data["segments"]) == 3


@pytest.mark.asyncio
async def test_invalid_split_point(client: AsyncClient, auth_headers, seeded_transcript):
    response = await client.post(
        f"{TRANSCRIPT_URL}/operations",
        json={"operation": {"type": "split", "segment_id": "s1", "cursor_position": 0}, "confirmed": True},
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_split_point"


@pytest.mark.asyncio
async def test_unknown_operation_type(client: AsyncClient, auth_headers, seeded_transcript):
    response = await client.post(
        f"{TRANSCRIPT_URL}/operations",
        json={"operation": {"type": "explode", "segment_id": "s1"}},
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "request_validation_error"


@pytest.mark.asyncio
async def test_missing_transcript(client: AsyncClient):
    response = await client.get(f"{PREFIX}/transcripts/nope/{LANG}")
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "not_found"
    assert "request_id" in body


@pytest.mark.asyncio
async def test_create_and_replace_transcript(client: AsyncClient, auth_headers):
    body = {
        "text": "one two",
        "utterances": [
            {"id": 2, "start": 1.0, "end": 2.0, "text": "two", "speaker": 1},
            {"id": 1, "start": 0.0, "end": 1.0, "text": "one", "speaker": 0},
        ],
    }
    created = await client.post(TRANSCRIPT_URL, json=body, headers=auth_headers)
    assert created.status_code == 201
    assert [u["id"] for u in created.json()["utterances"]] == ["1", "2"]

    duplicate = await client.post(TRANSCRIPT_URL, json=body, headers=auth_headers)
    assert duplicate.status_code == 409

    replaced = await client.put(
        TRANSCRIPT_URL,
        json={"text": "three", "utterances": [{"id": "3", "start": 0, "end": 1, "text": "three"}]},
        headers=auth_headers,
    )
    assert replaced.status_code == 200
    assert replaced.json()["operation_type"] == "transcript_replace"
    assert replaced.json()["history_entry_id"]


@pytest.mark.asyncio
async def test_history_and_revert(client: AsyncClient, auth_headers, seeded_transcript):
    applied = await client.post(
        f"{TRANSCRIPT_URL}/operations",
        json={"operation": {"type": "delete", "segment_id": "s2"}, "confirmed": True},
        headers=auth_headers,
    )
    edit_id = applied.json()["history_entry_id"]

    listing = await client.get(f"{PREFIX}/history", params={"target_type": "transcript"})
    assert listing.status_code == 200
    assert listing.json()["count"] == 1
    assert listing.json()["entries"][0]["metadata"]["segment_id"] == "s2"

    unauthenticated = await client.post(f"{PREFIX}/history/{edit_id}/revert")
    assert unauthenticated.status_code == 401

    reverted = await client.post(
        f"{PREFIX}/history/{edit_id}/revert",
        json={"reason": "wrong segment"},
        headers=auth_headers,
    )
    assert reverted.status_code == 200
    data = reverted.json()
    assert data["success"] is True
    assert data["entry"]["edit_type"] == "revert_segment_delete"
    assert data["entry"]["metadata"]["reverted_edit_id"] == edit_id

    transcript = await client.get(TRANSCRIPT_URL)
    assert [u["id"] for u in transcript.json()["utterances"]] == ["s1", "s2", "s3"]

    again = await client.post(f"{PREFIX}/history/{edit_id}/revert", headers=auth_headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "already_rolled_back"

    entry = await client.get(f"{PREFIX}/history/{edit_id}")
    assert entry.json()["is_rolled_back"] is True
    assert entry.json()["rollback_reason"] == "wrong segment"

    active = await client.get(f"{PREFIX}/history", params={"include_rolled_back": "false"})
    assert [e["edit_type"] for e in active.json()["entries"]] == ["revert_segment_delete"]

    stats = await client.get(f"{PREFIX}/history/stats")
    assert stats.json()["total"] == 2
    assert stats.json()["rolled_back"] == 1

    target = await client.get(f"{PREFIX}/history/target/transcript/{EPISODE}:{LANG}")
    assert len(target.json()) == 2


@pytest.mark.asyncio
async def test_history_entry_not_found(client: AsyncClient):
    response = await client.get(f"{PREFIX}/history/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_chunk_endpoints(client: AsyncClient, auth_headers, seeded_transcript):
    url = f"{PREFIX}/chunks/{EPISODE}/{LANG}"

    assert (await client.get(f"{url}/info")).json() is None
    assert (await client.post(url)).status_code == 401

    saved = await client.post(url, json={"max_chunk_bytes": 1024}, headers=auth_headers)
    assert saved.status_code == 200
    metadata = saved.json()["metadata"]
    assert metadata["chunk_size"] == 1024

    info = await client.get(f"{url}/info")
    assert info.json()["total_chunks"] == metadata["total_chunks"]

    rebuilt = await client.get(f"{url}/reconstruct")
    assert rebuilt.status_code == 200
    assert rebuilt.json()["text"] == seeded_transcript.text
    assert [u["id"] for u in rebuilt.json()["utterances"]] == ["s1", "s2", "s3"]

    cleared = await client.delete(url, headers=auth_headers)
    assert cleared.json() == {"success": True}
    assert (await client.get(f"{url}/reconstruct")).json() is None


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get(f"{PREFIX}/history", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


@pytest.mark.asyncio
async def test_editor_listing_survives_unusual_emails(client: AsyncClient, test_session, auth_headers):
    for email in ("dan..x@example.com", "carol@studio.test"):
        response = await client.post(f"{PREFIX}/auth/login", json={"email": email, "name": "Dan"})
        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "email"

    # Rows written before the stricter login check still list
    test_session.add(Editor(email="legacy..editor@example.com", name="Legacy"))
    await test_session.commit()

    response = await client.get(f"{PREFIX}/editors")
    assert response.status_code == 200
    assert sorted(e["email"] for e in response.json()) == ["alice@example.com", "legacy..editor@example.com"]
