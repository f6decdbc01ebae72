import pytest
from conftest import FakeCompletion, FakeEmbedder
from fastapi.testclient import TestClient

from app.config import settings
from app.dependencies import get_embedder, get_groq
from app.main import app
from app.services.chat import NO_VISIBLE_MATERIALS
from app.services.composer import REFUSAL

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def fakes():
    return {"embedder": FakeEmbedder(), "completion": FakeCompletion()}


@pytest.fixture
def client(tmp_path, monkeypatch, fakes):
    monkeypatch.setattr(settings, "db_path", str(tmp_path / "api.db"))
    app.dependency_overrides[get_embedder] = lambda: fakes["embedder"]
    app.dependency_overrides[get_groq] = lambda: fakes["completion"]
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create_class(client, headers=ALICE, **body):
    resp = client.post("/api/classes", json={"name": "Physics 101", **body}, headers=headers)
    assert resp.status_code == 200
    return resp.json()


def _add_notes(client, class_id, text, headers=ALICE):
    resp = client.post(
        f"/api/classes/{class_id}/lectures/text", json={"text": text}, headers=headers
    )
    assert resp.status_code == 200
    return resp.json()


def test_missing_user_header_is_rejected(client):
    assert client.get("/api/classes").status_code == 401


def test_create_and_list_classes(client):
    created = _create_class(client, sync_key="phys101", sync_enabled=True)
    assert created["sync_key"] == "phys101"
    assert created["sync_enabled"] is True

    listed = client.get("/api/classes", headers=ALICE).json()
    assert [c["id"] for c in listed] == [created["id"]]
    assert client.get("/api/classes", headers=BOB).json() == []


def test_other_users_class_is_not_found(client):
    clazz = _create_class(client)
    assert client.get(f"/api/classes/{clazz['id']}", headers=BOB).status_code == 404


def test_chat_end_to_end(client, fakes):
    clazz = _create_class(client)
    upload = _add_notes(client, clazz["id"], "Newton: force equals mass times acceleration.")
    assert upload["chunks"] == 1 and upload["embedded"] == 1

    resp = client.post(
        f"/api/classes/{clazz['id']}/chat", json={"message": "What is force?"}, headers=ALICE
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["answer"] == fakes["completion"].reply
    [citation] = body["citations"]
    assert citation["idx"] == 1
    assert citation["lecture_id"] == upload["lecture_id"]
    assert citation["source"] == "notes"
    assert citation["original_name"] == "Manual Text"
    assert citation["preview"] == "Newton: force equals mass times acceleration."

    history = client.get(f"/api/classes/{clazz['id']}/chat", headers=ALICE).json()
    assert [m["role"] for m in history] == ["user", "assistant"]
    assert history[1]["citations"] == body["citations"]


def test_chat_without_materials(client, fakes):
    clazz = _create_class(client)
    resp = client.post(
        f"/api/classes/{clazz['id']}/chat", json={"message": "What is force?"}, headers=ALICE
    )
    assert resp.json() == {"answer": NO_VISIBLE_MATERIALS, "citations": []}
    assert fakes["completion"].calls == []


def test_chat_with_irrelevant_question(client, fakes):
    clazz = _create_class(client)
    _add_notes(client, clazz["id"], "Newton: force equals mass times acceleration.")
    resp = client.post(
        f"/api/classes/{clazz['id']}/chat", json={"message": "Tell me about entropy"}, headers=ALICE
    )
    assert resp.json() == {"answer": REFUSAL, "citations": []}
    assert fakes["completion"].calls == []


def test_blank_chat_message(client):
    clazz = _create_class(client)
    resp = client.post(f"/api/classes/{clazz['id']}/chat", json={"message": "  "}, headers=ALICE)
    assert resp.status_code == 400
    assert client.get(f"/api/classes/{clazz['id']}/chat", headers=ALICE).json() == []


def test_chat_embedding_outage_is_502(client, fakes):
    clazz = _create_class(client)
    fakes["embedder"].fail = True
    resp = client.post(
        f"/api/classes/{clazz['id']}/chat", json={"message": "What is force?"}, headers=ALICE
    )
    assert resp.status_code == 502
    assert "embedding service unavailable" in resp.json()["detail"]


def test_sync_shares_lectures_and_preferences_apply(client):
    owner_class = _create_class(client)
    upload = _add_notes(client, owner_class["id"], "Force and mass.")
    lecture_id = upload["lecture_id"]

    # Not shared yet: Bob cannot see the lecture.
    assert client.get(f"/api/lectures/{lecture_id}/preference", headers=BOB).status_code == 404

    resp = client.post(
        f"/api/classes/{owner_class['id']}/sync", json={"sync_key": "phys101"}, headers=ALICE
    )
    assert resp.status_code == 200
    assert resp.json()["class"]["sync_enabled"] is True

    bob_class = _create_class(client, headers=BOB, sync_key="phys101", sync_enabled=True)
    pref = client.get(f"/api/lectures/{lecture_id}/preference", headers=BOB)
    assert pref.json() == {"include_in_ai_summary": True}

    answer = client.post(
        f"/api/classes/{bob_class['id']}/chat", json={"message": "force?"}, headers=BOB
    ).json()
    assert [c["lecture_id"] for c in answer["citations"]] == [lecture_id]

    resp = client.patch(
        f"/api/lectures/{lecture_id}/preference",
        json={"include_in_ai_summary": False},
        headers=BOB,
    )
    assert resp.json() == {"include_in_ai_summary": False}

    answer = client.post(
        f"/api/classes/{bob_class['id']}/chat", json={"message": "force?"}, headers=BOB
    ).json()
    assert answer["citations"] == []
    assert "excluded" in answer["answer"]


def test_sync_requires_key(client):
    clazz = _create_class(client)
    resp = client.post(f"/api/classes/{clazz['id']}/sync", json={}, headers=ALICE)
    assert resp.status_code == 400


def test_preference_requires_boolean(client):
    clazz = _create_class(client)
    lecture_id = _add_notes(client, clazz["id"], "cell")["lecture_id"]
    resp = client.patch(
        f"/api/lectures/{lecture_id}/preference",
        json={"include_in_ai_summary": "yes"},
        headers=ALICE,
    )
    assert resp.status_code in (400, 422)
    resp = client.patch(f"/api/lectures/{lecture_id}/preference", json={}, headers=ALICE)
    assert resp.status_code == 400


def test_update_lecture(client):
    clazz = _create_class(client)
    lecture_id = _add_notes(client, clazz["id"], "cell")["lecture_id"]

    resp = client.patch(
        f"/api/lectures/{lecture_id}",
        json={"include_in_memory": False, "descriptor": "week 2"},
        headers=ALICE,
    )
    assert resp.status_code == 200
    assert resp.json()["include_in_memory"] is False
    assert resp.json()["descriptor"] == "week 2"

    assert client.patch(f"/api/lectures/{lecture_id}", json={}, headers=ALICE).status_code == 400
    assert (
        client.patch(f"/api/lectures/{lecture_id}", json={"kind": "NOTES"}, headers=BOB).status_code
        == 404
    )


def test_delete_lecture_removes_chunks(client):
    clazz = _create_class(client)
    lecture_id = _add_notes(client, clazz["id"], "cell biology")["lecture_id"]
    assert len(client.get(f"/api/lectures/{lecture_id}/chunks", headers=ALICE).json()) == 1

    assert client.delete(f"/api/lectures/{lecture_id}", headers=ALICE).json() == {"ok": True}
    assert client.get(f"/api/lectures/{lecture_id}/chunks", headers=ALICE).status_code == 404
    assert client.get(f"/api/classes/{clazz['id']}", headers=ALICE).json()["lectures"] == []
    # Deleting again is harmless.
    assert client.delete(f"/api/lectures/{lecture_id}", headers=ALICE).json() == {"ok": True}


def test_finalize_recording(client, fakes):
    clazz = _create_class(client)
    resp = client.post(
        f"/api/classes/{clazz['id']}/record/finalize",
        json={
            "filename": "lecture.webm",
            "parts": [
                {
                    "chunk_index": 0,
                    "text": "force",
                    "duration": 10,
                    "segments": [{"start": 0, "end": 10, "text": "force"}],
                },
                {
                    "chunk_index": 1,
                    "text": "mass",
                    "duration": 5,
                    "segments": [{"start": 0, "end": 5, "text": "mass"}],
                },
            ],
        },
        headers=ALICE,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "READY"
    assert body["duration_sec"] == 15
    chunks = client.get(f"/api/lectures/{body['lecture_id']}/chunks", headers=ALICE).json()
    assert [(c["start_sec"], c["end_sec"], c["text"]) for c in chunks] == [(0, 15, "force mass")]
    assert all(c["has_vector"] for c in chunks)


def test_finalize_without_parts(client):
    clazz = _create_class(client)
    resp = client.post(f"/api/classes/{clazz['id']}/record/finalize", json={}, headers=ALICE)
    assert resp.status_code == 400


def test_backfill_after_embedding_outage(client, fakes):
    clazz = _create_class(client)
    fakes["embedder"].fail = True
    upload = _add_notes(client, clazz["id"], "entropy always increases")
    assert upload["embedded"] == 0

    fakes["embedder"].fail = False
    resp = client.post(f"/api/classes/{clazz['id']}/backfill", json={}, headers=ALICE)
    assert resp.json() == {"class_id": clazz["id"], "filled": 1}


def test_resummarize(client, fakes):
    clazz = _create_class(client)
    lecture_id = _add_notes(client, clazz["id"], "cell biology")["lecture_id"]
    fakes["completion"].reply = "# Cells Summary"

    resp = client.post(f"/api/lectures/{lecture_id}/resummarize", headers=ALICE)

    assert resp.json() == {"lecture_id": lecture_id, "summary": "# Cells Summary"}
    lectures = client.get(f"/api/classes/{clazz['id']}", headers=ALICE).json()["lectures"]
    assert lectures[0]["summary"] == "# Cells Summary"


def test_backfill_rejects_non_positive_limit(client):
    clazz = _create_class(client)
    resp = client.post(f"/api/classes/{clazz['id']}/backfill", json={"limit": 0}, headers=ALICE)
    assert resp.status_code == 422
