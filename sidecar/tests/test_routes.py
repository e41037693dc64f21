"""HTTP-level tests for the workflow, metadata and settings endpoints."""

import os
import tempfile
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from api import settings_store
from api.document_models import StructuredGeneration, SupportedLanguage
from api.settings_models import AppSettings
from document.schema import CANONICAL_ORDER
from main import create_app
from storage.database import Database

NOTE = "72F with HFrEF (EF 30%), admitted for decompensation. Diuresed with IV furosemide."
PROFILE = {"age": 72, "language": "en", "literacy": "basic"}


class FakeGenerator:
    def __init__(self, error=None):
        self.error = error

    async def generate(self, note, profile):
        if self.error is not None:
            raise self.error
        return StructuredGeneration(
            payload={
                "sections": [
                    {"type": t.value, "title": t.value.title(), "content": f"About {t.value}."}
                    for t in CANONICAL_ORDER
                ]
            }
        )


@pytest.fixture
def db():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        yield Database(db_path=path)
    finally:
        os.unlink(path)


@pytest.fixture
def client(db):
    with patch("api.routes.get_db", return_value=db), \
         patch("api.routes._build_generator", return_value=(FakeGenerator(), 5.0)):
        yield TestClient(create_app())


def _run_in_approve(client: TestClient) -> str:
    run_id = client.post("/runs").json()["id"]
    client.post(f"/runs/{run_id}/note", json={"source_text": NOTE})
    client.post(f"/runs/{run_id}/profile", json=PROFILE)
    resp = client.post(f"/runs/{run_id}/generate")
    assert resp.status_code == 200
    return run_id


class TestMeta:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_sections_in_canonical_order(self, client):
        data = client.get("/sections", params={"language": "es"}).json()
        assert [s["type"] for s in data] == [t.value for t in CANONICAL_ORDER]
        assert data[-1]["title"] == "Resumen"

    def test_sections_default_to_settings_language(self, client):
        settings = AppSettings(default_language=SupportedLanguage.SPANISH)
        with patch.object(settings_store, "get_settings", return_value=settings):
            data = client.get("/sections").json()
        assert data[-1]["title"] == "Resumen"
        assert client.get("/sections", params={"language": "fr"}).json()[-1]["title"] == "Résumé"

    def test_languages(self, client):
        codes = [lang["code"] for lang in client.get("/languages").json()]
        assert codes == ["en", "es", "fr"]


class TestRunFlow:
    def test_create_run(self, client):
        resp = client.post("/runs")
        assert resp.status_code == 201
        data = resp.json()
        assert data["state"] == "intake"
        assert data["allowed_actions"] == ["submit_note", "restart"]

    def test_full_flow_to_delivery(self, client):
        run_id = _run_in_approve(client)
        snapshot = client.get(f"/runs/{run_id}").json()
        assert snapshot["state"] == "approve"
        assert snapshot["provenance"] == "structured"
        assert len(snapshot["sections"]) == 7

        edited = client.patch(
            f"/runs/{run_id}/sections/treatment", json={"content": "Take furosemide each morning."},
        ).json()
        treatment = edited["sections"][2]
        assert treatment["editableContent"] == "Take furosemide each morning."
        assert treatment["content"] == "About treatment."

        assert client.post(f"/runs/{run_id}/approve-all").status_code == 200
        resp = client.post(f"/runs/{run_id}/deliver", json={"approved_by": "dr.patel"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["run"]["state"] == "deliver"
        assert body["document"]["approved_by"] == "dr.patel"
        assert "Take furosemide each morning." in body["text"]

    def test_deliver_with_pending_section(self, client):
        run_id = _run_in_approve(client)
        for t in CANONICAL_ORDER[:-1]:
            client.post(f"/runs/{run_id}/sections/{t.value}/approve")

        resp = client.post(f"/runs/{run_id}/deliver")
        assert resp.status_code == 409
        assert resp.json()["detail"]["pending"] == ["summary"]
        assert client.get(f"/runs/{run_id}").json()["state"] == "approve"

    def test_revoke_approval(self, client):
        run_id = _run_in_approve(client)
        client.post(f"/runs/{run_id}/approve-all")
        data = client.delete(f"/runs/{run_id}/sections/risks/approve").json()
        assert "risks" not in data["approved_sections"]

    def test_blank_note(self, client):
        run_id = client.post("/runs").json()["id"]
        resp = client.post(f"/runs/{run_id}/note", json={"source_text": "  "})
        assert resp.status_code == 400
        assert resp.json()["detail"]["errors"][0]["field"] == "source_text"

    def test_invalid_profile(self, client):
        run_id = client.post("/runs").json()["id"]
        client.post(f"/runs/{run_id}/note", json={"source_text": NOTE})
        resp = client.post(f"/runs/{run_id}/profile", json={"age": -1, "language": "en", "literacy": "basic"})
        assert resp.status_code == 400
        assert client.get(f"/runs/{run_id}").json()["state"] == "personalize"

    def test_illegal_transition(self, client):
        run_id = client.post("/runs").json()["id"]
        resp = client.post(f"/runs/{run_id}/approve-all")
        assert resp.status_code == 409
        assert resp.json()["detail"]["state"] == "intake"

    def test_unknown_section_type(self, client):
        run_id = _run_in_approve(client)
        resp = client.post(f"/runs/{run_id}/sections/appendix/approve")
        assert resp.status_code == 400

    def test_unknown_run(self, client):
        assert client.get("/runs/missing").status_code == 404
        assert client.delete("/runs/missing").status_code == 404

    def test_generation_failure_is_retryable(self, db):
        failing = (FakeGenerator(error=RuntimeError("provider down")), 5.0)
        with patch("api.routes.get_db", return_value=db), \
             patch("api.routes._build_generator", return_value=failing):
            client = TestClient(create_app())
            run_id = client.post("/runs").json()["id"]
            client.post(f"/runs/{run_id}/note", json={"source_text": NOTE})
            client.post(f"/runs/{run_id}/profile", json=PROFILE)
            resp = client.post(f"/runs/{run_id}/generate")
        assert resp.status_code == 502
        assert resp.json()["detail"]["retryable"] is True
        assert db.get_run(run_id).state.value == "generate"

    def test_generate_without_api_key(self, db):
        with patch("api.routes.get_db", return_value=db), \
             patch.object(settings_store, "get_settings", return_value=AppSettings()), \
             patch.object(settings_store, "get_api_key_for_provider", return_value=None):
            client = TestClient(create_app())
            run_id = client.post("/runs").json()["id"]
            client.post(f"/runs/{run_id}/note", json={"source_text": NOTE})
            client.post(f"/runs/{run_id}/profile", json=PROFILE)
            resp = client.post(f"/runs/{run_id}/generate")
        assert resp.status_code == 400
        assert "No API key" in resp.json()["detail"]

    def test_generate_in_wrong_state_without_api_key(self, db):
        with patch("api.routes.get_db", return_value=db), \
             patch.object(settings_store, "get_settings", return_value=AppSettings()), \
             patch.object(settings_store, "get_api_key_for_provider", return_value=None):
            client = TestClient(create_app())
            run_id = client.post("/runs").json()["id"]
            resp = client.post(f"/runs/{run_id}/generate")
        assert resp.status_code == 409
        assert resp.json()["detail"]["state"] == "intake"
        assert resp.json()["detail"]["action"] == "receive_document"

    def test_regenerate_and_restart(self, client):
        run_id = _run_in_approve(client)
        assert client.post(f"/runs/{run_id}/regenerate").json()["state"] == "generate"
        assert client.post(f"/runs/{run_id}/restart").json()["state"] == "intake"

    def test_new_round(self, client):
        run_id = _run_in_approve(client)
        client.post(f"/runs/{run_id}/approve-all")
        client.post(f"/runs/{run_id}/deliver")

        resp = client.post(f"/runs/{run_id}/new-round")
        assert resp.status_code == 201
        successor = resp.json()
        assert successor["round_number"] == 2
        assert successor["parent_run_id"] == run_id
        assert successor["state"] == "generate"

        listed = client.get("/runs").json()
        assert listed["total"] == 2

    def test_delete_run(self, client):
        run_id = client.post("/runs").json()["id"]
        assert client.delete(f"/runs/{run_id}").json() == {"deleted": True}
        assert client.get(f"/runs/{run_id}").status_code == 404


class TestExtractEndpoint:
    def test_text_upload(self, client):
        with patch.object(settings_store, "get_settings", side_effect=RuntimeError("no db")):
            resp = client.post(
                "/extract/file", files={"file": ("note.txt", NOTE.encode(), "text/plain")},
            )
        assert resp.status_code == 200
        data = resp.json()
        assert data["text"] == NOTE
        assert data["method"] == "direct_input"

    def test_empty_upload(self, client):
        resp = client.post("/extract/file", files={"file": ("note.txt", b"", "text/plain")})
        assert resp.status_code == 400


class TestSettingsEndpoint:
    def test_keys_are_masked(self, client):
        settings = AppSettings(claude_api_key="sk-ant-abcdefghijklmnop")
        with patch.object(settings_store, "get_settings", return_value=settings):
            data = client.get("/settings").json()
        assert data["claude_api_key"] == "sk-ant-a...mnop"

    def test_update_passes_through(self, client):
        store_update = MagicMock(return_value=AppSettings(structured_output=False))
        with patch.object(settings_store, "update_settings", store_update):
            data = client.patch("/settings", json={"structured_output": False}).json()
        assert data["structured_output"] is False
        assert store_update.call_args.args[0].structured_output is False
