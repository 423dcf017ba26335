"""
Tests for the HTTP adapter
"""

import base64

import pytest
from fastapi.testclient import TestClient

from filebot.config import Settings
from filebot.main import create_app


@pytest.fixture
def app(tmp_path):
    config = Settings(staging_dir=str(tmp_path / "staging"), max_file_size_mb=1)
    return create_app(config)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def post(client, sender_id="u1", text="", file=None):
    files = {"file": file} if file else None
    return client.post("/webhook", data={"sender_id": sender_id, "text": text}, files=files)


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "running"
        assert body["sessions"]["total"] == 0

    def test_scheduler_runs_with_app(self, app):
        with TestClient(app):
            assert app.state.scheduler.running
        assert not app.state.scheduler.running


class TestWebhook:
    """Conversation over HTTP"""

    def test_menu(self, client):
        response = post(client, text="menu")
        assert response.status_code == 200
        body = response.json()
        assert body["sender_id"] == "u1"
        assert body["replies"][0]["kind"] == "text"
        assert "Merge PDFs" in body["replies"][0]["text"]

    def test_sender_id_required(self, client):
        assert client.post("/webhook", data={"text": "menu"}).status_code == 422
        assert post(client, sender_id="   ", text="menu").status_code == 400

    def test_merge_roundtrip(self, client, pdf_bytes):
        post(client, text="1")
        post(client, file=("a.pdf", pdf_bytes(2), "application/pdf"))
        post(client, file=("b.pdf", pdf_bytes(1), "application/pdf"))
        response = post(client, text="done")

        replies = response.json()["replies"]
        files = [r for r in replies if r["kind"] == "file"]
        assert len(files) == 1
        assert files[0]["filename"] == "a_merge_pdf.pdf"
        assert files[0]["mime_type"] == "application/pdf"
        assert base64.b64decode(files[0]["data_base64"]).startswith(b"%PDF")
        assert "Done" in replies[-1]["text"]

    def test_oversized_upload(self, client):
        response = post(client, file=("big.pdf", b"x" * (1024 * 1024 + 1), "application/pdf"))
        texts = [r["text"] for r in response.json()["replies"]]
        assert any("too large" in t for t in texts)

    def test_session_counts_in_health(self, client):
        post(client, text="1")
        sessions = client.get("/").json()["sessions"]
        assert sessions["total"] == 1
        assert sessions["awaiting_file"] == 1


class TestSessionAdmin:

    def test_delete_session(self, client, app, pdf_bytes):
        post(client, file=("a.pdf", pdf_bytes(1), "application/pdf"))
        staged = app.state.store.peek("u1").uploaded_files[0].handle

        assert client.delete("/sessions/u1").status_code == 200
        assert app.state.store.peek("u1") is None
        assert not staged.exists()

    def test_delete_unknown_session(self, client):
        assert client.delete("/sessions/ghost").status_code == 404
