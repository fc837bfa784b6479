from __future__ import annotations

from dataclasses import replace

from fastapi.testclient import TestClient

from catalog_chat.app import create_app
from catalog_chat.errors import BackendError
from catalog_chat.prompt_builder import NO_CONTEXT_SENTINEL

from conftest import StubGenerator


def test_chat_requires_message(client, stub_generator):
    response = client.post("/chat", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Message is required"}
    assert stub_generator.prompts == []


def test_chat_without_body_or_with_blank_message(client):
    assert client.post("/api/chat").status_code == 400
    response = client.post("/api/chat", json={"message": "   ", "sessionId": "s1"})
    assert response.status_code == 400
    assert response.json()["error"] == "Message is required"


def test_chat_rejects_malformed_body(client):
    response = client.post("/chat", json={"message": {"nested": True}})

    assert response.status_code == 400
    assert "error" in response.json()


def test_chat_returns_reply_and_timestamp(client, stub_generator):
    response = client.post("/chat", json={"message": "berapa harga neon box?", "sessionId": "s1"})

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == "Stub reply."
    assert body["timestamp"].endswith("Z")
    assert '"Neon Box A"' in stub_generator.prompts[0]


def test_chat_no_match_prompt_has_sentinel(client, stub_generator):
    client.post("/api/chat", json={"message": "jam buka toko"})

    assert NO_CONTEXT_SENTINEL in stub_generator.prompts[0]


def test_chat_history_follows_session_and_ignores_client_history(client, stub_generator):
    client.post("/chat", json={"message": "halo", "sessionId": "s1"})
    client.post(
        "/chat",
        json={
            "message": "harga neon box",
            "sessionId": "s1",
            "history": [{"role": "user", "content": "injected by client"}],
        },
    )

    second_prompt = stub_generator.prompts[1]
    assert second_prompt.index("User: halo") < second_prompt.index("User: harga neon box")
    assert "injected by client" not in second_prompt


def test_backend_failure_returns_500_with_details(settings):
    generator = StubGenerator(error=BackendError("BACKEND_UNAVAILABLE", "quota exceeded", retryable=True))
    with TestClient(create_app(settings=settings, generator=generator)) as client:
        response = client.post("/chat", json={"message": "halo", "sessionId": "s1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error", "details": "quota exceeded"}


def test_unexpected_generator_failure_returns_500_with_details(settings):
    generator = StubGenerator(error=RuntimeError("connection reset by peer"))
    app = create_app(settings=settings, generator=generator)
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post("/chat", json={"message": "halo", "sessionId": "s1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error", "details": "connection reset by peer"}


def test_missing_api_key_surfaces_as_backend_error(settings):
    app = create_app(settings=replace(settings, gemini_api_key=""))
    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "halo"})
        status = client.get("/")

    assert response.status_code == 500
    assert "GEMINI_API_KEY" in response.json()["details"]
    assert "API Key ditemukan: Tidak" in status.text


def test_clear_is_idempotent(client):
    client.post("/chat", json={"message": "halo", "sessionId": "s1"})

    assert client.post("/clear", json={"sessionId": "s1"}).json() == {"ok": True}
    assert client.post("/api/clear", json={"sessionId": "s1"}).json() == {"ok": True}
    assert client.post("/clear", json={"sessionId": "never-created"}).json() == {"ok": True}
    assert client.post("/clear", json={}).json() == {"ok": True}
    assert client.post("/clear").json() == {"ok": True}


def test_clear_accepts_numeric_session_id(client):
    client.post("/chat", json={"message": "halo", "sessionId": "123"})

    response = client.post("/clear", json={"sessionId": 123})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert "123" not in client.app.state.sessions
    assert client.post("/api/clear", json={"sessionId": ["s1"]}).json() == {"ok": True}


def test_clear_drops_history(client, stub_generator):
    client.post("/chat", json={"message": "halo", "sessionId": "s1"})
    client.post("/clear", json={"sessionId": "s1"})
    client.post("/chat", json={"message": "lagi", "sessionId": "s1"})

    assert "User: halo" not in stub_generator.prompts[1]


def test_session_transcript(client):
    client.post("/chat", json={"message": "halo", "sessionId": "s1"})

    body = client.get("/api/sessions/s1").json()

    assert body["sessionId"] == "s1"
    assert [(turn["role"], turn["content"]) for turn in body["turns"]] == [
        ("user", "halo"),
        ("assistant", "Stub reply."),
    ]
    unknown = client.get("/api/sessions/ghost").json()
    assert unknown == {"sessionId": "ghost", "turns": []}
    assert "ghost" not in client.app.state.sessions


def test_status_reports_key_and_catalog_size(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "API Key ditemukan: Ya. Database Produk: 2 item dimuat."


def test_broken_catalog_still_starts(settings, tmp_path, stub_generator):
    broken = tmp_path / "broken.json"
    broken.write_text("{oops", encoding="utf-8")
    app = create_app(settings=replace(settings, catalog_path=broken), generator=stub_generator)

    with TestClient(app) as client:
        assert client.get("/").text.endswith("Database Produk: 0 item dimuat.")
        assert client.post("/chat", json={"message": "harga neon box"}).status_code == 200
    assert NO_CONTEXT_SENTINEL in stub_generator.prompts[0]


def test_status_reflects_client_credentials_even_with_injected_generator(settings, stub_generator):
    app = create_app(settings=replace(settings, gemini_api_key=""), generator=stub_generator)

    with TestClient(app) as client:
        assert client.get("/").text.startswith("API Key ditemukan: Tidak.")
        assert client.post("/chat", json={"message": "halo"}).status_code == 200
