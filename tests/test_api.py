from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChatProvider, FakeClock, FakeSource, build_index, make_chunks, text_file
from drivechat.api.dependencies import (
    get_chat_service,
    get_fallback_executor,
    get_ingestion_pipeline,
    get_progress_tracker,
    get_session_store,
    reset_dependency_caches,
)
from drivechat.config import Settings
from drivechat.errors import DocumentSourceError, ProviderError, ProviderTimeoutError
from drivechat.ingest.pipeline import IngestionPipeline
from drivechat.llm.fallback import ProviderFallbackExecutor
from drivechat.main import app
from drivechat.services.chat import NO_DOCUMENTS_MESSAGE, ChatService


class BrokenListingSource(FakeSource):
    async def list_files(self, folder_id: str):
        raise DocumentSourceError("403 Forbidden: insufficient permissions", status_code=403)


class ExplodingChatService:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def answer(self, session_id: str, question: str):
        raise self.error


@pytest.fixture()
def client(store, tracker):
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_progress_tracker] = lambda: tracker
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        reset_dependency_caches()


def _use_pipeline(settings, store, tracker, index_builder, source) -> None:
    app.dependency_overrides[get_ingestion_pipeline] = lambda: IngestionPipeline(
        settings, store, tracker, source=source, index_builder=index_builder
    )


def _use_executor(*providers) -> ProviderFallbackExecutor:
    executor = ProviderFallbackExecutor(list(providers), clock=FakeClock())
    app.dependency_overrides[get_fallback_executor] = lambda: executor
    return executor


def test_read_root_returns_ok(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "ok"


def test_progress_requires_session_id(client) -> None:
    assert client.get("/api/progress").status_code == 400


def test_progress_defaults_to_not_started(client) -> None:
    response = client.get("/api/progress", params={"sessionId": "unknown"})

    assert response.status_code == 200
    assert response.json() == {
        "currentStep": 0,
        "totalSteps": 10,
        "status": "Not started",
        "currentFile": "",
        "filesProcessed": 0,
        "totalFiles": 0,
        "percentage": 0,
        "state": "not_started",
    }


def test_post_ingest_progress_returns_404_for_unknown_session(client) -> None:
    response = client.post("/api/ingest", json={"sessionId": "nobody"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Progress not found for session"


def test_post_ingest_progress_requires_session_id(client) -> None:
    assert client.post("/api/ingest", json={}).status_code == 400


def test_ingest_then_progress_reports_completion(client, settings, store, tracker, index_builder) -> None:
    source = FakeSource([(text_file("a"), b"Aufzug 123456789 gewartet."), (text_file("b"), b"Rechnung 4711")])
    _use_pipeline(settings, store, tracker, index_builder, source)

    response = client.get("/api/ingest", params={"sessionId": "s1"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["sessionId"] == "s1"
    assert body["filesProcessed"] == 2
    assert [item["name"] for item in body["files"]] == ["a.txt", "b.txt"]
    assert body["totalChunks"] >= 2
    assert body["cached"] is False

    progress = client.post("/api/ingest", json={"sessionId": "s1"}).json()
    assert progress["percentage"] == 100
    assert progress["state"] == "ready"


def test_repeated_ingest_is_served_from_cache(client, settings, store, tracker, index_builder) -> None:
    source = FakeSource([(text_file("a"), b"Wartungsprotokoll")])
    _use_pipeline(settings, store, tracker, index_builder, source)

    client.get("/api/ingest", params={"sessionId": "s1"})
    calls = source.total_calls
    body = client.get("/api/ingest", params={"sessionId": "s1"}).json()

    assert body["cached"] is True
    assert source.total_calls == calls


def test_ingest_uses_default_session(client, settings, store, tracker, index_builder) -> None:
    _use_pipeline(settings, store, tracker, index_builder, FakeSource([(text_file("a"), b"text")]))

    assert client.get("/api/ingest").json()["sessionId"] == "default-session"


def test_empty_folder_returns_empty_status(client, settings, store, tracker, index_builder) -> None:
    _use_pipeline(settings, store, tracker, index_builder, FakeSource([]))

    response = client.get("/api/ingest", params={"sessionId": "s1"})

    assert response.status_code == 200
    assert response.json() == {
        "status": "empty",
        "message": "No files found in the specified folder.",
        "sessionId": "s1",
    }


def test_missing_configuration_returns_500_with_names(client, store, tracker, index_builder) -> None:
    settings = Settings(embedding_backend="gemini")
    _use_pipeline(settings, store, tracker, index_builder, FakeSource([]))

    response = client.get("/api/ingest", params={"sessionId": "s1"})

    assert response.status_code == 500
    body = response.json()
    assert "Missing required environment variables" in body["error"]
    assert "GOOGLE_DRIVE_FOLDER_ID" in body["missing"]
    assert tracker.get("s1").state.value == "error"


def test_listing_failure_returns_500_with_tracking_id(client, settings, store, tracker, index_builder) -> None:
    _use_pipeline(settings, store, tracker, index_builder, BrokenListingSource())

    response = client.get("/api/ingest", params={"sessionId": "s1"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to ingest documents from Google Drive."
    assert body["code"] == 403
    assert "insufficient permissions" in body["details"]
    assert body["trackingId"]
    progress = client.get("/api/progress", params={"sessionId": "s1"}).json()
    assert progress["state"] == "error"
    assert progress["status"].startswith("ERROR:")


def test_chat_requires_trailing_user_message(client) -> None:
    _use_executor()

    response = client.post(
        "/api/chat",
        json={"messages": [{"role": "assistant", "content": "Hi"}], "sessionId": "s1"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "No user message found"


def test_chat_without_index_explains_missing_documents(client) -> None:
    _use_executor(FakeChatProvider("gemini"))

    response = client.post(
        "/api/chat", json={"messages": [{"role": "user", "content": "Hello?"}], "sessionId": "s1"}
    )

    assert response.status_code == 200
    assert response.json()["content"] == NO_DOCUMENTS_MESSAGE
    assert response.json()["sources"] == []


def test_chat_answers_with_sources(client, store) -> None:
    chunks = make_chunks("Aufzug.txt", ["Anlage 123456789: Tragseil ersetzt."], file_id="f-1")
    store.indices.set("s1", asyncio.run(build_index(chunks)))
    provider = FakeChatProvider("gemini", answer="Das Tragseil wurde ersetzt.")
    _use_executor(provider)

    response = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "What happened to Anlage 123456789?"}], "sessionId": "s1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "assistant"
    assert body["content"] == "Das Tragseil wurde ersetzt."
    assert body["sources"] == [{"fileName": "Aufzug.txt", "fileId": "f-1", "pageNumber": 1}]
    assert body["metadata"]["provider"] == "gemini"
    assert body["metadata"]["queryType"] == "entity"
    assert provider.calls == 1


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (ProviderTimeoutError("gemini", 25), "timeout"),
        (ProviderError("gemini", "503 Service Unavailable", status_code=503), "upstream"),
        (RuntimeError("boom"), "internal"),
    ],
)
def test_chat_failures_return_500_with_tracking_id(client, error, kind) -> None:
    app.dependency_overrides[get_chat_service] = lambda: ExplodingChatService(error)

    response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

    assert response.status_code == 500
    body = response.json()
    assert body["role"] == "assistant"
    assert body["error"] == kind
    assert body["trackingId"]


def test_health_reports_breaker_state(client) -> None:
    executor = _use_executor(FakeChatProvider("gemini"), FakeChatProvider("openai"))
    executor.breaker("gemini").trip()

    body = client.get("/api/health").json()

    assert body["status"] == "healthy"
    assert body["primaryProvider"] == "openai"
    assert body["fallbackAvailable"] is False
    assert body["totalProviders"] == 2
    assert [entry["state"] for entry in body["providers"]] == ["open", "closed"]


def test_health_probe_marks_failing_provider(client) -> None:
    _use_executor(FakeChatProvider("gemini", error=RuntimeError("unreachable")))

    body = client.get("/api/health", params={"probe": "true"}).json()

    assert body["status"] == "degraded"
    assert body["primaryProvider"] is None
    assert body["providers"][0]["healthy"] is False


def test_chat_service_wiring_uses_shared_store(store) -> None:
    executor = ProviderFallbackExecutor([])
    service = ChatService(store, executor)

    assert asyncio.run(service.answer("nobody", "Hi")).metadata == {"indexed": False}
