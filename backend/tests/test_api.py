"""
HTTP API（/health, /documents, /query）のテスト

起動イベントは走らせず、app.state に構築済みのオーケストレーターを差し込む
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import (
    BackendTimeoutError,
    EmbeddingBackendError,
    GenerationBackendError,
    InvalidConfigurationError,
)
from app.main import app
from app.rag.composer import AnswerComposer
from app.rag.embedding import EmbeddingEngine
from app.rag.indexer import build_knowledge_base
from app.rag.retrieval import RetrievalConfig, RetrievalOrchestrator
from app.rag.service import RagService
from tests.fakes import FakeEmbeddingBackend, FakeLLMClient, make_source


def _build_service(llm_client=None, backend=None):
    backend = backend or FakeEmbeddingBackend()
    engine = EmbeddingEngine(backend)
    sources = [
        make_source("guide.pdf", "install the package. run the server on port eight thousand."),
        make_source("faq.txt", "the index is rebuilt at startup. queries return citations."),
    ]
    kb = asyncio.run(build_knowledge_base(sources, engine, chunk_size=25, chunk_overlap=5))
    composer = AnswerComposer(llm_client or FakeLLMClient(answer="Run uvicorn."), timeout_sec=5, max_attempts=1)
    orchestrator = RetrievalOrchestrator(kb, engine, composer, RetrievalConfig(default_max_results=3))
    return RagService(knowledge_base=kb, engine=engine, orchestrator=orchestrator), backend


@pytest.fixture
def service():
    svc, _ = _build_service()
    return svc


@pytest.fixture
def client(service):
    app.state.knowledge_base = service.knowledge_base
    app.state.orchestrator = service.orchestrator
    yield TestClient(app)
    app.state.knowledge_base = None
    app.state.orchestrator = None


@pytest.fixture
def empty_client():
    app.state.knowledge_base = None
    app.state.orchestrator = None
    return TestClient(app)


def test_health_ready(client, service):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "index_ready": True,
        "chunks": service.knowledge_base.chunk_count,
    }


def test_health_not_ready(empty_client):
    response = empty_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "index_ready": False, "chunks": 0}


def test_documents_lists_summaries_in_load_order(client, service):
    response = client.get("/documents")

    assert response.status_code == 200
    body = response.json()
    assert [d["filename"] for d in body] == ["guide.pdf", "faq.txt"]
    for item in body:
        doc = service.knowledge_base.document(item["id"])
        assert item["chunk_count"] == doc.chunk_count
        assert item["content_length"] == len(doc.text)
        assert item["skipped_chunks"] == 0


def test_documents_empty_when_not_ready(empty_client):
    assert empty_client.get("/documents").json() == []


def test_query_success(client):
    response = client.post("/query", json={"query": "how do I run the server", "max_results": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["response"] == "Run uvicorn."
    assert body["error"] is None
    assert len(body["citations"]) == 2
    assert set(body["citations"][0]) == {"document", "text_excerpt", "confidence_score"}
    assert body["processing_time_ms"] >= 0


def test_query_citations_match_orchestrator_output(client, service):
    response = client.post("/query", json={"query": "index rebuilt at startup"})
    expected = asyncio.run(service.orchestrator.retrieve("index rebuilt at startup"))

    citations = response.json()["citations"]
    assert [c["text_excerpt"] for c in citations] == [c.text_excerpt for c in expected]
    assert [c["document"] for c in citations] == [c.document for c in expected]
    assert [c["confidence_score"] for c in citations] == pytest.approx([c.confidence_score for c in expected])


def test_query_partial_success_when_generation_fails():
    svc, _ = _build_service(llm_client=FakeLLMClient(error=GenerationBackendError("llm down")))
    app.state.knowledge_base = svc.knowledge_base
    app.state.orchestrator = svc.orchestrator
    try:
        response = TestClient(app).post("/query", json={"query": "install the package"})
    finally:
        app.state.knowledge_base = None
        app.state.orchestrator = None

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "partial_success"
    assert body["response"] == ""
    assert body["citations"]
    assert "llm down" in body["error"]


@pytest.mark.parametrize("payload", [{"query": ""}, {"query": "   "}, {"query": "x", "max_results": 0}])
def test_query_invalid_input(client, payload):
    response = client.post("/query", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INVALID_INPUT"


def test_query_missing_field_is_validation_error(client):
    assert client.post("/query", json={}).status_code == 422


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (EmbeddingBackendError("embedding down"), 502, "EMBEDDING_BACKEND_ERROR"),
        (BackendTimeoutError("embedding", 1), 504, "TIMEOUT"),
    ],
)
def test_query_embedding_failures(error, status_code, code):
    backend = FakeEmbeddingBackend()
    svc, backend = _build_service(backend=backend)
    backend.errors = [error, error]
    app.state.knowledge_base = svc.knowledge_base
    app.state.orchestrator = svc.orchestrator
    try:
        response = TestClient(app).post("/query", json={"query": "install"})
    finally:
        app.state.knowledge_base = None
        app.state.orchestrator = None

    assert response.status_code == status_code
    assert response.json()["detail"]["error"]["code"] == code


def test_query_unavailable_without_index(empty_client):
    response = empty_client.post("/query", json={"query": "anything"})

    assert response.status_code == 503
    assert response.json()["detail"]["error"]["code"] == "SERVICE_UNAVAILABLE"


def test_startup_builds_orchestrator(service):
    with patch("app.main.load_knowledge_base", AsyncMock(return_value=service)), \
            patch("app.main.build_orchestrator", return_value=service.orchestrator):
        with TestClient(app) as test_client:
            body = test_client.get("/health").json()
    app.state.knowledge_base = None
    app.state.orchestrator = None

    assert body["index_ready"] is True
    assert body["chunks"] == service.knowledge_base.chunk_count


def test_startup_failure_keeps_server_up():
    with patch("app.main.load_knowledge_base", AsyncMock(side_effect=RuntimeError("disk error"))):
        with TestClient(app) as test_client:
            health = test_client.get("/health").json()
            query = test_client.post("/query", json={"query": "anything"})

    assert health["index_ready"] is False
    assert query.status_code == 503


def test_startup_invalid_configuration_is_fatal():
    with patch(
        "app.main.load_knowledge_base",
        AsyncMock(side_effect=InvalidConfigurationError("chunk_overlap >= chunk_size")),
    ):
        with pytest.raises(InvalidConfigurationError):
            with TestClient(app):
                pass
