"""
テスト共通のフィクスチャ
"""
from typing import List

import pytest
import pytest_asyncio

from app.docs.models import SourceDocument
from app.rag.composer import AnswerComposer
from app.rag.embedding import EmbeddingEngine
from app.rag.indexer import build_knowledge_base
from app.rag.retrieval import RetrievalConfig, RetrievalOrchestrator
from tests.fakes import FakeEmbeddingBackend, FakeLLMClient, make_source


@pytest.fixture
def fake_backend() -> FakeEmbeddingBackend:
    return FakeEmbeddingBackend()


@pytest.fixture
def engine(fake_backend) -> EmbeddingEngine:
    return EmbeddingEngine(fake_backend, max_attempts=2, batch_size=4)


@pytest.fixture
def sources() -> List[SourceDocument]:
    return [
        make_source("animals.txt", "cats purr softly. dogs bark loudly at night."),
        make_source("fruits.txt", "apples are red. bananas are yellow and sweet."),
        make_source("space.txt", "the moon orbits the earth. mars is a red planet."),
    ]


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest_asyncio.fixture
async def knowledge_base(sources, engine):
    return await build_knowledge_base(sources, engine, chunk_size=30, chunk_overlap=5)


@pytest.fixture
def orchestrator(knowledge_base, engine, fake_llm) -> RetrievalOrchestrator:
    composer = AnswerComposer(fake_llm, timeout_sec=5, max_attempts=1)
    return RetrievalOrchestrator(knowledge_base, engine, composer, RetrievalConfig(default_max_results=3))
