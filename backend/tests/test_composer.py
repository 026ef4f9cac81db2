"""
AnswerComposer / プロンプト生成 / リトライのテスト
"""
import asyncio

import pytest

from app.core.exceptions import BackendTimeoutError, GenerationBackendError
from app.core.retry import call_with_retry, is_transient
from app.docs.models import Citation
from app.llm.prompt import SYSTEM_PROMPT, build_context, build_messages
from app.rag.composer import AnswerComposer
from tests.fakes import FakeLLMClient


def _citation(document: str, text: str, score: float = 0.5) -> Citation:
    return Citation(
        document=document,
        doc_id=f"id-{document}",
        chunk_index=0,
        start=0,
        end=len(text),
        text_excerpt=text,
        confidence_score=score,
        similarity=score,
    )


class FlakyLLMClient:
    """最初の failures 回だけ一時エラーを投げる"""

    def __init__(self, failures: int, transient: bool = True):
        self.failures = failures
        self.transient = transient
        self.calls = 0

    async def chat(self, messages):
        self.calls += 1
        if self.calls <= self.failures:
            raise GenerationBackendError("temporary", transient=self.transient)
        return "recovered answer"


class SlowLLMClient:
    async def chat(self, messages):
        await asyncio.sleep(1)
        return "too late"


def test_build_context_numbers_citations_with_document_names():
    context = build_context([_citation("a.pdf", "first excerpt"), _citation("b.pdf", "second excerpt")])

    assert context == (
        "[1] Document: a.pdf\nContent: first excerpt\n\n"
        "[2] Document: b.pdf\nContent: second excerpt"
    )


def test_build_context_without_citations():
    assert build_context([]) == "No relevant context documents were found."


def test_build_messages_structure():
    messages = build_messages("What is RAG?", [_citation("a.pdf", "RAG retrieves documents.")])

    assert [m["role"] for m in messages] == ["system", "user"]
    assert messages[0]["content"] == SYSTEM_PROMPT
    user = messages[1]["content"]
    assert user.startswith("CONTEXT DOCUMENTS:\n[1] Document: a.pdf")
    assert "QUESTION: What is RAG?" in user
    assert user.endswith("ANSWER (be specific and cite sources):")


@pytest.mark.asyncio
async def test_compose_returns_stripped_answer():
    llm = FakeLLMClient(answer="  the answer \n")
    composer = AnswerComposer(llm)

    answer = await composer.compose("q", [_citation("a.pdf", "text")])

    assert answer == "the answer"
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_compose_retries_transient_errors():
    llm = FlakyLLMClient(failures=1)
    composer = AnswerComposer(llm, max_attempts=2)

    assert await composer.compose("q", []) == "recovered answer"
    assert llm.calls == 2


@pytest.mark.asyncio
async def test_compose_gives_up_after_max_attempts():
    llm = FlakyLLMClient(failures=5)
    composer = AnswerComposer(llm, max_attempts=2)

    with pytest.raises(GenerationBackendError):
        await composer.compose("q", [])
    assert llm.calls == 2


@pytest.mark.asyncio
async def test_compose_does_not_retry_permanent_errors():
    llm = FlakyLLMClient(failures=5, transient=False)
    composer = AnswerComposer(llm, max_attempts=3)

    with pytest.raises(GenerationBackendError):
        await composer.compose("q", [])
    assert llm.calls == 1


@pytest.mark.asyncio
async def test_compose_timeout():
    composer = AnswerComposer(SlowLLMClient(), timeout_sec=0.05, max_attempts=1)

    with pytest.raises(BackendTimeoutError) as exc_info:
        await composer.compose("q", [])
    assert exc_info.value.backend == "generation"


@pytest.mark.asyncio
async def test_call_with_retry_passes_through_result():
    async def ok():
        return 42

    assert await call_with_retry(ok, max_attempts=3, label="test") == 42


def test_is_transient():
    assert is_transient(GenerationBackendError("x", transient=True))
    assert not is_transient(GenerationBackendError("x"))
    assert is_transient(BackendTimeoutError("embedding", 1))
    assert not is_transient(ValueError("x"))
