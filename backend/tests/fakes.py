"""
テスト用の偽バックエンド

- FakeEmbeddingBackend: 単語ハッシュの出現回数ベクトル（決定的、ネットワーク不要）
- FakeLLMClient: 固定の回答を返す / 指定した例外を投げるLLM
"""
import hashlib
import re
from typing import List, Optional, Sequence

from app.core.exceptions import EmbeddingBackendError
from app.docs.loader import make_document_id
from app.docs.models import SourceDocument

_WORD_RE = re.compile(r"\w+")


def text_to_vector(text: str, dimension: int) -> List[float]:
    """単語ごとにハッシュした次元を数える（単語を含まないテキストはゼロベクトル）"""
    vector = [0.0] * dimension
    for word in _WORD_RE.findall(text.lower()):
        slot = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % dimension
        vector[slot] += 1.0
    return vector


class FakeEmbeddingBackend:
    def __init__(
        self,
        dimension: Optional[int] = 64,
        model_id: str = "fake:bag-of-words",
        fail_markers: Sequence[str] = (),
        errors: Sequence[Exception] = (),
    ):
        self._dimension = dimension or 64
        self._reported_dimension = dimension
        self.model_id = model_id
        self.fail_markers = list(fail_markers)
        self.errors = list(errors)  # 先頭から1回ずつ投げる
        self.calls: List[List[str]] = []

    @property
    def dimension(self) -> Optional[int]:
        return self._reported_dimension

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.errors:
            raise self.errors.pop(0)
        for text in texts:
            for marker in self.fail_markers:
                if marker in text:
                    raise EmbeddingBackendError(f"fake failure: {marker}")
        return [text_to_vector(text, self._dimension) for text in texts]

    @property
    def embedded_texts(self) -> List[str]:
        return [text for batch in self.calls for text in batch]


class FakeLLMClient:
    def __init__(self, answer: str = "テスト回答です。", error: Exception | None = None):
        self.answer = answer
        self.error = error
        self.calls: List[List[dict]] = []

    async def chat(self, messages: List[dict]) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.answer


def make_source(filename: str, text: str) -> SourceDocument:
    return SourceDocument(doc_id=make_document_id(filename, text), filename=filename, text=text)
