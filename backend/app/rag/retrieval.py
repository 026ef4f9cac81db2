"""
検索オーケストレーター（質問 → Embedding → 検索 → 引用 → 回答生成）

【初心者向け】
1リクエストの流れ:
1. 検証: 質問文が空でないこと、max_results > 0（未指定ならデフォルト）
2. 質問をEmbedding（失敗はそのまま呼び出し元へ。自動リトライはエンジン側の一時障害のみ）
3. Vector Index を k = max_results で検索
4. 引用を組み立てる（チャンクのテキストそのまま + confidence = 類似度を[0,1]にclamp）
5. LLMで回答生成。失敗しても引用は有効 → PARTIAL_SUCCESS として返す

終了状態:
- SUCCESS: 回答 + 引用
- PARTIAL_SUCCESS: 引用のみ（回答生成に失敗）
- 失敗: 1〜3で例外（InvalidQueryError / EmbeddingBackendError / BackendTimeoutError など）

リクエスト間で共有するのは読み取り専用の KnowledgeBase だけ。
"""
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from app.core.exceptions import InvalidConfigurationError, InvalidQueryError, RagError
from app.core.settings import Settings
from app.docs.models import Citation, DocumentChunk
from app.rag.composer import AnswerComposer
from app.rag.embedding import EmbeddingEngine
from app.rag.indexer import KnowledgeBase

# ロガー設定
logger = logging.getLogger(__name__)


class QueryStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"


@dataclass(frozen=True)
class RetrievalConfig:
    """
    検索のリクエスト単位の設定

    - default_max_results: max_results未指定時の件数
    - max_results_limit: 指定できるmax_resultsの上限
    - min_confidence: これ未満のconfidenceの引用を除外（Noneなら除外しない）
    """
    default_max_results: int = 5
    max_results_limit: int = 50
    min_confidence: Optional[float] = None

    def validate(self) -> None:
        if self.default_max_results <= 0:
            raise InvalidConfigurationError(f"default_max_resultsは1以上にしてください: {self.default_max_results}")
        if self.max_results_limit < self.default_max_results:
            raise InvalidConfigurationError(
                f"max_results_limit({self.max_results_limit})は"
                f"default_max_results({self.default_max_results})以上にしてください"
            )
        if self.min_confidence is not None and not 0.0 <= self.min_confidence <= 1.0:
            raise InvalidConfigurationError(f"min_confidenceは0〜1の範囲にしてください: {self.min_confidence}")

    @classmethod
    def from_settings(cls, config: Settings) -> "RetrievalConfig":
        return cls(
            default_max_results=config.default_max_results,
            max_results_limit=config.max_results_limit,
            min_confidence=config.min_confidence,
        )


@dataclass
class QueryTiming:
    """処理時間（ミリ秒）"""
    embed_ms: float = 0.0
    search_ms: float = 0.0
    generation_ms: float = 0.0
    total_ms: float = 0.0


@dataclass
class QueryResult:
    status: QueryStatus
    answer: Optional[str]
    citations: List[Citation]
    timing: QueryTiming = field(default_factory=QueryTiming)
    error: Optional[str] = None  # PARTIAL_SUCCESS のときの回答生成エラー


def normalize_question(question: str) -> str:
    """
    質問文を正規化する（余計な空白を削除）
    """
    return re.sub(r"\s+", " ", question).strip()


def clamp_confidence(score: float) -> float:
    return max(0.0, min(1.0, score))


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RetrievalOrchestrator:
    """質問に対する検索と回答生成をまとめる"""

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        engine: EmbeddingEngine,
        composer: AnswerComposer,
        config: RetrievalConfig | None = None,
    ):
        self.config = config or RetrievalConfig()
        self.config.validate()
        if engine.model_id != knowledge_base.model_id:
            # 別モデルのベクトル同士は比較できない
            raise InvalidConfigurationError(
                f"Embeddingモデルが一致しません: index={knowledge_base.model_id}, query={engine.model_id}"
            )
        self.knowledge_base = knowledge_base
        self.engine = engine
        self.composer = composer

    def validate_query(self, query_text: str, max_results: Optional[int]) -> Tuple[str, int]:
        """
        質問とmax_resultsを検証する

        Returns:
            (正規化済み質問文, 検索件数k)

        Raises:
            InvalidQueryError: 質問文が空・max_resultsが不正
        """
        if not isinstance(query_text, str):
            raise InvalidQueryError("質問文は文字列で指定してください")
        question = normalize_question(query_text)
        if not question:
            raise InvalidQueryError("質問文が空です")

        if max_results is None:
            return question, self.config.default_max_results
        if isinstance(max_results, bool) or not isinstance(max_results, int):
            raise InvalidQueryError(f"max_resultsは整数で指定してください: {max_results!r}")
        if max_results <= 0:
            raise InvalidQueryError(f"max_resultsは1以上にしてください: {max_results}")
        if max_results > self.config.max_results_limit:
            raise InvalidQueryError(
                f"max_resultsは{self.config.max_results_limit}以下にしてください: {max_results}"
            )
        return question, max_results

    def build_citations(self, ranked: List[Tuple[DocumentChunk, float]]) -> List[Citation]:
        """
        検索結果から引用を組み立てる（順序はそのまま、min_confidence未満は除外）
        """
        citations: List[Citation] = []
        for chunk, score in ranked:
            document = self.knowledge_base.document(chunk.doc_id)
            if document is None:
                # インデックスとドキュメント一覧は同時に作るので通常は起きない
                raise RagError(f"チャンクの親ドキュメントが見つかりません: {chunk.doc_id}")
            confidence = clamp_confidence(score)
            if self.config.min_confidence is not None and confidence < self.config.min_confidence:
                continue
            citations.append(
                Citation(
                    document=document.filename,
                    doc_id=document.doc_id,
                    chunk_index=chunk.chunk_index,
                    start=chunk.start,
                    end=chunk.end,
                    text_excerpt=chunk.text,
                    confidence_score=confidence,
                    similarity=score,
                )
            )
        return citations

    async def retrieve(
        self,
        query_text: str,
        max_results: Optional[int] = None,
        timing: QueryTiming | None = None,
    ) -> List[Citation]:
        """
        検証 → 質問Embedding → 検索 → 引用組み立て（回答生成はしない）

        Raises:
            InvalidQueryError / EmbeddingBackendError / BackendTimeoutError / DegenerateVectorError
        """
        timing = timing if timing is not None else QueryTiming()
        question, k = self.validate_query(query_text, max_results)

        t_embed_start = time.perf_counter()
        query_vector = await self.engine.embed_query(question)
        timing.embed_ms = _elapsed_ms(t_embed_start)

        t_search_start = time.perf_counter()
        ranked = self.knowledge_base.index.search(query_vector, k)
        citations = self.build_citations(ranked)
        timing.search_ms = _elapsed_ms(t_search_start)

        logger.info(
            f"検索完了: k={k}, citations={len(citations)}, "
            f"embed_ms={timing.embed_ms:.1f}, search_ms={timing.search_ms:.1f}"
        )
        return citations

    async def answer(self, query_text: str, max_results: Optional[int] = None) -> QueryResult:
        """
        質問に回答する

        Args:
            query_text: 質問文
            max_results: 引用の最大件数（Noneならデフォルト）

        Returns:
            QueryResult（SUCCESS または PARTIAL_SUCCESS）

        Raises:
            検索までの段階で失敗した場合はその例外（引用を作れないため）
        """
        t_start = time.perf_counter()
        timing = QueryTiming()

        citations = await self.retrieve(query_text, max_results, timing=timing)
        question = normalize_question(query_text)

        t_generation_start = time.perf_counter()
        try:
            answer = await self.composer.compose(question, citations)
        except RagError as e:
            timing.generation_ms = _elapsed_ms(t_generation_start)
            timing.total_ms = _elapsed_ms(t_start)
            logger.warning(f"回答生成に失敗しました: {type(e).__name__}: {e}。citationsのみ返します。")
            return QueryResult(
                status=QueryStatus.PARTIAL_SUCCESS,
                answer=None,
                citations=citations,
                timing=timing,
                error=str(e),
            )

        timing.generation_ms = _elapsed_ms(t_generation_start)
        timing.total_ms = _elapsed_ms(t_start)
        logger.info(f"回答生成完了: total_ms={timing.total_ms:.1f}, generation_ms={timing.generation_ms:.1f}")
        return QueryResult(
            status=QueryStatus.SUCCESS,
            answer=answer,
            citations=citations,
            timing=timing,
        )
