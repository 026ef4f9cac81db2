"""
RAGインデックス作成（ドキュメント → チャンク → Embedding → Vector Index）

起動時に1回だけ実行する構築フェーズ。完成した KnowledgeBase は読み取り専用で、
各リクエストからは参照で共有する。
"""
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from app.core.exceptions import InvalidConfigurationError, RagError
from app.docs.models import Document, DocumentChunk, SourceDocument
from app.rag.chunking import chunk_document, validate_chunk_params
from app.rag.embedding import EmbeddingEngine
from app.rag.vectorstore import VectorIndex

# ロガー設定
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnowledgeBase:
    """構築済みのコーパス（ドキュメント概要 + Vector Index）"""
    documents: Dict[str, Document]  # doc_id -> Document（読み込み順）
    index: VectorIndex
    model_id: str

    @property
    def chunk_count(self) -> int:
        return len(self.index)

    def document(self, doc_id: str) -> Optional[Document]:
        return self.documents.get(doc_id)


async def build_knowledge_base(
    sources: Sequence[SourceDocument],
    engine: EmbeddingEngine,
    chunk_size: int,
    chunk_overlap: int,
    concurrency: int = 4,
) -> KnowledgeBase:
    """
    ドキュメントをチャンク化・Embeddingして Vector Index を作る

    - チャンク設定が不正なら何もせずに InvalidConfigurationError（起動失敗）
    - Embeddingに失敗したチャンクはログを出してスキップし、
      Document.chunk_count / skipped_chunks に反映する（部分的に使える方を優先）
    - Vector Index へはドキュメント順・chunk_index順に登録する

    Args:
        sources: 抽出済みドキュメント
        engine: Embeddingエンジン
        chunk_size: チャンクサイズ（文字数）
        chunk_overlap: オーバーラップ文字数
        concurrency: Embeddingの同時実行バッチ数

    Returns:
        KnowledgeBase
    """
    validate_chunk_params(chunk_size, chunk_overlap)

    seen_ids = set()
    for source in sources:
        if source.doc_id in seen_ids:
            raise InvalidConfigurationError(f"ドキュメントIDが重複しています: {source.doc_id} ({source.filename})")
        seen_ids.add(source.doc_id)

    logger.info("RAGインデックス作成を開始します...")

    # 全チャンクを収集
    chunks_by_doc: Dict[str, List[DocumentChunk]] = {}
    all_chunks: List[DocumentChunk] = []
    for source in sources:
        chunks = chunk_document(source, chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        chunks_by_doc[source.doc_id] = chunks
        all_chunks.extend(chunks)
        logger.info(f"チャンク化: {source.filename} - {len(source.text)}文字 → {len(chunks)}チャンク")

    # Embeddingを生成（スロットは all_chunks と同じ並び）
    vectors = await engine.embed_chunks(all_chunks, concurrency=concurrency)

    # 1件もEmbeddingできていない（チャンク0件、または全件失敗）場合は空のインデックスになる
    index = VectorIndex(dimension=engine.dimension or 1, model_id=engine.model_id)

    indexed = Counter()
    for chunk, vector in zip(all_chunks, vectors):
        if vector is None:
            continue
        try:
            index.insert(chunk, vector)
        except RagError as e:
            logger.warning(
                f"チャンクをインデックスに登録できませんでした（スキップ）: "
                f"doc_id={chunk.doc_id}, chunk_index={chunk.chunk_index} - {type(e).__name__}: {e}"
            )
            continue
        indexed[chunk.doc_id] += 1
    index.freeze()

    documents: Dict[str, Document] = {}
    for source in sources:
        total = len(chunks_by_doc[source.doc_id])
        count = indexed[source.doc_id]
        documents[source.doc_id] = Document(
            doc_id=source.doc_id,
            filename=source.filename,
            text=source.text,
            chunk_count=count,
            content_length=len(source.text),
            skipped_chunks=total - count,
        )
        if count < total:
            logger.warning(f"一部のチャンクを登録できませんでした: {source.filename} - {count}/{total}チャンク")

    skipped = len(all_chunks) - len(index)
    logger.info(
        f"RAGインデックス作成完了: doc_count={len(documents)}, "
        f"chunk_count={len(index)}, skipped={skipped}"
    )
    return KnowledgeBase(documents=documents, index=index, model_id=engine.model_id)
