"""
RAGサービスの組み立て（起動時・スクリプト共通）

【初心者向け】
1. DOCS_DIR からドキュメントを読み込む
2. Embeddingエンジンを作り、KnowledgeBase（チャンク + Vector Index）を構築
3. LLMクライアント → AnswerComposer → RetrievalOrchestrator を作る

サーバー（app.main）と scripts/*.py の両方から使う。
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.settings import Settings, settings as default_settings
from app.docs.loader import load_documents
from app.llm import get_llm_client
from app.llm.base import LLMClient
from app.rag.composer import AnswerComposer
from app.rag.embedding import EmbeddingEngine, build_embedding_engine
from app.rag.indexer import KnowledgeBase, build_knowledge_base
from app.rag.retrieval import RetrievalConfig, RetrievalOrchestrator

# ロガー設定
logger = logging.getLogger(__name__)


@dataclass
class RagService:
    knowledge_base: KnowledgeBase
    engine: EmbeddingEngine
    orchestrator: Optional[RetrievalOrchestrator] = None


async def load_knowledge_base(
    config: Settings | None = None,
    engine: EmbeddingEngine | None = None,
) -> RagService:
    """
    ドキュメントを読み込んでKnowledgeBaseを構築する

    Raises:
        InvalidConfigurationError: チャンク設定・Embedding設定が不正
    """
    config = config or default_settings
    engine = engine or build_embedding_engine(config)

    sources = load_documents(config.docs_dir)
    logger.info(f"ドキュメント読み込み: {len(sources)}件 (docs_dir={config.docs_dir})")

    knowledge_base = await build_knowledge_base(
        sources,
        engine,
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
        concurrency=config.embedding_concurrency,
    )
    return RagService(knowledge_base=knowledge_base, engine=engine)


def build_orchestrator(
    service: RagService,
    config: Settings | None = None,
    llm_client: LLMClient | None = None,
) -> RetrievalOrchestrator:
    """KnowledgeBaseとLLMクライアントからRetrievalOrchestratorを作る"""
    config = config or default_settings
    composer = AnswerComposer(
        llm_client or get_llm_client(config.llm_provider, config=config),
        timeout_sec=config.llm_timeout_sec,
        max_attempts=config.llm_max_attempts,
    )
    service.orchestrator = RetrievalOrchestrator(
        knowledge_base=service.knowledge_base,
        engine=service.engine,
        composer=composer,
        config=RetrievalConfig.from_settings(config),
    )
    return service.orchestrator
