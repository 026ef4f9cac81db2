#!/usr/bin/env python3
"""
RAGインデックス構築スクリプト

DOCS_DIRのドキュメントをチャンク化・Embeddingし、ドキュメント単位の結果を表示します。
サーバー起動時にも自動的に実行されますが、設定やドキュメントを確認したい場合に使用します。

使用方法:
    cd backend
    python scripts/build_index.py [--docs-dir DIR]
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# プロジェクトルートをパスに追加
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.core.exceptions import RagError
from app.core.settings import settings
from app.rag.service import load_knowledge_base

# ロガー設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """メイン処理"""
    parser = argparse.ArgumentParser(description='RAGインデックス構築スクリプト')
    parser.add_argument(
        '--docs-dir',
        default=None,
        help='ドキュメントディレクトリ（省略時はDOCS_DIR）'
    )
    args = parser.parse_args()

    config = settings
    if args.docs_dir:
        config = settings.model_copy(update={"docs_dir": args.docs_dir})

    logger.info("=" * 60)
    logger.info("RAGインデックス構築を開始します")
    logger.info(f"docs_dir: {config.docs_dir}, chunk_size: {config.chunk_size}, chunk_overlap: {config.chunk_overlap}")
    logger.info("=" * 60)

    try:
        service = asyncio.run(load_knowledge_base(config))
    except RagError as e:
        logger.error(f"インデックス構築に失敗しました: {type(e).__name__}: {e}", exc_info=True)
        sys.exit(1)

    knowledge_base = service.knowledge_base
    for doc in knowledge_base.documents.values():
        logger.info(
            f"  {doc.filename}: chars={doc.content_length}, "
            f"chunks={doc.chunk_count}, skipped={doc.skipped_chunks}, id={doc.doc_id}"
        )

    logger.info("=" * 60)
    logger.info(
        f"RAGインデックス構築が完了しました: documents={len(knowledge_base.documents)}, "
        f"chunks={knowledge_base.chunk_count}, model={knowledge_base.model_id}"
    )
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
