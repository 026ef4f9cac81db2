#!/usr/bin/env python3
"""
質問スクリプト（サーバーを起動せずに1問だけ回答を確認する）

使用方法:
    cd backend
    python scripts/ask.py "質問文" [--max-results N]
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# プロジェクトルートをパスに追加
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.core.exceptions import RagError
from app.core.settings import settings
from app.rag.service import build_orchestrator, load_knowledge_base

# ロガー設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run(question: str, max_results: int | None) -> dict:
    service = await load_knowledge_base(settings)
    orchestrator = build_orchestrator(service, settings)
    result = await orchestrator.answer(question, max_results=max_results)
    return {
        "status": result.status.value,
        "response": result.answer or "",
        "error": result.error,
        "citations": [
            {
                "document": c.document,
                "chunk_index": c.chunk_index,
                "confidence_score": round(c.confidence_score, 4),
                "text_excerpt": c.text_excerpt,
            }
            for c in result.citations
        ],
        "timing_ms": {
            "embed": round(result.timing.embed_ms, 2),
            "search": round(result.timing.search_ms, 2),
            "generation": round(result.timing.generation_ms, 2),
            "total": round(result.timing.total_ms, 2),
        },
    }


def main():
    """メイン処理"""
    parser = argparse.ArgumentParser(description='RAG質問スクリプト')
    parser.add_argument('question', help='質問文')
    parser.add_argument('--max-results', type=int, default=None, help='引用の最大件数')
    args = parser.parse_args()

    try:
        output = asyncio.run(run(args.question, args.max_results))
    except RagError as e:
        logger.error(f"質問の処理に失敗しました: {type(e).__name__}: {e}")
        sys.exit(1)

    print(json.dumps(output, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
