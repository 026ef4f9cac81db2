"""
Query APIルーター（質問 → 引用 + 回答）

【初心者向け】
- POST /query: { "query": "...", "max_results": 3 } を受け取り、
  回答と引用（根拠）を返す
- 引用の順序・内容は RetrievalOrchestrator の結果をそのまま返す（並べ替えない）
- 回答生成だけ失敗した場合は status="partial_success" で引用のみ返す
"""
import logging
import time

from fastapi import APIRouter, Request

from app.core.errors import app_error_from, raise_service_unavailable
from app.core.exceptions import RagError
from app.rag.retrieval import QueryStatus, RetrievalOrchestrator
from app.schemas.common import CitationOut
from app.schemas.query import QueryRequest, QueryResponse

# ロガー設定
logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=QueryResponse)
async def query(payload: QueryRequest, request: Request) -> QueryResponse:
    """
    質問を受け取り、回答を返す

    Args:
        payload: 質問リクエスト

    Returns:
        回答レスポンス
    """
    orchestrator: RetrievalOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise_service_unavailable("インデックスが準備できていません。起動ログを確認してください。")

    t_start = time.perf_counter()
    try:
        result = await orchestrator.answer(payload.query, max_results=payload.max_results)
    except RagError as e:
        logger.warning(f"質問の処理に失敗しました: {type(e).__name__}: {e}")
        raise app_error_from(e)

    processing_time_ms = (time.perf_counter() - t_start) * 1000
    return QueryResponse(
        status=result.status.value,
        response=result.answer if result.status == QueryStatus.SUCCESS else "",
        citations=[CitationOut.from_citation(c) for c in result.citations],
        processing_time_ms=round(processing_time_ms, 2),
        error=result.error,
    )
