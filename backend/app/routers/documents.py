"""
Documents APIルーター（インデックス済みドキュメントの一覧）

【初心者向け】
- GET /documents: 読み込み順にドキュメント概要を返す
  （id / filename / chunk_count / content_length / skipped_chunks）
- インデックス未構築なら空リスト
"""
from typing import List

from fastapi import APIRouter, Request

from app.schemas.documents import DocumentSummary

router = APIRouter()


@router.get("", response_model=List[DocumentSummary])
async def list_documents(request: Request) -> List[DocumentSummary]:
    """
    ドキュメント概要の一覧を取得する

    Returns:
        DocumentSummaryのリスト（読み込み順）
    """
    knowledge_base = getattr(request.app.state, "knowledge_base", None)
    if knowledge_base is None:
        return []
    return [DocumentSummary.from_document(doc) for doc in knowledge_base.documents.values()]
