"""
Health check APIルーター（死活確認用）

【初心者向け】
- GET /health: サーバーが生きているか確認するエンドポイント
- インデックスが構築済みか（index_ready）とチャンク数も返す
- インデックス未構築でもサーバー自体は生きているので status は "ok"
"""
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("")
async def health_check(request: Request):
    """ヘルスチェック用エンドポイント"""
    knowledge_base = getattr(request.app.state, "knowledge_base", None)
    orchestrator = getattr(request.app.state, "orchestrator", None)
    return {
        "status": "ok",
        "index_ready": orchestrator is not None,
        "chunks": knowledge_base.chunk_count if knowledge_base is not None else 0,
    }
