"""
FastAPIアプリケーションのエントリーポイント（アプリの起動入口）

【初心者向け】
このファイルはRAG検索APIサーバーを起動する「玄関」です。
- FastAPI: PythonのWebフレームワーク。REST APIを簡単に作れる
- 起動時に /health, /documents, /query のルート（APIの窓口）を登録し、
  起動イベントでドキュメントをチャンク化・Embeddingしてインデックスを作ります

実行方法:
    pip install -e .
    cd backend
    uvicorn app.main:app --reload --port 8000
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.exceptions import InvalidConfigurationError
from app.core.settings import settings
from app.routers import documents, health, query
from app.rag.service import build_orchestrator, load_knowledge_base

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# ロガー設定
logger = logging.getLogger(__name__)

app = FastAPI(
    title="RAG Retrieval API",
    description="PDF documents QA API",
    version="0.1.0",
)

# 起動イベントで構築するまでは未準備
app.state.knowledge_base = None
app.state.orchestrator = None

# CORS設定: フロントエンドからAPIを呼ぶ際の跨域通信を許可
# 環境変数 CORS_ORIGINS で許可するオリジン（例: http://localhost:3000）を指定
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ルーター登録: /health=死活確認, /documents=資料一覧, /query=質問
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(documents.router, prefix="/documents", tags=["documents"])
app.include_router(query.router, prefix="/query", tags=["query"])


@app.on_event("startup")
async def startup_event():
    """
    起動時の処理: DOCS_DIR内のドキュメントからインデックスを作成し、
    RetrievalOrchestrator を app.state に登録する

    - 設定不正（InvalidConfigurationError）は起動失敗
    - それ以外の失敗はログだけ出してサーバーは起動（/query は503）
    """
    try:
        service = await load_knowledge_base(settings)
        app.state.knowledge_base = service.knowledge_base
        app.state.orchestrator = build_orchestrator(service, settings)
    except InvalidConfigurationError as e:
        logger.error(f"設定が不正なため起動できません: {e}")
        raise
    except Exception as e:
        logger.error(f"起動時のインデックス作成に失敗しました: {type(e).__name__}: {e}", exc_info=True)
        return

    logger.info(
        f"インデックス準備完了: documents={len(service.knowledge_base.documents)}, "
        f"chunks={service.knowledge_base.chunk_count}, model={service.knowledge_base.model_id}"
    )


@app.get("/")
async def root():
    """ルートエンドポイント"""
    return {"message": "RAG Retrieval API"}
