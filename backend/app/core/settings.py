"""
アプリケーション設定（環境変数・定数の一元管理）

【初心者向け】
- Pydantic Settings: 環境変数や.envを読んで型付きで扱うための仕組み
- ここで定義した値は app.core.settings.settings から参照できる
- 主な分類: CORS, ドキュメント/チャンク, Embedding, 検索, LLM(Gemini/Ollama)
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """
    アプリケーション設定クラス
    環境変数（または.env）の値が自動でここにマッピングされる
    """

    # CORS設定
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
        description="APIを呼び出せるオリジン",
    )

    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="ログレベル（DEBUG/INFO/WARNING/ERROR）"
    )

    # ドキュメントディレクトリ（リポジトリルートからの相対パス、絶対パスも可）
    docs_dir: str = Field(
        default="documents",
        alias="DOCS_DIR",
        description="PDF/TXTを置くディレクトリ"
    )

    # チャンク設定
    chunk_size: int = Field(
        default=500,
        alias="CHUNK_SIZE",
        description="チャンクサイズ（文字数）"
    )
    chunk_overlap: int = Field(
        default=50,
        alias="CHUNK_OVERLAP",
        description="チャンクオーバーラップ（文字数、chunk_size未満）"
    )

    # Embedding設定
    embedding_backend: str = Field(
        default="sentence_transformers",
        alias="EMBEDDING_BACKEND",
        description="Embeddingバックエンド（sentence_transformers または ollama）"
    )
    embedding_model: str = Field(
        default="intfloat/multilingual-e5-small",
        alias="EMBEDDING_MODEL",
        description="Embeddingモデル名（sentence_transformers用、384次元）"
    )
    embedding_dim: Optional[int] = Field(
        default=None,
        alias="EMBEDDING_DIM",
        description="期待する次元数（未指定ならバックエンド/初回応答から決定）"
    )
    embedding_query_prefix: str = Field(
        default="query: ",
        alias="EMBEDDING_QUERY_PREFIX",
        description="質問テキストに付けるprefix（E5の仕様）"
    )
    embedding_passage_prefix: str = Field(
        default="passage: ",
        alias="EMBEDDING_PASSAGE_PREFIX",
        description="チャンクテキストに付けるprefix（E5の仕様）"
    )
    embedding_batch_size: int = Field(
        default=16,
        alias="EMBEDDING_BATCH_SIZE",
        description="インデックス作成時の1バッチあたりのチャンク数"
    )
    embedding_concurrency: int = Field(
        default=4,
        alias="EMBEDDING_CONCURRENCY",
        description="インデックス作成時に同時実行するバッチ数の上限"
    )
    embedding_timeout_sec: float = Field(
        default=60,
        alias="EMBEDDING_TIMEOUT_SEC",
        description="Embedding呼び出し1回あたりのタイムアウト秒数"
    )
    embedding_max_attempts: int = Field(
        default=2,
        alias="EMBEDDING_MAX_ATTEMPTS",
        description="一時的な失敗に対する最大試行回数"
    )

    # 検索設定
    default_max_results: int = Field(
        default=5,
        alias="DEFAULT_MAX_RESULTS",
        description="max_results未指定時の取得件数"
    )
    max_results_limit: int = Field(
        default=50,
        alias="MAX_RESULTS_LIMIT",
        description="1リクエストで指定できるmax_resultsの上限"
    )
    min_confidence: Optional[float] = Field(
        default=None,
        alias="MIN_CONFIDENCE",
        description="この値未満のconfidenceの引用を除外（未指定なら除外しない）"
    )

    # LLMプロバイダー選択
    llm_provider: str = Field(
        default="gemini",
        alias="LLM_PROVIDER",
        description="LLMプロバイダー（gemini または ollama）"
    )
    llm_timeout_sec: float = Field(
        default=60,
        alias="LLM_TIMEOUT_SEC",
        description="回答生成1回あたりのタイムアウト秒数"
    )
    llm_max_attempts: int = Field(
        default=2,
        alias="LLM_MAX_ATTEMPTS",
        description="回答生成の一時的な失敗に対する最大試行回数"
    )

    # Gemini API設定
    gemini_api_key: str = Field(
        default="",
        alias="GEMINI_API_KEY",
        description="Gemini APIキー"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        alias="GEMINI_MODEL",
        description="使用するGeminiモデル名"
    )
    gemini_temperature: float = Field(
        default=0.3,
        alias="GEMINI_TEMPERATURE",
        description="回答生成時の temperature"
    )
    gemini_max_output_tokens: int = Field(
        default=1000,
        alias="GEMINI_MAX_OUTPUT_TOKENS",
        description="回答生成時の最大出力トークン数"
    )

    # Ollama設定（環境変数名を明示的に指定して事故防止）
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        alias="OLLAMA_BASE_URL",
        description="Ollama APIのベースURL"
    )
    ollama_model: str = Field(
        default="llama3",
        alias="OLLAMA_MODEL",
        description="回答生成に使用するOllamaモデル名"
    )
    ollama_embedding_model: str = Field(
        default="nomic-embed-text",
        alias="OLLAMA_EMBEDDING_MODEL",
        description="EMBEDDING_BACKEND=ollama のときのEmbeddingモデル名"
    )

    # Pydantic v2の設定（Configクラスの代わりにmodel_configを使用）
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Fieldのaliasとフィールド名の両方で読み込み可能
        extra="ignore"  # 未定義の環境変数を無視
    )


# グローバル設定インスタンス
settings = Settings()
