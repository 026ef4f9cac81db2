"""
Embedding生成（テキスト→ベクトル変換）

【初心者向け】
- Embedding = 文や単語を数値ベクトル（例: 384次元）に変換したもの
- 似た意味の文は似たベクトルになるので、「意味で検索」するRAGの土台
- E5モデル: queryには "query: ", passageには "passage: " のprefixを付ける仕様
- EmbeddingEngine: バックエンド呼び出しにタイムアウト・リトライ・次元数チェック・キャッシュを足したもの
  - チャンクのベクトルは (doc_id, chunk_index) をキーにプロセス生存中キャッシュする
  - 質問のベクトルはキャッシュしない（毎回計算する）
"""
import asyncio
import hashlib
import logging
import math
from functools import lru_cache
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx
from sentence_transformers import SentenceTransformer

from app.core.exceptions import (
    BackendTimeoutError,
    EmbeddingBackendError,
    InvalidConfigurationError,
    RagError,
)
from app.core.http import post_json
from app.core.retry import call_with_retry
from app.core.settings import Settings, settings as default_settings
from app.docs.models import DocumentChunk

# ロガー設定
logger = logging.getLogger(__name__)

Vector = List[float]


class EmbeddingBackend(Protocol):
    """
    Embeddingバックエンドのインターフェース

    texts と同じ順序・同じ件数のベクトルを返すこと
    """

    model_id: str

    @property
    def dimension(self) -> Optional[int]:
        ...

    async def embed(self, texts: List[str]) -> List[Vector]:
        ...


@lru_cache(maxsize=4)
def get_embedding_model(model_name: str = "intfloat/multilingual-e5-small") -> SentenceTransformer:
    """
    Embeddingモデルを取得（モデル名ごとに1回だけロード）

    Args:
        model_name: モデル名（デフォルト: intfloat/multilingual-e5-small）

    Returns:
        SentenceTransformerインスタンス
    """
    logger.info(f"Embeddingモデルをロード中: {model_name}")
    model = SentenceTransformer(model_name)
    logger.info("Embeddingモデルのロード完了")
    return model


class SentenceTransformerBackend:
    """
    sentence-transformers によるローカルEmbedding

    - normalize_embeddings=True（CPU上では同じ入力に同じ出力）
    - encode は同期処理なので asyncio.to_thread で逃がす
    """

    def __init__(self, model_name: str):
        self.model_name = model_name
        self.model_id = f"sentence_transformers:{model_name}"

    @property
    def dimension(self) -> Optional[int]:
        return get_embedding_model(self.model_name).get_sentence_embedding_dimension()

    def _encode(self, texts: List[str]) -> List[Vector]:
        model = get_embedding_model(self.model_name)
        embeddings = model.encode(texts, normalize_embeddings=True)
        return embeddings.tolist()

    async def embed(self, texts: List[str]) -> List[Vector]:
        try:
            return await asyncio.to_thread(self._encode, texts)
        except Exception as e:
            logger.error(f"sentence-transformersでのEmbedding生成に失敗: {type(e).__name__}: {e}")
            raise EmbeddingBackendError(f"Embedding生成に失敗しました: {e}")


class OllamaEmbeddingBackend:
    """
    Ollama の /api/embed を叩くEmbeddingバックエンド

    リクエスト: {"model": ..., "input": [...]} / レスポンス: {"embeddings": [[...], ...]}
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout_sec: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.model_id = f"ollama:{model}"
        self.timeout_sec = timeout_sec
        self._transport = transport
        self.embed_url = f"{self.base_url}/api/embed"

    @property
    def dimension(self) -> Optional[int]:
        # Ollamaはモデル情報から次元数を取らず、初回応答で決める
        return None

    async def embed(self, texts: List[str]) -> List[Vector]:
        result = await post_json(
            self.embed_url,
            {"model": self.model, "input": texts},
            backend="embedding",
            error_cls=EmbeddingBackendError,
            timeout_sec=self.timeout_sec,
            transport=self._transport,
        )
        embeddings = result.get("embeddings") if isinstance(result, dict) else None
        if not isinstance(embeddings, list):
            keys = list(result.keys()) if isinstance(result, dict) else type(result).__name__
            raise EmbeddingBackendError(f"Ollama Embeddingレスポンスに embeddings がありません: {keys}")
        return embeddings


def _text_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingEngine:
    """
    Embeddingバックエンドのラッパー

    - タイムアウト（asyncio.wait_for）と一時的な失敗の回数制限付きリトライ
    - 次元数・件数・数値のチェック（壊れた出力はゼロベクトルで埋めずに例外）
    - チャンクのベクトルを (doc_id, chunk_index) でキャッシュ
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        dimension: int | None = None,
        timeout_sec: float = 60,
        max_attempts: int = 2,
        query_prefix: str = "",
        passage_prefix: str = "",
        batch_size: int = 16,
    ):
        if batch_size <= 0:
            raise InvalidConfigurationError(f"embedding_batch_sizeは1以上にしてください: {batch_size}")
        if dimension is not None and dimension <= 0:
            raise InvalidConfigurationError(f"embedding_dimは1以上にしてください: {dimension}")

        self.backend = backend
        self.timeout_sec = timeout_sec
        self.max_attempts = max_attempts
        self.query_prefix = query_prefix
        self.passage_prefix = passage_prefix
        self.batch_size = batch_size
        self._dimension = dimension
        # (doc_id, chunk_index) -> (チャンクテキストのハッシュ, ベクトル)
        self._cache: Dict[Tuple[str, int], Tuple[str, Vector]] = {}

    @property
    def model_id(self) -> str:
        return self.backend.model_id

    @property
    def dimension(self) -> Optional[int]:
        """確定済みの次元数（バックエンドも未確定で1件も計算していなければNone）"""
        return self._dimension

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cached_vector(self, doc_id: str, chunk_index: int) -> Optional[Vector]:
        entry = self._cache.get((doc_id, chunk_index))
        return entry[1] if entry is not None else None

    async def embed(self, text: str) -> Vector:
        """テキスト1件をベクトルに変換する（キャッシュしない）"""
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> List[Vector]:
        """
        テキストリストをベクトルに変換する（入力順を保つ、キャッシュしない）

        Raises:
            EmbeddingBackendError: バックエンド不通・出力不正
            BackendTimeoutError: タイムアウト（リトライ後も）
        """
        texts = list(texts)
        if not texts:
            return []
        return await call_with_retry(
            lambda: self._call_backend(texts),
            max_attempts=self.max_attempts,
            label="Embedding生成",
        )

    async def embed_query(self, query: str) -> Vector:
        """質問をベクトルに変換する（prefix付き、キャッシュしない）"""
        return await self.embed(f"{self.query_prefix}{query}")

    async def embed_chunks(self, chunks: Sequence[DocumentChunk], concurrency: int = 4) -> List[Optional[Vector]]:
        """
        チャンクをまとめてベクトルに変換する（インデックス作成用）

        - キャッシュ済みのチャンクは再計算しない
        - batch_size件ずつのバッチを最大 concurrency 個まで並行実行
        - 結果は chunks と同じ長さのスロットに書き込む（並べ替え不要）
        - バッチが失敗したら1件ずつやり直し、それでも失敗したチャンクは None のまま

        Args:
            chunks: チャンクのリスト
            concurrency: 同時実行するバッチ数の上限

        Returns:
            chunks と同じ順序のベクトル（失敗したチャンクは None）
        """
        if concurrency <= 0:
            raise InvalidConfigurationError(f"embedding_concurrencyは1以上にしてください: {concurrency}")

        slots: List[Optional[Vector]] = [None] * len(chunks)
        pending: List[int] = []
        for i, chunk in enumerate(chunks):
            entry = self._cache.get(chunk.key)
            # チャンク設定が変わると同じキーでも中身が違うので、テキストが一致する場合だけ使う
            if entry is not None and entry[0] == _text_digest(chunk.text):
                slots[i] = entry[1]
            else:
                pending.append(i)

        if len(pending) < len(chunks):
            logger.info(f"Embeddingキャッシュ利用: {len(chunks) - len(pending)}件")

        semaphore = asyncio.Semaphore(concurrency)

        def store(i: int, vector: Vector) -> None:
            slots[i] = vector
            self._cache[chunks[i].key] = (_text_digest(chunks[i].text), vector)

        async def run_batch(indices: List[int]) -> None:
            async with semaphore:
                texts = [f"{self.passage_prefix}{chunks[i].text}" for i in indices]
                try:
                    vectors = await self.embed_many(texts)
                except RagError as e:
                    if len(indices) == 1:
                        self._log_skip(chunks[indices[0]], e)
                        return
                    logger.warning(f"Embeddingバッチが失敗したため1件ずつ再試行します（{len(indices)}件）: {e}")
                    for i, text in zip(indices, texts):
                        try:
                            store(i, await self.embed(text))
                        except RagError as single_error:
                            self._log_skip(chunks[i], single_error)
                    return
                for i, vector in zip(indices, vectors):
                    store(i, vector)

        batches = [pending[j:j + self.batch_size] for j in range(0, len(pending), self.batch_size)]
        if batches:
            logger.info(f"Embedding生成中: {len(pending)}件（{len(batches)}バッチ, 並列数={concurrency}）")
        await asyncio.gather(*(run_batch(batch) for batch in batches))
        return slots

    def _log_skip(self, chunk: DocumentChunk, error: Exception) -> None:
        logger.warning(
            f"チャンクのEmbeddingに失敗したためスキップします: "
            f"doc_id={chunk.doc_id}, chunk_index={chunk.chunk_index} - {type(error).__name__}: {error}"
        )

    async def _call_backend(self, texts: List[str]) -> List[Vector]:
        try:
            raw = await asyncio.wait_for(self.backend.embed(texts), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            logger.error(f"Embeddingタイムアウト: {self.timeout_sec}秒")
            raise BackendTimeoutError("embedding", self.timeout_sec)
        except RagError:
            raise
        except Exception as e:
            logger.error(f"Embedding予期しないエラー: {type(e).__name__}: {e}")
            raise EmbeddingBackendError(f"Embedding呼び出し中にエラーが発生しました: {e}")
        return self._validate(raw, expected_count=len(texts))

    def _validate(self, raw: Any, expected_count: int) -> List[Vector]:
        if not isinstance(raw, (list, tuple)) or len(raw) != expected_count:
            got = len(raw) if isinstance(raw, (list, tuple)) else type(raw).__name__
            raise EmbeddingBackendError(f"Embedding件数が不正です: expected={expected_count}, got={got}")

        dimension = self._dimension
        if dimension is None:
            dimension = self.backend.dimension
            if not dimension:
                try:
                    dimension = len(raw[0])
                except TypeError:
                    raise EmbeddingBackendError("Embeddingの形式が不正です（ベクトルではありません）")
            if dimension <= 0:
                raise EmbeddingBackendError("Embeddingが空のベクトルです")

        vectors: List[Vector] = []
        for vector in raw:
            try:
                values = [float(x) for x in vector]
            except (TypeError, ValueError):
                raise EmbeddingBackendError("Embeddingに数値以外が含まれています")
            if len(values) != dimension:
                raise EmbeddingBackendError(
                    f"Embedding次元数が不正です: expected={dimension}, got={len(values)}"
                )
            if not all(math.isfinite(x) for x in values):
                raise EmbeddingBackendError("EmbeddingにNaNまたは無限大が含まれています")
            vectors.append(values)

        # バッチ全体が正しいと確認できてから次元数を確定する
        if self._dimension is None:
            self._dimension = dimension
            logger.info(f"Embedding次元数: {self._dimension} (model={self.model_id})")
        return vectors


def get_embedding_backend(config: Settings | None = None) -> EmbeddingBackend:
    """
    設定（EMBEDDING_BACKEND）に応じたEmbeddingバックエンドを返す

    Raises:
        InvalidConfigurationError: 未知のバックエンド名
    """
    config = config or default_settings
    name = config.embedding_backend.lower()

    if name == "sentence_transformers":
        return SentenceTransformerBackend(config.embedding_model)
    elif name == "ollama":
        return OllamaEmbeddingBackend(
            base_url=config.ollama_base_url,
            model=config.ollama_embedding_model,
            timeout_sec=config.embedding_timeout_sec,
        )
    else:
        raise InvalidConfigurationError(
            f"無効なEmbeddingバックエンド: {name}。"
            f"EMBEDDING_BACKEND環境変数に 'sentence_transformers' または 'ollama' を指定してください。"
        )


def build_embedding_engine(config: Settings | None = None, backend: EmbeddingBackend | None = None) -> EmbeddingEngine:
    """設定からEmbeddingEngineを組み立てる"""
    config = config or default_settings
    return EmbeddingEngine(
        backend=backend or get_embedding_backend(config),
        dimension=config.embedding_dim,
        timeout_sec=config.embedding_timeout_sec,
        max_attempts=config.embedding_max_attempts,
        query_prefix=config.embedding_query_prefix,
        passage_prefix=config.embedding_passage_prefix,
        batch_size=config.embedding_batch_size,
    )
