"""
インメモリ Vector Index（コサイン類似度による全件スキャン検索）

【初心者向け】
- コサイン類似度 = 内積 ÷ (ベクトルの大きさの積)。範囲は [-1, 1]、同じ向きなら1
- 大きさ0のベクトルは向きがないので類似度を定義できない → DegenerateVectorError
- 数十ドキュメント・数百チャンク程度なら全件スキャンで十分速い
- 呼び出し側は search() の結果（スコア降順、長さ<=k）だけに依存する
  → 将来ANN（近似最近傍）インデックスに差し替えても呼び出し側は変わらない

ライフサイクル:
1. 構築フェーズ: insert() でチャンクを登録
2. freeze() 以降は読み取り専用（insertすると例外）。検索は複数リクエストから同時に行ってよい
"""
import logging
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np

from app.core.exceptions import DegenerateVectorError, InvalidArgumentError, RagError
from app.docs.models import DocumentChunk

# ロガー設定
logger = logging.getLogger(__name__)

# この差以内のスコアは同点として doc_id → chunk_index の昇順で並べる
SCORE_EPSILON = 1e-9


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    2つのベクトルのコサイン類似度を計算する

    Raises:
        InvalidArgumentError: 次元数が異なる
        DegenerateVectorError: どちらかの大きさが0
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise InvalidArgumentError(f"ベクトルの次元数が異なります: {va.shape} != {vb.shape}")

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        raise DegenerateVectorError("大きさ0のベクトルとはコサイン類似度を計算できません")

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # 丸め誤差で範囲外に出ないようにする
    return max(-1.0, min(1.0, score))


def rank_scored(scored: Sequence[Tuple[DocumentChunk, float]]) -> List[Tuple[DocumentChunk, float]]:
    """
    スコア降順に並べる（差がSCORE_EPSILON以内のものは doc_id → chunk_index の昇順）

    まず (スコア降順, キー昇順) で厳密に並べ、先頭スコアからSCORE_EPSILON以内に
    連続するものを1グループとしてキー順に並べ直す。入力順には依存しない。
    """
    ordered = sorted(scored, key=lambda item: (-item[1], item[0].key))

    ranked: List[Tuple[DocumentChunk, float]] = []
    group: List[Tuple[DocumentChunk, float]] = []
    leading_score = 0.0
    for item in ordered:
        if group and leading_score - item[1] > SCORE_EPSILON:
            ranked.extend(sorted(group, key=lambda g: g[0].key))
            group = []
        if not group:
            leading_score = item[1]
        group.append(item)
    ranked.extend(sorted(group, key=lambda g: g[0].key))
    return ranked


class IndexFrozenError(RagError):
    """freeze() 後に insert() しようとした"""
    pass


class VectorIndex:
    """
    (チャンク, Embedding) を保持し、コサイン類似度で検索するインデックス

    - 書き込みは1スレッドずつ（ロックで保護）、読み取りはスナップショットを使うので
      登録途中のチャンクが検索結果に見えることはない
    - 同じ model_id のベクトル同士だけを比較する前提（次元数もここで固定）
    """

    def __init__(self, dimension: int, model_id: str = ""):
        if dimension <= 0:
            raise InvalidArgumentError(f"次元数は1以上にしてください: {dimension}")
        self.dimension = dimension
        self.model_id = model_id
        self._chunks: List[DocumentChunk] = []
        self._keys: set[Tuple[str, int]] = set()
        self._rows: List[np.ndarray] = []
        self._lock = threading.Lock()
        self._frozen = False
        # (chunks, 正規化済み行列) のスナップショット。insertのたびに無効化
        self._snapshot: Optional[Tuple[Tuple[DocumentChunk, ...], np.ndarray]] = None

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def insert(self, chunk: DocumentChunk, vector: Sequence[float]) -> None:
        """
        チャンクとベクトルを登録する

        Raises:
            IndexFrozenError: freeze() 済み
            InvalidArgumentError: 次元数が違う・同じ (doc_id, chunk_index) が登録済み
            DegenerateVectorError: 大きさ0のベクトル（検索できないため登録しない）
        """
        row = np.asarray(vector, dtype=np.float64)
        if row.shape != (self.dimension,):
            raise InvalidArgumentError(
                f"ベクトルの次元数が不正です: expected={self.dimension}, got={row.shape}"
            )
        norm = float(np.linalg.norm(row))
        if norm == 0.0:
            raise DegenerateVectorError(
                f"大きさ0のベクトルは登録できません: doc_id={chunk.doc_id}, chunk_index={chunk.chunk_index}"
            )

        with self._lock:
            if self._frozen:
                raise IndexFrozenError("インデックスは読み取り専用です（freeze済み）")
            if chunk.key in self._keys:
                raise InvalidArgumentError(
                    f"同じチャンクが登録済みです: doc_id={chunk.doc_id}, chunk_index={chunk.chunk_index}"
                )
            chunk.embedding = [float(x) for x in row]
            self._chunks.append(chunk)
            self._keys.add(chunk.key)
            self._rows.append(row / norm)
            self._snapshot = None

    def freeze(self) -> None:
        """構築フェーズを終了し、以後は読み取り専用にする"""
        with self._lock:
            self._frozen = True
            self._build_snapshot()
        logger.info(f"Vector Index構築完了: {len(self._chunks)}件 (dim={self.dimension}, model={self.model_id})")

    def chunks(self) -> List[DocumentChunk]:
        """登録順のチャンク一覧"""
        chunks, _ = self._get_snapshot()
        return list(chunks)

    def search(self, query_vector: Sequence[float], k: int) -> List[Tuple[DocumentChunk, float]]:
        """
        query_vector に近いチャンクを最大k件返す

        Args:
            query_vector: 質問のEmbedding
            k: 取得件数（登録件数より大きければ全件）

        Returns:
            (チャンク, コサイン類似度) のリスト（スコア降順、同点は doc_id → chunk_index 昇順）

        Raises:
            InvalidArgumentError: k <= 0 または次元数が違う
            DegenerateVectorError: 大きさ0の質問ベクトル
        """
        if k <= 0:
            raise InvalidArgumentError(f"kは1以上にしてください: {k}")

        chunks, matrix = self._get_snapshot()
        if not chunks:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        if query.shape != (self.dimension,):
            raise InvalidArgumentError(
                f"質問ベクトルの次元数が不正です: expected={self.dimension}, got={query.shape}"
            )
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            raise DegenerateVectorError("大きさ0の質問ベクトルでは検索できません")

        scores = np.clip(matrix @ (query / query_norm), -1.0, 1.0)
        ranked = rank_scored(list(zip(chunks, (float(s) for s in scores))))
        return ranked[:k]

    def _get_snapshot(self) -> Tuple[Tuple[DocumentChunk, ...], np.ndarray]:
        snapshot = self._snapshot
        if snapshot is None:
            with self._lock:
                snapshot = self._build_snapshot()
        return snapshot

    def _build_snapshot(self) -> Tuple[Tuple[DocumentChunk, ...], np.ndarray]:
        # ロック取得済みで呼ぶこと
        if self._snapshot is None:
            if self._rows:
                matrix = np.vstack(self._rows)
            else:
                matrix = np.empty((0, self.dimension), dtype=np.float64)
            self._snapshot = (tuple(self._chunks), matrix)
        return self._snapshot
