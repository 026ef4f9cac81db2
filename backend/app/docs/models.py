"""
ドキュメント関連の型定義（データの形を明示）

【初心者向け】
- dataclass: フィールドだけ持つ軽量なクラス
- SourceDocument = PDF/TXTから抽出した直後の生テキスト（1ファイル単位）
- Document = インデックス作成後のドキュメント概要（作成後は変更しない）
- DocumentChunk = チャンク分割後の1ブロック。検索・Embeddingの最小単位
- Citation = 検索結果。チャンクの抜粋とドキュメント名・スコアを結合した読み取り専用の値
"""
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class SourceDocument:
    """抽出済みテキスト（PDF抽出側から渡される単位）"""
    doc_id: str     # 安定した一意ID（ファイル名と内容から決まる）
    filename: str   # ファイル名（例: policy.pdf）
    text: str       # 正規化済みの全文


@dataclass(frozen=True)
class Document:
    """インデックス作成後のドキュメント（作成後は不変）"""
    doc_id: str
    filename: str
    text: str
    chunk_count: int        # インデックスに登録できたチャンク数
    content_length: int     # 全文の文字数
    skipped_chunks: int = 0  # Embedding失敗などで登録できなかったチャンク数


@dataclass
class DocumentChunk:
    """ドキュメントチャンク（分割後の1塊）"""
    doc_id: str       # 親ドキュメントのID
    chunk_index: int  # そのドキュメント内でのチャンク番号（0始まり）
    start: int        # 元テキスト上の開始位置（文字単位、含む）
    end: int          # 元テキスト上の終了位置（文字単位、含まない）
    text: str         # text == 元テキスト[start:end]
    embedding: Optional[List[float]] = None  # Embedding後に設定される

    @property
    def key(self) -> tuple[str, int]:
        """キャッシュ・並び順で使うキー"""
        return (self.doc_id, self.chunk_index)


@dataclass(frozen=True)
class Citation:
    """引用情報（検索結果1件）"""
    document: str           # ドキュメント名（ファイル名）
    doc_id: str
    chunk_index: int
    start: int
    end: int
    text_excerpt: str       # チャンクのテキストそのまま（要約・切り詰めなし）
    confidence_score: float  # 類似度を [0, 1] にclampした値
    similarity: float        # 生のコサイン類似度 [-1, 1]
