"""
固定長スライディングウィンドウによるチャンキング

【初心者向け】
- チャンク = 検索・Embeddingの単位。chunk_size文字ずつ切り出す
- 次のチャンクは (chunk_size - chunk_overlap) 文字だけ進んだ位置から始まる
  → 隣り合うチャンクはちょうど chunk_overlap 文字だけ重なる
- 最後のチャンクは残りの長さで切る（パディングしない）
- Pythonのstrはコードポイント単位で添字を扱うので、多バイト文字の途中で切れることはない
  start/end も文字位置なので、text[start:end] で抜粋を正確に復元できる

例: 1200文字, chunk_size=500, overlap=50 → [0,500), [450,950), [900,1200)
"""
from typing import List

from app.core.exceptions import InvalidConfigurationError
from app.docs.models import DocumentChunk, SourceDocument


def validate_chunk_params(chunk_size: int, chunk_overlap: int) -> None:
    """
    チャンク設定を検証する（ストライドが正でないと無限ループになる）

    Raises:
        InvalidConfigurationError: chunk_size <= 0 または overlap が [0, chunk_size) の外
    """
    if chunk_size <= 0:
        raise InvalidConfigurationError(f"chunk_sizeは1以上にしてください: {chunk_size}")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise InvalidConfigurationError(
            f"chunk_overlapは0以上かつchunk_size未満にしてください: "
            f"chunk_size={chunk_size}, chunk_overlap={chunk_overlap}"
        )


def chunk_text(text: str, chunk_size: int, chunk_overlap: int, doc_id: str = "") -> List[DocumentChunk]:
    """
    テキストをオーバーラップ付きの固定長チャンクに分割する

    Args:
        text: 元のテキスト
        chunk_size: チャンクサイズ（文字数）
        chunk_overlap: オーバーラップ文字数
        doc_id: 親ドキュメントのID

    Returns:
        DocumentChunkのリスト（空テキストなら空リスト）

    Raises:
        InvalidConfigurationError: チャンク設定が不正な場合
    """
    validate_chunk_params(chunk_size, chunk_overlap)

    stride = chunk_size - chunk_overlap
    text_len = len(text)

    chunks: List[DocumentChunk] = []
    start = 0
    while start < text_len:
        end = min(start + chunk_size, text_len)
        chunks.append(
            DocumentChunk(
                doc_id=doc_id,
                chunk_index=len(chunks),
                start=start,
                end=end,
                text=text[start:end],
            )
        )
        # 文末まで届いたら終了（重複するだけの短いチャンクを作らない）
        if end == text_len:
            break
        start += stride

    return chunks


def chunk_document(document: SourceDocument, chunk_size: int, chunk_overlap: int) -> List[DocumentChunk]:
    """
    ドキュメントをチャンクに分割する

    Args:
        document: 抽出済みドキュメント
        chunk_size: チャンクサイズ
        chunk_overlap: オーバーラップ文字数

    Returns:
        DocumentChunkのリスト
    """
    return chunk_text(document.text, chunk_size, chunk_overlap, doc_id=document.doc_id)
