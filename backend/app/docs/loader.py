"""
ドキュメント読み込みモジュール（PDF/TXT → 正規化済みテキスト）
"""
import hashlib
import logging
import re
import uuid
from pathlib import Path
from typing import List

import fitz  # PyMuPDF

from app.docs.models import SourceDocument

# ロガー設定
logger = logging.getLogger(__name__)

# ドキュメントIDを作るための名前空間（固定値。変えるとIDとキャッシュキーが全て変わる）
DOCUMENT_ID_NAMESPACE = uuid.UUID("6f1c2b7e-4a55-4c1e-9a0e-3d2f8b9c0a11")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """
    抽出テキストを正規化する（連続する空白・改行を1つの空白にまとめ、前後を除去）

    Args:
        text: 抽出した生テキスト

    Returns:
        正規化済みテキスト
    """
    return _WHITESPACE_RE.sub(" ", text).strip()


def make_document_id(filename: str, text: str) -> str:
    """
    ファイル名と本文から安定したドキュメントIDを作る

    同じコーパスなら再起動してもIDは変わらない（Embeddingキャッシュのキーに使うため）

    Args:
        filename: ファイル名
        text: 正規化済み本文

    Returns:
        UUID文字列
    """
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return str(uuid.uuid5(DOCUMENT_ID_NAMESPACE, f"{filename}:{digest}"))


def load_txt_file(file_path: Path) -> str:
    """
    TXTファイルを読み込む

    Args:
        file_path: ファイルパス

    Returns:
        ファイルの全文
    """
    with open(file_path, "r", encoding="utf-8") as f:
        return f.read()


def load_pdf_file(file_path: Path) -> str:
    """
    PDFファイルからテキストを抽出する（テキスト抽出可能なページのみ）

    Args:
        file_path: ファイルパス

    Returns:
        全ページのテキストを改行で連結したもの（抽出できなければ空文字）
    """
    pages = []
    empty_pages = 0

    with fitz.open(file_path) as doc:
        total_pages = len(doc)
        for page in doc:
            text = page.get_text()
            if not text or not text.strip():
                empty_pages += 1
                continue
            pages.append(text)

    if empty_pages > 0:
        logger.info(
            f"PDF読み込み: {file_path.name} - "
            f"抽出成功: {len(pages)}ページ/{total_pages}ページ, "
            f"空ページ: {empty_pages}ページ（スキャン画像の可能性）"
        )

    return "\n".join(pages)


def _find_repo_root() -> Path:
    """
    リポジトリルートを取得する（backend/app/docs/loader.py から4階層上）

    Returns:
        リポジトリルートのPathオブジェクト（絶対パス）
    """
    # loader.py -> docs/ -> app/ -> backend/ -> repo_root
    return Path(__file__).resolve().parent.parent.parent.parent


def resolve_docs_dir(docs_dir: str) -> Path:
    """
    docs_dirを絶対パスに解決する（相対パスはリポジトリルート基準）
    """
    path = Path(docs_dir)
    if not path.is_absolute():
        path = _find_repo_root() / path
    return path.resolve()


def load_documents(docs_dir: str) -> List[SourceDocument]:
    """
    ドキュメントディレクトリ配下のPDF/TXTを読み込む

    - ファイル名順に読み込む（IDと並び順を毎回同じにするため）
    - テキストが抽出できないファイル・読み込みに失敗したファイルはログを出してスキップ

    Args:
        docs_dir: ドキュメントディレクトリパス

    Returns:
        SourceDocumentのリスト
    """
    documents: List[SourceDocument] = []

    docs_path = resolve_docs_dir(docs_dir)
    logger.info(f"DOCS_DIR実パス: {docs_path} (exists={docs_path.exists()})")

    if not docs_path.exists():
        logger.warning(f"ドキュメントディレクトリが存在しません: {docs_path}")
        return documents

    files = sorted(
        [p for p in docs_path.iterdir() if p.is_file() and p.suffix.lower() in (".pdf", ".txt")],
        key=lambda p: p.name,
    )
    logger.info(f"読み込み対象ファイル: {len(files)}件")

    for file_path in files:
        try:
            if file_path.suffix.lower() == ".pdf":
                raw_text = load_pdf_file(file_path)
            else:
                raw_text = load_txt_file(file_path)
        except Exception as e:
            # 壊れたファイルはログに記録してスキップ（他のファイルの読み込みは続ける）
            logger.error(f"ファイル読み込みに失敗しました（スキップ）: {file_path.name} - {type(e).__name__}: {e}")
            continue

        text = normalize_text(raw_text)
        if not text:
            logger.warning(f"テキストが抽出できませんでした（スキップ）: {file_path.name}")
            continue

        documents.append(
            SourceDocument(
                doc_id=make_document_id(file_path.name, text),
                filename=file_path.name,
                text=text,
            )
        )
        logger.info(f"読み込み: {file_path.name} - {len(text)}文字")

    logger.info(f"ドキュメント読み込み完了: 合計={len(documents)}ドキュメント")
    return documents
