"""
Documents API用スキーマ
"""
from pydantic import BaseModel

from app.docs.models import Document


class DocumentSummary(BaseModel):
    """ドキュメント概要"""
    id: str
    filename: str
    chunk_count: int
    content_length: int
    skipped_chunks: int = 0

    @classmethod
    def from_document(cls, document: Document) -> "DocumentSummary":
        return cls(
            id=document.doc_id,
            filename=document.filename,
            chunk_count=document.chunk_count,
            content_length=document.content_length,
            skipped_chunks=document.skipped_chunks,
        )
