"""
共通スキーマ定義（APIで共通利用する型）

【初心者向け】
- CitationOut: 引用（document / text_excerpt / confidence_score）。回答の根拠表示に使用
"""
from pydantic import BaseModel, Field

from app.docs.models import Citation


class CitationOut(BaseModel):
    """引用情報"""
    document: str = Field(..., description="ファイル名")
    text_excerpt: str = Field(..., description="チャンクのテキスト（加工なし）")
    confidence_score: float = Field(..., ge=0.0, le=1.0, description="類似度を[0,1]にclampした値")

    @classmethod
    def from_citation(cls, citation: Citation) -> "CitationOut":
        return cls(
            document=citation.document,
            text_excerpt=citation.text_excerpt,
            confidence_score=citation.confidence_score,
        )