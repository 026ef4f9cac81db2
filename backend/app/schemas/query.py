"""
Query API用スキーマ
"""
from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.schemas.common import CitationOut


class QueryRequest(BaseModel):
    """質問リクエスト"""
    query: str = Field(..., description="質問文")
    max_results: Optional[int] = Field(None, description="引用の最大件数（省略時はDEFAULT_MAX_RESULTS）")


class QueryResponse(BaseModel):
    """質問レスポンス"""
    status: Literal["success", "partial_success"]
    response: str = Field(..., description="回答テキスト（partial_successの場合は空文字）")
    citations: list[CitationOut]
    processing_time_ms: float
    error: Optional[str] = Field(default=None, description="回答生成に失敗した場合のエラー内容")
