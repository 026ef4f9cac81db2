"""
共通エラーハンドリング（APIで返すエラー形式の統一）

【初心者向け】
- クライアントが { "error": { "code": "...", "message": "..." } } で
  エラーを受け取れるよう、共通形式で例外を投げる
- ドメイン例外（app.core.exceptions）は app_error_from() でHTTPステータスに対応付ける
"""
from fastapi import HTTPException, status
from typing import Literal

from app.core.exceptions import (
    BackendTimeoutError,
    DegenerateVectorError,
    EmbeddingBackendError,
    GenerationBackendError,
    InvalidArgumentError,
    RagError,
)

# エラーコード一覧（型安全のため Literal で定義）
ErrorCode = Literal[
    "INVALID_INPUT",
    "TIMEOUT",
    "EMBEDDING_BACKEND_ERROR",
    "GENERATION_BACKEND_ERROR",
    "DEGENERATE_VECTOR",
    "SERVICE_UNAVAILABLE",
    "INTERNAL_ERROR",
]

# エラーコードとHTTPステータスのマッピング
ERROR_STATUS_MAP: dict[ErrorCode, int] = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
    "EMBEDDING_BACKEND_ERROR": status.HTTP_502_BAD_GATEWAY,
    "GENERATION_BACKEND_ERROR": status.HTTP_502_BAD_GATEWAY,
    "DEGENERATE_VECTOR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "SERVICE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(HTTPException):
    """アプリケーション共通エラー

    FastAPIのHTTPExceptionはdetailをJSONとして返す。
    クライアントで期待される形式: { "error": { "code": "...", "message": "..." } }
    """

    def __init__(self, code: ErrorCode, message: str):
        status_code = ERROR_STATUS_MAP[code]
        super().__init__(
            status_code=status_code,
            detail={"error": {"code": code, "message": message}}
        )
        self.code = code


def app_error_from(exc: RagError) -> AppError:
    """ドメイン例外を対応するAppErrorに変換する"""
    if isinstance(exc, InvalidArgumentError):
        return AppError("INVALID_INPUT", str(exc))
    if isinstance(exc, BackendTimeoutError):
        return AppError("TIMEOUT", str(exc))
    if isinstance(exc, EmbeddingBackendError):
        return AppError("EMBEDDING_BACKEND_ERROR", str(exc))
    if isinstance(exc, GenerationBackendError):
        return AppError("GENERATION_BACKEND_ERROR", str(exc))
    if isinstance(exc, DegenerateVectorError):
        return AppError("DEGENERATE_VECTOR", str(exc))
    return AppError("INTERNAL_ERROR", str(exc))


def raise_service_unavailable(message: str) -> None:
    """SERVICE_UNAVAILABLEエラーを発生させる（インデックス未構築時など）"""
    raise AppError("SERVICE_UNAVAILABLE", message)
