"""
外部HTTP API（Ollama等）へのJSON POST

httpxの例外をドメイン例外に変換する:
- タイムアウト → BackendTimeoutError
- HTTP 5xx / 429・接続失敗 → transient=True（リトライ対象）
- HTTP 4xx・JSONでない応答 → transient=False
"""
import logging
from typing import Any, Type

import httpx

from app.core.exceptions import BackendTimeoutError, EmbeddingBackendError, GenerationBackendError

# ロガー設定
logger = logging.getLogger(__name__)

BackendErrorType = Type[EmbeddingBackendError] | Type[GenerationBackendError]


async def post_json(
    url: str,
    payload: dict,
    *,
    backend: str,
    error_cls: BackendErrorType,
    timeout_sec: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """
    JSONをPOSTしてレスポンスのJSONを返す

    Args:
        url: エンドポイント
        payload: リクエストボディ
        backend: ログ・タイムアウト例外用の呼び出し種別（"embedding" / "generation"）
        error_cls: 失敗時に投げる例外クラス
        timeout_sec: タイムアウト秒数
        transport: httpxのトランスポート（テスト用）
    """
    try:
        async with httpx.AsyncClient(timeout=timeout_sec, transport=transport) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return response.json()

    except httpx.TimeoutException:
        logger.error(f"{backend}タイムアウト: {url} ({timeout_sec}秒)")
        raise BackendTimeoutError(backend, timeout_sec)

    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        logger.error(f"{backend} HTTPエラー: {status_code} - {e.response.text[:200]}")
        raise error_cls(
            f"{url} がHTTP {status_code}を返しました",
            transient=status_code >= 500 or status_code == 429,
        )

    except httpx.RequestError as e:
        logger.error(f"{backend}接続エラー: {url} - {e}")
        raise error_cls(f"{url} への接続に失敗しました: {e}", transient=True)

    except ValueError as e:
        raise error_cls(f"{url} のレスポンスがJSONではありません: {e}")
