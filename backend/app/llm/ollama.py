"""
Ollama LLMクライアント（/api/chat、stream=False の一括応答）
"""
import logging
from functools import lru_cache
from typing import Any, Dict, List

import httpx

from app.core.exceptions import GenerationBackendError
from app.core.http import post_json
from app.core.settings import settings

# ロガー設定
logger = logging.getLogger(__name__)


def extract_ollama_text(raw: Any) -> str:
    """
    Ollamaの応答からテキストを取り出す

    chat API の message.content、generate API の response、
    streaming時のリスト（連結）、文字列そのものに対応。見つからなければ空文字。
    """
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return "".join(extract_ollama_text(item) for item in raw)
    if not isinstance(raw, dict):
        return ""

    message = raw.get("message")
    if isinstance(message, dict) and message.get("content"):
        return str(message["content"])
    if raw.get("response"):
        return str(raw["response"])

    logger.warning(f"Ollamaレスポンスにテキストがありません: keys={list(raw.keys())}")
    return ""


class OllamaClient:
    """Ollama APIクライアント（LLMClient準拠）"""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout_sec: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout_sec = timeout_sec or settings.llm_timeout_sec
        self._transport = transport
        self.chat_url = f"{self.base_url}/api/chat"

    async def chat(self, messages: List[Dict[str, str]]) -> str:
        """
        メッセージを送って回答テキストを返す

        Raises:
            BackendTimeoutError: タイムアウト時
            GenerationBackendError: HTTPエラー・接続失敗・JSONでない応答
        """
        result = await post_json(
            self.chat_url,
            {"model": self.model, "messages": messages, "stream": False},
            backend="generation",
            error_cls=GenerationBackendError,
            timeout_sec=self.timeout_sec,
            transport=self._transport,
        )
        answer = extract_ollama_text(result)
        logger.info(f"Ollama回答取得: model={self.model}, {len(answer)}文字")
        return answer


@lru_cache(maxsize=1)
def get_ollama_client() -> OllamaClient:
    """OllamaClientを1つだけ作って使い回す"""
    return OllamaClient()
