"""
Gemini API LLMクライアント（Google Gemini APIとの通信）

【初心者向け】
- Google Gemini APIを使用してLLMを呼び出す
- OllamaClientと同じLLMClientインターフェースを実装
- これにより、既存のコードを変更せずに切り替え可能
"""
import asyncio
import logging
from functools import lru_cache
from typing import List, Dict, Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from app.core.exceptions import BackendTimeoutError, GenerationBackendError, InvalidConfigurationError
from app.core.settings import settings

# ロガー設定
logger = logging.getLogger(__name__)

# 一時的な障害として扱う（リトライ対象）Google APIの例外
TRANSIENT_GOOGLE_ERRORS = (
    google_exceptions.ResourceExhausted,   # 429 クォータ制限
    google_exceptions.ServiceUnavailable,  # 503
    google_exceptions.InternalServerError,  # 500
    google_exceptions.DeadlineExceeded,    # 504
)


def to_gemini_contents(messages: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    """
    OpenAI風のメッセージをGemini APIのcontents形式に変換する

    Gemini APIは "user" と "model" のロールのみサポートするため、
    "system" ロールは最初の "user" メッセージの先頭に統合する
    """
    contents: List[Dict[str, Any]] = []
    system_parts: List[str] = []

    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "system":
            system_parts.append(content)
        elif role == "assistant":
            contents.append({"role": "model", "parts": [content]})
        else:
            if system_parts:
                content = "\n\n".join(system_parts + [content])
                system_parts = []
            contents.append({"role": "user", "parts": [content]})

    # userメッセージが無くsystemだけ残った場合はそれをuserとして送る
    if system_parts:
        contents.insert(0, {"role": "user", "parts": ["\n\n".join(system_parts)]})

    return contents


class GeminiClient:
    """
    Gemini APIクライアント

    - google.generativeai を使用してGemini APIを呼び出す
    - LLMClientインターフェースに準拠
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout_sec: float | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ):
        """
        Geminiクライアントを初期化

        Args:
            api_key: Gemini APIキー（デフォルト: settingsから取得）
            model: 使用するモデル名（デフォルト: settingsから取得）
            timeout_sec: タイムアウト秒数（デフォルト: settingsから取得）
            temperature: 生成時の temperature（デフォルト: settingsから取得）
            max_output_tokens: 最大出力トークン数（デフォルト: settingsから取得）

        Raises:
            InvalidConfigurationError: APIキーが未設定
        """
        self.api_key = settings.gemini_api_key if api_key is None else api_key
        self.model_name = model or settings.gemini_model
        self.timeout_sec = timeout_sec or settings.llm_timeout_sec
        self.generation_config = {
            "temperature": settings.gemini_temperature if temperature is None else temperature,
            "max_output_tokens": max_output_tokens or settings.gemini_max_output_tokens,
        }

        if not self.api_key:
            raise InvalidConfigurationError(
                "Gemini APIキーが設定されていません。GEMINI_API_KEY環境変数を設定してください。"
            )

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(self.model_name)

    def _generate(self, contents: List[Dict[str, Any]]) -> str:
        try:
            response = self.model.generate_content(
                contents,
                generation_config=self.generation_config,
            )
        except TRANSIENT_GOOGLE_ERRORS as e:
            raise GenerationBackendError(f"Gemini API一時エラー: {str(e)[:200]}", transient=True)
        except google_exceptions.GoogleAPIError as e:
            raise GenerationBackendError(f"Gemini API呼び出しエラー: {str(e)[:200]}")

        try:
            return response.text
        except ValueError as e:
            # 安全フィルタ等で候補が返らなかった場合
            raise GenerationBackendError(f"Gemini APIが回答を返しませんでした: {e}")

    async def chat(self, messages: List[Dict[str, str]]) -> str:
        """
        チャット形式でGemini APIに問い合わせ、回答を取得

        Args:
            messages: メッセージリスト（[{"role": "system", "content": "..."}, ...]）

        Returns:
            Gemini APIからの回答テキスト

        Raises:
            BackendTimeoutError: タイムアウト時
            GenerationBackendError: APIエラーやその他のエラー時
        """
        contents = to_gemini_contents(messages)

        try:
            # Gemini SDKは同期呼び出しなので、asyncio.to_threadでラップしてタイムアウトを付ける
            answer = await asyncio.wait_for(
                asyncio.to_thread(self._generate, contents),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.error(f"Gemini APIタイムアウト: {self.timeout_sec}秒")
            raise BackendTimeoutError("generation", self.timeout_sec)
        except GenerationBackendError:
            raise
        except Exception as e:
            logger.error(f"Gemini API予期しないエラー: {type(e).__name__}: {e}")
            raise GenerationBackendError(f"Gemini API呼び出し中にエラーが発生しました: {str(e)}")

        logger.info(f"Gemini API回答取得成功: {len(answer)}文字")
        return answer


@lru_cache(maxsize=1)
def get_gemini_client() -> GeminiClient:
    """
    Geminiクライアントのシングルトンインスタンスを取得（@lru_cacheで生成を抑える）

    Returns:
        GeminiClientインスタンス
    """
    return GeminiClient()
