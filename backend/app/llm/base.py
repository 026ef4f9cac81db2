"""
LLMアダプタ層の基底定義（抽象インターフェース）

【初心者向け】
- LLMClient: Protocol。Gemini / Ollama 等の実装が chat(messages) を提供する約束
- 失敗時は app.core.exceptions の GenerationBackendError / BackendTimeoutError を raise する
"""
from typing import Protocol, List, Dict


class LLMClient(Protocol):
    """
    LLMクライアントのインターフェース

    各LLM実装（Gemini、Ollama等）はこのProtocolに準拠する
    """

    async def chat(self, messages: List[Dict[str, str]]) -> str:
        """
        チャット形式でLLMに問い合わせ、回答を取得

        Args:
            messages: メッセージリスト（[{"role": "system", "content": "..."}, ...]）

        Returns:
            LLMからの回答テキスト

        Raises:
            BackendTimeoutError: タイムアウト時
            GenerationBackendError: その他のエラー時
        """
        ...
